"""Binary reader/writer for the persisted network layout.

Fields are packed with no padding in native byte order (``struct``'s ``=``
prefix); matrices are written as row-major IEEE-754 doubles.  Every read
either returns exactly what was asked for or raises
:class:`~nnkit.core.errors.CorruptStream`.
"""

from __future__ import annotations

import struct
from typing import BinaryIO

import numpy as np

from .errors import CorruptStream
from .matrix import Matrix

_INT32 = struct.Struct("=i")
_UINT32 = struct.Struct("=I")
_BOOL = struct.Struct("=?")
_DOUBLE = np.dtype("=f8")
_READ_CHUNK = 1 << 20


class BinaryWriter:
    """Write primitive fields to a binary stream."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream

    def write_int32(self, value: int) -> None:
        try:
            self.stream.write(_INT32.pack(int(value)))
        except struct.error as exc:
            raise ValueError(f"{value} does not fit in an int32 field") from exc

    def write_uint32(self, value: int) -> None:
        self.stream.write(_UINT32.pack(int(value)))

    def write_bool(self, value: bool) -> None:
        self.stream.write(_BOOL.pack(bool(value)))

    def write_str(self, value: str) -> None:
        encoded = value.encode("utf-8")
        self.write_uint32(len(encoded))
        self.stream.write(encoded)

    def write_matrix(self, matrix: Matrix) -> None:
        self.stream.write(np.ascontiguousarray(matrix.to_array(), dtype=_DOUBLE).tobytes())


class BinaryReader:
    """Read primitive fields back, failing loudly on truncation."""

    def __init__(self, stream: BinaryIO) -> None:
        self.stream = stream

    def read_exact(self, size: int, what: str) -> bytes:
        # Bounded reads: a corrupt length must not pre-allocate its full size.
        chunks = []
        remaining = size
        while remaining > 0:
            data = self.stream.read(min(remaining, _READ_CHUNK))
            if not data:
                break
            chunks.append(data)
            remaining -= len(data)
        if remaining:
            raise CorruptStream(
                f"Unexpected end of stream while reading {what}: "
                f"wanted {size} bytes, got {size - remaining}"
            )
        return b"".join(chunks)

    def read_int32(self, what: str) -> int:
        return _INT32.unpack(self.read_exact(_INT32.size, what))[0]

    def read_uint32(self, what: str) -> int:
        return _UINT32.unpack(self.read_exact(_UINT32.size, what))[0]

    def read_count(self, what: str) -> int:
        """Read an int32 that must be strictly positive."""

        value = self.read_int32(what)
        if value <= 0:
            raise CorruptStream(f"Invalid {what}: {value}")
        return value

    def read_bool(self, what: str) -> bool:
        raw = self.read_exact(_BOOL.size, what)
        if raw not in (b"\x00", b"\x01"):
            raise CorruptStream(f"Invalid boolean byte for {what}: {raw!r}")
        return raw == b"\x01"

    def read_str(self, what: str) -> str:
        length = self.read_uint32(f"{what} length")
        raw = self.read_exact(length, what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CorruptStream(f"{what} is not valid UTF-8: {raw!r}") from exc

    def read_matrix(self, rows: int, cols: int, what: str) -> Matrix:
        raw = self.read_exact(rows * cols * _DOUBLE.itemsize, what)
        values = np.frombuffer(raw, dtype=_DOUBLE).reshape(rows, cols)
        return Matrix.from_array(values)


__all__ = ["BinaryReader", "BinaryWriter"]
