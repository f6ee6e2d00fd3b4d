"""Dense two-dimensional float64 matrix.

Every operation returns a new :class:`Matrix`; nothing shares a buffer
with its operands, so assigning a matrix to a new owner never aliases
mutable state.  Shape-sensitive operations validate first and raise
:class:`~nnkit.core.errors.DimensionMismatch`; the only broadcasting is the
documented matrix/scalar form.
"""

from __future__ import annotations

from numbers import Real
from typing import Any, Callable, List, Sequence, Tuple

import numpy as np

from .errors import DimensionMismatch, DivisionByZero

Scalar = Real
ElementFn = Callable[[float, int, int], float]


class Matrix:
    """Row-major grid of ``rows x cols`` double precision values."""

    __slots__ = ("_data",)
    # Make numpy defer to our reflected operators (``np.float64(2) * m``).
    __array_ufunc__ = None

    def __init__(self, rows: int, cols: int, fill: float = 0.0) -> None:
        if rows < 0 or cols < 0:
            raise ValueError(f"Matrix dimensions must be non-negative, got {rows}x{cols}")
        self._data = np.full((int(rows), int(cols)), float(fill), dtype=np.float64)

    # ------------------------------------------------------------------
    # Construction

    @classmethod
    def _wrap(cls, array: np.ndarray) -> "Matrix":
        obj = cls.__new__(cls)
        obj._data = array
        return obj

    @classmethod
    def from_array(cls, values: Any) -> "Matrix":
        """Copy a two-dimensional array-like into a new matrix."""

        array = np.array(values, dtype=np.float64)
        if array.ndim != 2:
            raise ValueError(f"Matrix.from_array expects 2 dimensions, got {array.ndim}")
        return cls._wrap(array)

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[float]]) -> "Matrix":
        return cls.from_array(rows)

    @classmethod
    def from_vector(cls, values: Sequence[float]) -> "Matrix":
        """Return an ``n x 1`` column built from a flat sequence."""

        array = np.array(values, dtype=np.float64).reshape(-1, 1)
        return cls._wrap(array)

    @classmethod
    def from_scalar(cls, value: float) -> "Matrix":
        return cls._wrap(np.array([[float(value)]], dtype=np.float64))

    @classmethod
    def zeros(cls, rows: int, cols: int) -> "Matrix":
        return cls(rows, cols)

    @classmethod
    def zeros_like(cls, other: "Matrix") -> "Matrix":
        return cls(other.rows, other.cols)

    @classmethod
    def identity(cls, size: int) -> "Matrix":
        return cls._wrap(np.eye(size, dtype=np.float64))

    # ------------------------------------------------------------------
    # Shape and element access

    @property
    def rows(self) -> int:
        return int(self._data.shape[0])

    @property
    def cols(self) -> int:
        return int(self._data.shape[1])

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def size(self) -> int:
        return int(self._data.size)

    def __getitem__(self, key: Tuple[int, int]) -> float:
        row, col = key
        return float(self._data[row, col])

    def __setitem__(self, key: Tuple[int, int], value: float) -> None:
        row, col = key
        self._data[row, col] = float(value)

    def row(self, index: int) -> "Matrix":
        """Return row ``index`` as a ``1 x cols`` matrix."""

        return Matrix._wrap(self._data[[index], :].copy())

    def col(self, index: int) -> "Matrix":
        """Return column ``index`` as a ``rows x 1`` matrix."""

        return Matrix._wrap(self._data[:, [index]].copy())

    # ------------------------------------------------------------------
    # In-place mutation

    def fill(self, value: float) -> None:
        self._data.fill(float(value))

    def for_each(self, fn: ElementFn) -> None:
        """Replace every element with ``fn(value, row, col)``, row by row."""

        for i in range(self.rows):
            for j in range(self.cols):
                self._data[i, j] = float(fn(float(self._data[i, j]), i, j))

    def map(self, fn: Callable[[np.ndarray], np.ndarray]) -> "Matrix":
        """Return a new matrix holding ``fn`` applied to a copy of the values."""

        result = np.asarray(fn(self._data.copy()), dtype=np.float64)
        if result.shape != self._data.shape:
            raise DimensionMismatch("map", self.shape, _shape_of(result))
        return Matrix._wrap(result)

    # ------------------------------------------------------------------
    # Arithmetic

    def _check_same(self, operation: str, other: "Matrix") -> None:
        if self.shape != other.shape:
            raise DimensionMismatch(operation, self.shape, other.shape)

    def _combine(self, operation: str, other: Any, fn, *, reflected: bool = False):
        if isinstance(other, Matrix):
            self._check_same(operation, other)
            rhs = other._data
        elif isinstance(other, Real):
            rhs = float(other)
        else:
            return NotImplemented
        if reflected:
            return Matrix._wrap(np.asarray(fn(rhs, self._data), dtype=np.float64))
        return Matrix._wrap(np.asarray(fn(self._data, rhs), dtype=np.float64))

    def __add__(self, other: Any) -> "Matrix":
        return self._combine("add", other, np.add)

    def __radd__(self, other: Any) -> "Matrix":
        return self._combine("add", other, np.add, reflected=True)

    def __sub__(self, other: Any) -> "Matrix":
        return self._combine("subtract", other, np.subtract)

    def __rsub__(self, other: Any) -> "Matrix":
        return self._combine("subtract", other, np.subtract, reflected=True)

    def __mul__(self, other: Any) -> "Matrix":
        return self._combine("multiply", other, np.multiply)

    def __rmul__(self, other: Any) -> "Matrix":
        return self._combine("multiply", other, np.multiply, reflected=True)

    def __truediv__(self, other: Any) -> "Matrix":
        if isinstance(other, Matrix):
            self._check_same("divide", other)
            if np.any(other._data == 0.0):
                raise DivisionByZero("element-wise division by a matrix containing zero")
        elif isinstance(other, Real) and float(other) == 0.0:
            raise DivisionByZero("division of a matrix by zero")
        return self._combine("divide", other, np.divide)

    def __rtruediv__(self, other: Any) -> "Matrix":
        if isinstance(other, Real) and np.any(self._data == 0.0):
            raise DivisionByZero("scalar divided by a matrix containing zero")
        return self._combine("divide", other, np.divide, reflected=True)

    def __pow__(self, other: Any) -> "Matrix":
        return self._combine("power", other, np.power)

    def __rpow__(self, other: Any) -> "Matrix":
        return self._combine("power", other, np.power, reflected=True)

    def __neg__(self) -> "Matrix":
        return Matrix._wrap(np.negative(self._data))

    def __pos__(self) -> "Matrix":
        return self.copy()

    # ------------------------------------------------------------------
    # Linear algebra

    def transpose(self) -> "Matrix":
        return Matrix._wrap(np.ascontiguousarray(self._data.T))

    @property
    def T(self) -> "Matrix":  # noqa: N802 - numpy spelling
        return self.transpose()

    def dot(self, other: "Matrix") -> "Matrix":
        """Matrix product ``self . other``; requires ``self.cols == other.rows``."""

        if not isinstance(other, Matrix):
            raise TypeError(f"dot expects a Matrix, got {type(other).__name__}")
        if self.cols != other.rows:
            raise DimensionMismatch("dot", self.shape, other.shape)
        # Accumulate over the inner index in order so each element is the
        # sequential sum a[i,0]*b[0,j] + a[i,1]*b[1,j] + ...
        left, right = self._data, other._data
        out = np.zeros((self.rows, other.cols), dtype=np.float64)
        for k in range(self.cols):
            out += left[:, k : k + 1] * right[k : k + 1, :]
        return Matrix._wrap(out)

    def __matmul__(self, other: Any) -> "Matrix":
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.dot(other)

    # ------------------------------------------------------------------
    # Reductions

    def max(self) -> float:
        if self._data.size == 0:
            raise ValueError("max() of an empty matrix")
        return float(np.max(self._data))

    def sum(self) -> float:
        return float(np.sum(self._data))

    def has_nan(self) -> bool:
        return bool(np.isnan(self._data).any())

    # ------------------------------------------------------------------
    # Copies, comparison and conversion

    def copy(self) -> "Matrix":
        return Matrix._wrap(self._data.copy())

    __copy__ = copy

    def __deepcopy__(self, memo: dict) -> "Matrix":
        return self.copy()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Matrix):
            return NotImplemented
        return self.shape == other.shape and bool(np.array_equal(self._data, other._data))

    __hash__ = None  # type: ignore[assignment]

    def allclose(self, other: "Matrix", *, rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        return self.shape == other.shape and bool(
            np.allclose(self._data, other._data, rtol=rtol, atol=atol)
        )

    def to_array(self) -> np.ndarray:
        return self._data.copy()

    def to_list(self) -> List[List[float]]:
        return self._data.tolist()

    def __array__(self, dtype=None, copy=None) -> np.ndarray:
        array = self._data.copy()
        return array if dtype is None else array.astype(dtype)

    def __repr__(self) -> str:
        return f"Matrix({self.rows}x{self.cols}, {self._data.tolist()!r})"


def dot(left: Matrix, right: Matrix) -> Matrix:
    """Functional form of :meth:`Matrix.dot`."""

    return left.dot(right)


def transpose(matrix: Matrix) -> Matrix:
    return matrix.transpose()


def _shape_of(array: np.ndarray) -> Tuple[int, int]:
    if array.ndim == 2:
        return (int(array.shape[0]), int(array.shape[1]))
    return (int(array.size), 1)


__all__ = ["Matrix", "dot", "transpose"]
