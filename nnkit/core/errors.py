"""Error taxonomy for nnkit."""

from __future__ import annotations

from typing import Tuple

Shape = Tuple[int, int]


class NNKitError(Exception):
    """Base class for every error raised by nnkit."""


class DimensionMismatch(NNKitError, ValueError):
    """Raised when two matrices have incompatible shapes for an operation."""

    def __init__(self, operation: str, left: Shape, right: Shape) -> None:
        self.operation = operation
        self.left = tuple(left)
        self.right = tuple(right)
        super().__init__(
            f"{operation}: incompatible shapes "
            f"{self.left[0]}x{self.left[1]} and {self.right[0]}x{self.right[1]}"
        )


class ShapeMismatch(DimensionMismatch):
    """Network input or target shape disagrees with the architecture."""


class UnknownFunctionName(NNKitError, ValueError):
    """Raised for an activation, loss, optimizer or initialiser name nnkit does not know."""

    def __init__(self, kind: str, name: str, available: list[str] | None = None) -> None:
        self.kind = kind
        self.name = name
        self.available = list(available or [])
        message = f"Unknown {kind} function {name!r}"
        if self.available:
            message += f". Available: {', '.join(self.available)}"
        super().__init__(message)


class UnsupportedPairing(NNKitError, ValueError):
    """Softmax output activation combined with a loss other than cross-entropy."""


class EmptyNetwork(NNKitError, RuntimeError):
    """Operation attempted on a network without layers."""


class CorruptStream(NNKitError, ValueError):
    """Persisted network data is malformed, truncated or of an unknown layout."""


class DivisionByZero(NNKitError, ZeroDivisionError):
    """A scalar divisor, or any element of a divisor matrix, is exactly zero."""


__all__ = [
    "NNKitError",
    "DimensionMismatch",
    "ShapeMismatch",
    "UnknownFunctionName",
    "UnsupportedPairing",
    "EmptyNetwork",
    "CorruptStream",
    "DivisionByZero",
]
