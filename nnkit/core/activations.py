"""Activation functions for nnkit.

Derivatives are expressed in terms of the activation *output* ``y``
(``sigmoid'(x) = y(1 - y)``, ``tanh'(x) = 1 - y^2``), so an activation layer
only needs to remember what it produced.  Softmax has no elementwise
derivative; :func:`softmax_backward` fuses its Jacobian with the upstream
gradient instead.
"""

from __future__ import annotations

from enum import Enum

import numpy as np

from .errors import DimensionMismatch, UnknownFunctionName
from .matrix import Matrix


class ActivationFunction(Enum):
    """Closed set of activation functions; values are the persisted names."""

    SIGMOID = "sigmoid"
    RELU = "relu"
    TANH = "tanh"
    SOFTMAX = "softmax"

    @classmethod
    def from_name(cls, name: str | ActivationFunction) -> "ActivationFunction":
        if isinstance(name, ActivationFunction):
            return name
        try:
            return cls(str(name))
        except ValueError:
            raise UnknownFunctionName(
                "activation", str(name), [fn.value for fn in cls]
            ) from None

    def apply(self, x: Matrix) -> Matrix:
        return _FORWARD[self](x)

    def derivative(self, y: Matrix) -> Matrix:
        """Return ``f'`` evaluated from the post-activation output ``y``."""

        if self is ActivationFunction.SOFTMAX:
            raise TypeError("softmax has no elementwise derivative; use softmax_backward")
        return _DERIVATIVE[self](y)

    def backward(self, y: Matrix, dy: Matrix) -> Matrix:
        """Gradient with respect to the activation input given output ``y``."""

        if self is ActivationFunction.SOFTMAX:
            return softmax_backward(y, dy)
        return self.derivative(y) * dy


def _sigmoid(z: np.ndarray) -> np.ndarray:
    with np.errstate(over="ignore"):
        return 1.0 / (1.0 + np.exp(-z))


def sigmoid(x: Matrix) -> Matrix:
    return x.map(_sigmoid)


def sigmoid_derivative(y: Matrix) -> Matrix:
    return y * (1.0 - y)


def relu(x: Matrix) -> Matrix:
    return x.map(lambda z: np.maximum(z, 0.0))


def relu_derivative(y: Matrix) -> Matrix:
    return y.map(lambda z: (z > 0.0).astype(np.float64))


def tanh(x: Matrix) -> Matrix:
    return x.map(np.tanh)


def tanh_derivative(y: Matrix) -> Matrix:
    return 1.0 - y * y


def _softmax(z: np.ndarray) -> np.ndarray:
    exp = np.exp(z - np.max(z))
    return exp / np.sum(exp)


def softmax(x: Matrix) -> Matrix:
    """Softmax over every element of ``x``, shifted by the maximum for stability."""

    return x.map(_softmax)


def softmax_backward(y: Matrix, dy: Matrix) -> Matrix:
    """Jacobian-free softmax gradient ``y * (dy - y^T dy)``.

    ``y^T dy`` is taken per column, which is the plain dot product for the
    column vectors a network passes around.
    """

    if y.shape != dy.shape:
        raise DimensionMismatch("softmax backward", y.shape, dy.shape)
    y_arr = y.to_array()
    dy_arr = dy.to_array()
    projection = np.sum(y_arr * dy_arr, axis=0, keepdims=True)
    return Matrix.from_array(y_arr * (dy_arr - projection))


_FORWARD = {
    ActivationFunction.SIGMOID: sigmoid,
    ActivationFunction.RELU: relu,
    ActivationFunction.TANH: tanh,
    ActivationFunction.SOFTMAX: softmax,
}

_DERIVATIVE = {
    ActivationFunction.SIGMOID: sigmoid_derivative,
    ActivationFunction.RELU: relu_derivative,
    ActivationFunction.TANH: tanh_derivative,
}


__all__ = [
    "ActivationFunction",
    "sigmoid",
    "sigmoid_derivative",
    "relu",
    "relu_derivative",
    "tanh",
    "tanh_derivative",
    "softmax",
    "softmax_backward",
]
