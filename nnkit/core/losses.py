"""Loss registry used by networks and the trainer."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Iterable

import numpy as np

from .errors import DimensionMismatch, UnknownFunctionName
from .matrix import Matrix

# Guards log(0) and division by zero in cross-entropy.
CCE_EPSILON = 1e-12

LossFn = Callable[[Matrix, Matrix], float]
LossGrad = Callable[[Matrix, Matrix], Matrix]


class LossFunction(Enum):
    """Closed set of losses; values are the persisted names."""

    MSE = "mse"
    CCE = "cce"


@dataclass(frozen=True)
class Loss:
    """Loss wrapper exposing the scalar loss and dL/dpredicted."""

    kind: LossFunction
    fn: LossFn
    grad: LossGrad

    @property
    def name(self) -> str:
        return self.kind.value

    def __call__(self, predicted: Matrix, target: Matrix) -> float:
        _check_shapes(predicted, target)
        return self.fn(predicted, target)

    def derivative(self, predicted: Matrix, target: Matrix) -> Matrix:
        _check_shapes(predicted, target)
        return self.grad(predicted, target)


class LossRegistry:
    """Central registry for loss functions."""

    def __init__(self) -> None:
        self._registry: Dict[LossFunction, Loss] = {}

    def register(self, kind: LossFunction, fn: LossFn, grad: LossGrad) -> None:
        self._registry[kind] = Loss(kind, fn, grad)

    def get(self, name: str | LossFunction) -> Loss:
        if isinstance(name, Loss):
            return name
        if not isinstance(name, LossFunction):
            try:
                name = LossFunction(str(name))
            except ValueError:
                raise UnknownFunctionName("loss", str(name), list(self.names())) from None
        try:
            return self._registry[name]
        except KeyError:  # pragma: no cover - every enum member is registered below
            raise UnknownFunctionName("loss", name.value, list(self.names())) from None

    def names(self) -> Iterable[str]:
        return sorted(kind.value for kind in self._registry)


def _check_shapes(predicted: Matrix, target: Matrix) -> None:
    if predicted.shape != target.shape:
        raise DimensionMismatch("loss", predicted.shape, target.shape)


def mse(predicted: Matrix, target: Matrix) -> float:
    """``sum((p - r)^2) / n`` where ``n`` is the length of the output column."""

    diff = predicted.to_array() - target.to_array()
    return float(np.sum(np.square(diff)) / target.rows)


def mse_derivative(predicted: Matrix, target: Matrix) -> Matrix:
    return (predicted - target) * (2.0 / target.rows)


def cce(predicted: Matrix, target: Matrix) -> float:
    """``-sum(r * log(p + eps))``."""

    return float(-np.sum(target.to_array() * np.log(predicted.to_array() + CCE_EPSILON)))


def cce_derivative(predicted: Matrix, target: Matrix) -> Matrix:
    return -target / (predicted + CCE_EPSILON)


REGISTRY = LossRegistry()
REGISTRY.register(LossFunction.MSE, mse, mse_derivative)
REGISTRY.register(LossFunction.CCE, cce, cce_derivative)


def get_loss(name: str | LossFunction) -> Loss:
    return REGISTRY.get(name)


__all__ = [
    "CCE_EPSILON",
    "Loss",
    "LossFunction",
    "LossRegistry",
    "REGISTRY",
    "get_loss",
    "mse",
    "mse_derivative",
    "cce",
    "cce_derivative",
]
