"""Gradient-based parameter update rules.

Each step consumes gradients averaged by
:meth:`nnkit.core.network.Network.average_gradients` and updates the
network's parameters (and, for momentum and Adam, its moment buffers) in
place.  Steps never touch the trained-progress counters; the trainer
advances those after a step completes.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Sequence

from ..core.errors import DimensionMismatch, UnknownFunctionName
from ..core.matrix import Matrix
from ..core.network import Network


class OptimizerKind(Enum):
    GRADIENT_DESCENT = "gradient_descent"
    MOMENTUM = "momentum"
    ADAM = "adam"

    @classmethod
    def from_name(cls, name: str | OptimizerKind) -> OptimizerKind:
        if isinstance(name, OptimizerKind):
            return name
        try:
            return cls(str(name))
        except ValueError:
            raise UnknownFunctionName("optimizer", str(name), [k.value for k in cls]) from None


@dataclass
class Hyperparameters:
    """Optimizer hyperparameters.

    ``learning_rate`` is used by every optimizer, ``beta`` by momentum, and
    ``beta1``/``beta2``/``epsilon`` by Adam.
    """

    learning_rate: float = 0.001
    beta: float = 0.9
    beta1: float = 0.9
    beta2: float = 0.999
    epsilon: float = 1e-8


Gradients = Sequence[Sequence[Matrix]]
StepFn = Callable[[Network, Gradients, Hyperparameters], None]


def _check_gradients(network: Network, grads: Gradients) -> None:
    if len(grads) != len(network.layers):
        raise DimensionMismatch(
            "gradient layer count", (len(grads), 1), (len(network.layers), 1)
        )
    for layer, layer_grads in zip(network.layers, grads):
        if len(layer_grads) != len(layer.params):
            raise DimensionMismatch(
                "gradient parameter count", (len(layer_grads), 1), (len(layer.params), 1)
            )
        for param, grad in zip(layer.params, layer_grads):
            if param.shape != grad.shape:
                raise DimensionMismatch("gradient", grad.shape, param.shape)


def gradient_descent_step(network: Network, grads: Gradients, hp: Hyperparameters) -> None:
    """``theta <- theta - lr * g``."""

    _check_gradients(network, grads)
    for layer, layer_grads in zip(network.layers, grads):
        for idx, grad in enumerate(layer_grads):
            layer.params[idx] = layer.params[idx] - grad * hp.learning_rate


def momentum_step(network: Network, grads: Gradients, hp: Hyperparameters) -> None:
    """``v <- beta v + (1 - beta) g``; ``theta <- theta - lr * v``."""

    _check_gradients(network, grads)
    velocity = network.ensure_moments().velocity
    for layer, layer_grads, layer_v in zip(network.layers, grads, velocity):
        for idx, grad in enumerate(layer_grads):
            layer_v[idx] = layer_v[idx] * hp.beta + grad * (1.0 - hp.beta)
            layer.params[idx] = layer.params[idx] - layer_v[idx] * hp.learning_rate


def adam_step(network: Network, grads: Gradients, hp: Hyperparameters) -> None:
    """Adam with bias correction at ``t = iterations_trained + 1``.

    ``m <- b1 m + (1 - b1) g``, ``v <- b2 v + (1 - b2) g^2``,
    ``theta <- theta - lr * (m / c1) / (sqrt(v / c2) + eps)`` with
    ``c = 1 - b^t``.
    """

    _check_gradients(network, grads)
    moments = network.ensure_moments()
    t = network.iterations_trained + 1
    c1 = 1.0 - hp.beta1**t
    c2 = 1.0 - hp.beta2**t
    for layer, layer_grads, layer_m, layer_v in zip(
        network.layers, grads, moments.first_moment, moments.second_moment
    ):
        for idx, grad in enumerate(layer_grads):
            layer_m[idx] = layer_m[idx] * hp.beta1 + grad * (1.0 - hp.beta1)
            layer_v[idx] = layer_v[idx] * hp.beta2 + (grad**2) * (1.0 - hp.beta2)
            m_hat = layer_m[idx] / c1
            v_hat = layer_v[idx] / c2
            update = m_hat / (v_hat**0.5 + hp.epsilon)
            layer.params[idx] = layer.params[idx] - update * hp.learning_rate


STEPS: Dict[OptimizerKind, StepFn] = {
    OptimizerKind.GRADIENT_DESCENT: gradient_descent_step,
    OptimizerKind.MOMENTUM: momentum_step,
    OptimizerKind.ADAM: adam_step,
}


def get_step(kind: str | OptimizerKind) -> StepFn:
    return STEPS[OptimizerKind.from_name(kind)]


__all__ = [
    "Hyperparameters",
    "OptimizerKind",
    "STEPS",
    "adam_step",
    "get_step",
    "gradient_descent_step",
    "momentum_step",
]
