"""Weight and bias initialisers.

Weight initialisers draw every Dense layer's ``W`` (shape ``out x in``) from
the given generator; bias initialisers fill ``B``.  Both reset the
network's trained-progress counters and drop stale optimizer moments, since
the parameters no longer correspond to any training history.
"""

from __future__ import annotations

from typing import Callable, Dict

import numpy as np

from .errors import UnknownFunctionName
from .layers import DenseLayer
from .matrix import Matrix
from .network import Network

WeightInit = Callable[..., Network]


def _generator(rng: np.random.Generator | None, seed: int | None) -> np.random.Generator:
    if rng is not None:
        return rng
    return np.random.default_rng(seed)


def _reset_progress(network: Network) -> None:
    network.iterations_trained = 0
    network.epochs_trained = 0
    network.moments = None


def _init_weights(network: Network, draw: Callable[[int, int], np.ndarray]) -> Network:
    for layer in network.layers:
        if isinstance(layer, DenseLayer):
            values = draw(layer.in_count, layer.out_count)
            layer.weights = Matrix.from_array(values)
    _reset_progress(network)
    return network


def xavier_uniform(
    network: Network, rng: np.random.Generator | None = None, *, seed: int | None = None
) -> Network:
    """``W ~ U(-sqrt(6/(in+out)), sqrt(6/(in+out)))``."""

    gen = _generator(rng, seed)

    def draw(fan_in: int, fan_out: int) -> np.ndarray:
        limit = np.sqrt(6.0 / (fan_in + fan_out))
        return gen.uniform(-limit, limit, size=(fan_out, fan_in))

    return _init_weights(network, draw)


def xavier_normal(
    network: Network, rng: np.random.Generator | None = None, *, seed: int | None = None
) -> Network:
    """``W ~ N(0, sqrt(2/(in+out)))``."""

    gen = _generator(rng, seed)

    def draw(fan_in: int, fan_out: int) -> np.ndarray:
        return gen.normal(0.0, np.sqrt(2.0 / (fan_in + fan_out)), size=(fan_out, fan_in))

    return _init_weights(network, draw)


def he_uniform(
    network: Network, rng: np.random.Generator | None = None, *, seed: int | None = None
) -> Network:
    """``W ~ U(-sqrt(6/in), sqrt(6/in))``."""

    gen = _generator(rng, seed)

    def draw(fan_in: int, fan_out: int) -> np.ndarray:
        limit = np.sqrt(6.0 / fan_in)
        return gen.uniform(-limit, limit, size=(fan_out, fan_in))

    return _init_weights(network, draw)


def he_normal(
    network: Network, rng: np.random.Generator | None = None, *, seed: int | None = None
) -> Network:
    """``W ~ N(0, sqrt(2/in))``."""

    gen = _generator(rng, seed)

    def draw(fan_in: int, fan_out: int) -> np.ndarray:
        return gen.normal(0.0, np.sqrt(2.0 / fan_in), size=(fan_out, fan_in))

    return _init_weights(network, draw)


def constant_bias(network: Network, value: float) -> Network:
    for layer in network.layers:
        if isinstance(layer, DenseLayer):
            layer.biases = Matrix(layer.out_count, 1, fill=value)
    _reset_progress(network)
    return network


def zero_bias(network: Network) -> Network:
    return constant_bias(network, 0.0)


INITIALISERS: Dict[str, WeightInit] = {
    "xavier_uniform": xavier_uniform,
    "xavier_normal": xavier_normal,
    "he_uniform": he_uniform,
    "he_normal": he_normal,
}


def get_initialiser(name: str) -> WeightInit:
    try:
        return INITIALISERS[name]
    except KeyError:
        raise UnknownFunctionName("initialiser", name, sorted(INITIALISERS)) from None


__all__ = [
    "INITIALISERS",
    "constant_bias",
    "get_initialiser",
    "he_normal",
    "he_uniform",
    "xavier_normal",
    "xavier_uniform",
    "zero_bias",
]
