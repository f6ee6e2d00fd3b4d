"""Core numerical primitives for nnkit."""

from . import activations, codec, errors, inits, layers, losses, matrix, network, types

__all__ = [
    "activations",
    "codec",
    "errors",
    "inits",
    "layers",
    "losses",
    "matrix",
    "network",
    "types",
]
