"""nnkit public API."""

from .core import activations, inits, losses, types  # noqa: F401
from .core.activations import ActivationFunction
from .core.errors import (
    CorruptStream,
    DimensionMismatch,
    DivisionByZero,
    EmptyNetwork,
    NNKitError,
    ShapeMismatch,
    UnknownFunctionName,
    UnsupportedPairing,
)
from .core.layers import ActivationLayer, DenseLayer, LayerKind
from .core.losses import LossFunction
from .core.matrix import Matrix, dot, transpose
from .core.network import Network
from .core.types import RunResult, Sample
from .training.metrics import evaluate
from .training.optimizers import (
    Hyperparameters,
    OptimizerKind,
    adam_step,
    gradient_descent_step,
    momentum_step,
)
from .training.pipelines import load_preset, presets, run_pipeline
from .training.trainer import Trainer

__all__ = [
    "ActivationFunction",
    "ActivationLayer",
    "CorruptStream",
    "DenseLayer",
    "DimensionMismatch",
    "DivisionByZero",
    "EmptyNetwork",
    "Hyperparameters",
    "LayerKind",
    "LossFunction",
    "Matrix",
    "NNKitError",
    "Network",
    "OptimizerKind",
    "RunResult",
    "Sample",
    "ShapeMismatch",
    "Trainer",
    "UnknownFunctionName",
    "UnsupportedPairing",
    "activations",
    "adam_step",
    "dot",
    "evaluate",
    "gradient_descent_step",
    "inits",
    "load_preset",
    "losses",
    "momentum_step",
    "presets",
    "run_pipeline",
    "transpose",
    "types",
]
