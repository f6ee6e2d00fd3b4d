"""Core typing contracts for nnkit."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

import numpy as np

from .errors import DimensionMismatch
from .matrix import Matrix

Array = np.ndarray
ParameterGroups = List[List[Matrix]]


@dataclass(frozen=True)
class Sample:
    """A single (input, target) training pair of column matrices."""

    inputs: Matrix
    targets: Matrix

    @classmethod
    def of(cls, inputs: Any, targets: Any) -> "Sample":
        """Build a sample, turning flat sequences into column matrices."""

        return cls(inputs=_as_column(inputs), targets=_as_column(targets))


def _as_column(value: Any) -> Matrix:
    if isinstance(value, Matrix):
        return value
    array = np.asarray(value, dtype=np.float64)
    if array.ndim == 2:
        return Matrix.from_array(array)
    return Matrix.from_vector(array.reshape(-1))


def as_sample(item: Any) -> Sample:
    if isinstance(item, Sample):
        return item
    inputs, targets = item
    return Sample.of(inputs, targets)


@dataclass
class AveragedGradients:
    """Per-layer parameter gradients averaged over a chunk of samples."""

    grads: ParameterGroups
    loss: float
    count: int


@dataclass
class MomentBuffers:
    """Optimizer moment state shaped like the network parameters.

    ``velocity`` belongs to momentum, ``first_moment``/``second_moment`` to
    Adam.  Each is a list (one entry per layer) of lists (one entry per
    parameter of that layer).
    """

    velocity: ParameterGroups
    first_moment: ParameterGroups
    second_moment: ParameterGroups

    @classmethod
    def zeros_like(cls, params: Sequence[Sequence[Matrix]]) -> "MomentBuffers":
        def _zeros() -> ParameterGroups:
            return [[Matrix.zeros_like(p) for p in layer] for layer in params]

        return cls(velocity=_zeros(), first_moment=_zeros(), second_moment=_zeros())

    def groups(self) -> Tuple[ParameterGroups, ParameterGroups, ParameterGroups]:
        """The three buffers in their persisted order."""

        return (self.velocity, self.first_moment, self.second_moment)

    def check_matches(self, params: Sequence[Sequence[Matrix]]) -> None:
        expected = [[p.shape for p in layer] for layer in params]
        for name, group in zip(("velocity", "first_moment", "second_moment"), self.groups()):
            actual = [[m.shape for m in layer] for layer in group]
            if actual == expected:
                continue
            if len(actual) != len(expected):
                raise DimensionMismatch(
                    f"moment buffer {name} layer count", (len(actual), 1), (len(expected), 1)
                )
            for idx, (got, want) in enumerate(zip(actual, expected)):
                if len(got) != len(want):
                    raise DimensionMismatch(
                        f"moment buffer {name}[{idx}] parameter count", (len(got), 1), (len(want), 1)
                    )
                for got_shape, want_shape in zip(got, want):
                    if got_shape != want_shape:
                        raise DimensionMismatch(f"moment buffer {name}[{idx}]", got_shape, want_shape)

    def copy(self) -> "MomentBuffers":
        def _copy(group: ParameterGroups) -> ParameterGroups:
            return [[m.copy() for m in layer] for layer in group]

        return MomentBuffers(
            velocity=_copy(self.velocity),
            first_moment=_copy(self.first_moment),
            second_moment=_copy(self.second_moment),
        )


@dataclass(frozen=True)
class LayerDescription:
    """Structural summary of one layer."""

    kind: str
    in_count: int
    out_count: int
    function: str | None = None
    parameters: int = 0


@dataclass(frozen=True)
class ModelDescription:
    """Description of a network's architecture and training progress."""

    layers: List[LayerDescription]
    loss: str
    iterations_trained: int = 0
    epochs_trained: int = 0
    has_training_state: bool = False

    @property
    def parameter_count(self) -> int:
        return sum(layer.parameters for layer in self.layers)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["parameter_count"] = self.parameter_count
        return payload


@dataclass(frozen=True)
class RunResult:
    """Summary returned by :meth:`nnkit.training.trainer.Trainer.train`."""

    steps: int
    epochs: int
    final_loss: float
    metrics_path: str = ""
    manifest_path: str = ""
    summary_path: str = ""
    network_path: str = ""
    history: List[float] = field(default_factory=list, repr=False)


__all__ = [
    "Array",
    "AveragedGradients",
    "LayerDescription",
    "ModelDescription",
    "MomentBuffers",
    "ParameterGroups",
    "RunResult",
    "Sample",
    "as_sample",
]
