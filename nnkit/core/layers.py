"""Layer variants composing an nnkit network.

The set of layers is closed: every layer carries a :class:`LayerKind`
discriminant, implements the same evaluate/forward/backward/persist
contract, and is decoded by :func:`restore_layer` through a table keyed by
that discriminant.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import ClassVar, Dict, List, Protocol, Sequence

from .activations import ActivationFunction
from .codec import BinaryReader, BinaryWriter
from .errors import CorruptStream, DimensionMismatch
from .matrix import Matrix
from .types import LayerDescription


class LayerKind(Enum):
    """Layer discriminant; values are the persisted type tags."""

    DENSE = "Dense"
    ACTIVATION = "Activation"


class Layer(Protocol):
    """Contract implemented by every layer variant."""

    kind: ClassVar[LayerKind]
    params: List[Matrix]
    grads: List[Matrix]

    @property
    def in_count(self) -> int:
        """Rows of the column this layer consumes."""

    @property
    def out_count(self) -> int:
        """Rows of the column this layer produces."""

    def evaluate(self, x: Matrix) -> Matrix:
        """Return the output for ``x`` without touching any state."""

    def forward(self, x: Matrix) -> Matrix:
        """Return the output for ``x`` and remember what backward needs."""

    def backward(self, dy: Matrix) -> Matrix:
        """Store parameter gradients and return the gradient for the previous layer."""

    def persist(self, writer: BinaryWriter) -> None:
        """Write the type tag, shape metadata and parameter values."""

    def describe(self) -> LayerDescription:
        """Structural summary."""


@dataclass(eq=False)
class DenseLayer:
    """Affine transform ``y = W x + B`` with ``W`` of shape ``out x in``."""

    kind: ClassVar[LayerKind] = LayerKind.DENSE

    inputs: int
    outputs: int
    params: List[Matrix] = field(init=False, repr=False)
    grads: List[Matrix] = field(init=False, repr=False)
    last_input: Matrix | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.inputs = int(self.inputs)
        self.outputs = int(self.outputs)
        if self.inputs <= 0 or self.outputs <= 0:
            raise ValueError(
                f"Dense layer needs positive sizes, got {self.inputs} -> {self.outputs}"
            )
        self.params = [Matrix(self.outputs, self.inputs), Matrix(self.outputs, 1)]
        self.grads = [Matrix(self.outputs, self.inputs), Matrix(self.outputs, 1)]

    @property
    def in_count(self) -> int:
        return self.inputs

    @property
    def out_count(self) -> int:
        return self.outputs

    @property
    def weights(self) -> Matrix:
        return self.params[0]

    @weights.setter
    def weights(self, value: Matrix) -> None:
        self.set_params([value, self.params[1]])

    @property
    def biases(self) -> Matrix:
        return self.params[1]

    @biases.setter
    def biases(self, value: Matrix) -> None:
        self.set_params([self.params[0], value])

    def set_params(self, params: Sequence[Matrix]) -> None:
        """Replace weights and biases with copies of ``params`` after a shape check."""

        if len(params) != 2:
            raise ValueError(f"Dense layer has 2 parameters, got {len(params)}")
        for current, new in zip(self.params, params):
            if current.shape != new.shape:
                raise DimensionMismatch("dense parameter", new.shape, current.shape)
        self.params = [params[0].copy(), params[1].copy()]

    def evaluate(self, x: Matrix) -> Matrix:
        return self.weights.dot(x) + self.biases

    def forward(self, x: Matrix) -> Matrix:
        self.last_input = x.copy()
        return self.evaluate(x)

    def backward(self, dy: Matrix) -> Matrix:
        self.grads[0] = dy.dot(self.last_input.transpose())
        self.grads[1] = dy.copy()
        return self.weights.transpose().dot(dy)

    def persist(self, writer: BinaryWriter) -> None:
        writer.write_str(self.kind.value)
        writer.write_int32(self.inputs)
        writer.write_int32(self.outputs)
        for param in self.params:
            writer.write_matrix(param)

    @classmethod
    def restore(cls, reader: BinaryReader) -> "DenseLayer":
        inputs = reader.read_count("dense input count")
        outputs = reader.read_count("dense output count")
        weights = reader.read_matrix(outputs, inputs, "dense weights")
        biases = reader.read_matrix(outputs, 1, "dense biases")
        layer = cls(inputs, outputs)
        layer.params = [weights, biases]
        return layer

    def describe(self) -> LayerDescription:
        return LayerDescription(
            kind=self.kind.value,
            in_count=self.inputs,
            out_count=self.outputs,
            parameters=self.outputs * self.inputs + self.outputs,
        )


@dataclass(eq=False)
class ActivationLayer:
    """Elementwise nonlinearity over ``count`` neurons (softmax over all of them)."""

    kind: ClassVar[LayerKind] = LayerKind.ACTIVATION

    count: int
    function: ActivationFunction
    params: List[Matrix] = field(default_factory=list, init=False, repr=False)
    grads: List[Matrix] = field(default_factory=list, init=False, repr=False)
    last_output: Matrix | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        self.count = int(self.count)
        if self.count <= 0:
            raise ValueError(f"Activation layer needs a positive size, got {self.count}")
        self.function = ActivationFunction.from_name(self.function)

    @property
    def in_count(self) -> int:
        return self.count

    @property
    def out_count(self) -> int:
        return self.count

    def evaluate(self, x: Matrix) -> Matrix:
        if x.rows != self.count:
            raise DimensionMismatch("activation", x.shape, (self.count, x.cols))
        return self.function.apply(x)

    def forward(self, x: Matrix) -> Matrix:
        self.last_output = self.evaluate(x)
        return self.last_output.copy()

    def backward(self, dy: Matrix) -> Matrix:
        return self.function.backward(self.last_output, dy)

    def persist(self, writer: BinaryWriter) -> None:
        writer.write_str(self.kind.value)
        writer.write_int32(self.count)
        writer.write_str(self.function.value)

    @classmethod
    def restore(cls, reader: BinaryReader) -> "ActivationLayer":
        count = reader.read_count("activation neuron count")
        name = reader.read_str("activation function name")
        return cls(count, ActivationFunction.from_name(name))

    def describe(self) -> LayerDescription:
        return LayerDescription(
            kind=self.kind.value,
            in_count=self.count,
            out_count=self.count,
            function=self.function.value,
        )


_LAYER_TYPES: Dict[LayerKind, type] = {
    LayerKind.DENSE: DenseLayer,
    LayerKind.ACTIVATION: ActivationLayer,
}


def restore_layer(reader: BinaryReader) -> Layer:
    """Decode one layer, starting at its type tag."""

    tag = reader.read_str("layer type tag")
    try:
        kind = LayerKind(tag)
    except ValueError:
        known = ", ".join(k.value for k in LayerKind)
        raise CorruptStream(f"Unknown layer type {tag!r} (expected one of: {known})") from None
    return _LAYER_TYPES[kind].restore(reader)


__all__ = [
    "ActivationLayer",
    "DenseLayer",
    "Layer",
    "LayerKind",
    "restore_layer",
]
