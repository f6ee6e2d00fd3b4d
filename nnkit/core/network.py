"""Sequential network of nnkit layers."""

from __future__ import annotations

import io
import logging
from typing import BinaryIO, Iterable, List, Sequence

from .activations import ActivationFunction
from .codec import BinaryReader, BinaryWriter
from .errors import (
    CorruptStream,
    DimensionMismatch,
    EmptyNetwork,
    ShapeMismatch,
    UnsupportedPairing,
)
from .layers import ActivationLayer, DenseLayer, Layer, restore_layer
from .losses import Loss, LossFunction, get_loss
from .matrix import Matrix
from .types import AveragedGradients, ModelDescription, MomentBuffers, ParameterGroups, Sample, as_sample

logger = logging.getLogger(__name__)


class Network:
    """Ordered stack of layers with a loss function and training progress.

    ``iterations_trained`` and ``epochs_trained`` are persisted state and are
    only advanced by the trainer.  ``moments`` holds optional optimizer
    state shaped like :meth:`parameters`.
    """

    def __init__(
        self,
        layers: Iterable[Layer] | None = None,
        loss: str | LossFunction = LossFunction.MSE,
    ) -> None:
        self.layers: List[Layer] = []
        self.loss: Loss = get_loss(loss)
        self.iterations_trained = 0
        self.epochs_trained = 0
        self.moments: MomentBuffers | None = None
        for layer in layers or []:
            self.add(layer)

    # ------------------------------------------------------------------
    # Construction

    @classmethod
    def from_sizes(
        cls,
        sizes: Sequence[int],
        *,
        hidden: str | ActivationFunction = ActivationFunction.SIGMOID,
        output: str | ActivationFunction = ActivationFunction.SIGMOID,
        loss: str | LossFunction = LossFunction.MSE,
    ) -> "Network":
        """Build Dense+Activation pairs for consecutive entries of ``sizes``."""

        if len(sizes) < 2:
            raise ValueError(f"Need at least an input and an output size, got {list(sizes)}")
        hidden_fn = ActivationFunction.from_name(hidden)
        output_fn = ActivationFunction.from_name(output)
        network = cls(loss=loss)
        last = len(sizes) - 2
        for idx, (n_in, n_out) in enumerate(zip(sizes[:-1], sizes[1:])):
            network.add(DenseLayer(n_in, n_out))
            network.add(ActivationLayer(n_out, output_fn if idx == last else hidden_fn))
        return network

    def add(self, layer: Layer) -> "Network":
        if self.layers and self.layers[-1].out_count != layer.in_count:
            raise DimensionMismatch(
                "add layer",
                (self.layers[-1].out_count, 1),
                (layer.in_count, 1),
            )
        self.layers.append(layer)
        self.moments = None
        return self

    def set_loss(self, loss: str | LossFunction) -> None:
        self.loss = get_loss(loss)

    @property
    def input_count(self) -> int:
        self._require_layers()
        return self.layers[0].in_count

    @property
    def output_count(self) -> int:
        self._require_layers()
        return self.layers[-1].out_count

    def parameters(self) -> ParameterGroups:
        """Per-layer lists of the live parameter matrices."""

        return [list(layer.params) for layer in self.layers]

    def gradients(self) -> ParameterGroups:
        return [list(layer.grads) for layer in self.layers]

    def parameter_count(self) -> int:
        return int(sum(p.size for layer in self.layers for p in layer.params))

    def describe(self) -> ModelDescription:
        return ModelDescription(
            layers=[layer.describe() for layer in self.layers],
            loss=self.loss.name,
            iterations_trained=self.iterations_trained,
            epochs_trained=self.epochs_trained,
            has_training_state=self.moments is not None,
        )

    def ensure_moments(self) -> MomentBuffers:
        """Return the moment buffers, creating zeroed ones on first use."""

        if self.moments is None:
            self.moments = MomentBuffers.zeros_like(self.parameters())
        return self.moments

    def set_moments(self, moments: MomentBuffers | None) -> None:
        if moments is not None:
            moments.check_matches(self.parameters())
        self.moments = moments

    # ------------------------------------------------------------------
    # Validation helpers

    def _require_layers(self) -> None:
        if not self.layers:
            raise EmptyNetwork("The network has no layers")

    def _check_input(self, x: Matrix) -> None:
        self._require_layers()
        expected = (self.layers[0].in_count, 1)
        if x.shape != expected:
            raise ShapeMismatch("network input", x.shape, expected)

    def _check_target(self, target: Matrix) -> None:
        expected = (self.layers[-1].out_count, 1)
        if target.shape != expected:
            raise ShapeMismatch("network target", target.shape, expected)

    def _softmax_output(self) -> bool:
        last = self.layers[-1]
        return isinstance(last, ActivationLayer) and last.function is ActivationFunction.SOFTMAX

    def validate(self) -> None:
        """Fail early on configurations that can never train."""

        self._require_layers()
        if self._softmax_output() and self.loss.kind is not LossFunction.CCE:
            raise UnsupportedPairing(
                f"Softmax output requires the 'cce' loss, network uses {self.loss.name!r}"
            )

    # ------------------------------------------------------------------
    # Propagation

    def run(self, x: Matrix) -> Matrix:
        """Inference only: no layer state is recorded."""

        self._check_input(x)
        for layer in self.layers:
            x = layer.evaluate(x)
        return x

    def forward_propagation(self, x: Matrix) -> Matrix:
        self._check_input(x)
        for layer in self.layers:
            x = layer.forward(x)
        return x

    def loss_value(self, predicted: Matrix, target: Matrix) -> float:
        return self.loss(predicted, target)

    def output_gradient(self, predicted: Matrix, target: Matrix) -> tuple[Matrix, int]:
        """Gradient that starts the backward sweep and the layer index it enters.

        For a softmax output trained with cross-entropy the softmax layer is
        skipped and the sweep starts below it with ``predicted - target``.
        """

        self._require_layers()
        self._check_target(target)
        last = len(self.layers) - 1
        if self._softmax_output():
            if self.loss.kind is not LossFunction.CCE:
                raise UnsupportedPairing(
                    f"Softmax output requires the 'cce' loss, network uses {self.loss.name!r}"
                )
            return predicted - target, last - 1
        return self.loss.derivative(predicted, target), last

    def backward_propagation(self, predicted: Matrix, target: Matrix) -> Matrix:
        """Fold ``backward`` from the output to the first layer.

        Must follow a :meth:`forward_propagation` call whose output is
        ``predicted``.  Returns the gradient with respect to the network input.
        """

        grad, start = self.output_gradient(predicted, target)
        for idx in range(start, -1, -1):
            grad = self.layers[idx].backward(grad)
        return grad

    def average_gradients(self, samples: Iterable[Sample | tuple]) -> AveragedGradients:
        """Mean parameter gradients (and mean loss) over ``samples``."""

        self._require_layers()
        batch = [as_sample(item) for item in samples]
        if not batch:
            raise ValueError("average_gradients needs at least one sample")
        totals: ParameterGroups = [
            [Matrix.zeros_like(p) for p in layer.params] for layer in self.layers
        ]
        loss_total = 0.0
        for sample in batch:
            predicted = self.forward_propagation(sample.inputs)
            loss_total += self.loss(predicted, sample.targets)
            self.backward_propagation(predicted, sample.targets)
            for acc, layer in zip(totals, self.layers):
                for idx, grad in enumerate(layer.grads):
                    acc[idx] = acc[idx] + grad
        count = len(batch)
        averaged = [[g / count for g in layer] for layer in totals]
        return AveragedGradients(grads=averaged, loss=loss_total / count, count=count)

    # ------------------------------------------------------------------
    # Persistence

    def save(self, stream: BinaryIO, include_training_state: bool = False) -> None:
        """Write architecture, parameters, counters and optional moment state."""

        self._require_layers()
        writer = BinaryWriter(stream)
        writer.write_int32(len(self.layers))
        for layer in self.layers:
            layer.persist(writer)
        writer.write_str(self.loss.name)
        writer.write_int32(self.iterations_trained)
        writer.write_int32(self.epochs_trained)
        writer.write_bool(include_training_state)
        if include_training_state:
            moments = self.moments
            if moments is None:
                moments = MomentBuffers.zeros_like(self.parameters())
            for group in moments.groups():
                for layer_buffers in group:
                    for matrix in layer_buffers:
                        writer.write_matrix(matrix)
        logger.info(
            "Saved network with %d layers (training state: %s)",
            len(self.layers),
            include_training_state,
        )

    def to_bytes(self, include_training_state: bool = False) -> bytes:
        buffer = io.BytesIO()
        self.save(buffer, include_training_state=include_training_state)
        return buffer.getvalue()

    @classmethod
    def load(cls, stream: BinaryIO) -> "Network":
        """Decode a network; the architecture is rebuilt before any values are read."""

        reader = BinaryReader(stream)
        layer_count = reader.read_count("layer count")
        network = cls()
        for idx in range(layer_count):
            layer = restore_layer(reader)
            try:
                network.add(layer)
            except DimensionMismatch as exc:
                raise CorruptStream(f"Layer {idx} does not fit the previous layer: {exc}") from exc
        network.set_loss(reader.read_str("loss function name"))
        network.iterations_trained = reader.read_int32("iterations trained")
        network.epochs_trained = reader.read_int32("epochs trained")
        if network.iterations_trained < 0 or network.epochs_trained < 0:
            raise CorruptStream("Negative trained-progress counter")
        if reader.read_bool("training state flag"):
            params = network.parameters()
            groups = []
            for name in ("velocity", "first moment", "second moment"):
                groups.append(
                    [
                        [reader.read_matrix(p.rows, p.cols, name) for p in layer]
                        for layer in params
                    ]
                )
            network.set_moments(MomentBuffers(*groups))
        logger.info("Loaded network with %d layers", layer_count)
        return network

    @classmethod
    def from_bytes(cls, data: bytes) -> "Network":
        return cls.load(io.BytesIO(data))

    def load_from(self, stream: BinaryIO) -> None:
        """Replace this network's state with the decoded stream, all or nothing."""

        decoded = type(self).load(stream)
        self.layers = decoded.layers
        self.loss = decoded.loss
        self.iterations_trained = decoded.iterations_trained
        self.epochs_trained = decoded.epochs_trained
        self.moments = decoded.moments

    def __repr__(self) -> str:
        layers = ", ".join(
            f"{d.kind}({d.in_count}->{d.out_count}{', ' + d.function if d.function else ''})"
            for d in (layer.describe() for layer in self.layers)
        )
        return f"Network([{layers}], loss={self.loss.name!r})"


__all__ = ["Network"]
