import io
import logging
import struct

import pytest

from nnkit.core import inits
from nnkit.core.errors import CorruptStream, UnknownFunctionName
from nnkit.core.layers import ActivationLayer, DenseLayer
from nnkit.core.matrix import Matrix
from nnkit.core.network import Network
from nnkit.core.types import Sample
from nnkit.training.trainer import Trainer


def _samples():
    return [
        Sample.of([0.0, 0.0], [0.0]),
        Sample.of([0.0, 1.0], [1.0]),
        Sample.of([1.0, 0.0], [1.0]),
        Sample.of([1.0, 1.0], [0.0]),
    ]


def _trained(optimizer="adam", epochs=5):
    network = Network.from_sizes([2, 3, 1], hidden="tanh")
    inits.xavier_uniform(network, seed=0)
    Trainer(network, _samples(), learning_rate=0.05, shuffle=False).train(optimizer, epochs)
    return network


def _str(value: str) -> bytes:
    return struct.pack("=I", len(value)) + value.encode()


def test_byte_layout_of_a_small_network():
    network = Network([DenseLayer(1, 2), ActivationLayer(2, "relu")], loss="mse")
    network.layers[0].weights = Matrix.from_rows([[1.5], [-2.0]])
    network.layers[0].biases = Matrix.from_rows([[0.25], [0.0]])
    network.iterations_trained = 7
    network.epochs_trained = 2
    expected = (
        struct.pack("=i", 2)
        + _str("Dense")
        + struct.pack("=ii", 1, 2)
        + struct.pack("=dd", 1.5, -2.0)
        + struct.pack("=dd", 0.25, 0.0)
        + _str("Activation")
        + struct.pack("=i", 2)
        + _str("relu")
        + _str("mse")
        + struct.pack("=ii", 7, 2)
        + b"\x00"
    )
    assert network.to_bytes() == expected


@pytest.mark.parametrize("include_state", [False, True])
def test_round_trip_preserves_outputs_and_counters(include_state):
    network = _trained()
    restored = Network.from_bytes(network.to_bytes(include_training_state=include_state))
    assert restored.iterations_trained == network.iterations_trained == 5
    assert restored.epochs_trained == network.epochs_trained == 5
    assert restored.loss.name == "mse"
    for sample in _samples():
        assert restored.run(sample.inputs) == network.run(sample.inputs)
    if include_state:
        for ours, theirs in zip(network.moments.groups(), restored.moments.groups()):
            assert ours == theirs
    else:
        assert restored.moments is None


def test_resumed_training_matches_uninterrupted_training():
    network = _trained(epochs=3)
    restored = Network.from_bytes(network.to_bytes(include_training_state=True))
    for net in (network, restored):
        Trainer(net, _samples(), learning_rate=0.05, shuffle=False).train("adam", 2)
    assert restored.to_bytes(include_training_state=True) == network.to_bytes(
        include_training_state=True
    )


def test_saving_training_state_without_moments_writes_zeros():
    network = Network.from_sizes([2, 1])
    restored = Network.from_bytes(network.to_bytes(include_training_state=True))
    assert network.moments is None
    assert not network.describe().has_training_state
    assert restored.moments is not None
    assert all(m.sum() == 0.0 for layer in restored.moments.velocity for m in layer)


def test_unknown_layer_tag_does_not_mutate_target():
    target = _trained()
    before = target.to_bytes(include_training_state=True)
    stream = io.BytesIO(struct.pack("=i", 1) + _str("Conv") + struct.pack("=ii", 1, 1))
    with pytest.raises(CorruptStream):
        target.load_from(stream)
    assert target.to_bytes(include_training_state=True) == before


def test_load_from_replaces_state():
    source = _trained()
    target = Network.from_sizes([4, 4])
    target.load_from(io.BytesIO(source.to_bytes()))
    assert target.iterations_trained == 5
    assert target.input_count == 2
    assert target.run(Matrix.from_vector([1.0, 0.0])) == source.run(Matrix.from_vector([1.0, 0.0]))


def test_truncated_stream_is_corrupt():
    blob = _trained().to_bytes(include_training_state=True)
    for cut in (0, 3, len(blob) // 2, len(blob) - 1):
        with pytest.raises(CorruptStream):
            Network.from_bytes(blob[:cut])


def test_structural_corruption_is_detected():
    with pytest.raises(CorruptStream):
        Network.from_bytes(struct.pack("=i", 0))
    inconsistent = (
        struct.pack("=i", 2)
        + _str("Dense")
        + struct.pack("=ii", 2, 3)
        + b"\x00" * 8 * (6 + 3)
        + _str("Activation")
        + struct.pack("=i", 2)
        + _str("sigmoid")
    )
    with pytest.raises(CorruptStream):
        Network.from_bytes(inconsistent)
    bad_flag = Network.from_sizes([1, 1]).to_bytes()[:-1] + b"\x07"
    with pytest.raises(CorruptStream):
        Network.from_bytes(bad_flag)


@pytest.mark.parametrize("size", [2**31 - 1, 60000])
def test_huge_dense_header_on_short_stream_is_corrupt(size):
    stream = struct.pack("=i", 1) + _str("Dense") + struct.pack("=ii", size, size) + b"\x00" * 64
    with pytest.raises(CorruptStream, match="dense weights"):
        Network.from_bytes(stream)


def test_unknown_function_names_are_reported():
    blob = Network.from_sizes([1, 1]).to_bytes()
    with pytest.raises(UnknownFunctionName):
        Network.from_bytes(blob.replace(_str("sigmoid"), _str("sigmoix")))
    with pytest.raises(UnknownFunctionName):
        Network.from_bytes(blob.replace(_str("mse"), _str("mae")))


def test_save_and_load_are_logged_at_info(caplog):
    network = Network.from_sizes([2, 1])
    with caplog.at_level(logging.INFO, logger="nnkit.core.network"):
        Network.from_bytes(network.to_bytes())
    messages = [r.getMessage() for r in caplog.records if r.levelno == logging.INFO]
    assert any(m.startswith("Saved network") for m in messages)
    assert any(m.startswith("Loaded network") for m in messages)
