import logging
import math

import numpy as np
import pytest

from nnkit.core import inits
from nnkit.core.errors import UnknownFunctionName, UnsupportedPairing
from nnkit.core.layers import DenseLayer
from nnkit.core.matrix import Matrix
from nnkit.core.network import Network
from nnkit.core.types import Sample
from nnkit.training.optimizers import (
    Hyperparameters,
    adam_step,
    get_step,
    gradient_descent_step,
    momentum_step,
)
from nnkit.training.trainer import Trainer


def _linear_network(weight=0.5, bias=0.0):
    network = Network([DenseLayer(1, 1)])
    network.layers[0].weights = Matrix.from_rows([[weight]])
    network.layers[0].biases = Matrix.from_rows([[bias]])
    return network


def _linear_grads(network):
    # x = 2, target = 3, prediction = 1: dL/dy = 2 * (1 - 3) = -4
    return network.average_gradients([Sample.of([2.0], [3.0])]).grads


def test_gradient_descent_step():
    network = _linear_network()
    grads = _linear_grads(network)
    assert grads[0][0].to_list() == [[-8.0]]
    assert grads[0][1].to_list() == [[-4.0]]
    gradient_descent_step(network, grads, Hyperparameters(learning_rate=0.1))
    assert math.isclose(network.layers[0].weights[0, 0], 1.3)
    assert math.isclose(network.layers[0].biases[0, 0], 0.4)
    assert network.iterations_trained == 0


def test_momentum_step_updates_velocity():
    network = _linear_network()
    grads = _linear_grads(network)
    momentum_step(network, grads, Hyperparameters(learning_rate=0.1, beta=0.9))
    velocity = network.moments.velocity[0]
    assert math.isclose(velocity[0][0, 0], -0.8)
    assert math.isclose(network.layers[0].weights[0, 0], 0.58)
    momentum_step(network, grads, Hyperparameters(learning_rate=0.1, beta=0.9))
    assert math.isclose(network.moments.velocity[0][0][0, 0], 0.9 * -0.8 + 0.1 * -8.0)


@pytest.mark.parametrize("iterations", [0, 100])
def test_adam_bias_correction_uses_trained_iterations(iterations):
    network = _linear_network()
    network.iterations_trained = iterations
    grads = _linear_grads(network)
    hp = Hyperparameters(learning_rate=0.1, beta1=0.9, beta2=0.999, epsilon=1e-8)
    adam_step(network, grads, hp)

    t = iterations + 1
    g = -8.0
    m = 0.1 * g
    v = 0.001 * g * g
    m_hat = m / (1 - 0.9**t)
    v_hat = v / (1 - 0.999**t)
    expected = 0.5 - 0.1 * m_hat / (math.sqrt(v_hat) + 1e-8)
    assert math.isclose(network.layers[0].weights[0, 0], expected, rel_tol=1e-12)
    assert math.isclose(network.moments.first_moment[0][0][0, 0], m)
    assert math.isclose(network.moments.second_moment[0][0][0, 0], v)


def test_optimizer_lookup():
    assert get_step("adam") is adam_step
    with pytest.raises(UnknownFunctionName):
        get_step("rmsprop")


def _samples():
    return [
        Sample.of([0.0, 0.0], [0.0]),
        Sample.of([0.0, 1.0], [1.0]),
        Sample.of([1.0, 0.0], [1.0]),
        Sample.of([1.0, 1.0], [0.0]),
    ]


def _network(seed=0):
    network = Network.from_sizes([2, 3, 1])
    inits.xavier_uniform(network, seed=seed)
    return network


def test_trainer_chunks_and_counters():
    network = _network()
    steps, epochs = [], []
    trainer = Trainer(
        network,
        _samples(),
        learning_rate=0.5,
        sample_size=3,
        shuffle=False,
        on_iteration=lambda i, metrics: steps.append((i, metrics["epoch"])),
        on_epoch=lambda e, metrics: epochs.append(e),
    )
    result = trainer.train("gradient_descent", 3)
    assert result.steps == 6
    assert network.iterations_trained == 6
    assert network.epochs_trained == 3
    assert [i for i, _ in steps] == [1, 2, 3, 4, 5, 6]
    assert [epoch for _, epoch in steps] == [1.0, 1.0, 2.0, 2.0, 3.0, 3.0]
    assert epochs == [1, 2, 3]
    assert len(result.history) == 3


def test_trainer_dispatches_sink_callbacks():
    class Recorder:
        def __init__(self):
            self.steps = 0
            self.epochs = 0

        def on_step(self, step, metrics):
            self.steps += 1

        def on_epoch(self, epoch, metrics):
            self.epochs += 1

    recorder = Recorder()
    Trainer(_network(), _samples(), sample_size=1, callbacks=[recorder], seed=0).train(
        "momentum", 2
    )
    assert recorder.steps == 8
    assert recorder.epochs == 2


def test_trainer_shuffles_sample_list_in_place():
    samples = _samples()
    original = list(samples)
    Trainer(_network(), samples, shuffle=False).train("gradient_descent", 2)
    assert samples == original

    Trainer(_network(), samples, shuffle=True, seed=3).train("gradient_descent", 5)
    assert sorted(map(id, samples)) == sorted(map(id, original))


def test_trainer_is_deterministic_for_a_seed():
    def run():
        network = _network(seed=1)
        Trainer(network, _samples(), learning_rate=0.05, sample_size=2, seed=9).train("adam", 10)
        return network.to_bytes(include_training_state=True)

    assert run() == run()


def test_trainer_continues_counters_across_runs():
    network = _network()
    Trainer(network, _samples(), shuffle=False).train("adam", 2)
    Trainer(network, _samples(), shuffle=False).train("adam", 3)
    assert network.iterations_trained == 5
    assert network.epochs_trained == 5


def test_trainer_reduces_loss():
    network = _network(seed=2)
    result = Trainer(network, _samples(), learning_rate=0.5, shuffle=False).train(
        "gradient_descent", 200
    )
    assert result.history[-1] < result.history[0]


def test_trainer_rejects_invalid_setups():
    network = Network.from_sizes([2, 2], output="softmax", loss="mse")
    inits.he_uniform(network, seed=0)
    before = network.to_bytes()
    with pytest.raises(UnsupportedPairing):
        Trainer(network, [Sample.of([1, 0], [1, 0])]).train("adam", 1)
    assert network.to_bytes() == before

    with pytest.raises(UnknownFunctionName):
        Trainer(_network(), _samples()).train("sgd", 1)
    with pytest.raises(ValueError):
        Trainer(_network(), []).train("adam", 1)
    with pytest.raises(ValueError):
        Trainer(_network(), _samples(), sample_size=0).train("adam", 1)


def test_zero_epochs_is_a_no_op():
    network = _network()
    before = network.to_bytes()
    result = Trainer(network, _samples()).train("adam", 0)
    assert result.steps == 0
    assert math.isnan(result.final_loss)
    assert network.to_bytes() == before


def test_trainer_learning_rate_is_adjustable():
    trainer = Trainer(_network(), _samples(), learning_rate=0.1)
    trainer.learning_rate = 10
    assert trainer.hyperparameters.learning_rate == 10.0
    assert np.isfinite(trainer.train("gradient_descent", 1).final_loss)


def test_trainer_logs_every_step_at_debug(caplog):
    trainer = Trainer(_network(), _samples(), sample_size=3, shuffle=False)
    with caplog.at_level(logging.DEBUG, logger="nnkit.training.trainer"):
        trainer.train("gradient_descent", 2)
    step_lines = [r for r in caplog.records if r.getMessage().startswith("Step ")]
    epoch_lines = [r for r in caplog.records if r.getMessage().startswith("Epoch ")]
    assert len(step_lines) == 4
    assert len(epoch_lines) == 2
    assert all(r.levelno == logging.DEBUG for r in step_lines)
