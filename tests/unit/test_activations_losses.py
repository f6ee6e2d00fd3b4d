import math

import numpy as np
import pytest

from nnkit.core.activations import (
    ActivationFunction,
    relu,
    sigmoid,
    sigmoid_derivative,
    softmax,
    softmax_backward,
    tanh_derivative,
)
from nnkit.core.errors import DimensionMismatch, UnknownFunctionName
from nnkit.core.losses import CCE_EPSILON, LossFunction, get_loss
from nnkit.core.matrix import Matrix


def test_sigmoid_and_derivative_from_output():
    y = sigmoid(Matrix.from_vector([0.0, 2.0]))
    assert y[0, 0] == 0.5
    assert math.isclose(y[1, 0], 1 / (1 + math.exp(-2)))
    d = sigmoid_derivative(y)
    assert d[0, 0] == 0.25


def test_sigmoid_saturates_without_overflow():
    y = sigmoid(Matrix.from_vector([-1000.0, 1000.0]))
    assert y.to_list() == [[0.0], [1.0]]


def test_relu_and_tanh():
    x = Matrix.from_vector([-1.0, 0.0, 3.0])
    assert relu(x).to_list() == [[0.0], [0.0], [3.0]]
    assert ActivationFunction.RELU.derivative(relu(x)).to_list() == [[0.0], [0.0], [1.0]]
    y = ActivationFunction.TANH.apply(Matrix.from_vector([0.5]))
    assert math.isclose(tanh_derivative(y)[0, 0], 1 - math.tanh(0.5) ** 2)


def test_softmax_is_stable_and_normalised():
    y = softmax(Matrix.from_vector([1000.0, 1001.0, 1002.0]))
    assert not y.has_nan()
    assert math.isclose(y.sum(), 1.0)
    shifted = softmax(Matrix.from_vector([0.0, 1.0, 2.0]))
    assert y.allclose(shifted)


def test_softmax_backward_matches_jacobian():
    y = softmax(Matrix.from_vector([0.3, -1.2, 2.0]))
    dy = Matrix.from_vector([0.5, -0.25, 1.0])
    y_arr = y.to_array()[:, 0]
    jacobian = np.diag(y_arr) - np.outer(y_arr, y_arr)
    expected = jacobian @ dy.to_array()
    np.testing.assert_allclose(softmax_backward(y, dy).to_array(), expected, atol=1e-12)
    assert ActivationFunction.SOFTMAX.backward(y, dy).allclose(Matrix.from_array(expected))
    with pytest.raises(DimensionMismatch):
        softmax_backward(y, Matrix(2, 1))


def test_softmax_has_no_elementwise_derivative():
    with pytest.raises(TypeError):
        ActivationFunction.SOFTMAX.derivative(Matrix.from_vector([0.5, 0.5]))


def test_activation_names_are_strict():
    assert ActivationFunction.from_name("tanh") is ActivationFunction.TANH
    with pytest.raises(UnknownFunctionName) as excinfo:
        ActivationFunction.from_name("Sigmoid")
    assert "sigmoid" in excinfo.value.available
    with pytest.raises(ValueError):
        ActivationFunction.from_name("swish")


def test_mse_value_and_derivative():
    mse = get_loss("mse")
    p = Matrix.from_vector([1.0, 2.0])
    t = Matrix.from_vector([0.0, 0.0])
    assert mse(p, t) == 2.5
    assert mse.derivative(p, t).to_list() == [[1.0], [2.0]]
    assert mse.kind is LossFunction.MSE


def test_cce_value_and_derivative():
    cce = get_loss(LossFunction.CCE)
    p = Matrix.from_vector([0.25, 0.75])
    t = Matrix.from_vector([0.0, 1.0])
    assert math.isclose(cce(p, t), -math.log(0.75 + CCE_EPSILON))
    grad = cce.derivative(p, t)
    assert grad[0, 0] == 0.0
    assert math.isclose(grad[1, 0], -1 / (0.75 + CCE_EPSILON))


def test_cce_handles_zero_probability():
    cce = get_loss("cce")
    value = cce(Matrix.from_vector([0.0, 1.0]), Matrix.from_vector([1.0, 0.0]))
    assert math.isfinite(value)


def test_loss_shape_and_name_errors():
    with pytest.raises(DimensionMismatch):
        get_loss("mse")(Matrix(2, 1), Matrix(3, 1))
    with pytest.raises(UnknownFunctionName):
        get_loss("hinge")
    assert get_loss(get_loss("mse")).name == "mse"
