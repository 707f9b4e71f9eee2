"""
Tests for the concrete layers.

Output shapes, plus finite-difference checks of every pullback. The
checks run in float64 so central differences are accurate.
"""

import numpy as np
import pytest

from anylayer import DerivativeTypeMismatch, Device, value_with_pullback
from anylayer.layers import (
    Conv2D,
    EmptyTangentVector,
    Flatten,
    FullyConnectedLayer,
    MaxPool2D,
    ReLU,
    ResidualConnection,
    Sequential,
    SequentialSkip,
)
from anylayer.layers.FullyConnectedLayer import FullyConnectedLayerTangent

EPS = 1e-6


def _to_float64(layer):
    for name in layer.param_names:
        setattr(layer, name, getattr(layer, name).astype(np.float64))
    return layer


def _objective(layer, x, r):
    """Scalar test objective sum(layer(x) * r); its output gradient is r."""
    return float(np.sum(layer(x) * r))


def _numeric_input_grad(layer, x, r):
    grad = np.zeros_like(x)
    for idx in np.ndindex(*x.shape):
        old = x[idx]
        x[idx] = old + EPS
        plus = _objective(layer, x, r)
        x[idx] = old - EPS
        minus = _objective(layer, x, r)
        x[idx] = old
        grad[idx] = (plus - minus) / (2 * EPS)
    return grad


def _numeric_param_grad(owner, name, x, r, model=None):
    """Central differences of ``model``'s objective w.r.t. ``owner.<name>``."""
    model = owner if model is None else model
    p = getattr(owner, name)
    grad = np.zeros_like(p)
    for idx in np.ndindex(*p.shape):
        old = p[idx]
        p[idx] = old + EPS
        plus = _objective(model, x, r)
        p[idx] = old - EPS
        minus = _objective(model, x, r)
        p[idx] = old
        grad[idx] = (plus - minus) / (2 * EPS)
    return grad


def _check(layer, x):
    y, pb = value_with_pullback(layer, x)
    r = np.random.randn(*y.shape)
    d_layer, d_x = pb(r)
    np.testing.assert_allclose(d_x, _numeric_input_grad(layer, x, r), rtol=1e-5, atol=1e-6)
    for name in layer.param_names:
        np.testing.assert_allclose(
            d_layer[name], _numeric_param_grad(layer, name, x, r), rtol=1e-5, atol=1e-6
        )
    return d_layer


class TestFullyConnectedLayer:
    def test_output_shape(self, dense) -> None:
        assert dense(np.zeros((7, 4), dtype=np.float32)).shape == (7, 3)

    def test_parameters_are_float32(self, dense) -> None:
        assert dense.weights.dtype == np.float32
        assert dense.bias.shape == (3, 1)

    def test_pullback_matches_finite_differences(self) -> None:
        layer = _to_float64(FullyConnectedLayer(4, 3))
        d_layer = _check(layer, np.random.randn(5, 4))
        assert isinstance(d_layer, FullyConnectedLayerTangent)

    def test_move_rebinds_parameters(self, dense) -> None:
        old = dense.weights
        dense.move(dense.zero_tangent().adding(1.0))
        assert dense.weights is not old
        np.testing.assert_allclose(dense.weights, old + 1.0)
        assert dense.weights.dtype == np.float32

    def test_move_rejects_foreign_tangent(self, dense) -> None:
        with pytest.raises(DerivativeTypeMismatch):
            dense.move(EmptyTangentVector())

    def test_view_and_params_agree(self, dense) -> None:
        view = dense.differentiable_vector_view
        assert view.weights is dense.weights
        weights, bias = dense.params()
        assert weights is dense.weights and bias is dense.bias


class TestConv2D:
    @pytest.mark.parametrize("stride,padding", [(1, 0), (2, 1)])
    def test_pullback_matches_finite_differences(self, stride, padding) -> None:
        layer = _to_float64(Conv2D(2, 3, kernel_size=3, stride=stride, padding=padding))
        _check(layer, np.random.randn(2, 2, 5, 5))

    def test_output_shape(self, images) -> None:
        layer = Conv2D(3, 6, kernel_size=5)
        assert layer(images).shape == (2, 6, 12, 12)

    def test_padding_keeps_size(self, images) -> None:
        layer = Conv2D(3, 4, kernel_size=3, padding=1)
        assert layer(images).shape == (2, 4, 16, 16)


class TestParameterFreeLayers:
    def test_max_pool_shape(self, images) -> None:
        assert MaxPool2D(2, 2)(images).shape == (2, 3, 8, 8)

    def test_max_pool_pullback(self) -> None:
        d_layer = _check(MaxPool2D(2, 2), np.random.randn(2, 2, 4, 4))
        assert d_layer == EmptyTangentVector()

    def test_max_pool_routes_gradient_to_maximum(self) -> None:
        x = np.array([[[[1.0, 5.0], [2.0, 3.0]]]])
        _, pb = value_with_pullback(MaxPool2D(2, 2), x)
        _, d_x = pb(np.array([[[[1.0]]]]))
        np.testing.assert_array_equal(d_x, [[[[0.0, 1.0], [0.0, 0.0]]]])

    def test_relu_pullback(self) -> None:
        # keep inputs away from the kink at zero
        x = np.random.randn(4, 6)
        x[np.abs(x) < 0.1] = 0.5
        _check(ReLU(), x)

    def test_flatten_round_trip(self, images) -> None:
        y, pb = value_with_pullback(Flatten(), images)
        assert y.shape == (2, 768)
        _, d_x = pb(y)
        np.testing.assert_array_equal(d_x, images)


class TestContainers:
    def test_sequential_pullback(self) -> None:
        model = Sequential(
            _to_float64(FullyConnectedLayer(4, 5)), ReLU(), _to_float64(FullyConnectedLayer(5, 2))
        )
        x = np.random.randn(3, 4)
        y, pb = value_with_pullback(model, x)
        r = np.random.randn(*y.shape)
        d_model, d_x = pb(r)
        np.testing.assert_allclose(d_x, _numeric_input_grad(model, x, r), rtol=1e-5, atol=1e-6)
        for i in (0, 2):
            np.testing.assert_allclose(
                d_model[i].weights,
                _numeric_param_grad(model[i], "weights", x, r, model=model),
                rtol=1e-5,
                atol=1e-6,
            )
        assert set(d_model.keys()) == {0, 1, 2}

    def test_sequential_accepts_a_list(self) -> None:
        model = Sequential([ReLU(), Flatten()])
        assert len(model) == 2
        assert isinstance(model[1], Flatten)

    def test_sequential_move_and_view(self) -> None:
        model = Sequential(FullyConnectedLayer(4, 4), ReLU())
        w = model[0].weights.copy()
        model.move(model.zero_tangent().adding(2.0))
        np.testing.assert_allclose(model[0].weights, w + 2.0)
        assert model.differentiable_vector_view[0].weights is model[0].weights

    def test_skip_passes_input_through(self) -> None:
        skip = SequentialSkip(FullyConnectedLayer(1, 2))
        x = np.random.randn(3, 7).astype(np.float32)
        y, pb = value_with_pullback(skip, x)
        np.testing.assert_array_equal(y, x)
        d_layer, d_x = pb(x)
        assert d_layer.layer.is_zero
        np.testing.assert_array_equal(d_x, x)

    def test_skip_keeps_its_parameters_trainable(self) -> None:
        skip = SequentialSkip(FullyConnectedLayer(1, 2))
        w = skip.layer.weights.copy()
        skip.move(skip.zero_tangent().adding(1.0))
        np.testing.assert_allclose(skip.layer.weights, w + 1.0)

    def test_residual_pullback(self) -> None:
        block = ResidualConnection(_to_float64(FullyConnectedLayer(3, 3)))
        x = np.random.randn(2, 3)
        y, pb = value_with_pullback(block, x)
        np.testing.assert_allclose(y, x + block.layer(x))
        r = np.random.randn(*y.shape)
        d_block, d_x = pb(r)
        np.testing.assert_allclose(d_x, _numeric_input_grad(block, x, r), rtol=1e-5, atol=1e-6)
        np.testing.assert_allclose(
            d_block.layer.weights,
            _numeric_param_grad(block.layer, "weights", x, r, model=block),
            rtol=1e-5,
            atol=1e-6,
        )


class TestDeviceCopy:
    def test_copy_to_deep_copies_arrays(self, dense) -> None:
        copied = dense.copy_to(Device.cpu())
        assert copied.weights is not dense.weights
        np.testing.assert_array_equal(copied.weights, dense.weights)

    def test_containers_copy_transitively(self) -> None:
        model = Sequential(FullyConnectedLayer(2, 2), SequentialSkip(FullyConnectedLayer(1, 2)))
        copied = model.copy_to(Device.cpu())
        assert copied[0] is not model[0]
        assert copied[1].layer.weights is not model[1].layer.weights
        assert copied.device == Device.cpu()
