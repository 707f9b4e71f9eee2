"""
Tests for the concrete TangentVector.

Covers the zero layout, arithmetic with tangents and numbers, reductions
and the flatten/with_leaves pair used for checkpoints.
"""

import numpy as np
import pytest

from anylayer import DerivativeTypeMismatch
from anylayer.layers import EmptyTangentVector, TangentVector
from anylayer.layers.Conv2D import Conv2DTangent
from anylayer.layers.FullyConnectedLayer import FullyConnectedLayerTangent
from anylayer.layers.Sequential import SequentialTangent


def _fc(w, b):
    return FullyConnectedLayerTangent(
        weights=np.asarray(w, dtype=np.float32), bias=np.asarray(b, dtype=np.float32)
    )


class TestLayout:
    """Fixed fields, zero and free-form layouts."""

    def test_zero_fills_every_field(self) -> None:
        z = FullyConnectedLayerTangent.zero()
        assert set(z.keys()) == {"weights", "bias"}
        assert z.is_zero

    def test_missing_field_defaults_to_zero(self) -> None:
        t = FullyConnectedLayerTangent(weights=np.ones((2, 2), dtype=np.float32))
        assert float(t.bias) == 0.0

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(TypeError):
            FullyConnectedLayerTangent(gamma=np.ones(2))

    def test_attribute_access(self) -> None:
        t = _fc([[1.0]], [[2.0]])
        assert t.weights[0, 0] == 1.0
        with pytest.raises(AttributeError):
            t.gamma

    def test_empty_tangent(self) -> None:
        e = EmptyTangentVector()
        assert len(e) == 0
        assert e.is_zero
        assert (e + e) == EmptyTangentVector()


class TestArithmetic:
    """Pointwise operations between tangents and with numbers."""

    def test_add_same_type(self) -> None:
        a = _fc([[1.0, 2.0]], [[1.0]])
        b = _fc([[3.0, 4.0]], [[-1.0]])
        c = a + b
        np.testing.assert_allclose(c.weights, [[4.0, 6.0]])
        np.testing.assert_allclose(c.bias, [[0.0]])

    def test_zero_is_additive_identity(self) -> None:
        a = _fc([[1.0, 2.0]], [[3.0]])
        assert (a + FullyConnectedLayerTangent.zero()) == a
        assert (FullyConnectedLayerTangent.zero() + a) == a

    def test_scalar_broadcasts(self) -> None:
        a = _fc([[1.0, 2.0]], [[3.0]])
        np.testing.assert_allclose(a.adding(1.0).weights, [[2.0, 3.0]])
        np.testing.assert_allclose((10.0 - a).bias, [[7.0]])
        np.testing.assert_allclose(a.scaled(2.0).weights, [[2.0, 4.0]])
        np.testing.assert_allclose((1.0 / _fc([[2.0]], [[4.0]])).bias, [[0.25]])

    def test_zero_tangent_broadcasts_scalar(self) -> None:
        z = FullyConnectedLayerTangent.zero().adding(0.5)
        assert float(z.weights) == pytest.approx(0.5)

    def test_numpy_scalar_defers_to_tangent(self) -> None:
        a = _fc([[1.0]], [[1.0]])
        result = np.float32(2.0) * a
        assert isinstance(result, FullyConnectedLayerTangent)
        np.testing.assert_allclose(result.weights, [[2.0]])

    def test_power_and_negation(self) -> None:
        a = _fc([[3.0]], [[-2.0]])
        np.testing.assert_allclose((a ** 2).bias, [[4.0]])
        np.testing.assert_allclose((-a).weights, [[-3.0]])

    def test_mismatched_types_are_fatal(self) -> None:
        a = _fc([[1.0]], [[1.0]])
        b = Conv2DTangent(weights=np.ones((1, 1, 1, 1), dtype=np.float32))
        with pytest.raises(DerivativeTypeMismatch):
            a + b

    def test_mismatch_bypasses_exception_handlers(self) -> None:
        a = _fc([[1.0]], [[1.0]])
        b = EmptyTangentVector()
        with pytest.raises(DerivativeTypeMismatch):
            try:
                a - b
            except Exception:
                pytest.fail("a derivative mismatch must not be an Exception")


class TestReductions:
    def test_sum_and_squared_norm(self) -> None:
        a = _fc([[1.0, 2.0]], [[3.0]])
        assert a.sum() == pytest.approx(6.0)
        assert a.squared_norm() == pytest.approx(14.0)
        assert isinstance(a.sum(), float)

    def test_nested_sum(self) -> None:
        t = SequentialTangent({0: _fc([[1.0]], [[1.0]]), 1: EmptyTangentVector()})
        assert t.sum() == pytest.approx(2.0)

    def test_is_zero(self) -> None:
        assert _fc([[0.0]], [[0.0]]).is_zero
        assert not _fc([[0.0]], [[1e-3]]).is_zero


class TestFreeFormLayout:
    """Free-form tangents key their components by container position."""

    def test_missing_keys_read_as_zero(self) -> None:
        a = SequentialTangent({0: _fc([[1.0]], [[1.0]])})
        b = SequentialTangent({1: EmptyTangentVector()})
        c = a + b
        assert set(c.keys()) == {0, 1}

    def test_flatten_uses_dotted_paths(self) -> None:
        t = SequentialTangent({0: _fc([[1.0]], [[2.0]]), 1: EmptyTangentVector()})
        leaves = t.flatten()
        assert set(leaves) == {"0.weights", "0.bias"}

    def test_with_leaves_inverts_flatten(self) -> None:
        t = SequentialTangent({0: _fc([[1.0]], [[2.0]]), 2: EmptyTangentVector()})
        leaves = {k: v * 3 for k, v in t.flatten().items()}
        rebuilt = t.with_leaves(leaves)
        assert type(rebuilt) is SequentialTangent
        np.testing.assert_allclose(rebuilt[0].bias, [[6.0]])
        assert rebuilt[2] == EmptyTangentVector()

    def test_base_class_is_free_form(self) -> None:
        t = TangentVector({"a": np.ones(2)}, b=np.zeros(2))
        assert set(t.keys()) == {"a", "b"}
