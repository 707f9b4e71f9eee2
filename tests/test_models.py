"""
Tests for the example models.

Every model maps (batch, 3, 16, 16) images to (batch, 10) logits and
produces a gradient that the model accepts back through ``move``.
"""

import numpy as np
import pytest

from anylayer import AnyLayer, AnyLayerTangentVector, value_with_pullback
from anylayer.models import (
    FEATURES,
    conv_pool_dense,
    conv_pool_residual_dense,
    conv_pool_skipping_dense,
    erased_conv_pool_dense,
)

ALL_MODELS = [
    conv_pool_dense,
    conv_pool_skipping_dense,
    conv_pool_residual_dense,
    erased_conv_pool_dense,
]


class TestExampleModels:
    @pytest.mark.parametrize("build", ALL_MODELS)
    def test_output_shape(self, build, images) -> None:
        assert build()(images).shape == (2, 10)

    @pytest.mark.parametrize("build", ALL_MODELS)
    def test_gradient_moves_the_model(self, build, images) -> None:
        model = build()
        y, pb = value_with_pullback(model, images)
        d_model, d_x = pb(np.ones_like(y))
        assert d_x.shape == images.shape
        before = model(images)
        model.move(d_model.scaled(-1e-3))
        assert not np.allclose(model(images), before)

    def test_feature_count(self) -> None:
        assert FEATURES == 216

    def test_erased_stages_are_uniform(self) -> None:
        model = erased_conv_pool_dense()
        assert len(model) == 4
        assert all(type(stage) is AnyLayer for stage in model)

    def test_erased_gradient_components_are_erased(self, images) -> None:
        model = erased_conv_pool_dense()
        y, pb = value_with_pullback(model, images)
        d_model, _ = pb(np.ones_like(y))
        assert all(isinstance(d_model[i], AnyLayerTangentVector) for i in range(4))

    def test_erased_and_concrete_agree(self, images) -> None:
        np.random.seed(1)
        concrete = conv_pool_dense()
        np.random.seed(1)
        erased = erased_conv_pool_dense()
        np.testing.assert_allclose(erased(images), concrete(images), rtol=1e-5)

    def test_whole_model_can_be_erased(self, images) -> None:
        model = AnyLayer(conv_pool_residual_dense())
        y, pb = value_with_pullback(model, images)
        d_model, _ = pb(np.ones_like(y))
        model.move(d_model.scaled(-1e-3))
        assert model(images).shape == (2, 10)
