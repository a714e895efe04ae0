#!/usr/bin/env python3
"""
Unit tests for homography residual functions.

Tests cover:
- AlgebraicResidual2d: forward squared transfer error
- SingleImageTransferResidual2d: inverse squared transfer error
- SymmetricTransferResidual2d: sum of both directions
- Infinite residuals for points at infinity and singular models
- Agreement between single and vectorised computation
"""

import numpy as np
import pytest

from robust_homography.homography.model import HomographyModel
from robust_homography.homography.residuals import (
    AlgebraicResidual2d,
    SingleImageTransferResidual2d,
    SymmetricTransferResidual2d,
)
from robust_homography.testing import REFERENCE_HOMOGRAPHY, generate
from robust_homography.types import Correspondence


@pytest.fixture
def translation_model():
    """Translation by (10, 5)."""
    return HomographyModel(np.array([[1.0, 0.0, 10.0], [0.0, 1.0, 5.0], [0.0, 0.0, 1.0]]))


@pytest.fixture
def offset_pair():
    """(0, 0) -> (13, 9): a (3, 4) offset from the translated point."""
    return Correspondence.from_tuple(((0.0, 0.0), (13.0, 9.0)))


class TestAlgebraicResidual:
    """Tests for the forward transfer residual."""

    def test_squared_distance(self, translation_model, offset_pair):
        assert AlgebraicResidual2d().compute_residual(translation_model, offset_pair) == pytest.approx(25.0)

    def test_zero_for_exact_data(self):
        data = generate(20, rng=2).data
        residuals = AlgebraicResidual2d().compute_residuals(HomographyModel(REFERENCE_HOMOGRAPHY), data)
        assert residuals.shape == (20,)
        assert np.all(residuals < 1e-18)

    def test_vectorised_matches_single(self, translation_model):
        data = generate(10, rng=3).data
        calc = AlgebraicResidual2d()
        batch = calc.compute_residuals(translation_model, data)
        single = [calc.compute_residual(translation_model, pair) for pair in data]
        np.testing.assert_allclose(batch, single)

    def test_point_at_infinity_is_infinite(self):
        model = HomographyModel(np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [1.0, 0.0, 1.0]]))
        pair = Correspondence.from_tuple(((-1.0, 0.0), (0.0, 0.0)))
        assert np.isinf(AlgebraicResidual2d().compute_residual(model, pair))


class TestTransferResiduals:
    """Tests for the inverse and symmetric transfer residuals."""

    def test_inverse_transfer(self, translation_model, offset_pair):
        # H^-1 (13, 9) = (3, 4), compared with the source (0, 0)
        residual = SingleImageTransferResidual2d().compute_residual(translation_model, offset_pair)
        assert residual == pytest.approx(25.0)

    def test_symmetric_is_sum(self, translation_model, offset_pair):
        residual = SymmetricTransferResidual2d().compute_residual(translation_model, offset_pair)
        assert residual == pytest.approx(50.0)

    def test_inverse_of_singular_model_is_infinite(self, offset_pair):
        model = HomographyModel(np.array([[1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 0.0]]))
        residuals = SingleImageTransferResidual2d().compute_residuals(model, [offset_pair, offset_pair])
        assert np.all(np.isinf(residuals))

    def test_symmetric_zero_for_exact_data(self):
        data = generate(15, rng=4).data
        residuals = SymmetricTransferResidual2d().compute_residuals(HomographyModel(REFERENCE_HOMOGRAPHY), data)
        assert np.all(residuals < 1e-16)
