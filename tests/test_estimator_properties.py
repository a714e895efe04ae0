#!/usr/bin/env python3
"""
Property-based tests for robust homography estimation.

This module uses Hypothesis to verify properties that must hold for any
well-conditioned homography and point layout, not just hand-picked cases.

Properties tested:
1. Exact recovery: noiseless data are reproduced and every point is an inlier
2. Inverse consistency: H⁻¹(H(p)) == p for estimated models
3. Refinement monotonicity: refinement never increases the geometric cost
4. Partition completeness: inliers and outliers are disjoint and cover the input

Homographies are drawn as a similarity (rotation, scale, translation) with a
small perspective component, which keeps every test image in front of the
vanishing line.
"""

import numpy as np
from hypothesis import HealthCheck, assume, given, settings, strategies as st

from robust_homography import HomographyRefinement, RobustHomographyEstimator
from robust_homography.testing import generate
from robust_homography.types import to_arrays

PROPERTY_SETTINGS = settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.too_slow],
)


# ============================================================================
# Hypothesis Strategies for Test Data Generation
# ============================================================================

@st.composite
def homography_strategy(draw):
    """
    Generate a well-conditioned homography.

    Returns:
        3x3 numpy array with H[2, 2] == 1
    """
    angle = draw(st.floats(min_value=-np.pi / 6, max_value=np.pi / 6))
    scale = draw(st.floats(min_value=0.7, max_value=1.4))
    tx = draw(st.floats(min_value=-50.0, max_value=50.0))
    ty = draw(st.floats(min_value=-50.0, max_value=50.0))
    px = draw(st.floats(min_value=-5e-4, max_value=5e-4))
    py = draw(st.floats(min_value=-5e-4, max_value=5e-4))

    c, s = np.cos(angle) * scale, np.sin(angle) * scale
    return np.array([[c, -s, tx], [s, c, ty], [px, py, 1.0]])


seeds = st.integers(min_value=0, max_value=2**32 - 1)


# ============================================================================
# Property 1: Exact Recovery
# ============================================================================

@given(H=homography_strategy(), seed=seeds, num_points=st.integers(min_value=6, max_value=40))
@PROPERTY_SETTINGS
def test_property_exact_recovery(H, seed, num_points):
    """
    Property: noiseless correspondences are reproduced exactly.

    With no noise and no outliers, every minimal sample gives the true
    homography, so all points are inliers and projecting each source point
    gives its destination.
    """
    synthetic = generate(num_points, homography=H, rng=seed)
    estimator = RobustHomographyEstimator.with_ransac(threshold=1.0, max_iterations=200, rng=seed)

    assert estimator.fit_data(synthetic.data)
    assert len(estimator.get_inliers()) == num_points

    src, dst = to_arrays(synthetic.data)
    np.testing.assert_allclose(estimator.get_model().apply_points(src), dst, atol=1e-6)


# ============================================================================
# Property 2: Inverse Consistency
# ============================================================================

@given(H=homography_strategy(), seed=seeds)
@PROPERTY_SETTINGS
def test_property_inverse_round_trip(H, seed):
    """
    Property: the inverse of an estimated model undoes it.
    """
    synthetic = generate(20, homography=H, noise_sigma=0.5, rng=seed)
    estimator = RobustHomographyEstimator.with_ransac(threshold=9.0, max_iterations=200, rng=seed)
    assert estimator.fit_data(synthetic.data)

    model = estimator.get_model()
    src, _ = to_arrays(synthetic.data)
    round_trip = model.inverse().apply_points(model.apply_points(src))
    np.testing.assert_allclose(round_trip, src, atol=1e-6)


# ============================================================================
# Property 3: Refinement Monotonicity
# ============================================================================

@given(
    H=homography_strategy(),
    seed=seeds,
    mode=st.sampled_from([m for m in HomographyRefinement if m is not HomographyRefinement.NONE]),
)
@PROPERTY_SETTINGS
def test_property_refinement_never_increases_cost(H, seed, mode):
    """
    Property: refinement never increases the geometric cost it minimizes.

    A refined matrix with a higher cost is discarded in favour of the
    initial estimate, so the cost after refinement is at most the cost
    before, whatever the starting point.
    """
    synthetic = generate(25, homography=H, noise_sigma=1.0, rng=seed)
    rng = np.random.default_rng(seed)
    initial = H + rng.normal(0.0, 1e-3, size=(3, 3)) * np.abs(H).clip(min=1e-4)

    refined = mode.refine(initial, synthetic.data, max_iterations=200)

    assert mode.geometric_cost(refined, synthetic.data) <= mode.geometric_cost(initial, synthetic.data)


# ============================================================================
# Property 4: Partition Completeness
# ============================================================================

@given(
    H=homography_strategy(),
    seed=seeds,
    num_outliers=st.integers(min_value=0, max_value=8),
    use_lmeds=st.booleans(),
)
@PROPERTY_SETTINGS
def test_property_partition_is_complete_and_disjoint(H, seed, num_outliers, use_lmeds):
    """
    Property: after a successful fit the inliers and outliers partition the input.
    """
    synthetic = generate(24, num_outliers=num_outliers, homography=H, noise_sigma=0.3, rng=seed)
    if use_lmeds:
        estimator = RobustHomographyEstimator.with_lmeds(0.4, rng=seed)
    else:
        estimator = RobustHomographyEstimator.with_ransac(threshold=4.0, max_iterations=300, rng=seed)

    assume(estimator.fit_data(synthetic.data))

    inliers, outliers = estimator.get_inliers(), estimator.get_outliers()
    assert len(inliers) + len(outliers) == len(synthetic.data)
    assert not set(inliers) & set(outliers)
    assert set(inliers) | set(outliers) == set(synthetic.data)
