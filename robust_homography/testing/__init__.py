"""Synthetic data utilities for testing robust estimators."""

from robust_homography.testing.synthetic import (
    REFERENCE_HOMOGRAPHY,
    SyntheticCorrespondences,
    generate,
    make_correspondences,
    random_points,
)

__all__ = [
    "REFERENCE_HOMOGRAPHY",
    "SyntheticCorrespondences",
    "generate",
    "make_correspondences",
    "random_points",
]
