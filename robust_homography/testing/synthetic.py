"""
Synthetic correspondence generation for tests and benchmarks.

Generates point correspondences under a known homography, with optional
Gaussian noise and gross outliers, so estimators can be checked against
ground truth.
"""

from dataclasses import dataclass, field

import numpy as np

from robust_homography.fitting.sampling import RandomSource, make_rng
from robust_homography.homography.model import project
from robust_homography.types import Correspondence, Point2d

# A mild perspective warp of a 640x480 image
REFERENCE_HOMOGRAPHY = np.array(
    [
        [1.05, 0.08, 12.0],
        [-0.04, 0.97, -7.5],
        [2.0e-4, -1.0e-4, 1.0],
    ],
    dtype=np.float64,
)


@dataclass
class SyntheticCorrespondences:
    """Correspondences with known ground truth.

    Attributes:
        homography: True 3x3 homography mapping source to destination
        inliers: Correspondences consistent with the homography
        outliers: Gross outliers (destination far from the true projection)
        data: inliers followed by outliers, optionally shuffled
    """

    homography: np.ndarray
    inliers: list[Correspondence]
    outliers: list[Correspondence] = field(default_factory=list)
    data: list[Correspondence] = field(default_factory=list)


def random_points(n: int, rng: RandomSource = None, width: float = 640.0, height: float = 480.0) -> np.ndarray:
    """Uniformly distributed (N, 2) points inside a width x height image."""
    gen = make_rng(rng)
    return gen.uniform((0.0, 0.0), (width, height), size=(n, 2))


def make_correspondences(src: np.ndarray, dst: np.ndarray) -> list[Correspondence]:
    return [
        Correspondence(Point2d(float(s[0]), float(s[1])), Point2d(float(d[0]), float(d[1])))
        for s, d in zip(src, dst)
    ]


def generate(
    num_inliers: int,
    num_outliers: int = 0,
    homography: np.ndarray = REFERENCE_HOMOGRAPHY,
    noise_sigma: float = 0.0,
    min_outlier_error: float = 50.0,
    rng: RandomSource = None,
    shuffle: bool = True,
    width: float = 640.0,
    height: float = 480.0,
) -> SyntheticCorrespondences:
    """Generate correspondences under ``homography``.

    Args:
        num_inliers: Number of correspondences consistent with the homography
        num_outliers: Number of gross outliers
        homography: Ground-truth transform
        noise_sigma: Standard deviation (pixels) of Gaussian noise added to
            inlier destinations
        min_outlier_error: Minimum distance (pixels) between an outlier's
            destination and its true projection
        rng: numpy Generator or int seed
        shuffle: Shuffle inliers and outliers together in ``data``

    Returns:
        SyntheticCorrespondences with ground truth
    """
    gen = make_rng(rng)

    src = random_points(num_inliers, gen, width, height)
    dst = project(homography, src)
    if noise_sigma > 0:
        dst = dst + gen.normal(0.0, noise_sigma, size=dst.shape)
    inliers = make_correspondences(src, dst)

    outliers: list[Correspondence] = []
    while len(outliers) < num_outliers:
        s = random_points(1, gen, width, height)
        d = random_points(1, gen, width, height)
        if np.linalg.norm(project(homography, s) - d) >= min_outlier_error:
            outliers.extend(make_correspondences(s, d))

    data = inliers + outliers
    if shuffle:
        order = gen.permutation(len(data))
        data = [data[i] for i in order]

    return SyntheticCorrespondences(
        homography=homography.copy(),
        inliers=inliers,
        outliers=outliers,
        data=data,
    )
