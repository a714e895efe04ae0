"""
Factory for creating robust homography estimators from configuration.
"""

from typing import Optional
import logging

from robust_homography.config import EstimatorConfig, FittingMethod, get_default_config
from robust_homography.fitting.sampling import RandomSource
from robust_homography.fitting.stopping import make_stopping_condition
from robust_homography.homography.estimator import RobustHomographyEstimator

logger = logging.getLogger(__name__)


def create_estimator(
    config: Optional[EstimatorConfig] = None,
    rng: RandomSource = None,
) -> RobustHomographyEstimator:
    """Create a RobustHomographyEstimator for the given configuration.

    Args:
        config: Estimator configuration; get_default_config() if None
        rng: Random source overriding ``config.seed`` (Generator or int)

    Returns:
        A configured estimator ready for fit_data()

    Raises:
        ValueError: If the configuration is invalid

    Example:
        >>> config = EstimatorConfig.from_yaml('estimator.yaml')
        >>> estimator = create_estimator(config)
        >>> ok = estimator.fit_data(pairs)
    """
    if config is None:
        config = get_default_config()
    config.validate()

    if rng is None:
        rng = config.seed

    refinement_kwargs = {
        'refinement_max_iterations': config.refinement_max_iterations,
        'refinement_tolerance': config.refinement_tolerance,
    }

    if config.method is FittingMethod.LMEDS:
        logger.debug(f"Creating LMedS estimator (outlier_proportion={config.outlier_proportion})")
        return RobustHomographyEstimator.with_lmeds(
            config.outlier_proportion,
            config.refinement,
            rng=rng,
            **refinement_kwargs,
        )

    stopping = make_stopping_condition(config.stopping_condition, **config.stopping_params)
    logger.debug(
        f"Creating RANSAC estimator (threshold={config.threshold}, "
        f"max_iterations={config.max_iterations}, stopping={stopping!r})"
    )
    return RobustHomographyEstimator.with_ransac(
        config.threshold,
        config.max_iterations,
        stopping,
        config.refinement,
        rng=rng,
        **refinement_kwargs,
    )
