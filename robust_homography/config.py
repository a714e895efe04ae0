"""
Configuration for robust homography estimation.

Selects the robust fitter (RANSAC or LMedS), its parameters and the
refinement technique. Configuration can be built in code, from a dictionary
or from a YAML file with a ``homography_estimation`` section:

    homography_estimation:
      method: ransac
      threshold: 4.0
      max_iterations: 2000
      stopping_condition: probabilistic
      stopping_params:
        confidence: 0.995
      refinement: symmetric_transfer
      seed: 42
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml

from robust_homography.fitting.stopping import StoppingConditionType, make_stopping_condition
from robust_homography.homography.refinement import (
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_TOLERANCE,
    HomographyRefinement,
)

logger = logging.getLogger(__name__)

CONFIG_SECTION = 'homography_estimation'


class FittingMethod(Enum):
    """Enumeration of supported robust fitting methods."""

    RANSAC = "ransac"
    """Random sample consensus with a fixed inlier threshold."""

    LMEDS = "lmeds"
    """Least median of squares; needs an expected outlier proportion instead of a threshold."""


@dataclass
class EstimatorConfig:
    """Configuration for RobustHomographyEstimator construction.

    Attributes:
        method: Robust fitting method
        threshold: RANSAC inlier threshold on the squared transfer error (pixels^2)
        max_iterations: RANSAC iteration cap
        stopping_condition: RANSAC stopping policy
        stopping_params: Parameters for the stopping policy
            ('limit', 'percentage' or 'confidence')
        outlier_proportion: LMedS expected outlier proportion in [0, 1)
        refinement: Geometric error minimized on the inliers
        refinement_max_iterations: Residual-evaluation budget of the refinement
            (least_squares max_nfev; about 10 evaluations per LM iteration)
        refinement_tolerance: Relative cost tolerance of the refinement
        seed: Seed for the random sampler (None for OS entropy)
    """
    method: FittingMethod = FittingMethod.RANSAC
    threshold: float = 4.0
    max_iterations: int = 2000
    stopping_condition: StoppingConditionType = StoppingConditionType.PROBABILISTIC
    stopping_params: Dict[str, Any] = field(default_factory=dict)
    outlier_proportion: float = 0.4
    refinement: HomographyRefinement = HomographyRefinement.SYMMETRIC_TRANSFER
    refinement_max_iterations: int = DEFAULT_MAX_ITERATIONS
    refinement_tolerance: float = DEFAULT_TOLERANCE
    seed: Optional[int] = None

    def validate(self) -> None:
        """Check parameter ranges.

        Raises:
            ValueError: If any parameter is out of range
        """
        if self.threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {self.threshold}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be positive, got {self.max_iterations}")
        if not 0.0 <= self.outlier_proportion < 1.0:
            raise ValueError(
                f"outlier_proportion must be in range [0.0, 1.0), got {self.outlier_proportion}"
            )
        if self.refinement_max_iterations < 1:
            raise ValueError(
                f"refinement_max_iterations must be positive, got {self.refinement_max_iterations}"
            )
        if self.refinement_tolerance <= 0:
            raise ValueError(f"refinement_tolerance must be positive, got {self.refinement_tolerance}")
        # Builds (and discards) the stopping condition to surface parameter errors early
        make_stopping_condition(self.stopping_condition, **self.stopping_params)

    @classmethod
    def from_yaml(cls, path: str) -> 'EstimatorConfig':
        """Load configuration from a YAML file.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file is malformed or contains invalid values
        """
        config_path = Path(path)

        if not config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {path}\n"
                f"Please create a configuration file or use get_default_config()"
            )

        try:
            with open(config_path, 'r') as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Failed to parse YAML configuration file: {e}") from e

        if not data or CONFIG_SECTION not in data:
            raise ValueError(
                f"Configuration file missing '{CONFIG_SECTION}' section: {path}\n"
                f"Expected structure: {CONFIG_SECTION}:\n  method: ...\n  ..."
            )

        return cls.from_dict(data[CONFIG_SECTION])

    @staticmethod
    def _parse_enum(enum_cls, value: Any, key: str):
        if isinstance(value, enum_cls):
            return value
        try:
            return enum_cls(value)
        except ValueError:
            valid = [m.value for m in enum_cls]
            raise ValueError(
                f"Invalid {key} '{value}'. Must be one of: {', '.join(valid)}"
            ) from None

    @classmethod
    def from_dict(cls, config: dict) -> 'EstimatorConfig':
        """Create configuration from a dictionary.

        Unknown keys are rejected so that typos do not silently fall back to
        defaults.

        Raises:
            ValueError: If the configuration is invalid
        """
        if not isinstance(config, dict):
            raise ValueError(f"Configuration must be a dictionary, got {type(config)}")

        known = set(cls.__dataclass_fields__)
        unknown = set(config) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        kwargs = dict(config)
        if 'method' in kwargs:
            kwargs['method'] = cls._parse_enum(FittingMethod, kwargs['method'], 'method')
        if 'stopping_condition' in kwargs:
            kwargs['stopping_condition'] = cls._parse_enum(
                StoppingConditionType, kwargs['stopping_condition'], 'stopping_condition'
            )
        if 'refinement' in kwargs:
            kwargs['refinement'] = cls._parse_enum(
                HomographyRefinement, kwargs['refinement'], 'refinement'
            )
        if kwargs.get('stopping_params') is None:
            kwargs.pop('stopping_params', None)
        elif not isinstance(kwargs['stopping_params'], dict):
            raise ValueError(
                f"'stopping_params' must be a dictionary, got {type(kwargs['stopping_params'])}"
            )

        result = cls(**kwargs)
        result.validate()
        return result

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary suitable for YAML serialization."""
        return {
            'method': self.method.value,
            'threshold': self.threshold,
            'max_iterations': self.max_iterations,
            'stopping_condition': self.stopping_condition.value,
            'stopping_params': dict(self.stopping_params),
            'outlier_proportion': self.outlier_proportion,
            'refinement': self.refinement.value,
            'refinement_max_iterations': self.refinement_max_iterations,
            'refinement_tolerance': self.refinement_tolerance,
            'seed': self.seed,
        }

    def save_to_yaml(self, path: str) -> None:
        """Save configuration to a YAML file, creating parent directories.

        Raises:
            IOError: If the file cannot be written
        """
        config_path = Path(path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        output = {CONFIG_SECTION: self.to_dict()}

        try:
            with open(config_path, 'w') as f:
                yaml.safe_dump(output, f, default_flow_style=False, sort_keys=False)
        except IOError as e:
            raise IOError(f"Failed to write configuration file: {e}") from e
        logger.info(f"Saved estimator configuration to {config_path}")


def get_default_config() -> EstimatorConfig:
    """Return the default configuration: adaptive RANSAC with symmetric-transfer refinement."""
    return EstimatorConfig()
