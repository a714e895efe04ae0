#!/usr/bin/env python3
"""
Unit tests for estimator configuration and the estimator factory.

Tests cover:
- Default configuration values
- Dictionary parsing, enum conversion and validation errors
- YAML save/load round trip and malformed files
- create_estimator() for RANSAC and LMedS
"""

import pytest
import yaml

from robust_homography import (
    LMedS,
    NumberInliersStoppingCondition,
    ProbabilisticMinInliersStoppingCondition,
    RANSAC,
)
from robust_homography.config import (
    CONFIG_SECTION,
    EstimatorConfig,
    FittingMethod,
    get_default_config,
)
from robust_homography.factory import create_estimator
from robust_homography.fitting.stopping import StoppingConditionType
from robust_homography.homography.refinement import HomographyRefinement
from robust_homography.testing import generate


# ============================================================================
# Test: EstimatorConfig
# ============================================================================

class TestEstimatorConfig:
    """Tests for EstimatorConfig parsing and validation."""

    def test_defaults(self):
        config = get_default_config()
        assert config.method is FittingMethod.RANSAC
        assert config.threshold == 4.0
        assert config.stopping_condition is StoppingConditionType.PROBABILISTIC
        assert config.refinement is HomographyRefinement.SYMMETRIC_TRANSFER
        assert config.seed is None
        config.validate()

    def test_from_dict_parses_enums(self):
        config = EstimatorConfig.from_dict({
            'method': 'lmeds',
            'outlier_proportion': 0.3,
            'refinement': 'sampson',
            'stopping_condition': 'number_inliers',
            'stopping_params': {'limit': 10},
        })
        assert config.method is FittingMethod.LMEDS
        assert config.outlier_proportion == 0.3
        assert config.refinement is HomographyRefinement.SAMPSON
        assert config.stopping_condition is StoppingConditionType.NUMBER_INLIERS

    def test_from_dict_null_stopping_params(self):
        config = EstimatorConfig.from_dict({'stopping_params': None})
        assert config.stopping_params == {}

    def test_invalid_enum_value(self):
        with pytest.raises(ValueError, match="Invalid refinement 'gold'"):
            EstimatorConfig.from_dict({'refinement': 'gold'})

    def test_unknown_keys_rejected(self):
        with pytest.raises(ValueError, match="Unknown configuration keys: treshold"):
            EstimatorConfig.from_dict({'treshold': 2.0})

    def test_non_dict_rejected(self):
        with pytest.raises(ValueError, match="dictionary"):
            EstimatorConfig.from_dict(['ransac'])

    @pytest.mark.parametrize(
        "values",
        [
            {'threshold': -1.0},
            {'max_iterations': 0},
            {'outlier_proportion': 1.0},
            {'refinement_max_iterations': 0},
            {'refinement_tolerance': 0.0},
            {'stopping_condition': 'number_inliers'},
            {'stopping_condition': 'percentage_inliers', 'stopping_params': {'percentage': 2.0}},
        ],
    )
    def test_invalid_values(self, values):
        with pytest.raises(ValueError):
            EstimatorConfig.from_dict(values)


# ============================================================================
# Test: YAML
# ============================================================================

class TestYaml:
    """Tests for YAML persistence."""

    def test_round_trip(self, tmp_path):
        config = EstimatorConfig(
            method=FittingMethod.RANSAC,
            threshold=2.5,
            stopping_condition=StoppingConditionType.PERCENTAGE_INLIERS,
            stopping_params={'percentage': 0.6},
            refinement=HomographyRefinement.SINGLE_IMAGE_TRANSFER_INVERSE,
            seed=7,
        )
        path = tmp_path / 'nested' / 'estimator.yaml'

        config.save_to_yaml(str(path))
        loaded = EstimatorConfig.from_yaml(str(path))

        assert loaded == config

    def test_saved_file_has_section(self, tmp_path):
        path = tmp_path / 'estimator.yaml'
        get_default_config().save_to_yaml(str(path))

        data = yaml.safe_load(path.read_text())
        assert data[CONFIG_SECTION]['method'] == 'ransac'
        assert data[CONFIG_SECTION]['refinement'] == 'symmetric_transfer'

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            EstimatorConfig.from_yaml(str(tmp_path / 'missing.yaml'))

    def test_missing_section(self, tmp_path):
        path = tmp_path / 'other.yaml'
        path.write_text("camera:\n  name: front\n")
        with pytest.raises(ValueError, match=CONFIG_SECTION):
            EstimatorConfig.from_yaml(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / 'broken.yaml'
        path.write_text("homography_estimation: [unclosed\n")
        with pytest.raises(ValueError, match="Failed to parse YAML"):
            EstimatorConfig.from_yaml(str(path))


# ============================================================================
# Test: Factory
# ============================================================================

class TestCreateEstimator:
    """Tests for create_estimator()."""

    def test_default_is_adaptive_ransac(self):
        estimator = create_estimator()
        assert isinstance(estimator.fitter, RANSAC)
        assert isinstance(estimator.fitter.stopping_condition, ProbabilisticMinInliersStoppingCondition)
        assert estimator.refinement is HomographyRefinement.SYMMETRIC_TRANSFER

    def test_ransac_parameters_propagate(self):
        config = EstimatorConfig(
            threshold=3.0,
            max_iterations=150,
            stopping_condition=StoppingConditionType.NUMBER_INLIERS,
            stopping_params={'limit': 12},
            refinement=HomographyRefinement.NONE,
            refinement_max_iterations=20,
        )
        estimator = create_estimator(config)

        assert estimator.fitter.threshold == 3.0
        assert estimator.fitter.max_iterations == 150
        assert isinstance(estimator.fitter.stopping_condition, NumberInliersStoppingCondition)
        assert estimator.fitter.stopping_condition.limit == 12
        assert estimator.refinement is HomographyRefinement.NONE
        assert estimator.refinement_max_iterations == 20

    def test_lmeds(self):
        estimator = create_estimator(EstimatorConfig(method=FittingMethod.LMEDS, outlier_proportion=0.25))
        assert isinstance(estimator.fitter, LMedS)
        assert estimator.fitter.outlier_proportion == 0.25

    def test_invalid_config_raises(self):
        config = EstimatorConfig(stopping_condition=StoppingConditionType.NUMBER_INLIERS)
        with pytest.raises(ValueError, match="limit"):
            create_estimator(config)

    def test_seed_gives_reproducible_fits(self):
        data = generate(30, num_outliers=8, noise_sigma=0.5, rng=51).data
        config = EstimatorConfig(seed=99)

        first, second = create_estimator(config), create_estimator(config)
        assert first.fit_data(data)
        assert second.fit_data(data)
        assert first.get_inliers() == second.get_inliers()
