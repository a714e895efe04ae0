"""
RANSAC stopping conditions.

A stopping condition decides when the RANSAC sampling loop may terminate
before its hard iteration cap, and whether the best hypothesis found is good
enough to be reported as a successful fit.

Conditions:
    - BestFitStoppingCondition: run every iteration, keep the best
    - NumberInliersStoppingCondition: stop once a fixed inlier count is reached
    - PercentageInliersStoppingCondition: stop once a fraction of the data agrees
    - ProbabilisticMinInliersStoppingCondition: adaptive Fischler-Bolles rule
"""

from __future__ import annotations

import math
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any

# Upper bound returned when no all-inlier sample can be expected
MAX_ADAPTIVE_ITERATIONS = 10**9


def required_iterations(confidence: float, inlier_ratio: float, sample_size: int) -> int:
    """Number of iterations needed to draw one all-inlier sample with probability ``confidence``.

    With inlier ratio w and sample size s, the probability that k independent
    samples all contain an outlier is (1 - w^s)^k, so

        k >= log(1 - p) / log(1 - w^s)

    Edge cases:
        - w >= 1 -> 1 iteration is enough
        - w <= 0 -> MAX_ADAPTIVE_ITERATIONS
    """
    if sample_size <= 0:
        raise ValueError(f"sample_size must be >= 1, got {sample_size}")
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must be in (0, 1), got {confidence}")

    w = min(max(float(inlier_ratio), 0.0), 1.0)
    if w >= 1.0:
        return 1
    if w <= 0.0:
        return MAX_ADAPTIVE_ITERATIONS

    p_good_sample = w ** sample_size
    if p_good_sample <= 1e-300:
        return MAX_ADAPTIVE_ITERATIONS
    denominator = math.log1p(-p_good_sample)
    if denominator >= 0.0:
        return 1
    k = math.ceil(math.log1p(-confidence) / denominator)
    return int(min(max(1, k), MAX_ADAPTIVE_ITERATIONS))


class StoppingConditionType(Enum):
    """Enumeration of supported RANSAC stopping policies."""

    BEST_FIT = "best_fit"
    """Never stop early; evaluate every iteration and keep the best."""

    NUMBER_INLIERS = "number_inliers"
    """Stop as soon as a fixed number of inliers is found."""

    PERCENTAGE_INLIERS = "percentage_inliers"
    """Stop as soon as a fixed fraction of the data are inliers."""

    PROBABILISTIC = "probabilistic"
    """Adaptive iteration count from the current inlier ratio and a target confidence."""


class StoppingCondition(ABC):
    """Policy deciding early termination and final acceptance for RANSAC."""

    def init(self, num_items: int, sample_size: int) -> None:
        """Reset internal state at the start of a fit."""
        self.num_items = num_items
        self.sample_size = sample_size

    @abstractmethod
    def should_stop(self, num_inliers: int, iteration: int) -> bool:
        """Return True if sampling may stop.

        Args:
            num_inliers: Inlier count of the best hypothesis so far.
            iteration: Number of iterations completed so far.
        """

    def final_fit_condition(self, num_inliers: int) -> bool:
        """Return True if the best hypothesis is acceptable as a result."""
        return num_inliers >= self.sample_size


class BestFitStoppingCondition(StoppingCondition):
    """Runs all iterations; any hypothesis with a minimal inlier set is accepted."""

    def should_stop(self, num_inliers: int, iteration: int) -> bool:
        return False

    def __repr__(self) -> str:
        return "BestFitStoppingCondition()"


class NumberInliersStoppingCondition(StoppingCondition):
    """Stops once ``limit`` inliers are found; fails the fit below that count."""

    def __init__(self, limit: int):
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        self.limit = int(limit)

    def init(self, num_items: int, sample_size: int) -> None:
        super().init(num_items, sample_size)
        self._effective_limit = max(self.limit, sample_size)

    def should_stop(self, num_inliers: int, iteration: int) -> bool:
        return num_inliers >= self._effective_limit

    def final_fit_condition(self, num_inliers: int) -> bool:
        return num_inliers >= self._effective_limit

    def __repr__(self) -> str:
        return f"NumberInliersStoppingCondition(limit={self.limit})"


class PercentageInliersStoppingCondition(NumberInliersStoppingCondition):
    """Stops once ``percentage`` of the data are inliers."""

    def __init__(self, percentage: float):
        if not 0.0 < percentage <= 1.0:
            raise ValueError(f"percentage must be in (0, 1], got {percentage}")
        self.percentage = float(percentage)
        self.limit = 1

    def init(self, num_items: int, sample_size: int) -> None:
        self.limit = max(1, int(round(self.percentage * num_items)))
        super().init(num_items, sample_size)

    def __repr__(self) -> str:
        return f"PercentageInliersStoppingCondition(percentage={self.percentage})"


class ProbabilisticMinInliersStoppingCondition(StoppingCondition):
    """Adaptive stopping from the best inlier ratio and a target confidence.

    The required iteration count is recomputed whenever the best inlier count
    changes; the loop stops once that many iterations have run.
    """

    def __init__(self, confidence: float = 0.99):
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {confidence}")
        self.confidence = float(confidence)

    def init(self, num_items: int, sample_size: int) -> None:
        super().init(num_items, sample_size)
        self._last_inliers = -1
        self.required = MAX_ADAPTIVE_ITERATIONS

    def should_stop(self, num_inliers: int, iteration: int) -> bool:
        if num_inliers != self._last_inliers and num_inliers >= self.sample_size:
            self._last_inliers = num_inliers
            self.required = required_iterations(
                self.confidence, num_inliers / float(self.num_items), self.sample_size
            )
        return iteration >= self.required

    def __repr__(self) -> str:
        return f"ProbabilisticMinInliersStoppingCondition(confidence={self.confidence})"


def make_stopping_condition(kind: StoppingConditionType | str, **params: Any) -> StoppingCondition:
    """Create a stopping condition from its type and keyword parameters.

    Raises:
        ValueError: If the type is unknown or required parameters are missing.
    """
    if isinstance(kind, str):
        try:
            kind = StoppingConditionType(kind)
        except ValueError:
            valid = [k.value for k in StoppingConditionType]
            raise ValueError(
                f"Invalid stopping condition '{kind}'. Must be one of: {', '.join(valid)}"
            ) from None

    if kind is StoppingConditionType.BEST_FIT:
        return BestFitStoppingCondition()
    if kind is StoppingConditionType.NUMBER_INLIERS:
        if 'limit' not in params:
            raise ValueError("number_inliers stopping condition requires 'limit'")
        return NumberInliersStoppingCondition(params['limit'])
    if kind is StoppingConditionType.PERCENTAGE_INLIERS:
        if 'percentage' not in params:
            raise ValueError("percentage_inliers stopping condition requires 'percentage'")
        return PercentageInliersStoppingCondition(params['percentage'])
    return ProbabilisticMinInliersStoppingCondition(params.get('confidence', 0.99))
