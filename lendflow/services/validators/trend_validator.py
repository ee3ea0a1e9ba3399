"""
Trend validator for LendFlow.

Classifies period-over-period movement in income, revenue and deposits,
and measures how uneven a series is.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import structlog

logger = structlog.get_logger(__name__)


class Trend(str, Enum):
    """Direction of a period-over-period change."""
    INCREASING = "increasing"
    STABLE = "stable"
    DECLINING = "declining"


@dataclass
class TrendResult:
    """Direction and size of a change between two periods."""

    trend: Trend
    change_percent: float  # decimal fraction, e.g. -0.12


class TrendValidator:
    """
    Validator for directional trends.

    Features:
    - Year-over-year change with a zero-prior convention
    - Three-way classification around a symmetric threshold
    - Half-over-half and first-vs-last comparison for monthly series
    - Coefficient of variation for seasonality checks
    """

    # Thresholds for trend classification
    ANNUAL_THRESHOLD = 0.05
    SHORT_SERIES_THRESHOLD = 0.10

    def change(
        self,
        current_value: float,
        prior_value: float,
        positive_prior_only: bool = False,
    ) -> float:
        """
        Relative change from prior to current as a decimal fraction.

        A prior of zero followed by a positive value counts as +100%.

        Args:
            current_value: Latest period value.
            prior_value: Preceding period value.
            positive_prior_only: Only divide by a strictly positive prior
                (revenue convention); otherwise divide by |prior|.
        """
        if positive_prior_only:
            if prior_value > 0:
                return (current_value - prior_value) / prior_value
        elif prior_value != 0:
            return (current_value - prior_value) / abs(prior_value)

        if current_value > 0:
            return 1.0
        return 0.0

    def classify(self, change_percent: float, threshold: float = ANNUAL_THRESHOLD) -> Trend:
        """Classify a change strictly above/below +/- threshold."""
        if change_percent > threshold:
            return Trend.INCREASING
        if change_percent < -threshold:
            return Trend.DECLINING
        return Trend.STABLE

    def year_over_year(
        self,
        current_value: float,
        prior_value: float,
        positive_prior_only: bool = False,
    ) -> TrendResult:
        """Compare two consecutive years."""
        change_pct = self.change(current_value, prior_value, positive_prior_only)
        return TrendResult(trend=self.classify(change_pct), change_percent=change_pct)

    def series_trend(self, values: Sequence[float]) -> Optional[TrendResult]:
        """
        Trend of a chronological monthly series.

        With 4+ points the first half average is compared to the second half
        average (5% threshold). With 2-3 points the first and last values are
        compared with a looser 10% threshold. Returns None when the series is
        too short or starts at zero.
        """
        if len(values) >= 4:
            midpoint = len(values) // 2
            first_half = values[:midpoint]
            second_half = values[midpoint:]
            first_avg = sum(first_half) / len(first_half)
            second_avg = sum(second_half) / len(second_half)
            if first_avg <= 0:
                return None
            change_pct = (second_avg - first_avg) / first_avg
            return TrendResult(trend=self.classify(change_pct), change_percent=change_pct)

        if len(values) >= 2:
            first = values[0]
            last = values[-1]
            if first <= 0:
                return None
            change_pct = (last - first) / first
            return TrendResult(
                trend=self.classify(change_pct, self.SHORT_SERIES_THRESHOLD),
                change_percent=change_pct,
            )

        return None

    def coefficient_of_variation(self, values: Sequence[float]) -> Optional[float]:
        """Population standard deviation over mean; None for an empty or non-positive mean."""
        if not values:
            return None
        mean = sum(values) / len(values)
        if mean <= 0:
            return None
        variance = sum((v - mean) ** 2 for v in values) / len(values)
        return math.sqrt(variance) / mean


# Singleton instance
_validator_instance: Optional[TrendValidator] = None


def get_trend_validator() -> TrendValidator:
    """Get singleton TrendValidator instance."""
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = TrendValidator()
    return _validator_instance
