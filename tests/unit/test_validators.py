"""
Unit tests for the accounting equation and trend validators.
"""
import pytest

from lendflow.services.validators.accounting_equation import (
    AccountingEquationValidator,
    BalanceSheetTotals,
)
from lendflow.services.validators.trend_validator import Trend, TrendValidator


class TestAccountingEquationValidator:
    """Tests for AccountingEquationValidator."""

    @pytest.fixture
    def validator(self) -> AccountingEquationValidator:
        return AccountingEquationValidator()

    def test_balanced_sheet(self, validator):
        """Test A = L + E passes."""
        result = validator.validate(BalanceSheetTotals(200000, 80000, 120000))

        assert result.is_valid is True
        assert result.severity == "info"

    def test_imbalanced_sheet(self, validator):
        """Test a material difference fails with details."""
        result = validator.validate(BalanceSheetTotals(200000, 80000, 100000))

        assert result.is_valid is False
        assert result.severity == "high"
        assert result.details["expected"] == 180000
        assert result.details["difference"] == 20000

    def test_difference_within_tolerance(self, validator):
        """Test differences up to 0.1% of assets are rounding."""
        result = validator.validate(BalanceSheetTotals(1000000, 500000, 499000))

        assert result.is_valid is True

    def test_minimum_tolerance_is_one_dollar(self, validator):
        """Test small sheets still allow a $1 difference."""
        assert validator.tolerance_for(100) == 1.0
        assert validator.validate(BalanceSheetTotals(100, 50, 49)).is_valid is True
        assert validator.validate(BalanceSheetTotals(100, 50, 48)).is_valid is False

    def test_incomplete_sheet_is_not_checked(self, validator):
        """Test missing assets or L + E skips the check."""
        assert validator.validate(BalanceSheetTotals(0, 80000, 120000)) is None
        assert validator.validate(BalanceSheetTotals(200000, 0, 0)) is None


class TestTrendValidator:
    """Tests for TrendValidator."""

    @pytest.fixture
    def validator(self) -> TrendValidator:
        return TrendValidator()

    def test_change_divides_by_absolute_prior(self, validator):
        """Test a negative prior uses its magnitude."""
        assert validator.change(50, -100) == pytest.approx(1.5)

    def test_change_from_zero_prior(self, validator):
        """Test a zero prior followed by income is +100%."""
        assert validator.change(500, 0) == 1.0
        assert validator.change(0, 0) == 0.0

    def test_positive_prior_only(self, validator):
        """Test revenue convention ignores a negative prior."""
        assert validator.change(100, -50, positive_prior_only=True) == 1.0

    def test_classify_threshold_is_strict(self, validator):
        """Test exactly 5% is stable."""
        assert validator.classify(0.05) == Trend.STABLE
        assert validator.classify(0.0501) == Trend.INCREASING
        assert validator.classify(-0.0501) == Trend.DECLINING

    def test_year_over_year(self, validator):
        """Test a 25% decline."""
        result = validator.year_over_year(60000, 80000)

        assert result.trend == Trend.DECLINING
        assert result.change_percent == pytest.approx(-0.25)

    def test_series_trend_halves(self, validator):
        """Test 4+ points compare half averages."""
        result = validator.series_trend([100, 100, 80, 80])

        assert result.trend == Trend.DECLINING
        assert result.change_percent == pytest.approx(-0.2)

    def test_series_trend_short_series_uses_wider_threshold(self, validator):
        """Test 2-3 points compare first and last against 10%."""
        assert validator.series_trend([100, 108]).trend == Trend.STABLE
        assert validator.series_trend([100, 90, 111]).trend == Trend.INCREASING

    def test_series_trend_too_short(self, validator):
        """Test a single point has no trend."""
        assert validator.series_trend([100]) is None
        assert validator.series_trend([0, 100]) is None

    def test_coefficient_of_variation(self, validator):
        """Test population CV."""
        assert validator.coefficient_of_variation([100, 100, 100]) == 0.0
        assert validator.coefficient_of_variation([50, 150]) == pytest.approx(0.5)
        assert validator.coefficient_of_variation([]) is None
