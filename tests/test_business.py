"""
Tests for BusinessAnalyzer.
"""
import pytest

from conftest import record
from lendflow.analysis_engine.business import BusinessAnalyzer
from lendflow.analysis_engine.classification import DocumentClassifier
from lendflow.analysis_engine.models import DocumentType, Trend


def analyze(records, reference_year=2024):
    classified = DocumentClassifier().classify(records)
    return BusinessAnalyzer().analyze(classified.business_documents(), reference_year)


class TestBusinessAnalyzer:
    """Tests for business financials."""

    def test_no_business_documents(self):
        """Test W-2 only input has no business analysis."""
        assert analyze([record("W2", {"wages": 1})]) is None

    def test_schedule_c_two_years(self):
        """Test trend, add-backs and expense ratio of the latest year."""
        result = analyze([
            record("Schedule C", {
                "grossReceipts": 150000, "totalExpenses": 70000, "netProfit": 80000, "depreciation": 5000,
            }, year=2023),
            record("Schedule C", {
                "grossReceipts": 120000, "totalExpenses": 110000, "netProfit": 10000,
                "depreciation": 2000, "interestExpense": 1000, "casualtyLoss": -500,
            }, year=2024),
        ])

        assert result.revenue_by_year == {2023: 150000.0, 2024: 120000.0}
        assert result.revenue_trend == Trend.DECLINING
        assert result.revenue_trend_percent == -0.2
        assert result.add_backs.one_time == 500.0
        assert result.add_backs.total == 3500.0
        assert result.adjusted_net_income == 13500.0
        assert result.adjusted_net_by_year == {2023: 85000.0, 2024: 13500.0}
        assert result.expense_ratio == 0.9167
        assert result.high_expense_ratio is True
        assert "Revenue declining 20% year-over-year." in result.notes

    def test_corporate_gain_reduces_add_backs(self):
        """Test a reported gain is subtracted from adjusted income."""
        result = analyze([record("1120", {
            "grossReceipts": 500000,
            "totalDeductions": 400000,
            "taxableIncome": 100000,
            "officerCompensation": 50000,
            "depreciation": 8000,
            "netGainLoss": 10000,
        }, year=2024)])

        assert result.owner_compensation == 50000.0
        assert result.add_backs.one_time == -10000.0
        assert result.adjusted_net_income == 148000.0
        assert "Only 1 year of business data. Trend analysis limited." in result.notes

    def test_profit_and_loss_net_derived(self):
        """Test P&L net income falls back to revenue less expenses."""
        result = analyze([record("P&L", {
            "totalRevenue": 100000, "totalExpenses": 60000, "oneTimeExpenses": 2000,
        }, year=2024)])

        entry = result.entries[0]
        assert entry.net_income == 40000.0
        assert entry.document_type == DocumentType.PROFIT_AND_LOSS
        assert result.adjusted_net_income == 42000.0
        assert len(result.entries) == 1

    def test_multiple_entities_same_year(self):
        """Test two tax-return entities in one year are counted."""
        result = analyze([
            record("1120", {"grossReceipts": 100000, "totalDeductions": 90000}, year=2024),
            record("Schedule C", {"grossReceipts": 50000, "totalExpenses": 20000}, year=2024),
        ])

        assert result.tax_return_entities_by_year == {2024: 2}
        assert result.max_entities_in_a_year == 2
        assert "Multiple business entities in 2024: form_1120, schedule_c." in result.notes

    def test_profit_and_loss_is_not_a_tax_entity(self):
        """Test a P&L does not count as a separate entity."""
        result = analyze([
            record("Schedule C", {"grossReceipts": 50000, "totalExpenses": 20000}, year=2024),
            record("P&L", {"totalRevenue": 52000, "totalExpenses": 21000}, year=2024),
        ])

        assert result.max_entities_in_a_year == 1
        assert result.entities_by_year == {2024: 2}

    def test_zero_prior_revenue(self):
        """Test a non-positive prior year counts as +100%."""
        result = analyze([
            record("Schedule C", {"grossReceipts": 0, "netProfit": -100}, year=2023),
            record("Schedule C", {"grossReceipts": 5000, "totalExpenses": 1000}, year=2024),
        ])

        assert result.revenue_trend == Trend.INCREASING
        assert result.revenue_trend_percent == 1.0

    def test_order_independent(self):
        """Test permuted input gives an equal result."""
        records = [
            record("1120", {"grossReceipts": 100000, "totalDeductions": 90000}, year=2024),
            record("Schedule C", {"grossReceipts": 50000, "totalExpenses": 20000}, year=2023),
            record("Schedule C", {"grossReceipts": 55000, "totalExpenses": 21000}, year=2024),
        ]

        assert analyze(records) == analyze(list(reversed(records)))

    @pytest.mark.parametrize("revenue", [0, "N/A"])
    def test_expense_ratio_without_revenue(self, revenue):
        """Test zero revenue gives a zero expense ratio."""
        result = analyze([record("Schedule C", {"grossReceipts": revenue, "totalExpenses": 500}, year=2024)])

        assert result.expense_ratio == 0.0
        assert result.high_expense_ratio is False
