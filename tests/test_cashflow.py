"""
Tests for CashflowAnalyzer.
"""
import pytest

from lendflow.analysis_engine.cashflow import CashflowAnalyzer, TransactionKind
from lendflow.analysis_engine.documents import BankStatementPayload, BankTransaction
from lendflow.analysis_engine.models import Trend


def statement(**data) -> BankStatementPayload:
    return BankStatementPayload.model_validate(data)


@pytest.fixture
def analyzer() -> CashflowAnalyzer:
    return CashflowAnalyzer()


@pytest.fixture
def quarter_statement() -> BankStatementPayload:
    return statement(transactions=[
        {"date": "2024-01-10", "amount": 5000, "description": "Payroll ACME"},
        {"date": "2024-01-20", "amount": 8000, "description": "Wire from brother", "type": "wire in"},
        {"date": "2024-02-10", "amount": 5000, "description": "Payroll ACME"},
        {"date": "2024-02-15", "amount": -35, "description": "NSF fee"},
        {"date": "2024-02-16", "amount": -30, "description": "Overdraft fee"},
        {"date": "2024-03-10", "amount": 5000, "description": "Payroll ACME"},
        {"date": "2024-03-12", "amount": 200, "description": "Transfer", "type": "debit"},
        {"date": "sometime", "amount": 100, "description": "Cash"},
    ])


class TestTransactionClassification:
    """Tests for transaction kinds."""

    @pytest.mark.parametrize("data,expected", [
        ({"amount": -35, "description": "Returned item fee"}, TransactionKind.NSF),
        ({"amount": -10, "type": "NSF"}, TransactionKind.NSF),
        ({"amount": -30, "description": "OD fee"}, TransactionKind.OVERDRAFT),
        ({"amount": 100, "type": "ACH Credit"}, TransactionKind.DEPOSIT),
        ({"amount": 100}, TransactionKind.DEPOSIT),
        ({"amount": 100, "type": "debit"}, TransactionKind.OTHER),
        ({"amount": -100, "description": "Grocery"}, TransactionKind.OTHER),
    ])
    def test_classify(self, analyzer, data, expected):
        """Test NSF and overdraft take precedence over deposits."""
        assert analyzer.classify_transaction(BankTransaction.model_validate(data)) == expected


class TestCashflowAnalyzer:
    """Tests for deposit analysis."""

    def test_monthly_series(self, analyzer, quarter_statement):
        """Test deposits bucket by month and bad dates are skipped."""
        result = analyzer.analyze([quarter_statement], reported_income=60000)

        assert [(m.month, m.total, m.count) for m in result.monthly_deposits] == [
            ("2024-01", 13000.0, 2),
            ("2024-02", 5000.0, 1),
            ("2024-03", 5000.0, 1),
        ]
        assert result.average_monthly_deposits == 7666.67

    def test_event_counts(self, analyzer, quarter_statement):
        """Test NSF and overdraft counts."""
        result = analyzer.analyze([quarter_statement], reported_income=60000)

        assert result.nsf_count == 1
        assert result.overdraft_count == 1
        assert "1 NSF (non-sufficient funds) item(s) detected." in result.notes

    def test_large_non_payroll_deposits(self, analyzer, quarter_statement):
        """Test payroll deposits are never large deposits."""
        result = analyzer.analyze([quarter_statement], reported_income=60000)

        assert [d.amount for d in result.large_deposits] == [8000.0]

    def test_deposit_to_income_ratio(self, analyzer, quarter_statement):
        """Test deposits above 1.5x income are noted."""
        result = analyzer.analyze([quarter_statement], reported_income=60000)

        assert result.deposit_to_income_ratio == 1.5333
        assert any("deposits significantly exceed reported income" in n for n in result.notes)

    def test_ratio_absent_without_income(self, analyzer, quarter_statement):
        """Test no ratio when reported income is zero."""
        result = analyzer.analyze([quarter_statement], reported_income=0)

        assert result.deposit_to_income_ratio is None

    def test_short_series_trend(self, analyzer, quarter_statement):
        """Test 3 months compare first and last."""
        result = analyzer.analyze([quarter_statement], reported_income=60000)

        assert result.cashflow_trend == Trend.DECLINING

    def test_declining_halves_note(self, analyzer):
        """Test 4+ declining months note both half averages."""
        stmt = statement(transactions=[
            {"date": f"2024-0{m}-01", "amount": amount}
            for m, amount in ((1, 10000), (2, 10000), (3, 6000), (4, 6000))
        ])
        result = analyzer.analyze([stmt], reported_income=0)

        assert result.cashflow_trend == Trend.DECLINING
        assert "Cash flow declining: first-half average $10,000/mo vs. second-half $6,000/mo." in result.notes

    def test_summary_fallback(self, analyzer):
        """Test statements without transactions use summary totals."""
        stmt = statement(totalDeposits=9000, depositCount=3, statementPeriod="April 2024", nsfCount=2)
        result = analyzer.analyze([stmt], reported_income=0)

        assert [(m.month, m.total, m.count) for m in result.monthly_deposits] == [("2024-04", 9000.0, 3)]
        assert result.nsf_count == 2

    def test_summary_counts_rounded_and_clamped(self, analyzer):
        """Test fractional counts round half up and negative counts add nothing."""
        stmts = [
            statement(totalDeposits=1000, statementPeriod="2024-04", nsfCount=2.5, overdraftCount=-3),
            statement(totalDeposits=1000, statementPeriod="2024-05", nsfCount=-1, overdraftCount=1.4),
        ]
        result = analyzer.analyze(stmts, reported_income=0)

        assert result.nsf_count == 3
        assert result.overdraft_count == 1

    def test_no_statements(self, analyzer):
        """Test empty input."""
        result = analyzer.analyze([], reported_income=50000)

        assert result.monthly_deposits == ()
        assert result.average_monthly_deposits == 0.0
        assert "No deposit data available from bank statements." in result.notes

    def test_recurring_payments_deduplicated(self, analyzer):
        """Test payments within $1 with the same description collapse."""
        stmts = [
            statement(regularPayments=[{"description": "Car Loan", "amount": 400.5}]),
            statement(regularPayments=[{"description": "Car Loan", "amount": 400}, {"description": "Gym", "amount": 0}]),
        ]
        result = analyzer.analyze(stmts, reported_income=0)

        assert [(p.description, p.amount) for p in result.regular_payments] == [("Car Loan", 400.0)]

    def test_order_independent(self, analyzer, quarter_statement):
        """Test statement order does not change the result."""
        other = statement(totalDeposits=9000, statementPeriod="2024-04")

        assert analyzer.analyze([quarter_statement, other], 60000) == analyzer.analyze([other, quarter_statement], 60000)
