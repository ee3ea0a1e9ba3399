"""
Tests for RiskFlagDetector and RiskScorer.
"""
from dataclasses import replace

import pytest

from conftest import income_of, record
from lendflow.analysis_engine.business import BusinessAnalyzer
from lendflow.analysis_engine.cashflow import CashflowAnalyzer
from lendflow.analysis_engine.classification import DocumentClassifier
from lendflow.analysis_engine.documents import BalanceSheetPayload
from lendflow.analysis_engine.dscr import DscrCalculator
from lendflow.analysis_engine.dti import DtiCalculator
from lendflow.analysis_engine.income import IncomeAnalyzer
from lendflow.analysis_engine.liquidity import LiquidityAnalyzer
from lendflow.analysis_engine.models import (
    BoundedReserves,
    Deposit,
    MonthlyDeposits,
    RiskFlag,
    RiskRating,
    Severity,
    Trend,
    UnboundedReserves,
)
from lendflow.analysis_engine.risk_flags import RiskFlagDetector, RiskScorer


@pytest.fixture
def detector() -> RiskFlagDetector:
    return RiskFlagDetector()


@pytest.fixture
def clean():
    """Analyses of a borrower with nothing to flag."""
    income = income_of(90000)
    liquidity = replace(
        LiquidityAnalyzer().analyze([], None, monthly_debt_service=0),
        months_of_reserves=UnboundedReserves(),
    )
    return {
        "income": income,
        "business": None,
        "cashflow": CashflowAnalyzer().analyze([], reported_income=0),
        "dscr": DscrCalculator().calculate(income, []),
        "dti": DtiCalculator().calculate(income, []),
        "liquidity": liquidity,
    }


def titles(flags):
    return [f.title for f in flags]


class TestRiskFlagDetector:
    """Tests for flag detection."""

    def test_clean_borrower(self, detector, clean):
        """Test no findings yields no flags."""
        assert detector.detect(**clean) == ()

    def test_sorted_by_severity_then_title(self, detector, clean):
        """Test high flags come first, ties ordered by title."""
        flags = detector.detect(**{
            **clean,
            "dscr": replace(clean["dscr"], global_dscr=0.8),
            "dti": replace(clean["dti"], back_end_dti=0.45),
            "cashflow": replace(clean["cashflow"], nsf_count=1, overdraft_count=1),
        })

        assert titles(flags) == [
            "DSCR Below 1.0",
            "Elevated Debt-to-Income",
            "NSF Items Present",
            "Overdraft Activity",
        ]

    def test_marginal_dscr(self, detector, clean):
        """Test coverage just under 1.25 is marginal."""
        flags = detector.check_debt_service(replace(clean["dscr"], global_dscr=1.24999))

        assert flags[0].title == "Marginal DSCR"
        assert flags[0].severity == Severity.MEDIUM
        assert flags[0].description == "Global DSCR is 1.25. Coverage is positive but thin."

    def test_excessive_dti(self, detector, clean):
        """Test DTI over 50% is high severity."""
        flags = detector.check_debt_to_income(replace(clean["dti"], back_end_dti=0.55))

        assert flags[0].severity == Severity.HIGH
        assert flags[0].description == "Back-end DTI is 55.0%, exceeding the 50% maximum threshold."

    @pytest.mark.parametrize("change,title,severity", [
        (-0.25, "Significant Income Decline", Severity.HIGH),
        (-0.10, "Modest Income Decline", Severity.LOW),
    ])
    def test_income_decline(self, detector, change, title, severity):
        """Test decline severity follows its size."""
        income = replace(income_of(60000), trend=Trend.DECLINING, trend_percent=change)
        flags = detector.check_income(income)

        assert titles(flags) == [title]
        assert flags[0].severity == severity
        assert flags[0].description == f"Income declined {round(abs(change) * 100)}% year-over-year."

    def test_no_qualifying_income(self, detector):
        """Test zero income is a high flag."""
        flags = detector.check_income(income_of(0))

        assert titles(flags) == ["No Qualifying Income"]
        assert flags[0].severity == Severity.HIGH

    def test_limited_history_and_first_landlord(self, detector):
        """Test one year of self-employment and rental income."""
        classified = DocumentClassifier().classify([
            record("Schedule C", {"grossReceipts": 100000, "netProfit": 50000}, year=2024),
            record("Schedule E", {"totalNetRentalIncome": 8000, "totalRentsReceived": 20000}, year=2024),
        ])
        income = IncomeAnalyzer().analyze(classified.income_documents(), 2024)

        assert titles(detector.check_income(income)) == [
            "Limited Self-Employment History",
            "First-Time Landlord",
        ]

    def test_frequent_nsf(self, detector, clean):
        """Test more than three NSFs is high severity."""
        flags = detector.check_cash_management(
            replace(clean["cashflow"], nsf_count=4, overdraft_count=5), clean["liquidity"]
        )

        assert [(f.title, f.severity) for f in flags] == [
            ("Frequent NSF Items", Severity.HIGH),
            ("Overdraft Activity", Severity.MEDIUM),
        ]

    def test_large_deposits(self, detector, clean):
        """Test large deposits are totalled."""
        cashflow = replace(clean["cashflow"], large_deposits=(
            Deposit(date="2024-01-02", amount=8000.0, description="Wire"),
            Deposit(date="2024-02-02", amount=6000.0, description="Transfer"),
        ))
        flags = detector.check_cash_management(cashflow, clean["liquidity"])

        assert flags[0].description == (
            "2 large non-payroll deposit(s) totaling $14,000 detected. These may require sourcing."
        )

    @pytest.mark.parametrize("ratio,title", [
        (1.8, "Deposits Exceed Reported Income"),
        (0.5, "Deposits Below Reported Income"),
    ])
    def test_deposit_ratio(self, detector, clean, ratio, title):
        """Test deposits far from reported income are flagged."""
        flags = detector.check_cash_management(
            replace(clean["cashflow"], deposit_to_income_ratio=ratio), clean["liquidity"]
        )

        assert titles(flags) == [title]

    def test_seasonal_pattern(self, detector, clean):
        """Test uneven monthly deposits over six months."""
        months = tuple(
            MonthlyDeposits(month=f"2024-0{i}", total=total, count=1)
            for i, total in enumerate([1000, 1000, 1000, 1000, 1000, 10000], start=1)
        )
        flags = detector.check_cash_management(replace(clean["cashflow"], monthly_deposits=months), clean["liquidity"])

        assert titles(flags) == ["Seasonal Income Pattern"]
        assert flags[0].description.startswith("Monthly deposit variation is high (CV: 134%).")

    def test_seasonality_needs_six_months(self, detector, clean):
        """Test short series are never seasonal."""
        months = tuple(
            MonthlyDeposits(month=f"2024-0{i}", total=total, count=1)
            for i, total in enumerate([1000, 1000, 10000], start=1)
        )

        assert detector.check_cash_management(replace(clean["cashflow"], monthly_deposits=months), clean["liquidity"]) == []

    @pytest.mark.parametrize("months,title", [
        (0.0, "Insufficient Reserves"),
        (4.0, "Limited Reserves"),
    ])
    def test_bounded_reserves(self, detector, clean, months, title):
        """Test reserves below the preferred cushion."""
        flags = detector.check_liquidity(
            replace(clean["liquidity"], months_of_reserves=BoundedReserves(months=months))
        )

        assert titles(flags) == [title]

    def test_unbounded_reserves_never_flagged(self, detector, clean):
        """Test no debt service means no reserve flag."""
        assert detector.check_liquidity(clean["liquidity"]) == []

    def test_negative_equity(self, detector, clean):
        """Test a negative debt-to-equity ratio."""
        flags = detector.check_liquidity(replace(clean["liquidity"], debt_to_equity=-2.0))

        assert titles(flags) == ["Negative Owner Equity"]

    def test_business_flags(self, detector):
        """Test declining revenue and a thin margin."""
        classified = DocumentClassifier().classify([
            record("Schedule C", {"grossReceipts": 150000, "totalExpenses": 70000}, year=2023),
            record("Schedule C", {"grossReceipts": 120000, "totalExpenses": 110000}, year=2024),
        ])
        business = BusinessAnalyzer().analyze(classified.business_documents(), 2024)
        flags = detector.check_business(business)

        assert titles(flags) == ["Declining Business Revenue", "High Expense Ratio"]
        assert flags[0].description == "Business revenue declined 20% year-over-year."
        assert flags[1].description.startswith("Business expense ratio is 91.7%.")

    def test_balance_sheet_imbalance(self, detector):
        """Test A != L + E is a data integrity flag."""
        sheets = [
            BalanceSheetPayload.model_validate({"totalAssets": 100000, "totalLiabilities": 40000, "totalEquity": 50000}),
            BalanceSheetPayload.model_validate({"totalAssets": 100000, "totalLiabilities": 40000, "totalEquity": 60000}),
        ]
        flags = detector.check_balance_sheets(sheets)

        assert len(flags) == 1
        assert flags[0].description == (
            "Assets ($100,000) do not equal Liabilities + Equity ($90,000). Difference: $10,000."
        )


class TestRiskScorer:
    """Tests for scoring and rating bands."""

    @pytest.fixture
    def scorer(self) -> RiskScorer:
        return RiskScorer()

    def flag(self, severity: Severity) -> RiskFlag:
        return RiskFlag(severity=severity, category="test", title=severity.value, description="", recommendation="")

    def test_weights(self, scorer):
        """Test 20/10/3 per high/medium/low flag."""
        flags = [self.flag(Severity.HIGH), self.flag(Severity.MEDIUM), self.flag(Severity.LOW)]

        assert scorer.score(flags) == 33

    def test_capped_at_100(self, scorer):
        """Test the score never exceeds 100."""
        assert scorer.score([self.flag(Severity.HIGH)] * 6) == 100

    def test_empty(self, scorer):
        """Test no flags scores zero."""
        assert scorer.score([]) == 0

    @pytest.mark.parametrize("score,expected", [
        (0, RiskRating.LOW),
        (25, RiskRating.LOW),
        (26, RiskRating.MODERATE),
        (45, RiskRating.MODERATE),
        (70, RiskRating.ELEVATED),
        (71, RiskRating.HIGH),
        (100, RiskRating.HIGH),
    ])
    def test_bands(self, scorer, score, expected):
        """Test band upper bounds are inclusive."""
        assert scorer.rating_for(score) == expected
