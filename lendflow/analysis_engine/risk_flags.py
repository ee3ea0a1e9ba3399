"""
Risk Flag Detector and Risk Scorer.

Turns the analysis results into severity-ranked underwriting findings and
a bounded 0-100 risk score.
"""

from typing import Iterable, List, Optional, Sequence, Tuple

import structlog

from lendflow.analysis_engine.documents import BalanceSheetPayload
from lendflow.analysis_engine.models import (
    BoundedReserves,
    BusinessAnalysis,
    CashflowAnalysis,
    DscrAnalysis,
    DtiAnalysis,
    IncomeAnalysis,
    IncomeType,
    LiquidityAnalysis,
    RiskFlag,
    RiskRating,
    Severity,
    Trend,
)
from lendflow.services.numeric_parser import format_amount, whole_percent
from lendflow.services.validators.accounting_equation import (
    AccountingEquationValidator,
    get_accounting_validator,
)
from lendflow.services.validators.trend_validator import TrendValidator, get_trend_validator

logger = structlog.get_logger(__name__)


class RiskFlagDetector:
    """
    Detector for underwriting risk flags.

    Each check looks at one analysis result and emits zero or more flags.
    The combined list is ordered high to low severity, then by title.
    """

    # Debt service
    MARGINAL_DSCR = 1.25
    MINIMUM_DSCR = 1.0

    # Debt-to-income
    ELEVATED_DTI = 0.43
    EXCESSIVE_DTI = 0.50

    # Cash management
    FREQUENT_EVENT_COUNT = 3
    HIGH_DEPOSIT_RATIO = 1.5
    LOW_DEPOSIT_RATIO = 0.7
    SEASONAL_MIN_MONTHS = 6
    SEASONAL_CV = 0.35

    # Income stability
    SIGNIFICANT_DECLINE = -0.20
    MODEST_DECLINE = -0.05
    MIN_SELF_EMPLOYMENT_YEARS = 2

    # Liquidity
    MIN_RESERVE_MONTHS = 3
    PREFERRED_RESERVE_MONTHS = 6

    HIGH_EXPENSE_RATIO = 0.85

    def __init__(
        self,
        accounting_validator: Optional[AccountingEquationValidator] = None,
        trend_validator: Optional[TrendValidator] = None,
    ):
        self.accounting_validator = accounting_validator or get_accounting_validator()
        self.trend_validator = trend_validator or get_trend_validator()

    def detect(
        self,
        income: IncomeAnalysis,
        business: Optional[BusinessAnalysis],
        cashflow: CashflowAnalysis,
        dscr: DscrAnalysis,
        dti: DtiAnalysis,
        liquidity: LiquidityAnalysis,
        balance_sheets: Sequence[BalanceSheetPayload] = (),
    ) -> Tuple[RiskFlag, ...]:
        """
        Detect all risk flags.

        Returns:
            Flags sorted by severity, then title.
        """
        flags: List[RiskFlag] = []
        flags.extend(self.check_debt_service(dscr))
        flags.extend(self.check_debt_to_income(dti))
        flags.extend(self.check_income(income))
        flags.extend(self.check_cash_management(cashflow, liquidity))
        flags.extend(self.check_liquidity(liquidity))
        flags.extend(self.check_business(business))
        flags.extend(self.check_balance_sheets(balance_sheets))

        flags.sort(key=lambda f: f.sort_key)

        logger.info(
            "Risk flag detection complete",
            flags=len(flags),
            high=sum(1 for f in flags if f.severity == Severity.HIGH),
            medium=sum(1 for f in flags if f.severity == Severity.MEDIUM),
            low=sum(1 for f in flags if f.severity == Severity.LOW),
        )
        return tuple(flags)

    def check_debt_service(self, dscr: DscrAnalysis) -> List[RiskFlag]:
        value = dscr.global_dscr
        if value is None:
            return []

        if value < self.MINIMUM_DSCR:
            return [RiskFlag(
                severity=Severity.HIGH,
                category="debt_service",
                title="DSCR Below 1.0",
                description=f"Global DSCR is {value:.2f}. Income does not cover debt obligations.",
                recommendation=(
                    "Loan may require additional collateral, guarantor, or restructuring "
                    "to achieve positive coverage."
                ),
            )]
        if value < self.MARGINAL_DSCR:
            return [RiskFlag(
                severity=Severity.MEDIUM,
                category="debt_service",
                title="Marginal DSCR",
                description=f"Global DSCR is {value:.2f}. Coverage is positive but thin.",
                recommendation=(
                    "Consider compensating factors: strong reserves, stable employment, "
                    "additional collateral."
                ),
            )]
        return []

    def check_debt_to_income(self, dti: DtiAnalysis) -> List[RiskFlag]:
        value = dti.back_end_dti
        if value is None:
            return []

        if value > self.EXCESSIVE_DTI:
            return [RiskFlag(
                severity=Severity.HIGH,
                category="debt_to_income",
                title="Excessive Debt-to-Income",
                description=(
                    f"Back-end DTI is {value * 100:.1f}%, exceeding the 50% maximum threshold."
                ),
                recommendation=(
                    "Borrower may need to reduce existing debt or provide additional "
                    "income documentation."
                ),
            )]
        if value > self.ELEVATED_DTI:
            return [RiskFlag(
                severity=Severity.MEDIUM,
                category="debt_to_income",
                title="Elevated Debt-to-Income",
                description=f"Back-end DTI is {value * 100:.1f}%, between 43-50%.",
                recommendation=(
                    "May require compensating factors for conventional approval. "
                    "FHA may be more lenient."
                ),
            )]
        return []

    def check_income(self, income: IncomeAnalysis) -> List[RiskFlag]:
        flags: List[RiskFlag] = []

        if income.qualifying_income <= 0:
            flags.append(RiskFlag(
                severity=Severity.HIGH,
                category="income_stability",
                title="No Qualifying Income",
                description=(
                    f"Qualifying income is ${format_amount(income.qualifying_income)}. "
                    "No usable income was identified in the documents provided."
                ),
                recommendation="Request complete tax returns and W-2s before underwriting.",
            ))

        if income.trend == Trend.DECLINING:
            decline = whole_percent(income.trend_percent)
            if income.trend_percent < self.SIGNIFICANT_DECLINE:
                flags.append(RiskFlag(
                    severity=Severity.HIGH,
                    category="income_stability",
                    title="Significant Income Decline",
                    description=f"Income declined {decline}% year-over-year.",
                    recommendation=(
                        "Request explanation for income decline. Consider using the lower "
                        "year for qualification."
                    ),
                ))
            elif income.trend_percent < self.MODEST_DECLINE:
                flags.append(RiskFlag(
                    severity=Severity.LOW,
                    category="income_stability",
                    title="Modest Income Decline",
                    description=f"Income declined {decline}% year-over-year.",
                    recommendation=(
                        "Monitor for continued decline. May need to use lower year if "
                        "trend continues."
                    ),
                ))

        if income.self_employed_income > 0:
            if len(income.years_of(IncomeType.SELF_EMPLOYMENT)) < self.MIN_SELF_EMPLOYMENT_YEARS:
                flags.append(RiskFlag(
                    severity=Severity.LOW,
                    category="income_stability",
                    title="Limited Self-Employment History",
                    description="Less than 2 years of self-employment documentation provided.",
                    recommendation=(
                        "Most programs require 2 years of self-employment. Verify business "
                        "start date."
                    ),
                ))

        if len(income.years_of(IncomeType.RENTAL)) == 1:
            flags.append(RiskFlag(
                severity=Severity.LOW,
                category="experience",
                title="First-Time Landlord",
                description=(
                    "Only 1 year of rental income (Schedule E) history. Borrower may be a "
                    "new landlord."
                ),
                recommendation=(
                    "Verify landlord experience. Consider using 75% of rental income for "
                    "qualification."
                ),
            ))

        return flags

    def check_cash_management(
        self,
        cashflow: CashflowAnalysis,
        liquidity: LiquidityAnalysis,
    ) -> List[RiskFlag]:
        flags: List[RiskFlag] = []

        nsf = cashflow.nsf_count
        if nsf > self.FREQUENT_EVENT_COUNT:
            flags.append(RiskFlag(
                severity=Severity.HIGH,
                category="cash_management",
                title="Frequent NSF Items",
                description=f"{nsf} NSF (non-sufficient funds) items detected in bank statements.",
                recommendation=(
                    "Request explanation for NSFs. Pattern suggests cash flow management issues."
                ),
            ))
        elif nsf >= 1:
            flags.append(RiskFlag(
                severity=Severity.MEDIUM,
                category="cash_management",
                title="NSF Items Present",
                description=f"{nsf} NSF item(s) detected in bank statements.",
                recommendation="Request letter of explanation for each NSF event.",
            ))

        overdrafts = cashflow.overdraft_count
        if overdrafts > 0:
            flags.append(RiskFlag(
                severity=Severity.MEDIUM if overdrafts > self.FREQUENT_EVENT_COUNT else Severity.LOW,
                category="cash_management",
                title="Overdraft Activity",
                description=f"{overdrafts} overdraft occurrence(s) detected in bank statements.",
                recommendation=(
                    "Request explanation. Assess whether this is a pattern or isolated incident."
                ),
            ))

        if cashflow.large_deposits:
            total_large = sum(d.amount for d in cashflow.large_deposits)
            flags.append(RiskFlag(
                severity=Severity.MEDIUM,
                category="cash_management",
                title="Large Unexplained Deposits",
                description=(
                    f"{len(cashflow.large_deposits)} large non-payroll deposit(s) totaling "
                    f"${format_amount(total_large)} detected. These may require sourcing."
                ),
                recommendation=(
                    "Request documentation for the source of each large deposit "
                    "(gift letter, asset sale docs, etc.)."
                ),
            ))

        ratio = cashflow.deposit_to_income_ratio
        if ratio is not None:
            if ratio > self.HIGH_DEPOSIT_RATIO:
                flags.append(RiskFlag(
                    severity=Severity.MEDIUM,
                    category="income_verification",
                    title="Deposits Exceed Reported Income",
                    description=(
                        f"Bank deposits are {ratio:.2f}x reported income. "
                        "May indicate unreported income or non-income deposits."
                    ),
                    recommendation="Request explanation for deposit sources exceeding reported income.",
                ))
            elif 0 < ratio < self.LOW_DEPOSIT_RATIO:
                flags.append(RiskFlag(
                    severity=Severity.MEDIUM,
                    category="income_verification",
                    title="Deposits Below Reported Income",
                    description=(
                        f"Bank deposits are only {ratio:.2f}x reported income. "
                        "Income may be deposited elsewhere."
                    ),
                    recommendation=(
                        "Request all bank accounts. Verify income is being deposited in "
                        "disclosed accounts."
                    ),
                ))

        flags.extend(self._seasonality(cashflow))

        if liquidity.minimum_balance < 0:
            flags.append(RiskFlag(
                severity=Severity.LOW,
                category="cash_management",
                title="Negative Account Balance",
                description=(
                    f"Bank balance fell to {liquidity.minimum_balance:,.2f} during the "
                    "statement period."
                ),
                recommendation="Request explanation for the negative balance and review overdraft history.",
            ))

        return flags

    def _seasonality(self, cashflow: CashflowAnalysis) -> Iterable[RiskFlag]:
        if len(cashflow.monthly_deposits) < self.SEASONAL_MIN_MONTHS:
            return []
        amounts = [m.total for m in cashflow.monthly_deposits if m.total > 0]
        if len(amounts) < self.SEASONAL_MIN_MONTHS:
            return []

        cv = self.trend_validator.coefficient_of_variation(amounts)
        if cv is None or cv <= self.SEASONAL_CV:
            return []
        return [RiskFlag(
            severity=Severity.LOW,
            category="income_stability",
            title="Seasonal Income Pattern",
            description=(
                f"Monthly deposit variation is high (CV: {whole_percent(cv)}%). "
                "Income may be seasonal."
            ),
            recommendation=(
                "Evaluate whether income pattern supports consistent debt service year-round."
            ),
        )]

    def check_liquidity(self, liquidity: LiquidityAnalysis) -> List[RiskFlag]:
        flags: List[RiskFlag] = []
        reserves = liquidity.months_of_reserves

        # Unbounded reserves never trip a reserve flag
        if isinstance(reserves, BoundedReserves):
            if reserves.months < self.MIN_RESERVE_MONTHS:
                flags.append(RiskFlag(
                    severity=Severity.HIGH,
                    category="liquidity",
                    title="Insufficient Reserves",
                    description=(
                        f"Only {reserves.months:.1f} months of reserves available "
                        "(minimum 3 recommended)."
                    ),
                    recommendation=(
                        "Borrower should demonstrate additional liquid assets or reduce "
                        "proposed loan amount."
                    ),
                ))
            elif reserves.months < self.PREFERRED_RESERVE_MONTHS:
                flags.append(RiskFlag(
                    severity=Severity.MEDIUM,
                    category="liquidity",
                    title="Limited Reserves",
                    description=(
                        f"{reserves.months:.1f} months of reserves. Adequate but limited cushion."
                    ),
                    recommendation=(
                        "Consider whether borrower has additional undisclosed assets. "
                        "6+ months preferred."
                    ),
                ))

        if liquidity.debt_to_equity is not None and liquidity.debt_to_equity < 0:
            flags.append(RiskFlag(
                severity=Severity.MEDIUM,
                category="solvency",
                title="Negative Owner Equity",
                description=(
                    f"Balance sheet shows negative equity (debt-to-equity "
                    f"{liquidity.debt_to_equity:.2f}). Liabilities exceed assets."
                ),
                recommendation=(
                    "Review the balance sheet for accumulated losses or owner distributions "
                    "and assess solvency."
                ),
            ))

        return flags

    def check_business(self, business: Optional[BusinessAnalysis]) -> List[RiskFlag]:
        if business is None:
            return []
        flags: List[RiskFlag] = []

        if business.revenue_trend == Trend.DECLINING:
            flags.append(RiskFlag(
                severity=Severity.MEDIUM,
                category="business_performance",
                title="Declining Business Revenue",
                description=(
                    f"Business revenue declined {whole_percent(business.revenue_trend_percent)}% "
                    "year-over-year."
                ),
                recommendation=(
                    "Assess whether decline is industry-wide or company-specific. Request "
                    "current-year financials."
                ),
            ))

        if business.expense_ratio > self.HIGH_EXPENSE_RATIO:
            flags.append(RiskFlag(
                severity=Severity.MEDIUM,
                category="business_performance",
                title="High Expense Ratio",
                description=(
                    f"Business expense ratio is {business.expense_ratio * 100:.1f}%. "
                    "Profit margins are thin."
                ),
                recommendation=(
                    "Small revenue decreases could eliminate profitability. Assess cost "
                    "structure and trends."
                ),
            ))

        entities = business.max_entities_in_a_year
        if entities > 1:
            flags.append(RiskFlag(
                severity=Severity.LOW,
                category="complexity",
                title="Multiple Business Entities",
                description=(
                    f"Borrower has {entities} business entities. Adds complexity to income analysis."
                ),
                recommendation=(
                    "Ensure all entities are accounted for and intercompany transactions "
                    "are understood."
                ),
            ))

        return flags

    def check_balance_sheets(self, balance_sheets: Sequence[BalanceSheetPayload]) -> List[RiskFlag]:
        """One imbalance flag per balance sheet that fails A = L + E."""
        flags: List[RiskFlag] = []
        for sheet in balance_sheets:
            result = self.accounting_validator.validate(sheet.totals)
            if result is None or result.is_valid:
                continue
            flags.append(RiskFlag(
                severity=Severity.HIGH,
                category="data_integrity",
                title="Balance Sheet Imbalance",
                description=(
                    f"Assets (${format_amount(result.details['assets'])}) do not equal "
                    f"Liabilities + Equity (${format_amount(result.details['expected'])}). "
                    f"Difference: ${format_amount(result.details['difference'])}."
                ),
                recommendation=(
                    "Verify balance sheet data. This may indicate extraction error or "
                    "incomplete financials."
                ),
            ))
        return flags


class RiskScorer:
    """Scores flags by severity weight and maps the score to a rating band."""

    MAX_SCORE = 100

    # Upper bound of each band, inclusive
    RATING_BANDS: Tuple[Tuple[int, RiskRating], ...] = (
        (25, RiskRating.LOW),
        (45, RiskRating.MODERATE),
        (70, RiskRating.ELEVATED),
    )

    def score(self, flags: Iterable[RiskFlag]) -> int:
        """20 per high, 10 per medium, 3 per low flag, capped at 100."""
        total = sum(f.severity.points for f in flags)
        return max(0, min(total, self.MAX_SCORE))

    def rating_for(self, score: int) -> RiskRating:
        for upper, rating in self.RATING_BANDS:
            if score <= upper:
                return rating
        return RiskRating.HIGH


# Singleton instances
_detector_instance: Optional[RiskFlagDetector] = None
_scorer_instance: Optional[RiskScorer] = None


def get_risk_flag_detector() -> RiskFlagDetector:
    """Get singleton RiskFlagDetector instance."""
    global _detector_instance
    if _detector_instance is None:
        _detector_instance = RiskFlagDetector()
    return _detector_instance


def get_risk_scorer() -> RiskScorer:
    """Get singleton RiskScorer instance."""
    global _scorer_instance
    if _scorer_instance is None:
        _scorer_instance = RiskScorer()
    return _scorer_instance
