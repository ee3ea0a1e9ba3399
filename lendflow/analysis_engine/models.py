"""
Data structures for the LendFlow analysis engine.

Every analyzer returns a frozen value object; collections are tuples so a
result cannot change after it is built. The FullAnalysisReport bundles all
of them and is the only artifact handed back to callers.
"""

from dataclasses import dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union

from lendflow.services.validators.trend_validator import Trend


class DocumentCategory(str, Enum):
    """Routing buckets produced by the document classifier."""
    TAX_FORM = "tax_form"
    BANK_STATEMENT = "bank_statement"
    PROFIT_AND_LOSS = "profit_and_loss"
    BALANCE_SHEET = "balance_sheet"
    RENT_ROLL = "rent_roll"
    OTHER = "other"


class DocumentType(str, Enum):
    """Canonical document types."""
    W2 = "w2"
    FORM_1040 = "form_1040"
    SCHEDULE_C = "schedule_c"
    SCHEDULE_E = "schedule_e"
    K1 = "k1"
    FORM_1065 = "form_1065"
    FORM_1120 = "form_1120"
    FORM_1120S = "form_1120s"
    BANK_STATEMENT = "bank_statement"
    PROFIT_AND_LOSS = "profit_and_loss"
    BALANCE_SHEET = "balance_sheet"
    RENT_ROLL = "rent_roll"
    UNKNOWN = "unknown"


class IncomeType(str, Enum):
    """Income source categories."""
    W2 = "w2"
    SELF_EMPLOYMENT = "self_employment"
    RENTAL = "rental"
    PARTNERSHIP = "partnership"
    SCORP = "scorp"
    INTEREST = "interest"
    DIVIDENDS = "dividends"
    SOCIAL_SECURITY = "social_security"
    PENSION = "pension"
    OTHER = "other"


PASS_THROUGH_TYPES = frozenset({IncomeType.PARTNERSHIP, IncomeType.SCORP})
PASSIVE_TYPES = frozenset({
    IncomeType.RENTAL,
    IncomeType.INTEREST,
    IncomeType.DIVIDENDS,
    IncomeType.SOCIAL_SECURITY,
    IncomeType.PENSION,
})
OTHER_PASSIVE_TYPES = frozenset({
    IncomeType.INTEREST,
    IncomeType.DIVIDENDS,
    IncomeType.SOCIAL_SECURITY,
    IncomeType.PENSION,
    IncomeType.OTHER,
})


class Severity(str, Enum):
    """Risk flag severity, ordered high to low."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @property
    def points(self) -> int:
        return _SEVERITY_POINTS[self]


_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}
_SEVERITY_POINTS = {Severity.HIGH: 20, Severity.MEDIUM: 10, Severity.LOW: 3}


class DscrRating(str, Enum):
    STRONG = "strong"            # >= 1.50
    ADEQUATE = "adequate"        # >= 1.25
    WEAK = "weak"                # >= 1.00
    INSUFFICIENT = "insufficient"


class DtiRating(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    ACCEPTABLE = "acceptable"
    HIGH = "high"
    EXCESSIVE = "excessive"


class LiquidityRating(str, Enum):
    STRONG = "strong"            # >= 12 months
    ADEQUATE = "adequate"        # >= 6 months
    WEAK = "weak"                # >= 3 months
    INSUFFICIENT = "insufficient"


class RiskRating(str, Enum):
    LOW = "low"                  # score <= 25
    MODERATE = "moderate"        # score <= 45
    ELEVATED = "elevated"        # score <= 70
    HIGH = "high"


class LoanPurpose(str, Enum):
    PURCHASE = "purchase"
    REFINANCE = "refinance"
    OTHER = "other"


# =============================================================================
# Income
# =============================================================================

@dataclass(frozen=True)
class IncomeSource:
    """A single income item derived from one document."""
    type: IncomeType
    description: str
    gross_amount: float
    net_amount: float
    year: int
    recurring: bool = True

    @property
    def wage_key(self) -> Tuple[str, int, float]:
        """Composite key used to deduplicate wage sources."""
        return (self.description, self.year, self.gross_amount)

    @property
    def sort_key(self) -> Tuple[int, str, str, float, float]:
        return (self.year, self.type.value, self.description, self.gross_amount, self.net_amount)


@dataclass(frozen=True)
class YearTotals:
    gross: float
    net: float


@dataclass(frozen=True)
class IncomeAnalysis:
    sources: Tuple[IncomeSource, ...]
    total_gross_income: float
    total_net_income: float
    qualifying_income: float
    income_by_year: Dict[int, YearTotals]
    trend: Trend
    trend_percent: float
    self_employed_income: float
    w2_income: float
    passive_income: float
    notes: Tuple[str, ...] = ()

    def years_of(self, income_type: IncomeType) -> Tuple[int, ...]:
        """Distinct years with at least one source of the given type."""
        return tuple(sorted({s.year for s in self.sources if s.type == income_type}))


# =============================================================================
# Business
# =============================================================================

@dataclass(frozen=True)
class BusinessYearEntry:
    """Business financials from one document for one tax year."""
    year: int
    revenue: float
    total_expenses: float
    net_income: float
    depreciation: float
    amortization: float
    interest_expense: float
    owner_officer_comp: float
    one_time_items: float
    document_type: DocumentType

    @property
    def total_add_backs(self) -> float:
        return (
            self.depreciation
            + self.amortization
            + self.interest_expense
            + self.owner_officer_comp
            + self.one_time_items
        )

    @property
    def is_tax_return(self) -> bool:
        return self.document_type != DocumentType.PROFIT_AND_LOSS


@dataclass(frozen=True)
class AddBacks:
    depreciation: float
    amortization: float
    interest: float
    owner_comp: float
    one_time: float
    total: float


@dataclass(frozen=True)
class BusinessAnalysis:
    entries: Tuple[BusinessYearEntry, ...]
    revenue_by_year: Dict[int, float]
    revenue_trend: Trend
    revenue_trend_percent: float
    expense_ratio: float
    high_expense_ratio: bool
    owner_compensation: float
    add_backs: AddBacks
    adjusted_net_income: float
    adjusted_net_by_year: Dict[int, float]
    tax_return_entities_by_year: Dict[int, int]
    entities_by_year: Dict[int, int]
    notes: Tuple[str, ...] = ()

    @property
    def max_entities_in_a_year(self) -> int:
        return max(self.tax_return_entities_by_year.values(), default=0)


# =============================================================================
# Cash flow
# =============================================================================

@dataclass(frozen=True)
class MonthlyDeposits:
    month: str
    total: float
    count: int


@dataclass(frozen=True)
class Deposit:
    date: str
    amount: float
    description: str


@dataclass(frozen=True)
class RecurringPayment:
    """A recurring debit reported on a bank statement."""
    description: str
    amount: float
    frequency: str = "monthly"
    category: str = ""


@dataclass(frozen=True)
class CashflowAnalysis:
    monthly_deposits: Tuple[MonthlyDeposits, ...]
    average_monthly_deposits: float
    deposit_to_income_ratio: Optional[float]
    nsf_count: int
    overdraft_count: int
    large_deposits: Tuple[Deposit, ...]
    regular_payments: Tuple[RecurringPayment, ...]
    cashflow_trend: Trend
    notes: Tuple[str, ...] = ()


# =============================================================================
# Liquidity
# =============================================================================

@dataclass(frozen=True)
class BoundedReserves:
    """Liquid assets cover a finite number of months of debt service."""
    months: float

    is_unbounded = False

    def at_least(self, months: float) -> bool:
        return self.months >= months

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "bounded", "months": self.months}


@dataclass(frozen=True)
class UnboundedReserves:
    """Liquid assets exist but there is no debt service to divide by."""

    is_unbounded = True
    months = None

    def at_least(self, months: float) -> bool:
        return True

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": "unbounded", "months": None}


Reserves = Union[BoundedReserves, UnboundedReserves]


@dataclass(frozen=True)
class LiquidityAnalysis:
    total_liquid_assets: float
    bank_liquid_assets: float
    balance_sheet_cash: float
    months_of_reserves: Reserves
    average_daily_balance: float
    minimum_balance: float
    current_ratio: Optional[float]
    quick_ratio: Optional[float]
    debt_to_equity: Optional[float]
    account_count: int
    rating: LiquidityRating
    notes: Tuple[str, ...] = ()


# =============================================================================
# Debt service
# =============================================================================

@dataclass(frozen=True)
class DebtItem:
    description: str
    monthly_amount: float
    is_housing: bool = False


@dataclass(frozen=True)
class DscrAnalysis:
    global_dscr: Optional[float]
    property_dscr: Optional[float]
    noi: float                      # cash flow available for debt service (annual)
    property_noi: float
    total_debt_service: float       # annual
    proposed_debt_service: float    # annual
    existing_debt_service: float    # annual
    proposed_monthly_payment: float
    debt_items: Tuple[DebtItem, ...]
    rating: DscrRating
    notes: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DtiAnalysis:
    front_end_dti: Optional[float]
    back_end_dti: Optional[float]
    gross_monthly_income: float
    monthly_housing_expense: float
    total_monthly_debt: float
    debt_items: Tuple[DebtItem, ...]
    loan_purpose: LoanPurpose
    rating: DtiRating
    notes: Tuple[str, ...] = ()


# =============================================================================
# Risk
# =============================================================================

@dataclass(frozen=True)
class RiskFlag:
    severity: Severity
    category: str
    title: str
    description: str
    recommendation: str

    @property
    def sort_key(self) -> Tuple[int, str]:
        return (self.severity.rank, self.title)


@dataclass(frozen=True)
class ReportSummary:
    qualifying_income: float
    global_dscr: Optional[float]
    back_end_dti: Optional[float]
    months_of_reserves: Reserves
    risk_rating: RiskRating
    risk_score: int


@dataclass(frozen=True)
class FullAnalysisReport:
    income: IncomeAnalysis
    business: Optional[BusinessAnalysis]
    cashflow: CashflowAnalysis
    dscr: DscrAnalysis
    dti: DtiAnalysis
    liquidity: LiquidityAnalysis
    risk_flags: Tuple[RiskFlag, ...]
    risk_score: int
    summary: ReportSummary
    run_id: str = field(default="", compare=False)

    def to_dict(self) -> Dict[str, Any]:
        """Convert the report to JSON-ready primitives."""
        return _serialize(self)


def _serialize(value: Any) -> Any:
    if isinstance(value, (BoundedReserves, UnboundedReserves)):
        return value.to_dict()
    if is_dataclass(value) and not isinstance(value, type):
        return {f.name: _serialize(getattr(value, f.name)) for f in fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): _serialize(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(v) for v in value]
    return value


__all__ = [
    "AddBacks",
    "BoundedReserves",
    "BusinessAnalysis",
    "BusinessYearEntry",
    "CashflowAnalysis",
    "DebtItem",
    "Deposit",
    "DocumentCategory",
    "DocumentType",
    "DscrAnalysis",
    "DscrRating",
    "DtiAnalysis",
    "DtiRating",
    "FullAnalysisReport",
    "IncomeAnalysis",
    "IncomeSource",
    "IncomeType",
    "LiquidityAnalysis",
    "LiquidityRating",
    "LoanPurpose",
    "MonthlyDeposits",
    "RecurringPayment",
    "ReportSummary",
    "Reserves",
    "RiskFlag",
    "RiskRating",
    "Severity",
    "Trend",
    "UnboundedReserves",
    "YearTotals",
]
