"""
Recurring payment helpers shared by the DSCR and DTI calculators.

Covers the amortized payment of a proposed loan, normalisation of payment
frequencies to a monthly amount, housing/debt classification by keyword
and category, and merging of recurring payments across bank statements.
"""

import re
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

import structlog

from lendflow.analysis_engine.documents import BankStatementPayload, RecurringPaymentEntry
from lendflow.analysis_engine.models import DebtItem
from lendflow.services.numeric_parser import round_currency, round_half_up

logger = structlog.get_logger(__name__)


HOUSING_PATTERN = re.compile(
    r"\b(mortgage|rent|hoa|homeowner|property tax|home insurance|piti|escrow)\b"
)
DEBT_PATTERN = re.compile(
    r"\b(mortgage|loan|auto pay|car pay|student|credit card|min payment|capital one|chase"
    r"|discover|amex|wells fargo|boa|usaa|navy fed|sallie mae|navient|sofi|earnest|upstart"
    r"|lending club|prosper)\b"
)

HOUSING_CATEGORIES = frozenset({"housing", "mortgage", "rent"})
DEBT_CATEGORIES = frozenset({"debt", "loan"})

# Multipliers converting a payment at the given frequency to a monthly amount
MONTHLY_FACTORS: Dict[str, float] = {
    "weekly": 52 / 12,
    "biweekly": 26 / 12,
    "bi-weekly": 26 / 12,
    "semimonthly": 2.0,
    "semi-monthly": 2.0,
    "monthly": 1.0,
    "quarterly": 1 / 3,
    "semiannual": 1 / 6,
    "semi-annual": 1 / 6,
    "annual": 1 / 12,
    "annually": 1 / 12,
}


@dataclass(frozen=True)
class PaymentClassification:
    is_housing: bool
    is_debt: bool


@dataclass(frozen=True)
class DebtSchedule:
    """Debt-classified recurring payments, normalised to monthly amounts."""
    items: Tuple[DebtItem, ...]
    monthly_housing: float
    monthly_non_housing: float

    @property
    def monthly_total(self) -> float:
        return self.monthly_housing + self.monthly_non_housing


@dataclass(frozen=True)
class LoanTerms:
    """Terms of the proposed loan; the rate is an annual decimal (0.065 for 6.5%)."""
    amount: float
    annual_rate: float
    term_months: int

    @property
    def monthly_payment(self) -> float:
        return amortized_payment(self.amount, self.annual_rate, self.term_months)


def amortized_payment(principal: float, annual_rate: float, term_months: float) -> float:
    """
    Monthly payment of a fully amortizing loan.

    M = P * r(1+r)^n / [(1+r)^n - 1] with r the monthly rate. A zero rate
    divides the principal evenly; a non-positive principal or term gives 0.
    """
    if principal <= 0 or term_months <= 0:
        return 0.0
    if annual_rate <= 0:
        return principal / term_months

    monthly_rate = annual_rate / 12
    factor = (1 + monthly_rate) ** term_months
    return principal * monthly_rate * factor / (factor - 1)


def to_monthly(amount: float, frequency: str) -> float:
    """Normalize a payment amount to monthly; unknown frequencies count as monthly."""
    factor = MONTHLY_FACTORS.get((frequency or "monthly").strip().lower(), 1.0)
    return amount * factor


def classify_payment(payment: RecurringPaymentEntry) -> PaymentClassification:
    """Housing vs. debt by description keywords and category; housing is always debt."""
    description = (payment.description or "").lower()
    category = payment.category.strip().lower()

    is_housing = bool(HOUSING_PATTERN.search(description)) or category in HOUSING_CATEGORIES
    is_debt = (
        bool(DEBT_PATTERN.search(description))
        or category in DEBT_CATEGORIES
        or is_housing
    )
    return PaymentClassification(is_housing=is_housing, is_debt=is_debt)


def merge_key(payment: RecurringPaymentEntry) -> str:
    return f"{payment.label}::{round_half_up(payment.amount, 0):.0f}"


def merge_recurring_payments(
    statements: Iterable[BankStatementPayload],
) -> Tuple[RecurringPaymentEntry, ...]:
    """
    Merge recurring payments across statements.

    Payments sharing a description and whole-dollar amount are the same
    obligation reported on several statements and are kept once.
    """
    groups: Dict[str, List[RecurringPaymentEntry]] = defaultdict(list)
    for statement in statements:
        for payment in statement.recurring_payments:
            groups[merge_key(payment)].append(payment)

    merged = [
        min(group, key=lambda p: (p.amount, p.frequency, p.category))
        for group in groups.values()
    ]
    merged.sort(key=lambda p: (p.label, p.amount, p.frequency, p.category))

    logger.debug("Merged recurring payments", groups=len(groups), payments=len(merged))
    return tuple(merged)


def detect_debt_payments(payments: Sequence[RecurringPaymentEntry]) -> DebtSchedule:
    """Monthly debt obligations among recurring payments, split housing vs. other."""
    items: List[DebtItem] = []
    housing = 0.0
    non_housing = 0.0

    for payment in payments:
        if payment.amount <= 0:
            continue
        classification = classify_payment(payment)
        if not classification.is_debt:
            continue

        monthly = round_currency(to_monthly(payment.amount, payment.frequency))
        items.append(DebtItem(
            description=payment.label,
            monthly_amount=monthly,
            is_housing=classification.is_housing,
        ))
        if classification.is_housing:
            housing += monthly
        else:
            non_housing += monthly

    return DebtSchedule(
        items=tuple(items),
        monthly_housing=round_currency(housing),
        monthly_non_housing=round_currency(non_housing),
    )
