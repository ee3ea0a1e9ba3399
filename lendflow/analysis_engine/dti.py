"""
DTI Calculator.

Front-end (housing) and back-end (total debt) debt-to-income ratios
against gross monthly qualifying income.
"""

from typing import List, Optional, Sequence, Tuple

import structlog

from lendflow.analysis_engine.documents import RecurringPaymentEntry
from lendflow.analysis_engine.models import (
    DebtItem,
    DtiAnalysis,
    DtiRating,
    IncomeAnalysis,
    LoanPurpose,
)
from lendflow.analysis_engine.payments import detect_debt_payments
from lendflow.services.numeric_parser import format_amount, round_currency, round_ratio

logger = structlog.get_logger(__name__)


class DtiCalculator:
    """
    Calculator for debt-to-income ratios.

    Rating tiers pair a front-end and a back-end ceiling; the first tier
    whose ceilings both hold wins. Without a housing expense only the
    back-end ceilings apply.
    """

    PAIRED_TIERS: Tuple[Tuple[float, float, DtiRating], ...] = (
        (0.28, 0.36, DtiRating.EXCELLENT),
        (0.31, 0.43, DtiRating.GOOD),
        (0.33, 0.45, DtiRating.ACCEPTABLE),
        (0.36, 0.50, DtiRating.HIGH),
    )

    def rate(
        self,
        front_end: Optional[float],
        back_end: Optional[float],
        has_housing: bool = True,
    ) -> DtiRating:
        if back_end is None:
            return DtiRating.EXCESSIVE

        for front_ceiling, back_ceiling, rating in self.PAIRED_TIERS:
            front_ok = not has_housing or (front_end is not None and front_end <= front_ceiling)
            if front_ok and back_end <= back_ceiling:
                return rating
        return DtiRating.EXCESSIVE

    def calculate(
        self,
        income: IncomeAnalysis,
        recurring_payments: Sequence[RecurringPaymentEntry],
        proposed_monthly_payment: float = 0.0,
        loan_purpose: LoanPurpose = LoanPurpose.PURCHASE,
    ) -> DtiAnalysis:
        """
        Calculate DTI.

        A refinance replaces the existing housing expense with the proposed
        payment; any other purpose adds the proposed payment to housing.
        """
        notes: List[str] = []

        gross_monthly_income = round_currency(income.qualifying_income / 12)
        if gross_monthly_income <= 0:
            notes.append("Qualifying income is zero or negative. DTI cannot be meaningfully calculated.")

        schedule = detect_debt_payments(recurring_payments)
        items = list(schedule.items)
        housing = schedule.monthly_housing
        non_housing = schedule.monthly_non_housing

        proposed = round_currency(max(proposed_monthly_payment, 0.0))
        if proposed > 0:
            items.append(DebtItem(description="Proposed loan payment", monthly_amount=proposed, is_housing=True))
            if loan_purpose == LoanPurpose.REFINANCE and housing > 0:
                notes.append(
                    f"Refinance detected: replacing existing housing expense (${format_amount(housing)}/mo) "
                    f"with proposed payment (${format_amount(proposed)}/mo)."
                )
                housing = proposed
            else:
                housing = round_currency(housing + proposed)

        total_monthly_debt = round_currency(housing + non_housing)

        front_end_dti = None
        back_end_dti = None
        if gross_monthly_income > 0:
            front_end_dti = round_ratio(housing / gross_monthly_income)
            back_end_dti = round_ratio(total_monthly_debt / gross_monthly_income)

        has_housing = housing > 0
        rating = self.rate(front_end_dti, back_end_dti, has_housing=has_housing)

        if back_end_dti is not None:
            if not has_housing:
                notes.append("No housing expense detected. Front-end DTI may be understated.")
            if rating == DtiRating.HIGH:
                notes.append("DTI is elevated. Compensating factors may be needed for approval.")
            elif rating == DtiRating.EXCESSIVE:
                notes.append("DTI exceeds standard guidelines. Significant compensating factors required.")

        if not items:
            notes.append("No debt obligations detected. DTI is effectively 0%.")

        notes.append(
            f"Gross monthly income: ${format_amount(gross_monthly_income)}, "
            f"Housing: ${format_amount(housing)}/mo, "
            f"Total debt: ${format_amount(total_monthly_debt)}/mo."
        )

        analysis = DtiAnalysis(
            front_end_dti=front_end_dti,
            back_end_dti=back_end_dti,
            gross_monthly_income=gross_monthly_income,
            monthly_housing_expense=round_currency(housing),
            total_monthly_debt=total_monthly_debt,
            debt_items=tuple(items),
            loan_purpose=loan_purpose,
            rating=rating,
            notes=tuple(notes),
        )

        logger.info(
            "DTI calculation complete",
            front_end_dti=front_end_dti,
            back_end_dti=back_end_dti,
            loan_purpose=loan_purpose.value,
            rating=rating.value,
        )
        return analysis


# Singleton instance
_calculator_instance: Optional[DtiCalculator] = None


def get_dti_calculator() -> DtiCalculator:
    """Get singleton DtiCalculator instance."""
    global _calculator_instance
    if _calculator_instance is None:
        _calculator_instance = DtiCalculator()
    return _calculator_instance
