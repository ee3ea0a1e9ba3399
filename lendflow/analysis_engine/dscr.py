"""
DSCR Calculator.

Global debt service coverage compares qualifying income with the annual
cost of existing recurring debt plus the proposed loan. When rental data
is supplied, a property-level DSCR is reported alongside it.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence

import structlog

from lendflow.analysis_engine.documents import PropertyOperations, RecurringPaymentEntry
from lendflow.analysis_engine.models import DscrAnalysis, DscrRating, IncomeAnalysis
from lendflow.analysis_engine.payments import LoanTerms, detect_debt_payments
from lendflow.services.numeric_parser import format_amount, round_currency, round_ratio

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PropertyIncome:
    """Net operating income and annual debt service of a rental property."""
    noi: float
    annual_debt_service: float


class DscrCalculator:
    """Calculator for debt service coverage ratios."""

    STRONG_DSCR = 1.5
    ADEQUATE_DSCR = 1.25
    WEAK_DSCR = 1.0

    def rate(self, dscr: Optional[float]) -> DscrRating:
        """Rating tier; no computable DSCR is insufficient."""
        if dscr is None:
            return DscrRating.INSUFFICIENT
        if dscr >= self.STRONG_DSCR:
            return DscrRating.STRONG
        if dscr >= self.ADEQUATE_DSCR:
            return DscrRating.ADEQUATE
        if dscr >= self.WEAK_DSCR:
            return DscrRating.WEAK
        return DscrRating.INSUFFICIENT

    def property_income(self, operations: Optional[PropertyOperations]) -> PropertyIncome:
        """
        Property NOI from a rent roll or Schedule E.

        An explicit NOI is used as reported with monthly debt service
        annualised. Otherwise NOI is gross rents less operating expenses,
        with mortgage interest added back when expenses are reported, since
        NOI is measured before debt service.
        """
        if operations is None:
            return PropertyIncome(noi=0.0, annual_debt_service=0.0)

        if operations.noi is not None:
            return PropertyIncome(
                noi=operations.noi,
                annual_debt_service=operations.monthly_debt_service * 12,
            )

        noi = operations.gross_rents - operations.operating_expenses
        if operations.operating_expenses > 0 and operations.mortgage_interest > 0:
            noi += operations.mortgage_interest

        debt_service = operations.mortgage_interest + operations.principal_payments
        return PropertyIncome(noi=noi, annual_debt_service=max(debt_service, 0.0))

    def calculate(
        self,
        income: IncomeAnalysis,
        recurring_payments: Sequence[RecurringPaymentEntry],
        proposed_monthly_payment: float = 0.0,
        derived_from: Optional[LoanTerms] = None,
        rental: Optional[PropertyOperations] = None,
    ) -> DscrAnalysis:
        """
        Calculate DSCR.

        Args:
            income: Income analysis supplying qualifying income.
            recurring_payments: Recurring payments merged across bank statements.
            proposed_monthly_payment: Monthly payment of the proposed loan.
            derived_from: Loan terms the payment was amortized from, if it
                was not supplied directly.
            rental: Rent roll or Schedule E operating figures.

        Returns:
            DscrAnalysis with global and property DSCR.
        """
        notes: List[str] = []
        proposed_monthly = max(proposed_monthly_payment, 0.0)

        if derived_from is not None and proposed_monthly > 0:
            notes.append(
                f"Calculated proposed monthly payment: ${format_amount(proposed_monthly)} "
                f"({derived_from.amount:,.0f} at {derived_from.annual_rate * 100:.2f}% "
                f"for {derived_from.term_months} months)."
            )

        proposed_debt_service = round_currency(proposed_monthly * 12)

        schedule = detect_debt_payments(recurring_payments)
        existing_debt_service = round_currency(schedule.monthly_total * 12)
        if schedule.items:
            notes.append(
                f"Detected {len(schedule.items)} recurring debt payment(s) from bank statements "
                f"totaling ${format_amount(schedule.monthly_total)}/month."
            )

        total_debt_service = round_currency(existing_debt_service + proposed_debt_service)
        cash_flow = income.qualifying_income

        global_dscr = None
        if total_debt_service > 0:
            global_dscr = round_ratio(cash_flow / total_debt_service)
        else:
            notes.append("No debt service identified. DSCR cannot be calculated.")

        property_info = self.property_income(rental)
        property_dscr = None
        if property_info.noi > 0:
            property_debt = (
                proposed_debt_service if proposed_debt_service > 0 else property_info.annual_debt_service
            )
            if property_debt > 0:
                property_dscr = round_ratio(property_info.noi / property_debt)
                notes.append(
                    f"Property NOI: ${format_amount(property_info.noi)}, "
                    f"Property debt service: ${format_amount(property_debt)}/year."
                )

        rating = self.rate(global_dscr)
        if global_dscr is not None:
            if rating == DscrRating.WEAK:
                notes.append(
                    "DSCR is marginal; borrower may have difficulty servicing debt if income decreases."
                )
            elif rating == DscrRating.INSUFFICIENT:
                notes.append("DSCR below 1.0: income does not cover debt obligations.")

        analysis = DscrAnalysis(
            global_dscr=global_dscr,
            property_dscr=property_dscr,
            noi=round_currency(cash_flow),
            property_noi=round_currency(property_info.noi),
            total_debt_service=total_debt_service,
            proposed_debt_service=proposed_debt_service,
            existing_debt_service=existing_debt_service,
            proposed_monthly_payment=round_currency(proposed_monthly),
            debt_items=schedule.items,
            rating=rating,
            notes=tuple(notes),
        )

        logger.info(
            "DSCR calculation complete",
            global_dscr=global_dscr,
            property_dscr=property_dscr,
            total_debt_service=total_debt_service,
            rating=rating.value,
        )
        return analysis


# Singleton instance
_calculator_instance: Optional[DscrCalculator] = None


def get_dscr_calculator() -> DscrCalculator:
    """Get singleton DscrCalculator instance."""
    global _calculator_instance
    if _calculator_instance is None:
        _calculator_instance = DscrCalculator()
    return _calculator_instance
