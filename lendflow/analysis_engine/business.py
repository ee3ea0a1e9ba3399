"""
Business Analyzer.

Reads business-entity financials (Schedule C, 1120, 1120-S, 1065 and P&L
statements), sums them per year and reports revenue trend, expense ratio
and add-back adjusted net income for the most recent year.
"""

from collections import defaultdict
from typing import Dict, List, Optional, Sequence

import structlog

from lendflow.analysis_engine.classification import ClassifiedDocument, resolve_year
from lendflow.analysis_engine.documents import (
    CorporateReturnPayload,
    ProfitAndLossPayload,
    ScheduleCPayload,
)
from lendflow.analysis_engine.models import (
    AddBacks,
    BusinessAnalysis,
    BusinessYearEntry,
    DocumentType,
    Trend,
)
from lendflow.services.numeric_parser import (
    format_amount,
    round_currency,
    round_ratio,
    whole_percent,
)
from lendflow.services.validators.trend_validator import TrendValidator, get_trend_validator

logger = structlog.get_logger(__name__)


class BusinessAnalyzer:
    """
    Analyzer for business-entity documents.

    Add-back sign conventions differ per form family:
    - Schedule C: casualty/other losses are always added back as positive
    - Corporate returns: a reported gain reduces adjusted income, a loss
      increases it
    - P&L: one-time items are taken with the sign reported
    """

    HIGH_EXPENSE_RATIO = 0.85

    def __init__(self, trend_validator: Optional[TrendValidator] = None):
        self.trend_validator = trend_validator or get_trend_validator()

    def extract_entry(self, doc: ClassifiedDocument, year: int) -> BusinessYearEntry:
        """Business financials of one document."""
        if doc.document_type == DocumentType.SCHEDULE_C:
            return self._from_schedule_c(doc.payload, year)
        if doc.document_type == DocumentType.PROFIT_AND_LOSS:
            return self._from_profit_and_loss(doc.payload, year)
        return self._from_corporate_return(doc.payload, year, doc.document_type)

    def _from_schedule_c(self, payload: ScheduleCPayload, year: int) -> BusinessYearEntry:
        revenue = payload.gross_receipts
        expenses = payload.total_expenses
        net_income = payload.net_profit if payload.net_profit is not None else revenue - expenses
        return BusinessYearEntry(
            year=year,
            revenue=revenue,
            total_expenses=expenses,
            net_income=net_income,
            depreciation=payload.depreciation,
            amortization=payload.amortization,
            interest_expense=payload.interest_expense,
            owner_officer_comp=0.0,  # the net profit is the owner's income
            one_time_items=abs(payload.casualty_loss),
            document_type=DocumentType.SCHEDULE_C,
        )

    def _from_corporate_return(
        self,
        payload: CorporateReturnPayload,
        year: int,
        document_type: DocumentType,
    ) -> BusinessYearEntry:
        revenue = payload.revenue
        expenses = payload.total_expenses
        net_income = payload.net_income if payload.net_income is not None else revenue - expenses
        return BusinessYearEntry(
            year=year,
            revenue=revenue,
            total_expenses=expenses,
            net_income=net_income,
            depreciation=payload.depreciation,
            amortization=payload.amortization,
            interest_expense=payload.interest_expense,
            owner_officer_comp=payload.officer_compensation,
            # Gains are positive in the return and reduce adjusted income
            one_time_items=-payload.net_gain_loss - payload.extraordinary_items,
            document_type=document_type,
        )

    def _from_profit_and_loss(self, payload: ProfitAndLossPayload, year: int) -> BusinessYearEntry:
        revenue = payload.revenue
        expenses = payload.total_expenses
        net_income = payload.net_income if payload.net_income is not None else revenue - expenses
        return BusinessYearEntry(
            year=year,
            revenue=revenue,
            total_expenses=expenses,
            net_income=net_income,
            depreciation=payload.depreciation,
            amortization=payload.amortization,
            interest_expense=payload.interest_expense,
            owner_officer_comp=payload.owner_compensation,
            one_time_items=payload.one_time_items,
            document_type=DocumentType.PROFIT_AND_LOSS,
        )

    def analyze(
        self,
        documents: Sequence[ClassifiedDocument],
        reference_year: int,
    ) -> Optional[BusinessAnalysis]:
        """
        Analyze business documents.

        Args:
            documents: Candidate documents; non-business types are skipped.
            reference_year: Year assumed for documents without one.

        Returns:
            BusinessAnalysis, or None when no business document is present.
        """
        business_docs = [doc for doc in documents if doc.is_business_document]
        if not business_docs:
            logger.debug("No business documents")
            return None

        entries = sorted(
            (self.extract_entry(doc, resolve_year(doc, reference_year)) for doc in business_docs),
            key=lambda e: (e.year, e.document_type.value, e.revenue, e.net_income, e.total_expenses),
        )

        by_year: Dict[int, List[BusinessYearEntry]] = defaultdict(list)
        for entry in entries:
            by_year[entry.year].append(entry)
        years = sorted(by_year)

        revenue_by_year = {
            year: round_currency(sum(e.revenue for e in by_year[year])) for year in years
        }
        adjusted_net_by_year = {
            year: round_currency(sum(e.net_income + e.total_add_backs for e in by_year[year]))
            for year in years
        }
        tax_return_entities_by_year = {
            year: sum(1 for e in by_year[year] if e.is_tax_return) for year in years
        }

        # Revenue trend: only a positive prior year is a valid base
        revenue_trend = Trend.STABLE
        revenue_trend_percent = 0.0
        if len(years) >= 2:
            result = self.trend_validator.year_over_year(
                revenue_by_year[years[-1]],
                revenue_by_year[years[-2]],
                positive_prior_only=True,
            )
            revenue_trend, revenue_trend_percent = result.trend, result.change_percent
        revenue_trend_percent = round_ratio(revenue_trend_percent)

        latest_year = years[-1]
        latest = by_year[latest_year]

        add_backs = AddBacks(
            depreciation=round_currency(sum(e.depreciation for e in latest)),
            amortization=round_currency(sum(e.amortization for e in latest)),
            interest=round_currency(sum(e.interest_expense for e in latest)),
            owner_comp=round_currency(sum(e.owner_officer_comp for e in latest)),
            one_time=round_currency(sum(e.one_time_items for e in latest)),
            total=round_currency(sum(e.total_add_backs for e in latest)),
        )
        latest_net_income = sum(e.net_income for e in latest)
        adjusted_net_income = round_currency(latest_net_income + add_backs.total)

        latest_revenue = revenue_by_year[latest_year]
        latest_expenses = sum(e.total_expenses for e in latest)
        expense_ratio = round_ratio(latest_expenses / latest_revenue) if latest_revenue > 0 else 0.0
        high_expense_ratio = expense_ratio > self.HIGH_EXPENSE_RATIO

        notes: List[str] = [
            f"Analyzed {len(business_docs)} business document(s) across {len(years)} year(s)."
        ]

        if add_backs.total > 0:
            notes.append(
                f"Total add-backs ({latest_year}): ${format_amount(add_backs.total)} "
                f"(depreciation: ${format_amount(add_backs.depreciation)}, "
                f"amortization: ${format_amount(add_backs.amortization)}, "
                f"interest: ${format_amount(add_backs.interest)}, "
                f"owner comp: ${format_amount(add_backs.owner_comp)}, "
                f"one-time: ${format_amount(add_backs.one_time)})."
            )

        if high_expense_ratio:
            notes.append(
                f"High expense ratio: {expense_ratio * 100:.1f}%. "
                "Margins are thin; small revenue declines could eliminate profitability."
            )

        if revenue_trend == Trend.DECLINING:
            notes.append(
                f"Revenue declining {whole_percent(revenue_trend_percent)}% year-over-year."
            )

        if len(years) < 2:
            notes.append("Only 1 year of business data. Trend analysis limited.")

        for year in years:
            if len(by_year[year]) > 1:
                types = ", ".join(e.document_type.value for e in by_year[year])
                notes.append(f"Multiple business entities in {year}: {types}.")

        analysis = BusinessAnalysis(
            entries=tuple(entries),
            revenue_by_year=revenue_by_year,
            revenue_trend=revenue_trend,
            revenue_trend_percent=revenue_trend_percent,
            expense_ratio=expense_ratio,
            high_expense_ratio=high_expense_ratio,
            owner_compensation=add_backs.owner_comp,
            add_backs=add_backs,
            adjusted_net_income=adjusted_net_income,
            adjusted_net_by_year=adjusted_net_by_year,
            tax_return_entities_by_year=tax_return_entities_by_year,
            entities_by_year={year: len(by_year[year]) for year in years},
            notes=tuple(notes),
        )

        logger.info(
            "Business analysis complete",
            documents=len(business_docs),
            years=years,
            adjusted_net_income=adjusted_net_income,
            revenue_trend=revenue_trend.value,
        )
        return analysis


# Singleton instance
_analyzer_instance: Optional[BusinessAnalyzer] = None


def get_business_analyzer() -> BusinessAnalyzer:
    """Get singleton BusinessAnalyzer instance."""
    global _analyzer_instance
    if _analyzer_instance is None:
        _analyzer_instance = BusinessAnalyzer()
    return _analyzer_instance
