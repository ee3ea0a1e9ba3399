"""
Income Analyzer.

Extracts income sources from tax documents, aggregates them by tax year
and derives the qualifying income used for DSCR and DTI.

Qualifying income is built per category:
- W-2 wages: most recent year only
- Self-employment and K-1 pass-through: 2-year average, or the most recent
  year when it is lower than the prior year
- Rental and other passive income: most recent year only
"""

from collections import defaultdict
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

import structlog

from lendflow.analysis_engine.classification import ClassifiedDocument, resolve_year
from lendflow.analysis_engine.documents import (
    Form1040Payload,
    K1Payload,
    ScheduleCPayload,
    ScheduleEPayload,
    W2Entry,
    W2Payload,
)
from lendflow.analysis_engine.models import (
    OTHER_PASSIVE_TYPES,
    PASS_THROUGH_TYPES,
    PASSIVE_TYPES,
    DocumentType,
    IncomeAnalysis,
    IncomeSource,
    IncomeType,
    Trend,
    YearTotals,
)
from lendflow.services.numeric_parser import (
    format_amount,
    round_currency,
    round_ratio,
    whole_percent,
)
from lendflow.services.validators.trend_validator import TrendValidator, get_trend_validator

logger = structlog.get_logger(__name__)


class IncomeAnalyzer:
    """
    Analyzer turning tax documents into income sources and qualifying income.

    Sources are deduplicated (wages) and sorted before any summation, so the
    result does not depend on the order documents were supplied in.
    """

    def __init__(self, trend_validator: Optional[TrendValidator] = None):
        self.trend_validator = trend_validator or get_trend_validator()
        self._extractors: Dict[DocumentType, Callable[[ClassifiedDocument, int], List[IncomeSource]]] = {
            DocumentType.W2: self._from_w2,
            DocumentType.FORM_1040: self._from_1040,
            DocumentType.SCHEDULE_C: self._from_schedule_c,
            DocumentType.SCHEDULE_E: self._from_schedule_e,
            DocumentType.K1: self._from_k1,
            DocumentType.FORM_1065: self._from_1065,
            DocumentType.FORM_1120S: self._from_1120s,
        }

    # =========================================================================
    # Extraction
    # =========================================================================

    def extract_sources(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        """Income sources found in one document for the given tax year."""
        extractor = self._extractors.get(doc.document_type)
        if extractor is None:
            return []
        return extractor(doc, year)

    def _wage_source(self, entry: W2Entry, year: int) -> Optional[IncomeSource]:
        if entry.wages <= 0:
            return None
        description = f"W-2: {entry.employer_name}" if entry.employer_name else "W-2 Wages"
        return IncomeSource(
            type=IncomeType.W2,
            description=description,
            gross_amount=entry.wages,
            net_amount=entry.wages,
            year=year,
        )

    def _w2_sources(self, payload: W2Payload, year: int) -> List[IncomeSource]:
        entries: List[W2Entry] = [payload, *(payload.w2_summary or ())]
        return [s for s in (self._wage_source(e, year) for e in entries) if s is not None]

    def _from_w2(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        return self._w2_sources(doc.payload, year)

    def _from_1040(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        payload: Form1040Payload = doc.payload
        sources = self._w2_sources(payload, year)

        # Line 1 only when the return carries no individual W-2 detail
        if payload.line1_wages > 0 and not payload.has_w2_detail and not sources:
            sources.append(IncomeSource(
                type=IncomeType.W2,
                description="1040 Line 1 - Wages, Salaries, Tips",
                gross_amount=payload.line1_wages,
                net_amount=payload.line1_wages,
                year=year,
            ))

        simple_items = (
            (IncomeType.INTEREST, "Taxable Interest", payload.taxable_interest),
            (IncomeType.DIVIDENDS, "Ordinary Dividends", payload.ordinary_dividends),
        )
        for income_type, description, amount in simple_items:
            if amount > 0:
                sources.append(IncomeSource(
                    type=income_type,
                    description=description,
                    gross_amount=amount,
                    net_amount=amount,
                    year=year,
                ))

        # Benefits count at their taxable portion when one is reported
        benefit_items = (
            (
                IncomeType.SOCIAL_SECURITY,
                "Social Security Benefits",
                payload.social_security_benefits,
                payload.taxable_social_security,
            ),
            (
                IncomeType.PENSION,
                "Pension / Annuity Income",
                payload.pension_income,
                payload.taxable_pension,
            ),
        )
        for income_type, description, gross, taxable in benefit_items:
            if gross > 0:
                sources.append(IncomeSource(
                    type=income_type,
                    description=description,
                    gross_amount=gross,
                    net_amount=taxable if taxable > 0 else gross,
                    year=year,
                ))

        return sources

    def _from_schedule_c(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        payload: ScheduleCPayload = doc.payload
        net_profit = payload.net_profit or 0.0
        if payload.gross_receipts <= 0 and net_profit == 0:
            return []

        # Depreciation and amortization are non-cash and added back
        adjusted_net = net_profit + payload.depreciation + payload.amortization
        description = (
            f"Schedule C: {payload.business_name}"
            if payload.business_name
            else "Schedule C - Self-Employment"
        )
        return [IncomeSource(
            type=IncomeType.SELF_EMPLOYMENT,
            description=description,
            gross_amount=payload.gross_receipts,
            net_amount=adjusted_net,
            year=year,
        )]

    def _from_schedule_e(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        payload: ScheduleEPayload = doc.payload

        if payload.properties is not None:
            return [
                IncomeSource(
                    type=IncomeType.RENTAL,
                    description=(
                        f"Rental: {prop.address}" if prop.address else "Schedule E - Rental Property"
                    ),
                    gross_amount=prop.rents_received,
                    net_amount=prop.net_rental_income + prop.depreciation + prop.amortization,
                    year=year,
                )
                for prop in payload.properties
            ]

        adjusted_net = payload.total_net_rental + payload.depreciation + payload.amortization
        if payload.total_rents <= 0 and adjusted_net == 0:
            return []
        return [IncomeSource(
            type=IncomeType.RENTAL,
            description=f"Rental: {payload.address}" if payload.address else "Schedule E - Rental Income",
            gross_amount=payload.total_rents,
            net_amount=adjusted_net,
            year=year,
        )]

    def _pass_through_sources(
        self,
        payload: K1Payload,
        year: int,
        income_type: IncomeType,
    ) -> List[IncomeSource]:
        # K-1 amounts are already net to the partner or shareholder
        amount = payload.ordinary_income + payload.guaranteed_payments + payload.k1_net_rental_income
        if amount == 0:
            return []
        if payload.entity_name:
            description = f"K-1: {payload.entity_name}"
        else:
            kind = "S-Corp" if income_type == IncomeType.SCORP else "Partnership"
            description = f"K-1 - {kind}"
        return [IncomeSource(
            type=income_type,
            description=description,
            gross_amount=amount,
            net_amount=amount,
            year=year,
        )]

    def _from_k1(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        payload: K1Payload = doc.payload
        is_s_corp = payload.declares_s_corp or doc.canonical_label == "k1scorp"
        income_type = IncomeType.SCORP if is_s_corp else IncomeType.PARTNERSHIP
        return self._pass_through_sources(payload, year, income_type)

    def _from_1065(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        return self._pass_through_sources(doc.payload, year, IncomeType.PARTNERSHIP)

    def _from_1120s(self, doc: ClassifiedDocument, year: int) -> List[IncomeSource]:
        return self._pass_through_sources(doc.payload, year, IncomeType.SCORP)

    # =========================================================================
    # Analysis
    # =========================================================================

    def collect_sources(
        self,
        documents: Iterable[ClassifiedDocument],
        reference_year: int,
    ) -> Tuple[IncomeSource, ...]:
        """Extract, deduplicate wages and sort all sources deterministically."""
        sources: List[IncomeSource] = []
        seen_wages = set()

        for doc in documents:
            year = resolve_year(doc, reference_year)
            extracted = self.extract_sources(doc, year)
            logger.debug(
                "Extracted income sources",
                document_type=doc.document_type.value,
                year=year,
                sources=len(extracted),
            )
            for source in extracted:
                if source.type == IncomeType.W2:
                    if source.wage_key in seen_wages:
                        continue
                    seen_wages.add(source.wage_key)
                sources.append(source)

        return tuple(sorted(sources, key=lambda s: s.sort_key))

    def analyze(
        self,
        documents: Sequence[ClassifiedDocument],
        reference_year: int,
    ) -> IncomeAnalysis:
        """
        Analyze income documents.

        Args:
            documents: Tax forms and unclassified documents.
            reference_year: Year assumed for documents without one, and the
                latest year when no source exists.

        Returns:
            IncomeAnalysis with qualifying income and notes.
        """
        sources = self.collect_sources(documents, reference_year)
        notes: List[str] = []

        by_year: Dict[int, List[IncomeSource]] = defaultdict(list)
        for source in sources:
            by_year[source.year].append(source)
        years = sorted(by_year)

        income_by_year = {
            year: YearTotals(
                gross=round_currency(sum(s.gross_amount for s in by_year[year])),
                net=round_currency(sum(s.net_amount for s in by_year[year])),
            )
            for year in years
        }

        latest_year = years[-1] if years else reference_year
        latest = by_year.get(latest_year, [])

        def latest_net(types) -> float:
            return sum(s.net_amount for s in latest if s.type in types)

        w2_income = latest_net({IncomeType.W2})
        self_employed_income = latest_net({IncomeType.SELF_EMPLOYMENT})
        passive_income = latest_net(PASSIVE_TYPES)

        # Year-over-year trend on total net income
        trend = Trend.STABLE
        trend_percent = 0.0
        if len(years) >= 2:
            result = self.trend_validator.year_over_year(
                income_by_year[years[-1]].net,
                income_by_year[years[-2]].net,
            )
            trend, trend_percent = result.trend, result.change_percent

        # Qualifying income
        se_by_year = self._net_by_year(sources, {IncomeType.SELF_EMPLOYMENT})
        se_qualifying = self._averaged_or_lower(se_by_year)
        if len(se_by_year) >= 2:
            prior_year, recent_year = sorted(se_by_year)[-2:]
            prior, recent = se_by_year[prior_year], se_by_year[recent_year]
            if recent < prior:
                notes.append(
                    f"Self-employment income declining ({prior_year}: ${format_amount(prior)} -> "
                    f"{recent_year}: ${format_amount(recent)}). Using lower year for qualifying."
                )
            else:
                notes.append(
                    f"Self-employment income: 2-year average = ${format_amount(se_qualifying)}."
                )
        elif len(se_by_year) == 1:
            notes.append("Only 1 year of self-employment history available.")

        pass_through_qualifying = self._averaged_or_lower(
            self._net_by_year(sources, PASS_THROUGH_TYPES)
        )
        rental_income = latest_net({IncomeType.RENTAL})
        other_passive = latest_net(OTHER_PASSIVE_TYPES)

        qualifying_income = (
            w2_income + se_qualifying + pass_through_qualifying + rental_income + other_passive
        )

        if not sources:
            notes.append("No income sources identified from provided documents.")

        if trend == Trend.DECLINING:
            notes.append(
                f"Overall income declining {whole_percent(trend_percent)}% year-over-year."
            )

        if len(years) < 2:
            notes.append("Less than 2 years of income history provided.")

        unrecognised = sorted({
            doc.record.doc_type or "(blank)"
            for doc in documents
            if doc.document_type == DocumentType.UNKNOWN
        })
        if unrecognised:
            notes.append(
                f"{len(unrecognised)} unrecognised document type(s) yielded no income: "
                f"{', '.join(unrecognised)}."
            )

        analysis = IncomeAnalysis(
            sources=sources,
            total_gross_income=round_currency(sum(s.gross_amount for s in latest)),
            total_net_income=round_currency(sum(s.net_amount for s in latest)),
            qualifying_income=round_currency(qualifying_income),
            income_by_year=income_by_year,
            trend=trend,
            trend_percent=round_ratio(trend_percent),
            self_employed_income=round_currency(self_employed_income),
            w2_income=round_currency(w2_income),
            passive_income=round_currency(passive_income),
            notes=tuple(notes),
        )

        logger.info(
            "Income analysis complete",
            sources=len(sources),
            years=years,
            qualifying_income=analysis.qualifying_income,
            trend=trend.value,
        )
        return analysis

    @staticmethod
    def _net_by_year(sources: Iterable[IncomeSource], types) -> Dict[int, float]:
        totals: Dict[int, float] = defaultdict(float)
        for source in sources:
            if source.type in types:
                totals[source.year] += source.net_amount
        return dict(totals)

    @staticmethod
    def _averaged_or_lower(net_by_year: Dict[int, float]) -> float:
        """2-year average, or the most recent year when it declined."""
        if not net_by_year:
            return 0.0
        years = sorted(net_by_year)
        if len(years) == 1:
            return net_by_year[years[0]]
        prior, recent = net_by_year[years[-2]], net_by_year[years[-1]]
        if recent < prior:
            return recent
        return (recent + prior) / 2


# Singleton instance
_analyzer_instance: Optional[IncomeAnalyzer] = None


def get_income_analyzer() -> IncomeAnalyzer:
    """Get singleton IncomeAnalyzer instance."""
    global _analyzer_instance
    if _analyzer_instance is None:
        _analyzer_instance = IncomeAnalyzer()
    return _analyzer_instance
