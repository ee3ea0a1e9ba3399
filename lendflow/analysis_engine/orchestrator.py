"""
Orchestrator for the LendFlow analysis engine.

Main entry point that runs the underwriting passes in order:
Pass 1: Classify (document types, typed payloads)
Pass 2: Income (sources, qualifying income)
Pass 3: Business (entity financials, add-backs)
Pass 4: Cashflow (bank deposits, NSF/overdraft)
Pass 5: DSCR (debt service coverage)
Pass 6: DTI (debt-to-income)
Pass 7: Liquidity (reserves, solvency ratios)
Pass 8: Risk (flags, score, rating)
"""

import math
import uuid
from collections.abc import Mapping
from datetime import date
from typing import Any, Optional, Sequence, Tuple

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from lendflow.analysis_engine.business import get_business_analyzer
from lendflow.analysis_engine.cashflow import get_cashflow_analyzer
from lendflow.analysis_engine.classification import get_document_classifier
from lendflow.analysis_engine.documents import PropertyOperations
from lendflow.analysis_engine.dscr import get_dscr_calculator
from lendflow.analysis_engine.dti import get_dti_calculator
from lendflow.analysis_engine.income import get_income_analyzer
from lendflow.analysis_engine.liquidity import get_liquidity_analyzer
from lendflow.analysis_engine.models import (
    DocumentType,
    FullAnalysisReport,
    LoanPurpose,
    ReportSummary,
)
from lendflow.analysis_engine.payments import LoanTerms, merge_recurring_payments
from lendflow.analysis_engine.risk_flags import get_risk_flag_detector, get_risk_scorer
from lendflow.config import Settings, get_settings
from lendflow.exceptions import (
    AnalysisError,
    InvalidInputError,
    InvalidLoanTermsError,
    LendFlowError,
)

logger = structlog.get_logger(__name__)


LOAN_TERM_FIELDS = frozenset({
    "proposed_loan_amount",
    "proposedLoanAmount",
    "proposed_rate",
    "proposedRate",
    "proposed_term",
    "proposedTerm",
    "proposed_monthly_payment",
    "proposedMonthlyPayment",
})


# Upper bounds of the proposed loan: a 100% annual rate and a 50-year term
MAX_RATE = 1.0
MAX_TERM_MONTHS = 600


class AnalysisOptions(BaseModel):
    """Proposed loan and run options; camelCase and snake_case keys are both accepted."""

    model_config = ConfigDict(extra="ignore", frozen=True, allow_inf_nan=False)

    proposed_loan_amount: Optional[float] = Field(
        None, validation_alias=AliasChoices("proposedLoanAmount", "proposed_loan_amount")
    )
    # Annual rate as a decimal, e.g. 0.065
    proposed_rate: Optional[float] = Field(
        None, le=MAX_RATE, validation_alias=AliasChoices("proposedRate", "proposed_rate")
    )
    # Term in months
    proposed_term: Optional[int] = Field(
        None, le=MAX_TERM_MONTHS, validation_alias=AliasChoices("proposedTerm", "proposed_term")
    )
    proposed_monthly_payment: Optional[float] = Field(
        None, validation_alias=AliasChoices("proposedMonthlyPayment", "proposed_monthly_payment")
    )
    loan_purpose: Optional[LoanPurpose] = Field(
        None, validation_alias=AliasChoices("loanPurpose", "loan_purpose")
    )
    reference_year: Optional[int] = Field(
        None, validation_alias=AliasChoices("referenceYear", "reference_year")
    )

    @field_validator("proposed_loan_amount", "proposed_term", "proposed_monthly_payment")
    @classmethod
    def non_negative(cls, value):
        if value is not None and value < 0:
            raise ValueError("must not be negative")
        return value

    @field_validator("loan_purpose", mode="before")
    @classmethod
    def normalize_purpose(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @classmethod
    def coerce(cls, options: Any) -> "AnalysisOptions":
        """
        Build options from None, an AnalysisOptions or a mapping.

        Raises:
            InvalidLoanTermsError: If a proposed loan parameter fails validation.
            InvalidInputError: If options have the wrong shape.
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        if not isinstance(options, Mapping):
            raise InvalidInputError(
                "Analysis options must be a mapping",
                details={"type": type(options).__name__},
            )

        try:
            return cls.model_validate(dict(options))
        except ValidationError as e:
            errors = [
                {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            if any(err["loc"] and err["loc"][0] in LOAN_TERM_FIELDS for err in e.errors()):
                raise InvalidLoanTermsError(details={"errors": errors}) from e
            raise InvalidInputError("Invalid analysis options", details={"errors": errors}) from e

    def loan_terms(self) -> Optional[LoanTerms]:
        """Terms to amortize when amount, rate and term are all usable."""
        if (
            self.proposed_loan_amount
            and self.proposed_loan_amount > 0
            and self.proposed_rate is not None
            and self.proposed_term
            and self.proposed_term > 0
        ):
            return LoanTerms(
                amount=self.proposed_loan_amount,
                annual_rate=self.proposed_rate,
                term_months=self.proposed_term,
            )
        return None


def _default_loan_purpose(settings: Settings) -> LoanPurpose:
    try:
        return LoanPurpose(settings.default_loan_purpose.strip().lower())
    except ValueError:
        logger.warning(
            "Unknown default loan purpose, using purchase",
            configured=settings.default_loan_purpose,
        )
        return LoanPurpose.PURCHASE


def _proposed_payment(options: AnalysisOptions) -> Tuple[float, Optional[LoanTerms]]:
    """Supplied monthly payment, else the amortized payment and the terms it came from."""
    supplied = options.proposed_monthly_payment or 0.0
    if supplied > 0:
        return supplied, None

    terms = options.loan_terms()
    if terms is None:
        return 0.0, None

    payment = terms.monthly_payment
    if not math.isfinite(payment):
        raise InvalidLoanTermsError(
            "Proposed loan terms produce a non-finite payment",
            details={"amount": terms.amount, "rate": terms.annual_rate, "term": terms.term_months},
        )
    return payment, terms


def run_full_analysis(
    extractions: Sequence[Any],
    options: Any = None,
    settings: Optional[Settings] = None,
) -> FullAnalysisReport:
    """
    Main entry point for the LendFlow analysis engine.

    Args:
        extractions: Extraction records (mappings with ``docType``, ``data``
            and optional ``year``, or ExtractionRecord instances).
        options: AnalysisOptions or a mapping of proposed loan parameters.
        settings: Settings override; defaults to the cached settings.

    Returns:
        FullAnalysisReport. Identical inputs yield equal reports regardless
        of record order.

    Raises:
        InvalidInputError: If extractions or options break the input contract.
        InvalidLoanTermsError: If proposed loan parameters are invalid.
        AnalysisError: If a pass fails unexpectedly.
    """
    run_id = str(uuid.uuid4())
    settings = settings or get_settings()
    options = AnalysisOptions.coerce(options)

    reference_year = options.reference_year or settings.reference_year or date.today().year
    loan_purpose = options.loan_purpose or _default_loan_purpose(settings)

    logger.info(
        "Starting LendFlow analysis",
        run_id=run_id,
        records=len(extractions) if isinstance(extractions, (list, tuple)) else None,
        reference_year=reference_year,
        loan_purpose=loan_purpose.value,
    )

    current_pass = "classification"
    try:
        # =================================================================
        # Pass 1: CLASSIFICATION
        # =================================================================
        logger.info("Pass 1: Classification")
        classified = get_document_classifier().classify(extractions)

        statements = [doc.payload for doc in classified.bank_statements]
        balance_sheets = [doc.payload for doc in classified.balance_sheets]
        recurring_payments = merge_recurring_payments(statements)

        # =================================================================
        # Pass 2: INCOME
        # =================================================================
        current_pass = "income"
        logger.info("Pass 2: Income")
        income = get_income_analyzer().analyze(classified.income_documents(), reference_year)

        # =================================================================
        # Pass 3: BUSINESS
        # =================================================================
        current_pass = "business"
        logger.info("Pass 3: Business")
        business = get_business_analyzer().analyze(classified.business_documents(), reference_year)

        # =================================================================
        # Pass 4: CASHFLOW
        # =================================================================
        current_pass = "cashflow"
        logger.info("Pass 4: Cashflow")
        cashflow = get_cashflow_analyzer().analyze(statements, income.qualifying_income)

        # =================================================================
        # Pass 5: DSCR
        # =================================================================
        current_pass = "dscr"
        logger.info("Pass 5: DSCR")
        proposed_monthly, derived_from = _proposed_payment(options)

        rental: Optional[PropertyOperations] = None
        if classified.rent_rolls:
            rental = classified.rent_rolls[0].payload
        else:
            schedules = [d for d in classified.tax_forms if d.document_type == DocumentType.SCHEDULE_E]
            if schedules:
                rental = schedules[0].payload

        dscr = get_dscr_calculator().calculate(
            income,
            recurring_payments,
            proposed_monthly_payment=proposed_monthly,
            derived_from=derived_from,
            rental=rental,
        )

        # =================================================================
        # Pass 6: DTI
        # =================================================================
        current_pass = "dti"
        logger.info("Pass 6: DTI")
        dti = get_dti_calculator().calculate(
            income,
            recurring_payments,
            proposed_monthly_payment=proposed_monthly,
            loan_purpose=loan_purpose,
        )

        # =================================================================
        # Pass 7: LIQUIDITY
        # =================================================================
        current_pass = "liquidity"
        logger.info("Pass 7: Liquidity")
        if dti.total_monthly_debt > 0:
            monthly_debt_service = dti.total_monthly_debt
        else:
            monthly_debt_service = max(proposed_monthly, 0.0)

        liquidity = get_liquidity_analyzer().analyze(
            statements,
            balance_sheets[0] if balance_sheets else None,
            monthly_debt_service,
        )

        # =================================================================
        # Pass 8: RISK
        # =================================================================
        current_pass = "risk"
        logger.info("Pass 8: Risk")
        risk_flags = get_risk_flag_detector().detect(
            income=income,
            business=business,
            cashflow=cashflow,
            dscr=dscr,
            dti=dti,
            liquidity=liquidity,
            balance_sheets=balance_sheets,
        )
        scorer = get_risk_scorer()
        risk_score = scorer.score(risk_flags)
        risk_rating = scorer.rating_for(risk_score)

    except LendFlowError:
        raise
    except Exception as e:
        logger.error(
            "LendFlow analysis failed",
            run_id=run_id,
            pass_name=current_pass,
            error=str(e),
            exc_info=True,
        )
        raise AnalysisError(current_pass, str(e) or type(e).__name__) from e

    # =================================================================
    # FINAL REPORT
    # =================================================================
    summary = ReportSummary(
        qualifying_income=income.qualifying_income,
        global_dscr=dscr.global_dscr,
        back_end_dti=dti.back_end_dti,
        months_of_reserves=liquidity.months_of_reserves,
        risk_rating=risk_rating,
        risk_score=risk_score,
    )

    report = FullAnalysisReport(
        income=income,
        business=business,
        cashflow=cashflow,
        dscr=dscr,
        dti=dti,
        liquidity=liquidity,
        risk_flags=risk_flags,
        risk_score=risk_score,
        summary=summary,
        run_id=run_id,
    )

    logger.info(
        "LendFlow analysis complete",
        run_id=run_id,
        qualifying_income=income.qualifying_income,
        global_dscr=dscr.global_dscr,
        back_end_dti=dti.back_end_dti,
        risk_score=risk_score,
        risk_rating=risk_rating.value,
        flags=len(risk_flags),
    )
    return report
