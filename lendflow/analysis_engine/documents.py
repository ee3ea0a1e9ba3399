"""
Document-type registry and typed extraction payloads.

Extraction records carry loose labels ("Schedule C", "SCHED_C", "schedC")
and open-ended key/value data straight from OCR. This module resolves the
label to a canonical DocumentType through one synonym table, and validates
the data into a payload model for that document family.

Payload fields list their accepted source keys in priority order. Null
values are dropped before aliases are resolved, so the first non-null key
wins. Monetary fields go through the tolerant numeric coercion and never
fail validation; unknown keys are ignored.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Dict, FrozenSet, Optional, Tuple, Type

import structlog
from pydantic import (
    AliasChoices,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    ValidationError,
    model_validator,
)

from lendflow.analysis_engine.models import DocumentCategory, DocumentType
from lendflow.services.numeric_parser import to_number
from lendflow.services.validators.accounting_equation import BalanceSheetTotals

logger = structlog.get_logger(__name__)


# =============================================================================
# Type Normalizer
# =============================================================================

_LABEL_NOISE = str.maketrans("", "", " \t\n\r\f\v-_&")


def normalize_doc_type(label: Any) -> str:
    """Lower-case a document-type label and remove whitespace, '-', '_' and '&'."""
    if not isinstance(label, str):
        return ""
    return label.lower().translate(_LABEL_NOISE)


# =============================================================================
# Registry
# =============================================================================

DOCUMENT_SYNONYMS: Dict[DocumentType, FrozenSet[str]] = {
    DocumentType.W2: frozenset({"w2", "w2summary", "formw2"}),
    DocumentType.FORM_1040: frozenset({"1040", "form1040", "1040return"}),
    DocumentType.SCHEDULE_C: frozenset({"schedulec", "schedc"}),
    DocumentType.SCHEDULE_E: frozenset({"schedulee", "schede"}),
    DocumentType.K1: frozenset({"k1", "schedulek1", "k1partnership", "k1scorp"}),
    DocumentType.FORM_1065: frozenset({"1065", "form1065"}),
    DocumentType.FORM_1120: frozenset({"1120", "form1120"}),
    DocumentType.FORM_1120S: frozenset({"1120s", "form1120s"}),
    DocumentType.BANK_STATEMENT: frozenset({
        "bankstatement",
        "bankstatementchecking",
        "bankstatementsavings",
        "bankstmt",
        "checking",
        "savings",
        "bankaccount",
    }),
    DocumentType.PROFIT_AND_LOSS: frozenset({"profitandloss", "pl", "pandl", "incomestatement"}),
    DocumentType.BALANCE_SHEET: frozenset({"balancesheet", "bs"}),
    DocumentType.RENT_ROLL: frozenset({"rentroll", "rentalschedule"}),
}

DOCUMENT_CATEGORIES: Dict[DocumentType, DocumentCategory] = {
    DocumentType.W2: DocumentCategory.TAX_FORM,
    DocumentType.FORM_1040: DocumentCategory.TAX_FORM,
    DocumentType.SCHEDULE_C: DocumentCategory.TAX_FORM,
    DocumentType.SCHEDULE_E: DocumentCategory.TAX_FORM,
    DocumentType.K1: DocumentCategory.TAX_FORM,
    DocumentType.FORM_1065: DocumentCategory.TAX_FORM,
    DocumentType.FORM_1120: DocumentCategory.TAX_FORM,
    DocumentType.FORM_1120S: DocumentCategory.TAX_FORM,
    DocumentType.BANK_STATEMENT: DocumentCategory.BANK_STATEMENT,
    DocumentType.PROFIT_AND_LOSS: DocumentCategory.PROFIT_AND_LOSS,
    DocumentType.BALANCE_SHEET: DocumentCategory.BALANCE_SHEET,
    DocumentType.RENT_ROLL: DocumentCategory.RENT_ROLL,
    DocumentType.UNKNOWN: DocumentCategory.OTHER,
}

# Business-entity documents analysed by the business analyzer
BUSINESS_DOCUMENT_TYPES: FrozenSet[DocumentType] = frozenset({
    DocumentType.SCHEDULE_C,
    DocumentType.FORM_1120,
    DocumentType.FORM_1120S,
    DocumentType.FORM_1065,
    DocumentType.PROFIT_AND_LOSS,
})

_LABEL_INDEX: Dict[str, DocumentType] = {
    label: doc_type
    for doc_type, labels in DOCUMENT_SYNONYMS.items()
    for label in labels
}


def resolve_document_type(label: Any) -> DocumentType:
    """Resolve a raw or normalized label to its canonical DocumentType."""
    return _LABEL_INDEX.get(normalize_doc_type(label), DocumentType.UNKNOWN)


def category_for(doc_type: DocumentType) -> DocumentCategory:
    return DOCUMENT_CATEGORIES[doc_type]


# =============================================================================
# Field coercion
# =============================================================================

def _optional_number(value: Any) -> Optional[float]:
    if value is None:
        return None
    return to_number(value)


def _to_text(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or value is None:
        return ""
    if isinstance(value, (int, float)):
        return str(value)
    return ""


def _to_optional_text(value: Any) -> Optional[str]:
    text = _to_text(value)
    return text or None


def _to_year(value: Any) -> Optional[int]:
    """Coerce a tax year; zero, negative and unparsable values become None."""
    if value is None or isinstance(value, bool):
        return None
    year = int(to_number(value))
    return year if year > 0 else None


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in ("", "false", "0", "no")
    return bool(value)


def _mapping_list(value: Any) -> Optional[list]:
    """Keep only the mapping items of a list; None when the value is not a list."""
    if not isinstance(value, (list, tuple)):
        return None
    return [item for item in value if isinstance(item, Mapping)]


def _mapping_list_or_empty(value: Any) -> list:
    return _mapping_list(value) or []


def _as_dict(value: Any) -> Dict[str, Any]:
    if not isinstance(value, Mapping):
        return {}
    return {key: item for key, item in value.items() if isinstance(key, str)}


Amount = Annotated[float, BeforeValidator(to_number)]
OptionalAmount = Annotated[Optional[float], BeforeValidator(_optional_number)]
Text = Annotated[str, BeforeValidator(_to_text)]
OptionalText = Annotated[Optional[str], BeforeValidator(_to_optional_text)]
Year = Annotated[Optional[int], BeforeValidator(_to_year)]
Flag = Annotated[bool, BeforeValidator(_truthy)]


def _keys(*names: str) -> AliasChoices:
    return AliasChoices(*names)


# =============================================================================
# Extraction record
# =============================================================================

class ExtractionRecord(BaseModel):
    """One already-extracted document as supplied by the caller."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    doc_type: Text = Field("", validation_alias=_keys("docType", "doc_type"))
    data: Annotated[Dict[str, Any], BeforeValidator(_as_dict)] = Field(default_factory=dict)
    year: Year = None


# =============================================================================
# Payload models
# =============================================================================

class PayloadModel(BaseModel):
    """Base for typed document payloads."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data: Any) -> Any:
        if isinstance(data, BaseModel):
            return data
        if not isinstance(data, Mapping):
            return {}
        return {
            key: value
            for key, value in data.items()
            if isinstance(key, str) and value is not None
        }


class DocumentPayload(PayloadModel):
    """Fields shared by every top-level document."""

    tax_year: Year = Field(None, validation_alias=_keys("taxYear", "year"))


class GenericPayload(DocumentPayload):
    """Payload for unrecognised documents."""


# -- Wages ---------------------------------------------------------------------

class W2Entry(PayloadModel):
    wages: Amount = Field(0.0, validation_alias=_keys("wages", "wagesTipsComp", "box1"))
    employer_name: Text = Field("", validation_alias=_keys("employerName"))


class W2Payload(DocumentPayload, W2Entry):
    """W-2 or W-2 summary; may list several W-2s under ``w2Summary``."""

    w2_summary: Annotated[Optional[Tuple[W2Entry, ...]], BeforeValidator(_mapping_list)] = Field(
        None, validation_alias=_keys("w2Summary")
    )

    @property
    def has_w2_detail(self) -> bool:
        return self.w2_summary is not None or bool(self.employer_name)


class Form1040Payload(W2Payload):
    line1_wages: Amount = Field(0.0, validation_alias=_keys("line1", "wages", "wagesSalariesTips"))
    taxable_interest: Amount = Field(
        0.0, validation_alias=_keys("taxableInterest", "line2b", "interestIncome")
    )
    ordinary_dividends: Amount = Field(
        0.0, validation_alias=_keys("ordinaryDividends", "line3b", "dividendIncome")
    )
    social_security_benefits: Amount = Field(
        0.0, validation_alias=_keys("socialSecurityBenefits", "line6a", "ssaBenefits")
    )
    taxable_social_security: Amount = Field(
        0.0, validation_alias=_keys("taxableSocialSecurity", "line6b")
    )
    pension_income: Amount = Field(
        0.0, validation_alias=_keys("pensionIncome", "line5a", "iRADistributions")
    )
    taxable_pension: Amount = Field(0.0, validation_alias=_keys("taxablePension", "line5b"))


# -- Self-employment -----------------------------------------------------------

class ScheduleCPayload(DocumentPayload):
    business_name: Text = Field("", validation_alias=_keys("businessName"))
    gross_receipts: Amount = Field(
        0.0, validation_alias=_keys("grossReceipts", "grossIncome", "totalIncome")
    )
    net_profit: OptionalAmount = Field(
        None, validation_alias=_keys("netProfit", "netIncome", "line31")
    )
    total_expenses: Amount = Field(0.0, validation_alias=_keys("totalExpenses", "totalDeductions"))
    depreciation: Amount = Field(0.0, validation_alias=_keys("depreciation", "depreciationDeduction"))
    amortization: Amount = Field(0.0, validation_alias=_keys("amortization", "amortizationDeduction"))
    interest_expense: Amount = Field(
        0.0, validation_alias=_keys("interestExpense", "mortgageInterest", "otherInterest")
    )
    casualty_loss: Amount = Field(0.0, validation_alias=_keys("casualtyLoss", "otherLoss"))


# -- Rental --------------------------------------------------------------------

class PropertyOperations(PayloadModel):
    """Operating figures used to derive a property's net operating income."""

    noi: OptionalAmount = Field(None, validation_alias=_keys("noi"))
    monthly_debt_service: Amount = Field(
        0.0, validation_alias=_keys("debtService", "mortgagePayment")
    )
    gross_rents: Amount = Field(
        0.0,
        validation_alias=_keys(
            "grossRents", "totalRentsReceived", "rentsReceived", "grossRentalIncome"
        ),
    )
    operating_expenses: Amount = Field(
        0.0,
        validation_alias=_keys("totalOperatingExpenses", "totalExpenses", "operatingExpenses"),
    )
    mortgage_interest: Amount = Field(
        0.0, validation_alias=_keys("mortgageInterest", "interestExpense")
    )
    principal_payments: Amount = Field(0.0, validation_alias=_keys("principalPayments"))


class RentalProperty(PayloadModel):
    address: Text = Field("", validation_alias=_keys("address"))
    rents_received: Amount = Field(
        0.0, validation_alias=_keys("rentsReceived", "grossRent", "totalIncome")
    )
    net_rental_income: Amount = Field(
        0.0, validation_alias=_keys("netRentalIncome", "netIncome", "totalNetIncome")
    )
    depreciation: Amount = Field(0.0, validation_alias=_keys("depreciation", "depreciationExpense"))
    amortization: Amount = Field(0.0, validation_alias=_keys("amortization", "amortizationExpense"))


class ScheduleEPayload(DocumentPayload, PropertyOperations):
    properties: Annotated[Optional[Tuple[RentalProperty, ...]], BeforeValidator(_mapping_list)] = Field(
        None, validation_alias=_keys("properties")
    )
    address: Text = Field("", validation_alias=_keys("address"))
    total_rents: Amount = Field(
        0.0, validation_alias=_keys("totalRentsReceived", "rentsReceived", "grossRent")
    )
    total_net_rental: Amount = Field(
        0.0, validation_alias=_keys("totalNetRentalIncome", "netRentalIncome", "netIncome")
    )
    depreciation: Amount = Field(0.0, validation_alias=_keys("depreciation", "totalDepreciation"))
    amortization: Amount = Field(0.0, validation_alias=_keys("amortization", "totalAmortization"))


class RentRollPayload(DocumentPayload, PropertyOperations):
    pass


# -- Pass-through and corporate returns ------------------------------------------

class K1Payload(DocumentPayload):
    entity_name: Text = Field("", validation_alias=_keys("entityName"))
    form_type: Text = Field("", validation_alias=_keys("formType"))
    entity_type: Text = Field("", validation_alias=_keys("entityType"))
    is_s_corp: Flag = Field(False, validation_alias=_keys("isSCorp"))
    ordinary_income: Amount = Field(
        0.0, validation_alias=_keys("ordinaryIncome", "ordinaryBusinessIncome", "box1")
    )
    guaranteed_payments: Amount = Field(
        0.0, validation_alias=_keys("guaranteedPayments", "box4")
    )
    k1_net_rental_income: Amount = Field(
        0.0, validation_alias=_keys("netRentalIncome", "box2")
    )

    @property
    def declares_s_corp(self) -> bool:
        return (
            self.is_s_corp
            or self.entity_type.strip().lower() == "scorp"
            or resolve_document_type(self.form_type) == DocumentType.FORM_1120S
        )


class CorporateReturnPayload(DocumentPayload):
    revenue: Amount = Field(
        0.0,
        validation_alias=_keys("grossReceipts", "totalIncome", "grossRevenue", "totalRevenue"),
    )
    total_expenses: Amount = Field(0.0, validation_alias=_keys("totalDeductions", "totalExpenses"))
    net_income: OptionalAmount = Field(
        None,
        validation_alias=_keys("taxableIncome", "ordinaryBusinessIncome", "netIncome", "netProfit"),
    )
    depreciation: Amount = Field(0.0, validation_alias=_keys("depreciation", "depreciationDeduction"))
    amortization: Amount = Field(0.0, validation_alias=_keys("amortization", "amortizationDeduction"))
    interest_expense: Amount = Field(0.0, validation_alias=_keys("interestExpense", "interestPaid"))
    officer_compensation: Amount = Field(
        0.0,
        validation_alias=_keys(
            "officerCompensation", "officersCompensation", "ownerCompensation", "guaranteedPayments"
        ),
    )
    net_gain_loss: Amount = Field(0.0, validation_alias=_keys("netGainLoss", "otherGainLoss"))
    extraordinary_items: Amount = Field(0.0, validation_alias=_keys("extraordinaryItems"))


class PassThroughReturnPayload(K1Payload, CorporateReturnPayload):
    """1065 / 1120-S: read both as owner income (K-1 view) and as a business."""


class ProfitAndLossPayload(DocumentPayload):
    revenue: Amount = Field(
        0.0,
        validation_alias=_keys(
            "totalRevenue", "grossRevenue", "totalSales", "netSales", "totalIncome"
        ),
    )
    total_expenses: Amount = Field(
        0.0, validation_alias=_keys("totalExpenses", "totalOperatingExpenses")
    )
    net_income: OptionalAmount = Field(
        None, validation_alias=_keys("netIncome", "netProfit", "netProfitLoss", "bottomLine")
    )
    depreciation: Amount = Field(0.0, validation_alias=_keys("depreciation", "depreciationExpense"))
    amortization: Amount = Field(0.0, validation_alias=_keys("amortization", "amortizationExpense"))
    interest_expense: Amount = Field(0.0, validation_alias=_keys("interestExpense"))
    owner_compensation: Amount = Field(
        0.0,
        validation_alias=_keys("officerCompensation", "ownerSalary", "ownerDraw", "ownerCompensation"),
    )
    one_time_items: Amount = Field(
        0.0, validation_alias=_keys("oneTimeExpenses", "extraordinaryItems")
    )


# -- Bank statements -----------------------------------------------------------

class BankTransaction(PayloadModel):
    amount: Amount = Field(0.0, validation_alias=_keys("amount", "credit", "depositAmount"))
    date: Text = Field("", validation_alias=_keys("date", "transactionDate"))
    description: Text = Field("", validation_alias=_keys("description", "memo", "payee"))
    type: Text = Field("", validation_alias=_keys("type", "transactionType"))

    @property
    def kind(self) -> str:
        return self.type.lower()


class RecurringPaymentEntry(PayloadModel):
    """A recurring debit detected upstream on a bank statement."""

    description: OptionalText = Field(None, validation_alias=_keys("description", "payee", "name"))
    amount: Amount = Field(0.0, validation_alias=_keys("amount", "monthlyAmount", "averageAmount"))
    frequency: Text = Field("monthly", validation_alias=_keys("frequency"))
    category: Text = Field("", validation_alias=_keys("category"))

    @property
    def label(self) -> str:
        return self.description or "Unknown"


class BankStatementPayload(DocumentPayload):
    transactions: Annotated[Tuple[BankTransaction, ...], BeforeValidator(_mapping_list_or_empty)] = Field(
        (), validation_alias=_keys("transactions", "deposits", "lineItems")
    )
    recurring_payments: Annotated[
        Tuple[RecurringPaymentEntry, ...], BeforeValidator(_mapping_list_or_empty)
    ] = Field((), validation_alias=_keys("regularPaymentsDetected", "regularPayments", "recurringDebits"))
    total_deposits: Amount = Field(0.0, validation_alias=_keys("totalDeposits", "depositsTotal"))
    deposit_count: Amount = Field(0.0, validation_alias=_keys("depositCount", "numberOfDeposits"))
    statement_period: Text = Field("", validation_alias=_keys("statementPeriod", "period", "month"))
    nsf_count: Amount = Field(0.0, validation_alias=_keys("nsfCount", "nsfItems"))
    overdraft_count: Amount = Field(0.0, validation_alias=_keys("overdraftCount", "overdraftItems"))
    ending_balance: Amount = Field(
        0.0, validation_alias=_keys("endingBalance", "closingBalance", "balanceEnd", "endBalance")
    )
    average_daily_balance: Amount = Field(
        0.0, validation_alias=_keys("averageDailyBalance", "avgDailyBalance", "averageBalance")
    )
    minimum_balance: Amount = Field(
        0.0, validation_alias=_keys("minimumBalance", "minBalance", "lowestBalance")
    )
    account_id: OptionalText = Field(None, validation_alias=_keys("accountNumber", "accountId", "account"))


# -- Balance sheet ---------------------------------------------------------------

class BalanceSheetPayload(DocumentPayload):
    cash: Amount = Field(
        0.0, validation_alias=_keys("cash", "cashAndEquivalents", "cashAndCashEquivalents")
    )
    current_assets: Amount = Field(0.0, validation_alias=_keys("totalCurrentAssets", "currentAssets"))
    current_liabilities: Amount = Field(
        0.0, validation_alias=_keys("totalCurrentLiabilities", "currentLiabilities")
    )
    inventory: Amount = Field(0.0, validation_alias=_keys("inventory"))
    total_assets: Amount = Field(0.0, validation_alias=_keys("totalAssets", "assets"))
    total_liabilities: Amount = Field(0.0, validation_alias=_keys("totalLiabilities", "liabilities"))
    total_equity: Amount = Field(
        0.0,
        validation_alias=_keys("totalEquity", "equity", "ownersEquity", "stockholdersEquity"),
    )

    @property
    def totals(self) -> BalanceSheetTotals:
        return BalanceSheetTotals(
            total_assets=self.total_assets,
            total_liabilities=self.total_liabilities,
            total_equity=self.total_equity,
        )


PAYLOAD_MODELS: Dict[DocumentType, Type[DocumentPayload]] = {
    DocumentType.W2: W2Payload,
    DocumentType.FORM_1040: Form1040Payload,
    DocumentType.SCHEDULE_C: ScheduleCPayload,
    DocumentType.SCHEDULE_E: ScheduleEPayload,
    DocumentType.K1: K1Payload,
    DocumentType.FORM_1065: PassThroughReturnPayload,
    DocumentType.FORM_1120: CorporateReturnPayload,
    DocumentType.FORM_1120S: PassThroughReturnPayload,
    DocumentType.BANK_STATEMENT: BankStatementPayload,
    DocumentType.PROFIT_AND_LOSS: ProfitAndLossPayload,
    DocumentType.BALANCE_SHEET: BalanceSheetPayload,
    DocumentType.RENT_ROLL: RentRollPayload,
    DocumentType.UNKNOWN: GenericPayload,
}


def parse_payload(doc_type: DocumentType, data: Mapping) -> DocumentPayload:
    """
    Validate raw extraction data into the payload model for its type.

    Coercion is tolerant, so validation only fails on structurally
    impossible input; that case degrades to an all-default payload.
    """
    model = PAYLOAD_MODELS[doc_type]
    try:
        return model.model_validate(data)
    except ValidationError as e:
        logger.warning(
            "Payload validation failed, using defaults",
            doc_type=doc_type.value,
            errors=e.error_count(),
        )
        return model()
