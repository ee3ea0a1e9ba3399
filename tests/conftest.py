"""
Pytest configuration and fixtures.
"""
from typing import Any, Dict, Generator, List, Optional

import pytest

import lendflow.analysis_engine.business as business_module
import lendflow.analysis_engine.cashflow as cashflow_module
import lendflow.analysis_engine.classification as classification_module
import lendflow.analysis_engine.dscr as dscr_module
import lendflow.analysis_engine.dti as dti_module
import lendflow.analysis_engine.income as income_module
import lendflow.analysis_engine.liquidity as liquidity_module
import lendflow.analysis_engine.risk_flags as risk_flags_module
import lendflow.services.numeric_parser as numeric_parser_module
import lendflow.services.period_normalizer as period_normalizer_module
import lendflow.services.validators.accounting_equation as accounting_module
import lendflow.services.validators.trend_validator as trend_module
from lendflow.analysis_engine.models import IncomeAnalysis, Trend
from lendflow.config import Settings, get_settings


SINGLETONS = [
    (business_module, "_analyzer_instance"),
    (cashflow_module, "_analyzer_instance"),
    (classification_module, "_classifier_instance"),
    (dscr_module, "_calculator_instance"),
    (dti_module, "_calculator_instance"),
    (income_module, "_analyzer_instance"),
    (liquidity_module, "_analyzer_instance"),
    (risk_flags_module, "_detector_instance"),
    (risk_flags_module, "_scorer_instance"),
    (numeric_parser_module, "_parser_instance"),
    (period_normalizer_module, "_normalizer_instance"),
    (accounting_module, "_validator_instance"),
    (trend_module, "_validator_instance"),
]


@pytest.fixture(autouse=True)
def reset_singletons() -> Generator[None, None, None]:
    """Give every test fresh service instances and settings."""
    for module, attribute in SINGLETONS:
        setattr(module, attribute, None)
    get_settings.cache_clear()
    yield
    for module, attribute in SINGLETONS:
        setattr(module, attribute, None)
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Settings pinned to a fixed reference year."""
    return Settings(reference_year=2024, log_json=False)


def income_of(qualifying_income: float) -> IncomeAnalysis:
    """A bare income analysis with the given qualifying income."""
    return IncomeAnalysis(
        sources=(),
        total_gross_income=qualifying_income,
        total_net_income=qualifying_income,
        qualifying_income=qualifying_income,
        income_by_year={},
        trend=Trend.STABLE,
        trend_percent=0.0,
        self_employed_income=0.0,
        w2_income=qualifying_income,
        passive_income=0.0,
    )


def record(doc_type: str, data: Dict[str, Any], year: Optional[int] = None) -> Dict[str, Any]:
    """Build an extraction record mapping."""
    raw: Dict[str, Any] = {"docType": doc_type, "data": data}
    if year is not None:
        raw["year"] = year
    return raw


@pytest.fixture
def w2_only_extractions() -> List[Dict[str, Any]]:
    """A salaried borrower with one W-2 and no debts."""
    return [record("W-2", {"wages": 90000, "employerName": "Acme Corp"}, year=2024)]


@pytest.fixture
def self_employed_extractions() -> List[Dict[str, Any]]:
    """Two years of Schedule C, a bank statement and a balance sheet."""
    return [
        record("Schedule C", {
            "businessName": "Smith Consulting",
            "grossReceipts": 150000,
            "totalExpenses": 70000,
            "netProfit": 80000,
            "depreciation": 5000,
        }, year=2023),
        record("Schedule C", {
            "businessName": "Smith Consulting",
            "grossReceipts": 160000,
            "totalExpenses": 72000,
            "netProfit": 88000,
            "depreciation": 5000,
        }, year=2024),
        record("Bank Statement", {
            "accountNumber": "CHK-1",
            "statementPeriod": "2024-06",
            "endingBalance": 60000,
            "averageDailyBalance": 55000,
            "transactions": [
                {"date": "2024-04-15", "amount": 7000, "description": "Client payment"},
                {"date": "2024-05-15", "amount": 7500, "description": "Client payment"},
                {"date": "2024-06-15", "amount": 7200, "description": "Client payment"},
            ],
            "regularPaymentsDetected": [
                {"description": "Mortgage Payment", "amount": 2000, "frequency": "monthly"},
                {"description": "Netflix", "amount": 15},
            ],
        }),
        record("Balance Sheet", {
            "cash": 58000,
            "totalAssets": 200000,
            "totalLiabilities": 80000,
            "totalEquity": 120000,
            "currentAssets": 90000,
            "currentLiabilities": 30000,
        }, year=2024),
    ]
