"""Validators package."""
from lendflow.services.validators.accounting_equation import AccountingEquationValidator
from lendflow.services.validators.trend_validator import TrendValidator

__all__ = ["AccountingEquationValidator", "TrendValidator"]
