"""
Accounting equation validator.

Validates that Assets = Liabilities + Equity (A = L + E) on an applicant's
balance sheet.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ValidationResult:
    """Result of a validation check."""

    is_valid: bool
    message: str
    severity: str  # high, medium, info
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass
class BalanceSheetTotals:
    """Balance sheet totals for validation."""

    total_assets: float = 0.0
    total_liabilities: float = 0.0
    total_equity: float = 0.0

    @property
    def liabilities_and_equity(self) -> float:
        return self.total_liabilities + self.total_equity


class AccountingEquationValidator:
    """
    Validator for the accounting equation.

    The check only runs when both sides are positive; a statement missing
    either side is incomplete rather than imbalanced. Differences up to
    0.1% of total assets (never less than $1) are treated as rounding.
    """

    RELATIVE_TOLERANCE = 0.001
    MINIMUM_TOLERANCE = 1.0

    def tolerance_for(self, total_assets: float) -> float:
        """Allowed difference for a balance sheet of the given size."""
        return max(self.MINIMUM_TOLERANCE, total_assets * self.RELATIVE_TOLERANCE)

    def validate(self, totals: BalanceSheetTotals) -> Optional[ValidationResult]:
        """
        Validate Assets = Liabilities + Equity.

        Args:
            totals: Balance sheet totals.

        Returns:
            ValidationResult, or None when the statement is too incomplete
            to check.
        """
        expected = totals.liabilities_and_equity
        if totals.total_assets <= 0 or expected <= 0:
            return None

        diff = abs(totals.total_assets - expected)
        tolerance = self.tolerance_for(totals.total_assets)

        if diff <= tolerance:
            return ValidationResult(
                is_valid=True,
                message="Accounting equation validated: Assets = Liabilities + Equity",
                severity="info",
            )

        logger.debug(
            "Balance sheet does not balance",
            assets=totals.total_assets,
            liabilities_and_equity=expected,
            difference=diff,
        )
        return ValidationResult(
            is_valid=False,
            message=(
                f"Accounting equation failed: Assets ({totals.total_assets:,.2f}) "
                f"!= L + E ({expected:,.2f})"
            ),
            severity="high",
            details={
                "assets": totals.total_assets,
                "liabilities": totals.total_liabilities,
                "equity": totals.total_equity,
                "expected": expected,
                "difference": diff,
            },
        )


# Singleton instance
_validator_instance: Optional[AccountingEquationValidator] = None


def get_accounting_validator() -> AccountingEquationValidator:
    """Get singleton AccountingEquationValidator instance."""
    global _validator_instance
    if _validator_instance is None:
        _validator_instance = AccountingEquationValidator()
    return _validator_instance
