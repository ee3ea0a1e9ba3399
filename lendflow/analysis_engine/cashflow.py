"""
Cashflow Analyzer.

Builds a monthly deposit series from bank statements, counts NSF and
overdraft events, flags large non-payroll deposits and classifies the
deposit trend.
"""

import re
from collections import defaultdict
from enum import Enum
from typing import Dict, List, Optional, Sequence

import structlog

from lendflow.analysis_engine.documents import BankStatementPayload, BankTransaction
from lendflow.analysis_engine.models import (
    CashflowAnalysis,
    Deposit,
    MonthlyDeposits,
    RecurringPayment,
    Trend,
)
from lendflow.services.numeric_parser import format_amount, round_currency, round_half_up, round_ratio
from lendflow.services.period_normalizer import PeriodNormalizer, get_period_normalizer
from lendflow.services.validators.trend_validator import TrendValidator, get_trend_validator

logger = structlog.get_logger(__name__)


class TransactionKind(str, Enum):
    NSF = "nsf"
    OVERDRAFT = "overdraft"
    DEPOSIT = "deposit"
    OTHER = "other"


class CashflowAnalyzer:
    """
    Analyzer for bank statement deposits.

    Transaction-level detail is preferred; statements without transactions
    contribute their summary totals and NSF/overdraft counts instead.
    """

    LARGE_DEPOSIT_THRESHOLD = 5000.0
    HIGH_DEPOSIT_RATIO = 1.5
    LOW_DEPOSIT_RATIO = 0.7

    NSF_PATTERN = re.compile(
        r"\b(nsf|non.?sufficient|insufficient funds|returned item|returned check)\b",
        re.IGNORECASE,
    )
    OVERDRAFT_PATTERN = re.compile(
        r"\b(overdraft|od fee|od protection|od charge)\b",
        re.IGNORECASE,
    )
    PAYROLL_PATTERN = re.compile(
        r"\b(payroll|direct dep|salary|wage|adp|paychex|gusto|intuit payroll|employer)\b",
        re.IGNORECASE,
    )
    DEPOSIT_TYPES = frozenset({"", "deposit", "credit", "ach credit", "wire in"})

    def __init__(
        self,
        period_normalizer: Optional[PeriodNormalizer] = None,
        trend_validator: Optional[TrendValidator] = None,
    ):
        self.period_normalizer = period_normalizer or get_period_normalizer()
        self.trend_validator = trend_validator or get_trend_validator()

    def classify_transaction(self, txn: BankTransaction) -> TransactionKind:
        """NSF and overdraft take precedence over deposits."""
        kind = txn.kind
        if kind == "nsf" or self.NSF_PATTERN.search(txn.description):
            return TransactionKind.NSF
        if kind == "overdraft" or self.OVERDRAFT_PATTERN.search(txn.description):
            return TransactionKind.OVERDRAFT
        if txn.amount > 0 and kind in self.DEPOSIT_TYPES:
            return TransactionKind.DEPOSIT
        return TransactionKind.OTHER

    @staticmethod
    def _count(value: float) -> int:
        """Whole, non-negative event count from an OCR figure."""
        return int(round_half_up(max(value, 0.0), 0))

    def is_payroll(self, description: str) -> bool:
        return bool(self.PAYROLL_PATTERN.search(description or ""))

    def collect_recurring_payments(
        self,
        statements: Sequence[BankStatementPayload],
    ) -> List[RecurringPayment]:
        """Statement-level recurring payments, deduplicated by description and amount within $1."""
        candidates = sorted(
            (
                RecurringPayment(
                    description=p.label,
                    amount=p.amount,
                    frequency=p.frequency or "monthly",
                    category=p.category,
                )
                for statement in statements
                for p in statement.recurring_payments
                if p.amount > 0
            ),
            key=lambda p: (p.description, p.amount, p.frequency, p.category),
        )

        payments: List[RecurringPayment] = []
        for candidate in candidates:
            duplicate = any(
                p.description == candidate.description and abs(p.amount - candidate.amount) < 1
                for p in payments
            )
            if not duplicate:
                payments.append(candidate)
        return payments

    def analyze(
        self,
        statements: Sequence[BankStatementPayload],
        reported_income: float,
    ) -> CashflowAnalysis:
        """
        Analyze bank statement deposits.

        Args:
            statements: Bank statement payloads.
            reported_income: Annual income the deposits are compared against.

        Returns:
            CashflowAnalysis with the monthly series, event counts and notes.
        """
        notes: List[str] = []
        month_totals: Dict[str, float] = defaultdict(float)
        month_counts: Dict[str, int] = defaultdict(int)
        deposits: List[Deposit] = []
        nsf_count = 0
        overdraft_count = 0

        for statement in statements:
            for txn in statement.transactions:
                kind = self.classify_transaction(txn)
                if kind == TransactionKind.NSF:
                    nsf_count += 1
                elif kind == TransactionKind.OVERDRAFT:
                    overdraft_count += 1
                elif kind == TransactionKind.DEPOSIT:
                    month = self.period_normalizer.month_key(txn.date)
                    if month is None:
                        logger.debug("Skipped deposit with unparsable date", date=txn.date)
                        continue
                    month_totals[month] += txn.amount
                    month_counts[month] += 1
                    deposits.append(Deposit(date=txn.date, amount=txn.amount, description=txn.description))

            if not statement.transactions:
                # Summary figures stand in for missing transaction detail
                if statement.total_deposits > 0:
                    period = statement.statement_period
                    month = self.period_normalizer.month_key(period) or period
                    if month:
                        month_totals[month] += statement.total_deposits
                        month_counts[month] += self._count(statement.deposit_count) or 1
                nsf_count += self._count(statement.nsf_count)
                overdraft_count += self._count(statement.overdraft_count)

        monthly_deposits = tuple(
            MonthlyDeposits(
                month=month,
                total=round_currency(month_totals[month]),
                count=month_counts[month],
            )
            for month in sorted(month_totals)
        )

        totals = [m.total for m in monthly_deposits]
        average_monthly_deposits = round_currency(sum(totals) / (len(totals) or 1))

        deposit_to_income_ratio = None
        if reported_income > 0:
            deposit_to_income_ratio = round_ratio(average_monthly_deposits * 12 / reported_income)
            if deposit_to_income_ratio > self.HIGH_DEPOSIT_RATIO:
                notes.append(
                    f"Deposit-to-income ratio is {deposit_to_income_ratio:.2f}x; deposits significantly "
                    "exceed reported income. May indicate unreported income or non-income deposits."
                )
            elif deposit_to_income_ratio < self.LOW_DEPOSIT_RATIO:
                notes.append(
                    f"Deposit-to-income ratio is {deposit_to_income_ratio:.2f}x; deposits are well "
                    "below reported income. Income may be deposited elsewhere."
                )

        large_deposits = tuple(sorted(
            (
                Deposit(date=d.date, amount=round_currency(d.amount), description=d.description)
                for d in deposits
                if d.amount >= self.LARGE_DEPOSIT_THRESHOLD and not self.is_payroll(d.description)
            ),
            key=lambda d: (-d.amount, d.date, d.description),
        ))
        if large_deposits:
            notes.append(
                f"{len(large_deposits)} large non-payroll deposit(s) over "
                f"${format_amount(self.LARGE_DEPOSIT_THRESHOLD)} detected. "
                "These may require sourcing/explanation."
            )

        cashflow_trend = Trend.STABLE
        trend_result = self.trend_validator.series_trend(totals)
        if trend_result is not None:
            cashflow_trend = trend_result.trend
        if cashflow_trend == Trend.DECLINING and len(totals) >= 4:
            midpoint = len(totals) // 2
            first_avg = sum(totals[:midpoint]) / midpoint
            second_avg = sum(totals[midpoint:]) / (len(totals) - midpoint)
            notes.append(
                f"Cash flow declining: first-half average ${format_amount(first_avg)}/mo "
                f"vs. second-half ${format_amount(second_avg)}/mo."
            )

        if nsf_count > 0:
            notes.append(f"{nsf_count} NSF (non-sufficient funds) item(s) detected.")
        if overdraft_count > 0:
            notes.append(f"{overdraft_count} overdraft occurrence(s) detected.")

        if monthly_deposits:
            notes.append(
                f"Analyzed {len(monthly_deposits)} month(s) of bank deposits. "
                f"Average: ${format_amount(average_monthly_deposits)}/mo."
            )
        else:
            notes.append("No deposit data available from bank statements.")

        analysis = CashflowAnalysis(
            monthly_deposits=monthly_deposits,
            average_monthly_deposits=average_monthly_deposits,
            deposit_to_income_ratio=deposit_to_income_ratio,
            nsf_count=nsf_count,
            overdraft_count=overdraft_count,
            large_deposits=large_deposits,
            regular_payments=tuple(self.collect_recurring_payments(statements)),
            cashflow_trend=cashflow_trend,
            notes=tuple(notes),
        )

        logger.info(
            "Cashflow analysis complete",
            statements=len(statements),
            months=len(monthly_deposits),
            average_monthly_deposits=average_monthly_deposits,
            nsf_count=nsf_count,
            overdraft_count=overdraft_count,
        )
        return analysis


# Singleton instance
_analyzer_instance: Optional[CashflowAnalyzer] = None


def get_cashflow_analyzer() -> CashflowAnalyzer:
    """Get singleton CashflowAnalyzer instance."""
    global _analyzer_instance
    if _analyzer_instance is None:
        _analyzer_instance = CashflowAnalyzer()
    return _analyzer_instance
