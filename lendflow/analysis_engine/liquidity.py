"""
Liquidity Analyzer.

Combines bank balances and balance-sheet cash into liquid assets, measures
months of reserves against monthly debt service and computes solvency
ratios from the balance sheet.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import structlog

from lendflow.analysis_engine.documents import BalanceSheetPayload, BankStatementPayload
from lendflow.analysis_engine.models import (
    BoundedReserves,
    LiquidityAnalysis,
    LiquidityRating,
    Reserves,
    UnboundedReserves,
)
from lendflow.services.numeric_parser import format_amount, round_currency, round_ratio
from lendflow.services.period_normalizer import PeriodNormalizer, get_period_normalizer

logger = structlog.get_logger(__name__)


class LiquidityAnalyzer:
    """
    Analyzer for reserves and solvency.

    Bank balances and balance-sheet cash describe the same money, so the
    larger of the two is used rather than their sum.
    """

    STRONG_MONTHS = 12
    ADEQUATE_MONTHS = 6
    WEAK_MONTHS = 3
    DISCREPANCY_THRESHOLD = 1000.0
    LUMPY_VARIATION = 0.5

    def __init__(self, period_normalizer: Optional[PeriodNormalizer] = None):
        self.period_normalizer = period_normalizer or get_period_normalizer()

    def latest_balances(self, statements: Sequence[BankStatementPayload]) -> Dict[str, float]:
        """
        Ending balance of the most recent statement per account.

        Statements of one account with the same (or no) period resolve to
        the lower ending balance.
        """
        latest: Dict[str, Tuple[Tuple[str, str], float]] = {}
        for position, statement in enumerate(statements):
            account = statement.account_id or f"account_{position}"
            rank = (
                self.period_normalizer.period_sort_key(statement.statement_period),
                -statement.ending_balance,
            )
            current = latest.get(account)
            if current is None or rank > current:
                latest[account] = rank
        return {account: -neg_balance for account, (_, neg_balance) in latest.items()}

    def rate(self, reserves: Reserves) -> LiquidityRating:
        if reserves.at_least(self.STRONG_MONTHS):
            return LiquidityRating.STRONG
        if reserves.at_least(self.ADEQUATE_MONTHS):
            return LiquidityRating.ADEQUATE
        if reserves.at_least(self.WEAK_MONTHS):
            return LiquidityRating.WEAK
        return LiquidityRating.INSUFFICIENT

    def analyze(
        self,
        statements: Sequence[BankStatementPayload],
        balance_sheet: Optional[BalanceSheetPayload],
        monthly_debt_service: float,
    ) -> LiquidityAnalysis:
        """
        Analyze liquidity.

        Args:
            statements: Bank statement payloads.
            balance_sheet: First balance sheet supplied, if any.
            monthly_debt_service: Monthly obligations the reserves must cover.

        Returns:
            LiquidityAnalysis with tagged months of reserves.
        """
        notes: List[str] = []

        balances = self.latest_balances(statements)
        bank_liquid_assets = round_currency(sum(balances[a] for a in sorted(balances)))
        if len(balances) > 1:
            notes.append(f"{len(balances)} bank accounts analyzed.")

        averages = [s.average_daily_balance for s in statements if s.average_daily_balance > 0]
        average_daily_balance = round_currency(sum(averages) / len(averages)) if averages else 0.0

        # A negative minimum is an overdraft and is kept
        minimums = [s.minimum_balance for s in statements if s.minimum_balance != 0]
        minimum_balance = round_currency(min(minimums)) if minimums else 0.0

        balance_sheet_cash = 0.0
        current_ratio = None
        quick_ratio = None
        debt_to_equity = None

        if balance_sheet is not None:
            balance_sheet_cash = balance_sheet.cash
            current_assets = balance_sheet.current_assets
            current_liabilities = balance_sheet.current_liabilities

            if current_liabilities > 0 and current_assets > 0:
                current_ratio = round_ratio(current_assets / current_liabilities)
                quick_ratio = round_ratio(
                    (current_assets - balance_sheet.inventory) / current_liabilities
                )
                notes.append(f"Current ratio: {current_ratio:.2f}, Quick ratio: {quick_ratio:.2f}.")

            # Negative equity still yields a ratio; it signals insolvency
            if balance_sheet.total_equity != 0 and balance_sheet.total_liabilities > 0:
                debt_to_equity = round_ratio(
                    balance_sheet.total_liabilities / balance_sheet.total_equity
                )
                notes.append(f"Debt-to-equity: {debt_to_equity:.2f}.")

        total_liquid_assets = max(bank_liquid_assets, balance_sheet_cash)

        if (
            bank_liquid_assets > 0
            and balance_sheet_cash > 0
            and abs(bank_liquid_assets - balance_sheet_cash) > self.DISCREPANCY_THRESHOLD
        ):
            notes.append(
                f"Bank ending balances (${format_amount(bank_liquid_assets)}) and balance sheet cash "
                f"(${format_amount(balance_sheet_cash)}) differ. Using the higher figure."
            )

        if monthly_debt_service > 0:
            months_of_reserves: Reserves = BoundedReserves(
                months=round_ratio(total_liquid_assets / monthly_debt_service)
            )
        elif total_liquid_assets > 0:
            months_of_reserves = UnboundedReserves()
            notes.append("No monthly debt service provided. Months of reserves not bounded.")
        else:
            months_of_reserves = BoundedReserves(months=0.0)

        rating = self.rate(months_of_reserves)
        if rating == LiquidityRating.WEAK:
            notes.append("Reserves cover 3-6 months. Borrower has limited cushion.")
        elif rating == LiquidityRating.INSUFFICIENT:
            notes.append("Less than 3 months of reserves. Significant liquidity risk.")

        if minimum_balance < 0:
            notes.append(
                f"Account went negative (min balance: {minimum_balance:,.2f}). Possible overdraft."
            )

        if average_daily_balance > 0 and bank_liquid_assets > 0:
            variation = abs(bank_liquid_assets - average_daily_balance) / average_daily_balance
            if variation > self.LUMPY_VARIATION:
                notes.append(
                    "Significant variation between average daily balance and ending balance; "
                    "cash flow may be lumpy."
                )

        if not statements:
            notes.append(
                "No bank statements provided. Liquidity analysis is based solely on balance sheet data."
            )
            if balance_sheet is None:
                notes.append("No bank statements or balance sheet provided. Liquidity cannot be assessed.")

        analysis = LiquidityAnalysis(
            total_liquid_assets=round_currency(total_liquid_assets),
            bank_liquid_assets=bank_liquid_assets,
            balance_sheet_cash=round_currency(balance_sheet_cash),
            months_of_reserves=months_of_reserves,
            average_daily_balance=average_daily_balance,
            minimum_balance=minimum_balance,
            current_ratio=current_ratio,
            quick_ratio=quick_ratio,
            debt_to_equity=debt_to_equity,
            account_count=len(balances),
            rating=rating,
            notes=tuple(notes),
        )

        logger.info(
            "Liquidity analysis complete",
            accounts=len(balances),
            total_liquid_assets=analysis.total_liquid_assets,
            unbounded_reserves=months_of_reserves.is_unbounded,
            rating=rating.value,
        )
        return analysis


# Singleton instance
_analyzer_instance: Optional[LiquidityAnalyzer] = None


def get_liquidity_analyzer() -> LiquidityAnalyzer:
    """Get singleton LiquidityAnalyzer instance."""
    global _analyzer_instance
    if _analyzer_instance is None:
        _analyzer_instance = LiquidityAnalyzer()
    return _analyzer_instance
