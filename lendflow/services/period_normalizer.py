"""
Period normalizer service for LendFlow.

Turns the date and statement-period strings found on bank statements into
calendar month keys (YYYY-MM) so deposits can be bucketed by month.
"""
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class MonthPeriod:
    """A single calendar month."""

    year: int
    month: int  # 1-12

    @property
    def key(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


class PeriodNormalizer:
    """
    Service for month detection in transaction dates and statement periods.

    Supported formats:
    - ISO: 2024-03-15, 2024/03/15, 2024-03
    - US: 03/15/2024, 3/5/2024, 3-5-2024
    - Month name: March 2024, Mar 2024
    """

    ISO_PATTERN = re.compile(r"^(\d{4})[/-](\d{1,2})")
    US_PATTERN = re.compile(r"^(\d{1,2})[/-]\d{1,2}[/-](\d{4})$")
    MONTH_NAME_PATTERN = re.compile(r"^(\w+)\s+(\d{4})$")

    MONTH_MAP = {
        "jan": 1, "january": 1,
        "feb": 2, "february": 2,
        "mar": 3, "march": 3,
        "apr": 4, "april": 4,
        "may": 5,
        "jun": 6, "june": 6,
        "jul": 7, "july": 7,
        "aug": 8, "august": 8,
        "sep": 9, "september": 9,
        "oct": 10, "october": 10,
        "nov": 11, "november": 11,
        "dec": 12, "december": 12,
    }

    def detect_month(self, text: Optional[str]) -> Optional[MonthPeriod]:
        """
        Detect the calendar month a date or period string falls in.

        Args:
            text: Date or period text.

        Returns:
            MonthPeriod, or None when the text is not a recognised format.
        """
        if not text or not isinstance(text, str):
            return None

        text = text.strip()

        iso_match = self.ISO_PATTERN.match(text)
        if iso_match:
            return self._build(int(iso_match.group(1)), int(iso_match.group(2)))

        us_match = self.US_PATTERN.match(text)
        if us_match:
            return self._build(int(us_match.group(2)), int(us_match.group(1)))

        word_match = self.MONTH_NAME_PATTERN.match(text.lower())
        if word_match and word_match.group(1) in self.MONTH_MAP:
            return self._build(int(word_match.group(2)), self.MONTH_MAP[word_match.group(1)])

        return None

    def month_key(self, text: Optional[str]) -> Optional[str]:
        """Return the YYYY-MM key for a date string, or None if unparsable."""
        period = self.detect_month(text)
        return period.key if period else None

    def period_sort_key(self, text: Optional[str]) -> Tuple[str, str]:
        """
        Sort key for statement periods.

        Recognised periods sort by month key; anything else falls back to
        its raw text so ordering stays deterministic.
        """
        raw = text if isinstance(text, str) else ""
        return (self.month_key(raw) or "", raw)

    def _build(self, year: int, month: int) -> Optional[MonthPeriod]:
        if not 1 <= month <= 12:
            logger.debug("Rejected out-of-range month", year=year, month=month)
            return None
        return MonthPeriod(year=year, month=month)


# Singleton instance
_normalizer_instance: Optional[PeriodNormalizer] = None


def get_period_normalizer() -> PeriodNormalizer:
    """Get singleton PeriodNormalizer instance."""
    global _normalizer_instance
    if _normalizer_instance is None:
        _normalizer_instance = PeriodNormalizer()
    return _normalizer_instance
