"""
Numeric parser service for extracted financial values.

Extraction records arrive with values straight from OCR, so the same field
can be a number, a currency string or an accounting-style negative:
- Currency: $1,234.56
- Negative: (123), -123, ($1,234.56)
- Exponent: 1.5e3

Anything that cannot be read as a finite number coerces to 0 so a single
bad cell never aborts an analysis.
"""
import math
import re
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Optional

import structlog

logger = structlog.get_logger(__name__)


@dataclass
class ParsedNumber:
    """Result of parsing a numeric string."""

    value: Optional[Decimal]
    raw_value: str
    is_negative: bool = False
    currency: Optional[str] = None


class NumericParser:
    """
    Tolerant parser for extracted financial values.

    Cleaning rules:
    - Dollar signs, thousands commas and all whitespace are removed
    - A value wrapped in parentheses is negative
    - Non-finite results (NaN, Infinity) are treated as unparsable
    """

    # Characters stripped before parsing
    STRIP_PATTERN = re.compile(r"[$,\s]")

    # Regex patterns
    PARENTHESES_PATTERN = re.compile(r"^\((.+)\)$")
    NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?$")

    def parse(self, value_str: Optional[str]) -> ParsedNumber:
        """
        Parse a string value into a numeric result.

        Args:
            value_str: The string to parse.

        Returns:
            ParsedNumber with the Decimal value, or value=None if unparsable.
        """
        original = value_str or ""
        currency = "$" if "$" in original else None

        cleaned = self.STRIP_PATTERN.sub("", original)
        if not cleaned:
            # An empty or blank cell reads as zero
            return ParsedNumber(value=Decimal("0"), raw_value=original, currency=currency)

        paren_match = self.PARENTHESES_PATTERN.match(cleaned)
        if paren_match:
            cleaned = "-" + paren_match.group(1)

        if not self.NUMBER_PATTERN.match(cleaned):
            return ParsedNumber(value=None, raw_value=original, currency=currency)

        try:
            parsed_value = Decimal(cleaned)
        except InvalidOperation:
            logger.debug("Failed to parse number", value=original)
            return ParsedNumber(value=None, raw_value=original, currency=currency)

        if not parsed_value.is_finite():
            return ParsedNumber(value=None, raw_value=original, currency=currency)

        is_negative = parsed_value < 0

        return ParsedNumber(
            value=parsed_value,
            raw_value=original,
            is_negative=is_negative,
            currency=currency,
        )

    def to_number(self, value: Any) -> float:
        """
        Coerce any extracted value to a finite float.

        Numbers pass through, strings are parsed, everything else is 0.
        """
        if isinstance(value, bool):
            return 0.0
        if isinstance(value, str):
            parsed = self.parse(value)
            if parsed.value is None:
                return 0.0
            value = parsed.value
        if not isinstance(value, (int, float, Decimal)):
            return 0.0
        try:
            number = float(value)
        except OverflowError:
            return 0.0
        return number if math.isfinite(number) else 0.0


def round_half_up(value: float, places: int) -> float:
    """Round away from zero on ties, independent of binary float artifacts."""
    if not math.isfinite(value):
        return 0.0
    quantum = Decimal(1).scaleb(-places)
    try:
        rounded = Decimal(repr(value)).quantize(quantum, rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return float(value)
    return float(rounded) + 0.0


def round_currency(value: float) -> float:
    """Round a monetary amount to cents."""
    return round_half_up(value, 2)


def round_ratio(value: float) -> float:
    """Round a ratio or percentage (as a decimal fraction) to 4 places."""
    return round_half_up(value, 4)


def format_amount(value: float) -> str:
    """Whole-dollar amount with thousands separators, e.g. 80,000."""
    return f"{round_half_up(value, 0):,.0f}"


def whole_percent(fraction: float) -> int:
    """Magnitude of a decimal fraction as a whole percentage (-0.124 -> 12)."""
    return int(round_half_up(abs(fraction) * 100, 0))


# Singleton instance
_parser_instance: Optional[NumericParser] = None


def get_numeric_parser() -> NumericParser:
    """Get singleton NumericParser instance."""
    global _parser_instance
    if _parser_instance is None:
        _parser_instance = NumericParser()
    return _parser_instance


def to_number(value: Any) -> float:
    """Module-level shortcut for NumericParser.to_number."""
    return get_numeric_parser().to_number(value)
