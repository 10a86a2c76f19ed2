"""
Data Cleaning Module

Coercion of raw spreadsheet values into typed warehouse values.
Handles:
- Whitespace trimming and blank-to-null normalization
- Quantity and currency parsing
- Document date parsing against a list of accepted formats
- Repeat-order flag interpretation
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable, List, Optional
import re

import polars as pl
import structlog

logger = structlog.get_logger(__name__)

_CURRENCY_CHARS = re.compile(r"[$€£¥₹,\s]")
_TRUTHY_FLAGS = {"1", "1.0", "true", "yes", "y", "t"}
_CENTS = Decimal("0.01")

# Signed 32-bit INTEGER column range
INTEGER_MIN = -(2 ** 31)
INTEGER_MAX = 2 ** 31 - 1


class CoercionError(ValueError):
    """Raised when a raw value cannot be converted to its target type"""

    def __init__(self, reason: str, column: str, value: Any):
        self.reason = reason
        self.column = column
        self.value = value
        super().__init__(f"{column}: cannot coerce {value!r} ({reason})")


def clean_text(value: Any) -> Optional[str]:
    """Strip a raw value; null and blank become None."""
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def numeric_limit(precision: int, scale: int) -> Decimal:
    """Smallest magnitude a NUMERIC(precision, scale) column cannot hold"""
    return Decimal(10) ** (precision - scale)


def parse_quantity(
    value: Any,
    column: str = "quantity",
    min_value: Optional[int] = None,
    max_value: Optional[int] = None,
) -> int:
    """
    Parse a raw quantity counter.

    Null or blank counts as 0. Whole-number floats ("12.0") and thousands
    separators ("1,200") are accepted.

    Raises:
        CoercionError: If the value is not a whole number or falls outside
            [min_value, max_value]
    """
    if isinstance(value, bool):
        number = Decimal(int(value))
    elif isinstance(value, int):
        number = Decimal(value)
    else:
        text = clean_text(value)
        if text is None:
            return 0

        try:
            number = Decimal(text.replace(",", ""))
        except InvalidOperation:
            raise CoercionError("invalid_quantity", column, value) from None

        if not number.is_finite() or number != number.to_integral_value():
            raise CoercionError("invalid_quantity", column, value)

    if (min_value is not None and number < min_value) or (max_value is not None and number > max_value):
        raise CoercionError("invalid_quantity", column, value)
    return int(number)


def parse_amount(
    value: Any,
    column: str = "amount",
    default: Optional[Decimal] = Decimal("0.00"),
    limit: Optional[Decimal] = None,
) -> Optional[Decimal]:
    """
    Parse a raw monetary value to a 2-decimal Decimal.

    Currency symbols and thousands separators are removed.

    Raises:
        CoercionError: If the value is not numeric or its magnitude reaches
            ``limit``
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        amount = Decimal(str(value))
    else:
        text = clean_text(value)
        if text is None:
            return default
        try:
            amount = Decimal(_CURRENCY_CHARS.sub("", text))
        except InvalidOperation:
            raise CoercionError("invalid_amount", column, value) from None

    if not amount.is_finite() or (limit is not None and abs(amount) >= limit):
        raise CoercionError("invalid_amount", column, value)
    try:
        return amount.quantize(_CENTS)
    except InvalidOperation:
        raise CoercionError("invalid_amount", column, value) from None


def parse_doc_date(
    value: Any,
    formats: Iterable[str],
    column: str = "Doc Date",
) -> Optional[date]:
    """
    Parse a document date.

    Returns None for null/blank input.

    Raises:
        CoercionError: If no accepted format matches
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = clean_text(value)
    if text is None:
        return None

    for fmt in formats:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue

    raise CoercionError("invalid_doc_date", column, value)


def parse_repeat_flag(value: Any) -> bool:
    """Interpret the Repeat column: 1/true/yes mean a repeat order."""
    if isinstance(value, bool):
        return value
    text = clean_text(value)
    if text is None:
        return False
    return text.lower() in _TRUTHY_FLAGS


def blank_to_null(column: str) -> pl.Expr:
    """Polars expression: trimmed string column with blanks as null"""
    stripped = pl.col(column).str.strip_chars()
    return (
        pl.when(stripped == "")
        .then(pl.lit(None, dtype=pl.Utf8))
        .otherwise(stripped)
        .alias(column)
    )


class RawDataCleaner:
    """
    Frame-level cleaning for the raw intake buffer.

    Example:
        cleaner = RawDataCleaner()
        df_clean = cleaner.prepare(raw_df)
    """

    def _string_columns(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> List[str]:
        return [
            col for col, dtype in zip(df.columns, df.dtypes)
            if dtype == pl.Utf8 and (columns is None or col in columns)
        ]

    def prepare(self, df: pl.DataFrame, columns: Optional[List[str]] = None) -> pl.DataFrame:
        """Trim string columns and turn blank strings into nulls"""
        string_cols = self._string_columns(df, columns)
        if not string_cols:
            return df

        df = df.with_columns([blank_to_null(col) for col in string_cols])
        logger.debug("Raw frame prepared", rows=len(df), string_columns=len(string_cols))
        return df
