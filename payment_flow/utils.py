"""Utility functions for the payment-flow calculator.

This module provides helpers for parsing user input into Python data types
and for handling dates, including adding months and parsing ISO or
year-month strings to ``datetime.date`` instances. Numeric parsers never
raise: malformed input is read as zero, the way the calculator form treats
an empty or garbled field.
"""

from __future__ import annotations

import calendar
import re
from datetime import date
from decimal import Decimal, InvalidOperation, getcontext
from typing import Any, Optional

from .config import MAX_AMOUNT_EXPONENT, MAX_INSTALLMENTS, ZERO

getcontext().prec = 28  # increase decimal precision to avoid rounding errors

_NUMBER_CHARS = re.compile(r"[^\d,.\-]")


def parse_date(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` or ``YYYY-MM`` string into a ``date``.

    A year-month string yields the first day of that month.

    Raises
    ------
    ValueError
        If the string is not a valid date.
    """
    try:
        parts = value.strip().split("-")
        if len(parts) < 2:
            raise ValueError
        year = int(parts[0])
        month = int(parts[1])
        day = int(parts[2][:2]) if len(parts) > 2 else 1
        return date(year, month, day)
    except Exception as exc:
        raise ValueError(f"Invalid date string: {value}") from exc


def parse_optional_date(value: Any) -> Optional[date]:
    """Like :func:`parse_date` but returns ``None`` for empty or invalid input."""
    if isinstance(value, date):
        return value
    if not value or not isinstance(value, str):
        return None
    try:
        return parse_date(value)
    except ValueError:
        return None


def add_months(dt: date, months: int) -> date:
    """Return a new date a number of months after ``dt``.

    The day of the month is clamped to the last valid day if needed (e.g.,
    adding one month to Jan 31 yields Feb 28 or 29).
    """
    year = dt.year + (dt.month - 1 + months) // 12
    month = (dt.month - 1 + months) % 12 + 1
    day = min(dt.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _bounded(result: Decimal) -> Decimal:
    """Zero out non-finite numbers and magnitudes no price could have."""
    if not result.is_finite() or result.is_zero():
        return ZERO
    if abs(result.adjusted()) > MAX_AMOUNT_EXPONENT:
        return ZERO
    return result


def parse_count(value: Any, default: int = 1) -> int:
    """Parse an installment count.

    ``None`` gives ``default``; anything that is not an integer gives 0.
    Counts are clamped to ``0..MAX_INSTALLMENTS``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return 0
    try:
        count = int(value)
    except (TypeError, ValueError, OverflowError):
        return 0
    return min(max(count, 0), MAX_INSTALLMENTS)


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored number into a finite ``Decimal``; anything else is zero."""
    if isinstance(value, bool) or value is None:
        return ZERO
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        return parse_number(value)
    else:
        return ZERO
    return _bounded(result)


def parse_number(value: str) -> Decimal:
    """Parse a plain number typed into a percentage field.

    Both ``"12.5"`` and ``"12,5"`` are accepted.
    """
    cleaned = (value or "").strip().replace("%", "").replace(",", ".")
    try:
        result = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return _bounded(result)


def parse_currency(value: str) -> Decimal:
    """Parse a currency amount typed into a value field.

    Currency symbols and spaces are ignored. When both separators appear the
    last one is the decimal separator (``"1.234,56"`` and ``"1,234.56"``
    are both 1234.56). A lone separator followed by exactly three digits is
    a thousands separator (``"160.000"`` is 160000); otherwise it is the
    decimal separator.
    """
    cleaned = _NUMBER_CHARS.sub("", value or "")
    if not cleaned:
        return ZERO
    last_dot = cleaned.rfind(".")
    last_comma = cleaned.rfind(",")
    if last_dot >= 0 and last_comma >= 0:
        decimal_sep = "." if last_dot > last_comma else ","
        thousands_sep = "," if decimal_sep == "." else "."
        cleaned = cleaned.replace(thousands_sep, "").replace(decimal_sep, ".")
    elif last_dot >= 0 or last_comma >= 0:
        sep = "." if last_dot >= 0 else ","
        groups = cleaned.split(sep)
        if len(groups) > 2 or len(groups[-1]) == 3:
            cleaned = "".join(groups)
        else:
            cleaned = ".".join(groups)
    try:
        result = Decimal(cleaned)
    except InvalidOperation:
        return ZERO
    return _bounded(result)


def parse_amount(value: str) -> Decimal:
    """Parse an amount with optional ``k``/``m`` suffixes.

    Accepts plain numbers ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000).
    """
    value = (value or "").strip().lower()
    factor = Decimal("1")
    if value.endswith("k"):
        factor = Decimal("1000")
        value = value[:-1]
    elif value.endswith("m"):
        factor = Decimal("1000000")
        value = value[:-1]
    return parse_currency(value) * factor
