"""
Utility functions shared across the engine. This includes:
- parse_decimal: exact Decimal parsing of user / JSON input (never via float)
- parse_optional_int / parse_id: id parsing for path and payload values
- decimal_sum / money: exact aggregation and pence rounding of money values
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Iterable


def parse_decimal(value: Any) -> Decimal | None:
    """Parse decimal from user input (accepts comma or dot, str or number)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    raw = str(value).strip().replace(",", ".")
    if raw == "":
        return None
    try:
        parsed = Decimal(raw)
    except (InvalidOperation, ValueError):
        return None
    if not parsed.is_finite():
        return None
    return parsed


def parse_optional_int(value: Any) -> int | None:
    """Parse optional int from form/query."""
    if value is None or isinstance(value, bool):
        return None
    raw = str(value).strip()
    if raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_id(value: Any) -> int | None:
    """Positive integer id, or None for anything else (floats like 3.5, bools, junk)."""
    if isinstance(value, float):
        if not value.is_integer():
            return None
        value = int(value)
    parsed = parse_optional_int(value)
    if parsed is None or parsed <= 0:
        return None
    return parsed


def decimal_sum(values: Iterable[Decimal]) -> Decimal:
    """Exact sum; Decimal("0") for an empty iterable."""
    total = Decimal("0")
    for value in values:
        total += value
    return total


def money(value: Decimal) -> Decimal:
    """Quantize to pence, half-up."""
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
