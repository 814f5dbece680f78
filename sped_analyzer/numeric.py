#!/usr/bin/env python3

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

ZERO = Decimal("0")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")
NULL_TOKENS = {"", "0", "null", "none", "nan", "undefined"}


def normalize_amount(value: Any) -> Decimal:
    """Convert a Brazilian or dotted numeric string to Decimal, 0 when unusable."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value if value.is_finite() else ZERO
    if isinstance(value, (int, float)):
        try:
            parsed = Decimal(str(value))
        except InvalidOperation:
            return ZERO
        return parsed if parsed.is_finite() else ZERO

    text = str(value).strip().replace(" ", "")
    if text.lower() in NULL_TOKENS:
        return ZERO

    if "," in text:
        parts = text.split(",")
        if len(parts) != 2:
            return ZERO
        integer_part, decimal_part = parts
        text = f"{integer_part.replace('.', '')}.{decimal_part}"
    elif text.count(".") > 1:
        # Several dots and no comma: every dot is a thousands separator.
        text = text.replace(".", "")

    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return ZERO
    if not parsed.is_finite():
        return ZERO
    return parsed


def normalize_percentage(value: Any) -> Decimal:
    """Normalize a rate to the 0-100 scale.

    Values in (0, 1] are read as fractions and multiplied by 100. A genuine
    rate below 1% (for example 0.65) is therefore inflated; callers that know
    the field is already a percentage should use ``normalize_amount``.
    """
    parsed = normalize_amount(value)
    if ZERO < parsed <= Decimal("1"):
        return parsed * HUNDRED
    return parsed


def quantize_cents(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_brl(value: Decimal | None) -> str:
    """Render a value in Brazilian notation (``1.234,56``).

    At least two decimal places are shown; extra places the value carries
    (rates, quantities) are kept so that normalizing the text gives it back.
    """
    if value is None:
        return ""
    exponent = value.as_tuple().exponent
    if isinstance(exponent, int) and exponent > -2:
        value = value.quantize(CENT)
    sign = "-" if value < 0 else ""
    integer_part, _, decimal_part = f"{abs(value):f}".partition(".")
    groups: list[str] = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)
    return f"{sign}{'.'.join(groups)},{decimal_part}"


def format_money(value: Decimal | None) -> str:
    if value is None:
        return "n/a"
    return f"R$ {format_brl(quantize_cents(value))}"


def format_percent(value: Decimal | None) -> str:
    if value is None:
        return "n/a"
    return f"{quantize_cents(value):.2f}%"


def as_float(value: Decimal | None) -> float | None:
    if value is None:
        return None
    return float(quantize_cents(value))


def safe_ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    if denominator <= ZERO:
        return ZERO
    return numerator / denominator
