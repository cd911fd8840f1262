"""Field-level coercion of raw interchange values.

Each coercer takes a raw cell value (string from CSV, native value from
JSON or Excel) and returns the normalized Python value or raises
``ValueError`` with a human-readable reason.
"""

import re
from datetime import date, datetime
from decimal import Decimal, InvalidOperation

from dateutil import parser as date_parser

from finance_transfer.lib.records import FieldKind, FieldSpec

CENTS = Decimal("0.01")
# Largest magnitude a Numeric(14, 2) column holds
MAX_AMOUNT = Decimal("999999999999.99")

_TRUE_VALUES = {"true", "yes", "y", "1", "active", "on"}
_FALSE_VALUES = {"false", "no", "n", "0", "inactive", "off"}
_CURRENCY_NOISE = re.compile(r"[,$\s€£]")


def is_blank(value: object) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def coerce_text(value: object, field_spec: FieldSpec) -> str:
    text = str(value).strip()
    if field_spec.max_length is not None and len(text) > field_spec.max_length:
        msg = f"must be at most {field_spec.max_length} characters"
        raise ValueError(msg)
    return text


def coerce_date(value: object) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        msg = f"invalid date: {value!r}"
        raise ValueError(msg)
    try:
        return date_parser.parse(value.strip()).date()
    except (ValueError, OverflowError) as exc:
        msg = f"invalid date: {value!r}"
        raise ValueError(msg) from exc


def coerce_decimal(value: object) -> Decimal:
    """Parse an amount, tolerating currency symbols, thousands separators, and (negative) parentheses."""
    if isinstance(value, bool):
        msg = f"invalid amount: {value!r}"
        raise ValueError(msg)
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, int | float):
        amount = Decimal(str(value))
    else:
        text = _CURRENCY_NOISE.sub("", str(value))
        negative = text.startswith("(") and text.endswith(")")
        if negative:
            text = text[1:-1]
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            msg = f"invalid amount: {value!r}"
            raise ValueError(msg) from exc
        if negative:
            amount = -amount
    if not amount.is_finite():
        msg = f"invalid amount: {value!r}"
        raise ValueError(msg)
    try:
        amount = amount.quantize(CENTS)
    except InvalidOperation as exc:
        msg = f"invalid amount: {value!r}"
        raise ValueError(msg) from exc
    if abs(amount) > MAX_AMOUNT:
        msg = f"amount out of range: {value!r}"
        raise ValueError(msg)
    return amount


def coerce_boolean(value: object) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    msg = f"invalid boolean: {value!r}"
    raise ValueError(msg)


def coerce_choice(value: object, field_spec: FieldSpec) -> str:
    text = re.sub(r"[\s\-]+", "_", str(value).strip().lower())
    if text not in field_spec.choices:
        msg = f"must be one of: {', '.join(field_spec.choices)}"
        raise ValueError(msg)
    return text


def coerce(value: object, field_spec: FieldSpec) -> object:
    """Coerce a non-blank raw value according to ``field_spec.kind``.

    Raises:
        ValueError: If the value cannot be converted.
    """
    if field_spec.kind is FieldKind.DATE:
        return coerce_date(value)
    if field_spec.kind is FieldKind.DECIMAL:
        return coerce_decimal(value)
    if field_spec.kind is FieldKind.BOOLEAN:
        return coerce_boolean(value)
    if field_spec.kind is FieldKind.CHOICE:
        return coerce_choice(value, field_spec)
    return coerce_text(value, field_spec)
