"""Validator library — per-data-type import record validation."""

from finance_transfer.lib.validator.coercion import coerce, coerce_decimal, is_blank
from finance_transfer.lib.validator.rules import (
    CATEGORY_COLORS,
    CATEGORY_ICONS,
    Accepted,
    FieldError,
    FieldResolver,
    Rejected,
    ValidationOptions,
    ValidationOutcome,
    default_end_date,
    validate,
)

__all__ = [
    "CATEGORY_COLORS",
    "CATEGORY_ICONS",
    "Accepted",
    "FieldError",
    "FieldResolver",
    "Rejected",
    "ValidationOptions",
    "ValidationOutcome",
    "coerce",
    "coerce_decimal",
    "default_end_date",
    "is_blank",
    "validate",
]
