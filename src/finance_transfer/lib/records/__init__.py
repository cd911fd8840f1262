"""Record library — interchange field definitions per data type."""

from finance_transfer.lib.records.fields import (
    BUDGET_PERIODS,
    CATEGORY_TYPES,
    GOAL_PRIORITIES,
    GOAL_STATUSES,
    PAYMENT_METHODS,
    SCHEMAS,
    TRANSACTION_STATUSES,
    TRANSACTION_TYPES,
    FieldKind,
    FieldSpec,
    RecordSchema,
    get_schema,
)

__all__ = [
    "BUDGET_PERIODS",
    "CATEGORY_TYPES",
    "GOAL_PRIORITIES",
    "GOAL_STATUSES",
    "PAYMENT_METHODS",
    "SCHEMAS",
    "TRANSACTION_STATUSES",
    "TRANSACTION_TYPES",
    "FieldKind",
    "FieldSpec",
    "RecordSchema",
    "get_schema",
]
