"""Per-data-type validation rules for imported records.

``validate`` resolves source column names to canonical fields, coerces
each value, applies the same defaults and constraints the application
uses when the record is created interactively, and returns either the
normalized record or the list of field errors.
"""

import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from dateutil.relativedelta import relativedelta

from finance_transfer.lib.jobs.types import DataType
from finance_transfer.lib.records import RecordSchema, get_schema
from finance_transfer.lib.validator.coercion import coerce, is_blank

CATEGORY_COLORS = {"income": "#28a745", "expense": "#dc3545"}
CATEGORY_ICONS = {"income": "fa-plus", "expense": "fa-minus"}


@dataclass(frozen=True)
class FieldError:
    field: str
    reason: str


@dataclass(frozen=True)
class Accepted:
    record: dict[str, Any]


@dataclass(frozen=True)
class Rejected:
    errors: tuple[FieldError, ...]

    @property
    def reason(self) -> str:
        return "; ".join(f"{e.field}: {e.reason}" for e in self.errors)

    @property
    def field(self) -> str | None:
        return self.errors[0].field if len(self.errors) == 1 else None


ValidationOutcome = Accepted | Rejected


@dataclass(frozen=True)
class ValidationOptions:
    """Import options that influence validation.

    Attributes:
        field_mapping: Extra source column names per canonical field,
            tried before the built-in aliases.
        min_amount: Lowest accepted transaction amount (absolute value).
        max_amount: Highest accepted transaction amount (absolute value).
        today: Reference date for defaults; ``date.today()`` when unset.
    """

    field_mapping: Mapping[str, Sequence[str]] = field(default_factory=dict)
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    today: date | None = None


def _normalize_name(name: str) -> str:
    return re.sub(r"[\s_\-]+", "", name.strip().lower())


class FieldResolver:
    """Maps source column names onto canonical field names for one data type.

    Exact matches win over normalized (case, space, underscore-insensitive)
    matches; custom mappings win over built-in aliases.
    """

    def __init__(self, schema: RecordSchema, field_mapping: Mapping[str, Sequence[str]] | None = None) -> None:
        self.schema = schema
        self._exact: dict[str, str] = {}
        self._loose: dict[str, str] = {}
        for name, extra in (field_mapping or {}).items():
            for alias in extra:
                self._register(alias, name)
        for field_spec in schema.fields:
            for alias in field_spec.accepted_names:
                self._register(alias, field_spec.name)

    def _register(self, alias: str, name: str) -> None:
        self._exact.setdefault(alias, name)
        self._loose.setdefault(_normalize_name(alias), name)

    def resolve(self, column: str) -> str | None:
        if column in self._exact:
            return self._exact[column]
        return self._loose.get(_normalize_name(column))

    def map_columns(self, columns: Sequence[str]) -> dict[str, str]:
        """Resolve a header row; unknown columns are left out."""
        mapping: dict[str, str] = {}
        for column in columns:
            name = self.resolve(column)
            if name is not None:
                mapping[column] = name
        return mapping

    def extract(self, raw: Mapping[str, Any]) -> dict[str, Any]:
        """Pick canonical field values from a raw record; the first non-blank source wins."""
        values: dict[str, Any] = {}
        for column, value in raw.items():
            name = self.resolve(str(column))
            if name is None:
                continue
            if name not in values or (is_blank(values[name]) and not is_blank(value)):
                values[name] = value
        return values


def _require_positive(record: dict[str, Any], name: str, errors: list[FieldError]) -> None:
    value = record.get(name)
    if value is not None and value <= 0:
        errors.append(FieldError(name, "must be greater than zero"))


def _require_non_negative(record: dict[str, Any], name: str, errors: list[FieldError]) -> None:
    value = record.get(name)
    if value is not None and value < 0:
        errors.append(FieldError(name, "must not be negative"))


def _transaction_rules(record: dict[str, Any], options: ValidationOptions, today: date) -> list[FieldError]:
    errors: list[FieldError] = []
    amount = record.get("amount")
    if amount is not None:
        amount = abs(amount)
        record["amount"] = amount
        if options.min_amount is not None and amount < options.min_amount:
            errors.append(FieldError("amount", f"below minimum {options.min_amount}"))
        if options.max_amount is not None and amount > options.max_amount:
            errors.append(FieldError("amount", f"exceeds maximum {options.max_amount}"))
    record["payment_method"] = record.get("payment_method") or "cash"
    record["status"] = record.get("status") or "completed"
    return errors


def _budget_rules(record: dict[str, Any], options: ValidationOptions, today: date) -> list[FieldError]:
    errors: list[FieldError] = []
    _require_positive(record, "amount", errors)
    if record.get("spent") is None:
        record["spent"] = Decimal("0.00")
    _require_non_negative(record, "spent", errors)
    record["period"] = record.get("period") or "monthly"
    start = record.get("start_date") or today
    record["start_date"] = start
    if record.get("end_date") is None:
        record["end_date"] = default_end_date(start)
    if record["end_date"] <= start:
        errors.append(FieldError("end_date", "must be after start_date"))
    if record.get("is_active") is None:
        record["is_active"] = True
    return errors


def _goal_rules(record: dict[str, Any], options: ValidationOptions, today: date) -> list[FieldError]:
    errors: list[FieldError] = []
    _require_positive(record, "target_amount", errors)
    if record.get("current_amount") is None:
        record["current_amount"] = Decimal("0.00")
    _require_non_negative(record, "current_amount", errors)
    if record.get("target_date") is None:
        record["target_date"] = today + relativedelta(years=1)
    record["priority"] = record.get("priority") or "medium"
    record["status"] = record.get("status") or "active"
    return errors


def _category_rules(record: dict[str, Any], options: ValidationOptions, today: date) -> list[FieldError]:
    errors: list[FieldError] = []
    category_type = record.get("type") or "expense"
    record["type"] = category_type
    record["color"] = record.get("color") or CATEGORY_COLORS[category_type]
    record["icon"] = record.get("icon") or CATEGORY_ICONS[category_type]
    _require_non_negative(record, "budget", errors)
    if record.get("is_active") is None:
        record["is_active"] = True
    return errors


_RULES: dict[DataType, Callable[[dict[str, Any], ValidationOptions, date], list[FieldError]]] = {
    DataType.TRANSACTIONS: _transaction_rules,
    DataType.BUDGETS: _budget_rules,
    DataType.GOALS: _goal_rules,
    DataType.CATEGORIES: _category_rules,
}


def validate(
    data_type: DataType | str,
    raw: Mapping[str, Any],
    options: ValidationOptions | None = None,
    *,
    resolver: FieldResolver | None = None,
) -> ValidationOutcome:
    """Validate and normalize one decoded record.

    Args:
        data_type: Concrete data type of the record.
        raw: Decoded record keyed by source column name.
        options: Import options; defaults apply when omitted.
        resolver: Pre-built column resolver, reused across a whole import.

    Returns:
        ``Accepted`` with the normalized record (every canonical field
        present), or ``Rejected`` with one error per failing field.
    """
    data_type = DataType(data_type)
    options = options or ValidationOptions()
    schema = get_schema(data_type)
    resolver = resolver or FieldResolver(schema, options.field_mapping)
    values = resolver.extract(raw)
    today = options.today or date.today()

    errors: list[FieldError] = []
    record: dict[str, Any] = {}
    for field_spec in schema.fields:
        value = values.get(field_spec.name)
        if is_blank(value):
            if field_spec.required:
                errors.append(FieldError(field_spec.name, "is required"))
            record[field_spec.name] = None
            continue
        try:
            record[field_spec.name] = coerce(value, field_spec)
        except ValueError as exc:
            errors.append(FieldError(field_spec.name, str(exc)))
            record[field_spec.name] = None

    if errors:
        return Rejected(tuple(errors))

    errors = _RULES[data_type](record, options, today)
    if errors:
        return Rejected(tuple(errors))
    return Accepted(record)


def default_end_date(start: date) -> date:
    """Last day of the month containing ``start``, or of the next month when ``start`` is already that day."""
    end = start + relativedelta(day=31)
    if end <= start:
        end = start + relativedelta(months=1, day=31)
    return end
