"""Interchange field registry.

Every codec writes columns in the order declared here, under the display
header; the validator resolves incoming column names through the aliases.
Canonical names match the ORM attribute names.
"""

import enum
from dataclasses import dataclass, field

from finance_transfer.lib.jobs.types import DataType


class FieldKind(enum.StrEnum):
    TEXT = "text"
    DATE = "date"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    CHOICE = "choice"


@dataclass(frozen=True)
class FieldSpec:
    """One column of an interchange record."""

    name: str
    header: str
    kind: FieldKind = FieldKind.TEXT
    required: bool = False
    aliases: tuple[str, ...] = ()
    choices: tuple[str, ...] = ()
    max_length: int | None = None

    @property
    def accepted_names(self) -> tuple[str, ...]:
        """Canonical name, display header, then aliases, without repeats."""
        names: list[str] = []
        for candidate in (self.name, self.header, *self.aliases):
            if candidate not in names:
                names.append(candidate)
        return tuple(names)


@dataclass(frozen=True)
class RecordSchema:
    """Ordered field list for one concrete data type."""

    data_type: DataType
    title: str
    fields: tuple[FieldSpec, ...]
    duplicate_key: tuple[str, ...] = field(default=())

    @property
    def names(self) -> list[str]:
        return [f.name for f in self.fields]

    @property
    def headers(self) -> list[str]:
        return [f.header for f in self.fields]

    @property
    def required(self) -> list[str]:
        return [f.name for f in self.fields if f.required]

    def get(self, name: str) -> FieldSpec:
        for field_spec in self.fields:
            if field_spec.name == name:
                return field_spec
        raise KeyError(name)


TRANSACTION_TYPES = ("income", "expense", "transfer")
PAYMENT_METHODS = ("cash", "credit_card", "debit_card", "bank_transfer", "check", "digital_wallet", "other")
TRANSACTION_STATUSES = ("completed", "pending", "cancelled")
BUDGET_PERIODS = ("weekly", "monthly", "quarterly", "yearly")
GOAL_PRIORITIES = ("low", "medium", "high")
GOAL_STATUSES = ("active", "paused", "completed", "cancelled")
CATEGORY_TYPES = ("income", "expense")

TRANSACTIONS = RecordSchema(
    data_type=DataType.TRANSACTIONS,
    title="Transactions",
    fields=(
        FieldSpec(
            "date",
            "Date",
            FieldKind.DATE,
            required=True,
            aliases=("transaction_date", "posting_date", "Transaction Date", "Posting Date"),
        ),
        FieldSpec(
            "description",
            "Description",
            required=True,
            aliases=("memo", "Memo", "Details", "transaction_description"),
            max_length=255,
        ),
        FieldSpec("amount", "Amount", FieldKind.DECIMAL, required=True, aliases=("value", "Value", "Amount USD")),
        FieldSpec(
            "type",
            "Type",
            FieldKind.CHOICE,
            required=True,
            aliases=("transaction_type", "Transaction Type"),
            choices=TRANSACTION_TYPES,
        ),
        FieldSpec("category", "Category", aliases=("category_name", "Category Name"), max_length=100),
        FieldSpec("payee", "Payee", aliases=("merchant", "Merchant", "counterparty"), max_length=255),
        FieldSpec(
            "payment_method",
            "Payment Method",
            FieldKind.CHOICE,
            aliases=("paymentMethod", "method"),
            choices=PAYMENT_METHODS,
        ),
        FieldSpec("notes", "Notes", aliases=("comment", "Comment")),
        FieldSpec("status", "Status", FieldKind.CHOICE, choices=TRANSACTION_STATUSES),
        FieldSpec(
            "reference_number",
            "Reference Number",
            aliases=("reference", "Reference", "ref", "transaction_id", "check_number"),
            max_length=100,
        ),
    ),
    duplicate_key=("date", "amount", "description"),
)

BUDGETS = RecordSchema(
    data_type=DataType.BUDGETS,
    title="Budgets",
    fields=(
        FieldSpec("name", "Name", required=True, aliases=("budget_name", "Budget Name", "title"), max_length=100),
        FieldSpec(
            "amount",
            "Amount",
            FieldKind.DECIMAL,
            required=True,
            aliases=("budget_amount", "Budget Amount", "limit"),
        ),
        FieldSpec("spent", "Spent", FieldKind.DECIMAL, aliases=("spent_amount", "Spent Amount")),
        FieldSpec(
            "period",
            "Period",
            FieldKind.CHOICE,
            aliases=("budget_period", "Budget Period", "frequency"),
            choices=BUDGET_PERIODS,
        ),
        FieldSpec("start_date", "Start Date", FieldKind.DATE, aliases=("startDate", "start", "from")),
        FieldSpec("end_date", "End Date", FieldKind.DATE, aliases=("endDate", "end", "to")),
        FieldSpec("category", "Category", aliases=("category_name", "Category Name"), max_length=100),
        FieldSpec("description", "Description", aliases=("notes", "Notes")),
        FieldSpec("is_active", "Active", FieldKind.BOOLEAN, aliases=("isActive", "active")),
    ),
    duplicate_key=("name", "period"),
)

GOALS = RecordSchema(
    data_type=DataType.GOALS,
    title="Goals",
    fields=(
        FieldSpec("name", "Name", required=True, aliases=("goal_name", "Goal Name", "title"), max_length=100),
        FieldSpec("description", "Description", aliases=("notes", "Notes")),
        FieldSpec(
            "target_amount",
            "Target Amount",
            FieldKind.DECIMAL,
            required=True,
            aliases=("targetAmount", "target", "Target", "goal_amount"),
        ),
        FieldSpec(
            "current_amount",
            "Current Amount",
            FieldKind.DECIMAL,
            aliases=("currentAmount", "saved", "Saved", "progress"),
        ),
        FieldSpec(
            "target_date",
            "Target Date",
            FieldKind.DATE,
            aliases=("targetDate", "deadline", "Deadline", "due_date"),
        ),
        FieldSpec("priority", "Priority", FieldKind.CHOICE, aliases=("importance",), choices=GOAL_PRIORITIES),
        FieldSpec("status", "Status", FieldKind.CHOICE, aliases=("state",), choices=GOAL_STATUSES),
    ),
    duplicate_key=("name",),
)

CATEGORIES = RecordSchema(
    data_type=DataType.CATEGORIES,
    title="Categories",
    fields=(
        FieldSpec("name", "Name", required=True, aliases=("category_name", "Category Name", "title"), max_length=100),
        FieldSpec("type", "Type", FieldKind.CHOICE, aliases=("category_type", "Category Type"), choices=CATEGORY_TYPES),
        FieldSpec("description", "Description", aliases=("notes", "Notes")),
        FieldSpec("color", "Color", aliases=("colour", "Colour"), max_length=20),
        FieldSpec("icon", "Icon", max_length=50),
        FieldSpec("budget", "Budget", FieldKind.DECIMAL, aliases=("budget_amount", "Budget Amount", "limit")),
        FieldSpec("is_active", "Active", FieldKind.BOOLEAN, aliases=("isActive", "active")),
    ),
    duplicate_key=("name", "type"),
)

SCHEMAS: dict[DataType, RecordSchema] = {
    DataType.TRANSACTIONS: TRANSACTIONS,
    DataType.BUDGETS: BUDGETS,
    DataType.GOALS: GOALS,
    DataType.CATEGORIES: CATEGORIES,
}


def get_schema(data_type: DataType | str) -> RecordSchema:
    """Return the record schema for a concrete data type.

    Raises:
        KeyError: If ``data_type`` is ``all`` or unknown.
    """
    return SCHEMAS[DataType(data_type)]
