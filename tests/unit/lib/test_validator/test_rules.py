"""Tests for per-data-type validation rules and column resolution."""

from datetime import date
from decimal import Decimal

from finance_transfer.lib.jobs import DataType
from finance_transfer.lib.records import get_schema
from finance_transfer.lib.validator import (
    Accepted,
    FieldResolver,
    Rejected,
    ValidationOptions,
    default_end_date,
    validate,
)

TODAY = date(2024, 6, 15)
OPTIONS = ValidationOptions(today=TODAY)


class TestFieldResolver:
    resolver = FieldResolver(get_schema(DataType.TRANSACTIONS))

    def test_exact_alias(self) -> None:
        assert self.resolver.resolve("Transaction Date") == "date"
        assert self.resolver.resolve("Memo") == "description"

    def test_loose_match_ignores_case_spaces_and_underscores(self) -> None:
        assert self.resolver.resolve("PAYMENT METHOD") == "payment_method"
        assert self.resolver.resolve("reference-number") == "reference_number"

    def test_unknown_column(self) -> None:
        assert self.resolver.resolve("Balance") is None

    def test_custom_mapping_wins(self) -> None:
        resolver = FieldResolver(get_schema(DataType.TRANSACTIONS), {"payee": ["Description"]})
        assert resolver.resolve("Description") == "payee"

    def test_map_columns_drops_unknown(self) -> None:
        assert self.resolver.map_columns(["Date", "Balance", "Amount USD"]) == {
            "Date": "date",
            "Amount USD": "amount",
        }

    def test_extract_prefers_first_non_blank(self) -> None:
        values = self.resolver.extract({"Memo": "", "Description": "Rent"})
        assert values["description"] == "Rent"


class TestTransactions:
    def test_valid_record_gets_defaults(self) -> None:
        outcome = validate(
            DataType.TRANSACTIONS,
            {"Date": "2024-06-01", "Description": "Book", "Amount": "-12.99", "Type": "Expense"},
            OPTIONS,
        )
        assert isinstance(outcome, Accepted)
        assert outcome.record["amount"] == Decimal("12.99")
        assert outcome.record["type"] == "expense"
        assert outcome.record["payment_method"] == "cash"
        assert outcome.record["status"] == "completed"
        assert outcome.record["payee"] is None
        assert set(outcome.record) == set(get_schema(DataType.TRANSACTIONS).names)

    def test_missing_required_fields(self) -> None:
        outcome = validate(DataType.TRANSACTIONS, {"Date": "2024-06-01"}, OPTIONS)
        assert isinstance(outcome, Rejected)
        assert {e.field for e in outcome.errors} == {"description", "amount", "type"}
        assert outcome.field is None
        assert "amount: is required" in outcome.reason

    def test_single_error_reports_field(self) -> None:
        outcome = validate(
            DataType.TRANSACTIONS,
            {"date": "2024-06-01", "description": "x", "amount": "oops", "type": "expense"},
            OPTIONS,
        )
        assert isinstance(outcome, Rejected)
        assert outcome.field == "amount"

    def test_amount_bounds(self) -> None:
        options = ValidationOptions(min_amount=Decimal("1"), max_amount=Decimal("100"), today=TODAY)
        record = {"date": "2024-06-01", "description": "x", "type": "expense"}
        assert isinstance(validate(DataType.TRANSACTIONS, {**record, "amount": "0.50"}, options), Rejected)
        assert isinstance(validate(DataType.TRANSACTIONS, {**record, "amount": "150"}, options), Rejected)
        assert isinstance(validate(DataType.TRANSACTIONS, {**record, "amount": "-50"}, options), Accepted)

    def test_huge_amount_is_a_record_error(self) -> None:
        outcome = validate(
            DataType.TRANSACTIONS,
            {"date": "2024-06-01", "description": "x", "amount": "1e30", "type": "expense"},
            OPTIONS,
        )
        assert isinstance(outcome, Rejected)
        assert outcome.field == "amount"

    def test_field_mapping_option(self) -> None:
        options = ValidationOptions(field_mapping={"description": ["Narrative"]}, today=TODAY)
        outcome = validate(
            DataType.TRANSACTIONS,
            {"Date": "2024-06-01", "Narrative": "Tea", "Amount": "3", "Type": "expense"},
            options,
        )
        assert isinstance(outcome, Accepted)
        assert outcome.record["description"] == "Tea"


class TestBudgets:
    def test_defaults(self) -> None:
        outcome = validate(DataType.BUDGETS, {"name": "Food", "amount": "300"}, OPTIONS)
        assert isinstance(outcome, Accepted)
        record = outcome.record
        assert record["period"] == "monthly"
        assert record["spent"] == Decimal("0.00")
        assert record["start_date"] == TODAY
        assert record["end_date"] == date(2024, 6, 30)
        assert record["is_active"] is True

    def test_end_must_follow_start(self) -> None:
        outcome = validate(
            DataType.BUDGETS,
            {"name": "Food", "amount": "300", "start_date": "2024-06-10", "end_date": "2024-06-01"},
            OPTIONS,
        )
        assert isinstance(outcome, Rejected)
        assert outcome.field == "end_date"

    def test_amount_must_be_positive(self) -> None:
        outcome = validate(DataType.BUDGETS, {"name": "Food", "amount": "0"}, OPTIONS)
        assert isinstance(outcome, Rejected)
        assert outcome.errors[0].reason == "must be greater than zero"


class TestGoals:
    def test_defaults(self) -> None:
        outcome = validate(DataType.GOALS, {"Goal Name": "Car", "target": "5000"}, OPTIONS)
        assert isinstance(outcome, Accepted)
        assert outcome.record["target_date"] == date(2025, 6, 15)
        assert outcome.record["priority"] == "medium"
        assert outcome.record["status"] == "active"
        assert outcome.record["current_amount"] == Decimal("0.00")

    def test_negative_current_amount(self) -> None:
        outcome = validate(DataType.GOALS, {"name": "Car", "target_amount": "5000", "current_amount": "-1"}, OPTIONS)
        assert isinstance(outcome, Rejected)
        assert outcome.field == "current_amount"


class TestCategories:
    def test_income_defaults(self) -> None:
        outcome = validate(DataType.CATEGORIES, {"name": "Salary", "type": "income"}, OPTIONS)
        assert isinstance(outcome, Accepted)
        assert outcome.record["color"] == "#28a745"
        assert outcome.record["icon"] == "fa-plus"

    def test_type_defaults_to_expense(self) -> None:
        outcome = validate(DataType.CATEGORIES, {"name": "Misc"}, OPTIONS)
        assert isinstance(outcome, Accepted)
        assert outcome.record["type"] == "expense"
        assert outcome.record["color"] == "#dc3545"


class TestDefaultEndDate:
    def test_mid_month(self) -> None:
        assert default_end_date(date(2024, 2, 10)) == date(2024, 2, 29)

    def test_last_day_rolls_to_next_month(self) -> None:
        assert default_end_date(date(2024, 1, 31)) == date(2024, 2, 29)
