"""Tests for transfer options discovery."""

from finance_transfer.lib.jobs import OperationKind
from finance_transfer.services.options_service import describe_options


class TestDescribeOptions:
    def test_export_options(self) -> None:
        options = describe_options(OperationKind.EXPORT)
        assert [f.value for f in options.formats] == ["csv", "json", "excel", "pdf"]
        assert "all" in [d.value for d in options.data_types]
        assert options.supports_date_range is True
        assert options.duplicate_strategies == []

    def test_import_options(self) -> None:
        options = describe_options(OperationKind.IMPORT, max_file_size_bytes=1024)
        assert [f.value for f in options.formats] == ["csv", "json", "excel"]
        assert [d.value for d in options.data_types] == ["transactions", "budgets", "goals", "categories"]
        assert options.duplicate_strategies == ["skip", "update", "create"]
        assert options.max_file_size_bytes == 1024

    def test_field_descriptions(self) -> None:
        options = describe_options(OperationKind.IMPORT)
        transactions = next(d for d in options.data_types if d.value == "transactions")
        fields = {f.name: f for f in transactions.fields}
        assert fields["date"].required is True
        assert "Transaction Date" in fields["date"].aliases
        assert "date" not in fields["date"].aliases
        assert fields["type"].choices == ["income", "expense", "transfer"]

    def test_excel_format_metadata(self) -> None:
        options = describe_options(OperationKind.EXPORT)
        excel = next(f for f in options.formats if f.value == "excel")
        assert excel.file_extension == "xlsx"
        assert excel.content_type == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
