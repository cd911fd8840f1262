"""Tests for the interchange field registry."""

import pytest

from finance_transfer.lib.jobs import CONCRETE_DATA_TYPES, DataType
from finance_transfer.lib.records import FieldKind, get_schema


class TestSchemas:
    @pytest.mark.parametrize("data_type", CONCRETE_DATA_TYPES)
    def test_every_concrete_type_has_a_schema(self, data_type: DataType) -> None:
        schema = get_schema(data_type)
        assert schema.data_type is data_type
        assert schema.required
        assert set(schema.duplicate_key) <= set(schema.names)

    def test_all_has_no_schema(self) -> None:
        with pytest.raises(KeyError):
            get_schema(DataType.ALL)

    def test_transaction_required_fields(self) -> None:
        assert get_schema("transactions").required == ["date", "description", "amount", "type"]

    def test_accepted_names_start_with_canonical_then_header(self) -> None:
        field_spec = get_schema(DataType.TRANSACTIONS).get("date")
        assert field_spec.accepted_names[:2] == ("date", "Date")
        assert "Transaction Date" in field_spec.accepted_names
        assert field_spec.kind is FieldKind.DATE

    def test_get_unknown_field_raises(self) -> None:
        with pytest.raises(KeyError):
            get_schema(DataType.GOALS).get("amount")
