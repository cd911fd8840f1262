"""Options discovery — static description of supported transfer combinations."""

from finance_transfer.lib.codec import content_type_for, extension_for
from finance_transfer.lib.jobs import DataType, DuplicateStrategy, OperationKind, legal_data_types, legal_formats
from finance_transfer.lib.records import get_schema
from finance_transfer.schemas.exports import DataTypeOption, FieldOption, FormatOption, TransferOptionsResponse

_FORMAT_LABELS = {
    "csv": "CSV (Comma Separated Values)",
    "json": "JSON (JavaScript Object Notation)",
    "excel": "Excel Spreadsheet (.xlsx)",
    "pdf": "PDF Report",
}

_DATA_TYPE_LABELS = {
    "transactions": "Transactions",
    "budgets": "Budgets",
    "goals": "Financial Goals",
    "categories": "Categories",
    "all": "All Data",
}


def _fields_for(data_type: DataType) -> list[FieldOption]:
    if data_type is DataType.ALL:
        return []
    return [
        FieldOption(
            name=field_spec.name,
            header=field_spec.header,
            kind=field_spec.kind.value,
            required=field_spec.required,
            aliases=[alias for alias in field_spec.accepted_names if alias != field_spec.name],
            choices=list(field_spec.choices),
        )
        for field_spec in get_schema(data_type).fields
    ]


def describe_options(kind: OperationKind, *, max_file_size_bytes: int | None = None) -> TransferOptionsResponse:
    """Describe the formats and data types accepted for ``kind``.

    Args:
        kind: Export or import.
        max_file_size_bytes: Upload cap reported for imports.
    """
    formats = [
        FormatOption(
            value=fmt.value,
            label=_FORMAT_LABELS[fmt.value],
            content_type=content_type_for(fmt),
            file_extension=extension_for(fmt),
        )
        for fmt in legal_formats(kind)
    ]
    data_types = [
        DataTypeOption(value=dt.value, label=_DATA_TYPE_LABELS[dt.value], fields=_fields_for(dt))
        for dt in legal_data_types(kind)
    ]
    if kind is OperationKind.EXPORT:
        return TransferOptionsResponse(
            kind=kind.value,
            formats=formats,
            data_types=data_types,
            supports_date_range=True,
        )
    return TransferOptionsResponse(
        kind=kind.value,
        formats=formats,
        data_types=data_types,
        duplicate_strategies=[s.value for s in DuplicateStrategy],
        max_file_size_bytes=max_file_size_bytes,
    )
