"""Import screening — decode plus validation without touching the database.

Shared by the import worker (phase one) and the validate-only endpoint.
"""

from collections.abc import Iterator
from dataclasses import dataclass

from finance_transfer.lib.codec import get_decoder
from finance_transfer.lib.jobs import DataType, RecordError, StructuralDecodeError, TransferFormat
from finance_transfer.lib.records import get_schema
from finance_transfer.lib.validator import Accepted, FieldResolver, validate
from finance_transfer.schemas.imports import ImportOptions, RecordErrorResponse, ValidationReportResponse


@dataclass(frozen=True)
class ScreenedRecord:
    """One decoded data record and its validation outcome.

    Exactly one of ``record`` and ``error`` is set.
    """

    index: int
    columns: tuple[str, ...]
    record: dict | None = None
    error: RecordError | None = None


def screen_records(
    payload: bytes,
    data_type: DataType | str,
    fmt: TransferFormat | str,
    options: ImportOptions | None = None,
) -> Iterator[ScreenedRecord]:
    """Decode ``payload`` and validate every record lazily.

    Raises:
        StructuralDecodeError: From the decoder, immediately or mid-stream.
        InvalidRequestError: If ``fmt`` cannot be imported.
    """
    data_type = DataType(data_type)
    options = options or ImportOptions()
    decoder = get_decoder(fmt)
    validation_options = options.to_validation_options()
    resolver = FieldResolver(get_schema(data_type), validation_options.field_mapping)

    items = decoder.read(payload, data_type, options.decoder_options())
    for position, item in enumerate(items, start=1):
        if isinstance(item, RecordError):
            yield ScreenedRecord(index=item.index, columns=(), error=item)
            continue
        columns = tuple(str(key) for key in item)
        outcome = validate(data_type, item, validation_options, resolver=resolver)
        if isinstance(outcome, Accepted):
            yield ScreenedRecord(index=position, columns=columns, record=outcome.record)
        else:
            yield ScreenedRecord(
                index=position,
                columns=columns,
                error=RecordError(position, outcome.reason, outcome.field),
            )


def build_validation_report(
    payload: bytes,
    data_type: DataType | str,
    fmt: TransferFormat | str,
    options: ImportOptions | None = None,
    *,
    max_errors: int = 1000,
) -> ValidationReportResponse:
    """Validate an import payload and describe what an import would do.

    A structural decode failure is reported in ``structural_error`` rather
    than raised, so callers always get a report back.
    """
    data_type = DataType(data_type)
    options = options or ImportOptions()
    schema = get_schema(data_type)
    resolver = FieldResolver(schema, options.field_mapping)

    available: list[str] = []
    errors: list[RecordErrorResponse] = []
    accepted = rejected = 0
    structural_error: str | None = None
    try:
        for screened in screen_records(payload, data_type, fmt, options):
            for column in screened.columns:
                if column not in available:
                    available.append(column)
            if screened.error is None:
                accepted += 1
                continue
            rejected += 1
            if len(errors) < max_errors:
                errors.append(RecordErrorResponse(**screened.error.to_dict()))
    except StructuralDecodeError as exc:
        structural_error = exc.message

    suggested = resolver.map_columns(available)
    mapped = set(suggested.values())
    missing = [name for name in schema.required if name not in mapped]
    if structural_error is None and not available:
        # No data rows to learn columns from; report on shape alone
        missing = []

    return ValidationReportResponse(
        valid=structural_error is None and rejected == 0 and not missing,
        record_count=accepted + rejected,
        accepted=accepted,
        rejected=rejected,
        errors=errors,
        errors_truncated=rejected > len(errors),
        available_fields=available,
        required_fields=schema.required,
        missing_fields=missing if structural_error is None else schema.required,
        suggested_mapping=suggested,
        structural_error=structural_error,
    )
