"""Format codec library — encoders and decoders per interchange format.

Provides a registry lookup by format name and a convenience function that
encodes whole sections in one call.
"""

from collections.abc import Iterable
from typing import Any

from finance_transfer.lib.codec.base import (
    FORMULA_PREFIXES,
    DecodedItem,
    Decoder,
    Encoder,
    Record,
    sanitize_cell,
    unsanitize_cell,
)
from finance_transfer.lib.codec.csv_codec import CsvDecoder, CsvEncoder, detect_delimiter
from finance_transfer.lib.codec.excel_codec import ExcelDecoder, ExcelEncoder
from finance_transfer.lib.codec.json_codec import JsonDecoder, JsonEncoder
from finance_transfer.lib.codec.pdf_codec import PdfEncoder
from finance_transfer.lib.jobs.errors import InvalidRequestError
from finance_transfer.lib.jobs.types import DataType, TransferFormat
from finance_transfer.lib.records import get_schema

_ENCODERS: dict[TransferFormat, type[Encoder]] = {
    TransferFormat.CSV: CsvEncoder,
    TransferFormat.JSON: JsonEncoder,
    TransferFormat.EXCEL: ExcelEncoder,
    TransferFormat.PDF: PdfEncoder,
}

_DECODERS: dict[TransferFormat, type[Decoder]] = {
    TransferFormat.CSV: CsvDecoder,
    TransferFormat.JSON: JsonDecoder,
    TransferFormat.EXCEL: ExcelDecoder,
}

ENCODABLE_FORMATS = list(_ENCODERS.keys())
DECODABLE_FORMATS = list(_DECODERS.keys())


def get_encoder(fmt: TransferFormat | str, **kwargs: Any) -> Encoder:
    """Create an encoder for ``fmt``.

    Raises:
        InvalidRequestError: If the format has no encoder.
    """
    try:
        return _ENCODERS[TransferFormat(fmt)](**kwargs)
    except (KeyError, ValueError) as exc:
        msg = f"Unsupported export format: {fmt}"
        raise InvalidRequestError(msg) from exc


def get_decoder(fmt: TransferFormat | str) -> Decoder:
    """Create a decoder for ``fmt``.

    Raises:
        InvalidRequestError: If the format cannot be imported (e.g. pdf).
    """
    try:
        return _DECODERS[TransferFormat(fmt)]()
    except (KeyError, ValueError) as exc:
        msg = f"Unsupported import format: {fmt}"
        raise InvalidRequestError(msg) from exc


def content_type_for(fmt: TransferFormat | str) -> str:
    return _ENCODERS[TransferFormat(fmt)].content_type


def extension_for(fmt: TransferFormat | str) -> str:
    return _ENCODERS[TransferFormat(fmt)].file_extension


def encode_sections(
    fmt: TransferFormat | str,
    sections: Iterable[tuple[DataType, Iterable[Record]]],
    **kwargs: Any,
) -> bytes:
    """Encode complete sections into one document.

    Args:
        fmt: Output format.
        sections: ``(data_type, records)`` pairs in output order.
        **kwargs: Encoder options (``multi_section``, ``date_range``).

    Returns:
        The encoded document.
    """
    encoder = get_encoder(fmt, **kwargs)
    chunks: list[bytes] = []
    for data_type, records in sections:
        encoder.begin_section(get_schema(data_type))
        encoder.write_records(records)
        chunks.append(encoder.drain())
    chunks.append(encoder.finish())
    return b"".join(chunks)


__all__ = [
    "DECODABLE_FORMATS",
    "ENCODABLE_FORMATS",
    "FORMULA_PREFIXES",
    "CsvDecoder",
    "CsvEncoder",
    "DecodedItem",
    "Decoder",
    "Encoder",
    "ExcelDecoder",
    "ExcelEncoder",
    "JsonDecoder",
    "JsonEncoder",
    "PdfEncoder",
    "Record",
    "content_type_for",
    "detect_delimiter",
    "encode_sections",
    "extension_for",
    "get_decoder",
    "get_encoder",
    "sanitize_cell",
    "unsanitize_cell",
]
