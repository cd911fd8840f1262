"""Codec interfaces and shared cell conversion helpers.

Encoders are push-style: the caller opens a section per data type, feeds
record batches, and drains the bytes produced so far after each batch.
Streaming encoders (CSV, JSON) hand back bytes on every drain; buffering
encoders (Excel, PDF) return everything from ``finish()``.

Decoders validate the payload's structure eagerly and then yield raw
records lazily. A record that cannot be read yields a ``RecordError``
instead of stopping the decode.
"""

import abc
import json
import uuid
from collections.abc import Iterable, Iterator, Mapping
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from finance_transfer.lib.jobs.errors import RecordError
from finance_transfer.lib.jobs.types import DataType
from finance_transfer.lib.records import RecordSchema

Record = dict[str, Any]
DecodedItem = Record | RecordError

# Characters that trigger formula execution in spreadsheet applications
FORMULA_PREFIXES = ("=", "+", "-", "@", "\t", "\r")


def sanitize_cell(value: object) -> object:
    """Prefix formula-triggering strings with a single quote.

    Only strings are touched; negative numbers stay numeric.
    """
    if isinstance(value, str) and value and value[0] in FORMULA_PREFIXES:
        return f"'{value}"
    return value


def unsanitize_cell(value: object) -> object:
    """Strip the protective quote added by ``sanitize_cell``."""
    if isinstance(value, str) and len(value) > 1 and value[0] == "'" and value[1] in FORMULA_PREFIXES:
        return value[1:]
    return value


def to_text(value: object) -> str:
    """Render a record value as plain text for CSV and PDF cells."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


class JSONRecordEncoder(json.JSONEncoder):
    """JSON encoder for decimals, dates, and UUIDs.

    Decimals are written as strings so amounts survive without float rounding.
    """

    def default(self, o: object) -> Any:
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, uuid.UUID):
            return str(o)
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, date):
            return o.isoformat()
        return super().default(o)


class Encoder(abc.ABC):
    """Incremental record encoder for one interchange format."""

    format: str
    content_type: str
    file_extension: str
    streaming: bool = True

    def __init__(
        self,
        *,
        multi_section: bool = False,
        date_range: Mapping[str, str | None] | None = None,
    ) -> None:
        self.multi_section = multi_section
        self.date_range = dict(date_range) if date_range else None
        self._section: RecordSchema | None = None
        self._finished = False

    def begin_section(self, schema: RecordSchema) -> None:
        """Start the block of records for one data type."""
        if self._finished:
            msg = "Encoder already finished"
            raise RuntimeError(msg)
        self._section = schema
        self._start_section(schema)

    def write_records(self, records: Iterable[Record]) -> int:
        """Encode a batch of records into the current section.

        Returns:
            Number of records written.
        """
        if self._section is None:
            msg = "begin_section() must be called before write_records()"
            raise RuntimeError(msg)
        count = 0
        for record in records:
            self._write_record(self._section, record)
            count += 1
        return count

    @abc.abstractmethod
    def _start_section(self, schema: RecordSchema) -> None: ...

    @abc.abstractmethod
    def _write_record(self, schema: RecordSchema, record: Record) -> None: ...

    @abc.abstractmethod
    def drain(self) -> bytes:
        """Return bytes produced since the last drain (may be empty)."""

    @abc.abstractmethod
    def finish(self) -> bytes:
        """Close the document and return the remaining bytes."""


class Decoder(abc.ABC):
    """Structural parser producing raw records for one interchange format."""

    format: str

    @abc.abstractmethod
    def read(
        self,
        payload: bytes,
        data_type: DataType,
        options: Mapping[str, Any] | None = None,
    ) -> Iterator[DecodedItem]:
        """Parse ``payload`` and return a forward-only record iterator.

        Raw records map source column names to source values; alias
        resolution and coercion belong to the validator.

        Raises:
            StructuralDecodeError: If the payload cannot be parsed at all.
                Raised before the iterator is returned where possible, or
                from the iterator when the damage is found mid-stream.
        """
