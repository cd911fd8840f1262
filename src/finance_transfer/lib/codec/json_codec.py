"""JSON codec.

Exports are a single object written incrementally::

    {"exported_at": "...", "date_range": {...}, "transactions": [ {...}, ... ], "budgets": [...]}

Imports accept that document, a bare array of records, or an object with
a ``records`` or ``data`` array.
"""

import io
import json
from collections.abc import Iterator, Mapping
from datetime import UTC, datetime
from typing import Any

from finance_transfer.lib.codec.base import DecodedItem, Decoder, Encoder, JSONRecordEncoder, Record
from finance_transfer.lib.jobs.errors import RecordError, StructuralDecodeError
from finance_transfer.lib.jobs.types import DataType
from finance_transfer.lib.records import RecordSchema

_FALLBACK_KEYS = ("records", "data")


class JsonEncoder(Encoder):
    """Streaming JSON encoder; never holds more than one batch of encoded text."""

    format = "json"
    content_type = "application/json"
    file_extension = "json"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._buffer = io.StringIO()
        self._opened = False
        self._records_in_section = 0
        self._section_open = False

    def _open_document(self) -> None:
        if self._opened:
            return
        self._opened = True
        exported_at = json.dumps(datetime.now(UTC).isoformat())
        self._buffer.write('{\n  "exported_at": ' + exported_at)
        if self.date_range:
            self._buffer.write(',\n  "date_range": ' + json.dumps(self.date_range))

    def _close_section(self) -> None:
        if self._section_open:
            self._buffer.write("\n  ]" if self._records_in_section else "]")
            self._section_open = False

    def _start_section(self, schema: RecordSchema) -> None:
        self._open_document()
        self._close_section()
        self._buffer.write(f',\n  "{schema.data_type.value}": [')
        self._section_open = True
        self._records_in_section = 0

    def _write_record(self, schema: RecordSchema, record: Record) -> None:
        if self._records_in_section:
            self._buffer.write(",")
        ordered = {name: record.get(name) for name in schema.names}
        self._buffer.write("\n    " + json.dumps(ordered, cls=JSONRecordEncoder, ensure_ascii=False))
        self._records_in_section += 1

    def drain(self) -> bytes:
        data = self._buffer.getvalue()
        self._buffer.seek(0)
        self._buffer.truncate(0)
        return data.encode("utf-8")

    def finish(self) -> bytes:
        self._open_document()
        self._close_section()
        self._buffer.write("\n}\n")
        self._finished = True
        return self.drain()


def _locate_records(document: Any, data_type: DataType) -> list[Any]:
    if isinstance(document, list):
        return document
    if isinstance(document, dict):
        for key in (data_type.value, *_FALLBACK_KEYS):
            if key in document:
                records = document[key]
                if not isinstance(records, list):
                    msg = f"JSON key '{key}' does not hold an array of records"
                    raise StructuralDecodeError(msg)
                return records
    msg = f"JSON payload has no '{data_type.value}' record array"
    raise StructuralDecodeError(msg)


class JsonDecoder(Decoder):
    format = "json"

    def read(
        self,
        payload: bytes,
        data_type: DataType,
        options: Mapping[str, Any] | None = None,
    ) -> Iterator[DecodedItem]:
        try:
            document = json.loads(payload.decode("utf-8-sig"))
        except UnicodeDecodeError as exc:
            msg = "JSON payload is not valid UTF-8"
            raise StructuralDecodeError(msg) from exc
        except json.JSONDecodeError as exc:
            msg = f"Invalid JSON at line {exc.lineno} column {exc.colno}: {exc.msg}"
            raise StructuralDecodeError(msg) from exc

        return self._iter_records(_locate_records(document, data_type))

    @staticmethod
    def _iter_records(records: list[Any]) -> Iterator[DecodedItem]:
        for index, item in enumerate(records, start=1):
            if not isinstance(item, dict):
                yield RecordError(index=index, reason=f"Record is a JSON {type(item).__name__}, not an object")
                continue
            yield item
