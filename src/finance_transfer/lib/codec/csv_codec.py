"""CSV codec with formula sanitization and delimiter/encoding detection.

Multi-type exports write one section per data type, each introduced by a
``# <data type>`` marker line and separated by a blank line.
"""

import csv
import io
from collections.abc import Iterator, Mapping
from typing import Any

from finance_transfer.lib.codec.base import (
    DecodedItem,
    Decoder,
    Encoder,
    Record,
    sanitize_cell,
    to_text,
    unsanitize_cell,
)
from finance_transfer.lib.jobs.errors import RecordError, StructuralDecodeError
from finance_transfer.lib.jobs.types import DataType
from finance_transfer.lib.records import RecordSchema, get_schema

CANDIDATE_DELIMITERS = (",", ";", "|", "\t")
SECTION_MARKER = "# "


class CsvEncoder(Encoder):
    """Streaming CSV encoder; every drain returns the rows written since the last one."""

    format = "csv"
    content_type = "text/csv"
    file_extension = "csv"

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._buffer = io.StringIO()
        self._writer = csv.writer(self._buffer, lineterminator="\n")
        self._sections = 0

    def _start_section(self, schema: RecordSchema) -> None:
        if self.multi_section:
            if self._sections:
                self._buffer.write("\n")
            self._buffer.write(f"{SECTION_MARKER}{schema.data_type.value}\n")
        self._writer.writerow(schema.headers)
        self._sections += 1

    def _write_record(self, schema: RecordSchema, record: Record) -> None:
        self._writer.writerow([to_text(sanitize_cell(record.get(name))) for name in schema.names])

    def drain(self) -> bytes:
        data = self._buffer.getvalue()
        self._buffer.seek(0)
        self._buffer.truncate(0)
        return data.encode("utf-8")

    def finish(self) -> bytes:
        self._finished = True
        return self.drain()


def decode_text(payload: bytes) -> str:
    """Decode bytes as UTF-8 (BOM tolerated), falling back to Latin-1."""
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError:
        return payload.decode("latin-1")


def detect_delimiter(header_line: str, schema: RecordSchema) -> str:
    """Pick the delimiter that splits the header line most often.

    A header with no candidate delimiter is accepted only when it is a
    single known column name for the data type.

    Raises:
        StructuralDecodeError: If no delimiter can be determined.
    """
    counts = {d: header_line.count(d) for d in CANDIDATE_DELIMITERS}
    best = max(counts, key=lambda d: counts[d])
    if counts[best] > 0:
        return best
    known = {name.lower() for field_spec in schema.fields for name in field_spec.accepted_names}
    if header_line.strip().strip('"').lower() in known:
        return ","
    msg = f"Could not detect a delimiter in header line: {header_line[:80]!r}"
    raise StructuralDecodeError(msg)


def _select_section(lines: list[str], data_type: DataType) -> list[str]:
    """Return the lines belonging to ``data_type`` in a sectioned CSV."""
    marker = f"{SECTION_MARKER}{data_type.value}"
    selected: list[str] | None = None
    for line in lines:
        stripped = line.strip()
        if stripped.startswith(SECTION_MARKER):
            if selected is not None:
                break
            if stripped.lower() == marker:
                selected = []
            continue
        if selected is not None:
            selected.append(line)
    if selected is None:
        msg = f"No '{data_type.value}' section found in CSV payload"
        raise StructuralDecodeError(msg)
    return selected


class CsvDecoder(Decoder):
    format = "csv"

    def read(
        self,
        payload: bytes,
        data_type: DataType,
        options: Mapping[str, Any] | None = None,
    ) -> Iterator[DecodedItem]:
        schema = get_schema(data_type)
        text = decode_text(payload)
        lines = text.splitlines()
        first = next((line for line in lines if line.strip()), None)
        if first is None:
            msg = "CSV payload is empty"
            raise StructuralDecodeError(msg)
        if first.strip().startswith(SECTION_MARKER):
            section = _select_section(lines, data_type)
            first = next((line for line in section if line.strip()), None)
            if first is None:
                msg = f"'{data_type.value}' section has no header row"
                raise StructuralDecodeError(msg)
            text = "\n".join(section)

        delimiter = detect_delimiter(first, schema)
        reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
        header: list[str] = []
        while not header:
            row = self._next_row(reader, 0)
            if row is None:
                msg = "CSV payload has no header row"
                raise StructuralDecodeError(msg)
            if any(cell.strip() for cell in row):
                header = [cell.strip() for cell in row]
        if len(set(header)) != len(header):
            msg = "CSV header contains duplicate column names"
            raise StructuralDecodeError(msg)

        return self._iter_rows(reader, header)

    @staticmethod
    def _next_row(reader: Iterator[list[str]], index: int) -> list[str] | None:
        try:
            return next(reader)
        except StopIteration:
            return None
        except csv.Error as exc:
            msg = f"Malformed CSV near record {index + 1}: {exc}"
            raise StructuralDecodeError(msg) from exc

    @classmethod
    def _iter_rows(cls, reader: Iterator[list[str]], header: list[str]) -> Iterator[DecodedItem]:
        index = 0
        while (row := cls._next_row(reader, index)) is not None:
            if not row or all(not cell.strip() for cell in row):
                continue
            index += 1
            if len(row) != len(header):
                yield RecordError(index=index, reason=f"Expected {len(header)} fields, found {len(row)}")
                continue
            yield {name: unsanitize_cell(value) for name, value in zip(header, row, strict=True)}
