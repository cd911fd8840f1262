"""Excel (xlsx) codec built on openpyxl.

The encoder uses a write-only workbook, one sheet per data type with a
bold header row. The workbook can only be serialized as a whole, so all
bytes are returned by ``finish()``.
"""

import io
import zipfile
from collections.abc import Iterator, Mapping
from datetime import datetime
from decimal import Decimal
from typing import Any
from xml.etree.ElementTree import ParseError

from openpyxl import Workbook, load_workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.styles import Font
from openpyxl.utils.exceptions import InvalidFileException

from finance_transfer.lib.codec.base import DecodedItem, Decoder, Encoder, Record, sanitize_cell, unsanitize_cell
from finance_transfer.lib.jobs.errors import RecordError, StructuralDecodeError
from finance_transfer.lib.jobs.types import DataType
from finance_transfer.lib.records import RecordSchema

XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# Failures raised by openpyxl/zipfile for truncated, non-xlsx or malformed-XML payloads.
# lxml parse errors, when openpyxl parses with lxml, derive from SyntaxError like ParseError.
_CORRUPT_WORKBOOK_ERRORS = (
    zipfile.BadZipFile,
    InvalidFileException,
    ParseError,
    SyntaxError,
    KeyError,
    ValueError,
    OSError,
    EOFError,
)


def _excel_value(value: object) -> object:
    if isinstance(value, Decimal):
        return float(value)
    return sanitize_cell(value)


class ExcelEncoder(Encoder):
    format = "excel"
    content_type = XLSX_CONTENT_TYPE
    file_extension = "xlsx"
    streaming = False

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._workbook = Workbook(write_only=True)
        self._sheet: Any = None
        self._header_font = Font(bold=True)

    def _start_section(self, schema: RecordSchema) -> None:
        self._sheet = self._workbook.create_sheet(title=schema.title)
        header = []
        for title in schema.headers:
            cell = WriteOnlyCell(self._sheet, value=title)
            cell.font = self._header_font
            header.append(cell)
        self._sheet.append(header)

    def _write_record(self, schema: RecordSchema, record: Record) -> None:
        if self._sheet is None:
            msg = "No open worksheet"
            raise RuntimeError(msg)
        self._sheet.append([_excel_value(record.get(name)) for name in schema.names])

    def drain(self) -> bytes:
        return b""

    def finish(self) -> bytes:
        output = io.BytesIO()
        self._workbook.save(output)
        self._finished = True
        return output.getvalue()


def _cell_value(value: object) -> object:
    if isinstance(value, datetime) and value.hour == value.minute == value.second == value.microsecond == 0:
        return value.date()
    return unsanitize_cell(value)


class ExcelDecoder(Decoder):
    """Reads one worksheet of an xlsx workbook.

    Sheet selection: ``options["sheet_name"]`` when given, otherwise a
    sheet titled after the data type, otherwise the first sheet.
    """

    format = "excel"

    def read(
        self,
        payload: bytes,
        data_type: DataType,
        options: Mapping[str, Any] | None = None,
    ) -> Iterator[DecodedItem]:
        if not payload:
            msg = "Excel payload is empty"
            raise StructuralDecodeError(msg)
        try:
            workbook = load_workbook(io.BytesIO(payload), read_only=True, data_only=True)
        except _CORRUPT_WORKBOOK_ERRORS as exc:
            msg = f"Unreadable Excel workbook: {exc.__class__.__name__}"
            raise StructuralDecodeError(msg) from exc

        sheet_name = (options or {}).get("sheet_name")
        titles = {title.lower(): title for title in workbook.sheetnames}
        if sheet_name:
            if sheet_name not in workbook.sheetnames:
                workbook.close()
                msg = f"Worksheet '{sheet_name}' not found"
                raise StructuralDecodeError(msg)
            sheet = workbook[sheet_name]
        elif data_type.value in titles:
            sheet = workbook[titles[data_type.value]]
        elif workbook.sheetnames:
            sheet = workbook[workbook.sheetnames[0]]
        else:
            workbook.close()
            msg = "Excel workbook has no worksheets"
            raise StructuralDecodeError(msg)

        try:
            rows = sheet.iter_rows(values_only=True)
            header = self._read_header(rows)
        except _CORRUPT_WORKBOOK_ERRORS as exc:
            workbook.close()
            msg = f"Unreadable Excel worksheet: {exc.__class__.__name__}"
            raise StructuralDecodeError(msg) from exc
        if header is None:
            workbook.close()
            msg = f"Worksheet '{sheet.title}' has no header row"
            raise StructuralDecodeError(msg)
        if len(set(header)) != len(header):
            workbook.close()
            msg = f"Worksheet '{sheet.title}' header contains duplicate column names"
            raise StructuralDecodeError(msg)

        return self._iter_rows(workbook, rows, header)

    @staticmethod
    def _read_header(rows: Iterator[tuple[Any, ...]]) -> list[str] | None:
        for row in rows:
            if any(cell not in (None, "") for cell in row):
                header = [str(cell).strip() if cell is not None else "" for cell in row]
                while header and not header[-1]:
                    header.pop()
                return [name or f"column_{i}" for i, name in enumerate(header, start=1)]
        return None

    @staticmethod
    def _iter_rows(workbook: Any, rows: Iterator[tuple[Any, ...]], header: list[str]) -> Iterator[DecodedItem]:
        index = 0
        try:
            for row in rows:
                if all(cell in (None, "") for cell in row):
                    continue
                index += 1
                extra = [cell for cell in row[len(header) :] if cell not in (None, "")]
                if extra:
                    yield RecordError(index=index, reason=f"Row has {len(extra)} value(s) beyond the header columns")
                    continue
                values = list(row[: len(header)]) + [None] * (len(header) - len(row))
                yield {name: _cell_value(value) for name, value in zip(header, values, strict=True)}
        except _CORRUPT_WORKBOOK_ERRORS as exc:
            msg = f"Unreadable Excel worksheet near record {index + 1}: {exc.__class__.__name__}"
            raise StructuralDecodeError(msg) from exc
        finally:
            workbook.close()
