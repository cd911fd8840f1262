"""PDF report encoder (export only) built on reportlab.

Rows are buffered as table data and the document is laid out in
``finish()``. Transactions get an income/expense/net summary line.
"""

import io
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from reportlab.lib import colors
from reportlab.lib.pagesizes import landscape, letter
from reportlab.lib.styles import getSampleStyleSheet
from reportlab.lib.units import inch
from reportlab.platypus import LongTable, Paragraph, SimpleDocTemplate, Spacer, TableStyle

from finance_transfer.lib.codec.base import Encoder, Record, to_text
from finance_transfer.lib.jobs.types import DataType
from finance_transfer.lib.records import RecordSchema

_MAX_CELL_CHARS = 60

_TABLE_STYLE = TableStyle(
    [
        ("BACKGROUND", (0, 0), (-1, 0), colors.HexColor("#2f4f6f")),
        ("TEXTCOLOR", (0, 0), (-1, 0), colors.white),
        ("FONTNAME", (0, 0), (-1, 0), "Helvetica-Bold"),
        ("FONTSIZE", (0, 0), (-1, -1), 7),
        ("ROWBACKGROUNDS", (0, 1), (-1, -1), [colors.white, colors.HexColor("#f2f2f2")]),
        ("GRID", (0, 0), (-1, -1), 0.25, colors.grey),
        ("VALIGN", (0, 0), (-1, -1), "TOP"),
    ],
)


def _pdf_cell(value: object) -> str:
    text = to_text(value)
    if len(text) > _MAX_CELL_CHARS:
        return text[: _MAX_CELL_CHARS - 1] + "…"
    return text


class _Section:
    def __init__(self, schema: RecordSchema) -> None:
        self.schema = schema
        self.rows: list[list[str]] = [list(schema.headers)]
        self.income = Decimal("0")
        self.expense = Decimal("0")

    def add(self, record: Record) -> None:
        self.rows.append([_pdf_cell(record.get(name)) for name in self.schema.names])
        if self.schema.data_type is DataType.TRANSACTIONS:
            try:
                amount = abs(Decimal(str(record.get("amount") or 0)))
            except InvalidOperation:
                return
            if record.get("type") == "income":
                self.income += amount
            elif record.get("type") == "expense":
                self.expense += amount


class PdfEncoder(Encoder):
    format = "pdf"
    content_type = "application/pdf"
    file_extension = "pdf"
    streaming = False

    def __init__(self, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._sections: list[_Section] = []

    def _start_section(self, schema: RecordSchema) -> None:
        self._sections.append(_Section(schema))

    def _write_record(self, schema: RecordSchema, record: Record) -> None:
        self._sections[-1].add(record)

    def drain(self) -> bytes:
        return b""

    def finish(self) -> bytes:
        styles = getSampleStyleSheet()
        output = io.BytesIO()
        document = SimpleDocTemplate(
            output,
            pagesize=landscape(letter),
            leftMargin=0.5 * inch,
            rightMargin=0.5 * inch,
            topMargin=0.5 * inch,
            bottomMargin=0.5 * inch,
            title="Financial Data Export",
        )
        titles = ", ".join(section.schema.title for section in self._sections) or "No data"
        story: list[Any] = [
            Paragraph(f"Financial Data Export: {titles}", styles["Title"]),
            Paragraph(f"Generated {datetime.now(UTC):%Y-%m-%d %H:%M} UTC", styles["Normal"]),
        ]
        if self.date_range:
            start = self.date_range.get("start") or "beginning"
            end = self.date_range.get("end") or "today"
            story.append(Paragraph(f"Date range: {start} to {end}", styles["Normal"]))
        story.append(Spacer(1, 0.2 * inch))

        for section in self._sections:
            story.append(Paragraph(section.schema.title, styles["Heading2"]))
            record_count = len(section.rows) - 1
            if record_count == 0:
                story.append(Paragraph("No records.", styles["Normal"]))
            else:
                table = LongTable(section.rows, repeatRows=1)
                table.setStyle(_TABLE_STYLE)
                story.append(table)
            if section.schema.data_type is DataType.TRANSACTIONS and record_count:
                net = section.income - section.expense
                story.append(Spacer(1, 0.1 * inch))
                story.append(
                    Paragraph(
                        f"Income: {section.income:.2f} &nbsp; Expenses: {section.expense:.2f} &nbsp; Net: {net:.2f}",
                        styles["Normal"],
                    )
                )
            story.append(Paragraph(f"{record_count} record(s)", styles["Italic"]))
            story.append(Spacer(1, 0.25 * inch))

        document.build(story)
        self._finished = True
        return output.getvalue()
