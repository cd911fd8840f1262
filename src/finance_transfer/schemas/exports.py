"""Export Pydantic v2 request/response schemas."""

from datetime import date

from pydantic import BaseModel, Field, model_validator

from finance_transfer.lib.jobs import DataType, TransferFormat


class DateRange(BaseModel):
    """Inclusive date range; either end may be open."""

    start: date | None = None
    end: date | None = None

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start is not None and self.end is not None and self.start > self.end:
            msg = "date_range.start must not be after date_range.end"
            raise ValueError(msg)
        return self


class ExportRequest(BaseModel):
    """Request to export records."""

    format: TransferFormat
    type: DataType = DataType.TRANSACTIONS
    date_range: DateRange | None = None
    include_attachments: bool = False

    model_config = {"extra": "forbid"}

    def to_filters(self) -> dict:
        """Filters persisted on the operation."""
        filters: dict = {"include_attachments": self.include_attachments}
        if self.date_range is not None:
            filters["date_range"] = self.date_range.model_dump(mode="json")
        return filters


class FormatOption(BaseModel):
    value: str
    label: str
    content_type: str | None = None
    file_extension: str | None = None


class FieldOption(BaseModel):
    name: str
    header: str
    kind: str
    required: bool
    aliases: list[str] = Field(default_factory=list)
    choices: list[str] = Field(default_factory=list)


class DataTypeOption(BaseModel):
    value: str
    label: str
    fields: list[FieldOption] = Field(default_factory=list)


class TransferOptionsResponse(BaseModel):
    """Supported format and data type combinations for one operation kind."""

    kind: str
    formats: list[FormatOption]
    data_types: list[DataTypeOption]
    duplicate_strategies: list[str] = Field(default_factory=list)
    max_file_size_bytes: int | None = None
    supports_date_range: bool = False
