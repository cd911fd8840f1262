"""Import Pydantic v2 request/response schemas."""

from decimal import Decimal

from pydantic import BaseModel, Field, model_validator

from finance_transfer.lib.jobs import DuplicateStrategy
from finance_transfer.lib.validator import ValidationOptions


class ImportOptions(BaseModel):
    """Options accepted alongside an import payload."""

    duplicate_strategy: DuplicateStrategy = DuplicateStrategy.SKIP
    field_mapping: dict[str, list[str]] = Field(
        default_factory=dict,
        description="Extra source column names per canonical field, tried before the built-in aliases",
    )
    min_amount: Decimal | None = Field(default=None, ge=0)
    max_amount: Decimal | None = Field(default=None, ge=0)
    sheet_name: str | None = Field(default=None, description="Worksheet to read for Excel imports")

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def check_amount_bounds(self) -> "ImportOptions":
        if self.min_amount is not None and self.max_amount is not None and self.min_amount > self.max_amount:
            msg = "min_amount must not exceed max_amount"
            raise ValueError(msg)
        return self

    def to_validation_options(self) -> ValidationOptions:
        return ValidationOptions(
            field_mapping=self.field_mapping,
            min_amount=self.min_amount,
            max_amount=self.max_amount,
        )

    def decoder_options(self) -> dict:
        return {"sheet_name": self.sheet_name} if self.sheet_name else {}


class RecordErrorResponse(BaseModel):
    index: int = Field(description="1-based position of the record among the data records of the input")
    reason: str
    field: str | None = None


class ValidationReportResponse(BaseModel):
    """Outcome of a validate-only import; nothing is committed."""

    valid: bool
    record_count: int
    accepted: int
    rejected: int
    errors: list[RecordErrorResponse]
    errors_truncated: bool = False
    available_fields: list[str]
    required_fields: list[str]
    missing_fields: list[str]
    suggested_mapping: dict[str, str]
    structural_error: str | None = None
