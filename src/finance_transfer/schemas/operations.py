"""Operation Pydantic v2 response schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from finance_transfer.lib.jobs import DataType, OperationKind, OperationStatus, TransferFormat
from finance_transfer.schemas.common import PaginationMeta


class ProgressResponse(BaseModel):
    processed: int = Field(description="Records processed so far")
    total: int | None = Field(default=None, description="Records expected; null until known")


class OperationResponse(BaseModel):
    """Public view of an export or import operation."""

    id: UUID
    kind: OperationKind
    data_type: DataType
    format: TransferFormat
    status: OperationStatus
    filters: dict
    file_name: str | None = None
    progress: ProgressResponse
    result: dict | None = None
    cancel_requested: bool
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    download_url: str | None = None

    model_config = {"from_attributes": True}


class SubmitResponse(BaseModel):
    """Response for an accepted export or import submission."""

    operation_id: UUID
    operation: OperationResponse


class PaginatedOperationResponse(BaseModel):
    """Paginated list of operations, newest first."""

    items: list[OperationResponse]
    pagination: PaginationMeta


class CancelResponse(BaseModel):
    operation_id: UUID
    cancel_requested: bool = True
    detail: str = "Cancellation requested; the operation stops at its next batch boundary"
