"""Operation API endpoints.

GET /operations (combined history), GET /operations/{operation_id},
POST /operations/{kind}/{operation_id}/cancel.
"""

import math
import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status

from finance_transfer.core.config import Settings, get_settings
from finance_transfer.core.dependencies import get_current_user
from finance_transfer.lib.jobs import (
    CancelOutcome,
    ForbiddenError,
    OperationKind,
    OperationNotFoundError,
    OperationStatus,
)
from finance_transfer.models.operation import Operation
from finance_transfer.models.user import User
from finance_transfer.schemas.common import PaginationMeta
from finance_transfer.schemas.operations import CancelResponse, OperationResponse, PaginatedOperationResponse
from finance_transfer.services.cancellation_service import request_cancel
from finance_transfer.services.operation_service import OperationPage
from finance_transfer.services.transfer_service import TransferServices, get_transfer_services

operations_router = APIRouter(prefix="/operations", tags=["operations"])


def operation_to_response(operation: Operation, settings: Settings) -> OperationResponse:
    """Convert an Operation to its response, with a download URL for finished exports."""
    response = OperationResponse.model_validate(operation)
    if response.kind is OperationKind.EXPORT and response.status is OperationStatus.COMPLETED:
        response.download_url = f"{settings.api_v1_prefix}/exports/{response.id}/download"
    return response


def page_to_response(
    page: OperationPage,
    page_number: int,
    page_size: int,
    settings: Settings,
) -> PaginatedOperationResponse:
    return PaginatedOperationResponse(
        items=[operation_to_response(op, settings) for op in page.items],
        pagination=PaginationMeta(
            total=page.total,
            page=page_number,
            page_size=page_size,
            total_pages=math.ceil(page.total / page_size) if page.total > 0 else 0,
            as_of=page.as_of,
        ),
    )


async def get_owned_operation(
    services: TransferServices,
    operation_id: uuid.UUID,
    user: User,
    kind: OperationKind | None = None,
) -> Operation:
    """Fetch an operation the acting user owns.

    Raises:
        OperationNotFoundError: If it does not exist (or is of another kind).
        ForbiddenError: If another user owns it.
    """
    operation = await services.registry.find(operation_id)
    if operation is None or (kind is not None and operation.kind != kind):
        raise OperationNotFoundError(operation_id)
    if operation.owner_id != user.id:
        msg = "You do not have access to this operation"
        raise ForbiddenError(msg)
    return operation


@operations_router.get("", response_model=PaginatedOperationResponse)
async def list_operations(
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
    kind: Annotated[OperationKind | None, Query()] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    as_of: Annotated[datetime | None, Query(description="Snapshot time from a previous page")] = None,
) -> PaginatedOperationResponse:
    """List the acting user's export and import operations, newest first."""
    result = await services.registry.list(current_user.id, kind=kind, page=page, page_size=page_size, as_of=as_of)
    return page_to_response(result, page, page_size, settings)


@operations_router.get("/{operation_id}", response_model=OperationResponse)
async def get_operation(
    operation_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OperationResponse:
    """Get one operation with its progress and result."""
    operation = await get_owned_operation(services, operation_id, current_user)
    return operation_to_response(operation, settings)


@operations_router.post("/{kind}/{operation_id}/cancel", response_model=CancelResponse)
async def cancel_operation(
    kind: OperationKind,
    operation_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
) -> CancelResponse:
    """Request cancellation; the worker stops at its next batch boundary."""
    outcome = await request_cancel(services.registry, operation_id, current_user.id, kind)
    if outcome is CancelOutcome.NOT_FOUND:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Operation not found")
    if outcome is CancelOutcome.FORBIDDEN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this operation")
    if outcome is CancelOutcome.ALREADY_TERMINAL:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Operation has already finished")
    return CancelResponse(operation_id=operation_id)
