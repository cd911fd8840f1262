"""Export API endpoints.

POST /exports (submit), GET /exports (history), GET /exports/options,
GET /exports/{operation_id} (status), GET /exports/{operation_id}/download.
"""

import uuid
from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from finance_transfer.api.v1.operations import get_owned_operation, operation_to_response, page_to_response
from finance_transfer.core.config import Settings, get_settings
from finance_transfer.core.dependencies import get_current_user
from finance_transfer.lib.jobs import AccessOutcome, OperationKind
from finance_transfer.models.user import User
from finance_transfer.schemas.exports import ExportRequest, TransferOptionsResponse
from finance_transfer.schemas.operations import OperationResponse, PaginatedOperationResponse, SubmitResponse
from finance_transfer.services.options_service import describe_options
from finance_transfer.services.transfer_service import TransferServices, get_transfer_services

exports_router = APIRouter(prefix="/exports", tags=["exports"])


@exports_router.post("", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def request_export(
    request: ExportRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> SubmitResponse:
    """Submit an export; the file is produced in the background."""
    operation = await services.dispatcher.submit(
        current_user.id,
        OperationKind.EXPORT,
        request.type,
        request.format,
        request.to_filters(),
    )
    return SubmitResponse(operation_id=operation.id, operation=operation_to_response(operation, settings))


@exports_router.get("", response_model=PaginatedOperationResponse)
async def list_exports(
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    as_of: Annotated[datetime | None, Query()] = None,
) -> PaginatedOperationResponse:
    """List the acting user's exports, newest first."""
    result = await services.registry.list(
        current_user.id,
        kind=OperationKind.EXPORT,
        page=page,
        page_size=page_size,
        as_of=as_of,
    )
    return page_to_response(result, page, page_size, settings)


@exports_router.get("/options", response_model=TransferOptionsResponse)
async def export_options(
    _current_user: Annotated[User, Depends(get_current_user)],
) -> TransferOptionsResponse:
    """Formats and data types available for export."""
    return describe_options(OperationKind.EXPORT)


@exports_router.get("/{operation_id}", response_model=OperationResponse)
async def get_export_status(
    operation_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OperationResponse:
    """Get export status and result."""
    operation = await get_owned_operation(services, operation_id, current_user, OperationKind.EXPORT)
    return operation_to_response(operation, settings)


@exports_router.get("/{operation_id}/download")
async def download_export(
    operation_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
) -> StreamingResponse:
    """Stream the file of a completed export."""
    access = await services.artifacts.open_for_operation(operation_id, current_user.id)
    if access.outcome is AccessOutcome.FORBIDDEN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this export")
    if not access.ok or access.value is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Export file not available")

    artifact = access.value.artifact
    return StreamingResponse(
        access.value.chunks,
        media_type=artifact.content_type,
        headers={
            "Content-Disposition": f'attachment; filename="{artifact.file_name}"',
            "Content-Length": str(artifact.size_bytes),
        },
    )
