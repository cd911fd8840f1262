"""Import API endpoints.

POST /imports (multipart file upload), POST /imports/validate,
GET /imports (history), GET /imports/options, GET /imports/{operation_id}.
"""

import asyncio
import json
import uuid
from datetime import datetime
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Form, Query, UploadFile, status

from finance_transfer.api.v1.operations import get_owned_operation, operation_to_response, page_to_response
from finance_transfer.core.config import Settings, get_settings
from finance_transfer.core.dependencies import get_current_user
from finance_transfer.lib.jobs import InvalidRequestError, OperationKind
from finance_transfer.models.user import User
from finance_transfer.schemas.exports import TransferOptionsResponse
from finance_transfer.schemas.imports import ValidationReportResponse
from finance_transfer.schemas.operations import OperationResponse, PaginatedOperationResponse, SubmitResponse
from finance_transfer.services.dispatch_service import check_combination, parse_import_options
from finance_transfer.services.options_service import describe_options
from finance_transfer.services.transfer_service import TransferServices, get_transfer_services
from finance_transfer.services.validation_service import build_validation_report

router = APIRouter(prefix="/imports", tags=["imports"])


def _parse_options(raw: str | None) -> dict[str, Any]:
    """Decode the ``options`` form field (a JSON object)."""
    if raw is None or not raw.strip():
        return {}
    try:
        options = json.loads(raw)
    except json.JSONDecodeError as exc:
        msg = "options must be a JSON object"
        raise InvalidRequestError(msg) from exc
    if not isinstance(options, dict):
        msg = "options must be a JSON object"
        raise InvalidRequestError(msg)
    return options


async def _read_upload(file: UploadFile, settings: Settings) -> bytes:
    """Read an upload, refusing anything over the configured size."""
    if not file.filename:
        msg = "No file provided"
        raise InvalidRequestError(msg)
    content = await file.read(settings.import_max_file_size_bytes + 1)
    if len(content) > settings.import_max_file_size_bytes:
        msg = f"File exceeds maximum size of {settings.import_max_file_size_mb} MB"
        raise InvalidRequestError(msg)
    if not content:
        msg = "Import file is empty"
        raise InvalidRequestError(msg)
    return content


@router.post("", response_model=SubmitResponse, status_code=status.HTTP_202_ACCEPTED)
async def request_import(
    file: UploadFile,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
    type: Annotated[str, Form(description="Data type of the records in the file")],  # noqa: A002
    format: Annotated[str, Form(description="csv, json or excel")] = "csv",  # noqa: A002
    options: Annotated[str | None, Form(description="Import options as a JSON object")] = None,
) -> SubmitResponse:
    """Upload a file and import its records in the background."""
    payload = await _read_upload(file, settings)
    operation = await services.dispatcher.submit(
        current_user.id,
        OperationKind.IMPORT,
        type,
        format,
        _parse_options(options),
        payload=payload,
        file_name=file.filename,
    )
    return SubmitResponse(operation_id=operation.id, operation=operation_to_response(operation, settings))


@router.post("/validate", response_model=ValidationReportResponse)
async def validate_import(
    file: UploadFile,
    _current_user: Annotated[User, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
    type: Annotated[str, Form(description="Data type of the records in the file")],  # noqa: A002
    format: Annotated[str, Form(description="csv, json or excel")] = "csv",  # noqa: A002
    options: Annotated[str | None, Form(description="Import options as a JSON object")] = None,
) -> ValidationReportResponse:
    """Check a file without importing it."""
    data_type, fmt = check_combination(OperationKind.IMPORT, type, format)
    import_options = parse_import_options(_parse_options(options))
    payload = await _read_upload(file, settings)
    return await asyncio.to_thread(
        build_validation_report,
        payload,
        data_type,
        fmt,
        import_options,
        max_errors=settings.import_max_reported_errors,
    )


@router.get("", response_model=PaginatedOperationResponse)
async def list_imports(
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
    page: Annotated[int, Query(ge=1)] = 1,
    page_size: Annotated[int, Query(ge=1, le=100)] = 20,
    as_of: Annotated[datetime | None, Query()] = None,
) -> PaginatedOperationResponse:
    """List the acting user's imports, newest first."""
    result = await services.registry.list(
        current_user.id,
        kind=OperationKind.IMPORT,
        page=page,
        page_size=page_size,
        as_of=as_of,
    )
    return page_to_response(result, page, page_size, settings)


@router.get("/options", response_model=TransferOptionsResponse)
async def import_options(
    _current_user: Annotated[User, Depends(get_current_user)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> TransferOptionsResponse:
    """Formats, data types, field aliases and limits for import."""
    return describe_options(OperationKind.IMPORT, max_file_size_bytes=settings.import_max_file_size_bytes)


@router.get("/{operation_id}", response_model=OperationResponse)
async def get_import_status(
    operation_id: uuid.UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    services: Annotated[TransferServices, Depends(get_transfer_services)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> OperationResponse:
    """Get import status and per-record outcome."""
    operation = await get_owned_operation(services, operation_id, current_user, OperationKind.IMPORT)
    return operation_to_response(operation, settings)
