"""Job dispatcher — validates submissions, creates operations, schedules workers."""

import asyncio
import uuid
import weakref
from collections.abc import Callable, Coroutine
from typing import Any

from loguru import logger
from pydantic import ValidationError

from finance_transfer.core.background import BackgroundTaskRunner
from finance_transfer.lib.jobs import (
    DataType,
    InvalidRequestError,
    OperationKind,
    TooManyConcurrentOperationsError,
    TransferFormat,
    legal_data_types,
    legal_formats,
)
from finance_transfer.models.operation import Operation
from finance_transfer.schemas.imports import ImportOptions
from finance_transfer.services.operation_service import OperationRegistry

WorkerFactory = Callable[[uuid.UUID, bytes | None], Coroutine[Any, Any, None]]


def parse_kind(kind: OperationKind | str) -> OperationKind:
    try:
        return OperationKind(kind)
    except ValueError as exc:
        msg = f"Unknown operation kind: {kind}"
        raise InvalidRequestError(msg) from exc


def check_combination(
    kind: OperationKind,
    data_type: DataType | str,
    fmt: TransferFormat | str,
) -> tuple[DataType, TransferFormat]:
    """Validate ``data_type`` and ``fmt`` for ``kind``.

    Raises:
        InvalidRequestError: If either value is unknown or not allowed for the kind.
    """
    try:
        fmt = TransferFormat(fmt)
    except ValueError as exc:
        msg = f"Unknown format: {fmt}"
        raise InvalidRequestError(msg) from exc
    if fmt not in legal_formats(kind):
        msg = f"Format '{fmt}' is not supported for {kind}"
        raise InvalidRequestError(msg)

    try:
        data_type = DataType(data_type)
    except ValueError as exc:
        msg = f"Unknown data type: {data_type}"
        raise InvalidRequestError(msg) from exc
    if data_type not in legal_data_types(kind):
        msg = f"Data type '{data_type}' is not supported for {kind}"
        raise InvalidRequestError(msg)
    return data_type, fmt


def parse_import_options(raw: dict[str, Any] | None) -> ImportOptions:
    """Validate a raw import options payload.

    Raises:
        InvalidRequestError: On unknown keys or invalid values.
    """
    try:
        return ImportOptions.model_validate(raw or {})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'options'}: {err['msg']}" for err in exc.errors()
        )
        msg = f"Invalid import options: {details}"
        raise InvalidRequestError(msg) from exc


class JobDispatcher:
    """Accepts export and import requests and hands them to workers.

    Args:
        registry: Operation registry.
        runner: Background task runner executing the workers.
        worker: Coroutine factory ``worker(operation_id, payload)``.
        max_concurrent: In-flight limit per owner and kind.
        max_payload_bytes: Upload size cap for imports.
    """

    def __init__(
        self,
        registry: OperationRegistry,
        runner: BackgroundTaskRunner,
        worker: WorkerFactory,
        *,
        max_concurrent: int,
        max_payload_bytes: int,
    ) -> None:
        self._registry = registry
        self._runner = runner
        self._worker = worker
        self._max_concurrent = max_concurrent
        self._max_payload_bytes = max_payload_bytes
        # Serializes the count-then-insert check per owner and kind; a lock
        # lives only while a submission holds or awaits it
        self._owner_locks: weakref.WeakValueDictionary[tuple[uuid.UUID, OperationKind], asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _owner_lock(self, owner_id: uuid.UUID, kind: OperationKind) -> asyncio.Lock:
        key = (owner_id, kind)
        lock = self._owner_locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._owner_locks[key] = lock
        return lock

    async def submit(
        self,
        owner_id: uuid.UUID,
        kind: OperationKind | str,
        data_type: DataType | str,
        fmt: TransferFormat | str,
        filters: dict[str, Any] | None = None,
        *,
        payload: bytes | None = None,
        file_name: str | None = None,
    ) -> Operation:
        """Create a pending operation and schedule its worker.

        Args:
            owner_id: Submitting user.
            kind: Export or import.
            data_type: Data type to transfer.
            fmt: Interchange format.
            filters: Export filters, or the raw import options.
            payload: Import file bytes (imports only).
            file_name: Uploaded file name (imports only).

        Returns:
            The created operation, still ``pending``.

        Raises:
            InvalidRequestError: If the request shape is invalid; no operation is created.
            TooManyConcurrentOperationsError: If the owner is at the in-flight limit.
        """
        kind = parse_kind(kind)
        data_type, fmt = check_combination(kind, data_type, fmt)
        filters = dict(filters or {})

        if kind is OperationKind.IMPORT:
            if not payload:
                msg = "Import file is empty"
                raise InvalidRequestError(msg)
            if len(payload) > self._max_payload_bytes:
                msg = f"Import file exceeds the maximum size of {self._max_payload_bytes} bytes"
                raise InvalidRequestError(msg)
            filters = parse_import_options(filters).model_dump(mode="json", exclude_none=True)
        elif payload is not None:
            msg = "Exports do not take a payload"
            raise InvalidRequestError(msg)

        async with self._owner_lock(owner_id, kind):
            in_flight = await self._registry.count_in_flight(owner_id, kind)
            if in_flight >= self._max_concurrent:
                logger.warning(f"User {owner_id} at {kind} limit ({in_flight}/{self._max_concurrent})")
                raise TooManyConcurrentOperationsError(kind, self._max_concurrent)
            operation = await self._registry.create(
                owner_id=owner_id,
                kind=kind,
                data_type=data_type,
                fmt=fmt,
                filters=filters,
                file_name=file_name,
            )

        self._runner.submit_task(self._worker(operation.id, payload), job_id=str(operation.id))
        return operation

