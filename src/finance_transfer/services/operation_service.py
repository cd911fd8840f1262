"""Operation registry — durable storage and lifecycle of transfer operations.

Every mutation goes through a per-operation ``asyncio.Lock`` and a
conditional ``UPDATE ... WHERE status IN (...)``, so concurrent writers in
the same process are serialized and writers in other processes cannot
push an operation through an illegal transition.
"""

import asyncio
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from loguru import logger
from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_transfer.core.logging import emit_event
from finance_transfer.lib.jobs import (
    IN_FLIGHT_STATUSES,
    IllegalTransitionError,
    OperationKind,
    OperationNotFoundError,
    OperationStatus,
    check_transition,
    sources_for,
)
from finance_transfer.models.base import utcnow
from finance_transfer.models.operation import Operation


class _CancelPendingError(Exception):
    """The cancel flag was set before a conditional completion."""


@dataclass(frozen=True)
class OperationPage:
    """One page of an owner's operations, bounded by a snapshot time."""

    items: list[Operation]
    total: int
    as_of: datetime


class OperationRegistry:
    """Create, read, and transition operations.

    Args:
        session_factory: Factory for short-lived sessions; every call opens
            and closes its own session.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory
        self._locks: dict[uuid.UUID, asyncio.Lock] = {}

    def _lock(self, operation_id: uuid.UUID) -> asyncio.Lock:
        lock = self._locks.get(operation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[operation_id] = lock
        return lock

    async def create(
        self,
        *,
        owner_id: uuid.UUID,
        kind: OperationKind,
        data_type: str,
        fmt: str,
        filters: dict[str, Any] | None = None,
        file_name: str | None = None,
        session: AsyncSession | None = None,
    ) -> Operation:
        """Insert a new pending operation.

        Args:
            owner_id: Submitting user.
            kind: Export or import.
            data_type: Data type the operation covers.
            fmt: Interchange format.
            filters: Export filters or import options, stored verbatim.
            file_name: Uploaded file name (imports).
            session: Reuse an open session (the caller commits); a new one
                is opened and committed otherwise.

        Returns:
            The persisted operation.
        """
        operation = Operation(
            id=uuid.uuid4(),
            owner_id=owner_id,
            kind=str(kind),
            data_type=str(data_type),
            format=str(fmt),
            status=OperationStatus.PENDING,
            filters=filters or {},
            file_name=file_name,
            progress_processed=0,
            cancel_requested=False,
            created_at=utcnow(),
        )
        if session is not None:
            session.add(operation)
            await session.flush()
        else:
            async with self._session_factory() as own_session:
                own_session.add(operation)
                await own_session.commit()
        logger.info(f"Created {kind} operation {operation.id} ({data_type}/{fmt}) for user {owner_id}")
        emit_event(
            "operation.created",
            operation_id=str(operation.id),
            kind=str(kind),
            data_type=str(data_type),
            format=str(fmt),
        )
        return operation

    async def find(self, operation_id: uuid.UUID) -> Operation | None:
        async with self._session_factory() as session:
            return await session.get(Operation, operation_id)

    async def get(self, operation_id: uuid.UUID) -> Operation:
        """Fetch an operation by id.

        Raises:
            OperationNotFoundError: If it does not exist.
        """
        operation = await self.find(operation_id)
        if operation is None:
            raise OperationNotFoundError(operation_id)
        return operation

    async def update_status(
        self,
        operation_id: uuid.UUID,
        target: OperationStatus,
        *,
        result: dict[str, Any] | None = None,
    ) -> Operation:
        """Move an operation to ``target``.

        Entering ``running`` stamps ``started_at``; entering a terminal
        status stamps ``finished_at`` and stores ``result`` in the same
        write, so a terminal operation always carries a result.

        Raises:
            OperationNotFoundError: If the operation does not exist.
            IllegalTransitionError: If the transition is not allowed.
        """
        return await self._transition(operation_id, OperationStatus(target), result)

    async def complete(self, operation_id: uuid.UUID, result: dict[str, Any]) -> Operation | None:
        """Enter ``completed`` unless cancellation was requested first.

        The cancel flag is checked under the operation's lock and again in
        the conditional write, so a cancel that ``request_cancel`` reported
        as accepted is never overtaken by completion.

        Returns:
            The completed operation, or None if the cancel flag is set and
            the operation is still running.

        Raises:
            OperationNotFoundError: If the operation does not exist.
            IllegalTransitionError: If the operation is not running.
        """
        try:
            return await self._transition(
                operation_id,
                OperationStatus.COMPLETED,
                result,
                unless_cancel_requested=True,
            )
        except _CancelPendingError:
            return None

    async def _transition(
        self,
        operation_id: uuid.UUID,
        target: OperationStatus,
        result: dict[str, Any] | None,
        *,
        unless_cancel_requested: bool = False,
    ) -> Operation:
        async with self._lock(operation_id), self._session_factory() as session:
            operation = await session.get(Operation, operation_id)
            if operation is None:
                raise OperationNotFoundError(operation_id)
            current = OperationStatus(operation.status)
            check_transition(current, target)
            if unless_cancel_requested and operation.cancel_requested:
                raise _CancelPendingError

            now = utcnow()
            values: dict[str, Any] = {"status": target.value}
            if target is OperationStatus.RUNNING:
                values["started_at"] = now
            if target.is_terminal:
                values["finished_at"] = now
                values["result"] = result if result is not None else {}

            conditions = [
                Operation.id == operation_id,
                Operation.status.in_([s.value for s in sources_for(target)]),
            ]
            if unless_cancel_requested:
                conditions.append(Operation.cancel_requested.is_(False))
            stmt = (
                update(Operation)
                .where(*conditions)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            outcome = await session.execute(stmt)
            if outcome.rowcount == 0:
                await session.rollback()
                await session.refresh(operation)
                if unless_cancel_requested and operation.cancel_requested:
                    raise _CancelPendingError
                raise IllegalTransitionError(current, target)
            await session.commit()
            await session.refresh(operation)

        if target.is_terminal:
            self._locks.pop(operation_id, None)
        logger.info(f"Operation {operation_id}: {current} -> {target}")
        emit_event(
            "operation.status",
            operation_id=str(operation_id),
            from_status=current.value,
            to_status=target.value,
        )
        return operation

    async def finish(self, operation_id: uuid.UUID, status: OperationStatus, result: dict[str, Any]) -> Operation:
        """Enter a terminal status together with its result."""
        status = OperationStatus(status)
        if not status.is_terminal:
            msg = f"finish() requires a terminal status, got {status}"
            raise ValueError(msg)
        return await self.update_status(operation_id, status, result=result)

    async def set_result(self, operation_id: uuid.UUID, result: dict[str, Any]) -> Operation:
        """Replace the result of an already-terminal operation.

        Raises:
            OperationNotFoundError: If the operation does not exist.
            IllegalTransitionError: If the operation is still in flight.
        """
        async with self._lock(operation_id), self._session_factory() as session:
            operation = await session.get(Operation, operation_id)
            if operation is None:
                raise OperationNotFoundError(operation_id)
            status = OperationStatus(operation.status)
            if not status.is_terminal:
                raise IllegalTransitionError(status, status)
            operation.result = result
            await session.commit()
            return operation

    async def append_progress(self, operation_id: uuid.UUID, delta: int) -> None:
        """Advance ``progress_processed`` by ``delta`` while the operation runs."""
        if delta < 0:
            msg = "Progress can only move forward"
            raise ValueError(msg)
        if delta == 0:
            return
        async with self._lock(operation_id), self._session_factory() as session:
            await session.execute(
                update(Operation)
                .where(Operation.id == operation_id, Operation.status == OperationStatus.RUNNING.value)
                .values(progress_processed=Operation.progress_processed + delta)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def set_total(self, operation_id: uuid.UUID, total: int) -> None:
        async with self._lock(operation_id), self._session_factory() as session:
            await session.execute(
                update(Operation)
                .where(Operation.id == operation_id, Operation.status == OperationStatus.RUNNING.value)
                .values(progress_total=total)
                .execution_options(synchronize_session=False)
            )
            await session.commit()

    async def request_cancel(self, operation_id: uuid.UUID) -> bool:
        """Raise the cancel flag on an in-flight operation.

        Returns:
            True if the flag was set, False if the operation is gone or terminal.
        """
        async with self._lock(operation_id), self._session_factory() as session:
            outcome = await session.execute(
                update(Operation)
                .where(
                    Operation.id == operation_id,
                    Operation.status.in_([s.value for s in IN_FLIGHT_STATUSES]),
                )
                .values(cancel_requested=True)
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        flagged = outcome.rowcount > 0
        if flagged:
            emit_event("operation.cancel_requested", operation_id=str(operation_id))
        return flagged

    async def is_cancel_requested(self, operation_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            flag = await session.scalar(select(Operation.cancel_requested).where(Operation.id == operation_id))
        return bool(flag)

    async def list(
        self,
        owner_id: uuid.UUID,
        *,
        kind: OperationKind | None = None,
        page: int = 1,
        page_size: int = 20,
        as_of: datetime | None = None,
    ) -> OperationPage:
        """List an owner's operations, newest first.

        Only operations created at or before ``as_of`` are included, so
        paging with the returned ``as_of`` is stable while new operations
        are being submitted.

        Args:
            owner_id: Owner whose operations to list.
            kind: Optional kind filter.
            page: 1-based page number.
            page_size: Items per page.
            as_of: Snapshot time; defaults to now.

        Returns:
            The page plus the total count and the snapshot time used.
        """
        as_of = as_of or utcnow()
        conditions = [Operation.owner_id == owner_id, Operation.created_at <= as_of]
        if kind is not None:
            conditions.append(Operation.kind == str(kind))

        async with self._session_factory() as session:
            total = await session.scalar(select(func.count(Operation.id)).where(*conditions)) or 0
            result = await session.execute(
                select(Operation)
                .where(*conditions)
                .order_by(Operation.created_at.desc(), Operation.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            items = list(result.scalars().all())
        return OperationPage(items=items, total=total, as_of=as_of)

    async def count_in_flight(
        self,
        owner_id: uuid.UUID,
        kind: OperationKind,
        session: AsyncSession | None = None,
    ) -> int:
        """Number of pending or running operations of ``kind`` for ``owner_id``."""
        stmt = select(func.count(Operation.id)).where(
            Operation.owner_id == owner_id,
            Operation.kind == str(kind),
            Operation.status.in_([s.value for s in IN_FLIGHT_STATUSES]),
        )
        if session is not None:
            return await session.scalar(stmt) or 0
        async with self._session_factory() as own_session:
            return await own_session.scalar(stmt) or 0

    async def fail_interrupted(self) -> int:
        """Fail every in-flight operation left over from a previous process.

        Returns:
            Number of operations marked failed.
        """
        now = utcnow()
        async with self._session_factory() as session:
            ids = list(
                (
                    await session.execute(
                        select(Operation.id).where(Operation.status.in_([s.value for s in IN_FLIGHT_STATUSES]))
                    )
                ).scalars()
            )
            if not ids:
                return 0
            await session.execute(
                update(Operation)
                .where(
                    Operation.id.in_(ids),
                    Operation.status.in_([s.value for s in IN_FLIGHT_STATUSES]),
                )
                .values(
                    status=OperationStatus.FAILED.value,
                    finished_at=now,
                    result={
                        "error": {
                            "code": "interrupted",
                            "message": "Operation was interrupted by a service restart",
                        }
                    },
                )
                .execution_options(synchronize_session=False)
            )
            await session.commit()
        for operation_id in ids:
            emit_event(
                "operation.status",
                operation_id=str(operation_id),
                to_status=OperationStatus.FAILED.value,
                reason="interrupted",
            )
        logger.warning(f"Marked {len(ids)} interrupted operation(s) as failed")
        return len(ids)
