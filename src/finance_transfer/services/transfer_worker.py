"""Transfer worker — executes one export or import operation end to end.

The worker is the only writer of an operation's status, progress and
result. It observes the cancel flag at batch boundaries and always leaves
the operation in a terminal status, whatever happens inside.
"""

import asyncio
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_transfer.core.logging import emit_event
from finance_transfer.lib.codec import get_encoder
from finance_transfer.lib.jobs import (
    DataType,
    IllegalTransitionError,
    OperationKind,
    OperationNotFoundError,
    OperationStatus,
    RecordError,
    StructuralDecodeError,
)
from finance_transfer.lib.records import get_schema
from finance_transfer.models.operation import Operation
from finance_transfer.schemas.imports import ImportOptions
from finance_transfer.services import record_service
from finance_transfer.services.artifact_service import ArtifactService
from finance_transfer.services.operation_service import OperationRegistry
from finance_transfer.services.record_service import BatchOutcome
from finance_transfer.services.validation_service import screen_records

INTERNAL_ERROR = {"code": "internal_error", "message": "The operation failed due to an internal error"}


@dataclass
class ImportTally:
    """Running counts and capped error list for one import."""

    max_errors: int
    created: int = 0
    updated: int = 0
    skipped: int = 0
    rejected: int = 0
    total_records: int = 0
    errors: list[RecordError] = field(default_factory=list)

    def reject(self, error: RecordError) -> None:
        self.rejected += 1
        if len(self.errors) < self.max_errors:
            self.errors.append(error)

    def merge(self, outcome: BatchOutcome) -> None:
        self.created += outcome.created
        self.updated += outcome.updated
        self.skipped += outcome.skipped
        for error in outcome.errors:
            self.reject(error)

    def to_result(self) -> dict[str, Any]:
        return {
            "created": self.created,
            "updated": self.updated,
            "skipped": self.skipped,
            "rejected": self.rejected,
            "total_records": self.total_records,
            "errors": [e.to_dict() for e in sorted(self.errors, key=lambda e: e.index)],
            "errors_truncated": self.rejected > len(self.errors),
        }


def export_file_name(data_type: str, extension: str, now: datetime | None = None) -> str:
    now = now or datetime.now(UTC)
    return f"{data_type}_export_{now:%Y%m%d_%H%M%S}.{extension}"


class TransferWorker:
    """Runs export and import operations.

    Args:
        session_factory: Factory for the short per-batch sessions.
        registry: Operation registry.
        artifacts: Artifact service for export output.
        batch_size: Records per batch; bounds cancellation latency.
        max_reported_errors: Cap on the error list kept in an import result.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        registry: OperationRegistry,
        artifacts: ArtifactService,
        *,
        batch_size: int = 200,
        max_reported_errors: int = 1000,
    ) -> None:
        self._session_factory = session_factory
        self._registry = registry
        self._artifacts = artifacts
        self._batch_size = batch_size
        self._max_reported_errors = max_reported_errors

    async def run(self, operation_id: uuid.UUID, payload: bytes | None = None) -> None:
        """Execute an operation until it reaches a terminal status.

        Unexpected exceptions are logged with their traceback and stored
        as a redacted ``internal_error``. Task cancellation (process
        shutdown) marks the operation cancelled and propagates.
        """
        try:
            operation = await self._registry.get(operation_id)
            if operation.cancel_requested:
                await self._registry.finish(operation_id, OperationStatus.CANCELLED, {"cancelled": True})
                return
            operation = await self._registry.update_status(operation_id, OperationStatus.RUNNING)
            if operation.kind == OperationKind.EXPORT:
                await self._run_export(operation)
            else:
                await self._run_import(operation, payload)
        except asyncio.CancelledError:
            logger.warning(f"Operation {operation_id} interrupted by shutdown")
            await self._finish_quietly(
                operation_id,
                OperationStatus.CANCELLED,
                {"cancelled": True, "reason": "shutdown"},
            )
            raise
        except Exception:
            logger.exception(f"Operation {operation_id} failed")
            await self._finish_quietly(operation_id, OperationStatus.FAILED, {"error": dict(INTERNAL_ERROR)})

    async def _finish_quietly(self, operation_id: uuid.UUID, status: OperationStatus, result: dict[str, Any]) -> None:
        """Terminal transition from the worker boundary; a concurrent terminal transition wins."""
        try:
            await self._registry.finish(operation_id, status, result)
        except (IllegalTransitionError, OperationNotFoundError) as exc:
            logger.warning(f"Could not mark operation {operation_id} {status}: {exc}")

    async def _cancel_requested(self, operation: Operation) -> bool:
        if await self._registry.is_cancel_requested(operation.id):
            logger.info(f"Operation {operation.id} observed cancellation request")
            return True
        return False

    # -- export -------------------------------------------------------------

    async def _run_export(self, operation: Operation) -> None:
        data_types = DataType(operation.data_type).expand()
        filters = operation.filters or {}

        async with self._session_factory() as session:
            total = 0
            for data_type in data_types:
                total += await record_service.count_records(session, operation.owner_id, data_type, filters)
        await self._registry.set_total(operation.id, total)

        encoder = get_encoder(
            operation.format,
            multi_section=len(data_types) > 1,
            date_range=filters.get("date_range"),
        )
        staged = self._artifacts.storage.stage(encoder.file_extension)
        per_type_counts: dict[str, int] = {}
        errors: list[dict[str, str]] = []
        processed = 0
        try:
            for data_type in data_types:
                encoder.begin_section(get_schema(data_type))
                written = 0
                cursor = None
                try:
                    while True:
                        if await self._cancel_requested(operation):
                            await staged.discard()
                            await self._registry.finish(
                                operation.id,
                                OperationStatus.CANCELLED,
                                {"cancelled": True, "processed": processed},
                            )
                            return
                        async with self._session_factory() as session:
                            records, cursor = await record_service.fetch_batch(
                                session,
                                operation.owner_id,
                                data_type,
                                filters=filters,
                                after=cursor,
                                limit=self._batch_size,
                            )
                        if not records:
                            break
                        written += encoder.write_records(records)
                        await staged.write(encoder.drain())
                        processed += len(records)
                        await self._registry.append_progress(operation.id, len(records))
                        emit_event(
                            "operation.batch",
                            operation_id=str(operation.id),
                            data_type=data_type.value,
                            records=len(records),
                            processed=processed,
                        )
                        if len(records) < self._batch_size:
                            break
                except Exception:
                    if len(data_types) == 1:
                        raise
                    logger.exception(f"Export {operation.id}: exporting {data_type} failed; continuing")
                    errors.append(
                        {"data_type": data_type.value, "reason": f"Could not export {data_type.value} records"},
                    )
                per_type_counts[data_type.value] = written

            await staged.write(encoder.finish())
            if await self._cancel_requested(operation):
                await staged.discard()
                await self._registry.finish(
                    operation.id,
                    OperationStatus.CANCELLED,
                    {"cancelled": True, "processed": processed},
                )
                return
        except BaseException:
            await staged.discard()
            raise

        record_count = sum(per_type_counts.values())
        file_name = export_file_name(operation.data_type, encoder.file_extension)
        artifact = await self._artifacts.register(
            staged,
            owner_id=operation.owner_id,
            operation_id=operation.id,
            fmt=operation.format,
            file_name=file_name,
            record_count=record_count,
        )
        result = {
            "artifact_id": str(artifact.id),
            "file_name": file_name,
            "format": operation.format,
            "size_bytes": artifact.size_bytes,
            "record_count": record_count,
            "per_type_counts": per_type_counts,
            "errors": errors,
        }
        try:
            completed = await self._registry.complete(operation.id, result)
        except BaseException:
            await self._artifacts.delete(artifact.id)
            raise
        if completed is None:
            # Cancelled after the last batch; the finished file is dropped
            await self._artifacts.delete(artifact.id)
            await self._registry.finish(
                operation.id,
                OperationStatus.CANCELLED,
                {"cancelled": True, "processed": processed},
            )
            return
        logger.info(f"Export {operation.id} completed: {record_count} record(s), {artifact.size_bytes} bytes")

    # -- import -------------------------------------------------------------

    async def _run_import(self, operation: Operation, payload: bytes | None) -> None:
        if not payload:
            await self._registry.finish(
                operation.id,
                OperationStatus.FAILED,
                {"error": {"code": "missing_payload", "message": "The import file is no longer available"}},
            )
            return

        options = ImportOptions.model_validate(operation.filters or {})
        data_type = DataType(operation.data_type)
        tally = ImportTally(max_errors=self._max_reported_errors)
        accepted: list[tuple[int, dict[str, Any]]] = []

        # Phase one: decode and validate everything before committing anything
        try:
            for screened in screen_records(payload, data_type, operation.format, options):
                tally.total_records += 1
                if screened.error is not None:
                    tally.reject(screened.error)
                else:
                    accepted.append((screened.index, screened.record))
                if tally.total_records % self._batch_size == 0:
                    if await self._cancel_requested(operation):
                        await self._finish_cancelled_import(operation, tally)
                        return
        except StructuralDecodeError as exc:
            logger.warning(f"Import {operation.id} is not parseable: {exc.message}")
            await self._registry.finish(operation.id, OperationStatus.FAILED, {"error": exc.to_dict()})
            return

        await self._registry.set_total(operation.id, len(accepted))
        logger.info(
            f"Import {operation.id}: {len(accepted)} accepted, {tally.rejected} rejected of {tally.total_records}"
        )

        # Phase two: commit accepted records batch by batch
        for start in range(0, len(accepted), self._batch_size):
            if await self._cancel_requested(operation):
                await self._finish_cancelled_import(operation, tally)
                return
            batch = accepted[start : start + self._batch_size]
            async with self._session_factory() as session:
                outcome = await record_service.commit_batch(
                    session,
                    operation.owner_id,
                    data_type,
                    batch,
                    options.duplicate_strategy,
                )
            tally.merge(outcome)
            await self._registry.append_progress(operation.id, len(batch))
            emit_event(
                "operation.batch",
                operation_id=str(operation.id),
                data_type=data_type.value,
                records=len(batch),
                created=outcome.created,
                updated=outcome.updated,
                skipped=outcome.skipped,
                failed=len(outcome.errors),
            )

        if await self._registry.complete(operation.id, tally.to_result()) is None:
            await self._finish_cancelled_import(operation, tally)
            return
        logger.info(
            f"Import {operation.id} completed: created={tally.created} updated={tally.updated} "
            f"skipped={tally.skipped} rejected={tally.rejected}"
        )

    async def _finish_cancelled_import(self, operation: Operation, tally: ImportTally) -> None:
        await self._registry.finish(operation.id, OperationStatus.CANCELLED, {"cancelled": True, **tally.to_result()})
