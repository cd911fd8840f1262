"""Artifact service — ownership-checked access to export files and retention."""

import asyncio
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import datetime, timedelta

from loguru import logger
from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_transfer.core.config import Settings
from finance_transfer.core.logging import emit_event
from finance_transfer.lib.artifacts import LocalArtifactStorage, StagedFile
from finance_transfer.lib.codec import content_type_for, extension_for
from finance_transfer.lib.jobs import (
    TERMINAL_STATUSES,
    AccessOutcome,
    AccessResult,
    OperationKind,
    OperationStatus,
)
from finance_transfer.models.artifact import Artifact
from finance_transfer.models.base import utcnow
from finance_transfer.models.operation import Operation


@dataclass(frozen=True)
class ArtifactDownload:
    """An opened artifact: metadata plus a lazy byte stream."""

    artifact: Artifact
    chunks: AsyncIterator[bytes]


@dataclass(frozen=True)
class SweepResult:
    artifacts_deleted: int
    operations_deleted: int


class ArtifactService:
    """Persists export artifacts and serves them back to their owners.

    Args:
        session_factory: Factory for short-lived sessions.
        storage: File storage backend.
        retention_hours: How long a new artifact stays downloadable.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        storage: LocalArtifactStorage,
        retention_hours: int,
    ) -> None:
        self._session_factory = session_factory
        self.storage = storage
        self.retention_hours = retention_hours

    async def register(
        self,
        staged: StagedFile,
        *,
        owner_id: uuid.UUID,
        operation_id: uuid.UUID,
        fmt: str,
        file_name: str,
        record_count: int,
    ) -> Artifact:
        """Commit a staged export file and record it against its operation.

        The file is deleted again if the row cannot be written.
        """
        stored_path = await staged.commit()
        now = utcnow()
        artifact = Artifact(
            id=uuid.uuid4(),
            owner_id=owner_id,
            operation_id=operation_id,
            format=fmt,
            file_name=file_name,
            stored_path=stored_path,
            content_type=content_type_for(fmt),
            size_bytes=staged.size_bytes,
            record_count=record_count,
            download_count=0,
            created_at=now,
            expires_at=now + timedelta(hours=self.retention_hours),
        )
        try:
            async with self._session_factory() as session:
                session.add(artifact)
                await session.commit()
        except BaseException:
            await self.storage.delete(stored_path)
            raise
        logger.info(f"Stored artifact {artifact.id} for operation {operation_id} ({artifact.size_bytes} bytes)")
        return artifact

    async def store(
        self,
        owner_id: uuid.UUID,
        fmt: str,
        content: bytes,
        *,
        operation_id: uuid.UUID,
        file_name: str,
        record_count: int = 0,
    ) -> uuid.UUID:
        """Store a complete artifact in one call.

        Returns:
            The new artifact id.
        """
        staged = self.storage.stage(extension_for(fmt))
        try:
            await staged.write(content)
        except BaseException:
            await staged.discard()
            raise
        artifact = await self.register(
            staged,
            owner_id=owner_id,
            operation_id=operation_id,
            fmt=fmt,
            file_name=file_name,
            record_count=record_count,
        )
        return artifact.id

    async def open(self, artifact_id: uuid.UUID, requester_id: uuid.UUID) -> AccessResult[ArtifactDownload]:
        """Open an artifact for download.

        Expired artifacts and artifacts whose file has gone missing are
        reported as not found. A successful open counts as a download.
        """
        async with self._session_factory() as session:
            artifact = await session.get(Artifact, artifact_id)
            return await self._open(session, artifact, requester_id)

    async def open_for_operation(
        self,
        operation_id: uuid.UUID,
        requester_id: uuid.UUID,
    ) -> AccessResult[ArtifactDownload]:
        """Open the artifact of a completed export operation."""
        async with self._session_factory() as session:
            operation = await session.get(Operation, operation_id)
            if operation is None or operation.kind != OperationKind.EXPORT:
                return AccessResult(AccessOutcome.NOT_FOUND)
            if operation.owner_id != requester_id:
                return AccessResult(AccessOutcome.FORBIDDEN)
            if operation.status != OperationStatus.COMPLETED:
                return AccessResult(AccessOutcome.NOT_FOUND)
            artifact = await session.scalar(select(Artifact).where(Artifact.operation_id == operation_id))
            return await self._open(session, artifact, requester_id)

    async def _open(
        self,
        session: AsyncSession,
        artifact: Artifact | None,
        requester_id: uuid.UUID,
    ) -> AccessResult[ArtifactDownload]:
        if artifact is None:
            return AccessResult(AccessOutcome.NOT_FOUND)
        if artifact.owner_id != requester_id:
            return AccessResult(AccessOutcome.FORBIDDEN)
        if artifact.expires_at <= utcnow() or not self.storage.exists(artifact.stored_path):
            return AccessResult(AccessOutcome.NOT_FOUND)

        now = utcnow()
        await session.execute(
            update(Artifact)
            .where(Artifact.id == artifact.id)
            .values(download_count=Artifact.download_count + 1, last_downloaded_at=now)
            .execution_options(synchronize_session=False)
        )
        await session.commit()
        await session.refresh(artifact)
        emit_event(
            "artifact.downloaded",
            operation_id=str(artifact.operation_id),
            artifact_id=str(artifact.id),
            download_count=artifact.download_count,
        )
        return AccessResult(AccessOutcome.OK, ArtifactDownload(artifact, self.storage.stream(artifact.stored_path)))

    async def delete(self, artifact_id: uuid.UUID) -> bool:
        """Delete an artifact row and its file.

        Returns:
            True if the artifact existed.
        """
        async with self._session_factory() as session:
            artifact = await session.get(Artifact, artifact_id)
            if artifact is None:
                return False
            stored_path = artifact.stored_path
            await session.delete(artifact)
            await session.commit()
        await self.storage.delete(stored_path)
        return True

    async def sweep(
        self,
        *,
        now: datetime | None = None,
        operation_retention_days: int | None = None,
    ) -> SweepResult:
        """Delete expired artifacts and, optionally, old terminal operations.

        Args:
            now: Reference time; defaults to the current time.
            operation_retention_days: When set, terminal operations that
                finished before ``now - days`` are deleted with their artifacts.

        Returns:
            How many artifacts and operations were removed.
        """
        now = now or utcnow()
        async with self._session_factory() as session:
            expired_stmt = select(Artifact.id, Artifact.operation_id, Artifact.stored_path).where(
                Artifact.expires_at <= now
            )
            expired = list((await session.execute(expired_stmt)).all())

            old_operation_ids: list[uuid.UUID] = []
            if operation_retention_days is not None:
                cutoff = now - timedelta(days=operation_retention_days)
                old_operation_ids = list(
                    (
                        await session.execute(
                            select(Operation.id).where(
                                Operation.status.in_([s.value for s in TERMINAL_STATUSES]),
                                Operation.finished_at < cutoff,
                            )
                        )
                    ).scalars()
                )
                if old_operation_ids:
                    expired.extend(
                        (
                            await session.execute(
                                select(Artifact.id, Artifact.operation_id, Artifact.stored_path).where(
                                    Artifact.operation_id.in_(old_operation_ids),
                                    Artifact.expires_at > now,
                                )
                            )
                        ).all()
                    )

            artifact_ids = [row.id for row in expired]
            if artifact_ids:
                await session.execute(delete(Artifact).where(Artifact.id.in_(artifact_ids)))
            if old_operation_ids:
                await session.execute(delete(Operation).where(Operation.id.in_(old_operation_ids)))
            await session.commit()

        for row in expired:
            await self.storage.delete(row.stored_path)
            emit_event("artifact.expired", operation_id=str(row.operation_id), artifact_id=str(row.id))
        for operation_id in old_operation_ids:
            emit_event("operation.deleted", operation_id=str(operation_id))

        if artifact_ids or old_operation_ids:
            logger.info(
                f"Retention sweep removed {len(artifact_ids)} artifact(s) and {len(old_operation_ids)} operation(s)"
            )
        return SweepResult(artifacts_deleted=len(artifact_ids), operations_deleted=len(old_operation_ids))


def build_artifact_service(settings: Settings, session_factory: async_sessionmaker[AsyncSession]) -> ArtifactService:
    return ArtifactService(
        session_factory,
        LocalArtifactStorage(settings.export_dir),
        settings.artifact_retention_hours,
    )


async def retention_sweep_loop(interval: int) -> None:
    """Background asyncio loop that deletes expired artifacts.

    Args:
        interval: Seconds between sweeps.
    """
    from finance_transfer.core.config import get_settings
    from finance_transfer.core.database import get_session_factory

    logger.info(f"Retention sweep loop started (interval={interval}s)")

    while True:
        try:
            await asyncio.sleep(interval)
            settings = get_settings()
            service = build_artifact_service(settings, get_session_factory())
            await service.sweep(operation_retention_days=settings.operation_retention_days)
        except asyncio.CancelledError:
            logger.info("Retention sweep loop cancelled")
            break
        except Exception:
            logger.exception("Retention sweep loop error")
