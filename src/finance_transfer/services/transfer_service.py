"""Wiring of the transfer subsystem: one registry, dispatcher and worker per process.

The registry and dispatcher hold the in-process locks that serialize
writes, so every caller in a process must share the same instances.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_transfer.core.background import BackgroundTaskRunner, task_runner
from finance_transfer.core.config import Settings
from finance_transfer.services.artifact_service import ArtifactService, build_artifact_service
from finance_transfer.services.dispatch_service import JobDispatcher
from finance_transfer.services.operation_service import OperationRegistry
from finance_transfer.services.transfer_worker import TransferWorker


@dataclass
class TransferServices:
    settings: Settings
    registry: OperationRegistry
    artifacts: ArtifactService
    worker: TransferWorker
    dispatcher: JobDispatcher


def build_transfer_services(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    runner: BackgroundTaskRunner = task_runner,
) -> TransferServices:
    """Assemble the transfer services from settings."""
    registry = OperationRegistry(session_factory)
    artifacts = build_artifact_service(settings, session_factory)
    worker = TransferWorker(
        session_factory,
        registry,
        artifacts,
        batch_size=settings.transfer_batch_size,
        max_reported_errors=settings.import_max_reported_errors,
    )
    dispatcher = JobDispatcher(
        registry,
        runner,
        worker.run,
        max_concurrent=settings.max_concurrent_operations,
        max_payload_bytes=settings.import_max_file_size_bytes,
    )
    return TransferServices(
        settings=settings,
        registry=registry,
        artifacts=artifacts,
        worker=worker,
        dispatcher=dispatcher,
    )


_services: TransferServices | None = None


def get_transfer_services() -> TransferServices:
    """Process-wide transfer services, built on first use."""
    global _services  # noqa: PLW0603
    if _services is None:
        from finance_transfer.core.config import get_settings
        from finance_transfer.core.database import get_session_factory

        _services = build_transfer_services(get_settings(), get_session_factory())
    return _services


def reset_transfer_services() -> None:
    """Forget the process-wide services (engine disposal, tests)."""
    global _services  # noqa: PLW0603
    _services = None
