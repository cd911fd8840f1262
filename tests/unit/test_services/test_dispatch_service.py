"""Tests for the job dispatcher and submission validation."""

import asyncio
import gc
import uuid
from collections.abc import Coroutine
from typing import Any

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from finance_transfer.lib.jobs import (
    DataType,
    DuplicateStrategy,
    InvalidRequestError,
    OperationKind,
    OperationStatus,
    TooManyConcurrentOperationsError,
    TransferFormat,
)
from finance_transfer.models.operation import Operation
from finance_transfer.services.dispatch_service import (
    JobDispatcher,
    check_combination,
    parse_import_options,
    parse_kind,
)
from finance_transfer.services.operation_service import OperationRegistry


class RecordingRunner:
    """Task runner that records submissions without running them."""

    def __init__(self) -> None:
        self.job_ids: list[str | None] = []

    def submit_task(self, coro: Coroutine[Any, Any, Any], job_id: str | None = None) -> str:
        coro.close()
        self.job_ids.append(job_id)
        return job_id or ""


async def _noop_worker(operation_id: uuid.UUID, payload: bytes | None) -> None:
    return None


@pytest.fixture
def registry(session_factory: async_sessionmaker[AsyncSession]) -> OperationRegistry:
    return OperationRegistry(session_factory)


@pytest.fixture
def recording_runner() -> RecordingRunner:
    return RecordingRunner()


@pytest.fixture
def dispatcher(registry: OperationRegistry, recording_runner: RecordingRunner) -> JobDispatcher:
    return JobDispatcher(
        registry,
        recording_runner,  # type: ignore[arg-type]
        _noop_worker,
        max_concurrent=2,
        max_payload_bytes=64,
    )


async def _count_operations(session_factory: async_sessionmaker[AsyncSession]) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count(Operation.id))) or 0


class TestCheckCombination:
    def test_export_all_to_pdf(self) -> None:
        assert check_combination(OperationKind.EXPORT, "all", "pdf") == (DataType.ALL, TransferFormat.PDF)

    @pytest.mark.parametrize(("data_type", "fmt"), [("all", "csv"), ("transactions", "pdf")])
    def test_export_only_values_rejected_for_import(self, data_type: str, fmt: str) -> None:
        with pytest.raises(InvalidRequestError, match="not supported"):
            check_combination(OperationKind.IMPORT, data_type, fmt)

    def test_unknown_format(self) -> None:
        with pytest.raises(InvalidRequestError, match="Unknown format"):
            check_combination(OperationKind.EXPORT, "transactions", "xml")

    def test_unknown_data_type(self) -> None:
        with pytest.raises(InvalidRequestError, match="Unknown data type"):
            check_combination(OperationKind.EXPORT, "invoices", "csv")

    def test_unknown_kind(self) -> None:
        with pytest.raises(InvalidRequestError, match="Unknown operation kind"):
            parse_kind("sync")


class TestParseImportOptions:
    def test_defaults(self) -> None:
        options = parse_import_options(None)
        assert options.duplicate_strategy is DuplicateStrategy.SKIP
        assert options.field_mapping == {}

    def test_unknown_key_rejected(self) -> None:
        with pytest.raises(InvalidRequestError, match="Invalid import options"):
            parse_import_options({"dry_run": True})

    def test_inverted_bounds_rejected(self) -> None:
        with pytest.raises(InvalidRequestError, match="min_amount"):
            parse_import_options({"min_amount": "10", "max_amount": "1"})


class TestSubmit:
    async def test_export_creates_pending_operation(
        self,
        dispatcher: JobDispatcher,
        recording_runner: RecordingRunner,
    ) -> None:
        owner = uuid.uuid4()
        operation = await dispatcher.submit(
            owner,
            "export",
            "transactions",
            "csv",
            {"date_range": {"start": "2024-01-01", "end": "2024-01-31"}},
        )
        assert operation.status == OperationStatus.PENDING
        assert operation.kind == OperationKind.EXPORT
        assert operation.filters["date_range"]["start"] == "2024-01-01"
        assert recording_runner.job_ids == [str(operation.id)]

    async def test_import_stores_normalized_options(self, dispatcher: JobDispatcher) -> None:
        operation = await dispatcher.submit(
            uuid.uuid4(),
            OperationKind.IMPORT,
            DataType.GOALS,
            TransferFormat.JSON,
            {"duplicate_strategy": "update"},
            payload=b"[]",
            file_name="goals.json",
        )
        assert operation.filters == {"duplicate_strategy": "update", "field_mapping": {}}
        assert operation.file_name == "goals.json"

    async def test_invalid_request_creates_nothing(
        self,
        dispatcher: JobDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
        recording_runner: RecordingRunner,
    ) -> None:
        with pytest.raises(InvalidRequestError):
            await dispatcher.submit(uuid.uuid4(), "import", "all", "csv", payload=b"x")
        with pytest.raises(InvalidRequestError, match="empty"):
            await dispatcher.submit(uuid.uuid4(), "import", "transactions", "csv", payload=b"")
        with pytest.raises(InvalidRequestError, match="maximum size"):
            await dispatcher.submit(uuid.uuid4(), "import", "transactions", "csv", payload=b"x" * 65)
        with pytest.raises(InvalidRequestError, match="payload"):
            await dispatcher.submit(uuid.uuid4(), "export", "transactions", "csv", payload=b"x")
        assert await _count_operations(session_factory) == 0
        assert recording_runner.job_ids == []

    async def test_concurrency_limit_per_owner_and_kind(
        self,
        dispatcher: JobDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        owner = uuid.uuid4()
        await dispatcher.submit(owner, "export", "transactions", "csv")
        await dispatcher.submit(owner, "export", "budgets", "json")
        with pytest.raises(TooManyConcurrentOperationsError) as exc_info:
            await dispatcher.submit(owner, "export", "goals", "csv")
        assert exc_info.value.code == "too_many_concurrent_operations"
        assert await _count_operations(session_factory) == 2

        # Other kinds and other owners are counted separately
        await dispatcher.submit(owner, "import", "transactions", "csv", payload=b"a,b\n")
        await dispatcher.submit(uuid.uuid4(), "export", "transactions", "csv")
        assert await _count_operations(session_factory) == 4

    async def test_concurrent_submissions_respect_limit(
        self,
        dispatcher: JobDispatcher,
        session_factory: async_sessionmaker[AsyncSession],
    ) -> None:
        owner = uuid.uuid4()
        outcomes = await asyncio.gather(
            *(dispatcher.submit(owner, "export", "transactions", "csv") for _ in range(4)),
            return_exceptions=True,
        )
        rejected = [o for o in outcomes if isinstance(o, TooManyConcurrentOperationsError)]
        assert len(rejected) == 2
        assert await _count_operations(session_factory) == 2

    async def test_finished_operations_free_a_slot(
        self,
        dispatcher: JobDispatcher,
        registry: OperationRegistry,
    ) -> None:
        owner = uuid.uuid4()
        first = await dispatcher.submit(owner, "export", "transactions", "csv")
        await dispatcher.submit(owner, "export", "transactions", "csv")
        await registry.finish(first.id, OperationStatus.CANCELLED, {"cancelled": True})
        third = await dispatcher.submit(owner, "export", "transactions", "csv")
        assert third.status == OperationStatus.PENDING

    async def test_owner_locks_are_not_retained(self, dispatcher: JobDispatcher) -> None:
        for _ in range(3):
            await dispatcher.submit(uuid.uuid4(), "export", "transactions", "csv")
        owner = uuid.uuid4()
        await asyncio.gather(
            *(dispatcher.submit(owner, "export", "transactions", "csv") for _ in range(3)),
            return_exceptions=True,
        )
        gc.collect()
        assert len(dispatcher._owner_locks) == 0
