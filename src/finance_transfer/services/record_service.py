"""Record access service — batched reads for exports and batched writes for imports.

Reads use keyset pagination on ``(sort column, id)`` so each batch runs in
its own short session without holding a cursor open. Writes commit one
batch per transaction; a batch that fails at the database is retried
record by record so one bad record cannot sink its neighbours.
"""

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from loguru import logger
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from finance_transfer.lib.jobs import DataType, DuplicateStrategy, RecordError
from finance_transfer.lib.records import get_schema
from finance_transfer.models.budget import Budget
from finance_transfer.models.category import Category
from finance_transfer.models.goal import Goal
from finance_transfer.models.transaction import Transaction

MODELS: dict[DataType, type] = {
    DataType.TRANSACTIONS: Transaction,
    DataType.BUDGETS: Budget,
    DataType.GOALS: Goal,
    DataType.CATEGORIES: Category,
}

_SORT_COLUMNS: dict[DataType, str] = {
    DataType.TRANSACTIONS: "date",
    DataType.BUDGETS: "start_date",
    DataType.GOALS: "target_date",
    DataType.CATEGORIES: "name",
}

# Text key fields compared case-insensitively when matching duplicates
_CASE_INSENSITIVE_KEYS = frozenset({"name", "description"})

BatchCursor = tuple[Any, uuid.UUID]


@dataclass
class BatchOutcome:
    """Counts and record errors for one committed import batch."""

    created: int = 0
    updated: int = 0
    skipped: int = 0
    errors: list[RecordError] = field(default_factory=list)

    def merge(self, other: "BatchOutcome") -> None:
        self.created += other.created
        self.updated += other.updated
        self.skipped += other.skipped
        self.errors.extend(other.errors)


def _model_for(data_type: DataType | str) -> type:
    return MODELS[DataType(data_type)]


def _parse_date(value: Any) -> date | None:
    if value is None or isinstance(value, date):
        return value
    return date.fromisoformat(str(value))


def _apply_filters(stmt: Any, data_type: DataType, filters: dict[str, Any] | None) -> Any:
    """Apply the export date range.

    Transactions match on their date; budgets on overlap of their period
    with the range. Other data types ignore the range.
    """
    date_range = (filters or {}).get("date_range") or {}
    start = _parse_date(date_range.get("start"))
    end = _parse_date(date_range.get("end"))
    if data_type is DataType.TRANSACTIONS:
        if start is not None:
            stmt = stmt.where(Transaction.date >= start)
        if end is not None:
            stmt = stmt.where(Transaction.date <= end)
    elif data_type is DataType.BUDGETS:
        if start is not None:
            stmt = stmt.where(Budget.end_date >= start)
        if end is not None:
            stmt = stmt.where(Budget.start_date <= end)
    return stmt


async def count_records(
    session: AsyncSession,
    owner_id: uuid.UUID,
    data_type: DataType | str,
    filters: dict[str, Any] | None = None,
) -> int:
    """Count the owner's records of one concrete type that an export would include."""
    data_type = DataType(data_type)
    model = _model_for(data_type)
    stmt = select(func.count(model.id)).where(model.owner_id == owner_id)
    stmt = _apply_filters(stmt, data_type, filters)
    return await session.scalar(stmt) or 0


def to_record(instance: Any, data_type: DataType | str) -> dict[str, Any]:
    """Canonical interchange record for an ORM instance."""
    schema = get_schema(data_type)
    return {name: getattr(instance, name) for name in schema.names}


async def fetch_batch(
    session: AsyncSession,
    owner_id: uuid.UUID,
    data_type: DataType | str,
    *,
    filters: dict[str, Any] | None = None,
    after: BatchCursor | None = None,
    limit: int = 200,
) -> tuple[list[dict[str, Any]], BatchCursor | None]:
    """Read the next batch of records after ``after``.

    Args:
        session: Database session.
        owner_id: Owner whose records to read.
        data_type: Concrete data type.
        filters: Export filters (``date_range``).
        after: Cursor returned by the previous call; ``None`` for the first batch.
        limit: Maximum records to return.

    Returns:
        The records and the cursor for the next call (``None`` when empty).
    """
    data_type = DataType(data_type)
    model = _model_for(data_type)
    sort_column = getattr(model, _SORT_COLUMNS[data_type])

    stmt = select(model).where(model.owner_id == owner_id)
    stmt = _apply_filters(stmt, data_type, filters)
    if after is not None:
        last_value, last_id = after
        stmt = stmt.where(
            or_(
                sort_column > last_value,
                and_(sort_column == last_value, model.id > last_id),
            )
        )
    stmt = stmt.order_by(sort_column, model.id).limit(limit)

    rows = list((await session.execute(stmt)).scalars().all())
    if not rows:
        return [], None
    last = rows[-1]
    cursor = (getattr(last, _SORT_COLUMNS[data_type]), last.id)
    return [to_record(row, data_type) for row in rows], cursor


def _key_condition(model: type, name: str, value: Any) -> Any:
    column = getattr(model, name)
    if value is None:
        return column.is_(None)
    if name in _CASE_INSENSITIVE_KEYS and isinstance(value, str):
        return func.lower(column) == value.lower()
    return column == value


async def find_duplicate(
    session: AsyncSession,
    owner_id: uuid.UUID,
    data_type: DataType | str,
    record: dict[str, Any],
) -> Any | None:
    """Existing record matching ``record`` on the data type's duplicate key."""
    data_type = DataType(data_type)
    model = _model_for(data_type)
    schema = get_schema(data_type)
    conditions = [model.owner_id == owner_id]
    conditions.extend(_key_condition(model, name, record.get(name)) for name in schema.duplicate_key)
    result = await session.execute(select(model).where(*conditions).order_by(model.id).limit(1))
    return result.scalar_one_or_none()


async def _apply_record(
    session: AsyncSession,
    owner_id: uuid.UUID,
    data_type: DataType,
    record: dict[str, Any],
    strategy: DuplicateStrategy,
    outcome: BatchOutcome,
) -> None:
    model = _model_for(data_type)
    if strategy is not DuplicateStrategy.CREATE:
        existing = await find_duplicate(session, owner_id, data_type, record)
        if existing is not None:
            if strategy is DuplicateStrategy.SKIP:
                outcome.skipped += 1
                return
            for name, value in record.items():
                setattr(existing, name, value)
            outcome.updated += 1
            return
    session.add(model(owner_id=owner_id, **record))
    outcome.created += 1


async def commit_batch(
    session: AsyncSession,
    owner_id: uuid.UUID,
    data_type: DataType | str,
    records: Sequence[tuple[int, dict[str, Any]]],
    strategy: DuplicateStrategy = DuplicateStrategy.SKIP,
) -> BatchOutcome:
    """Persist one batch of validated records.

    Args:
        session: Database session with no pending work.
        owner_id: Owner of the imported records.
        data_type: Concrete data type.
        records: ``(index, record)`` pairs; ``index`` is the record's
            1-based position in the import.
        strategy: What to do with records matching an existing one.

    Returns:
        Counts for the batch plus a ``RecordError`` for every record the
        database refused.
    """
    data_type = DataType(data_type)
    strategy = DuplicateStrategy(strategy)
    outcome = BatchOutcome()
    try:
        for _index, record in records:
            await _apply_record(session, owner_id, data_type, record, strategy, outcome)
        await session.commit()
        return outcome
    except SQLAlchemyError:
        await session.rollback()
        logger.warning(f"Batch of {len(records)} {data_type} record(s) failed; retrying one at a time")

    outcome = BatchOutcome()
    for index, record in records:
        single = BatchOutcome()
        try:
            await _apply_record(session, owner_id, data_type, record, strategy, single)
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            reason = str(getattr(exc, "orig", None) or exc).splitlines()[0]
            single = BatchOutcome(errors=[RecordError(index, f"could not be saved: {reason}")])
        outcome.merge(single)
    return outcome
