"""Operation model — durable record of one export or import job."""

from datetime import datetime

from sqlalchemy import Boolean, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from finance_transfer.models.base import Base, JSONType, OwnedMixin, UTCDateTime, UUIDMixin, utcnow


class Operation(Base, UUIDMixin, OwnedMixin):
    """Tracks an export or import job through its lifecycle.

    Status and progress are mutated only by the worker executing the job;
    ``cancel_requested`` only by a cancellation request.
    """

    __tablename__ = "operations"

    kind: Mapped[str] = mapped_column(String(10), nullable=False)
    data_type: Mapped[str] = mapped_column(String(20), nullable=False)
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    filters: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    progress_processed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_total: Mapped[int | None] = mapped_column(Integer, nullable=True)
    result: Mapped[dict | None] = mapped_column(JSONType, nullable=True)
    cancel_requested: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    finished_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    __table_args__ = (
        Index("ix_operations_owner_created", "owner_id", "created_at"),
        Index("ix_operations_owner_kind_status", "owner_id", "kind", "status"),
    )

    @property
    def progress(self) -> dict[str, int | None]:
        return {"processed": self.progress_processed, "total": self.progress_total}

    def __repr__(self) -> str:
        return f"<Operation {self.id} {self.kind}/{self.data_type}/{self.format} {self.status}>"
