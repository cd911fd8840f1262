"""Artifact model — generated export file tied to a completed export operation."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, ForeignKey, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from finance_transfer.models.base import Base, OwnedMixin, UTCDateTime, UUIDMixin, utcnow


class Artifact(Base, UUIDMixin, OwnedMixin):
    """Stored export file plus retention and download bookkeeping.

    The row is removed with its owning operation (``ON DELETE CASCADE``);
    the file on disk is removed by the artifact service.
    """

    __tablename__ = "artifacts"

    operation_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("operations.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    format: Mapped[str] = mapped_column(String(10), nullable=False)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    stored_path: Mapped[str] = mapped_column(String(500), nullable=False)
    content_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size_bytes: Mapped[int] = mapped_column(BigInteger, nullable=False)
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    download_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_downloaded_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
