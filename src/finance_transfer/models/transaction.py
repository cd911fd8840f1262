"""Transaction model — a single income, expense, or transfer entry."""

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from finance_transfer.models.base import Base, OwnedMixin, TimestampMixin, UUIDMixin


class Transaction(Base, UUIDMixin, OwnedMixin, TimestampMixin):
    """A money movement owned by one user."""

    __tablename__ = "transactions"

    date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    payee: Mapped[str | None] = mapped_column(String(255), nullable=True)
    payment_method: Mapped[str] = mapped_column(String(30), nullable=False, default="cash")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    reference_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    __table_args__ = (Index("ix_transactions_owner_date", "owner_id", "date"),)
