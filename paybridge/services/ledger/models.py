"""Ledger database models.

One row per (shop scope, order, payment attempt). Absent scope/attempt values
are stored as empty strings so the unique constraint also holds for them.
"""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.common.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Payment(Base):
    """Authoritative forward-only payment record."""

    __tablename__ = "payments"
    __table_args__ = (
        UniqueConstraint("shop_scope", "order_id", "payment_attempt_id", name="ux_payments_shop_order_attempt"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    shop_scope: Mapped[str] = mapped_column(String(191), nullable=False, default="", index=True)
    order_id: Mapped[str] = mapped_column(String(191), nullable=False, index=True)
    payment_attempt_id: Mapped[str] = mapped_column(String(191), nullable=False, default="", index=True)
    customer_id: Mapped[str | None] = mapped_column(String(191), nullable=True)
    # Decimal-safe major-unit string, e.g. "10.00".
    amount: Mapped[str | None] = mapped_column(String(32), nullable=True)
    currency: Mapped[str | None] = mapped_column(String(8), nullable=True)
    status: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    gateway_txn_id: Mapped[str | None] = mapped_column(String(191), nullable=True)
    status_history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    raw_notify: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    state_version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
