from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.common.db import Base
from paybridge.services.ledger.models import utcnow


class WebhookLog(Base):
    """Raw inbound payloads kept for diagnostics; never read by the ledger."""

    __tablename__ = "webhook_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    topic: Mapped[str] = mapped_column(String(191), nullable=False, index=True)
    idempotency_key: Mapped[str | None] = mapped_column(String(191), nullable=True)
    headers: Mapped[str | None] = mapped_column(Text, nullable=True)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
