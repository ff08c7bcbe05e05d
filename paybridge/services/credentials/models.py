"""Per-shop install record and gateway credentials."""

from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from paybridge.common.db import Base
from paybridge.services.ledger.models import utcnow


class Shop(Base):
    """OAuth install state. `access_token` never leaves the process."""

    __tablename__ = "shops"

    shop: Mapped[str] = mapped_column(String(191), primary_key=True)
    access_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    scope: Mapped[str | None] = mapped_column(Text, nullable=True)
    installed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    uninstalled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)


class GatewaySettings(Base):
    """Hosted-page merchant credentials keyed by canonical shop host."""

    __tablename__ = "rg_settings"

    shop_domain: Mapped[str] = mapped_column(String(191), primary_key=True)
    merchant_id: Mapped[str | None] = mapped_column(String(191), nullable=True)
    merchant_key: Mapped[str | None] = mapped_column(String(191), nullable=True)
    mode: Mapped[str] = mapped_column(String(16), nullable=False, default="test")
    return_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
