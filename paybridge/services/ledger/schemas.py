"""API representation of ledger rows."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, field_validator


class HistoryEntry(BaseModel):
    ts: str
    status: str
    source: str


class PaymentState(BaseModel):
    """Ledger row as returned by callbacks and the read endpoint."""

    model_config = ConfigDict(from_attributes=True)

    order_id: str
    shop_scope: str | None = None
    payment_attempt_id: str | None = None
    customer_id: str | None = None
    amount: str | None = None
    currency: str | None = None
    status: str
    gateway_txn_id: str | None = None
    status_history: list[HistoryEntry] = []
    created_at: datetime
    updated_at: datetime

    @field_validator("shop_scope", "payment_attempt_id", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        return value or None
