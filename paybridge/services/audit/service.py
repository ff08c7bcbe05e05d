"""Append-only audit log of inbound webhook payloads.

Recording is best-effort: a failed insert is logged and the request that
triggered it carries on.
"""

import json
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from paybridge.common.logging import logger
from paybridge.services.audit.models import WebhookLog

REDACTED_HEADERS = {"cookie", "authorization", "access-token", "x-admin-token"}


def redact_headers(headers: Mapping[str, str]) -> dict[str, str]:
    return {
        key: "[redacted]" if key.lower() in REDACTED_HEADERS else value
        for key, value in headers.items()
    }


def _summary(row: WebhookLog) -> dict:
    return {
        "id": row.id,
        "source": row.source,
        "topic": row.topic,
        "idempotencyKey": row.idempotency_key,
        "receivedAt": row.received_at.isoformat() if row.received_at else None,
    }


class AuditLog:
    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def record(
        self,
        source: str,
        topic: str,
        payload: bytes | str | None,
        headers: Mapping[str, str] | None = None,
        idempotency_key: str | None = None,
    ) -> int | None:
        """Store one inbound payload; returns the row id or None on failure."""

        if isinstance(payload, bytes):
            payload = payload.decode("utf-8", errors="replace")
        try:
            with self.session_factory() as db:
                row = WebhookLog(
                    source=source,
                    topic=topic,
                    idempotency_key=idempotency_key,
                    headers=json.dumps(redact_headers(headers or {}), indent=2),
                    payload=payload,
                )
                db.add(row)
                db.commit()
                return row.id
        except SQLAlchemyError as exc:
            logger.warning("audit log insert failed source=%s topic=%s error=%s", source, topic, exc)
            return None

    def list(self, source: str | None = None, topic: str | None = None, limit: int = 50) -> list[dict]:
        limit = max(1, min(200, limit or 50))
        stmt = select(WebhookLog).order_by(WebhookLog.id.desc()).limit(limit)
        if source:
            stmt = stmt.where(WebhookLog.source == source)
        if topic:
            stmt = stmt.where(WebhookLog.topic == topic)
        with self.session_factory() as db:
            return [_summary(row) for row in db.execute(stmt).scalars()]

    def get(self, log_id: int) -> dict | None:
        with self.session_factory() as db:
            row = db.get(WebhookLog, log_id)
            if row is None:
                return None
            return {**_summary(row), "headers": row.headers, "payload": row.payload}
