"""Operator views: installed shops, recent payments and the webhook audit log."""

import time

from fastapi import APIRouter, Depends, Header, Request

from paybridge.common.errors import Forbidden, NotFound
from paybridge.common.signatures import constant_time_equals
from paybridge.context import BridgeContext, get_ctx
from paybridge.services.ledger.schemas import PaymentState


def require_admin(
    request: Request,
    x_admin_token: str | None = Header(default=None),
    ctx: BridgeContext = Depends(get_ctx),
) -> None:
    """No guard unless `ADMIN_TOKEN` is configured."""

    required = ctx.settings.admin_token
    if not required:
        return
    token = x_admin_token or request.query_params.get("token") or ""
    if not constant_time_equals(token, required):
        raise Forbidden("Forbidden")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@router.get("/health")
def admin_health():
    return {"ok": True, "ts": int(time.time() * 1000)}


@router.get("/shops")
def list_shops(ctx: BridgeContext = Depends(get_ctx)):
    shops = ctx.credentials.list_shops()
    return {"ok": True, "count": len(shops), "shops": shops}


@router.get("/logs")
def list_logs(
    source: str | None = None,
    topic: str | None = None,
    limit: int = 50,
    ctx: BridgeContext = Depends(get_ctx),
):
    rows = ctx.audit.list(source=source, topic=topic, limit=limit)
    return {"ok": True, "count": len(rows), "rows": rows}


@router.get("/logs/{log_id}")
def get_log(log_id: int, ctx: BridgeContext = Depends(get_ctx)):
    row = ctx.audit.get(log_id)
    if row is None:
        raise NotFound(f"No webhook log {log_id}")
    return {"ok": True, "row": row}


@router.get("/payments")
def list_payments(limit: int = 50, ctx: BridgeContext = Depends(get_ctx)):
    rows = [PaymentState.model_validate(row) for row in ctx.ledger.list_recent(limit)]
    return {"ok": True, "count": len(rows), "rows": rows}


@router.get("/payments/attempts/{payment_attempt_id}", response_model=PaymentState)
def get_payment_attempt(payment_attempt_id: str, ctx: BridgeContext = Depends(get_ctx)):
    row = ctx.ledger.get_by_attempt(payment_attempt_id)
    if row is None:
        raise NotFound(f"No payment attempt {payment_attempt_id}")
    return row
