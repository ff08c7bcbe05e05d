"""Embedded admin API, gated by the signed app session cookie."""

import time
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from paybridge.common.errors import SettingsMissing, ValidationFailed
from paybridge.common.payload import read_payload
from paybridge.common.session import SessionPayload, require_app_session
from paybridge.context import BridgeContext, get_ctx
from paybridge.services.checkout.service import COMPLETE_PATH
from paybridge.services.credentials.service import mask_settings
from paybridge.services.ledger.service import normalize_amount

router = APIRouter(prefix="/app-api", tags=["app-api"])


@router.get("/rg-settings")
def read_settings(session: SessionPayload = Depends(require_app_session), ctx: BridgeContext = Depends(get_ctx)):
    return {"ok": True, "settings": mask_settings(ctx.credentials.get_settings(session.shop))}


@router.post("/rg-settings")
async def save_settings(
    request: Request,
    session: SessionPayload = Depends(require_app_session),
    ctx: BridgeContext = Depends(get_ctx),
):
    """Upsert settings. A blank or absent key keeps the stored one."""

    _, body = await read_payload(request)
    # HTML form posts name the key field merchantPassword.
    raw_key = body.get("merchantKey")
    if not isinstance(raw_key, str):
        raw_key = body.get("merchantPassword")
    saved = ctx.credentials.upsert_settings(
        session.shop,
        merchant_id=body.get("merchantId"),
        merchant_key=raw_key if isinstance(raw_key, str) else None,
        mode=body.get("mode"),
        return_url=body.get("returnUrl"),
        cancel_url=body.get("cancelUrl"),
    )

    if "application/x-www-form-urlencoded" in (request.headers.get("content-type") or ""):
        target = f"{ctx.settings.app_ui_path}?{urlencode({'shop': session.shop})}"
        return RedirectResponse(target, status_code=303)
    return {"ok": True, "saved": mask_settings(saved)}


@router.post("/test-hosted-page")
async def test_hosted_page(
    request: Request,
    session: SessionPayload = Depends(require_app_session),
    ctx: BridgeContext = Depends(get_ctx),
):
    """Build a hosted-page link from the shop's saved credentials."""

    row = ctx.credentials.get_settings(session.shop)
    if row is None or not row.merchant_id or not row.merchant_key:
        raise SettingsMissing("Missing RocketGate credentials. Save settings first.")

    _, body = await read_payload(request)
    amount = normalize_amount(body.get("amount") if body.get("amount") not in (None, "") else "0.00")
    if amount is None:
        raise ValidationFailed("amount must be a number", code="INVALID_AMOUNT")
    currency = str(body.get("currency") or "USD").upper()

    base = ctx.settings.public_base_url.rstrip("/")
    success = f"{base}{COMPLETE_PATH}?{urlencode({'shop': session.shop, 'status': 'success'})}"
    fail = f"{base}{COMPLETE_PATH}?{urlencode({'shop': session.shop, 'status': 'fail'})}"
    url = ctx.builder.build_url(
        f"test-{int(time.time() * 1000)}",
        amount,
        merch=row.merchant_id,
        secret=row.merchant_key,
        extra={"currency": currency, "success": success, "fail": fail},
    )
    return {"ok": True, "url": url}


@router.get("/whoami")
def whoami(session: SessionPayload = Depends(require_app_session)):
    return {"ok": True, "shop": session.shop, "storeId": session.store_id}
