"""Entry points that start a payment and hand back a hosted-page URL."""

import secrets
import time
from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from paybridge.common.errors import IdempotencyConflict, ServerMisconfigured, SignatureRejected, ValidationFailed
from paybridge.common.logging import logger, order_id_ctx, shop_ctx
from paybridge.common.metrics import idempotency_conflicts_total, signature_rejections_total
from paybridge.common.payload import query_dict, read_payload
from paybridge.common.signatures import constant_time_equals, hmac_digest, verify_query_hmac
from paybridge.context import BridgeContext, get_ctx
from paybridge.services.checkout.service import parse_amount, parse_currency, resolve_merchant, return_urls
from paybridge.services.ledger.service import INITIATED, PENDING, LedgerKey

SESSION_EXPIRY = timedelta(minutes=15)

router = APIRouter(tags=["checkout"])


def _init_or_conflict(ctx: BridgeContext, route: str, key: LedgerKey, **fields):
    try:
        return ctx.ledger.init_session(key, **fields)
    except IdempotencyConflict:
        idempotency_conflicts_total.labels(route=route).inc()
        raise


@router.post("/pay/init")
async def pay_init(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Direct-pay API: idempotent init, then a signed hosted-page URL."""

    settings = ctx.settings
    if not settings.rocketgate_merchant_id or not settings.rocketgate_hash_secret:
        raise ServerMisconfigured(
            "RocketGate merchant credentials not configured. "
            "Set ROCKETGATE_MERCHANT_ID and ROCKETGATE_HASH_SECRET."
        )

    _, body = await read_payload(request)
    order_id = body.get("orderId")
    customer = body.get("customer") if isinstance(body.get("customer"), dict) else {}
    if not order_id or not body.get("currency") or not customer.get("id"):
        raise ValidationFailed("Missing orderId, currency, or customer.id")

    order_id = str(order_id)
    order_id_ctx.set(order_id)
    amount = parse_amount(body.get("amount"), body.get("amountMinor"))
    currency = parse_currency(body.get("currency"))
    customer_id = str(customer["id"])

    _init_or_conflict(
        ctx,
        "/pay/init",
        LedgerKey(order_id),
        amount=amount,
        currency=currency,
        customer_id=customer_id,
        status=INITIATED,
        source="pay_init",
    )

    success, fail = return_urls(settings.public_base_url, order_id)
    redirect_url = ctx.builder.build_url(
        customer_id,
        amount,
        extra={"invoice": order_id, "currency": currency, "success": success, "fail": fail},
    )
    logger.info("pay init order_id=%s amount=%s currency=%s", order_id, amount, currency)
    return {
        "paymentSessionId": f"ps_{int(time.time() * 1000)}",
        "redirectUrl": redirect_url,
        "expiresAt": (datetime.now(timezone.utc) + SESSION_EXPIRY).isoformat(),
    }


@router.post("/payments/session")
async def payment_session(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Platform "payment session URL": returns `{redirect_url}`, never redirects."""

    raw, body = await read_payload(request)
    ctx.platform_verifier.require(raw, request.headers)

    required = ("id", "shoplazza_order_id", "amount", "currency", "complete_url", "callback_url")
    missing = [name for name in required if body.get(name) in (None, "")]
    if missing:
        raise ValidationFailed(f"Missing required fields: {', '.join(missing)}", code="INVALID")

    payment_id = str(body["id"])
    order_id = str(body["shoplazza_order_id"])
    order_id_ctx.set(order_id)
    amount = parse_amount(body["amount"])
    currency = parse_currency(body["currency"])
    shop = str(
        request.query_params.get("shop")
        or body.get("shop")
        or request.headers.get("x-shop-domain")
        or request.headers.get("x-shoplazza-shop")
        or ""
    ).strip().lower()
    if shop:
        shop_ctx.set(shop)
    idempotency_key = request.headers.get("x-request-id") or request.headers.get("x-idempotency-key")

    _init_or_conflict(
        ctx,
        "/payments/session",
        LedgerKey(order_id, payment_attempt_id=payment_id, shop_scope=shop or None),
        amount=amount,
        currency=currency,
        customer_id=None,
        status=PENDING,
        source="payment_session",
    )
    ctx.audit.record(
        "shoplazza",
        "payments/session",
        raw,
        headers=dict(request.headers),
        idempotency_key=idempotency_key,
    )

    correlation = {
        "spz_payment_id": payment_id,
        "spz_complete": str(body["complete_url"]),
        "spz_cancel": str(body.get("cancel_url") or ""),
        "spz_callback": str(body["callback_url"]),
    }
    if body.get("test") is not None:
        correlation["spz_test"] = str(body["test"]).lower()
    if shop:
        correlation["shop"] = shop
    correlation["nonce"] = secrets.token_hex(12)
    success, fail = return_urls(ctx.settings.public_base_url, order_id, result_param="status", extra=correlation)

    merch, secret = resolve_merchant(ctx, shop)
    redirect_url = ctx.builder.build_url(
        payment_id,
        amount,
        merch=merch,
        secret=secret,
        extra={"invoice": order_id, "currency": currency, "success": success, "fail": fail},
    )
    logger.info("payment session order_id=%s payment_id=%s", order_id, payment_id)
    return {"redirect_url": redirect_url}


@router.post("/payments/create")
async def payment_capture(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Capture an unknown platform payload for inspection; the HMAC is only reported."""

    raw, _ = await read_payload(request)
    headers = dict(request.headers)
    idempotency_key = (
        headers.get("x-shoplazza-request-id") or headers.get("x-request-id") or headers.get("x-idempotency-key")
    )

    check = {"verified": False, "reason": "skipped"}
    if ctx.settings.verify_shoplazza_signature:
        provided = headers.get("x-shoplazza-hmac-sha256") or headers.get("x-hmac-sha256")
        secret = ctx.settings.shoplazza_client_secret
        if provided and secret:
            check["verified"] = constant_time_equals(hmac_digest(secret, raw, "base64"), provided)
            check["reason"] = "match" if check["verified"] else "mismatch"
        else:
            check["reason"] = "missing header or secret"

    ctx.audit.record("shoplazza", "payments/create", raw, headers=headers, idempotency_key=idempotency_key)
    return {"ok": True, "captured": True, "hmac": check}


@router.get("/app-proxy/init")
def app_proxy_init(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Storefront app-proxy checkout: verify, init, 302 to the hosted page."""

    secret = ctx.settings.shoplazza_proxy_shared_secret
    if not secret:
        raise ServerMisconfigured("Missing SHOPLAZZA_PROXY_SHARED_SECRET")
    params = query_dict(request.query_params)
    result = verify_query_hmac(params, secret, signature_param="signature", percent_encode=True, lowercase=False)
    if not result.ok:
        signature_rejections_total.labels(verifier="app_proxy", reason=result.reason).inc()
        raise SignatureRejected(result.reason)

    query = request.query_params
    order_id = query.get("orderId")
    customer_id = query.get("customerId")
    if not order_id or not query.get("amount") or not query.get("currency") or not customer_id:
        raise ValidationFailed("Missing orderId, amount, currency, or customerId")
    order_id_ctx.set(order_id)
    amount = parse_amount(query.get("amount"))
    currency = parse_currency(query.get("currency"))
    shop = (query.get("shop") or "").lower()

    _init_or_conflict(
        ctx,
        "/app-proxy/init",
        LedgerKey(order_id),
        amount=amount,
        currency=currency,
        customer_id=customer_id,
        status=PENDING,
        source="app_proxy",
    )

    success, fail = return_urls(ctx.settings.public_base_url, order_id, result_param="status")
    merch, hash_secret = resolve_merchant(ctx, shop)
    hosted_url = ctx.builder.build_url(
        customer_id,
        amount,
        merch=merch,
        secret=hash_secret,
        extra={"invoice": order_id, "currency": currency, "success": success, "fail": fail},
    )
    return RedirectResponse(hosted_url, status_code=302)
