"""App install (OAuth), embedded launch and uninstall webhook."""

import json
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from paybridge.common.errors import ServerMisconfigured, SignatureRejected, ValidationFailed
from paybridge.common.logging import logger, shop_ctx
from paybridge.common.metrics import signature_rejections_total
from paybridge.common.payload import first_present, query_dict, read_payload
from paybridge.common.shop_host import canonical_shop_host
from paybridge.common.signatures import verify_query_hmac
from paybridge.context import BridgeContext, get_ctx

STATE_COOKIE = "oauth_state"

router = APIRouter(tags=["auth"])


def _shop_param(value: str | None) -> str:
    """Full store host as sent by the platform, lowercased; 400 otherwise."""

    shop = str(value or "").strip().lower()
    if "." not in shop or canonical_shop_host(shop) is None:
        raise ValidationFailed("Invalid shop; expected something like store123.myshoplazza.com", code="INVALID_SHOP")
    return shop


def _cookie_state_matches(request: Request, state: str, shop: str) -> bool:
    raw = request.cookies.get(STATE_COOKIE)
    if not raw:
        return False
    try:
        bundle = json.loads(raw)
    except ValueError:
        return False
    return isinstance(bundle, dict) and bundle.get("state") == state and bundle.get("shop") == shop


@router.get("/auth/start")
def auth_start(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Issue a CSRF state and send the merchant to the store's authorize page."""

    settings = ctx.settings
    if not settings.shoplazza_client_id or not settings.shoplazza_redirect_url:
        raise ServerMisconfigured("Missing required OAuth configuration (client id / redirect url)")
    shop = _shop_param(request.query_params.get("shop"))

    state = ctx.oauth_states.issue(shop)
    params = {
        "response_type": "code",
        "client_id": settings.shoplazza_client_id,
        "redirect_uri": settings.shoplazza_redirect_url,
    }
    if settings.shoplazza_scopes:
        params["scope"] = settings.shoplazza_scopes
    params.update({"state": state, "shop": shop})

    response = RedirectResponse(f"https://{shop}/admin/oauth/authorize?{urlencode(params)}", status_code=302)
    # Cookie copy covers top-level flows on another replica; embedded iframes may drop it.
    response.set_cookie(
        STATE_COOKIE,
        json.dumps({"state": state, "shop": shop}),
        max_age=settings.oauth_state_ttl_seconds,
        httponly=True,
        secure=True,
        samesite="none",
    )
    logger.info("oauth start shop=%s", shop)
    return response


@router.get("/auth/callback")
async def auth_callback(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Validate state, exchange the code, persist the shop, register webhooks."""

    query = request.query_params
    if query.get("error"):
        raise ValidationFailed(f"Authorization denied: {query.get('error')}", code="AUTH_ERROR")
    shop = _shop_param(query.get("shop"))
    shop_ctx.set(shop)
    state = query.get("state") or ""
    if not state:
        raise ValidationFailed("Missing state", code="INVALID_STATE")

    if not ctx.oauth_states.consume(state, shop) and not _cookie_state_matches(request, state, shop):
        signature_rejections_total.labels(verifier="oauth_state", reason="mismatch").inc()
        raise ValidationFailed("Invalid or missing state/shop", code="INVALID_STATE")

    settings = ctx.settings
    if not settings.shoplazza_client_secret:
        raise ServerMisconfigured("Missing required OAuth configuration (client secret)")
    code = query.get("code")
    if not code:
        raise ValidationFailed("Missing authorization code")

    token = await ctx.platform.exchange_token(shop, code)
    ctx.credentials.upsert_shop(shop, access_token=token["access_token"], scope=token.get("scope"))
    registered = await ctx.platform.register_webhooks(shop, token["access_token"])
    logger.info("oauth install complete shop=%s webhooks_registered=%s", shop, registered)

    response = JSONResponse(
        {"ok": True, "shop": shop, "scope": token.get("scope"), "webhooksRegistered": registered}
    )
    response.delete_cookie(STATE_COOKIE)
    return response


@router.get("/app-start")
def app_start(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    """Embedded admin launch: verify the launch HMAC, then hand out a session."""

    params = query_dict(request.query_params)
    if ctx.settings.verify_embed_hmac:
        result = verify_query_hmac(params, ctx.settings.shoplazza_client_secret)
        if not result.ok:
            signature_rejections_total.labels(verifier="launch_hmac", reason=result.reason).inc()
            raise SignatureRejected(result.reason, "Launch HMAC rejected")

    shop = str(request.query_params.get("shop") or "").lower()
    store_id = request.query_params.get("store_id") or None

    target = {}
    if shop:
        target["shop"] = shop
    if store_id:
        target["store_id"] = store_id
    # hmac is dropped so it does not travel further.
    response = RedirectResponse(f"{ctx.settings.app_ui_path}?{urlencode(target)}", status_code=302)
    ctx.sessions.set_cookie(response, ctx.sessions.issue(shop, store_id))
    return response


@router.post("/webhooks/app-uninstalled")
async def app_uninstalled(request: Request, ctx: BridgeContext = Depends(get_ctx)):
    raw, body = await read_payload(request)
    ctx.platform_verifier.require(raw, request.headers)

    ctx.audit.record(
        "shoplazza",
        "app/uninstalled",
        raw,
        headers=dict(request.headers),
        idempotency_key=request.headers.get("x-shoplazza-webhook-id"),
    )
    headers = {"shop": request.headers.get("x-shoplazza-shop-domain") or ""}
    shop = first_present(body, headers, keys=("shop", "domain", "shop_domain"))
    if not shop:
        raise ValidationFailed("Missing shop")
    shop = shop.lower()
    removed = ctx.credentials.mark_uninstalled(shop)
    return {"ok": True, "shop": shop, "uninstalled": removed}
