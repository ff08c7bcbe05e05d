"""Outbound calls to the e-commerce platform's per-store Open API.

Token exchange is part of the install flow and raises on failure. Webhook
registration and the complete-payment callback are best-effort: failures are
logged and reported as values, never raised into the primary flow.
"""

import json
from datetime import datetime, timezone

import httpx

from paybridge.common.errors import UpstreamError
from paybridge.common.logging import logger
from paybridge.common.metrics import upstream_calls_total
from paybridge.common.signatures import hmac_digest


class PlatformClient:
    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_url: str,
        api_version: str = "2022-01",
        public_base_url: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_url = redirect_url
        self.api_version = api_version
        self.public_base_url = public_base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    @classmethod
    def from_settings(cls, settings, transport: httpx.AsyncBaseTransport | None = None) -> "PlatformClient":
        return cls(
            client_id=settings.shoplazza_client_id,
            client_secret=settings.shoplazza_client_secret,
            redirect_url=settings.shoplazza_redirect_url,
            api_version=settings.shoplazza_api_version,
            public_base_url=settings.public_base_url,
            timeout=settings.upstream_timeout_seconds,
            transport=transport,
        )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)

    def openapi_url(self, shop: str, endpoint: str) -> str:
        return f"https://{shop}/openapi/{self.api_version}/{endpoint.lstrip('/')}"

    async def exchange_token(self, shop: str, code: str) -> dict:
        """Exchange an authorization code for the shop's access token."""

        url = f"https://{shop}/admin/oauth/token"
        payload = {
            "grant_type": "authorization_code",
            "code": str(code),
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "redirect_uri": self.redirect_url,
        }
        try:
            async with self._client() as client:
                resp = await client.post(url, json=payload)
        except httpx.HTTPError as exc:
            upstream_calls_total.labels(target="token_exchange", outcome="error").inc()
            raise UpstreamError(f"Token exchange failed: {exc}", code="TOKEN_EXCHANGE_FAILED") from exc

        if resp.status_code >= 400:
            upstream_calls_total.labels(target="token_exchange", outcome="rejected").inc()
            raise UpstreamError(
                f"Token exchange failed with status {resp.status_code}", code="TOKEN_EXCHANGE_FAILED"
            )
        try:
            body = resp.json()
        except ValueError as exc:
            upstream_calls_total.labels(target="token_exchange", outcome="rejected").inc()
            raise UpstreamError("Token exchange returned non-JSON body", code="TOKEN_EXCHANGE_FAILED") from exc
        if not body.get("access_token"):
            upstream_calls_total.labels(target="token_exchange", outcome="rejected").inc()
            raise UpstreamError("Token exchange returned no access_token", code="TOKEN_EXCHANGE_FAILED")
        upstream_calls_total.labels(target="token_exchange", outcome="ok").inc()
        return body

    async def register_webhooks(self, shop: str, access_token: str) -> bool:
        """Subscribe `orders/paid` to our notify endpoint; never raises."""

        body = {
            "topic": "orders/paid",
            "address": f"{self.public_base_url}/callbacks/notify",
            "format": "json",
        }
        try:
            async with self._client() as client:
                resp = await client.post(
                    self.openapi_url(shop, "webhooks"),
                    headers={"Access-Token": access_token},
                    json=body,
                )
        except httpx.HTTPError as exc:
            upstream_calls_total.labels(target="webhook_register", outcome="error").inc()
            logger.warning("webhook register error shop=%s error=%s", shop, exc)
            return False
        if resp.status_code >= 400:
            upstream_calls_total.labels(target="webhook_register", outcome="rejected").inc()
            logger.warning("webhook register failed shop=%s status=%s body=%s", shop, resp.status_code, resp.text[:500])
            return False
        upstream_calls_total.labels(target="webhook_register", outcome="ok").inc()
        return True

    def complete_callback_body(
        self,
        payment_id: str,
        amount: str | None,
        currency: str | None,
        transaction_no: str | None,
        test: bool,
    ) -> dict:
        # `paying`: the buyer finished checkout; settlement arrives via notify.
        return {
            "app_id": str(self.client_id),
            "payment_id": payment_id,
            "amount": amount or "0.00",
            "currency": currency or "USD",
            "transaction_no": transaction_no or "pending",
            "type": "sale",
            "test": test,
            "status": "paying",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    async def notify_complete(self, shop: str, access_token: str | None, body: dict) -> tuple[bool, dict]:
        """POST the complete-payment callback; returns `(ok, debug)`."""

        endpoint = self.openapi_url(shop, "payments_apps/complete_callbacks")
        body_json = json.dumps(body, separators=(",", ":"))
        headers = {
            "Content-Type": "application/json",
            "Access-Token": access_token or "",
            "Shoplazza-Shop-Domain": shop,
            "Shoplazza-Hmac-Sha256": hmac_digest(self.client_secret, body_json, "hex"),
        }
        try:
            async with self._client() as client:
                resp = await client.post(endpoint, headers=headers, content=body_json)
        except httpx.HTTPError as exc:
            upstream_calls_total.labels(target="complete_callback", outcome="error").inc()
            logger.warning("complete callback error shop=%s error=%s", shop, exc)
            return False, {"endpoint": endpoint, "error": str(exc)}

        ok = resp.status_code < 400
        debug = {
            "endpoint": endpoint,
            "status": resp.status_code,
            "ok": ok,
            "sent": body,
            "resText": resp.text[:400],
        }
        upstream_calls_total.labels(target="complete_callback", outcome="ok" if ok else "rejected").inc()
        if not ok:
            logger.warning("complete callback failed shop=%s status=%s", shop, resp.status_code)
        return ok, debug
