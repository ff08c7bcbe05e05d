"""Stateless signed session cookie for the embedded admin UI.

The cookie is the whole session: `base64url(json).hex(hmac)`. There is no
server-side store, so a token stays valid until it expires.
"""

import base64
import json
import time
from dataclasses import dataclass
from typing import Callable

from fastapi import Request, Response

from paybridge.common.errors import SignatureRejected
from paybridge.common.metrics import signature_rejections_total
from paybridge.common.signatures import constant_time_equals, hmac_digest

COOKIE_NAME = "rg_app_session"


@dataclass(frozen=True)
class SessionPayload:
    shop: str
    store_id: str | None
    exp: int


def _b64url(text: str) -> str:
    return base64.urlsafe_b64encode(text.encode("utf-8")).decode("ascii").rstrip("=")


def _unb64url(text: str) -> str:
    padded = text + "=" * (-len(text) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")


class AppSessionCodec:
    """Issues and reads session tokens bound to a shop."""

    def __init__(self, secret: str, ttl_minutes: int = 20, clock: Callable[[], float] = time.time) -> None:
        self.secret = secret
        self.ttl_minutes = ttl_minutes
        self.clock = clock

    @property
    def max_age_seconds(self) -> int:
        return self.ttl_minutes * 60

    def _now_ms(self) -> int:
        return int(self.clock() * 1000)

    def issue(self, shop: str, store_id: str | None = None) -> str:
        exp = self._now_ms() + self.max_age_seconds * 1000
        body = _b64url(json.dumps({"shop": shop, "storeId": store_id, "exp": exp}, separators=(",", ":")))
        return f"{body}.{hmac_digest(self.secret, body, 'hex')}"

    def read(self, token: str | None) -> SessionPayload | None:
        if not token:
            return None
        body, _, signature = str(token).partition(".")
        if not body or not signature:
            return None
        if not constant_time_equals(hmac_digest(self.secret, body, "hex"), signature):
            return None
        try:
            payload = json.loads(_unb64url(body))
            shop = payload["shop"]
            exp = int(payload["exp"])
        except (ValueError, KeyError, TypeError):
            return None
        if not shop or self._now_ms() >= exp:
            return None
        return SessionPayload(shop=shop, store_id=payload.get("storeId"), exp=exp)

    def set_cookie(self, response: Response, token: str) -> None:
        response.set_cookie(
            COOKIE_NAME,
            token,
            max_age=self.max_age_seconds,
            path="/",
            httponly=True,
            secure=True,
            samesite="none",
        )


def require_app_session(request: Request) -> SessionPayload:
    """FastAPI dependency gating `/app-api` routes on a valid session cookie."""

    ctx = request.app.state.ctx
    session = ctx.sessions.read(request.cookies.get(COOKIE_NAME))
    if session is not None:
        return session
    if not ctx.settings.require_app_session:
        # Gate disabled: fall back to an explicit ?shop= for local tooling.
        return SessionPayload(shop=request.query_params.get("shop", ""), store_id=None, exp=0)
    signature_rejections_total.labels(verifier="app_session", reason="no_session").inc()
    raise SignatureRejected("no_session", "A valid app session is required")
