"""Signed redirect URLs for the gateway's hosted checkout page.

The gateway recomputes the HMAC over `id, merch, amount, purchase, time` in
exactly this order; extras ride along unsigned and `hash` comes last.
"""

import time
from dataclasses import dataclass, field
from typing import Callable, Mapping
from urllib.parse import urlencode, urlsplit

from paybridge.common.errors import GatewayConfigError
from paybridge.common.logging import logger
from paybridge.common.signatures import constant_time_equals, hmac_digest

SIGNED_ORDER = ("id", "merch", "amount", "purchase", "time")

PROD_HOSTED_PAGE = "https://secure.rocketgate.com/hostedpage/servlet/HostedPagePurchase"
DEV_HOSTED_PAGE = "https://dev-secure.rocketgate.com/hostedpage/servlet/HostedPagePurchase"
PROD_TIERS = {"prod-secure", "production", "prod"}


@dataclass(frozen=True)
class HostedPageUrl:
    redirect_url: str
    signed_params: dict
    hash: str
    base: str
    env: str


def canonical_string(signed_params: Mapping[str, object]) -> str:
    return "&".join(f"{key}={signed_params[key]}" for key in SIGNED_ORDER)


def resolve_base_url(env: str, base_override: str = "", path_override: str = "") -> str:
    """Explicit override first, then the production / non-production tier."""

    if base_override:
        base = base_override.rstrip("/")
        path = f"/{path_override.lstrip('/')}" if path_override else ""
        return f"{base}{path}"
    return PROD_HOSTED_PAGE if (env or "").lower() in PROD_TIERS else DEV_HOSTED_PAGE


@dataclass
class HostedPageBuilder:
    env: str = "dev-secure"
    base_override: str = ""
    path_override: str = ""
    encoding: str = "base64"
    default_merchant_id: str = ""
    default_secret: str = ""
    expected_host: str = ""
    enforce_expected_host: bool = False
    clock: Callable[[], float] = field(default=time.time)

    @classmethod
    def from_settings(cls, settings) -> "HostedPageBuilder":
        return cls(
            env=settings.rocketgate_env,
            base_override=settings.rocketgate_hosted_base_url,
            path_override=settings.rocketgate_hosted_path,
            encoding=settings.rocketgate_hash_encoding,
            default_merchant_id=settings.rocketgate_merchant_id,
            default_secret=settings.rocketgate_hash_secret,
            expected_host=settings.rocketgate_expected_host,
            enforce_expected_host=settings.rocketgate_enforce_expected_host,
        )

    @property
    def base_url(self) -> str:
        return resolve_base_url(self.env, self.base_override, self.path_override)

    def sign(self, message: str, secret: str) -> str:
        return hmac_digest(secret, message, self.encoding)

    def build(
        self,
        id: str,
        amount: str,
        merch: str | None = None,
        secret: str | None = None,
        extra: Mapping[str, object] | None = None,
    ) -> HostedPageUrl:
        merchant_id = merch or self.default_merchant_id
        hash_secret = secret or self.default_secret
        if not merchant_id:
            raise GatewayConfigError("RocketGate merchant id (merch) missing.")
        if not hash_secret:
            raise GatewayConfigError("RocketGate hash secret missing.")

        signed_params = {
            "id": str(id),
            "merch": str(merchant_id),
            "amount": str(amount),
            "purchase": "true",
            "time": int(self.clock()),
        }
        digest = self.sign(canonical_string(signed_params), hash_secret)

        # Extras overriding a signed key keep its position, like URLSearchParams.
        query = dict(signed_params)
        for key, value in (extra or {}).items():
            query[key] = "" if value is None else str(value)
        query["hash"] = digest

        base = self.base_url
        redirect_url = f"{base}?{urlencode(query)}"
        self._check_expected_host(redirect_url)
        return HostedPageUrl(
            redirect_url=redirect_url,
            signed_params=signed_params,
            hash=digest,
            base=base,
            env=self.env,
        )

    def build_url(self, id: str, amount: str, **kwargs) -> str:
        return self.build(id, amount, **kwargs).redirect_url

    def verify_hash(self, fields: Mapping[str, object], secret: str, provided: str | None) -> bool:
        """Recompute the digest for the five signed fields and compare."""

        if not isinstance(provided, str) or not provided:
            return False
        try:
            signed_at = int(fields.get("time"))
        except (TypeError, ValueError):
            return False
        message = canonical_string(
            {
                "id": fields.get("id"),
                "merch": fields.get("merch"),
                "amount": str(fields.get("amount")),
                "purchase": str(fields.get("purchase", "true")),
                "time": signed_at,
            }
        )
        return constant_time_equals(self.sign(message, secret), provided)

    def _check_expected_host(self, url: str) -> None:
        if not self.expected_host:
            return
        host = urlsplit(url).netloc
        if host == self.expected_host:
            return
        if self.enforce_expected_host:
            raise GatewayConfigError(
                f'Hosted Page host mismatch: expected "{self.expected_host}" but built "{host}".'
            )
        logger.warning("hosted page host mismatch expected=%s built=%s", self.expected_host, host)
