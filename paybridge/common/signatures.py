"""HMAC verification for every inbound entry point.

All comparisons go through `constant_time_equals`; the digests operate on the
exact bytes received, never on a re-serialized payload.
"""

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Mapping
from urllib.parse import quote

from paybridge.common.errors import ServerMisconfigured, SignatureRejected
from paybridge.common.logging import logger
from paybridge.common.metrics import signature_rejections_total


@dataclass(frozen=True)
class VerificationResult:
    ok: bool
    reason: str | None = None


VERIFIED = VerificationResult(ok=True)


def constant_time_equals(a: str | bytes, b: str | bytes) -> bool:
    if isinstance(a, str):
        a = a.encode("utf-8")
    if isinstance(b, str):
        b = b.encode("utf-8")
    return hmac.compare_digest(a, b)


def hmac_digest(secret: str, message: str | bytes, encoding: str = "hex") -> str:
    """HMAC-SHA256 of `message` rendered as `hex` or `base64`."""

    if isinstance(message, str):
        message = message.encode("utf-8")
    mac = hmac.new(secret.encode("utf-8"), message, hashlib.sha256)
    if encoding.lower() == "base64":
        return base64.b64encode(mac.digest()).decode("ascii")
    return mac.hexdigest()


def verify_body_signature(raw_body: bytes, provided: str | None, secret: str, encoding: str = "hex") -> bool:
    if not provided:
        return False
    return constant_time_equals(hmac_digest(secret, raw_body, encoding), provided.strip())


def timestamp_is_fresh(value: str | int | None, tolerance_seconds: int, now: float | None = None) -> bool:
    """Reject timestamps further than `tolerance_seconds` from now, either side."""

    try:
        ts = int(str(value).strip())
    except (TypeError, ValueError):
        return False
    current = int(time.time() if now is None else now)
    return abs(current - ts) <= tolerance_seconds


def _encode_component(value: str) -> str:
    # Same character set as JavaScript's encodeURIComponent.
    return quote(value, safe="-_.!~*'()")


def canonical_query(params: Mapping[str, str | list[str]], exclude: str, percent_encode: bool = False) -> str:
    """Sorted `key=value` pairs joined by `&`, the signature parameter left out."""

    pairs = []
    for key in sorted(k for k in params if k != exclude):
        value = params[key]
        value = ",".join(value) if isinstance(value, (list, tuple)) else str(value)
        if percent_encode:
            pairs.append(f"{_encode_component(key)}={_encode_component(value)}")
        else:
            pairs.append(f"{key}={value}")
    return "&".join(pairs)


def verify_query_hmac(
    params: Mapping[str, str | list[str]],
    secret: str,
    signature_param: str = "hmac",
    percent_encode: bool = False,
    lowercase: bool = True,
) -> VerificationResult:
    """Check an OAuth-launch or app-proxy style signed query string.

    An absent or empty signature is reported as `no_hmac`, distinct from a
    wrong one (`mismatch`).
    """

    if not secret:
        return VerificationResult(ok=False, reason="missing")
    provided = params.get(signature_param)
    if isinstance(provided, (list, tuple)):
        provided = provided[0] if provided else ""
    provided = str(provided or "")
    if not provided:
        return VerificationResult(ok=False, reason="no_hmac")
    if lowercase:
        provided = provided.lower()

    message = canonical_query(params, exclude=signature_param, percent_encode=percent_encode)
    computed = hmac_digest(secret, message, "hex")
    if constant_time_equals(computed, provided):
        return VERIFIED
    return VerificationResult(ok=False, reason="mismatch")


@dataclass(frozen=True)
class WebhookVerifier:
    """Raw-body HMAC plus optional timestamp replay window for one sender."""

    name: str
    enabled: bool
    secret: str
    signature_header: str
    timestamp_header: str = ""
    encoding: str = "hex"
    tolerance_seconds: int = 300

    def verify(self, raw_body: bytes, headers: Mapping[str, str], now: float | None = None) -> VerificationResult:
        if not self.enabled:
            return VERIFIED
        if not self.secret or not self.signature_header:
            raise ServerMisconfigured(f"{self.name} signature verification is enabled but not configured")

        provided = headers.get(self.signature_header) or ""
        if not provided:
            return VerificationResult(ok=False, reason="no_signature")

        # A stale timestamp fails even when the signature matches.
        if self.timestamp_header:
            ts_value = headers.get(self.timestamp_header)
            if ts_value and not timestamp_is_fresh(ts_value, self.tolerance_seconds, now):
                return VerificationResult(ok=False, reason="stale_timestamp")

        if verify_body_signature(raw_body, provided, self.secret, self.encoding):
            return VERIFIED
        return VerificationResult(ok=False, reason="mismatch")

    def require(self, raw_body: bytes, headers: Mapping[str, str], now: float | None = None) -> None:
        """`verify`, raising `SignatureRejected` and counting the rejection."""

        result = self.verify(raw_body, headers, now)
        if not result.ok:
            signature_rejections_total.labels(verifier=self.name, reason=result.reason).inc()
            logger.warning("signature rejected verifier=%s reason=%s", self.name, result.reason)
            raise SignatureRejected(result.reason)
