"""Error taxonomy rendered as `{"error": {"code", "message", ...}}` bodies."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from paybridge.common.logging import logger


class BridgeError(Exception):
    """Request-terminal error with an HTTP status and a stable code."""

    status_code = 500
    code = "SERVER_ERROR"

    def __init__(self, message: str, *, code: str | None = None, **extra) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.extra = extra

    def to_body(self) -> dict:
        return {"error": {"code": self.code, "message": self.message, **self.extra}}


class ValidationFailed(BridgeError):
    status_code = 400
    code = "INVALID_REQUEST"


class SignatureRejected(BridgeError):
    """Bad HMAC, stale timestamp or missing session. Never carries digests."""

    status_code = 401
    code = "INVALID_SIGNATURE"

    def __init__(self, reason: str, message: str = "Request signature rejected") -> None:
        super().__init__(message, reason=reason)
        self.reason = reason


class Forbidden(BridgeError):
    status_code = 403
    code = "FORBIDDEN"


class NotFound(BridgeError):
    status_code = 404
    code = "NOT_FOUND"


class IdempotencyConflict(BridgeError):
    status_code = 409
    code = "IDEMPOTENCY_CONFLICT"

    def __init__(self, conflicts: list[dict]) -> None:
        super().__init__("Order already initialized with different parameters", conflicts=conflicts)
        self.conflicts = conflicts


class SettingsMissing(BridgeError):
    """Operator-fixable per-shop configuration gap."""

    status_code = 412
    code = "RG_SETTINGS_MISSING"


class ServerMisconfigured(BridgeError):
    status_code = 500
    code = "MISCONFIGURED_ENV"


class UpstreamError(BridgeError):
    status_code = 502
    code = "UPSTREAM_FAILED"


class GatewayConfigError(ValueError):
    """Hosted-page builder cannot produce a trustworthy URL."""


async def bridge_error_handler(_: Request, exc: BridgeError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_body())


async def gateway_config_error_handler(_: Request, exc: GatewayConfigError) -> JSONResponse:
    logger.error("hosted page misconfigured: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"error": {"code": "MISCONFIGURED_ENV", "message": str(exc)}},
    )


def install_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BridgeError, bridge_error_handler)
    app.add_exception_handler(GatewayConfigError, gateway_config_error_handler)
