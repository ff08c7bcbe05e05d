"""Application factory: wires settings, storage and routers into one FastAPI app."""

from time import perf_counter
from uuid import uuid4

import httpx
from fastapi import FastAPI, Request
from sqlalchemy.orm import sessionmaker

from paybridge.common.config import BridgeSettings
from paybridge.common.db import Base, create_db_engine, create_session_factory
from paybridge.common.errors import install_error_handlers
from paybridge.common.hosted_page import HostedPageBuilder
from paybridge.common.logging import trace_id_ctx
from paybridge.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from paybridge.common.platform_client import PlatformClient
from paybridge.common.session import AppSessionCodec
from paybridge.common.signatures import WebhookVerifier
from paybridge.common.tracing import instrument_app
from paybridge.context import BridgeContext
from paybridge.services.admin.api import router as admin_router
from paybridge.services.app_api.api import router as app_api_router
from paybridge.services.audit.service import AuditLog
from paybridge.services.auth.api import router as auth_router
from paybridge.services.auth.service import build_state_store
from paybridge.services.callbacks.api import router as callbacks_router
from paybridge.services.checkout.api import router as checkout_router
from paybridge.services.credentials.service import CredentialStore
from paybridge.services.ledger.api import router as ledger_router
from paybridge.services.ledger.service import LedgerService


def build_context(
    settings: BridgeSettings,
    session_factory: sessionmaker,
    platform_transport: httpx.AsyncBaseTransport | None = None,
) -> BridgeContext:
    return BridgeContext(
        settings=settings,
        ledger=LedgerService(session_factory, service_name=settings.service_name),
        credentials=CredentialStore(session_factory),
        audit=AuditLog(session_factory),
        builder=HostedPageBuilder.from_settings(settings),
        sessions=AppSessionCodec(settings.app_session_secret, ttl_minutes=settings.session_ttl_minutes),
        oauth_states=build_state_store(settings),
        platform=PlatformClient.from_settings(settings, transport=platform_transport),
        platform_verifier=WebhookVerifier(
            name="shoplazza",
            enabled=settings.verify_shoplazza_signature,
            secret=settings.shoplazza_webhook_secret,
            signature_header=settings.shoplazza_signature_header,
            timestamp_header=settings.shoplazza_timestamp_header,
            encoding=settings.shoplazza_signature_encoding,
            tolerance_seconds=settings.shoplazza_ts_tolerance_seconds,
        ),
        gateway_verifier=WebhookVerifier(
            name="rocketgate_notify",
            enabled=settings.verify_rocketgate_notify_signature,
            secret=settings.rocketgate_notify_signature_secret,
            signature_header=settings.rocketgate_notify_signature_header,
            timestamp_header=settings.rocketgate_notify_timestamp_header,
            encoding=settings.rocketgate_notify_signature_encoding,
            tolerance_seconds=settings.rocketgate_notify_ts_tolerance_seconds,
        ),
    )


def create_app(
    settings: BridgeSettings,
    session_factory: sessionmaker | None = None,
    platform_transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    """Build the app. Tests pass their own settings, session factory and transport."""

    if session_factory is None:
        engine = create_db_engine(settings.database_url)
        if settings.auto_create_tables:
            Base.metadata.create_all(engine)
        session_factory = create_session_factory(engine)

    app = FastAPI(title="PayBridge")
    app.state.ctx = build_context(settings, session_factory, platform_transport)
    install_error_handlers(app)
    instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        trace_id_ctx.set(request.headers.get("x-request-id") or str(uuid4()))
        start = perf_counter()
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name, route=route, method=method
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name, route=route, method=method, status_code=str(status_code)
            ).inc()

    for router in (
        checkout_router,
        callbacks_router,
        ledger_router,
        auth_router,
        app_api_router,
        admin_router,
    ):
        app.include_router(router)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
