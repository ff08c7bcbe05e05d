"""Shared fixtures: file-backed SQLite per test and an app with faked upstreams."""

import json

import httpx
import pytest
from fastapi.testclient import TestClient

from paybridge.app import create_app
from paybridge.common.config import BridgeSettings
from paybridge.common.db import Base, create_db_engine, create_session_factory


@pytest.fixture
def session_factory(tmp_path):
    engine = create_db_engine(f"sqlite:///{tmp_path / 'bridge.db'}")
    Base.metadata.create_all(engine)
    yield create_session_factory(engine)
    engine.dispose()


@pytest.fixture
def settings():
    return BridgeSettings(
        database_url="sqlite://",
        auto_create_tables=False,
        public_base_url="https://bridge.test",
        admin_token="",
        shoplazza_client_id="client-1",
        shoplazza_client_secret="client-secret",
        shoplazza_redirect_url="https://bridge.test/auth/callback",
        shoplazza_scopes="read_order write_payment",
        shoplazza_proxy_shared_secret="proxy-secret",
        shoplazza_webhook_secret="webhook-secret",
        verify_shoplazza_signature=False,
        verify_embed_hmac=True,
        require_app_session=True,
        app_session_secret="session-secret",
        rocketgate_merchant_id="1234567",
        rocketgate_hash_secret="hash-secret",
        rocketgate_env="dev-secure",
        rocketgate_notify_signature_secret="notify-secret",
        verify_rocketgate_notify_signature=False,
        oauth_state_backend="memory",
    )


class PlatformStub:
    """Records outbound platform calls and answers them from a route table."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.responses: dict[str, httpx.Response] = {}

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for suffix, response in self.responses.items():
            if request.url.path.endswith(suffix):
                return response
        return httpx.Response(200, json={"ok": True})

    def bodies(self, suffix: str) -> list[dict]:
        return [json.loads(r.content) for r in self.requests if r.url.path.endswith(suffix)]


@pytest.fixture
def platform():
    return PlatformStub()


@pytest.fixture
def make_client(settings, session_factory, platform):
    """Build a client; keyword overrides are applied on top of `settings`."""

    def _make(**overrides) -> TestClient:
        app = create_app(
            settings.model_copy(update=overrides),
            session_factory=session_factory,
            platform_transport=httpx.MockTransport(platform.handler),
        )
        # https so the Secure session cookie is sent back.
        return TestClient(app, base_url="https://testserver")

    return _make


@pytest.fixture
def client(make_client):
    return make_client()
