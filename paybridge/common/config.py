"""Central environment-driven settings for the bridge.

The process loads this once at startup; `create_app` receives the instance
explicitly so tests can build their own (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class BridgeSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "paybridge"
    log_level: str = "INFO"
    database_url: str = "sqlite:///./data/dev.db"
    auto_create_tables: bool = True
    redis_url: str = "redis://localhost:6379/0"
    otel_exporter_otlp_endpoint: str = ""

    public_base_url: str = "http://localhost:3000"
    app_ui_path: str = "/app.html"
    admin_token: str = ""
    upstream_timeout_seconds: float = 10.0

    # Platform (Shoplazza) app credentials and OAuth.
    shoplazza_client_id: str = ""
    shoplazza_client_secret: str = ""
    shoplazza_redirect_url: str = ""
    shoplazza_scopes: str = ""
    shoplazza_api_version: str = "2022-01"
    shoplazza_proxy_shared_secret: str = ""
    oauth_state_backend: str = "memory"
    oauth_state_ttl_seconds: int = 600

    # Platform webhook signatures.
    verify_shoplazza_signature: bool = False
    shoplazza_webhook_secret: str = ""
    shoplazza_signature_header: str = "X-Shoplazza-Signature"
    shoplazza_timestamp_header: str = "X-Shoplazza-Timestamp"
    shoplazza_signature_encoding: str = "base64"
    shoplazza_ts_tolerance_seconds: int = 300

    # Embedded admin launch + session.
    verify_embed_hmac: bool = True
    require_app_session: bool = True
    app_session_secret: str = "dev-secret"
    session_ttl_minutes: int = 20

    # Gateway (RocketGate) hosted page.
    rocketgate_merchant_id: str = ""
    rocketgate_hash_secret: str = ""
    rocketgate_env: str = "dev-secure"
    rocketgate_hosted_base_url: str = ""
    rocketgate_hosted_path: str = ""
    rocketgate_hash_encoding: str = "base64"
    rocketgate_expected_host: str = ""
    rocketgate_enforce_expected_host: bool = False

    # Gateway async notify signatures.
    verify_rocketgate_notify_signature: bool = False
    rocketgate_notify_signature_header: str = "X-RG-Signature"
    rocketgate_notify_signature_secret: str = ""
    rocketgate_notify_signature_encoding: str = "hex"
    rocketgate_notify_timestamp_header: str = ""
    rocketgate_notify_ts_tolerance_seconds: int = 300

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = BridgeSettings()
