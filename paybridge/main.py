"""Process entrypoint: `uvicorn paybridge.main:app`."""

from paybridge.app import create_app
from paybridge.common.config import settings
from paybridge.common.logging import configure_logging
from paybridge.common.startup import log_startup_config
from paybridge.common.tracing import setup_tracing

configure_logging()
setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_URL",
        "PUBLIC_BASE_URL",
        "ROCKETGATE_ENV",
        "ROCKETGATE_MERCHANT_ID",
        "ROCKETGATE_HASH_SECRET",
        "SHOPLAZZA_CLIENT_ID",
        "SHOPLAZZA_CLIENT_SECRET",
        "VERIFY_SHOPLAZZA_SIGNATURE",
        "VERIFY_ROCKETGATE_NOTIFY_SIGNATURE",
        "OAUTH_STATE_BACKEND",
    ],
)
app = create_app(settings)
