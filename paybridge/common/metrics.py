"""Prometheus metric definitions shared across the bridge."""

from prometheus_client import Counter, Histogram, generate_latest
from starlette.responses import Response


http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["service", "route", "method", "status_code"],
)
http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration seconds",
    ["service", "route", "method"],
)
signature_rejections_total = Counter(
    "signature_rejections_total",
    "Inbound requests rejected by a signature or session check",
    ["verifier", "reason"],
)
ledger_writes_total = Counter(
    "ledger_writes_total",
    "Ledger write outcomes by caller source",
    ["source", "outcome"],
)
ledger_write_retries_total = Counter(
    "ledger_write_retries_total",
    "Ledger read-modify-write attempts lost to a concurrent writer",
    ["operation"],
)
idempotency_conflicts_total = Counter(
    "idempotency_conflicts_total",
    "Session initializations rejected because core fields differ",
    ["route"],
)
upstream_calls_total = Counter(
    "upstream_calls_total",
    "Outbound platform calls by target and outcome",
    ["target", "outcome"],
)


def metrics_response() -> Response:
    """Expose all registered Prometheus metrics in text format."""

    return Response(content=generate_latest(), media_type="text/plain")
