"""Canonical shop hosts: `<slug>.myshoplazza.com`."""

import re
from urllib.parse import urlsplit

CANONICAL_SUFFIX = ".myshoplazza.com"
LEGACY_SUFFIX = ".myshoplaza.com"

_HOST_RE = re.compile(r"^[a-z0-9-]+\.myshoplazza\.com$")


def canonical_shop_host(value: str | None) -> str | None:
    """Accept a slug, host or URL; return the canonical host or None."""

    if not value:
        return None
    raw = str(value).strip().lower()
    if not raw:
        return None
    host = urlsplit(raw if "://" in raw else f"https://{raw}").hostname or raw

    if "." not in host:
        host = f"{host}{CANONICAL_SUFFIX}"
    if host.endswith(LEGACY_SUFFIX):
        host = host[: -len(LEGACY_SUFFIX)] + CANONICAL_SUFFIX

    if not _HOST_RE.match(host):
        return None
    return host


def legacy_shop_host(canonical: str) -> str:
    return canonical[: -len(CANONICAL_SUFFIX)] + LEGACY_SUFFIX
