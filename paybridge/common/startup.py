"""Boot-time config logging with credential redaction."""

import os
from collections.abc import Iterable, Mapping

from paybridge.common.logging import logger

# Gateway hash secrets, OAuth client secrets, shared HMAC keys and admin tokens.
SECRET_MARKERS = ("SECRET", "HASH", "HMAC", "KEY", "PASSWORD", "TOKEN")


def is_secret_name(name: str) -> bool:
    upper = name.upper()
    return any(marker in upper for marker in SECRET_MARKERS)


def describe_env(keys: Iterable[str], environ: Mapping[str, str] | None = None) -> dict[str, str]:
    """Map each key to its value, `<unset>`, or `<redacted>` for credentials."""

    environ = os.environ if environ is None else environ
    described = {}
    for key in keys:
        if key not in environ:
            described[key] = "<unset>"
        elif is_secret_name(key):
            described[key] = "<redacted>" if environ[key] else "<empty>"
        else:
            described[key] = environ[key]
    return described


def log_startup_config(service_name: str, keys: list[str]) -> None:
    logger.info("startup_config service=%s config=%s", service_name, describe_env(keys))
