"""Request body/query helpers that keep the exact raw bytes for HMAC checks."""

import json
from urllib.parse import parse_qs

from fastapi import Request
from starlette.datastructures import QueryParams


def flatten_params(pairs) -> dict[str, str | list[str]]:
    """Multi-valued params become lists, single values stay strings."""

    out: dict[str, str | list[str]] = {}
    for key, value in pairs:
        if key in out:
            current = out[key]
            out[key] = [*current, value] if isinstance(current, list) else [current, value]
        else:
            out[key] = value
    return out


def query_dict(params: QueryParams) -> dict[str, str | list[str]]:
    return flatten_params(params.multi_items())


def parse_body(raw: bytes, content_type: str | None) -> dict:
    """Parse JSON or urlencoded bodies; anything unparseable yields `{}`."""

    if not raw:
        return {}
    content_type = (content_type or "").lower()
    if "application/x-www-form-urlencoded" in content_type:
        parsed = parse_qs(raw.decode("utf-8", errors="replace"), keep_blank_values=True)
        return {key: values[-1] for key, values in parsed.items()}
    try:
        body = json.loads(raw)
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


async def read_payload(request: Request) -> tuple[bytes, dict]:
    raw = await request.body()
    return raw, parse_body(raw, request.headers.get("content-type"))


def first_present(*sources: dict, keys: tuple[str, ...]) -> str | None:
    """First truthy value for any of `keys`, scanning sources in order."""

    for source in sources:
        for key in keys:
            value = source.get(key)
            if value not in (None, ""):
                return str(value)
    return None
