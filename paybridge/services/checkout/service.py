"""Helpers shared by the checkout entry points."""

from urllib.parse import urlencode

from paybridge.common.errors import ServerMisconfigured, ValidationFailed
from paybridge.services.ledger.service import minor_to_major, normalize_amount

COMPLETE_PATH = "/callbacks/complete-payment"


def return_urls(base_url: str, order_id: str, result_param: str = "result", extra: dict | None = None) -> tuple[str, str]:
    """Buyer-return links for the hosted page's `success` and `fail` fields."""

    base = base_url.rstrip("/")

    def link(outcome: str) -> str:
        params = {"orderId": order_id, result_param: outcome, **(extra or {})}
        return f"{base}{COMPLETE_PATH}?{urlencode(params)}"

    return link("success"), link("fail")


def parse_amount(amount=None, amount_minor=None) -> str:
    """Prefer integer minor units, fall back to a major-unit amount."""

    if isinstance(amount_minor, int) and not isinstance(amount_minor, bool):
        normalized = minor_to_major(amount_minor)
    else:
        normalized = normalize_amount(amount)
    if normalized is None:
        raise ValidationFailed(
            "Provide amountMinor (integer cents) or amount (major units).", code="INVALID_AMOUNT"
        )
    return normalized


def parse_currency(value) -> str:
    currency = str(value or "").strip().upper()
    if len(currency) != 3 or not currency.isalpha():
        raise ValidationFailed("Currency must be a 3-letter code.", code="INVALID_CURRENCY")
    return currency


def resolve_merchant(ctx, shop: str | None) -> tuple[str, str]:
    """Saved per-shop credentials when complete, else the global pair."""

    if shop:
        row = ctx.credentials.get_settings(shop)
        if row is not None and row.merchant_id and row.merchant_key:
            return row.merchant_id, row.merchant_key
    settings = ctx.settings
    if settings.rocketgate_merchant_id and settings.rocketgate_hash_secret:
        return settings.rocketgate_merchant_id, settings.rocketgate_hash_secret
    raise ServerMisconfigured(
        "RocketGate merchant credentials not configured. "
        "Set ROCKETGATE_MERCHANT_ID and ROCKETGATE_HASH_SECRET."
    )
