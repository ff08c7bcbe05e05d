"""Vocabulary mapping for the two inbound status sources."""

from paybridge.common.state_machine import RETURNED_UNKNOWN, UNKNOWN

NOTIFY_STATUS_MAP = {
    "approved": "paid",
    "captured": "paid",
    "settled": "paid",
    "paid": "paid",
    "refunded": "refunded",
    "voided": "voided",
    "chargeback": "chargeback",
    "disputed": "chargeback",
    "decline": "declined",
    "declined": "declined",
    "error": "error",
    "failed": "declined",
}

TXN_KEYS = ("rocketgateTxnId", "transactId", "transaction_id")


def map_return_result(result: str | None) -> str:
    """Buyer-return outcome; not authoritative for settlement."""

    value = (result or "").strip().lower()
    if value == "success":
        return "returned_success"
    if value in ("fail", "failure"):
        return "returned_fail"
    return RETURNED_UNKNOWN


def map_notify_status(status: str | None) -> str:
    return NOTIFY_STATUS_MAP.get((status or "").strip().lower(), UNKNOWN)
