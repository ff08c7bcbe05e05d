"""Forward-only payment status ranks shared by every ledger writer.

A write may keep or raise the rank, never lower it. The order is inherited
from the gateway integration and is not a business priority: `declined` and
`error` outrank `paid`, so a late decline overwrites a settled payment.
"""

STATUS_RANK: dict[str, int] = {
    "initiated": 0,
    "pending": 1,
    "returned_fail": 2,
    "returned_success": 3,
    "paid": 4,
    "refunded": 5,
    "voided": 6,
    "chargeback": 7,
    "error": 8,
    "declined": 9,
}

# Outside the rank table; they rank like `initiated`.
RETURNED_UNKNOWN = "returned_unknown"
UNKNOWN = "unknown"


def rank(status: str | None) -> int:
    return STATUS_RANK.get(status or "", 0)


def can_advance(current: str | None, new: str) -> bool:
    """True when `new` may replace `current` under the rank table."""

    if not current:
        return True
    return rank(new) >= rank(current)
