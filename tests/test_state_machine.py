"""Forward-only status rule across the whole vocabulary."""

import itertools

import pytest

from paybridge.common.state_machine import STATUS_RANK, can_advance, rank
from paybridge.services.ledger.service import LedgerKey, LedgerService

STATUSES = list(STATUS_RANK)


def test_rank_order_is_fixed():
    assert STATUSES == [
        "initiated",
        "pending",
        "returned_fail",
        "returned_success",
        "paid",
        "refunded",
        "voided",
        "chargeback",
        "error",
        "declined",
    ]


def test_unknown_statuses_rank_like_initiated():
    assert rank("returned_unknown") == 0
    assert rank("unknown") == 0
    assert rank(None) == 0


def test_missing_current_status_always_advances():
    assert can_advance(None, "initiated")
    assert can_advance("", "declined")


def test_unknown_cannot_overwrite_pending():
    assert not can_advance("pending", "unknown")
    assert can_advance("initiated", "returned_unknown")


@pytest.mark.parametrize("old,new", list(itertools.product(STATUSES, STATUSES)))
def test_set_status_is_forward_only(session_factory, old, new):
    """Result is `new` iff its rank is not lower than `old`, else `old`."""

    ledger = LedgerService(session_factory)
    key = LedgerKey("ORD-grid")
    ledger.create_or_update(key, status=old)

    result = ledger.set_status(key, new)

    expected = new if STATUS_RANK[new] >= STATUS_RANK[old] else old
    assert result.status == expected
    assert ledger.get("ORD-grid").status == expected


def test_late_decline_overwrites_paid(session_factory):
    """Inherited rank quirk: declined outranks paid."""

    ledger = LedgerService(session_factory)
    key = LedgerKey("ORD-quirk")
    ledger.set_status(key, "paid")

    assert ledger.set_status(key, "declined").status == "declined"
