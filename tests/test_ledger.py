"""Ledger merge, seeding, idempotent init and concurrency behaviour."""

import threading

import pytest
from sqlalchemy import func, select, update

from paybridge.common.errors import IdempotencyConflict
from paybridge.services.ledger.models import Payment
from paybridge.services.ledger.service import (
    LedgerKey,
    LedgerService,
    LedgerWriteConflict,
    minor_to_major,
    normalize_amount,
)


@pytest.fixture
def ledger(session_factory):
    return LedgerService(session_factory)


def _count(session_factory, order_id: str) -> int:
    with session_factory() as db:
        return db.execute(select(func.count()).select_from(Payment).where(Payment.order_id == order_id)).scalar_one()


@pytest.mark.parametrize(
    "value,expected",
    [("12.99", "12.99"), (12.5, "12.50"), ("1,299.005", "1299.01"), (" 7 ", "7.00"), ("abc", None), (None, None), ("", None), ("nan", None), ("1e30", None)],
)
def test_normalize_amount(value, expected):
    assert normalize_amount(value) == expected


def test_minor_to_major():
    assert minor_to_major(1299) == "12.99"
    assert minor_to_major(5) == "0.05"
    assert minor_to_major(10**40) is None


def test_create_defaults_to_pending_and_records_history(ledger):
    row = ledger.create_or_update(LedgerKey("O-1"), amount="10.00", currency="USD")
    assert row.status == "pending"
    assert [entry["status"] for entry in row.status_history] == ["pending"]
    assert row.shop_scope == ""
    assert row.payment_attempt_id == ""


def test_merge_keeps_customer_once_set(ledger):
    key = LedgerKey("O-1")
    ledger.create_or_update(key, customer_id="C1")
    row = ledger.create_or_update(key, customer_id="C2", amount="5.00")
    assert row.customer_id == "C1"
    assert row.amount == "5.00"


def test_merge_ignores_lower_status_but_appends_history(ledger):
    key = LedgerKey("O-1")
    ledger.create_or_update(key, status="paid")
    row = ledger.create_or_update(key, status="pending")
    assert row.status == "paid"
    assert [entry["status"] for entry in row.status_history] == ["paid", "paid"]


def test_merge_without_history(ledger):
    key = LedgerKey("O-1")
    ledger.create_or_update(key, status="initiated")
    row = ledger.create_or_update(key, currency="USD", append_history=False)
    assert row.currency == "USD"
    assert len(row.status_history) == 1


def test_set_status_seeds_missing_row(ledger):
    row = ledger.set_status(LedgerKey("O-race"), "returned_success", "txn-1")
    assert row.status == "returned_success"
    assert row.gateway_txn_id == "txn-1"


def test_set_status_with_seed_records_both_steps(ledger):
    row = ledger.set_status(LedgerKey("O-seed"), "paid", seed_status="initiated")
    assert row.status == "paid"
    assert [entry["status"] for entry in row.status_history] == ["initiated", "paid"]


def test_set_status_noop_still_backfills_txn(ledger):
    key = LedgerKey("O-1")
    ledger.set_status(key, "declined")
    before = ledger.get("O-1")

    row = ledger.set_status(key, "returned_success", "txn-late")

    assert row.status == "declined"
    assert row.gateway_txn_id == "txn-late"
    assert row.status_history == before.status_history


def test_set_status_noop_without_changes_writes_nothing(ledger):
    key = LedgerKey("O-1")
    ledger.set_status(key, "paid", "txn-1")
    before = ledger.get("O-1")
    row = ledger.set_status(key, "pending")
    assert row.state_version == before.state_version


def test_txn_id_never_cleared_by_null(ledger):
    key = LedgerKey("O-1")
    ledger.set_status(key, "returned_success", "txn-1")
    assert ledger.set_status(key, "paid", None).gateway_txn_id == "txn-1"


def test_history_is_append_only(ledger):
    key = LedgerKey("O-1")
    for status in ("initiated", "returned_success", "paid", "refunded"):
        ledger.set_status(key, status)
    history = ledger.get("O-1").status_history
    assert [entry["status"] for entry in history] == ["initiated", "returned_success", "paid", "refunded"]
    assert all(entry["source"] == "setStatus" for entry in history)


def test_init_session_identical_reinit_writes_nothing(ledger):
    key = LedgerKey("O-1")
    first = ledger.init_session(key, amount="10.00", currency="USD", customer_id="C1")
    second = ledger.init_session(key, amount="10.00", currency="USD", customer_id="C1")
    assert first.status == second.status == "initiated"
    assert second.state_version == first.state_version
    assert second.status_history == first.status_history


def test_init_session_conflicts_list_each_field(ledger):
    key = LedgerKey("O-1")
    ledger.init_session(key, amount="10.00", currency="USD", customer_id="C1")

    with pytest.raises(IdempotencyConflict) as excinfo:
        ledger.init_session(key, amount="12.00", currency="EUR", customer_id="C2")

    assert excinfo.value.conflicts == [
        {"field": "amount", "existing": "10.00", "requested": "12.00"},
        {"field": "currency", "existing": "USD", "requested": "EUR"},
        {"field": "customerId", "existing": "C1", "requested": "C2"},
    ]
    assert ledger.get("O-1").amount == "10.00"


def test_init_session_backfills_placeholder_without_touching_status(ledger):
    key = LedgerKey("O-1")
    ledger.set_status(key, "returned_success", "txn-1")
    history = ledger.get("O-1").status_history

    row = ledger.init_session(key, amount="10.00", currency="USD", customer_id="C1")

    assert row.status == "returned_success"
    assert (row.amount, row.currency, row.customer_id) == ("10.00", "USD", "C1")
    assert row.status_history == history


def test_attempt_key_adopts_order_placeholder(ledger, session_factory):
    ledger.set_status(LedgerKey("O-1"), "returned_success")
    row = ledger.init_session(
        LedgerKey("O-1", payment_attempt_id="pay-1", shop_scope="a.myshoplazza.com"),
        amount="10.00",
        currency="USD",
        customer_id=None,
        status="pending",
    )
    assert row.payment_attempt_id == "pay-1"
    assert row.shop_scope == "a.myshoplazza.com"
    assert _count(session_factory, "O-1") == 1
    assert ledger.get_by_attempt("pay-1").id == row.id


def test_separate_attempts_get_separate_rows(ledger, session_factory):
    ledger.init_session(LedgerKey("O-1", "pay-1"), amount="10.00", currency="USD", customer_id=None)
    ledger.init_session(LedgerKey("O-1", "pay-2"), amount="10.00", currency="USD", customer_id=None)
    assert _count(session_factory, "O-1") == 2
    assert ledger.get("O-1").payment_attempt_id == "pay-2"
    assert ledger.get("O-1", payment_attempt_id="pay-1").payment_attempt_id == "pay-1"


def test_shop_scope_isolates_orders(ledger):
    ledger.create_or_update(LedgerKey("O-1", shop_scope="a.myshoplazza.com"), status="paid")
    assert ledger.get("O-1", shop_scope="b.myshoplazza.com") is None
    assert ledger.get("O-1", shop_scope="a.myshoplazza.com").status == "paid"
    assert ledger.get("O-1").status == "paid"


def test_get_missing_returns_none(ledger):
    assert ledger.get("nope") is None
    assert ledger.get("") is None
    assert ledger.get_by_attempt("") is None


def test_list_recent_newest_first(ledger):
    for order_id in ("O-1", "O-2", "O-3"):
        ledger.create_or_update(LedgerKey(order_id))
    assert [row.order_id for row in ledger.list_recent(2)] == ["O-3", "O-2"]


def test_concurrent_first_writes_collapse_to_one_row(session_factory):
    """First writer inserts; the others re-read and merge into it."""

    ledger = LedgerService(session_factory, max_write_attempts=10)
    barrier = threading.Barrier(6)
    errors: list[Exception] = []
    statuses = ["initiated", "pending", "returned_success", "paid", "pending", "initiated"]

    def writer(status: str) -> None:
        barrier.wait()
        try:
            ledger.set_status(LedgerKey("O-race"), status)
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(status,)) for status in statuses]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert _count(session_factory, "O-race") == 1
    assert ledger.get("O-race").status == "paid"


def test_concurrent_first_writes_with_mixed_key_shapes(session_factory):
    """Order-only and attempt-scoped first writers still share one row."""

    ledger = LedgerService(session_factory, max_write_attempts=10)
    orders = [f"O-mix-{n}" for n in range(20)]

    for order_id in orders:
        barrier = threading.Barrier(2)
        errors: list[Exception] = []

        def writer(key: LedgerKey, status: str) -> None:
            barrier.wait()
            try:
                ledger.set_status(key, status)
            except Exception as exc:
                errors.append(exc)

        threads = [
            threading.Thread(target=writer, args=(LedgerKey(order_id), "initiated")),
            threading.Thread(
                target=writer,
                args=(LedgerKey(order_id, "pid-1", "s.myshoplazza.com"), "returned_success"),
            ),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert _count(session_factory, order_id) == 1
        row = ledger.get(order_id)
        assert row.status == "returned_success"
        assert (row.payment_attempt_id, row.shop_scope) == ("pid-1", "s.myshoplazza.com")


def test_first_attempt_row_carries_its_identity(ledger):
    row = ledger.set_status(LedgerKey("O-1", "pid-1", "s.myshoplazza.com"), "returned_success")
    assert (row.payment_attempt_id, row.shop_scope) == ("pid-1", "s.myshoplazza.com")
    assert ledger.get_by_attempt("pid-1").id == row.id


def test_lost_version_race_is_retried(ledger, session_factory):
    key = LedgerKey("O-1")
    ledger.set_status(key, "returned_success")
    calls = []

    def plan(current):
        calls.append(current.state_version)
        if len(calls) == 1:
            # A concurrent writer lands between our read and our write.
            with session_factory() as db:
                db.execute(
                    update(Payment)
                    .where(Payment.id == current.id)
                    .values(status="paid", state_version=current.state_version + 1)
                )
                db.commit()
        return {"gateway_txn_id": "txn-1"}

    row = ledger._write(key, plan, "test")

    assert calls == [0, 1]
    assert row.status == "paid"
    assert row.gateway_txn_id == "txn-1"
    assert row.state_version == 2


def test_write_gives_up_after_max_attempts(session_factory):
    ledger = LedgerService(session_factory, max_write_attempts=2)
    key = LedgerKey("O-1")
    ledger.set_status(key, "pending")

    def plan(current):
        with session_factory() as db:
            db.execute(update(Payment).where(Payment.id == current.id).values(state_version=Payment.state_version + 1))
            db.commit()
        return {"status": "paid"}

    with pytest.raises(LedgerWriteConflict):
        ledger._write(key, plan, "test")
