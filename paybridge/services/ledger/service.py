"""Forward-only payment ledger.

Merges buyer-return and gateway-notify updates into one row per order /
payment attempt. Every write is a read-modify-write guarded by optimistic
concurrency on `state_version`; inserts lean on the unique constraint so
concurrent first writers collapse into a single row.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Callable

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError

from paybridge.common.errors import IdempotencyConflict
from paybridge.common.logging import logger
from paybridge.common.metrics import ledger_write_retries_total, ledger_writes_total
from paybridge.common.state_machine import can_advance
from paybridge.services.ledger.models import Payment, utcnow

INITIATED = "initiated"
PENDING = "pending"


class LedgerWriteConflict(RuntimeError):
    """A write kept losing to concurrent writers."""


@dataclass(frozen=True)
class LedgerKey:
    """Identifies a payment row. Missing attempt/shop widen the match."""

    order_id: str
    payment_attempt_id: str | None = None
    shop_scope: str | None = None


def normalize_amount(value) -> str | None:
    """Major-unit amount as a two-decimal string, or None when unparseable."""

    if value is None or isinstance(value, bool):
        return None
    text = str(value).replace(",", "").replace(" ", "")
    if not text:
        return None
    try:
        amount = Decimal(text)
        if not amount.is_finite():
            return None
        # Values beyond the context precision cannot be quantized.
        return str(amount.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
    except InvalidOperation:
        return None


def minor_to_major(amount_minor: int) -> str | None:
    return normalize_amount(Decimal(amount_minor) / 100)


def history_entry(status: str, source: str) -> dict:
    return {"ts": datetime.now(timezone.utc).isoformat(), "status": status, "source": source}


class LedgerService:
    """Owns the payments table and its forward-only status rule."""

    def __init__(self, session_factory, service_name: str = "ledger", max_write_attempts: int = 5) -> None:
        self.session_factory = session_factory
        self.service_name = service_name
        self.max_write_attempts = max_write_attempts

    # ----------------------------------------------------------------- reads

    def _scoped(self, stmt, key: LedgerKey):
        stmt = stmt.where(Payment.order_id == key.order_id)
        if key.shop_scope:
            stmt = stmt.where(or_(Payment.shop_scope == key.shop_scope, Payment.shop_scope == ""))
        return stmt

    def _resolve(self, db, key: LedgerKey) -> Payment | None:
        """Attempt rows match exactly, else adopt the order's attempt-less placeholder."""

        base = self._scoped(select(Payment), key).order_by(Payment.id.desc()).limit(1)
        if key.payment_attempt_id:
            exact = db.execute(base.where(Payment.payment_attempt_id == key.payment_attempt_id)).scalar_one_or_none()
            if exact is not None:
                return exact
            return db.execute(base.where(Payment.payment_attempt_id == "")).scalar_one_or_none()
        return db.execute(base).scalar_one_or_none()

    def get(self, order_id: str, payment_attempt_id: str | None = None, shop_scope: str | None = None) -> Payment | None:
        if not order_id:
            return None
        with self.session_factory() as db:
            return self._resolve(db, LedgerKey(order_id, payment_attempt_id, shop_scope))

    def get_by_attempt(self, payment_attempt_id: str) -> Payment | None:
        if not payment_attempt_id:
            return None
        with self.session_factory() as db:
            return db.execute(
                select(Payment)
                .where(Payment.payment_attempt_id == payment_attempt_id)
                .order_by(Payment.id.desc())
                .limit(1)
            ).scalar_one_or_none()

    def list_recent(self, limit: int = 50) -> list[Payment]:
        limit = max(1, min(200, int(limit)))
        with self.session_factory() as db:
            return list(db.execute(select(Payment).order_by(Payment.id.desc()).limit(limit)).scalars())

    # ---------------------------------------------------------------- writes

    def _write(self, key: LedgerKey, plan: Callable[[Payment | None], dict | None], operation: str) -> Payment | None:
        """Run `plan` against the freshly read row and persist its values.

        `plan` returns column values to insert (row absent), changes to apply
        (row present), or None for a no-op. A lost race re-reads and re-plans.
        """

        for attempt in range(1, self.max_write_attempts + 1):
            with self.session_factory() as db:
                current = self._resolve(db, key)
                values = plan(current)
                if values is None:
                    return current
                try:
                    if current is None:
                        claim = self._first_for_order(db, key)
                        if claim:
                            # The order's first row always lands on the blank key so
                            # concurrent first writers collide whatever their key shape.
                            values = {**values, "shop_scope": "", "payment_attempt_id": ""}
                        row = Payment(**values)
                        db.add(row)
                        db.commit()
                        if claim:
                            return self._claim_identity(row.id, key, operation)
                        return row

                    version = current.state_version
                    result = db.execute(
                        update(Payment)
                        .where(Payment.id == current.id, Payment.state_version == version)
                        .values(**values, state_version=version + 1, updated_at=utcnow())
                    )
                    if result.rowcount != 1:
                        db.rollback()
                        ledger_write_retries_total.labels(operation=operation).inc()
                        logger.info(
                            "ledger version conflict order_id=%s expected_version=%s attempt=%s",
                            key.order_id,
                            version,
                            attempt,
                        )
                        continue
                    db.commit()
                    db.refresh(current)
                    return current
                except IntegrityError:
                    # Another writer created the row first; merge into it.
                    db.rollback()
                    ledger_write_retries_total.labels(operation=operation).inc()
                    logger.info("ledger insert raced order_id=%s attempt=%s", key.order_id, attempt)

        raise LedgerWriteConflict(
            f"ledger write for order {key.order_id} lost {self.max_write_attempts} concurrent races"
        )

    def _first_for_order(self, db, key: LedgerKey) -> bool:
        if not (key.payment_attempt_id or key.shop_scope):
            return False
        existing = db.execute(self._scoped(select(Payment.id), key).limit(1)).scalar_one_or_none()
        return existing is None

    def _claim_identity(self, row_id: int, key: LedgerKey, operation: str) -> Payment:
        """Fill the blank attempt/shop of a freshly inserted row via a versioned update."""

        for attempt in range(1, self.max_write_attempts + 1):
            with self.session_factory() as db:
                row = db.get(Payment, row_id)
                changes = self._identity_changes(row, key)
                if not changes:
                    return row
                version = row.state_version
                result = db.execute(
                    update(Payment)
                    .where(Payment.id == row_id, Payment.state_version == version)
                    .values(**changes, state_version=version + 1, updated_at=utcnow())
                )
                if result.rowcount != 1:
                    db.rollback()
                    ledger_write_retries_total.labels(operation=operation).inc()
                    logger.info("ledger identity claim raced order_id=%s attempt=%s", key.order_id, attempt)
                    continue
                db.commit()
                db.refresh(row)
                return row

        raise LedgerWriteConflict(
            f"ledger identity claim for order {key.order_id} lost {self.max_write_attempts} concurrent races"
        )

    def _identity_changes(self, current: Payment, key: LedgerKey) -> dict:
        changes = {}
        if key.payment_attempt_id and not current.payment_attempt_id:
            changes["payment_attempt_id"] = key.payment_attempt_id
        if key.shop_scope and not current.shop_scope:
            changes["shop_scope"] = key.shop_scope
        return changes

    def _new_row(self, key: LedgerKey, status: str, source: str, append_history: bool, **fields) -> dict:
        return {
            "shop_scope": key.shop_scope or "",
            "order_id": key.order_id,
            "payment_attempt_id": key.payment_attempt_id or "",
            "status": status,
            "status_history": [history_entry(status, source)] if append_history else [],
            "state_version": 0,
            **fields,
        }

    def create_or_update(
        self,
        key: LedgerKey,
        *,
        status: str | None = None,
        customer_id: str | None = None,
        amount: str | None = None,
        currency: str | None = None,
        gateway_txn_id: str | None = None,
        raw_notify: dict | None = None,
        source: str = "createOrUpdate",
        append_history: bool = True,
        default_status: str = PENDING,
    ) -> Payment:
        """Insert the row or merge non-null fields into it.

        `customer_id` is only ever filled, never replaced. `status` applies
        only when it does not lower the rank; a lower status is ignored.
        """

        def plan(current: Payment | None) -> dict | None:
            if current is None:
                return self._new_row(
                    key,
                    status or default_status,
                    source,
                    append_history,
                    customer_id=customer_id,
                    amount=amount,
                    currency=currency,
                    gateway_txn_id=gateway_txn_id,
                    raw_notify=raw_notify,
                )

            changes = self._identity_changes(current, key)
            if customer_id is not None and current.customer_id is None:
                changes["customer_id"] = customer_id
            for column, value in (
                ("amount", amount),
                ("currency", currency),
                ("gateway_txn_id", gateway_txn_id),
                ("raw_notify", raw_notify),
            ):
                if value is not None and value != getattr(current, column):
                    changes[column] = value

            next_status = current.status
            if status and can_advance(current.status, status):
                next_status = status
            if next_status != current.status:
                changes["status"] = next_status
            if append_history:
                changes["status_history"] = [*(current.status_history or []), history_entry(next_status, source)]
            return changes or None

        row = self._write(key, plan, "create_or_update")
        ledger_writes_total.labels(source=source, outcome="merged").inc()
        return row

    def set_status(
        self,
        key: LedgerKey,
        status: str,
        gateway_txn_id: str | None = None,
        *,
        seed_status: str | None = None,
        raw_notify: dict | None = None,
        source: str = "setStatus",
    ) -> Payment:
        """Forward-only transition, seeding a placeholder row when none exists.

        A status that would lower the rank leaves status and history as they
        are; a non-null `gateway_txn_id` is still recorded.
        """

        outcome = {"value": "applied"}

        def plan(current: Payment | None) -> dict | None:
            if current is None:
                seed = seed_status or status
                values = self._new_row(
                    key, seed, source, True, gateway_txn_id=gateway_txn_id, raw_notify=raw_notify
                )
                if seed != status and can_advance(seed, status):
                    values["status"] = status
                    values["status_history"].append(history_entry(status, source))
                outcome["value"] = "seeded"
                return values

            changes = self._identity_changes(current, key)
            if gateway_txn_id and gateway_txn_id != current.gateway_txn_id:
                changes["gateway_txn_id"] = gateway_txn_id
            if not can_advance(current.status, status):
                outcome["value"] = "ignored"
                return changes or None

            if raw_notify is not None:
                changes["raw_notify"] = raw_notify
            changes["status"] = status
            changes["status_history"] = [*(current.status_history or []), history_entry(status, source)]
            outcome["value"] = "applied"
            return changes

        row = self._write(key, plan, "set_status")
        ledger_writes_total.labels(source=source, outcome=outcome["value"]).inc()
        logger.info(
            "ledger status order_id=%s requested=%s status=%s outcome=%s",
            key.order_id,
            status,
            row.status,
            outcome["value"],
        )
        return row

    def init_session(
        self,
        key: LedgerKey,
        *,
        amount: str,
        currency: str,
        customer_id: str | None,
        status: str = INITIATED,
        source: str = "init",
    ) -> Payment:
        """Idempotent session initialization.

        Differing non-null amount, currency or customer raise
        `IdempotencyConflict`; null fields are backfilled without touching
        history; an identical re-init writes nothing.
        """

        conflicts: list[dict] = []

        def plan(current: Payment | None) -> dict | None:
            conflicts.clear()
            if current is None:
                return self._new_row(
                    key, status, source, True, customer_id=customer_id, amount=amount, currency=currency
                )

            existing_amount = normalize_amount(current.amount)
            if existing_amount and existing_amount != amount:
                conflicts.append({"field": "amount", "existing": existing_amount, "requested": amount})
            if current.currency and current.currency != currency:
                conflicts.append({"field": "currency", "existing": current.currency, "requested": currency})
            if customer_id is not None and current.customer_id and current.customer_id != customer_id:
                conflicts.append(
                    {"field": "customerId", "existing": current.customer_id, "requested": customer_id}
                )
            if conflicts:
                return None

            changes = self._identity_changes(current, key)
            if current.amount is None:
                changes["amount"] = amount
            if current.currency is None:
                changes["currency"] = currency
            if current.customer_id is None and customer_id is not None:
                changes["customer_id"] = customer_id
            return changes or None

        row = self._write(key, plan, "init_session")
        if conflicts:
            ledger_writes_total.labels(source=source, outcome="conflict").inc()
            logger.info("ledger init conflict order_id=%s fields=%s", key.order_id, [c["field"] for c in conflicts])
            raise IdempotencyConflict(list(conflicts))
        ledger_writes_total.labels(source=source, outcome="initialized").inc()
        return row
