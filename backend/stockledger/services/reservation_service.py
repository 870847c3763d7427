# Overview: Checkout holds: reserve, commit, release, and the expiry sweep.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app

from ..extensions import db
from ..models import Reservation
from ..models.ledger import (
    ENTRY_RESERVE,
    ENTRY_COMMIT,
    ENTRY_RELEASE,
    REASON_CHECKOUT_RESERVE,
    REASON_CHECKOUT_COMMIT,
    REASON_CHECKOUT_RELEASE,
    REASON_EXPIRY_RELEASE,
)
from ..models.reservations import (
    STATUS_ACTIVE,
    STATUS_COMMITTED,
    STATUS_RELEASED,
    STATUS_EXPIRED,
)
from ..errors import (
    UnknownReservationError,
    InvalidReservationStateError,
    StockError,
)
from ..validation import coerce_int, require_positive_quantity, require_text
from stockledger.time_utils import utcnow, as_utc_naive
from .ledger_service import get_variant_stock, append_entry_in_transaction
from .concurrency import lock_for_update, begin_write_transaction, run_with_retry
"""
Reservation Invariants (authoritative)

- A reservation is created ACTIVE in the same transaction as its RESERVE ledger row.
- It leaves ACTIVE exactly once, to COMMITTED, RELEASED or EXPIRED, and the
  status change commits together with the matching COMMIT/RELEASE ledger row.
- Transitions are compare-and-swap: the row is locked (FOR UPDATE / BEGIN
  IMMEDIATE) and re-read, status must still be ACTIVE, and the UPDATE is
  guarded by version_id. A loser observes the terminal status.
- release() on a terminal reservation is a no-op. commit() on a terminal
  reservation raises InvalidReservationStateError; the caller decides
  whether that is idempotent success.
- The TTL is a single global setting (RESERVATION_TTL_SECONDS); expiry is
  enforced only by the sweep, never by an in-request timer.
- Untracked variants (track_inventory=False) get tracked=False reservations
  that never write to the ledger or the counters.
"""

CHECKOUT_ACTOR = "checkout"
SWEEP_ACTOR = "system:expiry-sweep"


def reservation_reference(reservation_id: int) -> str:
    return f"reservation:{reservation_id}"


def _resolve_now(now: datetime | None) -> datetime:
    return as_utc_naive(now) if now is not None else utcnow()


def _load_reservation(reservation_id, *, lock: bool = False) -> Reservation:
    rid = coerce_int("reservation_id", reservation_id)
    query = db.session.query(Reservation).filter_by(id=rid)
    if lock:
        query = lock_for_update(query).populate_existing()
    reservation = query.first()
    if reservation is None:
        raise UnknownReservationError(rid)
    return reservation


def get_reservation(reservation_id) -> Reservation:
    return _load_reservation(reservation_id)


def reserve(
    variant_id: str,
    quantity: int,
    *,
    actor_id: str = CHECKOUT_ACTOR,
    now: datetime | None = None,
) -> Reservation:
    """
    Hold `quantity` units of a variant for a checkout.

    Raises InsufficientStockError immediately when not enough is available.
    That is a hard failure for the customer and is never retried here.
    """
    qty = require_positive_quantity("quantity", quantity)
    actor = require_text("actor_id", actor_id)

    def _op():
        created_at = _resolve_now(now)
        ttl = int(current_app.config.get("RESERVATION_TTL_SECONDS", 900))

        begin_write_transaction()
        variant = get_variant_stock(variant_id, lock=True)

        reservation = Reservation(
            variant_id=variant.variant_id,
            quantity=qty,
            status=STATUS_ACTIVE,
            tracked=bool(variant.track_inventory),
            created_at=created_at,
            expires_at=created_at + timedelta(seconds=ttl),
            created_by=actor,
        )
        db.session.add(reservation)
        db.session.flush()  # assigns reservation.id for the ledger reference

        if reservation.tracked:
            append_entry_in_transaction(
                variant_id=variant.variant_id,
                entry_type=ENTRY_RESERVE,
                delta=qty,
                reason=REASON_CHECKOUT_RESERVE,
                reference_id=reservation_reference(reservation.id),
                actor_id=actor,
            )
        else:
            current_app.logger.debug(
                "Variant %s does not track inventory; hold %s bypasses the ledger",
                variant.variant_id, reservation.id,
            )

        db.session.commit()
        current_app.logger.debug(
            "Reserved %d x %s as reservation %s (expires %s)",
            qty, variant.variant_id, reservation.id, reservation.expires_at,
        )
        return reservation

    return run_with_retry(_op)


def _transition(
    reservation_id,
    *,
    to_status: str,
    attempted: str,
    entry_type: str,
    reason: str,
    actor_id: str,
    now: datetime,
    order_reference: str | None = None,
    require_expired: bool = False,
) -> Reservation:
    """
    Compare-and-swap ACTIVE -> to_status plus the matching ledger row. No commit.
    """
    begin_write_transaction()
    reservation = _load_reservation(reservation_id, lock=True)

    if reservation.status != STATUS_ACTIVE:
        raise InvalidReservationStateError(reservation.id, reservation.status, attempted)
    if require_expired and as_utc_naive(reservation.expires_at) >= now:
        # Only reachable if the TTL moved between selection and expiry; leave it alone
        raise InvalidReservationStateError(reservation.id, reservation.status, attempted)

    reservation.status = to_status
    reservation.resolved_at = now
    if order_reference is not None:
        reservation.order_reference = order_reference
    db.session.flush()  # versioned UPDATE: the swap itself

    if reservation.tracked:
        append_entry_in_transaction(
            variant_id=reservation.variant_id,
            entry_type=entry_type,
            delta=reservation.quantity,
            reason=reason,
            reference_id=order_reference or reservation_reference(reservation.id),
            notes=f"{attempted} of reservation {reservation.id}",
            actor_id=actor_id,
        )
    return reservation


def commit(
    reservation_id,
    order_reference: str,
    *,
    actor_id: str = CHECKOUT_ACTOR,
) -> Reservation:
    """
    Finalize a hold into a sale: on_hand and reserved both drop by the quantity.

    Raises InvalidReservationStateError if the reservation is not ACTIVE
    (already committed, released or expired). Status transition and ledger
    row are one transaction.
    """
    ref = require_text("order_reference", order_reference)
    actor = require_text("actor_id", actor_id)

    def _op():
        reservation = _transition(
            reservation_id,
            to_status=STATUS_COMMITTED,
            attempted="commit",
            entry_type=ENTRY_COMMIT,
            reason=REASON_CHECKOUT_COMMIT,
            actor_id=actor,
            now=utcnow(),
            order_reference=ref,
        )
        db.session.commit()
        current_app.logger.info(
            "Committed reservation %s (%d x %s) for order %s",
            reservation.id, reservation.quantity, reservation.variant_id, ref,
        )
        return reservation

    return run_with_retry(_op)


def release(reservation_id, *, actor_id: str = CHECKOUT_ACTOR) -> Reservation:
    """
    Return a hold to available stock.

    Idempotent: releasing a reservation that is already terminal changes
    nothing and returns it as-is.
    """
    actor = require_text("actor_id", actor_id)

    def _op():
        try:
            reservation = _transition(
                reservation_id,
                to_status=STATUS_RELEASED,
                attempted="release",
                entry_type=ENTRY_RELEASE,
                reason=REASON_CHECKOUT_RELEASE,
                actor_id=actor,
                now=utcnow(),
            )
        except InvalidReservationStateError as exc:
            db.session.rollback()
            current_app.logger.debug(
                "Release of reservation %s is a no-op (status %s)", exc.reservation_id, exc.status
            )
            return _load_reservation(exc.reservation_id)
        db.session.commit()
        current_app.logger.info(
            "Released reservation %s (%d x %s)",
            reservation.id, reservation.quantity, reservation.variant_id,
        )
        return reservation

    return run_with_retry(_op)


def expire_reservation(reservation_id, *, now: datetime | None = None) -> Reservation:
    """
    Expire one stale ACTIVE reservation (the sweep's unit of work).

    Raises InvalidReservationStateError when a commit/release won the race.
    """
    def _op():
        reservation = _transition(
            reservation_id,
            to_status=STATUS_EXPIRED,
            attempted="expire",
            entry_type=ENTRY_RELEASE,
            reason=REASON_EXPIRY_RELEASE,
            actor_id=SWEEP_ACTOR,
            now=_resolve_now(now),
            require_expired=True,
        )
        db.session.commit()
        return reservation

    return run_with_retry(_op)


@dataclass
class SweepResult:
    examined: int = 0
    expired: int = 0
    skipped: int = 0
    failed: int = 0

    def to_dict(self) -> dict:
        return {
            "examined": self.examined,
            "expired": self.expired,
            "skipped": self.skipped,
            "failed": self.failed,
        }


def find_stale_reservation_ids(*, now: datetime | None = None, limit: int | None = None) -> list[int]:
    cutoff = _resolve_now(now)
    if limit is None:
        limit = int(current_app.config.get("SWEEP_BATCH_SIZE", 500))
    rows = (
        db.session.query(Reservation.id)
        .filter(Reservation.status == STATUS_ACTIVE, Reservation.expires_at < cutoff)
        .order_by(Reservation.expires_at.asc(), Reservation.id.asc())
        .limit(limit)
    )
    return [rid for (rid,) in rows]


def expire_stale_reservations(*, now: datetime | None = None, limit: int | None = None) -> SweepResult:
    """
    One sweep pass: expire every ACTIVE reservation whose expires_at < now.

    Each reservation is its own transaction. Losing a race to a concurrent
    commit/release is expected and counted as skipped; any other failure on
    one reservation is logged and the pass continues.
    """
    cutoff = _resolve_now(now)
    result = SweepResult()

    stale_ids = find_stale_reservation_ids(now=cutoff, limit=limit)
    # end the read so each expiry starts its own write transaction
    db.session.commit()

    for rid in stale_ids:
        result.examined += 1
        try:
            expire_reservation(rid, now=cutoff)
        except InvalidReservationStateError as exc:
            result.skipped += 1
            current_app.logger.debug(
                "Sweep skipped reservation %s: already %s", rid, exc.status
            )
            continue
        except StockError:
            result.failed += 1
            current_app.logger.exception("Sweep failed to expire reservation %s", rid)
            continue
        result.expired += 1

    if result.expired or result.failed:
        current_app.logger.info("Expiry sweep: %s", result.to_dict())
    return result
