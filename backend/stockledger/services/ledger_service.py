# Overview: Stock ledger and projector; the only write path into stock counters.

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import VariantStock, LedgerEntry
from ..models.ledger import (
    ENTRY_ADJUSTMENT,
    ENTRY_RESERVE,
    ENTRY_COMMIT,
    ENTRY_RELEASE,
    ENTRY_TYPES,
    REASONS_BY_ENTRY_TYPE,
    COUNTER_EFFECTS,
)
from ..errors import (
    InsufficientStockError,
    UnknownVariantError,
    NegativeAdjustmentBelowZeroError,
    LedgerInvariantError,
)
from ..validation import (
    ValidationError,
    require_positive_quantity,
    require_nonzero_quantity,
    require_text,
    optional_text,
)
from .concurrency import lock_for_update, begin_write_transaction, run_with_retry
"""
Stock Ledger & Projector Invariants (authoritative)

- apply_ledger_entry() is the only code that changes VariantStock.on_hand/reserved.
- Counter update and ledger insert happen in one DB transaction (all-or-nothing).
- Per variant, writers serialize on the VariantStock row:
    * SELECT ... FOR UPDATE where the dialect honours it,
    * BEGIN IMMEDIATE on SQLite,
    * version_id optimistic check everywhere.
- Only RESERVE checks availability. ADJUST checks on_hand >= reserved.
  COMMIT/RELEASE only guard against negative counters (which would mean the
  projector disagrees with the reservations table).
- No external I/O inside the transaction.
- The projector is rebuildable: folding the ledger from (0, 0) in
  (created_at, id) order must reproduce the counters exactly.
"""


def get_variant_stock(variant_id: str, *, lock: bool = False) -> VariantStock:
    query = db.session.query(VariantStock).filter_by(variant_id=variant_id)
    if lock:
        # re-read even if the row is already in the identity map
        query = lock_for_update(query).populate_existing()
    variant = query.first()
    if variant is None:
        raise UnknownVariantError(variant_id)
    return variant


def _normalize_delta(entry_type: str, delta) -> int:
    """Callers pass a signed change for adjustments and a positive quantity otherwise."""
    if entry_type == ENTRY_ADJUSTMENT:
        return require_nonzero_quantity("quantity_delta", delta)
    qty = require_positive_quantity("quantity", delta)
    if entry_type == ENTRY_RESERVE:
        return qty
    # commit and release both remove the hold
    return -qty


def _apply_locked(
    variant: VariantStock,
    *,
    entry_type: str,
    quantity_delta: int,
    reason: str,
    reference_id: str | None,
    notes: str | None,
    actor_id: str,
) -> LedgerEntry:
    """Core projector step: compute, check, write counters, append row. No commit."""
    on_hand_sign, reserved_sign = COUNTER_EFFECTS[entry_type]
    new_on_hand = variant.on_hand + on_hand_sign * quantity_delta
    new_reserved = variant.reserved + reserved_sign * quantity_delta

    if entry_type == ENTRY_RESERVE:
        if new_on_hand - new_reserved < 0:
            current_app.logger.warning(
                "Insufficient stock for %s: requested %d, available %d",
                variant.variant_id, quantity_delta, variant.available,
            )
            raise InsufficientStockError(variant.variant_id, quantity_delta, variant.available)
    elif entry_type == ENTRY_ADJUSTMENT:
        if new_on_hand < new_reserved:
            raise NegativeAdjustmentBelowZeroError(
                variant.variant_id, variant.on_hand, variant.reserved, quantity_delta
            )
    elif new_reserved < 0 or new_on_hand < 0 or new_on_hand < new_reserved:
        raise LedgerInvariantError(
            f"{entry_type} of {-quantity_delta} would leave variant {variant.variant_id} "
            f"at on_hand={new_on_hand}, reserved={new_reserved}",
            variant_id=variant.variant_id,
            on_hand=variant.on_hand,
            reserved=variant.reserved,
        )

    variant.on_hand = new_on_hand
    variant.reserved = new_reserved

    entry = LedgerEntry(
        variant_id=variant.variant_id,
        entry_type=entry_type,
        quantity_delta=quantity_delta,
        reason=reason,
        reference_id=reference_id,
        notes=notes,
        actor_id=actor_id,
        resulting_on_hand=new_on_hand,
        resulting_reserved=new_reserved,
    )
    db.session.add(entry)
    db.session.flush()  # versioned counter UPDATE + INSERT; assigns entry.id
    return entry


def append_entry_in_transaction(
    *,
    variant_id: str,
    entry_type: str,
    delta: int,
    reason: str,
    reference_id: str | None = None,
    notes: str | None = None,
    actor_id: str,
) -> LedgerEntry:
    """
    Apply one ledger entry inside the caller's open transaction.

    Used by the reservation manager so that a status transition and its
    ledger row commit together. Does NOT commit or retry; the caller owns both.
    """
    if entry_type not in ENTRY_TYPES:
        raise ValidationError(f"entry_type must be one of: {', '.join(ENTRY_TYPES)}")
    if reason not in REASONS_BY_ENTRY_TYPE[entry_type]:
        raise ValidationError(f"reason {reason!r} is not valid for {entry_type} entries")

    quantity_delta = _normalize_delta(entry_type, delta)
    actor = require_text("actor_id", actor_id)

    begin_write_transaction()
    variant = get_variant_stock(variant_id, lock=True)
    return _apply_locked(
        variant,
        entry_type=entry_type,
        quantity_delta=quantity_delta,
        reason=reason,
        reference_id=optional_text("reference_id", reference_id),
        notes=optional_text("notes", notes, max_length=None),
        actor_id=actor,
    )


def apply_ledger_entry(
    variant_id: str,
    entry_type: str,
    delta: int,
    reason: str,
    reference_id: str | None = None,
    notes: str | None = None,
    actor_id: str = "system",
) -> LedgerEntry:
    """
    Apply a stock movement and record it, as one retried transaction.

    delta: signed change for 'adjustment'; positive quantity for
    'reserve', 'commit' and 'release' (the stored sign is derived).

    Raises InsufficientStockError, NegativeAdjustmentBelowZeroError,
    UnknownVariantError, LedgerInvariantError, ValidationError, StorageError.
    """
    def _op():
        entry = append_entry_in_transaction(
            variant_id=variant_id,
            entry_type=entry_type,
            delta=delta,
            reason=reason,
            reference_id=reference_id,
            notes=notes,
            actor_id=actor_id,
        )
        db.session.commit()
        return entry

    return run_with_retry(_op)


def replay_ledger(variant_id: str) -> tuple[int, int]:
    """
    Fold every ledger row for a variant from (0, 0) in (created_at, id) order.

    Returns (on_hand, reserved) as the ledger says they should be.
    """
    on_hand = 0
    reserved = 0
    rows = (
        db.session.query(LedgerEntry.entry_type, LedgerEntry.quantity_delta)
        .filter(LedgerEntry.variant_id == variant_id)
        .order_by(LedgerEntry.created_at.asc(), LedgerEntry.id.asc())
    )
    for entry_type, quantity_delta in rows:
        on_hand_sign, reserved_sign = COUNTER_EFFECTS[entry_type]
        on_hand += on_hand_sign * quantity_delta
        reserved += reserved_sign * quantity_delta
    return on_hand, reserved


@dataclass
class ReconcileReport:
    variant_id: str
    projected_on_hand: int
    projected_reserved: int
    ledger_on_hand: int
    ledger_reserved: int
    fixed: bool = False

    @property
    def in_sync(self) -> bool:
        return (
            self.projected_on_hand == self.ledger_on_hand
            and self.projected_reserved == self.ledger_reserved
        )

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "projected": {"on_hand": self.projected_on_hand, "reserved": self.projected_reserved},
            "ledger": {"on_hand": self.ledger_on_hand, "reserved": self.ledger_reserved},
            "in_sync": self.in_sync,
            "fixed": self.fixed,
        }


def reconcile_variant(variant_id: str, *, fix: bool = False) -> ReconcileReport:
    """
    Compare projector counters with a ledger replay.

    fix=True rebuilds the counters from the ledger. That is a projector
    rebuild, not a stock movement, so no ledger row is appended.
    """
    def _op():
        if fix:
            begin_write_transaction()
        variant = get_variant_stock(variant_id, lock=fix)
        ledger_on_hand, ledger_reserved = replay_ledger(variant_id)
        report = ReconcileReport(
            variant_id=variant_id,
            projected_on_hand=variant.on_hand,
            projected_reserved=variant.reserved,
            ledger_on_hand=ledger_on_hand,
            ledger_reserved=ledger_reserved,
        )
        if report.in_sync:
            if fix:
                db.session.rollback()
            return report

        current_app.logger.warning(
            "Projector drift for %s: projected=(%d, %d) ledger=(%d, %d)",
            variant_id, variant.on_hand, variant.reserved, ledger_on_hand, ledger_reserved,
        )
        if fix:
            if ledger_reserved < 0 or ledger_on_hand < ledger_reserved:
                raise LedgerInvariantError(
                    f"ledger replay for {variant_id} violates on_hand >= reserved >= 0",
                    variant_id=variant_id,
                    on_hand=ledger_on_hand,
                    reserved=ledger_reserved,
                )
            variant.on_hand = ledger_on_hand
            variant.reserved = ledger_reserved
            db.session.commit()
            report.fixed = True
            current_app.logger.info("Rebuilt projector counters for %s from ledger", variant_id)
        return report

    return run_with_retry(_op)


def reconcile_all(*, fix: bool = False) -> list[ReconcileReport]:
    variant_ids = [vid for (vid,) in db.session.query(VariantStock.variant_id).order_by(VariantStock.variant_id)]
    return [reconcile_variant(vid, fix=fix) for vid in variant_ids]
