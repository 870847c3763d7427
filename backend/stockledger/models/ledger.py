from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from stockledger.time_utils import utcnow, to_utc_z


ENTRY_ADJUSTMENT = "adjustment"
ENTRY_RESERVE = "reserve"
ENTRY_COMMIT = "commit"
ENTRY_RELEASE = "release"

ENTRY_TYPES = (ENTRY_ADJUSTMENT, ENTRY_RESERVE, ENTRY_COMMIT, ENTRY_RELEASE)

# Operator-facing reasons (the Admin UI's fixed enum)
ADJUSTMENT_REASONS = ("manual_adjustment", "restock", "correction", "damage", "return")

REASON_CHECKOUT_RESERVE = "checkout_reserve"
REASON_CHECKOUT_COMMIT = "checkout_commit"
REASON_CHECKOUT_RELEASE = "checkout_release"
REASON_EXPIRY_RELEASE = "expiry_release"

REASONS_BY_ENTRY_TYPE = {
    ENTRY_ADJUSTMENT: frozenset(ADJUSTMENT_REASONS),
    ENTRY_RESERVE: frozenset({REASON_CHECKOUT_RESERVE}),
    ENTRY_COMMIT: frozenset({REASON_CHECKOUT_COMMIT}),
    ENTRY_RELEASE: frozenset({REASON_CHECKOUT_RELEASE, REASON_EXPIRY_RELEASE}),
}

# (on_hand sign, reserved sign) applied to the stored quantity_delta
COUNTER_EFFECTS = {
    ENTRY_ADJUSTMENT: (1, 0),
    ENTRY_RESERVE: (0, 1),
    ENTRY_COMMIT: (1, 1),
    ENTRY_RELEASE: (0, 1),
}


class LedgerEntry(db.Model):
    """
    Append-only stock ledger row.

    LEDGER INVARIANTS (authoritative):
    - Written in the same DB transaction as the VariantStock counter update.
    - Never updated or deleted; corrections are new adjustment entries.
    - quantity_delta is the signed change to the primary counter:
        adjustment: +/-n to on_hand
        reserve:    +q to reserved
        commit:     -q to on_hand AND reserved
        release:    -q to reserved (reason checkout_release or expiry_release)
    - resulting_on_hand / resulting_reserved snapshot the counters after this row.
    - Total order per variant is (created_at, id).
    """
    __tablename__ = "ledger_entries"
    __table_args__ = (
        db.Index("ix_ledger_variant_created", "variant_id", "created_at", "id"),
        db.Index("ix_ledger_type_created", "entry_type", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    variant_id = db.Column(
        db.String(64), db.ForeignKey("variants_stock.variant_id"), nullable=False, index=True
    )

    entry_type = db.Column(db.String(16), nullable=False)
    quantity_delta = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(32), nullable=False, index=True)

    # Order reference for commits, reservation id for reserve/release, optional for adjustments
    reference_id = db.Column(db.String(64), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)
    actor_id = db.Column(db.String(64), nullable=False, index=True)

    # Python-side default: microsecond resolution keeps per-variant ordering stable
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    resulting_on_hand = db.Column(db.Integer, nullable=False)
    resulting_reserved = db.Column(db.Integer, nullable=False)

    variant = db.relationship("VariantStock", backref=db.backref("ledger_entries", lazy="dynamic"))

    @property
    def on_hand_delta(self) -> int:
        return COUNTER_EFFECTS[self.entry_type][0] * self.quantity_delta

    @property
    def reserved_delta(self) -> int:
        return COUNTER_EFFECTS[self.entry_type][1] * self.quantity_delta

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry id={self.id} variant_id={self.variant_id!r} "
            f"{self.entry_type}/{self.reason} delta={self.quantity_delta}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "entry_type": self.entry_type,
            "quantity_delta": self.quantity_delta,
            "on_hand_delta": self.on_hand_delta,
            "reserved_delta": self.reserved_delta,
            "reason": self.reason,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "actor_id": self.actor_id,
            "created_at": to_utc_z(self.created_at),
            "resulting_on_hand": self.resulting_on_hand,
            "resulting_reserved": self.resulting_reserved,
        }


@event.listens_for(LedgerEntry, "before_update")
def _reject_ledger_update(mapper, connection, target):
    raise RuntimeError(f"ledger entries are append-only (attempted update of id={target.id})")


@event.listens_for(LedgerEntry, "before_delete")
def _reject_ledger_delete(mapper, connection, target):
    raise RuntimeError(f"ledger entries are append-only (attempted delete of id={target.id})")
