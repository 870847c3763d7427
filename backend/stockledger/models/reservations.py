from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import utcnow, to_utc_z


STATUS_ACTIVE = "active"
STATUS_COMMITTED = "committed"
STATUS_RELEASED = "released"
STATUS_EXPIRED = "expired"

TERMINAL_STATUSES = (STATUS_COMMITTED, STATUS_RELEASED, STATUS_EXPIRED)


class Reservation(db.Model):
    """
    Checkout-time hold against a variant's available stock.

    LIFECYCLE:
    active -> committed | released | expired   (exactly one, never back to active)

    COMPARE-AND-SWAP:
    Transitions lock the row and bump version_id. Two racing transitions
    (e.g. a late commit and the expiry sweep) cannot both succeed: the loser
    either re-reads a terminal status or fails its versioned UPDATE and
    re-reads it on retry.

    tracked=False marks a hold taken against a variant with
    track_inventory disabled. It follows the same lifecycle but never
    touches the ledger or the counters.
    """
    __tablename__ = "reservations"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_reservations_quantity_positive"),
        # Sweep selects active holds by expiry
        db.Index("ix_reservations_status_expires", "status", "expires_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    variant_id = db.Column(
        db.String(64), db.ForeignKey("variants_stock.variant_id"), nullable=False, index=True
    )
    quantity = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default=STATUS_ACTIVE)
    tracked = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    order_reference = db.Column(db.String(64), nullable=True, index=True)
    created_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    variant = db.relationship("VariantStock", backref=db.backref("reservations", lazy="dynamic"))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_active(self) -> bool:
        return self.status == STATUS_ACTIVE

    def __repr__(self) -> str:
        return f"<Reservation id={self.id} variant_id={self.variant_id!r} qty={self.quantity} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "variant_id": self.variant_id,
            "quantity": self.quantity,
            "status": self.status,
            "tracked": self.tracked,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
            "resolved_at": to_utc_z(self.resolved_at) if self.resolved_at else None,
            "order_reference": self.order_reference,
            "created_by": self.created_by,
        }
