from __future__ import annotations

from ..extensions import db
from stockledger.time_utils import to_utc_z


class VariantStock(db.Model):
    """
    Projector row: denormalized stock counters for one variant.

    The variant itself (product, attributes, pricing) belongs to the catalogue.
    This row exists so that stock can be held and counted against it.

    INVARIANTS:
    - on_hand >= reserved >= 0, so available = on_hand - reserved >= 0
    - Counters are written ONLY by ledger_service.apply_ledger_entry (or a
      projector rebuild from the ledger). Never PATCH these fields directly.

    CONCURRENCY:
    version_id is an optimistic-lock column. Every counter write is
    UPDATE ... WHERE version_id = :seen, so a writer that read stale counters
    fails with StaleDataError and is retried instead of overwriting.
    """
    __tablename__ = "variants_stock"
    __table_args__ = (
        db.CheckConstraint("on_hand >= 0", name="ck_variants_stock_on_hand_nonneg"),
        db.CheckConstraint("reserved >= 0", name="ck_variants_stock_reserved_nonneg"),
        db.CheckConstraint("on_hand >= reserved", name="ck_variants_stock_available_nonneg"),
        db.Index("ix_variants_stock_tracked", "track_inventory"),
    )

    variant_id = db.Column(db.String(64), primary_key=True)

    product_id = db.Column(db.String(64), nullable=True, index=True)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)

    # If false, stock checks are bypassed and the variant is always available
    track_inventory = db.Column(db.Boolean, nullable=False, default=True)

    on_hand = db.Column(db.Integer, nullable=False, default=0)
    reserved = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available(self) -> int:
        return self.on_hand - self.reserved

    def __repr__(self) -> str:
        return (
            f"<VariantStock variant_id={self.variant_id!r} on_hand={self.on_hand} "
            f"reserved={self.reserved} tracked={self.track_inventory}>"
        )

    def to_dict(self) -> dict:
        return {
            "variant_id": self.variant_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "track_inventory": self.track_inventory,
            "on_hand": self.on_hand,
            "reserved": self.reserved,
            "available": self.available,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
