# Overview: Registration of stock rows for catalogue variants; never touches counters.

from __future__ import annotations

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import VariantStock
from ..validation import ValidationError, require_text, optional_text, parse_bool
from .ledger_service import get_variant_stock
from .concurrency import run_with_retry

# Fields an operator or the catalogue may change. Counters are deliberately absent:
# on_hand moves through adjustment_service.adjust, reserved through reservations.
MUTABLE_FIELDS = {"product_id", "sku", "name", "track_inventory"}
COUNTER_FIELDS = {"on_hand", "reserved", "available"}


def register_variant(
    variant_id: str,
    *,
    product_id: str | None = None,
    sku: str | None = None,
    name: str | None = None,
    track_inventory: bool = True,
) -> VariantStock:
    """
    Create the stock row for a catalogue variant with zero counters.

    Initial stock is added afterwards with a 'restock' adjustment so that the
    ledger replays to the same counters.
    """
    vid = require_text("variant_id", variant_id)
    tracked = parse_bool("track_inventory", track_inventory)

    def _op():
        if db.session.get(VariantStock, vid) is not None:
            raise ValidationError(f"variant {vid} is already registered")
        variant = VariantStock(
            variant_id=vid,
            product_id=optional_text("product_id", product_id),
            sku=optional_text("sku", sku),
            name=optional_text("name", name, max_length=255),
            track_inventory=tracked,
            on_hand=0,
            reserved=0,
        )
        db.session.add(variant)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ValidationError(f"variant {vid} is already registered")
        return variant

    return run_with_retry(_op)


def update_variant(variant_id: str, changes: dict) -> VariantStock:
    """Update descriptive fields or the tracking flag. Counter fields are rejected."""
    forbidden = sorted(set(changes) & COUNTER_FIELDS)
    if forbidden:
        raise ValidationError(
            f"{', '.join(forbidden)} cannot be written directly; use an inventory adjustment"
        )
    unknown = sorted(set(changes) - MUTABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(unknown)}")
    if "track_inventory" in changes:
        changes = {**changes, "track_inventory": parse_bool("track_inventory", changes["track_inventory"])}

    def _op():
        variant = get_variant_stock(variant_id, lock=True)
        for key, value in changes.items():
            if key == "track_inventory":
                variant.track_inventory = value
            elif key == "name":
                variant.name = optional_text(key, value, max_length=255)
            else:
                setattr(variant, key, optional_text(key, value))
        db.session.commit()
        return variant

    return run_with_retry(_op)
