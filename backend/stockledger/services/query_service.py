# Overview: Read-only inventory projections; never takes write locks.

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import VariantStock, LedgerEntry
from ..models.ledger import ENTRY_ADJUSTMENT
from .ledger_service import get_variant_stock


def get_available(variant_id: str) -> dict:
    """
    Current counters for one variant.

    Untracked variants are always available: available is None and
    unlimited is True, so callers skip the stock check.
    """
    variant = get_variant_stock(variant_id)
    if not variant.track_inventory:
        return {
            "variant_id": variant.variant_id,
            "track_inventory": False,
            "on_hand": variant.on_hand,
            "reserved": variant.reserved,
            "available": None,
            "unlimited": True,
        }
    return {
        "variant_id": variant.variant_id,
        "track_inventory": True,
        "on_hand": variant.on_hand,
        "reserved": variant.reserved,
        "available": variant.available,
        "unlimited": False,
    }


def get_stock_levels(threshold: int | None = None, *, low_only: bool = False) -> list[dict]:
    """
    Stock levels for every tracked variant, lowest available first.

    is_low_stock is available < threshold.
    """
    if threshold is None:
        threshold = int(current_app.config.get("LOW_STOCK_THRESHOLD", 10))

    available_expr = VariantStock.on_hand - VariantStock.reserved
    q = db.session.query(VariantStock).filter(VariantStock.track_inventory.is_(True))
    if low_only:
        q = q.filter(available_expr < threshold)
    q = q.order_by(available_expr.asc(), VariantStock.variant_id.asc())

    return [
        {
            "variant_id": v.variant_id,
            "product_id": v.product_id,
            "sku": v.sku,
            "name": v.name,
            "on_hand": v.on_hand,
            "reserved": v.reserved,
            "current_stock": v.available,
            "is_low_stock": v.available < threshold,
        }
        for v in q.all()
    ]


@dataclass(frozen=True)
class AdjustmentFilters:
    variant_id: str | None = None
    product_id: str | None = None
    reason: str | None = None
    actor_id: str | None = None
    start: datetime | None = None
    end: datetime | None = None


def _newest_first(q):
    return q.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id.desc())


def get_adjustments(
    filters: AdjustmentFilters | None = None,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[LedgerEntry]:
    """Manual adjustment entries, newest first. start is inclusive, end exclusive."""
    filters = filters or AdjustmentFilters()

    q = db.session.query(LedgerEntry).filter(LedgerEntry.entry_type == ENTRY_ADJUSTMENT)
    if filters.variant_id:
        q = q.filter(LedgerEntry.variant_id == filters.variant_id)
    if filters.product_id:
        q = q.join(VariantStock, VariantStock.variant_id == LedgerEntry.variant_id).filter(
            VariantStock.product_id == filters.product_id
        )
    if filters.reason:
        q = q.filter(LedgerEntry.reason == filters.reason)
    if filters.actor_id:
        q = q.filter(LedgerEntry.actor_id == filters.actor_id)
    if filters.start is not None:
        q = q.filter(LedgerEntry.created_at >= filters.start)
    if filters.end is not None:
        q = q.filter(LedgerEntry.created_at < filters.end)

    return _newest_first(q).offset(offset).limit(limit).all()


def get_history(variant_id: str, *, limit: int = 50, offset: int = 0) -> list[LedgerEntry]:
    """Every ledger entry for a variant, newest first."""
    get_variant_stock(variant_id)
    q = db.session.query(LedgerEntry).filter(LedgerEntry.variant_id == variant_id)
    return _newest_first(q).offset(offset).limit(limit).all()


def get_entries_by_reference(reference_id: str, *, limit: int = 200) -> list[LedgerEntry]:
    """Ledger entries tied to one order or reservation reference, newest first."""
    q = db.session.query(LedgerEntry).filter(LedgerEntry.reference_id == reference_id)
    return _newest_first(q).limit(limit).all()
