# Overview: Operator-facing manual stock corrections, written straight to the ledger.

from __future__ import annotations

from flask import current_app

from ..models import LedgerEntry
from ..models.ledger import ENTRY_ADJUSTMENT, ADJUSTMENT_REASONS
from ..validation import require_choice, require_nonzero_quantity, require_text
from .ledger_service import apply_ledger_entry


def adjust(
    variant_id: str,
    quantity_change: int,
    reason: str,
    notes: str | None,
    actor_id: str,
    *,
    reference_id: str | None = None,
) -> LedgerEntry:
    """
    Record a manual stock correction.

    quantity_change > 0: restock, return
    quantity_change < 0: damage, correction

    Every call is attributed to actor_id. A negative change that would take
    on_hand below reserved raises NegativeAdjustmentBelowZeroError; the
    operator must resolve outstanding holds first or adjust by less.

    This is the only path that moves on_hand outside checkout. Never write
    VariantStock.on_hand directly.
    """
    reason = require_choice("reason", reason, ADJUSTMENT_REASONS)
    quantity_change = require_nonzero_quantity("quantity_change", quantity_change)
    actor_id = require_text("actor_id", actor_id)

    entry = apply_ledger_entry(
        variant_id,
        ENTRY_ADJUSTMENT,
        quantity_change,
        reason,
        reference_id=reference_id,
        notes=notes,
        actor_id=actor_id,
    )
    current_app.logger.info(
        "Stock adjusted: variant=%s change=%+d reason=%s actor=%s on_hand=%d",
        entry.variant_id, entry.quantity_delta, entry.reason, entry.actor_id, entry.resulting_on_hand,
    )
    return entry
