# Overview: Stock-control error taxonomy shared by services, routes, and the sweep.

from __future__ import annotations


class StockError(ValueError):
    """Base class for stock-control business errors."""

    code = "stock_error"
    http_status = 409

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.details = details

    def to_dict(self) -> dict:
        body = {"error": str(self), "code": self.code}
        if self.details:
            body["details"] = self.details
        return body


class InsufficientStockError(StockError):
    """Reserve asked for more than is available. Surface as out-of-stock."""

    code = "insufficient_stock"

    def __init__(self, variant_id: str, requested: int, available: int):
        super().__init__(
            f"Insufficient stock for variant {variant_id}. Available: {available}, Requested: {requested}",
            variant_id=variant_id,
            requested=requested,
            available=available,
        )
        self.variant_id = variant_id
        self.requested = requested
        self.available = available


class UnknownVariantError(StockError):
    code = "unknown_variant"
    http_status = 404

    def __init__(self, variant_id: str):
        super().__init__(f"Variant {variant_id} not found", variant_id=variant_id)
        self.variant_id = variant_id


class UnknownReservationError(StockError):
    code = "unknown_reservation"
    http_status = 404

    def __init__(self, reservation_id: int):
        super().__init__(f"Reservation {reservation_id} not found", reservation_id=reservation_id)
        self.reservation_id = reservation_id


class InvalidReservationStateError(StockError):
    """
    Commit/release/expire attempted on a reservation that is no longer active.

    Callers compare `status` with their intent: a match is an idempotent
    success, anything else is a conflict.
    """

    code = "invalid_reservation_state"

    def __init__(self, reservation_id: int, status: str, attempted: str):
        super().__init__(
            f"Cannot {attempted} reservation {reservation_id} with status {status}",
            reservation_id=reservation_id,
            status=status,
            attempted=attempted,
        )
        self.reservation_id = reservation_id
        self.status = status
        self.attempted = attempted


class NegativeAdjustmentBelowZeroError(StockError):
    """Manual adjustment would push on_hand below reserved."""

    code = "adjustment_below_reserved"

    def __init__(self, variant_id: str, on_hand: int, reserved: int, quantity_change: int):
        super().__init__(
            f"Adjustment of {quantity_change} would leave on_hand {on_hand + quantity_change} "
            f"below reserved {reserved} for variant {variant_id}; "
            "resolve outstanding reservations or use a smaller adjustment",
            variant_id=variant_id,
            on_hand=on_hand,
            reserved=reserved,
            quantity_change=quantity_change,
        )


class LedgerInvariantError(StockError):
    """A commit/release would drive a counter negative: projector and reservations disagree."""

    code = "ledger_invariant"


class StorageError(StockError):
    """Persistence failed and the transaction was rolled back. Safe to retry."""

    code = "storage_error"
    http_status = 503
