# backend/stockledger/routes/inventory.py
"""
Inventory stock-control routes.

Authentication lives in front of this service. Nothing here reads session
state: operator routes take actor_id explicitly in the request.

- Checkout: reserve / commit / release
- Operators: adjust, stock levels, adjustment history
- Anyone: available stock for a variant

Time semantics:
- API accepts ISO-8601 datetimes with Z/offsets; backend normalizes to UTC-naive internally.
- Responses serialize datetimes as ISO-8601 'Z' strings.
"""
from flask import Blueprint, request, current_app

from ..errors import StockError
from ..validation import (
    PayloadPolicy,
    validate_payload,
    ValidationError,
    clamp_pagination,
    coerce_int,
    parse_bool,
    parse_datetime_arg,
)
from ..services import reservation_service, adjustment_service, query_service


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")

RESERVE_POLICY = PayloadPolicy(
    writable_fields={"variant_id", "quantity", "actor_id"},
    required={"variant_id", "quantity"},
)

COMMIT_POLICY = PayloadPolicy(
    writable_fields={"reservation_id", "order_reference", "actor_id"},
    required={"reservation_id", "order_reference"},
)

RELEASE_POLICY = PayloadPolicy(
    writable_fields={"reservation_id", "actor_id"},
    required={"reservation_id"},
)

ADJUST_POLICY = PayloadPolicy(
    writable_fields={"variant_id", "quantity_change", "reason", "notes", "actor_id", "reference_id"},
    required={"variant_id", "quantity_change", "reason", "actor_id"},
)


def _stock_error(e: StockError):
    return e.to_dict(), e.http_status


def _validation_error(e: ValidationError):
    return {"error": str(e), "code": "validation_error"}, 400


@inventory_bp.get("/available/<variant_id>")
def available_route(variant_id: str):
    try:
        return query_service.get_available(variant_id), 200
    except StockError as e:
        return _stock_error(e)


@inventory_bp.post("/reserve")
def reserve_route():
    """
    STEP 1: hold stock when checkout starts.

    409 insufficient_stock is final for this quantity; tell the customer.
    """
    payload = request.get_json(silent=True)
    try:
        data = validate_payload(payload, RESERVE_POLICY)
        kwargs = {}
        if data.get("actor_id") is not None:
            kwargs["actor_id"] = data["actor_id"]
        reservation = reservation_service.reserve(str(data["variant_id"]), data["quantity"], **kwargs)
    except ValidationError as e:
        return _validation_error(e)
    except StockError as e:
        return _stock_error(e)
    except Exception:
        current_app.logger.exception("Failed to reserve stock")
        return {"error": "Internal server error"}, 500

    body = {"reservation": reservation.to_dict()}
    if reservation.tracked:
        body["stock"] = query_service.get_available(reservation.variant_id)
    return body, 201


@inventory_bp.post("/commit")
def commit_route():
    """STEP 2: payment succeeded; turn the hold into a sale."""
    payload = request.get_json(silent=True)
    try:
        data = validate_payload(payload, COMMIT_POLICY)
        kwargs = {}
        if data.get("actor_id") is not None:
            kwargs["actor_id"] = data["actor_id"]
        reservation = reservation_service.commit(data["reservation_id"], data["order_reference"], **kwargs)
    except ValidationError as e:
        return _validation_error(e)
    except StockError as e:
        return _stock_error(e)
    except Exception:
        current_app.logger.exception("Failed to commit reservation")
        return {"error": "Internal server error"}, 500

    return {"reservation": reservation.to_dict()}, 200


@inventory_bp.post("/release")
def release_route():
    """STEP 3: payment failed or cart abandoned. Safe to call more than once."""
    payload = request.get_json(silent=True)
    try:
        data = validate_payload(payload, RELEASE_POLICY)
        kwargs = {}
        if data.get("actor_id") is not None:
            kwargs["actor_id"] = data["actor_id"]
        reservation = reservation_service.release(data["reservation_id"], **kwargs)
    except ValidationError as e:
        return _validation_error(e)
    except StockError as e:
        return _stock_error(e)
    except Exception:
        current_app.logger.exception("Failed to release reservation")
        return {"error": "Internal server error"}, 500

    return {"reservation": reservation.to_dict()}, 200


@inventory_bp.get("/reservations/<int:reservation_id>")
def reservation_route(reservation_id: int):
    try:
        return {"reservation": reservation_service.get_reservation(reservation_id).to_dict()}, 200
    except StockError as e:
        return _stock_error(e)


@inventory_bp.post("/adjust")
def adjust_route():
    """
    Manual stock correction (restock, damage, return, correction).

    actor_id is mandatory and is stored on the ledger row.
    """
    payload = request.get_json(silent=True)
    try:
        data = validate_payload(payload, ADJUST_POLICY)
        entry = adjustment_service.adjust(
            str(data["variant_id"]),
            data["quantity_change"],
            data["reason"],
            data.get("notes"),
            data["actor_id"],
            reference_id=data.get("reference_id"),
        )
    except ValidationError as e:
        return _validation_error(e)
    except StockError as e:
        return _stock_error(e)
    except Exception:
        current_app.logger.exception("Failed to adjust inventory")
        return {"error": "Internal server error"}, 500

    return {
        "entry": entry.to_dict(),
        "stock": query_service.get_available(entry.variant_id),
    }, 201


@inventory_bp.get("/stock-levels")
def stock_levels_route():
    try:
        threshold_raw = request.args.get("threshold")
        threshold = coerce_int("threshold", threshold_raw) if threshold_raw not in (None, "") else None
        low_only_raw = request.args.get("low_only")
        low_only = parse_bool("low_only", low_only_raw) if low_only_raw not in (None, "") else False
    except ValidationError as e:
        return _validation_error(e)

    levels = query_service.get_stock_levels(threshold, low_only=low_only)
    return {"stock_levels": levels, "count": len(levels)}, 200


@inventory_bp.get("/adjustments")
def adjustments_route():
    args = request.args
    try:
        limit, offset = clamp_pagination(args.get("limit"), args.get("offset"))
        filters = query_service.AdjustmentFilters(
            variant_id=args.get("variant_id") or None,
            product_id=args.get("product_id") or None,
            reason=args.get("reason") or None,
            actor_id=args.get("actor_id") or None,
            start=parse_datetime_arg("start_date", args.get("start_date")),
            end=parse_datetime_arg("end_date", args.get("end_date")),
        )
    except ValidationError as e:
        return _validation_error(e)

    rows = query_service.get_adjustments(filters, limit=limit, offset=offset)
    return {
        "adjustments": [r.to_dict() for r in rows],
        "count": len(rows),
        "limit": limit,
        "offset": offset,
    }, 200


@inventory_bp.get("/history/<variant_id>")
def history_route(variant_id: str):
    try:
        limit, offset = clamp_pagination(request.args.get("limit"), request.args.get("offset"))
        rows = query_service.get_history(variant_id, limit=limit, offset=offset)
    except ValidationError as e:
        return _validation_error(e)
    except StockError as e:
        return _stock_error(e)

    return {
        "history": [r.to_dict() for r in rows],
        "count": len(rows),
        "limit": limit,
        "offset": offset,
    }, 200


@inventory_bp.get("/order/<reference_id>")
def entries_by_reference_route(reference_id: str):
    rows = query_service.get_entries_by_reference(reference_id)
    return {"records": [r.to_dict() for r in rows], "count": len(rows)}, 200

