# backend/stockledger/routes/variants.py
"""
Variant stock-row registration.

The catalogue owns variants; this blueprint only creates and describes the
stock row that holds their counters. Counters are NOT writable here: stock
changes go through POST /api/inventory/adjust so they land in the ledger.
"""
from flask import Blueprint, request, current_app

from ..errors import StockError
from ..validation import PayloadPolicy, validate_payload, ValidationError, parse_bool
from ..services import variant_service
from ..services.ledger_service import get_variant_stock


variants_bp = Blueprint("variants", __name__, url_prefix="/api/variants")

VARIANT_CREATE_POLICY = PayloadPolicy(
    writable_fields={"variant_id", "product_id", "sku", "name", "track_inventory"},
    required={"variant_id"},
)


@variants_bp.post("")
def register_variant_route():
    payload = request.get_json(silent=True)
    try:
        data = validate_payload(payload, VARIANT_CREATE_POLICY)
        track = parse_bool("track_inventory", data["track_inventory"]) if "track_inventory" in data else True
        variant = variant_service.register_variant(
            data["variant_id"],
            product_id=data.get("product_id"),
            sku=data.get("sku"),
            name=data.get("name"),
            track_inventory=track,
        )
    except ValidationError as e:
        return {"error": str(e), "code": "validation_error"}, 400
    except StockError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to register variant")
        return {"error": "Internal server error"}, 500

    return {"variant": variant.to_dict()}, 201


@variants_bp.get("/<variant_id>")
def get_variant_route(variant_id: str):
    try:
        return {"variant": get_variant_stock(variant_id).to_dict()}, 200
    except StockError as e:
        return e.to_dict(), e.http_status


@variants_bp.patch("/<variant_id>")
def update_variant_route(variant_id: str):
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return {"error": "Invalid JSON payload", "code": "validation_error"}, 400
    try:
        variant = variant_service.update_variant(variant_id, dict(payload))
    except ValidationError as e:
        return {"error": str(e), "code": "validation_error"}, 400
    except StockError as e:
        return e.to_dict(), e.http_status
    except Exception:
        current_app.logger.exception("Failed to update variant")
        return {"error": "Internal server error"}, 500

    return {"variant": variant.to_dict()}, 200
