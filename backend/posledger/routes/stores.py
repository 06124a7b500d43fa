# backend/posledger/routes/stores.py
"""Store management and loyalty point expiry routes."""

from flask import Blueprint, request

from ..services import customer_service, store_service
from ..time_utils import parse_iso_datetime
from ..validation import ValidationError
from ..decorators import ledger_errors


stores_bp = Blueprint("stores", __name__, url_prefix="/api/stores")


@stores_bp.get("/")
@ledger_errors
def list_stores_route():
    stores = store_service.list_stores()
    return {"items": [s.to_dict() for s in stores], "count": len(stores)}


@stores_bp.post("/")
@ledger_errors
def create_store_route():
    payload = request.get_json(silent=True) or {}
    store = store_service.create_store(payload.get("name"), payload.get("code") or None)
    return store.to_dict(), 201


@stores_bp.put("/<int:store_id>/points/expiry")
@ledger_errors
def configure_point_expiry_route(store_id: int):
    """Body: {"enabled": true, "expiry_date": "2024-12-31T00:00:00Z"}"""
    payload = request.get_json(silent=True) or {}
    try:
        expiry = parse_iso_datetime(payload.get("expiry_date"))
    except (ValueError, AttributeError):
        raise ValidationError("expiry_date must be an ISO-8601 datetime")

    store = store_service.configure_point_expiry(
        store_id, enabled=bool(payload.get("enabled")), expiry_date=expiry,
    )
    return store.to_dict(), 200


@stores_bp.post("/<int:store_id>/points/expire")
@ledger_errors
def expire_points_route(store_id: int):
    """Zero every loyalty balance in the store once the expiry date has passed."""
    payload = request.get_json(silent=True) or {}
    result = customer_service.reset_expired_points(store_id, actor=payload.get("actor") or "system")
    return result, 200
