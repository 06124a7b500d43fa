# backend/posledger/routes/inventory.py
"""
Inventory routes: batch receipts, FIFO reductions, adjustments, read side.

Every write here keeps Product.stock equal to the sum of its movements.
"""
from flask import Blueprint, request

from ..services import inventory_service, movement_service
from ..validation import (
    coerce_int,
    ValidationError,
    enforce_rules_inventory_receive,
    enforce_rules_inventory_adjust,
)
from ..decorators import ledger_errors


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.post("/<int:product_id>/batches")
@ledger_errors
def receive_batch_route(product_id: int):
    """
    Receive stock into a new FIFO batch.

    Body: {"quantity": 10, "buy_price_cents": 1200, "sell_price_cents": 1500?, "note": "..."}
    """
    payload = request.get_json(silent=True) or {}
    data = enforce_rules_inventory_receive(payload)

    batch = inventory_service.receive(
        product_id,
        data["quantity"],
        data["buy_price_cents"],
        data["note"],
        sell_price_cents=data["sell_price_cents"],
    )
    summary = inventory_service.get_stock_summary(product_id)
    return {"batch": batch.to_dict(), "summary": summary}, 201


@inventory_bp.post("/<int:product_id>/reduce")
@ledger_errors
def reduce_stock_route(product_id: int):
    """Manual FIFO reduction (damage, expiry). Returns the cost taken out."""
    payload = request.get_json(silent=True) or {}
    if "quantity" not in payload:
        raise ValidationError("quantity is required")
    quantity = coerce_int("quantity", payload["quantity"])

    result = inventory_service.reduce_stock(product_id, quantity, payload.get("note"))
    summary = inventory_service.get_stock_summary(product_id)
    return {"cost": result.to_dict(), "summary": summary}, 201


@inventory_bp.post("/<int:product_id>/adjust")
@ledger_errors
def adjust_stock_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    data = enforce_rules_inventory_adjust(payload)

    product = inventory_service.adjust_stock(product_id, data["quantity_delta"], data["note"])
    return {"product": product.to_dict(), "summary": inventory_service.get_stock_summary(product_id)}, 201


@inventory_bp.get("/<int:product_id>/summary")
@ledger_errors
def stock_summary_route(product_id: int):
    return inventory_service.get_stock_summary(product_id)


@inventory_bp.get("/<int:product_id>/batches")
@ledger_errors
def list_batches_route(product_id: int):
    include_empty = request.args.get("include_empty", "1") != "0"
    batches = inventory_service.list_batches(product_id, include_empty=include_empty)
    return {"items": [b.to_dict() for b in batches], "count": len(batches)}


@inventory_bp.get("/<int:product_id>/movements")
@ledger_errors
def list_movements_route(product_id: int):
    limit = request.args.get("limit", default=200, type=int)
    inventory_service.get_product(product_id, include_deleted=True)
    movements = movement_service.list_movements(product_id, limit=min(max(limit, 1), 1000))
    return {"items": [m.to_dict() for m in movements], "count": len(movements)}
