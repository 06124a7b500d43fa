# Overview: Flask API routes for sales, voids and refunds; parses input and returns JSON responses.

# backend/posledger/routes/transactions.py
"""Transaction API routes"""

from flask import Blueprint, request

from ..services import sales_service
from ..services.errors import InvalidTransaction
from ..decorators import ledger_errors, require_store_id


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")


@transactions_bp.post("/")
@ledger_errors
def create_sale_route():
    """
    Record a sale atomically.

    Body:
    {
      "store_id": 1,
      "items": [
        {"type": "product", "product_id": 3, "qty": 2, "price_cents": 1500},
        {"type": "service", "name": "Hotel", "qty": 2, "price_cents": 10000,
         "stay": {"check_in": "2024-06-07", "check_out": "2024-06-09",
                  "weekday_staff": {"staff1": "A", "staff2": "B"},
                  "weekend_staff": {"2024-06-08": "C"}}}
      ],
      "customer_id": "08123456789",
      "payment_method": "cash",
      "points_earned": 10
    }
    """
    payload = request.get_json(silent=True) or {}
    store_id = require_store_id(payload)
    txn = sales_service.process_sale_payload(store_id, payload)
    return {"transaction": txn.to_dict()}, 201


@transactions_bp.get("/")
@ledger_errors
def list_transactions_route():
    store_id = require_store_id(request.args)
    limit = request.args.get("limit", default=100, type=int)
    txns = sales_service.list_transactions(
        store_id,
        status=request.args.get("status"),
        limit=min(max(limit, 1), 500),
    )
    return {"items": [t.to_dict() for t in txns], "count": len(txns)}


@transactions_bp.get("/<int:transaction_id>")
@ledger_errors
def get_transaction_route(transaction_id: int):
    txn = sales_service.get_transaction(transaction_id)
    return {"transaction": txn.to_dict()}


def _reason_and_actor() -> tuple[str, str | None]:
    data = request.get_json(silent=True) or {}
    reason = data.get("reason")
    if not reason:
        raise InvalidTransaction("reason required")
    return reason, data.get("actor")


@transactions_bp.post("/<int:transaction_id>/void")
@ledger_errors
def void_transaction_route(transaction_id: int):
    """Void a paid sale; stock and customer effects are reversed."""
    reason, actor = _reason_and_actor()
    txn = sales_service.void_transaction(transaction_id, reason, actor)
    return {"transaction": txn.to_dict()}, 200


@transactions_bp.post("/<int:transaction_id>/refund")
@ledger_errors
def refund_transaction_route(transaction_id: int):
    reason, actor = _reason_and_actor()
    txn = sales_service.refund_transaction(transaction_id, reason, actor)
    return {"transaction": txn.to_dict()}, 200
