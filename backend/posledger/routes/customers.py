# backend/posledger/routes/customers.py
"""
Customer directory, loyalty points and debt payment routes.

Customer ids are phone numbers reduced to digits.
"""
from flask import Blueprint, request

from ..models import Customer
from ..services import customer_service, sales_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    coerce_int,
    ValidationError,
)
from ..decorators import ledger_errors, require_store_id


customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "phone", "email", "address"},
    required_on_create={"name", "phone"},
    ignored_fields={"store_id"},
)

CUSTOMER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"name", "email", "address"},
)


@customers_bp.get("/")
@ledger_errors
def list_customers_route():
    store_id = require_store_id(request.args)
    customers = customer_service.list_customers(store_id)
    return {"items": [c.to_dict() for c in customers], "count": len(customers)}


@customers_bp.post("/")
@ledger_errors
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    store_id = require_store_id(payload)
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    customer = customer_service.create_customer(
        store_id,
        name=patch["name"],
        phone=patch["phone"],
        email=patch.get("email"),
        address=patch.get("address"),
    )
    return customer.to_dict(), 201


@customers_bp.get("/<customer_id>")
@ledger_errors
def get_customer_route(customer_id: str):
    return customer_service.get_customer(customer_id).to_dict()


@customers_bp.patch("/<customer_id>")
@ledger_errors
def update_customer_route(customer_id: str):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_UPDATE_POLICY, partial=True)
    return customer_service.update_customer(customer_id, patch).to_dict()


@customers_bp.delete("/<customer_id>")
@ledger_errors
def delete_customer_route(customer_id: str):
    customer_service.delete_customer(customer_id)
    return {"ok": True}, 200


@customers_bp.post("/<customer_id>/points")
@ledger_errors
def adjust_points_route(customer_id: str):
    """
    Manual point adjustment.

    Body: {"amount": -50, "reason": "Redeemed voucher", "actor": "admin"}
    """
    payload = request.get_json(silent=True) or {}
    if "amount" not in payload:
        raise ValidationError("amount is required")
    amount = coerce_int("amount", payload["amount"])

    adjustment = customer_service.adjust_points(
        customer_id, amount, payload.get("reason"), payload.get("actor"),
    )
    customer = customer_service.get_customer(customer_id)
    return {"adjustment": adjustment.to_dict(), "customer": customer.to_dict()}, 201


@customers_bp.get("/<customer_id>/points")
@ledger_errors
def point_history_route(customer_id: str):
    limit = request.args.get("limit", default=100, type=int)
    history = customer_service.point_history(customer_id, limit=min(max(limit, 1), 500))
    return {"items": [a.to_dict() for a in history], "count": len(history)}


@customers_bp.post("/<customer_id>/debt-payments")
@ledger_errors
def debt_payment_route(customer_id: str):
    payload = request.get_json(silent=True) or {}
    if "amount_cents" not in payload:
        raise ValidationError("amount_cents is required")
    amount = coerce_int("amount_cents", payload["amount_cents"])

    txn = sales_service.process_debt_payment(
        customer_id,
        amount,
        payload.get("payment_method") or "cash",
        payload.get("actor"),
    )
    customer = customer_service.get_customer(customer_id)
    return {"transaction": txn.to_dict(), "customer": customer.to_dict()}, 201
