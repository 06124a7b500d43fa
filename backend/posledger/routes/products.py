# Overview: Flask API routes for the product catalogue; parses input and returns JSON responses.

# backend/posledger/routes/products.py
"""
Product catalogue routes.

STOCK: 'stock' is accepted on create (opening stock, becomes a FIFO batch)
and ignored on update. All later stock changes go through /api/inventory.
"""
from flask import Blueprint, request

from ..models import Product
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    coerce_int,
    ValidationError,
)
from ..decorators import ledger_errors, require_store_id

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "barcode", "category", "kind", "buy_price_cents", "sell_price_cents"},
    required_on_create={"name"},
    ignored_fields={"store_id", "stock"},
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _opening_stock(payload: dict) -> int:
    raw = payload.get("stock")
    if raw is None:
        return 0
    stock = coerce_int("stock", raw)
    if stock < 0:
        raise ValidationError("stock must be >= 0")
    return stock


@products_bp.get("/")
@ledger_errors
def list_products():
    """
    List products of a store.

    Query params:
    - store_id: int (required)
    - category: str (optional)
    - include_deleted: "1" to include soft-deleted products
    """
    store_id = require_store_id(request.args)
    products = products_service.list_products(
        store_id,
        include_deleted=request.args.get("include_deleted") == "1",
        category=request.args.get("category"),
    )
    return {"items": [p.to_dict() for p in products], "count": len(products)}


@products_bp.post("/")
@ledger_errors
def create_product_route():
    payload = request.get_json(silent=True) or {}
    store_id = require_store_id(payload)

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.add_product(store_id, patch, initial_stock=_opening_stock(payload))
    return created.to_dict(), 201


@products_bp.post("/bulk")
@ledger_errors
def bulk_create_products_route():
    """
    Import many products at once.

    Body: {"store_id": 1, "products": [{...product fields, "stock": 10}, ...]}
    The import is all-or-nothing.
    """
    payload = request.get_json(silent=True) or {}
    store_id = require_store_id(payload)
    raw_rows = payload.get("products")
    if not isinstance(raw_rows, list) or not raw_rows:
        raise ValidationError("products must be a non-empty list")

    rows = []
    for index, raw in enumerate(raw_rows):
        if not isinstance(raw, dict):
            raise ValidationError(f"products[{index}] must be an object")
        try:
            patch = validate_payload(model=Product, payload=raw, policy=PRODUCT_POLICY, partial=False)
            enforce_rules_product(patch)
            if isinstance(patch.get("category"), str):
                patch["category"] = patch["category"].strip() or None
            rows.append((patch, _opening_stock(raw)))
        except ValidationError as e:
            raise ValidationError(f"products[{index}]: {e}")

    created = products_service.bulk_add_products(store_id, rows)
    return {"items": [p.to_dict() for p in created], "count": len(created)}, 201


@products_bp.patch("/<int:product_id>")
@ledger_errors
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(product_id, patch)
    return updated.to_dict(), 200


@products_bp.delete("/<int:product_id>")
@ledger_errors
def delete_product_route(product_id: int):
    products_service.delete_product(product_id)
    return {"ok": True}, 200
