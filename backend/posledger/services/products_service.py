# backend/posledger/services/products_service.py
"""
Products Service

STOCK: Product.stock is never written from a product payload.
- add_product turns an initial stock figure into a FIFO batch plus an 'in'
  movement, in the same commit as the product row
- update_product drops any stock key before applying the patch and refuses
  to turn a product that still holds stock into a service
- delete_product is a soft delete; history keeps resolving the row

BARCODES: unique among non-deleted products of the same store.
"""
from __future__ import annotations
from flask import current_app
from ..extensions import db
from ..models import Product, Store
from ..models.inventory import PRODUCT_KIND_PRODUCT, PRODUCT_KIND_SERVICE
from ..validation import ValidationError
from .concurrency import run_atomic
from .errors import DuplicateBarcode, ProductNotFound
from .inventory_service import _receive_inner, get_product
from posledger.time_utils import utcnow

PRODUCT_MUTABLE_FIELDS = {"name", "barcode", "category", "kind", "buy_price_cents", "sell_price_cents"}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _require_store(store_id: int) -> Store:
    store = db.session.get(Store, store_id)
    if store is None:
        raise ValidationError(f"Store {store_id} not found")
    return store


def ensure_barcode_available(store_id: int, barcode: str | None, *, exclude_product_id: int | None = None) -> None:
    if not barcode:
        return
    query = db.session.query(Product.id).filter(
        Product.store_id == store_id,
        Product.barcode == barcode,
        Product.is_deleted.is_(False),
    )
    if exclude_product_id is not None:
        query = query.filter(Product.id != exclude_product_id)
    if query.first() is not None:
        raise DuplicateBarcode(
            f"Barcode '{barcode}' is already used by another product.",
            details={"barcode": barcode},
        )


def list_products(store_id: int, *, include_deleted: bool = False, category: str | None = None) -> list[Product]:
    query = db.session.query(Product).filter(Product.store_id == store_id)
    if not include_deleted:
        query = query.filter(Product.is_deleted.is_(False))
    if category:
        query = query.filter(Product.category == category)
    return query.order_by(Product.name.asc(), Product.id.asc()).all()


def _stage_product(store_id: int, patch: dict, initial_stock: int, note: str) -> Product:
    """Stage a product row and its opening batch. Does not commit."""
    if initial_stock < 0:
        raise ValidationError("stock must be >= 0")

    p = Product(store_id=store_id, stock=0, kind=PRODUCT_KIND_PRODUCT, buy_price_cents=0, sell_price_cents=0)
    apply_product_patch(p, patch)
    db.session.add(p)
    db.session.flush()  # ensure p.id exists before the batch and movement

    if initial_stock > 0:
        if not p.is_stock_tracked:
            raise ValidationError("services cannot carry stock")
        _receive_inner(
            p,
            quantity=initial_stock,
            buy_price_cents=p.buy_price_cents or 0,
            note=note,
            movement_ref_type="product",
            movement_ref_id=p.id,
        )
    return p


def add_product(store_id: int, patch: dict, *, initial_stock: int = 0) -> Product:
    """
    Create a product, optionally with opening stock.

    Opening stock becomes a batch at the product's buy price, so the first
    sales are costed from it rather than from the fallback price.
    """
    def _op():
        _require_store(store_id)
        ensure_barcode_available(store_id, patch.get("barcode"))
        return _stage_product(store_id, patch, initial_stock, "Initial Stock")

    p = run_atomic(_op, operation="product create")
    current_app.logger.info("Product %s created in store %s with stock %s", p.id, store_id, initial_stock)
    return p


def bulk_add_products(store_id: int, rows: list[tuple[dict, int]]) -> list[Product]:
    """
    Import many products in one commit.

    rows: (validated patch, initial stock) pairs. A barcode clash with an
    existing product or within the import rejects the whole import.
    """
    def _op():
        _require_store(store_id)
        seen: set[str] = set()
        for patch, _ in rows:
            barcode = patch.get("barcode")
            if not barcode:
                continue
            if barcode in seen:
                raise DuplicateBarcode(
                    f"Barcode '{barcode}' appears more than once in the import.",
                    details={"barcode": barcode},
                )
            seen.add(barcode)
            ensure_barcode_available(store_id, barcode)

        return [
            _stage_product(store_id, patch, stock, "Initial Stock (Bulk Import)")
            for patch, stock in rows
        ]

    products = run_atomic(_op, operation="product import")
    current_app.logger.info("Imported %s products into store %s", len(products), store_id)
    return products


def update_product(product_id: int, patch: dict) -> Product:
    """
    Update product master data.

    A 'stock' key is silently ignored: stock changes go through receipts,
    reductions and adjustments only.
    """
    patch = {k: v for k, v in patch.items() if k != "stock"}

    def _op():
        p = get_product(product_id, lock=True)
        if "barcode" in patch and patch["barcode"] != p.barcode:
            ensure_barcode_available(p.store_id, patch["barcode"], exclude_product_id=p.id)
        if patch.get("kind") == PRODUCT_KIND_SERVICE and p.kind != PRODUCT_KIND_SERVICE and (p.stock or 0) != 0:
            raise ValidationError(
                f"Product {p.id} still holds {p.stock} units; reduce or adjust stock to 0 before making it a service"
            )
        apply_product_patch(p, patch)
        return p

    return run_atomic(_op, operation="product update")


def delete_product(product_id: int) -> Product:
    """Soft-delete a product: preserve IDs and historical references."""
    def _op():
        p = db.session.query(Product).filter(Product.id == product_id).first()
        if p is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if not p.is_deleted:
            p.is_deleted = True
            p.deleted_at = utcnow()
        return p

    p = run_atomic(_op, operation="product delete")
    current_app.logger.info("Product %s soft-deleted", product_id)
    return p
