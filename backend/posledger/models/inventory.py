from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


PRODUCT_KIND_PRODUCT = "product"
PRODUCT_KIND_MEDICINE = "medicine"
PRODUCT_KIND_SERVICE = "service"
PRODUCT_KINDS = (PRODUCT_KIND_PRODUCT, PRODUCT_KIND_MEDICINE, PRODUCT_KIND_SERVICE)

MOVEMENT_IN = "in"
MOVEMENT_OUT = "out"
MOVEMENT_SALE = "sale"
MOVEMENT_ADJUSTMENT = "adjustment"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_SALE, MOVEMENT_ADJUSTMENT)


class Product(db.Model):
    """
    Product master data.

    STOCK DESIGN DECISION:
    Product.stock is a denormalized counter. It must always equal the sum of
    StockMovement.quantity for the product, and is only written by the
    inventory service (receive, consume, reverse, adjust). Product edits never
    touch it.

    SOFT DELETE:
    Deleted products keep their row (is_deleted=True) so historical
    transaction lines stay resolvable.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_store_name", "store_id", "name"),
        db.Index("ix_products_store_deleted", "store_id", "is_deleted"),
        db.Index("ix_products_store_barcode", "store_id", "barcode"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    barcode = db.Column(db.String(64), nullable=True)
    category = db.Column(db.String(128), nullable=True)

    # product | medicine | service
    kind = db.Column(db.String(16), nullable=False, default=PRODUCT_KIND_PRODUCT)

    stock = db.Column(db.Integer, nullable=False, default=0)

    # Fallback unit cost once FIFO batches are exhausted
    buy_price_cents = db.Column(db.Integer, nullable=False, default=0)
    sell_price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    store = db.relationship("Store", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_stock_tracked(self) -> bool:
        return self.kind != PRODUCT_KIND_SERVICE

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock} store_id={self.store_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "barcode": self.barcode,
            "category": self.category,
            "kind": self.kind,
            "stock": self.stock,
            "buy_price_cents": self.buy_price_cents,
            "sell_price_cents": self.sell_price_cents,
            "is_deleted": self.is_deleted,
            "deleted_at": to_utc_z(self.deleted_at) if self.deleted_at else None,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockBatch(db.Model):
    """
    FIFO cost batch: one stock receipt with its own frozen unit cost.

    INVARIANTS:
    - 0 <= current_qty <= initial_qty
    - buy_price_cents never changes after receipt
    - Batches are never deleted; a fully consumed batch (current_qty == 0)
      remains the permanent cost record of that receipt.

    FIFO order is (received_at, id) ascending.
    """
    __tablename__ = "stock_batches"
    __table_args__ = (
        db.Index("ix_batches_product_received", "product_id", "received_at"),
        db.CheckConstraint("current_qty >= 0", name="ck_batches_current_nonneg"),
        db.CheckConstraint("current_qty <= initial_qty", name="ck_batches_current_le_initial"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    initial_qty = db.Column(db.Integer, nullable=False)
    current_qty = db.Column(db.Integer, nullable=False)
    buy_price_cents = db.Column(db.Integer, nullable=False, default=0)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    note = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("batches", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "initial_qty": self.initial_qty,
            "current_qty": self.current_qty,
            "buy_price_cents": self.buy_price_cents,
            "received_at": to_utc_z(self.received_at),
            "note": self.note,
        }


class StockMovement(db.Model):
    """
    Append-only audit trail of every stock quantity change.

    TYPES:
    - in: batch receipt, initial stock, void/refund restoration
    - out: manual FIFO reduction (write-off)
    - sale: sale consumption
    - adjustment: manual correction outside the batch ledger

    quantity is signed: positive increases stock, negative decreases it.
    ref_type/ref_id point at the batch, transaction or product that caused it.

    IMMUTABLE: Rows are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_movements_product_occurred", "product_id", "occurred_at"),
        db.Index("ix_movements_ref", "ref_type", "ref_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    note = db.Column(db.String(255), nullable=True)
    ref_type = db.Column(db.String(32), nullable=True)
    ref_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "product_id": self.product_id,
            "type": self.type,
            "quantity": self.quantity,
            "note": self.note,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
