from __future__ import annotations

from decimal import Decimal

from ..extensions import db
from ..time_utils import to_utc_z


TRANSACTION_KIND_SALE = "sale"
TRANSACTION_KIND_DEBT_PAYMENT = "debt_payment"

STATUS_PAID = "paid"
STATUS_VOID = "void"
STATUS_REFUNDED = "refunded"

PAYMENT_METHOD_DEBT = "debt"

LINE_TYPE_PRODUCT = "product"
LINE_TYPE_MEDICINE = "medicine"
LINE_TYPE_SERVICE = "service"


class Transaction(db.Model):
    """
    Sale (or debt payment) document.

    LIFECYCLE:
    - paid: created atomically with its stock and customer effects
    - void / refunded: terminal, reached once from paid, never both

    Everything except the status and its audit columns is immutable once
    the row exists. Lines carry the cost snapshot taken at sale time.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_store_status_created", "store_id", "status", "created_at"),
        db.Index("ix_transactions_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    kind = db.Column(db.String(16), nullable=False, default=TRANSACTION_KIND_SALE)
    status = db.Column(db.String(16), nullable=False, default=STATUS_PAID, index=True)

    customer_id = db.Column(db.String(32), db.ForeignKey("customers.id"), nullable=True)
    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    points_earned = db.Column(db.Integer, nullable=False, default=0)
    note = db.Column(db.String(255), nullable=True)

    created_by = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Void audit trail
    voided_by = db.Column(db.String(64), nullable=True)
    voided_at = db.Column(db.DateTime(timezone=True), nullable=True)
    void_reason = db.Column(db.String(255), nullable=True)

    # Refund audit trail
    refunded_by = db.Column(db.String(64), nullable=True)
    refunded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    refund_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("transactions", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("transactions", lazy=True))
    lines = db.relationship(
        "TransactionLine",
        backref="transaction",
        lazy=True,
        order_by="TransactionLine.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def total_cogs_cents(self) -> int:
        return sum(line.cogs_cents for line in self.lines)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "kind": self.kind,
            "status": self.status,
            "customer_id": self.customer_id,
            "payment_method": self.payment_method,
            "total_cents": self.total_cents,
            "points_earned": self.points_earned,
            "note": self.note,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "voided_by": self.voided_by,
            "voided_at": to_utc_z(self.voided_at) if self.voided_at else None,
            "void_reason": self.void_reason,
            "refunded_by": self.refunded_by,
            "refunded_at": to_utc_z(self.refunded_at) if self.refunded_at else None,
            "refund_reason": self.refund_reason,
            "version_id": self.version_id,
            "lines": [line.to_dict() for line in self.lines],
        }


class TransactionLine(db.Model):
    """
    Individual line item on a transaction.

    cogs_cents is the FIFO cost of the whole line at sale time; the averaged
    unit cost is derived from it. Service lines have no product and zero cost.
    commission_details holds per-night staff allocations for hotel stays.
    """
    __tablename__ = "transaction_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)

    line_type = db.Column(db.String(16), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    line_total_cents = db.Column(db.Integer, nullable=False)

    cogs_cents = db.Column(db.Integer, nullable=False, default=0)

    # Staff commission
    staff_id = db.Column(db.String(64), nullable=True)
    fee_cents = db.Column(db.Integer, nullable=False, default=0)
    paramedic_id = db.Column(db.String(64), nullable=True)
    fee_paramedic_cents = db.Column(db.Integer, nullable=False, default=0)
    commission_details = db.Column(db.JSON, nullable=True)

    product = db.relationship("Product")

    @property
    def is_stock_tracked(self) -> bool:
        return self.line_type != LINE_TYPE_SERVICE and self.product_id is not None

    @property
    def average_unit_cost(self) -> Decimal:
        if not self.quantity:
            return Decimal(0)
        return Decimal(self.cogs_cents) / Decimal(self.quantity)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "line_type": self.line_type,
            "product_id": self.product_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_cents": self.discount_cents,
            "line_total_cents": self.line_total_cents,
            "cogs_cents": self.cogs_cents,
            "average_unit_cost": str(self.average_unit_cost),
            "staff_id": self.staff_id,
            "fee_cents": self.fee_cents,
            "paramedic_id": self.paramedic_id,
            "fee_paramedic_cents": self.fee_paramedic_cents,
            "commission_details": self.commission_details,
        }
