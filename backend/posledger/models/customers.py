from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


POINT_ADJUSTMENT_ADDITION = "addition"
POINT_ADJUSTMENT_DEDUCTION = "deduction"
POINT_ADJUSTMENT_EXPIRY_RESET = "expiry_reset"
POINT_ADJUSTMENT_TRANSACTION_REVERSAL = "transaction_reversal"
POINT_ADJUSTMENT_TYPES = (
    POINT_ADJUSTMENT_ADDITION,
    POINT_ADJUSTMENT_DEDUCTION,
    POINT_ADJUSTMENT_EXPIRY_RESET,
    POINT_ADJUSTMENT_TRANSACTION_REVERSAL,
)


class Customer(db.Model):
    """
    Customer master data with denormalized financial aggregates.

    IDENTITY: The primary key is the customer's phone number reduced to
    digits, so the same phone can never be registered twice.

    INVARIANTS:
    - loyalty_points >= 0 (adjustments clamp at zero)
    - total_lifetime_points never decreases, not even on void/refund
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_store_deleted", "store_id", "is_deleted"),
        db.CheckConstraint("loyalty_points >= 0", name="ck_customers_points_nonneg"),
    )

    id = db.Column(db.String(32), primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    total_spent_cents = db.Column(db.Integer, nullable=False, default=0)
    debt_cents = db.Column(db.Integer, nullable=False, default=0)
    loyalty_points = db.Column(db.Integer, nullable=False, default=0)
    total_lifetime_points = db.Column(db.Integer, nullable=False, default=0)

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("customers", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "total_spent_cents": self.total_spent_cents,
            "debt_cents": self.debt_cents,
            "loyalty_points": self.loyalty_points,
            "total_lifetime_points": self.total_lifetime_points,
            "is_deleted": self.is_deleted,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }


class PointAdjustment(db.Model):
    """
    Append-only ledger of loyalty balance changes that did not come from
    earning on a sale.

    TYPES:
    - addition / deduction: manual adjustment by an admin
    - expiry_reset: balance zeroed by the store's expiry policy
    - transaction_reversal: points taken back by a void or refund

    IMMUTABLE: Records are never updated or deleted.
    """
    __tablename__ = "point_adjustments"
    __table_args__ = (
        db.Index("ix_point_adjustments_customer_occurred", "customer_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.String(32), db.ForeignKey("customers.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Integer, nullable=False)  # Signed requested change
    reason = db.Column(db.String(255), nullable=False)

    previous_balance = db.Column(db.Integer, nullable=True)
    new_balance = db.Column(db.Integer, nullable=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)
    performed_by = db.Column(db.String(64), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    customer = db.relationship("Customer", backref=db.backref("point_adjustments", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount": self.amount,
            "reason": self.reason,
            "previous_balance": self.previous_balance,
            "new_balance": self.new_balance,
            "transaction_id": self.transaction_id,
            "performed_by": self.performed_by,
            "occurred_at": to_utc_z(self.occurred_at),
        }
