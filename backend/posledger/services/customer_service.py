# Overview: Customer directory, loyalty point ledger and point expiry.

from __future__ import annotations

import re
from datetime import datetime

from flask import current_app

from ..extensions import db
from ..models import Customer, PointAdjustment, Store
from ..models.customers import (
    POINT_ADJUSTMENT_ADDITION,
    POINT_ADJUSTMENT_DEDUCTION,
    POINT_ADJUSTMENT_EXPIRY_RESET,
    POINT_ADJUSTMENT_TRANSACTION_REVERSAL,
)
from ..time_utils import utcnow
from ..validation import ValidationError
from .concurrency import lock_for_update, run_atomic
from .errors import CustomerNotFound, DuplicateCustomer, InvalidPointAdjustment
from .store_service import get_store
"""
Loyalty Invariants (authoritative)

- loyalty_points never goes below zero; every decrease is clamped at 0.
- total_lifetime_points only grows (sales add to it, nothing subtracts).
- Every balance change that is not sale earning appends one PointAdjustment
  with previous_balance/new_balance, in the same commit as the change.
"""

CUSTOMER_MUTABLE_FIELDS = {"name", "email", "address"}

_NON_DIGITS = re.compile(r"\D+")


def normalize_phone(phone) -> str:
    """Phone number reduced to digits; this is the customer id."""
    return _NON_DIGITS.sub("", str(phone or ""))


def get_customer(
    customer_id: str,
    *,
    store_id: int | None = None,
    lock: bool = False,
    include_deleted: bool = False,
) -> Customer:
    """Load a customer; with store_id, a customer of another store counts as missing."""
    query = db.session.query(Customer).filter_by(id=str(customer_id))
    if lock:
        query = lock_for_update(query)
    customer = query.first()
    if customer is None or (customer.is_deleted and not include_deleted):
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    if store_id is not None and customer.store_id != store_id:
        raise CustomerNotFound(f"Customer {customer_id} not found", details={"customer_id": customer_id})
    return customer


def list_customers(store_id: int, *, include_deleted: bool = False) -> list[Customer]:
    query = db.session.query(Customer).filter(Customer.store_id == store_id)
    if not include_deleted:
        query = query.filter(Customer.is_deleted.is_(False))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def create_customer(
    store_id: int,
    *,
    name: str,
    phone: str,
    email: str | None = None,
    address: str | None = None,
) -> Customer:
    """
    Register a customer under their phone number.

    A deleted customer of the same store with the same phone is restored
    instead of failing, keeping their history and aggregates. A phone
    registered in another store is rejected, active or not.
    """
    customer_id = normalize_phone(phone)
    if not customer_id:
        raise ValidationError("phone must contain digits")
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")

    def _op():
        get_store(store_id)
        existing = db.session.get(Customer, customer_id)
        if existing is not None and (not existing.is_deleted or existing.store_id != store_id):
            raise DuplicateCustomer(
                f"Customer with phone {phone} already exists",
                details={"customer_id": customer_id},
            )
        if existing is not None:
            existing.is_deleted = False
            existing.name = name
            existing.email = email
            existing.address = address
            return existing

        customer = Customer(
            id=customer_id,
            store_id=store_id,
            name=name,
            phone=str(phone).strip(),
            email=email,
            address=address,
            total_spent_cents=0,
            debt_cents=0,
            loyalty_points=0,
            total_lifetime_points=0,
        )
        db.session.add(customer)
        return customer

    customer = run_atomic(_op, operation="customer create")
    current_app.logger.info("Customer %s registered in store %s", customer.id, store_id)
    return customer


def update_customer(customer_id: str, patch: dict) -> Customer:
    """Edit contact details. Aggregates and points are never writable here."""
    def _op():
        customer = get_customer(customer_id, lock=True)
        for key, value in patch.items():
            if key in CUSTOMER_MUTABLE_FIELDS:
                setattr(customer, key, value)
        return customer

    return run_atomic(_op, operation="customer update")


def delete_customer(customer_id: str) -> Customer:
    def _op():
        customer = get_customer(customer_id, lock=True)
        customer.is_deleted = True
        return customer

    return run_atomic(_op, operation="customer delete")


def _append_adjustment(
    customer: Customer,
    *,
    adjustment_type: str,
    amount: int,
    reason: str,
    previous_balance: int,
    new_balance: int,
    actor: str | None,
    transaction_id: int | None = None,
    occurred_at: datetime | None = None,
) -> PointAdjustment:
    adjustment = PointAdjustment(
        store_id=customer.store_id,
        customer_id=customer.id,
        type=adjustment_type,
        amount=amount,
        reason=reason,
        previous_balance=previous_balance,
        new_balance=new_balance,
        transaction_id=transaction_id,
        performed_by=actor,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(adjustment)
    return adjustment


def adjust_points(customer_id: str, amount: int, reason: str, actor: str | None = None) -> PointAdjustment:
    """
    Manually add (amount > 0) or deduct (amount < 0) loyalty points.

    The resulting balance is clamped at zero; the adjustment records the
    requested amount alongside the real before/after balances.
    """
    if isinstance(amount, bool) or not isinstance(amount, int) or amount == 0:
        raise InvalidPointAdjustment("Amount must be a non-zero integer", details={"amount": amount})
    if not reason or not str(reason).strip():
        raise InvalidPointAdjustment("Reason is required")
    reason = str(reason).strip()

    def _op():
        customer = get_customer(customer_id, lock=True)
        previous = customer.loyalty_points or 0
        new_balance = max(0, previous + amount)
        customer.loyalty_points = new_balance
        return _append_adjustment(
            customer,
            adjustment_type=POINT_ADJUSTMENT_ADDITION if amount > 0 else POINT_ADJUSTMENT_DEDUCTION,
            amount=amount,
            reason=reason,
            previous_balance=previous,
            new_balance=new_balance,
            actor=actor,
        )

    adjustment = run_atomic(_op, operation="point adjustment")
    current_app.logger.info(
        "Points adjusted for customer %s: %s -> %s (%s)",
        customer_id, adjustment.previous_balance, adjustment.new_balance, reason,
    )
    return adjustment


def record_points_reversal(
    customer: Customer,
    points: int,
    *,
    transaction_id: int,
    reason: str,
    actor: str | None = None,
) -> PointAdjustment:
    """
    Take back points earned by a voided or refunded sale. Does not commit.

    Clamped at zero: points already spent elsewhere are not clawed back.
    total_lifetime_points is left untouched.
    """
    previous = customer.loyalty_points or 0
    new_balance = max(0, previous - points)
    customer.loyalty_points = new_balance
    return _append_adjustment(
        customer,
        adjustment_type=POINT_ADJUSTMENT_TRANSACTION_REVERSAL,
        amount=-points,
        reason=reason,
        previous_balance=previous,
        new_balance=new_balance,
        actor=actor,
        transaction_id=transaction_id,
    )


def point_history(customer_id: str, *, limit: int = 100) -> list[PointAdjustment]:
    get_customer(customer_id, include_deleted=True)
    return (
        db.session.query(PointAdjustment)
        .filter_by(customer_id=str(customer_id))
        .order_by(PointAdjustment.occurred_at.desc(), PointAdjustment.id.desc())
        .limit(limit)
        .all()
    )


def reset_expired_points(store_id: int, *, now: datetime | None = None, actor: str = "system") -> dict:
    """
    Zero every positive loyalty balance in the store once its expiry date passed.

    Runs at most once per expiry date: points_last_reset_at is stamped in the
    same commit and a later run for the same date is rejected, so points
    earned after the reset survive.
    """
    now = now or utcnow()

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if store is None:
            raise ValidationError(f"Store {store_id} not found")
        if not store.points_expiry_enabled or store.points_expiry_date is None:
            raise InvalidPointAdjustment("Point expiry not enabled", details={"store_id": store_id})
        expiry = store.points_expiry_date
        if now < expiry:
            raise InvalidPointAdjustment(
                "Expiry date not reached yet",
                details={"store_id": store_id, "expiry_date": expiry.isoformat()},
            )
        if store.points_last_reset_at is not None and store.points_last_reset_at >= expiry:
            raise InvalidPointAdjustment(
                "Points already reset for this expiry date",
                details={"store_id": store_id, "last_reset_at": store.points_last_reset_at.isoformat()},
            )

        customers = (
            db.session.query(Customer)
            .filter(Customer.store_id == store_id, Customer.loyalty_points > 0)
            .order_by(Customer.id.asc())
            .all()
        )
        reason = f"Automatic reset - Points expired on {expiry.date().isoformat()}"
        reset = []
        for customer in customers:
            previous = customer.loyalty_points
            customer.loyalty_points = 0
            _append_adjustment(
                customer,
                adjustment_type=POINT_ADJUSTMENT_EXPIRY_RESET,
                amount=-previous,
                reason=reason,
                previous_balance=previous,
                new_balance=0,
                actor=actor,
                occurred_at=now,
            )
            reset.append({"customer_id": customer.id, "name": customer.name, "previous_balance": previous})

        store.points_last_reset_at = now
        return {"store_id": store_id, "reset_count": len(reset), "adjustments": reset}

    result = run_atomic(_op, operation="point expiry reset")
    current_app.logger.info("Point expiry reset for store %s: %s customers", store_id, result["reset_count"])
    return result
