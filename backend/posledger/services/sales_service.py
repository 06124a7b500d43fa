"""
Transaction Engine - atomic sale, void, refund and debt payment processing

WHY: A sale touches batches, product stock, the movement log, the customer's
financial aggregates and the transaction document. All of it must land in
one commit or not at all, and a void/refund must reverse it exactly once.

LIFECYCLE:
    paid -> void       (same-cycle cancellation)
    paid -> refunded   (post-completion reversal)
Both targets are terminal and mutually exclusive. The status flip is a
conditional UPDATE keyed on status='paid', so two concurrent voids cannot
both succeed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping, Optional, Union

from flask import current_app

from ..extensions import db
from ..models import Customer, Product, Transaction, TransactionLine
from ..models.inventory import MOVEMENT_SALE, PRODUCT_KIND_SERVICE
from ..models.sales import (
    LINE_TYPE_MEDICINE,
    LINE_TYPE_PRODUCT,
    LINE_TYPE_SERVICE,
    PAYMENT_METHOD_DEBT,
    STATUS_PAID,
    STATUS_REFUNDED,
    STATUS_VOID,
    TRANSACTION_KIND_DEBT_PAYMENT,
    TRANSACTION_KIND_SALE,
)
from ..time_utils import parse_iso_date, utcnow
from . import commission_service
from .concurrency import lock_for_update, run_atomic
from .customer_service import get_customer, record_points_reversal
from .errors import (
    AlreadyFinalized,
    InsufficientStock,
    InvalidQuantity,
    InvalidTransaction,
    ProductNotFound,
    TransactionNotFound,
)
from .inventory_service import consume, reverse


# =============================================================================
# LINE ITEMS
# =============================================================================

@dataclass(frozen=True)
class HotelStay:
    """Stay details that drive per-night commission allocation."""
    check_in: str
    check_out: str
    weekday_staff: commission_service.WeekdayStaff = field(default_factory=commission_service.WeekdayStaff)
    weekend_staff: Mapping[str, Optional[str]] = field(default_factory=dict)
    fee_per_night_cents: Optional[int] = None

    def nights(self):
        return commission_service.stay_nights(self.check_in, self.check_out)


@dataclass(frozen=True)
class _BaseLine:
    name: str
    quantity: int
    unit_price_cents: int
    discount_cents: int = 0
    staff_id: Optional[str] = None
    fee_cents: int = 0
    paramedic_id: Optional[str] = None
    fee_paramedic_cents: int = 0

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity - self.discount_cents


@dataclass(frozen=True)
class ProductLine(_BaseLine):
    product_id: int = 0


@dataclass(frozen=True)
class MedicineLine(_BaseLine):
    product_id: int = 0


@dataclass(frozen=True)
class ServiceLine(_BaseLine):
    service_id: Optional[str] = None
    stay: Optional[HotelStay] = None


LineItem = Union[ProductLine, MedicineLine, ServiceLine]


def is_stock_tracked(line: LineItem) -> bool:
    """Exhaustive dispatch over the line-item variants."""
    if isinstance(line, (ProductLine, MedicineLine)):
        return True
    if isinstance(line, ServiceLine):
        return False
    raise InvalidTransaction(f"Unsupported line item {type(line).__name__}")


def line_type_of(line: LineItem) -> str:
    if isinstance(line, ProductLine):
        return LINE_TYPE_PRODUCT
    if isinstance(line, MedicineLine):
        return LINE_TYPE_MEDICINE
    if isinstance(line, ServiceLine):
        return LINE_TYPE_SERVICE
    raise InvalidTransaction(f"Unsupported line item {type(line).__name__}")


def _int_field(data: Mapping, key: str, default: int = 0) -> int:
    value = data.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool):
        raise InvalidTransaction(f"{key} must be an integer")
    if isinstance(value, float):
        if not value.is_integer():
            raise InvalidTransaction(f"{key} must be an integer")
        return int(value)
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidTransaction(f"{key} must be an integer")


def _parse_stay(data: Mapping | None) -> Optional[HotelStay]:
    if not data:
        return None
    if not isinstance(data, Mapping):
        raise InvalidTransaction("stay must be an object")
    if not data.get("check_in") or not data.get("check_out"):
        raise InvalidTransaction("stay requires check_in and check_out")
    try:
        parse_iso_date(data["check_in"])
        parse_iso_date(data["check_out"])
    except ValueError:
        raise InvalidTransaction("stay check_in and check_out must be YYYY-MM-DD")
    fee = data.get("fee_per_night_cents")
    if fee is not None:
        fee = _int_field(data, "fee_per_night_cents")
        if fee < 0:
            raise InvalidTransaction("stay fee_per_night_cents must be >= 0", details={"fee_per_night_cents": fee})

    weekday_staff = data.get("weekday_staff") or {}
    weekend_staff = data.get("weekend_staff") or {}
    if not isinstance(weekday_staff, Mapping):
        raise InvalidTransaction('stay weekday_staff must be an object like {"staff1": ..., "staff2": ...}')
    if not isinstance(weekend_staff, Mapping):
        raise InvalidTransaction('stay weekend_staff must be an object like {"YYYY-MM-DD": staff_id}')

    return HotelStay(
        check_in=str(data["check_in"]),
        check_out=str(data["check_out"]),
        weekday_staff=commission_service.WeekdayStaff.from_dict(weekday_staff),
        weekend_staff=dict(weekend_staff),
        fee_per_night_cents=fee,
    )


def parse_line_item(data: Mapping) -> LineItem:
    """
    Build a typed line item from a checkout payload entry.

    type: "product" (default), "medicine" or "service".
    Product and medicine lines require product_id.
    """
    if not isinstance(data, Mapping):
        raise InvalidTransaction("line item must be an object")

    line_type = str(data.get("type") or LINE_TYPE_PRODUCT).strip().lower()
    common = dict(
        name=str(data.get("name") or "").strip(),
        quantity=_int_field(data, "qty", _int_field(data, "quantity", 1)),
        unit_price_cents=_int_field(data, "price_cents"),
        discount_cents=_int_field(data, "discount_cents"),
        staff_id=data.get("staff_id") or None,
        fee_cents=_int_field(data, "fee_cents"),
        paramedic_id=data.get("paramedic_id") or None,
        fee_paramedic_cents=_int_field(data, "fee_paramedic_cents"),
    )

    if line_type in (LINE_TYPE_PRODUCT, LINE_TYPE_MEDICINE):
        if data.get("product_id") is None:
            raise InvalidTransaction(f"{line_type} line requires product_id")
        product_id = _int_field(data, "product_id")
        if line_type == LINE_TYPE_MEDICINE:
            return MedicineLine(product_id=product_id, **common)
        return ProductLine(product_id=product_id, **common)

    if line_type == LINE_TYPE_SERVICE:
        return ServiceLine(
            service_id=str(data["service_id"]) if data.get("service_id") is not None else None,
            stay=_parse_stay(data.get("stay")),
            **common,
        )

    raise InvalidTransaction(f"Unknown line type {line_type!r}")


def _validate_lines(items: list[LineItem]) -> None:
    if not items:
        raise InvalidTransaction("Cannot process a sale with no items")
    for line in items:
        if line.quantity <= 0:
            raise InvalidQuantity(
                f"Quantity for '{line.name or 'item'}' must be > 0",
                details={"name": line.name, "quantity": line.quantity},
            )
        if line.unit_price_cents < 0 or line.discount_cents < 0:
            raise InvalidTransaction(f"Price and discount for '{line.name or 'item'}' must be >= 0")
        if line.discount_cents > line.unit_price_cents * line.quantity:
            raise InvalidTransaction(
                f"Discount for '{line.name or 'item'}' exceeds the line amount",
                details={
                    "name": line.name,
                    "discount_cents": line.discount_cents,
                    "line_amount_cents": line.unit_price_cents * line.quantity,
                },
            )
        if line.fee_cents < 0 or line.fee_paramedic_cents < 0:
            raise InvalidTransaction(f"Fees for '{line.name or 'item'}' must be >= 0")
        stay = getattr(line, "stay", None)
        if stay is not None and stay.fee_per_night_cents is not None and stay.fee_per_night_cents < 0:
            raise InvalidTransaction(f"Fee per night for '{line.name or 'item'}' must be >= 0")


# =============================================================================
# SALE
# =============================================================================

def _load_stock_products(store_id: int, items: list[LineItem]) -> dict[int, Product]:
    """
    Load and validate every stock-tracked product before any write.

    Quantities are aggregated per product so two lines of the same product
    are checked against on-hand together.
    """
    requested: dict[int, int] = {}
    for line in items:
        if is_stock_tracked(line):
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity

    products: dict[int, Product] = {}
    for product_id, qty in requested.items():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None or product.is_deleted or product.store_id != store_id:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        if product.kind == PRODUCT_KIND_SERVICE:
            raise InvalidTransaction(f"'{product.name}' is a service and must be sold as a service line")
        available = product.stock or 0
        if available < qty:
            raise InsufficientStock(product.name, available=available, requested=qty, product_id=product.id)
        products[product_id] = product
    return products


def _fee_per_night(stay: HotelStay) -> int:
    if stay.fee_per_night_cents is not None:
        return stay.fee_per_night_cents
    return current_app.config.get("HOTEL_FEE_PER_NIGHT_CENTS", 5000)


def process_sale(
    store_id: int,
    items: list[LineItem],
    *,
    customer_id: str | None = None,
    payment_method: str | None = None,
    points_earned: int = 0,
    actor: str | None = None,
    note: str | None = None,
) -> Transaction:
    """
    Record a sale as one atomic unit.

    1. Validate every stock-tracked line against Product.stock (aggregated
       per product). The first shortage aborts with InsufficientStock before
       anything is written.
    2. Cost each stock-tracked line through FIFO consume().
    3. Persist the transaction with costed lines, status 'paid'.
    4. Apply customer effects: total spent, points, and debt for debt sales.
    Steps 2-4 commit together; any failure leaves every row unchanged.

    Service lines skip costing but count towards the total. A service line
    carrying a hotel stay gets its per-night commission allocation attached.
    """
    items = list(items)
    _validate_lines(items)
    payment_method = (payment_method or current_app.config.get("DEFAULT_PAYMENT_METHOD", "cash")).strip().lower()
    if isinstance(points_earned, bool) or not isinstance(points_earned, int) or points_earned < 0:
        raise InvalidQuantity("points_earned must be an integer >= 0", details={"points_earned": points_earned})

    # Pure; computed outside the atomic unit.
    allocations: dict[int, list[dict]] = {}
    for index, line in enumerate(items):
        if isinstance(line, ServiceLine) and line.stay is not None:
            records = commission_service.allocate(
                line.stay.nights(),
                line.stay.weekday_staff,
                line.stay.weekend_staff,
                _fee_per_night(line.stay),
            )
            allocations[index] = [r.to_dict() for r in records]

    def _op():
        products = _load_stock_products(store_id, items)

        customer = None
        if customer_id:
            customer = get_customer(customer_id, store_id=store_id, lock=True)

        total = sum(line.line_total_cents for line in items)

        txn = Transaction(
            store_id=store_id,
            kind=TRANSACTION_KIND_SALE,
            status=STATUS_PAID,
            customer_id=customer.id if customer else None,
            payment_method=payment_method,
            total_cents=total,
            points_earned=points_earned,
            note=note,
            created_by=actor,
        )
        db.session.add(txn)
        db.session.flush()

        for index, line in enumerate(items):
            cogs = 0
            product_id = None
            if is_stock_tracked(line):
                product = products[line.product_id]
                product_id = product.id
                result = consume(
                    product,
                    line.quantity,
                    movement_type=MOVEMENT_SALE,
                    note=f"Sale #{txn.id}",
                    ref_type="transaction",
                    ref_id=txn.id,
                )
                cogs = result.total_cost_cents

            db.session.add(TransactionLine(
                transaction_id=txn.id,
                line_type=line_type_of(line),
                product_id=product_id,
                name=line.name or (products[product_id].name if product_id else "Service"),
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_cents=line.discount_cents,
                line_total_cents=line.line_total_cents,
                cogs_cents=cogs,
                staff_id=line.staff_id,
                fee_cents=line.fee_cents,
                paramedic_id=line.paramedic_id,
                fee_paramedic_cents=line.fee_paramedic_cents,
                commission_details=allocations.get(index),
            ))

        if customer is not None:
            customer.total_spent_cents = (customer.total_spent_cents or 0) + total
            customer.loyalty_points = (customer.loyalty_points or 0) + points_earned
            customer.total_lifetime_points = (customer.total_lifetime_points or 0) + points_earned
            if payment_method == PAYMENT_METHOD_DEBT:
                customer.debt_cents = (customer.debt_cents or 0) + total

        db.session.flush()
        return txn

    txn = run_atomic(_op, operation="sale")
    current_app.logger.info(
        "Sale %s recorded: store=%s total=%s method=%s customer=%s",
        txn.id, store_id, txn.total_cents, payment_method, customer_id,
    )
    return txn


def process_sale_payload(store_id: int, payload: Mapping) -> Transaction:
    """Parse a checkout payload and record the sale."""
    raw_items = payload.get("items")
    if not isinstance(raw_items, list):
        raise InvalidTransaction("items must be a list")
    items = [parse_line_item(raw) for raw in raw_items]
    return process_sale(
        store_id,
        items,
        customer_id=payload.get("customer_id") or None,
        payment_method=payload.get("payment_method"),
        points_earned=_int_field(payload, "points_earned"),
        actor=payload.get("actor"),
        note=payload.get("note"),
    )


# =============================================================================
# VOID / REFUND
# =============================================================================

_FINALIZE_LABELS = {
    STATUS_VOID: "Void",
    STATUS_REFUNDED: "Refund",
}


def get_transaction(transaction_id: int) -> Transaction:
    txn = db.session.get(Transaction, transaction_id)
    if txn is None:
        raise TransactionNotFound(f"Transaction {transaction_id} not found", details={"transaction_id": transaction_id})
    return txn


def _mark_finalized(txn: Transaction, target_status: str, reason: str, actor: str | None) -> None:
    """
    Conditional status flip: only succeeds while the row is still 'paid'.

    This closes the double-void race that a plain read-then-write check
    leaves open.
    """
    now = utcnow()
    values = {
        Transaction.status: target_status,
        Transaction.version_id: Transaction.version_id + 1,
    }
    if target_status == STATUS_VOID:
        values.update({Transaction.void_reason: reason, Transaction.voided_by: actor, Transaction.voided_at: now})
    else:
        values.update({Transaction.refund_reason: reason, Transaction.refunded_by: actor, Transaction.refunded_at: now})

    updated = (
        db.session.query(Transaction)
        .filter(Transaction.id == txn.id, Transaction.status == STATUS_PAID)
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        raise AlreadyFinalized(
            f"Transaction {txn.id} is already finalized",
            details={"transaction_id": txn.id},
        )


def _finalize(transaction_id: int, target_status: str, reason: str, actor: str | None) -> Transaction:
    label = _FINALIZE_LABELS[target_status]
    if not reason or not str(reason).strip():
        raise InvalidTransaction(f"{label} reason is required")
    reason = str(reason).strip()

    def _op():
        txn = get_transaction(transaction_id)
        if txn.status != STATUS_PAID:
            raise AlreadyFinalized(
                f"Transaction {transaction_id} is already {txn.status}",
                details={"transaction_id": transaction_id, "status": txn.status},
            )
        if txn.kind != TRANSACTION_KIND_SALE:
            raise InvalidTransaction(f"{txn.kind} transactions cannot be reversed")

        note = f"{label} #{txn.id}"
        for line in txn.lines:
            if not line.is_stock_tracked:
                continue
            product = lock_for_update(db.session.query(Product).filter_by(id=line.product_id)).first()
            if product is None:
                raise ProductNotFound(f"Product {line.product_id} not found", details={"product_id": line.product_id})
            reverse(product, line.quantity, ref_type="transaction", ref_id=txn.id, note=note)

        if txn.customer_id:
            customer = db.session.query(Customer).filter_by(id=txn.customer_id).first()
            if customer is not None:
                customer.total_spent_cents = (customer.total_spent_cents or 0) - txn.total_cents
                if txn.payment_method == PAYMENT_METHOD_DEBT:
                    customer.debt_cents = (customer.debt_cents or 0) - txn.total_cents
                if txn.points_earned > 0:
                    record_points_reversal(customer, txn.points_earned, transaction_id=txn.id, reason=note, actor=actor)

        _mark_finalized(txn, target_status, reason, actor)
        return txn.id

    txn_id = run_atomic(_op, operation=label.lower())
    # The conditional UPDATE bypassed the identity map; reload the row.
    txn = db.session.get(Transaction, txn_id, populate_existing=True)
    current_app.logger.info("Transaction %s marked %s by %s: %s", txn_id, target_status, actor, reason)
    return txn


def void_transaction(transaction_id: int, reason: str, actor: str | None = None) -> Transaction:
    """
    Void a paid sale: restore stock, reverse customer effects, mark 'void'.

    Batches consumed by the sale stay consumed; only Product.stock and the
    movement log are restored.
    """
    return _finalize(transaction_id, STATUS_VOID, reason, actor)


def refund_transaction(transaction_id: int, reason: str, actor: str | None = None) -> Transaction:
    """Refund a paid sale. Same effects as a void, recorded as 'refunded'."""
    return _finalize(transaction_id, STATUS_REFUNDED, reason, actor)


# =============================================================================
# DEBT PAYMENT
# =============================================================================

def process_debt_payment(
    customer_id: str,
    amount_cents: int,
    payment_method: str = "cash",
    actor: str | None = None,
) -> Transaction:
    """Record a customer paying down debt and reduce the balance atomically."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise InvalidQuantity("amount_cents must be > 0", details={"amount_cents": amount_cents})
    payment_method = (payment_method or "cash").strip().lower()
    if payment_method == PAYMENT_METHOD_DEBT:
        raise InvalidTransaction("Debt cannot be paid with debt")

    def _op():
        customer = get_customer(customer_id, lock=True)
        txn = Transaction(
            store_id=customer.store_id,
            kind=TRANSACTION_KIND_DEBT_PAYMENT,
            status=STATUS_PAID,
            customer_id=customer.id,
            payment_method=payment_method,
            total_cents=amount_cents,
            points_earned=0,
            created_by=actor,
        )
        db.session.add(txn)
        customer.debt_cents = (customer.debt_cents or 0) - amount_cents
        db.session.flush()
        return txn

    txn = run_atomic(_op, operation="debt payment")
    current_app.logger.info("Debt payment %s: customer=%s amount=%s", txn.id, customer_id, amount_cents)
    return txn


def list_transactions(store_id: int, *, status: str | None = None, limit: int = 100) -> list[Transaction]:
    query = db.session.query(Transaction).filter_by(store_id=store_id)
    if status:
        query = query.filter_by(status=status)
    return query.order_by(Transaction.created_at.desc(), Transaction.id.desc()).limit(limit).all()
