# Overview: Batch ledger and FIFO costing engine; encapsulates stock and cost changes.

# backend/posledger/services/inventory_service.py

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from flask import current_app

from ..extensions import db
from ..models import Product, StockBatch
from ..models.inventory import MOVEMENT_ADJUSTMENT, MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_SALE
from ..time_utils import utcnow
from .concurrency import lock_for_update, run_atomic
from .errors import InvalidQuantity, ProductNotFound
from .movement_service import append_stock_movement, sum_movements
"""
Inventory Invariants (authoritative)

Batch ledger:
- Every stock receipt creates exactly one StockBatch with a frozen unit cost.
- Batches are consumed oldest-first: ORDER BY received_at, id.
- 0 <= current_qty <= initial_qty; batches are never deleted.

Stock counter:
- Product.stock is denormalized and changes only in this module.
- Every change to Product.stock appends exactly one StockMovement with the
  same signed quantity, so Product.stock == SUM(movement.quantity).

Costing:
- consume() costs each unit at the batch it is taken from.
- Units not covered by batches are costed at the product's current
  buy_price_cents (CostingPolicy.FALLBACK_TO_CURRENT_BUY_PRICE).
- Stock is advisory at this layer: consume() never refuses a quantity.
  The transaction engine performs the hard on-hand check before calling it.

Reversal:
- reverse() restores Product.stock only. Consumed batches stay consumed, so
  after a void the batch ledger may hold fewer units than Product.stock.

Commit ownership:
- consume() and reverse() stage writes and never commit; the caller's
  run_atomic() owns the atomic unit.
- receive(), reduce_stock() and adjust_stock() are complete operations and
  commit on their own.
"""


class CostingPolicy(str, Enum):
    """How units beyond the tracked batches are costed."""

    # Shortfall is priced at Product.buy_price_cents at the time of the sale.
    FALLBACK_TO_CURRENT_BUY_PRICE = "fallback_to_current_buy_price"


@dataclass(frozen=True)
class BatchDeduction:
    batch_id: int
    quantity: int
    unit_cost_cents: int

    @property
    def cost_cents(self) -> int:
        return self.quantity * self.unit_cost_cents


@dataclass(frozen=True)
class CostResult:
    """Outcome of consuming a quantity from the batch ledger."""

    product_id: int
    quantity: int
    total_cost_cents: int
    deductions: tuple[BatchDeduction, ...] = field(default_factory=tuple)
    fallback_quantity: int = 0
    fallback_unit_cost_cents: int = 0
    policy: CostingPolicy = CostingPolicy.FALLBACK_TO_CURRENT_BUY_PRICE

    @property
    def average_unit_cost(self) -> Decimal:
        return Decimal(self.total_cost_cents) / Decimal(self.quantity)

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "quantity": self.quantity,
            "total_cost_cents": self.total_cost_cents,
            "average_unit_cost": str(self.average_unit_cost),
            "fallback_quantity": self.fallback_quantity,
            "fallback_unit_cost_cents": self.fallback_unit_cost_cents,
            "policy": self.policy.value,
            "deductions": [
                {
                    "batch_id": d.batch_id,
                    "quantity": d.quantity,
                    "unit_cost_cents": d.unit_cost_cents,
                }
                for d in self.deductions
            ],
        }


def _require_positive(quantity, what: str = "quantity") -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantity(f"{what} must be an integer", details={what: quantity})
    if quantity <= 0:
        raise InvalidQuantity(f"{what} must be > 0", details={what: quantity})
    return quantity


def get_product(product_id: int, *, lock: bool = False, include_deleted: bool = False) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or (product.is_deleted and not include_deleted):
        raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
    return product


def available_batches(product_id: int) -> list[StockBatch]:
    """Batches with remaining quantity in FIFO order (oldest first)."""
    return (
        db.session.query(StockBatch)
        .filter(StockBatch.product_id == product_id, StockBatch.current_qty > 0)
        .order_by(StockBatch.received_at.asc(), StockBatch.id.asc())
        .all()
    )


def _create_batch(
    product: Product,
    *,
    quantity: int,
    buy_price_cents: int,
    note: str | None,
    received_at=None,
) -> StockBatch:
    batch = StockBatch(
        store_id=product.store_id,
        product_id=product.id,
        initial_qty=quantity,
        current_qty=quantity,
        buy_price_cents=buy_price_cents,
        received_at=received_at or utcnow(),
        note=note,
    )
    db.session.add(batch)
    db.session.flush()
    return batch


def _receive_inner(
    product: Product,
    *,
    quantity: int,
    buy_price_cents: int,
    note: str | None,
    movement_ref_type: str = "batch",
    movement_ref_id: int | None = None,
) -> StockBatch:
    """Core receipt logic without commit. Used by receive() and product creation."""
    _require_positive(quantity)
    if buy_price_cents is None or buy_price_cents < 0:
        raise InvalidQuantity("buy_price_cents must be >= 0", details={"buy_price_cents": buy_price_cents})

    batch = _create_batch(product, quantity=quantity, buy_price_cents=buy_price_cents, note=note)
    product.stock = (product.stock or 0) + quantity
    append_stock_movement(
        store_id=product.store_id,
        product_id=product.id,
        movement_type=MOVEMENT_IN,
        quantity=quantity,
        note=note or "Stock in (batch)",
        ref_type=movement_ref_type,
        ref_id=movement_ref_id if movement_ref_id is not None else batch.id,
        occurred_at=batch.received_at,
    )
    return batch


def receive(
    product_id: int,
    quantity: int,
    buy_price_cents: int,
    note: str | None = None,
    *,
    sell_price_cents: int | None = None,
) -> StockBatch:
    """
    Receive stock into a new FIFO batch.

    The product's fallback buy price follows the latest receipt; the sell
    price is updated only when given.
    """
    _require_positive(quantity)

    def _op():
        product = get_product(product_id, lock=True)
        batch = _receive_inner(product, quantity=quantity, buy_price_cents=buy_price_cents, note=note)
        product.buy_price_cents = buy_price_cents
        if sell_price_cents is not None:
            product.sell_price_cents = sell_price_cents
        return batch

    batch = run_atomic(_op, operation="stock receipt")
    current_app.logger.info(
        "Received %s units into batch %s for product %s at %s",
        quantity, batch.id, product_id, buy_price_cents,
    )
    return batch


def consume(
    product: Product,
    quantity: int,
    *,
    movement_type: str = MOVEMENT_SALE,
    note: str | None = None,
    ref_type: str | None = None,
    ref_id: int | None = None,
) -> CostResult:
    """
    Take quantity out of stock using FIFO batch costing.

    Walks batches oldest-first, deducting min(batch.current_qty, remaining)
    from each and accumulating deducted * batch.buy_price_cents. Any
    remaining quantity once batches run out is costed at the product's
    current buy_price_cents.

    Side effects (staged, not committed):
    - one update per touched batch
    - Product.stock decremented by quantity
    - exactly one StockMovement of movement_type with -quantity
    """
    _require_positive(quantity)
    if movement_type not in (MOVEMENT_SALE, MOVEMENT_OUT):
        raise ValueError(f"consume cannot record a {movement_type!r} movement")

    remaining = quantity
    total_cost = 0
    deductions: list[BatchDeduction] = []

    for batch in available_batches(product.id):
        if remaining <= 0:
            break
        take = min(batch.current_qty, remaining)
        batch.current_qty = batch.current_qty - take
        total_cost += take * batch.buy_price_cents
        deductions.append(BatchDeduction(batch_id=batch.id, quantity=take, unit_cost_cents=batch.buy_price_cents))
        remaining -= take

    fallback_unit_cost = 0
    if remaining > 0:
        # CostingPolicy.FALLBACK_TO_CURRENT_BUY_PRICE
        fallback_unit_cost = product.buy_price_cents or 0
        total_cost += remaining * fallback_unit_cost

    product.stock = (product.stock or 0) - quantity
    append_stock_movement(
        store_id=product.store_id,
        product_id=product.id,
        movement_type=movement_type,
        quantity=-quantity,
        note=note,
        ref_type=ref_type,
        ref_id=ref_id,
    )

    return CostResult(
        product_id=product.id,
        quantity=quantity,
        total_cost_cents=total_cost,
        deductions=tuple(deductions),
        fallback_quantity=remaining,
        fallback_unit_cost_cents=fallback_unit_cost,
    )


def reverse(
    product: Product,
    quantity: int,
    *,
    ref_type: str,
    ref_id: int,
    note: str | None = None,
) -> None:
    """
    Put quantity back into stock after a void or refund.

    Only Product.stock and the movement log change. The batches consumed by
    the original sale are not restored and no synthetic batch is created;
    restored units are costed by the fallback policy when sold again.
    """
    _require_positive(quantity)
    product.stock = (product.stock or 0) + quantity
    append_stock_movement(
        store_id=product.store_id,
        product_id=product.id,
        movement_type=MOVEMENT_IN,
        quantity=quantity,
        note=note,
        ref_type=ref_type,
        ref_id=ref_id,
    )


def reduce_stock(product_id: int, quantity: int, note: str | None = None) -> CostResult:
    """
    Manual FIFO stock reduction (damage, expiry, internal use).

    Costed exactly like a sale but recorded as an 'out' movement.
    """
    _require_positive(quantity)

    def _op():
        product = get_product(product_id, lock=True)
        return consume(
            product,
            quantity,
            movement_type=MOVEMENT_OUT,
            note=note or "Stock reduction (FIFO)",
            ref_type="product",
            ref_id=product.id,
        )

    result = run_atomic(_op, operation="stock reduction")
    current_app.logger.info(
        "Reduced product %s by %s units, cost %s", product_id, quantity, result.total_cost_cents,
    )
    return result


def adjust_stock(product_id: int, quantity_delta: int, note: str | None = None) -> Product:
    """
    Manual stock correction outside the batch ledger.

    Changes Product.stock by a signed delta and records an 'adjustment'
    movement. Batches are not touched.
    """
    if isinstance(quantity_delta, bool) or not isinstance(quantity_delta, int) or quantity_delta == 0:
        raise InvalidQuantity("quantity_delta must be a non-zero integer", details={"quantity_delta": quantity_delta})

    def _op():
        product = get_product(product_id, lock=True)
        product.stock = (product.stock or 0) + quantity_delta
        append_stock_movement(
            store_id=product.store_id,
            product_id=product.id,
            movement_type=MOVEMENT_ADJUSTMENT,
            quantity=quantity_delta,
            note=note or "Manual adjustment",
        )
        return product

    return run_atomic(_op, operation="stock adjustment")


def list_batches(product_id: int, *, include_empty: bool = True) -> list[StockBatch]:
    get_product(product_id, include_deleted=True)
    query = db.session.query(StockBatch).filter(StockBatch.product_id == product_id)
    if not include_empty:
        query = query.filter(StockBatch.current_qty > 0)
    return query.order_by(StockBatch.received_at.asc(), StockBatch.id.asc()).all()


def get_stock_summary(product_id: int) -> dict:
    """
    Stock figures for one product from all three sources.

    movement_total always equals stock. batch_quantity may be lower than
    stock after voids/refunds or adjustments, which do not touch batches.
    """
    product = get_product(product_id, include_deleted=True)
    batches = list_batches(product_id, include_empty=False)
    batch_quantity = sum(b.current_qty for b in batches)
    return {
        "product_id": product.id,
        "stock": product.stock,
        "movement_total": sum_movements(product.id),
        "batch_quantity": batch_quantity,
        "untracked_quantity": product.stock - batch_quantity,
        "batch_value_cents": sum(b.current_qty * b.buy_price_cents for b in batches),
        "fallback_buy_price_cents": product.buy_price_cents,
    }
