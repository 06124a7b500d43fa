# Overview: Append-only stock movement log; the audit trail behind Product.stock.

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import func

from ..extensions import db
from ..models import StockMovement
from ..models.inventory import MOVEMENT_TYPES
from ..time_utils import utcnow
"""
Stock Movement Log Invariants (authoritative)

- Append-only: rows are inserted here and nowhere else; never updated or deleted.
- Movements are written inside the same session commit as the stock change
  they record, so Product.stock == SUM(quantity) per product at every commit.
- quantity is signed: + increases stock, - decreases stock.
- occurred_at is business time; created_at is system time (DB default).
"""


def append_stock_movement(
    *,
    store_id: int,
    product_id: int,
    movement_type: str,
    quantity: int,
    note: Optional[str] = None,
    ref_type: Optional[str] = None,
    ref_id: Optional[int] = None,
    occurred_at: Optional[datetime] = None,
) -> StockMovement:
    """
    Append one stock movement to the session.

    - No domain logic here; callers update Product.stock themselves.
    - Does not commit.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValueError(f"unknown movement type {movement_type!r}")
    if quantity == 0:
        raise ValueError("movement quantity must be non-zero")

    movement = StockMovement(
        store_id=store_id,
        product_id=product_id,
        type=movement_type,
        quantity=quantity,
        note=note,
        ref_type=ref_type,
        ref_id=ref_id,
        occurred_at=occurred_at or utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def sum_movements(product_id: int) -> int:
    """Cumulative signed quantity of every movement for a product."""
    total = db.session.query(
        func.coalesce(func.sum(StockMovement.quantity), 0)
    ).filter(StockMovement.product_id == product_id).scalar()
    return int(total or 0)


def list_movements(product_id: int, *, limit: int = 200) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id)
        .order_by(StockMovement.occurred_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def list_movements_for_ref(ref_type: str, ref_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(ref_type=ref_type, ref_id=ref_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
