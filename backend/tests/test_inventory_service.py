"""
Batch ledger and FIFO costing tests.

Covers receipts, oldest-first consumption, fallback costing and the
stock == sum(movements) invariant.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from posledger.extensions import db
from posledger.models import Product, StockBatch, StockMovement
from posledger.services import inventory_service, movement_service
from posledger.services.errors import CommitFailed, InvalidQuantity, ProductNotFound
from posledger.services.inventory_service import CostingPolicy


def _stock_matches_movements(product_id):
    product = db.session.get(Product, product_id)
    return product.stock == movement_service.sum_movements(product_id)


def test_receive_creates_batch_movement_and_stock(product):
    batch = inventory_service.receive(product.id, 12, 25, "Supplier A", sell_price_cents=40)

    assert batch.initial_qty == 12
    assert batch.current_qty == 12
    assert batch.buy_price_cents == 25

    p = db.session.get(Product, product.id)
    assert p.stock == 12
    assert p.buy_price_cents == 25
    assert p.sell_price_cents == 40

    movements = movement_service.list_movements(product.id)
    assert len(movements) == 1
    assert movements[0].type == "in"
    assert movements[0].quantity == 12
    assert movements[0].ref_type == "batch"
    assert movements[0].ref_id == batch.id


@pytest.mark.parametrize("qty", [0, -3])
def test_receive_rejects_non_positive_quantity(product, qty):
    with pytest.raises(InvalidQuantity):
        inventory_service.receive(product.id, qty, 10)

    assert db.session.query(StockBatch).count() == 0


def test_receive_unknown_product(db_session):
    with pytest.raises(ProductNotFound):
        inventory_service.receive(99999, 1, 10)


def test_fifo_consume_across_two_batches(stocked_product):
    """5 @ 10 then 5 @ 20, consume 7 -> 5*10 + 2*20 = 90."""
    product = db.session.get(Product, stocked_product.id)

    result = inventory_service.consume(product, 7, ref_type="transaction", ref_id=1)
    db.session.commit()

    assert result.total_cost_cents == 90
    assert result.average_unit_cost == Decimal(90) / Decimal(7)
    assert result.fallback_quantity == 0
    assert [(d.quantity, d.unit_cost_cents) for d in result.deductions] == [(5, 10), (2, 20)]

    batches = inventory_service.list_batches(stocked_product.id)
    assert [b.current_qty for b in batches] == [0, 3]
    assert db.session.get(Product, stocked_product.id).stock == 3
    assert _stock_matches_movements(stocked_product.id)


def test_consume_without_shortfall_uses_no_fallback(stocked_product):
    product = db.session.get(Product, stocked_product.id)

    result = inventory_service.consume(product, 10)
    db.session.commit()

    assert result.total_cost_cents == 5 * 10 + 5 * 20
    assert result.fallback_quantity == 0
    assert result.fallback_unit_cost_cents == 0


def test_consume_shortfall_costed_at_current_buy_price(stocked_product):
    """Units beyond the batches cost Product.buy_price_cents (15)."""
    product = db.session.get(Product, stocked_product.id)

    result = inventory_service.consume(product, 12)
    db.session.commit()

    assert result.total_cost_cents == 50 + 100 + 2 * 15
    assert result.fallback_quantity == 2
    assert result.fallback_unit_cost_cents == 15
    assert result.policy is CostingPolicy.FALLBACK_TO_CURRENT_BUY_PRICE

    # Costing never refuses; stock goes negative and stays consistent
    assert db.session.get(Product, stocked_product.id).stock == -2
    assert _stock_matches_movements(stocked_product.id)


def test_consume_with_no_batches_costs_everything_at_fallback(product):
    p = db.session.get(Product, product.id)

    result = inventory_service.consume(p, 3, movement_type="out")
    db.session.commit()

    assert result.total_cost_cents == 45
    assert result.deductions == ()
    movement = movement_service.list_movements(product.id)[0]
    assert movement.type == "out"
    assert movement.quantity == -3


def test_consume_rejects_zero(stocked_product):
    product = db.session.get(Product, stocked_product.id)
    with pytest.raises(InvalidQuantity):
        inventory_service.consume(product, 0)


def test_reverse_restores_stock_but_not_batches(stocked_product):
    product = db.session.get(Product, stocked_product.id)
    inventory_service.consume(product, 7, ref_type="transaction", ref_id=42)
    db.session.commit()

    product = db.session.get(Product, stocked_product.id)
    inventory_service.reverse(product, 7, ref_type="transaction", ref_id=42, note="Void #42")
    db.session.commit()

    assert db.session.get(Product, stocked_product.id).stock == 10
    assert [b.current_qty for b in inventory_service.list_batches(stocked_product.id)] == [0, 3]

    refs = movement_service.list_movements_for_ref("transaction", 42)
    assert [(m.type, m.quantity) for m in refs] == [("sale", -7), ("in", 7)]
    assert _stock_matches_movements(stocked_product.id)


def test_reduce_stock_is_fifo_write_off(stocked_product):
    result = inventory_service.reduce_stock(stocked_product.id, 6, "Damaged in storage")

    assert result.total_cost_cents == 5 * 10 + 1 * 20
    latest = movement_service.list_movements(stocked_product.id)[0]
    assert latest.type == "out"
    assert latest.quantity == -6
    assert latest.note == "Damaged in storage"
    assert db.session.get(Product, stocked_product.id).stock == 4


def test_adjust_stock_leaves_batches_alone(stocked_product):
    inventory_service.adjust_stock(stocked_product.id, -2, "Stock count correction")

    summary = inventory_service.get_stock_summary(stocked_product.id)
    assert summary["stock"] == 8
    assert summary["movement_total"] == 8
    assert summary["batch_quantity"] == 10
    assert summary["untracked_quantity"] == -2


def test_adjust_stock_rejects_zero_delta(stocked_product):
    with pytest.raises(InvalidQuantity):
        inventory_service.adjust_stock(stocked_product.id, 0)


def test_stock_equals_sum_of_movements_after_mixed_sequence(product):
    inventory_service.receive(product.id, 4, 10)
    inventory_service.reduce_stock(product.id, 3)
    inventory_service.receive(product.id, 6, 12)
    inventory_service.adjust_stock(product.id, 2)
    inventory_service.reduce_stock(product.id, 8)
    inventory_service.receive(product.id, 1, 9)

    assert db.session.get(Product, product.id).stock == 2
    assert _stock_matches_movements(product.id)


def test_batches_never_exceed_initial_quantity(stocked_product):
    inventory_service.reduce_stock(stocked_product.id, 4)
    for batch in inventory_service.list_batches(stocked_product.id):
        assert 0 <= batch.current_qty <= batch.initial_qty


def test_commit_failure_leaves_ledger_unchanged(stocked_product, monkeypatch):
    def failing_commit():
        raise OperationalError("COMMIT", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session(), "commit", failing_commit)

    with pytest.raises(CommitFailed) as excinfo:
        inventory_service.reduce_stock(stocked_product.id, 3)

    monkeypatch.undo()

    assert excinfo.value.details["operation"] == "stock reduction"
    assert isinstance(excinfo.value.__cause__, OperationalError)
    assert db.session.get(Product, stocked_product.id).stock == 10
    assert [b.current_qty for b in inventory_service.list_batches(stocked_product.id)] == [5, 5]
    assert db.session.query(StockMovement).filter_by(type="out").count() == 0
