import pytest

from posledger.extensions import db
from posledger.models import Product, StockBatch, StockMovement
from posledger.services import inventory_service, movement_service, products_service
from posledger.services.errors import DuplicateBarcode, ProductNotFound
from posledger.validation import ValidationError


def test_initial_stock_becomes_batch_and_movement(store):
    p = products_service.add_product(
        store.id,
        {"name": "Dog Shampoo", "barcode": "8990002", "buy_price_cents": 12, "sell_price_cents": 25},
        initial_stock=8,
    )

    assert db.session.get(Product, p.id).stock == 8

    batches = inventory_service.list_batches(p.id)
    assert [(b.initial_qty, b.current_qty, b.buy_price_cents) for b in batches] == [(8, 8, 12)]

    movements = movement_service.list_movements(p.id)
    assert len(movements) == 1
    assert movements[0].type == "in"
    assert movements[0].quantity == 8
    assert movements[0].ref_type == "product"
    assert movements[0].ref_id == p.id
    assert movements[0].note == "Initial Stock"


def test_product_without_stock_has_no_ledger_rows(product):
    assert db.session.get(Product, product.id).stock == 0
    assert db.session.query(StockBatch).count() == 0
    assert db.session.query(StockMovement).count() == 0


def test_service_cannot_carry_stock(store):
    with pytest.raises(ValidationError):
        products_service.add_product(store.id, {"name": "Grooming", "kind": "service"}, initial_stock=1)
    assert db.session.query(Product).count() == 0


def test_duplicate_barcode_rejected(store, product):
    with pytest.raises(DuplicateBarcode):
        products_service.add_product(store.id, {"name": "Other", "barcode": product.barcode})


def test_barcode_of_deleted_product_can_be_reused(store, product):
    products_service.delete_product(product.id)

    again = products_service.add_product(store.id, {"name": "Cat Food 1kg v2", "barcode": product.barcode})
    assert again.id != product.id


def test_update_ignores_stock(product):
    products_service.update_product(product.id, {"stock": 500, "sell_price_cents": 35})

    p = db.session.get(Product, product.id)
    assert p.stock == 0
    assert p.sell_price_cents == 35
    assert db.session.query(StockMovement).count() == 0


def test_stocked_product_cannot_become_service(stocked_product):
    with pytest.raises(ValidationError):
        products_service.update_product(stocked_product.id, {"kind": "service", "name": "Cat Boarding"})

    p = db.session.get(Product, stocked_product.id)
    assert p.kind == "product"
    assert p.name == "Cat Food 1kg"
    assert p.stock == 10


def test_empty_product_can_become_service(product):
    products_service.update_product(product.id, {"kind": "service"})

    assert db.session.get(Product, product.id).kind == "service"


def test_update_to_taken_barcode_rejected(store, product):
    other = products_service.add_product(store.id, {"name": "Litter", "barcode": "8990009"})
    with pytest.raises(DuplicateBarcode):
        products_service.update_product(other.id, {"barcode": product.barcode})


def test_soft_delete_keeps_row(product):
    products_service.delete_product(product.id)

    p = db.session.get(Product, product.id)
    assert p.is_deleted is True
    assert p.deleted_at is not None
    assert products_service.list_products(p.store_id) == []
    assert products_service.list_products(p.store_id, include_deleted=True) == [p]


def test_delete_unknown_product(db_session):
    with pytest.raises(ProductNotFound):
        products_service.delete_product(404)


def test_bulk_import_creates_opening_batches(store):
    products = products_service.bulk_add_products(store.id, [
        ({"name": "Bird Seed", "barcode": "111", "buy_price_cents": 5}, 10),
        ({"name": "Fish Flakes", "barcode": "222", "buy_price_cents": 7}, 0),
    ])

    assert [p.stock for p in products] == [10, 0]
    movement = movement_service.list_movements(products[0].id)[0]
    assert movement.note == "Initial Stock (Bulk Import)"
    assert movement_service.list_movements(products[1].id) == []


def test_bulk_import_is_all_or_nothing(store, product):
    with pytest.raises(DuplicateBarcode):
        products_service.bulk_add_products(store.id, [
            ({"name": "Bird Seed", "barcode": "111"}, 10),
            ({"name": "Clash", "barcode": product.barcode}, 3),
        ])

    assert db.session.query(Product).count() == 1
    assert db.session.query(StockBatch).count() == 0


def test_bulk_import_rejects_repeated_barcode(store):
    with pytest.raises(DuplicateBarcode):
        products_service.bulk_add_products(store.id, [
            ({"name": "A", "barcode": "333"}, 1),
            ({"name": "B", "barcode": "333"}, 1),
        ])
    assert db.session.query(Product).count() == 0
