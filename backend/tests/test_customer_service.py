"""
Customer directory and loyalty ledger tests.
"""

from datetime import datetime, timedelta

import pytest

from posledger.extensions import db
from posledger.models import Customer, PointAdjustment, Store
from posledger.services import customer_service, store_service
from posledger.services.errors import CustomerNotFound, DuplicateCustomer, InvalidPointAdjustment
from posledger.time_utils import utcnow
from posledger.validation import ValidationError


def test_customer_id_is_phone_digits(customer):
    assert customer.id == "08123456789"
    assert customer.phone == "0812-3456-789"
    assert customer.loyalty_points == 0


def test_duplicate_phone_rejected(store, customer):
    with pytest.raises(DuplicateCustomer):
        customer_service.create_customer(store.id, name="Someone Else", phone="0812 3456 789")


def test_phone_without_digits_rejected(store):
    with pytest.raises(ValidationError):
        customer_service.create_customer(store.id, name="Nobody", phone="n/a")


def test_deleted_customer_is_restored_on_recreate(store, customer):
    customer_service.delete_customer(customer.id)
    with pytest.raises(CustomerNotFound):
        customer_service.get_customer(customer.id)

    restored = customer_service.create_customer(store.id, name="Rina S.", phone="08123456789")

    assert restored.id == customer.id
    assert restored.name == "Rina S."
    assert restored.is_deleted is False


def test_deleted_customer_of_another_store_is_not_taken_over(store, customer):
    customer_service.delete_customer(customer.id)
    branch = store_service.create_store("Pet Care North", "PCN")

    with pytest.raises(DuplicateCustomer):
        customer_service.create_customer(branch.id, name="Rina N.", phone="0812-3456-789")

    c = db.session.get(Customer, customer.id)
    assert c.store_id == store.id
    assert c.is_deleted is True
    assert c.name == "Rina"


def test_store_scoped_lookup_hides_other_store(store, customer):
    branch = store_service.create_store("Pet Care North", "PCN")

    with pytest.raises(CustomerNotFound):
        customer_service.get_customer(customer.id, store_id=branch.id)
    assert customer_service.get_customer(customer.id, store_id=store.id).id == customer.id


def test_update_ignores_financial_fields(customer):
    customer_service.update_customer(customer.id, {"email": "rina@example.com", "debt_cents": 999})

    c = db.session.get(Customer, customer.id)
    assert c.email == "rina@example.com"
    assert c.debt_cents == 0


def test_adjust_points_adds_and_records_history(customer):
    adjustment = customer_service.adjust_points(customer.id, 50, "Welcome bonus", actor="admin")

    assert adjustment.type == "addition"
    assert (adjustment.previous_balance, adjustment.new_balance) == (0, 50)
    assert adjustment.performed_by == "admin"
    assert db.session.get(Customer, customer.id).loyalty_points == 50


def test_deduction_clamps_at_zero(customer):
    customer_service.adjust_points(customer.id, 30, "Bonus")
    adjustment = customer_service.adjust_points(customer.id, -100, "Redeemed")

    assert adjustment.type == "deduction"
    assert adjustment.amount == -100
    assert adjustment.new_balance == 0
    assert db.session.get(Customer, customer.id).loyalty_points == 0


def test_manual_adjustment_does_not_touch_lifetime_points(customer):
    customer_service.adjust_points(customer.id, 30, "Bonus")
    assert db.session.get(Customer, customer.id).total_lifetime_points == 0


@pytest.mark.parametrize("amount,reason", [(0, "Zero"), (5, ""), (5, "   ")])
def test_invalid_adjustments_rejected(customer, amount, reason):
    with pytest.raises(InvalidPointAdjustment):
        customer_service.adjust_points(customer.id, amount, reason)
    assert db.session.query(PointAdjustment).count() == 0


def test_point_history_newest_first(customer):
    customer_service.adjust_points(customer.id, 10, "First")
    customer_service.adjust_points(customer.id, 5, "Second")

    history = customer_service.point_history(customer.id)
    assert [a.reason for a in history] == ["Second", "First"]


class TestPointExpiry:
    def _enable(self, store, expiry):
        store_service.configure_point_expiry(store.id, enabled=True, expiry_date=expiry)

    def test_reset_zeroes_balances_and_logs(self, store, customer):
        other = customer_service.create_customer(store.id, name="Budi", phone="0899")
        customer_service.adjust_points(customer.id, 40, "Bonus")
        expiry = utcnow() - timedelta(days=1)
        self._enable(store, expiry)

        result = customer_service.reset_expired_points(store.id)

        assert result["reset_count"] == 1
        assert result["adjustments"][0]["customer_id"] == customer.id
        assert db.session.get(Customer, customer.id).loyalty_points == 0
        assert db.session.get(Customer, other.id).loyalty_points == 0

        log = db.session.query(PointAdjustment).filter_by(type="expiry_reset").one()
        assert log.amount == -40
        assert (log.previous_balance, log.new_balance) == (40, 0)
        assert log.performed_by == "system"
        assert db.session.get(Store, store.id).points_last_reset_at is not None

    def test_reset_runs_once_per_expiry_date(self, store, customer):
        self._enable(store, utcnow() - timedelta(days=1))
        customer_service.reset_expired_points(store.id)

        customer_service.adjust_points(customer.id, 15, "Earned after reset")
        with pytest.raises(InvalidPointAdjustment):
            customer_service.reset_expired_points(store.id)
        assert db.session.get(Customer, customer.id).loyalty_points == 15

    def test_reset_before_expiry_date_rejected(self, store, customer):
        self._enable(store, datetime(2099, 1, 1))
        with pytest.raises(InvalidPointAdjustment):
            customer_service.reset_expired_points(store.id)

    def test_reset_when_disabled_rejected(self, store):
        with pytest.raises(InvalidPointAdjustment):
            customer_service.reset_expired_points(store.id)

    def test_enable_requires_date(self, store):
        with pytest.raises(ValidationError):
            store_service.configure_point_expiry(store.id, enabled=True, expiry_date=None)
