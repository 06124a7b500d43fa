"""
Fee report, profit report and stock reconciliation tests.
"""

from decimal import Decimal

import pytest

from posledger.extensions import db
from posledger.models import Product
from posledger.services import inventory_service, products_service, reporting_service, sales_service
from posledger.services.commission_service import WeekdayStaff
from posledger.services.reporting_service import ReportError
from posledger.services.sales_service import HotelStay, ProductLine, ServiceLine
from posledger.time_utils import utcnow


def _grooming(fee=3000, paramedic_fee=0, discount=0):
    return ServiceLine(
        name="Grooming",
        quantity=1,
        unit_price_cents=10000,
        discount_cents=discount,
        staff_id="groomer-1",
        fee_cents=fee,
        paramedic_id="vet-1" if paramedic_fee else None,
        fee_paramedic_cents=paramedic_fee,
    )


def _hotel():
    stay = HotelStay(
        check_in="2024-06-07",
        check_out="2024-06-09",
        weekday_staff=WeekdayStaff("A", "B"),
        weekend_staff={"2024-06-08": "C"},
    )
    return ServiceLine(name="Cat Hotel", quantity=2, unit_price_cents=10000, stay=stay)


class TestFeeReport:
    def test_regular_and_paramedic_fees(self, store):
        sales_service.process_sale(store.id, [_grooming(fee=3000, paramedic_fee=1500, discount=500)])

        report = reporting_service.fee_report(store.id)

        by_role = {row["role"]: row for row in report["rows"]}
        assert by_role["service"]["staff_id"] == "groomer-1"
        assert by_role["service"]["net_fee"] == Decimal(2500)
        assert by_role["paramedic"]["staff_id"] == "vet-1"
        assert by_role["paramedic"]["net_fee"] == Decimal(1500)
        assert report["totals"] == {"groomer-1": Decimal(2500), "vet-1": Decimal(1500)}
        assert report["total_net_fee"] == Decimal(4000)

    def test_hotel_stay_reports_per_night_records(self, store):
        sales_service.process_sale(store.id, [_hotel()])

        report = reporting_service.fee_report(store.id)

        assert sorted((r["date"], r["staff_id"], r["net_fee"]) for r in report["rows"]) == [
            ("2024-06-07", "A", Decimal(2500)),
            ("2024-06-07", "B", Decimal(2500)),
            ("2024-06-08", "C", Decimal(5000)),
        ]
        assert report["total_net_fee"] == Decimal(10000)

    def test_voided_sales_are_excluded(self, store):
        kept = sales_service.process_sale(store.id, [_grooming(fee=1000)])
        voided = sales_service.process_sale(store.id, [_grooming(fee=9000)])
        sales_service.void_transaction(voided.id, "Entered twice")

        report = reporting_service.fee_report(store.id)

        assert {row["transaction_id"] for row in report["rows"]} == {kept.id}
        assert report["total_net_fee"] == Decimal(1000)

    def test_date_range_filters_sales(self, store):
        sales_service.process_sale(store.id, [_grooming()])
        today = utcnow().date().isoformat()

        assert len(reporting_service.fee_report(store.id, today, today)["rows"]) == 1
        assert reporting_service.fee_report(store.id, "2000-01-01", "2000-01-31")["rows"] == []

    @pytest.mark.parametrize("date_from,date_to", [("yesterday", None), ("2024-06-10", "2024-06-01")])
    def test_bad_range_rejected(self, store, date_from, date_to):
        with pytest.raises(ReportError):
            reporting_service.fee_report(store.id, date_from, date_to)

    def test_serialized_amounts_are_strings(self, store):
        sales_service.process_sale(store.id, [_hotel()])

        data = reporting_service.serialize_fee_report(reporting_service.fee_report(store.id))

        assert data["total_net_fee"] == "10000"
        assert data["totals"]["C"] == "5000"
        assert all(isinstance(row["net_fee"], str) for row in data["rows"])


class TestProfitReport:
    def test_profit_is_total_minus_cogs_minus_commission(self, store, stocked_product):
        goods = sales_service.process_sale(
            store.id,
            [ProductLine(name="Cat Food 1kg", product_id=stocked_product.id, quantity=7, unit_price_cents=30)],
        )
        stay = sales_service.process_sale(store.id, [_hotel()])

        report = reporting_service.profit_report(store.id)

        by_txn = {row["transaction_id"]: row for row in report["rows"]}
        assert (by_txn[goods.id]["revenue"], by_txn[goods.id]["cogs"], by_txn[goods.id]["commission"]) == (
            Decimal(210), Decimal(90), Decimal(0),
        )
        assert by_txn[goods.id]["profit"] == Decimal(120)
        assert by_txn[stay.id]["commission"] == Decimal(10000)
        assert by_txn[stay.id]["profit"] == Decimal(10000)
        assert report["totals"] == {
            "revenue": Decimal(20210),
            "cogs": Decimal(90),
            "commission": Decimal(10000),
            "profit": Decimal(10120),
        }

    def test_regular_fee_is_net_of_discount(self, store):
        sales_service.process_sale(store.id, [_grooming(fee=3000, paramedic_fee=1500, discount=500)])

        row = reporting_service.profit_report(store.id)["rows"][0]

        assert row["revenue"] == Decimal(9500)
        assert row["commission"] == Decimal(4000)
        assert row["profit"] == Decimal(5500)

    def test_voided_and_refunded_sales_are_excluded(self, store, stocked_product):
        kept = sales_service.process_sale(store.id, [_grooming(fee=1000)])
        voided = sales_service.process_sale(store.id, [_grooming(fee=9000)])
        refunded = sales_service.process_sale(
            store.id,
            [ProductLine(name="Cat Food 1kg", product_id=stocked_product.id, quantity=2, unit_price_cents=30)],
        )
        sales_service.void_transaction(voided.id, "Entered twice")
        sales_service.refund_transaction(refunded.id, "Returned")

        report = reporting_service.profit_report(store.id)

        assert [row["transaction_id"] for row in report["rows"]] == [kept.id]
        assert report["totals"]["profit"] == Decimal(9000)
        assert report["transaction_count"] == 1

    def test_date_range_and_bad_range(self, store):
        sales_service.process_sale(store.id, [_grooming()])
        today = utcnow().date().isoformat()

        assert reporting_service.profit_report(store.id, today, today)["transaction_count"] == 1
        assert reporting_service.profit_report(store.id, "2000-01-01", "2000-01-31")["rows"] == []
        with pytest.raises(ReportError):
            reporting_service.profit_report(store.id, "2024-06-10", "2024-06-01")

    def test_serialized_amounts_are_strings(self, store):
        sales_service.process_sale(store.id, [_hotel()])

        data = reporting_service.serialize_profit_report(reporting_service.profit_report(store.id))

        assert data["totals"] == {"revenue": "20000", "cogs": "0", "commission": "10000", "profit": "10000"}
        assert data["rows"][0]["profit"] == "10000"


class TestStockReconciliation:
    def test_ledger_in_sync_after_sale_and_void(self, store, stocked_product):
        txn = sales_service.process_sale(
            store.id,
            [ProductLine(name="Cat Food 1kg", product_id=stocked_product.id, quantity=7, unit_price_cents=30)],
        )
        sales_service.void_transaction(txn.id, "Customer changed mind")

        result = reporting_service.stock_reconciliation(store.id)

        assert result["mismatch_count"] == 0
        item = result["items"][0]
        assert item["stock"] == 10
        assert item["movement_total"] == 10
        assert item["batch_quantity"] == 3
        assert item["untracked_quantity"] == 7
        assert item["in_sync"] is True

    def test_detects_stock_drift(self, store, stocked_product):
        p = db.session.get(Product, stocked_product.id)
        p.stock = 99
        db.session.commit()

        result = reporting_service.stock_reconciliation(store.id)

        assert result["mismatch_count"] == 1
        assert result["items"][0]["in_sync"] is False

    def test_services_are_not_reconciled(self, store, product):
        products_service.add_product(store.id, {"name": "Nail Trim", "kind": "service"})
        inventory_service.receive(product.id, 2, 10)

        result = reporting_service.stock_reconciliation(store.id)

        assert [item["name"] for item in result["items"]] == ["Cat Food 1kg"]

    def test_unknown_store(self, db_session):
        with pytest.raises(ReportError):
            reporting_service.stock_reconciliation(12345)
