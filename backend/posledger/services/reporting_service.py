# Overview: Read-only reports over the ledger: staff fees, profit and stock reconciliation.

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from decimal import Decimal

from sqlalchemy import func

from posledger.extensions import db
from posledger.models import Product, StockBatch, StockMovement, Store, Transaction
from posledger.models.sales import STATUS_PAID, TRANSACTION_KIND_SALE
from posledger.services.commission_service import AllocationRecord
from posledger.time_utils import parse_iso_date, to_utc_z


FEE_ROLE_SERVICE = "service"
FEE_ROLE_PARAMEDIC = "paramedic"


class ReportError(Exception):
    """Raised when report generation fails."""
    pass


def _require_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise ReportError("Store not found")
    return store


def _parse_range(date_from, date_to) -> tuple[datetime | None, datetime | None]:
    """Inclusive calendar-day range as [start, end) datetimes."""
    try:
        start = parse_iso_date(date_from)
        end = parse_iso_date(date_to)
    except ValueError:
        raise ReportError("date_from and date_to must be YYYY-MM-DD")
    start_dt = datetime.combine(start, datetime.min.time()) if start else None
    end_dt = datetime.combine(end, datetime.min.time()) + timedelta(days=1) if end else None
    if start_dt and end_dt and end_dt <= start_dt:
        raise ReportError("date_to must not be before date_from")
    return start_dt, end_dt


def _range_bounds(start_dt, end_dt) -> dict:
    return {
        "date_from": start_dt.date().isoformat() if start_dt else None,
        "date_to": (end_dt - timedelta(days=1)).date().isoformat() if end_dt else None,
    }


def _paid_sales(store_id: int, start_dt, end_dt) -> list[Transaction]:
    """Paid sales of a store created in [start_dt, end_dt), oldest first."""
    query = db.session.query(Transaction).filter(
        Transaction.store_id == store_id,
        Transaction.kind == TRANSACTION_KIND_SALE,
        Transaction.status == STATUS_PAID,
    )
    if start_dt:
        query = query.filter(Transaction.created_at >= start_dt)
    if end_dt:
        query = query.filter(Transaction.created_at < end_dt)
    return query.order_by(Transaction.created_at.asc(), Transaction.id.asc()).all()


def _line_fee_rows(txn: Transaction, line) -> list[dict]:
    """
    Fee rows for one line.

    A line with per-night commission details reports those records only;
    otherwise its regular staff fee (net of the line discount) and its
    paramedic fee are reported separately.
    """
    base = {
        "transaction_id": txn.id,
        "line_id": line.id,
        "item_name": line.name,
    }

    if line.commission_details:
        rows = []
        for raw in line.commission_details:
            record = AllocationRecord.from_dict(raw)
            rows.append({
                **base,
                "date": record.date,
                "staff_id": record.staff_id,
                "role": record.role.value,
                "fee": record.fee,
                "discount": Decimal(0),
                "net_fee": record.fee,
            })
        return rows

    txn_date = to_utc_z(txn.created_at)
    rows = []
    if line.fee_cents > 0:
        discount = Decimal(line.discount_cents or 0)
        rows.append({
            **base,
            "date": txn_date,
            "staff_id": line.staff_id,
            "role": FEE_ROLE_SERVICE,
            "fee": Decimal(line.fee_cents),
            "discount": discount,
            "net_fee": Decimal(line.fee_cents) - discount,
        })
    if line.fee_paramedic_cents > 0:
        rows.append({
            **base,
            "date": txn_date,
            "staff_id": line.paramedic_id,
            "role": FEE_ROLE_PARAMEDIC,
            "fee": Decimal(line.fee_paramedic_cents),
            "discount": Decimal(0),
            "net_fee": Decimal(line.fee_paramedic_cents),
        })
    return rows


def fee_report(store_id: int, date_from=None, date_to=None) -> dict:
    """
    Staff fee report over paid sales in the date range.

    Voided and refunded sales are excluded. Amounts are Decimals in minor
    units; per-night hotel shares may be fractional.
    """
    _require_store(store_id)
    start_dt, end_dt = _parse_range(date_from, date_to)

    rows: list[dict] = []
    for txn in _paid_sales(store_id, start_dt, end_dt):
        for line in txn.lines:
            rows.extend(_line_fee_rows(txn, line))

    rows.sort(key=lambda r: (r["date"] or "", r["transaction_id"], r["line_id"]), reverse=True)

    totals: dict = defaultdict(lambda: Decimal(0))
    for row in rows:
        totals[row["staff_id"]] += row["net_fee"]

    return {
        "store_id": store_id,
        **_range_bounds(start_dt, end_dt),
        "rows": rows,
        "totals": dict(totals),
        "total_net_fee": sum(totals.values(), Decimal(0)),
    }


def serialize_fee_report(report: dict) -> dict:
    return {
        **report,
        "rows": [
            {**row, "fee": str(row["fee"]), "discount": str(row["discount"]), "net_fee": str(row["net_fee"])}
            for row in report["rows"]
        ],
        "totals": {staff or "unassigned": str(amount) for staff, amount in report["totals"].items()},
        "total_net_fee": str(report["total_net_fee"]),
    }


def profit_report(store_id: int, date_from=None, date_to=None) -> dict:
    """
    Gross profit per paid sale: total - cost of goods - staff commission.

    Commission is what the fee report pays out for the same sale, so the
    two reports agree. Voided and refunded sales are excluded.
    """
    _require_store(store_id)
    start_dt, end_dt = _parse_range(date_from, date_to)

    rows = []
    for txn in _paid_sales(store_id, start_dt, end_dt):
        commission = sum(
            (row["net_fee"] for line in txn.lines for row in _line_fee_rows(txn, line)),
            Decimal(0),
        )
        revenue = Decimal(txn.total_cents)
        cogs = Decimal(txn.total_cogs_cents)
        rows.append({
            "transaction_id": txn.id,
            "date": to_utc_z(txn.created_at),
            "revenue": revenue,
            "cogs": cogs,
            "commission": commission,
            "profit": revenue - cogs - commission,
        })

    totals = {
        key: sum((row[key] for row in rows), Decimal(0))
        for key in ("revenue", "cogs", "commission", "profit")
    }
    return {
        "store_id": store_id,
        **_range_bounds(start_dt, end_dt),
        "rows": rows,
        "totals": totals,
        "transaction_count": len(rows),
    }


def serialize_profit_report(report: dict) -> dict:
    amounts = ("revenue", "cogs", "commission", "profit")
    return {
        **report,
        "rows": [{**row, **{k: str(row[k]) for k in amounts}} for row in report["rows"]],
        "totals": {k: str(v) for k, v in report["totals"].items()},
    }


def stock_reconciliation(store_id: int) -> dict:
    """
    Compare Product.stock with the movement log and the batch ledger.

    stock must equal the movement total; a gap there is a ledger defect.
    A gap against batches is expected after voids, refunds and adjustments
    and is reported as untracked quantity (costed at the fallback price).
    """
    _require_store(store_id)

    movement_totals = dict(
        db.session.query(StockMovement.product_id, func.coalesce(func.sum(StockMovement.quantity), 0))
        .filter(StockMovement.store_id == store_id)
        .group_by(StockMovement.product_id)
        .all()
    )
    batch_totals = dict(
        db.session.query(StockBatch.product_id, func.coalesce(func.sum(StockBatch.current_qty), 0))
        .filter(StockBatch.store_id == store_id)
        .group_by(StockBatch.product_id)
        .all()
    )

    products = (
        db.session.query(Product)
        .filter(Product.store_id == store_id)
        .order_by(Product.name.asc(), Product.id.asc())
        .all()
    )

    items = []
    mismatches = 0
    for p in products:
        if not p.is_stock_tracked:
            continue
        movement_total = int(movement_totals.get(p.id, 0))
        batch_quantity = int(batch_totals.get(p.id, 0))
        in_sync = p.stock == movement_total
        if not in_sync:
            mismatches += 1
        items.append({
            "product_id": p.id,
            "name": p.name,
            "is_deleted": p.is_deleted,
            "stock": p.stock,
            "movement_total": movement_total,
            "batch_quantity": batch_quantity,
            "untracked_quantity": p.stock - batch_quantity,
            "in_sync": in_sync,
        })

    return {
        "store_id": store_id,
        "items": items,
        "product_count": len(items),
        "mismatch_count": mismatches,
    }
