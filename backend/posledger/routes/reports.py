# Overview: Flask API routes for reports and commission previews.

from flask import Blueprint, current_app, request

from ..services import commission_service, reporting_service
from ..services.commission_service import WeekdayStaff
from ..validation import ValidationError, coerce_int
from ..decorators import ledger_errors, require_store_id


reports_bp = Blueprint("reports", __name__, url_prefix="/api/reports")
commissions_bp = Blueprint("commissions", __name__, url_prefix="/api/commissions")


@reports_bp.get("/fees")
@ledger_errors
def fee_report_route():
    """
    Staff fee report.

    Query params:
    - store_id: int (required)
    - date_from, date_to: YYYY-MM-DD (optional, inclusive)
    """
    store_id = require_store_id(request.args)
    report = reporting_service.fee_report(
        store_id,
        request.args.get("date_from"),
        request.args.get("date_to"),
    )
    return reporting_service.serialize_fee_report(report)


@reports_bp.get("/profit")
@ledger_errors
def profit_report_route():
    """
    Gross profit over paid sales.

    Query params: same as /fees.
    """
    store_id = require_store_id(request.args)
    report = reporting_service.profit_report(
        store_id,
        request.args.get("date_from"),
        request.args.get("date_to"),
    )
    return reporting_service.serialize_profit_report(report)


@reports_bp.get("/stock-reconciliation")
@ledger_errors
def stock_reconciliation_route():
    store_id = require_store_id(request.args)
    return reporting_service.stock_reconciliation(store_id)


@commissions_bp.post("/preview")
@ledger_errors
def commission_preview_route():
    """
    Preview the per-night allocation of a hotel stay without recording a sale.

    Body: {"check_in": "2024-06-07", "check_out": "2024-06-09",
           "weekday_staff": {"staff1": "A", "staff2": "B"},
           "weekend_staff": {"2024-06-08": "C"}, "fee_per_night_cents": 5000}
    """
    payload = request.get_json(silent=True) or {}
    if not payload.get("check_in") or not payload.get("check_out"):
        raise ValidationError("check_in and check_out are required")

    fee = payload.get("fee_per_night_cents")
    fee = coerce_int("fee_per_night_cents", fee) if fee is not None else current_app.config["HOTEL_FEE_PER_NIGHT_CENTS"]
    if fee < 0:
        raise ValidationError("fee_per_night_cents must be >= 0")

    try:
        nights = commission_service.stay_nights(payload["check_in"], payload["check_out"])
    except ValueError:
        raise ValidationError("check_in and check_out must be YYYY-MM-DD")

    weekday_staff = payload.get("weekday_staff") or {}
    weekend_staff = payload.get("weekend_staff") or {}
    if not isinstance(weekday_staff, dict) or not isinstance(weekend_staff, dict):
        raise ValidationError("weekday_staff and weekend_staff must be objects")

    records = commission_service.allocate(
        nights,
        WeekdayStaff.from_dict(weekday_staff),
        weekend_staff,
        fee,
    )
    return {
        "nights": [n.isoformat() for n in nights],
        "records": [r.to_dict() for r in records],
        "total": str(commission_service.total_allocated(records)),
    }
