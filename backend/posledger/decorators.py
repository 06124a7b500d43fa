# Overview: Request decorators for API routes.

from functools import wraps
from flask import jsonify, current_app

from .validation import ValidationError
from .services.errors import (
    AlreadyFinalized,
    CommitFailed,
    CustomerNotFound,
    DuplicateBarcode,
    DuplicateCustomer,
    InsufficientStock,
    LedgerError,
    ProductNotFound,
    TransactionNotFound,
)
from .services.reporting_service import ReportError


_STATUS_BY_ERROR = (
    ((ProductNotFound, TransactionNotFound, CustomerNotFound), 404),
    ((InsufficientStock, AlreadyFinalized, DuplicateBarcode, DuplicateCustomer), 409),
    ((CommitFailed,), 503),
)


def status_for(error: LedgerError) -> int:
    for types, status in _STATUS_BY_ERROR:
        if isinstance(error, types):
            return status
    return 400


def ledger_errors(f):
    """
    Translate service errors into JSON error responses.

    - LedgerError -> {"error", "details"} with 400/404/409/503
    - ValidationError / ReportError -> 400
    - anything else is logged with its traceback and returns 500
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except LedgerError as e:
            status = status_for(e)
            if status == 503:
                current_app.logger.warning("Commit failed: %s (%s)", e, e.details)
            return jsonify({"error": str(e), "details": e.details}), status
        except (ValidationError, ReportError) as e:
            return jsonify({"error": str(e), "details": {}}), 400
        except Exception:
            current_app.logger.exception("Unhandled error in %s", f.__name__)
            return jsonify({"error": "Internal server error", "details": {}}), 500

    return decorated_function


def require_store_id(source: dict) -> int:
    """Pull a positive integer store_id out of a payload or query args."""
    raw = source.get("store_id")
    if raw is None or raw == "":
        raise ValidationError("store_id required")
    try:
        store_id = int(raw)
    except (TypeError, ValueError):
        raise ValidationError("store_id must be an integer")
    if store_id <= 0:
        raise ValidationError("store_id must be > 0")
    return store_id
