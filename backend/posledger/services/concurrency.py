# Overview: Atomic-commit and locking helpers shared by the ledger services.

from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from .errors import CommitFailed


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_atomic(func, *, operation: str):
    """
    Execute one logical ledger operation as a single all-or-nothing commit.

    func stages its reads and writes on db.session without committing. On
    success the session is committed once. On any failure the session is
    rolled back so no partial write survives:
    - domain errors propagate unchanged
    - store errors (including StaleDataError from optimistic version
      conflicts) are wrapped in CommitFailed

    No retry happens here. The caller retries the whole operation if it
    wants to; individual sub-writes are never replayed.
    """
    try:
        result = func()
        db.session.commit()
        return result
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise CommitFailed(
            f"{operation} could not be committed",
            details={"operation": operation, "cause": str(exc)},
        ) from exc
    except Exception:
        db.session.rollback()
        raise
