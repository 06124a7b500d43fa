# Overview: Store records and per-store loyalty point expiry settings.

from __future__ import annotations

from datetime import datetime

from ..extensions import db
from ..models import Store
from ..validation import ValidationError
from .concurrency import lock_for_update, run_atomic


def create_store(name: str, code: str | None = None) -> Store:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Store name is required")

    def _op():
        if code and db.session.query(Store).filter_by(code=code).first():
            raise ValidationError(f"Store code {code!r} already exists")
        store = Store(name=name, code=code)
        db.session.add(store)
        return store

    return run_atomic(_op, operation="store create")


def get_store(store_id: int) -> Store:
    store = db.session.query(Store).filter_by(id=store_id).first()
    if not store:
        raise ValidationError(f"Store {store_id} not found")
    return store


def list_stores() -> list[Store]:
    return db.session.query(Store).order_by(Store.id.asc()).all()


def configure_point_expiry(store_id: int, *, enabled: bool, expiry_date: datetime | None) -> Store:
    if enabled and expiry_date is None:
        raise ValidationError("expiry_date is required when expiry is enabled")

    def _op():
        store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
        if not store:
            raise ValidationError(f"Store {store_id} not found")
        store.points_expiry_enabled = bool(enabled)
        store.points_expiry_date = expiry_date
        return store

    return run_atomic(_op, operation="point expiry settings")
