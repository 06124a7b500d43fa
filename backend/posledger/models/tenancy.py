from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    Store (outlet) that owns products, customers and transactions.

    Every ledger row is scoped by store_id; queries never cross stores.
    Loyalty point expiry is configured per store.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    code = db.Column(db.String(32), nullable=True, unique=True, index=True)

    points_expiry_enabled = db.Column(db.Boolean, nullable=False, default=False)
    points_expiry_date = db.Column(db.DateTime(timezone=True), nullable=True)
    points_last_reset_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "points_expiry_enabled": self.points_expiry_enabled,
            "points_expiry_date": to_utc_z(self.points_expiry_date) if self.points_expiry_date else None,
            "points_last_reset_at": to_utc_z(self.points_last_reset_at) if self.points_last_reset_at else None,
            "created_at": to_utc_z(self.created_at),
        }
