from __future__ import annotations

from ..extensions import db
from agendo.time_utils import to_utc_z


class StockMovement(db.Model):
    """
    Append-only inventory movement.

    quantity is always positive; direction (ENTRY/EXIT) carries the sign.
    Rows are never updated or deleted. Corrections, including the reversal
    of a previous settlement, are new ENTRY rows.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_tenant_product_occurred", "tenant_id", "product_id", "occurred_at"),
        db.Index("ix_stock_movements_related", "related_entity_type", "related_entity_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    direction = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(128), nullable=False)
    note = db.Column(db.String(255), nullable=True)

    related_entity_type = db.Column(db.String(16), nullable=True)
    related_entity_id = db.Column(db.Integer, nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    product = db.relationship("Product", backref=db.backref("movements", lazy=True))

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.direction == "ENTRY" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "direction": self.direction,
            "quantity": self.quantity,
            "reason": self.reason,
            "note": self.note,
            "related_entity_type": self.related_entity_type,
            "related_entity_id": self.related_entity_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "created_at": to_utc_z(self.created_at),
        }
