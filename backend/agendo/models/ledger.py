from __future__ import annotations

from ..extensions import db
from agendo.time_utils import to_utc_z


"""
Cash ledger and commission rows.

related_entity_id is a plain back-reference (no FK): hard-deleting an
appointment must not cascade into financial history.
"""


class CashTransaction(db.Model):
    """
    Cash ledger entry.

    - amount_cents is never negative; type (INCOME/EXPENSE) implies the sign.
    - Balance is never stored; cash_service.compute_balance() sums on read.
    - Settlement transactions (related_entity_type=APPOINTMENT) are unique
      per appointment: a partial unique index backs the service-level upsert.
    """
    __tablename__ = "cash_transactions"
    __table_args__ = (
        db.CheckConstraint("amount_cents >= 0", name="ck_cash_transactions_amount_non_negative"),
        db.Index("ix_cash_transactions_tenant_occurred", "tenant_id", "occurred_at"),
        db.Index("ix_cash_transactions_related", "related_entity_type", "related_entity_id"),
        db.Index(
            "uq_cash_transactions_tenant_appointment",
            "tenant_id",
            "related_entity_id",
            unique=True,
            sqlite_where=db.text("related_entity_type = 'APPOINTMENT'"),
            postgresql_where=db.text("related_entity_type = 'APPOINTMENT'"),
        ),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False, index=True)
    category = db.Column(db.String(16), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=False)
    payment_method = db.Column(db.String(16), nullable=False)

    related_entity_type = db.Column(db.String(16), nullable=True)
    related_entity_id = db.Column(db.Integer, nullable=True)

    actor_id = db.Column(db.Integer, nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    @property
    def signed_amount_cents(self) -> int:
        return self.amount_cents if self.type == "INCOME" else -self.amount_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "type": self.type,
            "category": self.category,
            "amount_cents": self.amount_cents,
            "signed_amount_cents": self.signed_amount_cents,
            "description": self.description,
            "payment_method": self.payment_method,
            "related_entity_type": self.related_entity_type,
            "related_entity_id": self.related_entity_id,
            "actor_id": self.actor_id,
            "occurred_at": to_utc_z(self.occurred_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Commission(db.Model):
    """Commission accrued by a professional for one settled appointment."""
    __tablename__ = "commissions"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "appointment_id", name="uq_commissions_tenant_appointment"),
        db.CheckConstraint("amount_cents >= 0", name="ck_commissions_amount_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    professional_id = db.Column(db.Integer, db.ForeignKey("professionals.id"), nullable=False, index=True)
    appointment_id = db.Column(db.Integer, nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(8), nullable=False, default="PENDING", index=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by_actor_id = db.Column(db.Integer, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    professional = db.relationship("Professional", backref=db.backref("commissions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "professional_id": self.professional_id,
            "appointment_id": self.appointment_id,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "occurred_at": to_utc_z(self.occurred_at),
            "paid_at": to_utc_z(self.paid_at),
            "paid_by_actor_id": self.paid_by_actor_id,
            "version_id": self.version_id,
        }
