from __future__ import annotations

from ..extensions import db
from agendo.time_utils import to_utc_z


class Client(db.Model):
    """
    Customer of a tenant.

    SUBSCRIPTION ("flat-rate" clients):
    - is_subscriber marks a client who pays a monthly fee instead of per service.
    - While the subscription is active (flag set and not past
      subscription_expires_at), checkout bills the service component at 0.
    - Products are always billed.

    balance_cents is the client's credit (positive) or debt (negative) with
    the shop, moved only through client_service.adjust_client_balance().
    """
    __tablename__ = "clients"
    __table_args__ = (
        db.Index("ix_clients_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="NEW")

    balance_cents = db.Column(db.Integer, nullable=False, default=0)

    is_subscriber = db.Column(db.Boolean, nullable=False, default=False)
    subscription_fee_cents = db.Column(db.Integer, nullable=True)
    subscription_payment_method = db.Column(db.String(16), nullable=True)
    subscription_started_at = db.Column(db.DateTime(timezone=True), nullable=True)
    subscription_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("clients", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Client id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "phone": self.phone,
            "status": self.status,
            "balance_cents": self.balance_cents,
            "is_subscriber": self.is_subscriber,
            "subscription_fee_cents": self.subscription_fee_cents,
            "subscription_payment_method": self.subscription_payment_method,
            "subscription_started_at": to_utc_z(self.subscription_started_at),
            "subscription_expires_at": to_utc_z(self.subscription_expires_at),
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
