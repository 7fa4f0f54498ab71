from __future__ import annotations

from ..extensions import db
from agendo.time_utils import to_utc_z
from .enums import AppointmentStatus


class Appointment(db.Model):
    """
    A booking of one service, for one client, with one professional.

    OCCUPANCY:
    The appointment occupies [starts_at, starts_at + service.duration_minutes)
    on its professional's agenda. Duration is always resolved through the
    service, never stored here, so a service edit re-times future bookings.

    SETTLEMENT SNAPSHOT:
    total_amount_cents and products_sold are written only by the checkout
    saga when the appointment reaches COMPLETED. products_sold is a copy of
    each line (product_id, name, quantity, selling_price_cents) so later
    catalog edits or deletions do not alter history.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        db.Index("ix_appointments_tenant_professional_start", "tenant_id", "professional_id", "starts_at"),
        db.Index("ix_appointments_tenant_status", "tenant_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    client_id = db.Column(db.Integer, db.ForeignKey("clients.id"), nullable=False, index=True)
    professional_id = db.Column(db.Integer, db.ForeignKey("professionals.id"), nullable=False, index=True)
    service_id = db.Column(db.Integer, db.ForeignKey("services.id"), nullable=False)

    starts_at = db.Column(db.DateTime(timezone=True), nullable=False)
    status = db.Column(
        db.String(16),
        nullable=False,
        default=AppointmentStatus.SCHEDULED.value,
    )
    notes = db.Column(db.Text, nullable=True)

    total_amount_cents = db.Column(db.Integer, nullable=True)
    products_sold = db.Column(db.JSON, nullable=True)
    payment_method = db.Column(db.String(16), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_by_actor_id = db.Column(db.Integer, nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_by_actor_id = db.Column(db.Integer, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    client = db.relationship("Client", backref=db.backref("appointments", lazy=True))
    professional = db.relationship("Professional", backref=db.backref("appointments", lazy=True))
    service = db.relationship("Service")
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Appointment id={self.id} professional_id={self.professional_id} "
            f"starts_at={self.starts_at} status={self.status}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "client_id": self.client_id,
            "professional_id": self.professional_id,
            "service_id": self.service_id,
            "starts_at": to_utc_z(self.starts_at),
            "status": self.status,
            "notes": self.notes,
            "total_amount_cents": self.total_amount_cents,
            "products_sold": list(self.products_sold) if self.products_sold is not None else None,
            "payment_method": self.payment_method,
            "completed_at": to_utc_z(self.completed_at),
            "canceled_at": to_utc_z(self.canceled_at),
            "canceled_by_actor_id": self.canceled_by_actor_id,
            "cancel_reason": self.cancel_reason,
            "created_by_actor_id": self.created_by_actor_id,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
