from __future__ import annotations

from ..extensions import db
from agendo.time_utils import to_utc_z


class Tenant(db.Model):
    """
    Multi-tenant root: every business account (one shop) is a Tenant.

    Shared-database multi-tenancy.
    All professionals, clients, catalog rows and ledger rows belong to
    exactly one tenant and every query is filtered by tenant_id.

    Booking policy lives here because it is per shop:
    - cancellation_window_minutes: non-admins cannot cancel an appointment
      that starts sooner than this many minutes from now (0 disables).
    - allow_professional_checkout: whether a professional may settle
      their own appointments.
    - business_hours: opening and closing time per weekday; a closed day
      offers no slots. Unset means the default week (see availability_service).
    - booking_window_days: how many open days ahead slots are offered.
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    slug = db.Column(db.String(64), nullable=False, unique=True, index=True)

    cancellation_window_minutes = db.Column(db.Integer, nullable=True)
    allow_professional_checkout = db.Column(db.Boolean, nullable=False, default=False)

    # {"monday": {"open": "09:00", "close": "18:00", "is_closed": false}, ...}
    business_hours = db.Column(db.JSON, nullable=True)
    booking_window_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Tenant id={self.id} slug={self.slug!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "slug": self.slug,
            "cancellation_window_minutes": self.cancellation_window_minutes,
            "allow_professional_checkout": self.allow_professional_checkout,
            "business_hours": self.business_hours,
            "booking_window_days": self.booking_window_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
