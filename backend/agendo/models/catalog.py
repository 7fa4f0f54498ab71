from __future__ import annotations

from ..extensions import db
from agendo.time_utils import to_utc_z


class Professional(db.Model):
    """
    Staff member who performs services and earns commission.

    commission_bps is the commission percentage in basis points
    (1000 = 10%), the same convention the store uses for rates.
    actor_id links the professional to the auth provider's actor so a
    "professional" session can be matched to its own agenda.
    """
    __tablename__ = "professionals"
    __table_args__ = (
        db.Index("ix_professionals_tenant_active", "tenant_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=True, index=True)

    name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    commission_bps = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("professionals", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def commission_percentage(self) -> float:
        return (self.commission_bps or 0) / 100

    def __repr__(self) -> str:
        return f"<Professional id={self.id} name={self.name!r} tenant_id={self.tenant_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "actor_id": self.actor_id,
            "name": self.name,
            "email": self.email,
            "commission_bps": self.commission_bps,
            "commission_percentage": self.commission_percentage,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
        }


class Service(db.Model):
    """Bookable service; its duration defines how long an appointment occupies the agenda."""
    __tablename__ = "services"
    __table_args__ = (
        db.CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
        db.CheckConstraint("price_cents >= 0", name="ck_services_price_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    duration_minutes = db.Column(db.Integer, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    tenant = db.relationship("Tenant", backref=db.backref("services", lazy=True))

    def __repr__(self) -> str:
        return f"<Service id={self.id} title={self.title!r} duration={self.duration_minutes}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "title": self.title,
            "description": self.description,
            "price_cents": self.price_cents,
            "duration_minutes": self.duration_minutes,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Retail / consumable product.

    STOCK DESIGN DECISION:
    Product.stock is a denormalized running counter, updated right after
    each accepted StockMovement in its own round trip. The movement ledger
    is the source of truth; stock_service.get_stock_by_replay() derives the
    same number from the ledger and find_stock_drift() reports differences.

    version_id makes the read-modify-write of the counter optimistic:
    two concurrent updates of the same product raise StaleDataError and
    the loser is retried.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        db.Index("ix_products_tenant_name", "tenant_id", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    tenant_id = db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)

    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    min_stock = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents (frontend may only format for display)
    cost_price_cents = db.Column(db.Integer, nullable=False, default=0)
    selling_price_cents = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    tenant = db.relationship("Tenant", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_low_stock(self) -> bool:
        return self.stock <= self.min_stock

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} stock={self.stock}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "category": self.category,
            "stock": self.stock,
            "min_stock": self.min_stock,
            "is_low_stock": self.is_low_stock,
            "cost_price_cents": self.cost_price_cents,
            "selling_price_cents": self.selling_price_cents,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
