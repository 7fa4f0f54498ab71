"""
Pytest fixtures for Agendo backend tests.

Provides test database setup, two tenants for isolation checks, actor
contexts for every role, a small catalog and the Flask test client.
"""

from datetime import datetime

import pytest

from agendo import create_app
from agendo.extensions import db
from agendo.models import ActorRole, Client, Product, Professional, Service, Tenant
from agendo.services import stock_service
from agendo.services.permission_service import ActorContext


# Far enough in the future that no cancellation window is ever hit by accident.
DAY = datetime(2031, 3, 10)


def at(hour: int, minute: int = 0) -> datetime:
    return DAY.replace(hour=hour, minute=minute)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_ATTEMPTS': 2,
        'FEED_QUEUE_SIZE': 50,
        'LOG_LEVEL': 'DEBUG',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        db.session.rollback()
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()
        db.session.expunge_all()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A (first shop)."""
    tenant = Tenant(name="Barbearia Centro", slug="centro", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B (second shop)."""
    tenant = Tenant(name="Barbearia Norte", slug="norte", is_active=True)
    db_session.add(tenant)
    db_session.commit()
    return tenant


@pytest.fixture(scope='function')
def professional(db_session, tenant_a):
    """Professional with 10% commission, linked to actor 30."""
    pro = Professional(tenant_id=tenant_a.id, actor_id=30, name="Rafael", commission_bps=1000)
    db_session.add(pro)
    db_session.commit()
    return pro


@pytest.fixture(scope='function')
def other_professional(db_session, tenant_a):
    pro = Professional(tenant_id=tenant_a.id, actor_id=31, name="Bruno", commission_bps=0)
    db_session.add(pro)
    db_session.commit()
    return pro


@pytest.fixture(scope='function')
def admin(tenant_a):
    return ActorContext(actor_id=10, tenant_id=tenant_a.id, role=ActorRole.ADMIN)


@pytest.fixture(scope='function')
def staff(tenant_a):
    return ActorContext(actor_id=20, tenant_id=tenant_a.id, role=ActorRole.STAFF)


@pytest.fixture(scope='function')
def pro_actor(tenant_a, professional):
    return ActorContext(
        actor_id=professional.actor_id,
        tenant_id=tenant_a.id,
        role=ActorRole.PROFESSIONAL,
        professional_id=professional.id,
    )


@pytest.fixture(scope='function')
def admin_b(tenant_b):
    return ActorContext(actor_id=90, tenant_id=tenant_b.id, role=ActorRole.ADMIN)


@pytest.fixture(scope='function')
def haircut(db_session, tenant_a):
    """30-minute service priced 100.00."""
    service = Service(tenant_id=tenant_a.id, title="Corte", price_cents=10000, duration_minutes=30)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def beard(db_session, tenant_a):
    """60-minute service priced 45.00."""
    service = Service(tenant_id=tenant_a.id, title="Barba", price_cents=4500, duration_minutes=60)
    db_session.add(service)
    db_session.commit()
    return service


@pytest.fixture(scope='function')
def customer(db_session, tenant_a):
    c = Client(tenant_id=tenant_a.id, name="Joao", phone="11999990000")
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def subscriber(db_session, tenant_a):
    """Flat-rate client without expiry (always active)."""
    c = Client(tenant_id=tenant_a.id, name="Carlos", is_subscriber=True, subscription_fee_cents=9900)
    db_session.add(c)
    db_session.commit()
    return c


def make_product(tenant_id: int, name: str, *, selling: int, cost: int = 0, opening: int = 0) -> Product:
    """Product whose opening stock is itself an ENTRY movement."""
    product = Product(
        tenant_id=tenant_id,
        name=name,
        selling_price_cents=selling,
        cost_price_cents=cost,
        stock=0,
    )
    db.session.add(product)
    db.session.commit()
    if opening:
        stock_service.record_movement(
            tenant_id=tenant_id,
            product_id=product.id,
            direction="ENTRY",
            quantity=opening,
            reason="opening stock",
        )
    return product


@pytest.fixture(scope='function')
def pomada(db_session, tenant_a):
    """Pomada: selling 25.00, cost 12.00, stock 10."""
    return make_product(tenant_a.id, "Pomada", selling=2500, cost=1200, opening=10)


@pytest.fixture(scope='function')
def shampoo(db_session, tenant_a):
    """Shampoo: selling 40.00, cost 18.00, stock 5."""
    return make_product(tenant_a.id, "Shampoo", selling=4000, cost=1800, opening=5)


def actor_headers(actor: ActorContext) -> dict:
    """Gateway identity headers for an actor."""
    headers = {
        "X-Actor-Id": str(actor.actor_id),
        "X-Tenant-Id": str(actor.tenant_id),
        "X-Actor-Role": actor.role.value,
    }
    if actor.professional_id is not None:
        headers["X-Professional-Id"] = str(actor.professional_id)
    return headers
