# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/agendo/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to agendo (PowerShell: $env:FLASK_APP="agendo").
# - Use: python -m flask <group> <command> [options]
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
#   List all tenants.
# - python -m flask tenants create --name "Barbearia Centro" --slug "centro"
#   Create a new tenant.
#
# Stock inspection:
# - python -m flask stock check-drift --tenant-id 1
#   Compare every product's stock counter with the movement ledger replay.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Tenant
from .services.stock_service import find_stock_drift


@click.group('tenants')
def tenants_group():
    """Tenant management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Slug':<20} {'Active'}")
    click.echo("="*72)

    for tenant in tenants:
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.slug:<20} {active_str}")

    click.echo("="*72 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant (business) name')
@click.option('--slug', required=True, help='Short slug (unique)')
@click.option('--cancellation-window', type=int, default=None, help='Minutes before start after which non-admins cannot cancel')
@click.option('--allow-professional-checkout/--no-allow-professional-checkout', default=False)
@with_appcontext
def create_tenant_cli(name, slug, cancellation_window, allow_professional_checkout):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(slug=slug).first()
    if existing:
        click.echo(f"FAIL Tenant with slug '{slug}' already exists")
        return

    tenant = Tenant(
        name=name,
        slug=slug,
        cancellation_window_minutes=cancellation_window,
        allow_professional_checkout=allow_professional_checkout,
        is_active=True,
    )
    db.session.add(tenant)
    db.session.commit()

    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Slug: {tenant.slug})")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('check-drift')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def check_drift_cli(tenant_id):
    """Report products whose stock counter differs from the ledger replay."""
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if not tenant:
        click.echo(f"FAIL Tenant ID {tenant_id} not found")
        return

    drift = find_stock_drift(tenant_id)
    if not drift:
        click.echo(f"PASS No stock drift for tenant '{tenant.slug}'")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'Product':<8} {'Name':<30} {'Counter':<10} {'Ledger':<10} {'Diff'}")
    click.echo("="*72)
    for row in drift:
        click.echo(
            f"{row['product_id']:<8} {row['name']:<30} {row['counter']:<10} {row['replayed']:<10} {row['difference']:+d}"
        )
    click.echo("="*72 + "\n")
    click.echo(f"FAIL {len(drift)} product(s) drifted")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(tenants_group)
    app.cli.add_command(stock_group)
