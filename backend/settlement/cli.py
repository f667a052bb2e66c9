# Overview: Flask CLI command groups for bootstrap, loyalty setup, and stock reconciliation.

# backend/settlement/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the factory (PowerShell: $env:FLASK_APP="settlement:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables and the receipt sequence rows (idempotent).
# - python -m flask system create-operator --username manager --role MANAGER --password "..."
#   Create an operator (password optional; only needed for void confirmation).
#
# Loyalty:
# - python -m flask loyalty seed-tiers
#   Write the default BRONZE/SILVER/GOLD/PLATINUM rows that are missing.
#
# Inventory:
# - python -m flask inventory reconcile
#   Compare every stock column with its ledger sum. Exits 1 on any mismatch.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import DocumentSequence, Operator
from .services import inventory_service, loyalty_service, operator_service
from .services.document_service import PREFIXES
from .services.errors import SaleError


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db_command():
    """Create tables and seed one sequence row per receipt type."""
    click.echo("START Initializing settlement database...")
    db.create_all()
    click.echo("PASS Tables created")

    created = 0
    for document_type in PREFIXES:
        if db.session.query(DocumentSequence).filter_by(document_type=document_type).first() is None:
            db.session.add(DocumentSequence(document_type=document_type, next_number=1))
            created += 1
    db.session.commit()
    click.echo(f"PASS Sequence rows created: {created}")


@system_group.command('create-operator')
@click.option('--username', prompt=True)
@click.option('--role', type=click.Choice(operator_service.VALID_ROLES), default='CASHIER', show_default=True)
@click.option('--password', default=None, help='Only needed when voids require password confirmation.')
@with_appcontext
def create_operator_command(username, role, password):
    """Create an operator."""
    if db.session.query(Operator).filter_by(username=username).first():
        click.echo(f"WARN  Operator '{username}' already exists, skipping...")
        return
    try:
        operator = operator_service.create_operator(username, role=role, password=password)
    except SaleError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created operator: {operator.username} (ID: {operator.id}) with role '{operator.role}'")


@click.group('loyalty')
def loyalty_group():
    """Loyalty tier commands."""


@loyalty_group.command('seed-tiers')
@with_appcontext
def seed_tiers_command():
    created = loyalty_service.seed_default_tiers()
    click.echo(f"PASS Tier rows created: {created}")
    for tier in loyalty_service.get_tier_table():
        click.echo(
            f"  {tier['tier']:<9} min={tier['minimum_points']:<5} "
            f"x{tier['points_multiplier']:.2f} discount={tier['discount_percentage']}%"
        )


@click.group('inventory')
def inventory_group():
    """Stock ledger commands."""


@inventory_group.command('reconcile')
@with_appcontext
def reconcile_command():
    """Compare stock columns with ledger sums. Non-zero exit on mismatch."""
    mismatches = inventory_service.reconcile_stock()
    if not mismatches:
        click.echo("PASS Stock columns match the ledger")
        return

    click.echo(f"FAIL {len(mismatches)} stock rows disagree with the ledger")
    for row in mismatches:
        click.echo(
            f"  product={row['product_id']} variant={row['variant_id']} "
            f"stock={row['stock_quantity']} ledger={row['ledger_quantity']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(loyalty_group)
    app.cli.add_command(inventory_group)
