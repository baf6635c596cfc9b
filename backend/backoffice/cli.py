# Overview: Flask CLI command groups for schema bootstrap and demo data.

# backend/backoffice/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to the app factory (bash: export FLASK_APP="backoffice:create_app").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Demo data:
# - python -m flask demo seed
#   Stock two warehouses, register a purchase and receive a repair.

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import CoreError
from .models import StockRecord
from .services import inventory_service, purchase_service, service_order_service
from .time_utils import today


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    click.echo("BUILD  Creating missing tables...")
    db.create_all()
    click.echo("PASS Database ready.")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask demo seed' to load demo data.")


@click.group('demo')
def demo_group():
    """Demo data commands."""


@demo_group.command('seed')
@click.option('--actor', default=None, help='User recorded on the demo documents')
@with_appcontext
def seed_demo(actor):
    """
    Load a small demo data set:
    - Opening stock in the main warehouse and the service depot
    - One purchase order, received and invoiced
    - One repair reception
    """
    actor = actor or current_app.config["DEMO_USER_ID"]
    service_location = current_app.config["SERVICE_LOCATION_ID"]

    if db.session.query(StockRecord).count():
        click.echo("SKIP Stock already present; demo data not loaded.")
        return

    try:
        for product_id, location_id, quantity in (
            ("P-TONER", "deposito-central", 40),
            ("P-CABLE", "deposito-central", 120),
            ("P-FUSER", service_location, 6),
        ):
            inventory_service.record_adjustment(
                product_id=product_id,
                location_id=location_id,
                direction="IN",
                quantity=quantity,
                reason="Opening balance",
                actor=actor,
            )
        click.echo("PASS Opening stock loaded")

        quote = purchase_service.create_supplier_quote(
            supplier_id="SUP-001",
            location_id="deposito-central",
            line_items=[
                {"product_id": "P-TONER", "quantity": 10, "unit_price": 110000, "vat_rate": 10},
                {"product_id": "P-CABLE", "quantity": 50, "unit_price": 21000, "vat_rate": 5},
            ],
            actor=actor,
        )
        purchase_service.resolve_supplier_quote(supplier_quote_id=quote.id, decision="APPROVED", actor=actor)
        order = purchase_service.create_purchase_order(
            supplier_id="SUP-001",
            location_id="deposito-central",
            supplier_quote_id=quote.id,
            actor=actor,
        )
        invoice = purchase_service.register_purchase(
            purchase_order_id=order.id,
            invoice_number="001-001-0000001",
            invoice_date=today(),
            received_items=[
                {"product_id": "P-TONER", "quantity": 10},
                {"product_id": "P-CABLE", "quantity": 50},
            ],
            actor=actor,
        )
        click.echo(f"PASS Purchase order {order.id} received (invoice {invoice.invoice_number})")

        items = service_order_service.register_reception(
            client_id="CLI-001",
            equipments=[{
                "equipment_description": "Laser printer HL-1200",
                "reported_problem": "Paper jam on every page",
                "accessories": "Power cable",
            }],
            actor=actor,
        )
        click.echo(f"PASS Reception {items[0].reception_number} registered")
    except CoreError as exc:
        raise click.ClickException(f"{exc.kind}: {exc.message}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(demo_group)
