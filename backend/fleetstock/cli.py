# Overview: Flask CLI command groups for bootstrap, inspection, and demo data.

# backend/fleetstock/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create any missing tables (use "flask db upgrade" for migrated deployments).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Inventory inspection/bootstrap:
# - python -m flask inventory list [--all]
#   List items with base pieces and derived layer stocks.
# - python -m flask inventory seed-demo
#   Create a demo item (CTN > DZ > PCS, 2880 pieces) and a demo vehicle.
#
# Vehicle inspection/bootstrap:
# - python -m flask vehicles list [--all]
# - python -m flask vehicles create --name "Van 1" --number "ABC-123"

import click
from flask.cli import with_appcontext

from .errors import StockError
from .extensions import db
from .models import InventoryItem, Vehicle
from .services import inventory_service, vehicle_service


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete.")


@click.group('inventory')
def inventory_group():
    """Warehouse inventory commands."""


@inventory_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive items')
@with_appcontext
def list_inventory(include_inactive):
    items = inventory_service.list_inventory(include_inactive=include_inactive)
    if not items:
        click.echo("No inventory items found.")
        return

    click.echo("\n" + "=" * 80)
    click.echo(f"{'ID':<5} {'Product':<30} {'Pieces':>10}  Layers")
    click.echo("=" * 80)
    for item in items:
        data = item.to_dict()
        layers = ", ".join(f"{s['stock']} {s['unit']}" for s in data["layer_stocks"])
        click.echo(f"{item.id:<5} {item.product_name[:30]:<30} {item.total_base_pieces:>10}  {layers}")
    click.echo("=" * 80 + "\n")


@inventory_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Idempotent demo data for local development."""
    item = db.session.query(InventoryItem).filter_by(product_name="Demo Biscuits").first()
    if item:
        click.echo(f"WARN  Demo item already exists (ID: {item.id}), skipping...")
    else:
        item = inventory_service.create_item(
            product_name="Demo Biscuits",
            category="Snacks",
            packaging_structure=[
                {"layerIndex": 0, "unit": "CTN", "qty": 10},
                {"layerIndex": 1, "unit": "DZ", "qty": 12},
                {"layerIndex": 2, "unit": "PCS"},
            ],
            opening_stock=24,
            opening_layer_index=0,
        )
        click.echo(f"PASS Created demo item: {item.product_name} (ID: {item.id}, pieces: {item.total_base_pieces})")

    vehicle = db.session.query(Vehicle).filter_by(vehicle_number="DEMO-001").first()
    if vehicle:
        click.echo(f"WARN  Demo vehicle already exists (ID: {vehicle.id}), skipping...")
    else:
        vehicle = vehicle_service.create_vehicle("Demo Van", "DEMO-001")
        click.echo(f"PASS Created demo vehicle: {vehicle.vehicle_name} (ID: {vehicle.id})")


@click.group('vehicles')
def vehicles_group():
    """Vehicle commands."""


@vehicles_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive vehicles')
@with_appcontext
def list_vehicles(include_inactive):
    vehicles = vehicle_service.list_vehicles(include_inactive=include_inactive)
    if not vehicles:
        click.echo("No vehicles found.")
        return

    click.echo("\n" + "=" * 70)
    click.echo(f"{'ID':<5} {'Name':<25} {'Number':<15} {'Active':<8} {'Loaded pcs'}")
    click.echo("=" * 70)
    for vehicle in vehicles:
        loaded = sum(r["base_pieces"] for r in vehicle_service.get_vehicle_inventory(vehicle.id))
        active_str = "Yes" if vehicle.is_active else "No"
        click.echo(f"{vehicle.id:<5} {vehicle.vehicle_name[:25]:<25} {vehicle.vehicle_number:<15} {active_str:<8} {loaded}")
    click.echo("=" * 70 + "\n")


@vehicles_group.command('create')
@click.option('--name', required=True, help='Vehicle name')
@click.option('--number', required=True, help='Registration number (unique)')
@click.option('--notes', default=None, help='Optional notes')
@with_appcontext
def create_vehicle_cli(name, number, notes):
    try:
        vehicle = vehicle_service.create_vehicle(name, number, notes=notes)
    except StockError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created vehicle: {vehicle.vehicle_name} (ID: {vehicle.id}, Number: {vehicle.vehicle_number})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(vehicles_group)
