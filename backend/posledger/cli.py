# Overview: Flask CLI command group for bootstrap, reconciliation and maintenance.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask ledger <command> [options]
#
# - python -m flask ledger init-db
#   Create all tables (use `flask db upgrade` for migrated databases).
# - python -m flask ledger reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask ledger create-store --name "Main Store" --code MAIN
#   Create a store.
# - python -m flask ledger reconcile --store-id 1
#   Compare Product.stock with the movement log and batches; exits 1 on drift.
# - python -m flask ledger expire-points --store-id 1
#   Zero loyalty balances once the store's expiry date has passed.

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import customer_service, reporting_service, store_service
from .services.errors import LedgerError
from .validation import ValidationError


@click.group('ledger')
def ledger_group():
    """Inventory and transaction ledger commands."""


@ledger_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@ledger_group.command('reset-db')
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


@ledger_group.command('create-store')
@click.option('--name', required=True)
@click.option('--code', default=None)
@with_appcontext
def create_store_cli(name, code):
    try:
        store = store_service.create_store(name, code)
    except ValidationError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created store id={store.id} name={store.name}")


@ledger_group.command('reconcile')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def reconcile_cli(store_id):
    """Report products whose stock drifted from their movement log."""
    try:
        report = reporting_service.stock_reconciliation(store_id)
    except reporting_service.ReportError as e:
        raise click.ClickException(str(e))

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<6} {'Name':<40} {'Stock':>8} {'Moves':>8} {'Batches':>8} {'Status':>10}")
    click.echo("-"*100)
    for item in report["items"]:
        status = "OK" if item["in_sync"] else "DRIFT"
        click.echo(
            f"{item['product_id']:<6} {item['name'][:40]:<40} {item['stock']:>8} "
            f"{item['movement_total']:>8} {item['batch_quantity']:>8} {status:>10}"
        )
    click.echo("="*100)
    click.echo(f"{report['product_count']} products, {report['mismatch_count']} out of sync\n")

    if report["mismatch_count"]:
        raise SystemExit(1)


@ledger_group.command('expire-points')
@click.option('--store-id', type=int, required=True)
@with_appcontext
def expire_points_cli(store_id):
    try:
        result = customer_service.reset_expired_points(store_id)
    except (LedgerError, ValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Reset points for {result['reset_count']} customers.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(ledger_group)
