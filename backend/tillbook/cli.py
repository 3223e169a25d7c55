# Overview: Flask CLI command groups for bootstrap, inspection, and ledger audit.

# backend/tillbook/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (development; production uses `flask db upgrade`).
#
# Payment methods:
# - python -m flask payment-methods seed
#   Create the default Cash and Card methods (idempotent).
# - python -m flask payment-methods list [--all]
#
# Ledger audit:
# - python -m flask inventory verify [--location-id 1]
#   Replay every record's movement log and report mismatches. Exits 1 on problems.
#
# Shift inspection:
# - python -m flask shifts list [--status open] [--limit 20]

import click
from flask.cli import with_appcontext

from .extensions import db
from .services import inventory_service, payment_service, shift_service


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


@click.group('payment-methods')
def payment_methods_group():
    """Payment method (tender) commands."""


@payment_methods_group.command('seed')
@with_appcontext
def seed_payment_methods():
    created = payment_service.seed_default_payment_methods()
    if not created:
        click.echo("Default payment methods already present.")
        return
    for method in created:
        click.echo(f"Created payment method {method.id}: {method.name} ({method.method_type})")


@payment_methods_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive methods')
@with_appcontext
def list_payment_methods(include_inactive):
    methods = payment_service.list_payment_methods(include_inactive=include_inactive)
    if not methods:
        click.echo("No payment methods. Run 'python -m flask payment-methods seed'.")
        return

    click.echo(f"{'ID':<5} {'Name':<20} {'Type':<10} {'Active':<8} {'Ref?':<6}")
    click.echo("-" * 52)
    for m in methods:
        click.echo(f"{m.id:<5} {m.name:<20} {m.method_type:<10} {str(m.is_active):<8} {str(m.requires_reference):<6}")


@click.group('inventory')
def inventory_group():
    """Inventory ledger commands."""


@inventory_group.command('verify')
@click.option('--location-id', type=int, default=None, help='Limit to one location')
@with_appcontext
def verify_inventory(location_id):
    """
    Replay the movement log and compare with quantity_on_hand.
    """
    problems = inventory_service.verify_ledger(location_id=location_id)
    if not problems:
        click.echo("PASS Ledger consistent.")
        return

    for p in problems:
        click.echo(
            f"FAIL variant={p['variant_id']} location={p['location_id']} "
            f"on_hand={p['quantity_on_hand']} replayed={p['replayed_quantity']} "
            f"broken_chain_at={p['broken_chain_at_transaction_id'] or '-'}"
        )
    raise click.exceptions.Exit(1)


@click.group('shifts')
def shifts_group():
    """Shift inspection commands."""


@shifts_group.command('list')
@click.option('--status', type=click.Choice(['open', 'closed', 'reconciled']), default=None)
@click.option('--location-id', type=int, default=None)
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def list_shifts(status, location_id, limit):
    shifts = shift_service.list_shift_history(status=status, location_id=location_id, limit=limit)
    if not shifts:
        click.echo("No shifts found.")
        return

    click.echo(f"{'ID':<5} {'Actor':<7} {'Loc':<5} {'Status':<11} {'Started':<20} {'Difference':<12} Notes")
    click.echo("=" * 90)
    for shift in shifts:
        difference = "-"
        if shift.cash_difference_cents is not None:
            difference = f"${shift.cash_difference_cents / 100:+.2f}"
        notes = shift.notes[:30] if shift.notes else "-"
        click.echo(
            f"{shift.id:<5} {shift.actor_id:<7} {shift.location_id:<5} {shift.status:<11} "
            f"{str(shift.start_time)[:19]:<20} {difference:<12} {notes}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(payment_methods_group)
    app.cli.add_command(inventory_group)
    app.cli.add_command(shifts_group)
