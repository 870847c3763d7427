# Overview: Flask CLI command group for stock bootstrap, operator corrections, sweep, and reconciliation.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# Schema:
# - python -m flask db upgrade
#   Apply migrations (Flask-Migrate).
# - python -m flask stock init-db
#   DEV/TEST only: create tables directly from the models.
#
# Variants and corrections:
# - python -m flask stock register-variant VAR-1 --sku SAREE-RED-M --name "Red Saree / M" [--untracked]
#   Create the stock row for a catalogue variant (counters start at zero).
# - python -m flask stock adjust VAR-1 25 --reason restock --actor ops@example.com --notes "PO 1182"
#   Record a manual adjustment in the ledger.
# - python -m flask stock adjust VAR-1 -2 --reason damage --actor ops@example.com
#   Negative changes decrease stock.
# - python -m flask stock levels --threshold 5 --low-only
#   Show stock levels for tracked variants.
# - python -m flask stock history VAR-1 --limit 20
#   Show the ledger for a variant, newest first.
#
# Reservations:
# - python -m flask stock sweep
#   Run one expiry sweep pass now.
# - python -m flask stock run-sweeper --interval 60
#   Run the expiry sweep in the foreground until interrupted.
#
# Reconciliation:
# - python -m flask stock reconcile [--variant VAR-1] [--fix]
#   Replay the ledger and compare with the counters; --fix rebuilds drifted counters.

import time

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .errors import StockError
from .validation import ValidationError
from .services import adjustment_service, query_service, reservation_service, variant_service
from .services.ledger_service import reconcile_variant, reconcile_all
from .models.ledger import ADJUSTMENT_REASONS


@click.group('stock')
def stock_group():
    """Inventory stock-control commands."""


@stock_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables from the models (DEV/TEST; use `flask db upgrade` in production)."""
    db.create_all()
    click.echo("PASS Tables created")


@stock_group.command('register-variant')
@click.argument('variant_id')
@click.option('--product-id', default=None)
@click.option('--sku', default=None)
@click.option('--name', default=None)
@click.option('--untracked', is_flag=True, help='Disable stock tracking for this variant')
@with_appcontext
def register_variant_cli(variant_id, product_id, sku, name, untracked):
    """Create the stock row for a catalogue variant."""
    try:
        variant = variant_service.register_variant(
            variant_id,
            product_id=product_id,
            sku=sku,
            name=name,
            track_inventory=not untracked,
        )
    except (ValidationError, StockError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Registered variant {variant.variant_id} (tracked={variant.track_inventory})")


@stock_group.command('adjust', context_settings={"ignore_unknown_options": True})
@click.argument('variant_id')
@click.argument('quantity_change', type=int)
@click.option('--reason', type=click.Choice(ADJUSTMENT_REASONS), required=True)
@click.option('--actor', 'actor_id', required=True, help='Operator identifier recorded on the ledger row')
@click.option('--notes', default=None)
@click.option('--reference', 'reference_id', default=None)
@with_appcontext
def adjust_cli(variant_id, quantity_change, reason, actor_id, notes, reference_id):
    """Record a manual stock adjustment (negative QUANTITY_CHANGE decreases stock)."""
    try:
        entry = adjustment_service.adjust(
            variant_id, quantity_change, reason, notes, actor_id, reference_id=reference_id
        )
    except (ValidationError, StockError) as e:
        raise click.ClickException(str(e))
    click.echo(
        f"PASS Ledger entry {entry.id}: {entry.quantity_delta:+d} ({entry.reason}) "
        f"-> on_hand={entry.resulting_on_hand} reserved={entry.resulting_reserved}"
    )


@stock_group.command('levels')
@click.option('--threshold', type=int, default=None)
@click.option('--low-only', is_flag=True)
@with_appcontext
def levels_cli(threshold, low_only):
    """Show stock levels for tracked variants, lowest first."""
    levels = query_service.get_stock_levels(threshold, low_only=low_only)
    if not levels:
        click.echo("No tracked variants")
        return
    for row in levels:
        flag = "LOW " if row["is_low_stock"] else "    "
        click.echo(
            f"{flag}{row['variant_id']:<24} available={row['current_stock']:<6} "
            f"on_hand={row['on_hand']:<6} reserved={row['reserved']}"
        )


@stock_group.command('history')
@click.argument('variant_id')
@click.option('--limit', type=int, default=20, show_default=True)
@with_appcontext
def history_cli(variant_id, limit):
    """Show ledger entries for a variant, newest first."""
    try:
        rows = query_service.get_history(variant_id, limit=limit)
    except StockError as e:
        raise click.ClickException(str(e))
    for e in rows:
        click.echo(
            f"{e.id:>6} {e.created_at} {e.entry_type:<10} {e.reason:<17} {e.quantity_delta:+d} "
            f"-> ({e.resulting_on_hand}, {e.resulting_reserved}) by {e.actor_id}"
        )


@stock_group.command('sweep')
@click.option('--limit', type=int, default=None, help='Max reservations to examine')
@with_appcontext
def sweep_cli(limit):
    """Expire stale reservations once."""
    result = reservation_service.expire_stale_reservations(limit=limit)
    click.echo(
        f"Examined {result.examined}, expired {result.expired}, "
        f"skipped {result.skipped}, failed {result.failed}"
    )


@stock_group.command('run-sweeper')
@click.option('--interval', type=float, default=None, help='Seconds between passes')
@with_appcontext
def run_sweeper_cli(interval):
    """Run the expiry sweep in the foreground until interrupted."""
    from .sweeper import ReservationSweeper

    sweeper = ReservationSweeper(current_app._get_current_object(), interval=interval)
    click.echo(f"Sweeping every {sweeper.interval:.0f}s (Ctrl+C to stop)")
    try:
        while True:
            result = sweeper.run_once()
            if result.expired or result.failed:
                click.echo(f"expired={result.expired} skipped={result.skipped} failed={result.failed}")
            time.sleep(sweeper.interval)
    except KeyboardInterrupt:
        click.echo("Stopped")


@stock_group.command('reconcile')
@click.option('--variant', 'variant_id', default=None, help='Only this variant')
@click.option('--fix', is_flag=True, help='Rebuild drifted counters from the ledger')
@with_appcontext
def reconcile_cli(variant_id, fix):
    """Replay the ledger and compare against the projector counters."""
    try:
        reports = [reconcile_variant(variant_id, fix=fix)] if variant_id else reconcile_all(fix=fix)
    except StockError as e:
        raise click.ClickException(str(e))

    drifted = [r for r in reports if not r.in_sync]
    for r in drifted:
        status = "FIXED" if r.fixed else "DRIFT"
        click.echo(
            f"{status} {r.variant_id}: projected=({r.projected_on_hand}, {r.projected_reserved}) "
            f"ledger=({r.ledger_on_hand}, {r.ledger_reserved})"
        )
    click.echo(f"Checked {len(reports)} variant(s), {len(drifted)} drifted")
    if drifted and not fix:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(stock_group)
