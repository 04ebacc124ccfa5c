# Overview: Flask CLI command groups for bootstrap, inspection, and reports.

# backend/posledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to posledger (PowerShell: $env:FLASK_APP="posledger"); Flask finds create_app().
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo
#   Users with API tokens, products, a six-pack family, a bundle and a customer.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username alice --role cashier
#   Prints the new user's API token.
#
# Reports:
# - python -m flask reports low-stock [--threshold 5]
# - python -m flask reports stock-value
#
# Shifts:
# - python -m flask shifts pending
#   Shifts closed with a variance that still need manager approval.

import secrets

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import customer_service, promotions_service, shift_service, stock_family_service
from .services.inventory_service import low_stock_report, stock_value_report
from .services.products_service import create_product


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("OK  Schema ready.")


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

    click.echo("OK  Database reset complete.")


@system_group.command('seed-demo')
@with_appcontext
def seed_demo():
    """Load a small demo catalog. Refuses to run twice."""
    db.create_all()
    if db.session.query(User).filter_by(username="admin").first():
        click.echo("SKIP  Demo data already present.")
        return

    tokens = {}
    for username, role in (("admin", "admin"), ("manager", "manager"), ("cashier", "cashier")):
        token = secrets.token_hex(24)
        db.session.add(User(username=username, display_name=username.title(), role=role, api_token=token))
        tokens[username] = token
    db.session.commit()

    single = create_product(db.session, patch={
        "sku": "COLA-1", "name": "Cola Can", "category": "Drinks",
        "price_cents": 300, "cost_cents": 120, "stock": 48,
    })
    six_pack = create_product(db.session, patch={
        "sku": "COLA-6", "name": "Cola 6-Pack", "category": "Drinks",
        "price_cents": 1500, "cost_cents": 700, "stock": 8,
    })
    chips = create_product(db.session, patch={
        "sku": "CHIPS-1", "name": "Potato Chips", "category": "Snacks",
        "price_cents": 250, "cost_cents": 90, "stock": 30,
    })

    family = stock_family_service.create_family(
        db.session, name="Cola", base_product_id=single.id, total_stock=48, category="Drinks",
    )
    stock_family_service.add_member(db.session, family.id, six_pack.id, 6)

    promotions_service.create_bundle(
        db.session,
        {"name": "Any 6 drinks or snacks for 15.00", "minimum_quantity": 6, "bundle_price_cents": 1500},
        product_ids=[single.id, chips.id],
    )
    customer_service.create_customer(db.session, {"first_name": "Demo", "last_name": "Customer"})

    click.echo("OK  Demo data loaded. API tokens:")
    for username, token in tokens.items():
        click.echo(f"    {username:<10} {token}")


@click.group('users')
def users_group():
    """User inspection/bootstrap."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 60)
    click.echo(f"{'ID':<5} {'Username':<20} {'Role':<10} {'Active'}")
    click.echo("=" * 60)
    for user in users:
        click.echo(f"{user.id:<5} {user.username:<20} {user.role:<10} {'Yes' if user.is_active else 'No'}")
    click.echo("=" * 60 + "\n")


@users_group.command('create')
@click.option('--username', required=True)
@click.option('--display-name', default=None)
@click.option('--role', type=click.Choice(["admin", "manager", "cashier"]), default="cashier")
@with_appcontext
def create_user_cli(username, display_name, role):
    """Create a user and print its API token."""
    if db.session.query(User).filter_by(username=username).first():
        raise click.ClickException(f"User '{username}' already exists")

    token = secrets.token_hex(24)
    user = User(username=username, display_name=display_name, role=role, api_token=token)
    db.session.add(user)
    db.session.commit()
    click.echo(f"OK  Created user {user.id} ({role}). API token: {token}")


@click.group('reports')
def reports_group():
    """Inventory reports."""


@reports_group.command('low-stock')
@click.option('--threshold', type=int, default=None, help='Defaults to LOW_STOCK_THRESHOLD')
@with_appcontext
def low_stock_cli(threshold):
    """Products at or below the threshold."""
    if threshold is None:
        threshold = current_app.config["LOW_STOCK_THRESHOLD"]
    rows = low_stock_report(db.session, threshold)
    if not rows:
        click.echo(f"No products at or below {threshold}.")
        return

    click.echo(f"{'ID':<5} {'SKU':<15} {'Name':<30} {'Stock':>6} {'Available':>10}")
    for row in rows:
        click.echo(
            f"{row['id']:<5} {row['sku']:<15} {row['name']:<30} {row['stock']:>6} {row['available_stock']:>10}"
        )


@reports_group.command('stock-value')
@with_appcontext
def stock_value_cli():
    """Retail and cost value of stock, per category."""
    report = stock_value_report(db.session)
    click.echo(f"Products:    {report['total_products']}")
    click.echo(f"Stock value: {_money(report['total_stock_value_cents'])}")
    click.echo(f"Cost value:  {_money(report['total_cost_value_cents'])}")
    for category, bucket in sorted(report["categories"].items()):
        click.echo(
            f"  {category:<20} units={bucket['count']:<6} "
            f"value={_money(bucket['value_cents'])} cost={_money(bucket['cost_cents'])}"
        )


@click.group('shifts')
def shifts_group():
    """Shift inspection."""


@shifts_group.command('pending')
@with_appcontext
def pending_shifts_cli():
    """Shifts waiting for variance approval, oldest first."""
    shifts = shift_service.pending_approvals(db.session)
    if not shifts:
        click.echo("No shifts pending approval.")
        return

    click.echo(f"{'ID':<5} {'User':<20} {'Ended':<22} {'Expected':>12} {'Counted':>12} {'Variance':>10}")
    for shift in shifts:
        click.echo(
            f"{shift.id:<5} {(shift.user_name or str(shift.user_id)):<20} "
            f"{shift.end_time.isoformat(timespec='seconds'):<22} "
            f"{_money(shift.expected_balance_cents):>12} {_money(shift.closing_balance_cents):>12} "
            f"{_money(shift.variance_cents):>10}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(reports_group)
    app.cli.add_command(shifts_group)
