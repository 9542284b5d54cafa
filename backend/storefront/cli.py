# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system clear-cache
#   Drop every cached order/product/payment/cart entry.
#
# Users:
# - python -m flask users create --username admin --email admin@shop.local --password "Password123!" --role ADMIN
#   Create a user (prompts if options are omitted).
# - python -m flask users list
#
# Catalog:
# - python -m flask products list [--all]
#
# Payments:
# - python -m flask payments stuck --older-than-minutes 15
#   List PROCESSING payments that never got a gateway outcome recorded.

import click
from flask.cli import with_appcontext

from .errors import StorefrontError
from .extensions import db
from .models import Payment, Product, User
from .money import format_cents
from .services.auth_service import ROLES, create_user
from .services.cache_service import get_cache
from .services.payment_gateway import PAYMENT_STATUS_PROCESSING
from .time_utils import minutes_ago


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables created")


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
    db.create_all()
    get_cache().clear()
    click.echo("PASS Database reset complete")


@system_group.command('clear-cache')
@with_appcontext
def clear_cache():
    get_cache().clear()
    click.echo("PASS Cache cleared")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(ROLES, case_sensitive=False), default='CUSTOMER', show_default=True)
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a user with any role.

    Password must meet strength requirements: 8+ chars, uppercase,
    lowercase, digit, special char.
    """
    try:
        user = create_user(username=username, email=email, password=password, role=role.upper())
    except StorefrontError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created user: {user.username} ({user.email}) with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<30} {'Role':<10} {'Active'}")
    for u in users:
        click.echo(f"{u.id:<5} {u.username:<20} {u.email:<30} {u.role:<10} {'yes' if u.is_active else 'no'}")


@click.group('products')
def products_group():
    """Catalog inspection commands."""


@products_group.command('list')
@click.option('--all', 'include_inactive', is_flag=True, help='Include deactivated products')
@with_appcontext
def list_products(include_inactive):
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    products = query.order_by(Product.id.asc()).all()
    if not products:
        click.echo("No products found.")
        return

    click.echo(f"{'ID':<5} {'Name':<30} {'Price':>12} {'Stock':>7} {'Owner':>6}")
    for p in products:
        price = f"{format_cents(p.price_cents)} {p.currency}"
        click.echo(f"{p.id:<5} {p.name[:30]:<30} {price:>12} {p.stock:>7} {p.owner_user_id:>6}")


@click.group('payments')
def payments_group():
    """Payment reconciliation commands."""


@payments_group.command('stuck')
@click.option('--older-than-minutes', type=int, default=15, show_default=True)
@with_appcontext
def stuck_payments(older_than_minutes):
    """
    List PROCESSING payments older than the cutoff.

    These block further attempts on their order and need to be checked
    against the provider dashboard.
    """
    cutoff = minutes_ago(older_than_minutes)
    payments = (
        db.session.query(Payment)
        .filter(Payment.status == PAYMENT_STATUS_PROCESSING, Payment.created_at < cutoff)
        .order_by(Payment.created_at.asc())
        .all()
    )
    if not payments:
        click.echo("PASS No stuck payments")
        return
    for p in payments:
        click.echo(
            f"WARN payment={p.id} order={p.order_id} amount={format_cents(p.amount_cents)} "
            f"{p.currency} provider={p.provider} created_at={p.created_at}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(products_group)
    app.cli.add_command(payments_group)
