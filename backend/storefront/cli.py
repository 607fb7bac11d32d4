# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/storefront/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--admin-username admin --admin-email owner@example.com --admin-password "..."]
#   Idempotent: creates tables, the notification settings row, and optionally the first admin.
#
# User inspection/bootstrap:
# - python -m flask users list
#   List staff users with role and active status.
# - python -m flask users create --username jane --email jane@example.com --password "Password123!" --role manager
#   Create a staff user (prompts if options are omitted).
#
# Stock:
# - python -m flask stock check-low [--threshold 5]
#   Run the low-stock scan once and dispatch alerts.
#
# Ledger:
# - python -m flask ledger reconcile [--user-id 1]
#   Verify balance transaction chains against stored balances. Exits 1 on mismatch.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .services import ledger_service, notification_service, stock_monitor
from .services.auth_service import AuthError, PasswordValidationError, create_user


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--admin-username', default=None, help='Username for the first admin')
@click.option('--admin-email', default=None, help='Email for the first admin')
@click.option('--admin-password', default=None, help='Password for the first admin')
@with_appcontext
def init_system(admin_username, admin_email, admin_password):
    """
    Initialize the storefront database.

    Creates:
    - All tables (use `flask db upgrade` instead when running migrations)
    - Notification settings row (seeded from ADMIN_EMAIL)
    - First admin user, when all --admin-* options are given and no admin exists
    """
    click.echo("START Initializing storefront...")

    db.create_all()
    click.echo("PASS Tables ready")

    settings = notification_service.get_settings()
    click.echo(f"PASS Notification settings ready (low stock threshold: {settings.low_stock_threshold})")

    if not (admin_username and admin_email and admin_password):
        click.echo("SKIP No admin options given; create one with `flask users create --role admin`")
        return

    if db.session.query(User).filter_by(role="admin").first():
        click.echo("SKIP An admin user already exists")
        return

    try:
        user = create_user(admin_username, admin_email, admin_password, role="admin")
    except (AuthError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created admin: {user.username} ({user.email})")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all staff users."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<32} {'Role':<10} {'Active':<6}")
    click.echo("-" * 77)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.email:<32} {user.role:<10} "
            f"{'yes' if user.is_active else 'no':<6}"
        )


@users_group.command('create')
@click.option('--username', prompt=True)
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--role', type=click.Choice(['admin', 'manager']), default='manager', show_default=True)
@click.option('--full-name', default=None)
@with_appcontext
def create_user_command(username, email, password, role, full_name):
    """Create a staff user."""
    try:
        user = create_user(username, email, password, role=role, full_name=full_name)
    except (AuthError, PasswordValidationError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('stock')
def stock_group():
    """Inventory monitoring commands."""


@stock_group.command('check-low')
@click.option('--threshold', type=int, default=None, help='Override the stored threshold')
@with_appcontext
def check_low(threshold):
    """Run the low-stock scan once."""
    result = stock_monitor.check_low_stock(threshold)
    if not result["product_count"]:
        click.echo(f"PASS No products at or below {result['threshold']}")
        return

    click.echo(f"WARN {result['product_count']} product(s) at or below {result['threshold']}:")
    for product in result["products"]:
        click.echo(f"  - [{product['id']}] {product['title']}: {product['stock_quantity']}")


@click.group('ledger')
def ledger_group():
    """Balance ledger maintenance commands."""


@ledger_group.command('reconcile')
@click.option('--user-id', type=int, default=None)
@with_appcontext
def reconcile(user_id):
    """Verify every balance against its transaction history."""
    results = ledger_service.reconcile(user_id)
    if not results:
        click.echo("No balances to reconcile.")
        return

    failed = 0
    for result in results:
        if result.ok:
            click.echo(f"PASS user {result.user_id}: balance {result.current_balance_cents}")
        else:
            failed += 1
            click.echo(f"FAIL user {result.user_id}: {'; '.join(result.issues)}")

    if failed:
        raise click.ClickException(f"{failed} balance(s) failed reconciliation")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(stock_group)
    app.cli.add_command(ledger_group)
