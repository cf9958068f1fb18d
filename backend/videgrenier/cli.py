# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/videgrenier/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init-db
#   Create all tables that do not exist yet (use `flask db upgrade` for migrations).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system stats
#   Row counts for the main tables and the current month's stock value.
# - python -m flask system cleanup-sessions
#   Delete expired/revoked sessions older than 30 days.
#
# User inspection/bootstrap:
# - python -m flask users list [--role seller]
#   List users with role, verification and block status.
# - python -m flask users create-admin --email admin@videgrenierkamer.com --password "Password123!"
#   Create a pre-verified admin account (prompts if options are omitted).

import click
from flask.cli import with_appcontext
from sqlalchemy import func

from .extensions import db
from .errors import ApiError
from .models import NewsletterSubscription, Product, Review, Sale, StockRecord, Supply, User
from .models.auth import ROLE_ADMIN, ROLES
from .services import session_service, user_service
from .time_utils import month_start


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create missing tables. Existing tables and data are left alone."""
    db.create_all()
    click.echo("PASS Database tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask users create-admin' to add an admin.")


@system_group.command('stats')
@with_appcontext
def stats():
    """Row counts and the stock value of the current month."""
    counts = [
        ("Users", db.session.query(User).count()),
        ("Products", db.session.query(Product).count()),
        ("Stock records", db.session.query(StockRecord).count()),
        ("Sales", db.session.query(Sale).count()),
        ("Supplies", db.session.query(Supply).count()),
        ("Reviews", db.session.query(Review).count()),
        ("Newsletter subscribers", db.session.query(NewsletterSubscription).filter_by(is_active=True).count()),
    ]

    current = month_start()
    stock_value = (
        db.session.query(func.coalesce(func.sum(StockRecord.stock_value), 0))
        .filter(StockRecord.period_start == current)
        .scalar()
    )

    click.echo("\n" + "="*50)
    for label, count in counts:
        click.echo(f"{label:<28} {count}")
    click.echo(f"{'Stock value ' + current.strftime('%Y-%m'):<28} {stock_value}")
    click.echo("="*50 + "\n")


@system_group.command('cleanup-sessions')
@with_appcontext
def cleanup_sessions():
    deleted = session_service.cleanup_expired_sessions()
    click.echo(f"PASS Deleted {deleted} expired session(s).")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@click.option('--role', type=click.Choice(ROLES), help='Filter by role')
@with_appcontext
def list_users(role):
    """List all users."""
    query = db.session.query(User)
    if role:
        query = query.filter_by(role=role)
    users = query.order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<30} {'Email':<35} {'Role':<8} {'Verified':<9} {'Blocked'}")
    click.echo("="*100)

    for user in users:
        verified_str = "Yes" if user.email_verified else "No"
        blocked_str = "Yes" if user.is_blocked else "No"
        click.echo(f"{user.id:<5} {user.full_name:<30} {user.email:<35} {user.role:<8} {verified_str:<9} {blocked_str}")

    click.echo("="*100 + "\n")


@users_group.command('create-admin')
@click.option('--first-name', default='Admin', help='First name')
@click.option('--last-name', default='Vide Grenier', help='Last name')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@with_appcontext
def create_admin_cli(first_name, last_name, email, password):
    """
    Create a pre-verified admin account.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = user_service.create_user({
            "first_name": first_name,
            "last_name": last_name,
            "email": email,
            "password": password,
            "role": ROLE_ADMIN,
        })
        click.echo(f"PASS Created admin: {user.email} (ID: {user.id})")
    except ApiError as e:
        click.echo(f"FAIL Failed to create admin: {e.message}")
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
