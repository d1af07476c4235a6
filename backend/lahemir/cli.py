# Overview: Flask CLI command groups for bootstrap, inspection, and backups.

# backend/lahemir/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates the tables and seeds the default admin, sample products and settings.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - python -m flask users list
#   List all users with their roles.
# - python -m flask users create --username sara --password "secret" --role employee
#   Create a user (prompts if options are omitted).
#
# Backups:
# - python -m flask backup export --output backup.json
#   Write a full backup document (stdout when --output is omitted).
# - python -m flask backup restore backup.json --yes
#   Replace all users, products, sales and settings with a backup document.

import click
from flask.cli import with_appcontext

from .errors import PosError
from .extensions import db
from .models import ALL_ROLES
from .services.container import get_services


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the store: tables, default admin, sample products, settings.

    Safe to run repeatedly; existing data is left alone.
    """
    click.echo("START Initializing store...")
    db.create_all()
    click.echo("PASS Tables ready")

    services = get_services()
    services.sync()

    # Reading a slot with nothing stored yields its default; writing it
    # back persists the seed data.
    users = services.users.list()
    services.users.slot.set(users)
    click.echo(f"PASS Users: {', '.join(u.username for u in users)}")

    products = services.products.list()
    services.products.slot.set(products)
    click.echo(f"PASS Products: {len(products)}")

    settings = services.settings.get()
    services.settings.slot.set(settings)
    click.echo(f"PASS Store name: {settings.store_name}")

    default_admin = services.users.default_admin
    click.echo("\n" + "="*60)
    click.echo("DONE Store Initialized Successfully!")
    click.echo("="*60)
    click.echo(f"\nDefault admin: {default_admin.username}")
    click.echo("SECURITY Change the default admin password from the users screen.")
    click.echo("")


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

    services = get_services()
    for slot in services.slots():
        slot.sync()
    services.cart.clear()

    click.echo("PASS Database reset complete. Run 'flask system init' to seed defaults.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users."""
    services = get_services()
    users = services.users.list()

    click.echo("\n" + "="*60)
    click.echo(f"{'ID':<24} {'Username':<20} {'Role'}")
    click.echo("="*60)
    for user in users:
        marker = " (default)" if services.users.is_default_admin(user) else ""
        click.echo(f"{user.id:<24} {user.username:<20} {user.role}{marker}")
    click.echo("="*60 + "\n")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ALL_ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, password, role):
    """Create a new user."""
    try:
        user = get_services().users.add({"username": username, "password": password, "role": role})
    except PosError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(f"PASS Created user: {user.username} with role '{user.role}' (ID: {user.id})")


@click.group('backup')
def backup_group():
    """Backup export and restore."""


@backup_group.command('export')
@click.option('--output', type=click.File('w', encoding='utf-8'), default='-', help='Output file (default stdout)')
@with_appcontext
def export_backup(output):
    """Write a backup document."""
    output.write(get_services().backup.dumps())
    output.write("\n")


@backup_group.command('restore')
@click.argument('source', type=click.File('rb'))
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def restore_backup(source, yes):
    """Replace all data with the contents of a backup document."""
    if not yes:
        click.confirm("WARN This will REPLACE ALL DATA. Are you sure?", abort=True)
    try:
        summary = get_services().backup.restore_backup(source.read())
    except PosError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)
    click.echo(
        f"PASS Restored {summary['users']} users, {summary['products']} products, {summary['sales']} sales"
    )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(backup_group)
