# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/loandesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py.
# - Use: python -m flask <group> <command> [options]
#
# System:
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Groups (tenants):
# - python -m flask groups create --name "Library"
#   Create a group and its default roles (user, admin).
#
# Users:
# - python -m flask users create --group-id 1 --name "Ada" --email ada@example.com --password "Password123!" --role admin
#   Create a user. Every user also gets the "user" role.
# - python -m flask users sign-out --user-id 1
#   Revoke every token the user holds.
# - python -m flask users cleanup-tokens
#   Delete expired tokens.
#
# Items:
# - python -m flask items create --group-id 1 --name "Laptop 7" --asset-id 1007 --quantity 1
#
# Kiosk:
# - python -m flask kiosk status --user-id 1
#   Show a user's kiosk mode state.

import click
from flask.cli import with_appcontext

from .errors import LoanDeskError
from .extensions import db
from .models import Group, Item
from .services import auth_service, kiosk_service, token_service
from .services.auth_service import ROLE_ADMIN, ROLE_USER


@click.group('system')
def system_group():
    """System maintenance commands."""


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

    click.echo("PASS Database reset complete. Run 'python -m flask groups create' next.")


@click.group('groups')
def groups_group():
    """Group (tenant) management."""


@groups_group.command('create')
@click.option('--name', prompt=True, help='Group name')
@with_appcontext
def create_group_cli(name):
    try:
        group = auth_service.create_group(name)
    except LoanDeskError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created group {group.id}: {group.name}")


@groups_group.command('list')
@with_appcontext
def list_groups_cli():
    groups = db.session.query(Group).order_by(Group.id).all()
    if not groups:
        click.echo("No groups found")
        return
    for group in groups:
        status = "active" if group.is_active else "inactive"
        click.echo(f"{group.id:>4}  {group.name}  ({status})")


@click.group('users')
def users_group():
    """User management."""


@users_group.command('create')
@click.option('--group-id', type=int, required=True, help='Group ID')
@click.option('--name', prompt=True, help='Display name')
@click.option('--email', prompt=True, help='Email address (login)')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice([ROLE_USER, ROLE_ADMIN]), default=ROLE_USER, help='Role')
@with_appcontext
def create_user_cli(group_id, name, email, password, role):
    """
    Create a user in a group.

    Password must be 8+ characters with upper, lower, digit and special.
    """
    roles = (ROLE_USER,) if role == ROLE_USER else (ROLE_USER, ROLE_ADMIN)
    try:
        user = auth_service.create_user(group_id, name, email, password, roles=roles)
    except LoanDeskError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Created user {user.id}: {user.email} ({', '.join(roles)})")


@users_group.command('sign-out')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def sign_out_user_cli(user_id):
    """Revoke all of a user's tokens (signs them out everywhere)."""
    revoked = token_service.revoke_user_tokens(user_id)
    click.echo(f"PASS Revoked {revoked} token(s) for user {user_id}")


@users_group.command('cleanup-tokens')
@with_appcontext
def cleanup_tokens_cli():
    deleted = token_service.cleanup_expired_tokens()
    click.echo(f"PASS Deleted {deleted} expired token(s)")


@click.group('items')
def items_group():
    """Inventory items available for loan."""


@items_group.command('create')
@click.option('--group-id', type=int, required=True, help='Group ID')
@click.option('--name', prompt=True, help='Item name')
@click.option('--asset-id', type=int, default=None, help='Asset tag number')
@click.option('--quantity', type=click.IntRange(min=1), default=1, help='Units on hand')
@with_appcontext
def create_item_cli(group_id, name, asset_id, quantity):
    if db.session.get(Group, group_id) is None:
        click.echo(f"FAIL Group ID {group_id} not found")
        raise SystemExit(1)

    item = Item(group_id=group_id, name=name, asset_id=asset_id, quantity=quantity)
    db.session.add(item)
    db.session.commit()
    click.echo(f"PASS Created item {item.id}: {item.name}")


@click.group('kiosk')
def kiosk_group():
    """Kiosk mode inspection."""


@kiosk_group.command('status')
@click.option('--user-id', type=int, required=True, help='User ID')
@with_appcontext
def kiosk_status_cli(user_id):
    status = kiosk_service.get_status(user_id)
    click.echo(f"active:   {status.is_active}")
    click.echo(f"unlocked: {status.is_unlocked}")
    if status.unlocked_until is not None:
        click.echo(f"until:    {status.to_dict()['unlockedUntil']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(groups_group)
    app.cli.add_command(users_group)
    app.cli.add_command(items_group)
    app.cli.add_command(kiosk_group)
