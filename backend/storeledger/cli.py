# Overview: Flask CLI command groups for bootstrap, inspection, and counter maintenance.

# backend/storeledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--with-admin]
#   Idempotent: creates tables, seeds every series counter, optionally an admin user.
#
# Users:
# - python -m flask users list
# - python -m flask users create --username jane --role manager --permission manage_audits
#
# Identifier series:
# - python -m flask sequences show
#   Print each series with its next number and next identifier.
# - python -m flask sequences reseed invoice 1200 --yes
#   Move a counter forward after SequenceExhausted (never backwards).

import click
from flask.cli import with_appcontext

from .errors import LedgerError
from .extensions import db
from .models import SeriesCounter, User
from .services import sequence_service
from .services.authorization import GRANTS, ROLES, Actor


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--with-admin', is_flag=True, help='Also create an "admin" user if none exists')
@with_appcontext
def init_system(with_admin):
    """
    Create tables and seed a counter row for every identifier series.

    Safe to run repeatedly; existing counters are never touched.
    """
    click.echo("START Initializing store ledger...")

    db.create_all()
    click.echo("PASS Tables created")

    for series_id in sequence_service.SERIES:
        if db.session.get(SeriesCounter, series_id) is None:
            db.session.add(SeriesCounter(series_id=series_id, next_number=1))
            click.echo(f"PASS Seeded counter '{series_id}'")
        else:
            click.echo(f"SKIP Counter '{series_id}' already exists")
    db.session.commit()

    if with_admin and db.session.query(User).filter_by(role="admin").first() is None:
        admin = User(username="admin", display_name="Administrator", role="admin", permissions=[])
        db.session.add(admin)
        db.session.commit()
        click.echo(f"PASS Created admin user (ID: {admin.id})")

    click.echo("DONE")


@click.group('users')
def users_group():
    """Staff account commands."""


@users_group.command('list')
@with_appcontext
def list_users():
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return
    for user in users:
        status = "active" if user.is_active else "inactive"
        grants = ", ".join(user.permissions or []) or "-"
        click.echo(f"{user.id:>4}  {user.username:<20} {user.role:<12} {status:<8} {grants}")


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--display-name', default=None, help='Display name')
@click.option('--role', type=click.Choice(sorted(ROLES)), prompt=True, help='Role')
@click.option('--permission', 'permissions', multiple=True, type=click.Choice(sorted(GRANTS)),
              help='Granular grant (repeatable)')
@with_appcontext
def create_user_cli(username, display_name, role, permissions):
    """Create a staff account. Credentials live in the external auth layer."""
    username = username.strip()
    if db.session.query(User).filter_by(username=username).first():
        click.echo(f"FAIL Username '{username}' already exists")
        return

    user = User(
        username=username,
        display_name=display_name,
        role=role,
        permissions=list(permissions),
    )
    db.session.add(user)
    db.session.commit()
    click.echo(f"PASS Created user {user.username} (ID: {user.id}, role: {user.role})")


@click.group('sequences')
def sequences_group():
    """Identifier series inspection and recovery."""


@sequences_group.command('show')
@with_appcontext
def show_sequences():
    for row in sequence_service.list_counters():
        click.echo(f"{row['series_id']:<16} next={row['next_number']:<8} -> {row['next_identifier']}")


@sequences_group.command('reseed')
@click.argument('series_id')
@click.argument('next_number', type=int)
@click.option('--yes', is_flag=True, help='Confirm moving the counter')
@with_appcontext
def reseed_sequence(series_id, next_number, yes):
    """
    Move SERIES_ID forward so the next identifier issued is NEXT_NUMBER.

    Use after SequenceExhausted: pick a number above the highest existing row.
    """
    if not yes:
        click.echo("FAIL Refusing to reseed without --yes")
        return

    # Operator shell access stands in for the admin capability
    operator = Actor(user_id=0, role="admin")
    try:
        counter = sequence_service.reseed(series_id, next_number, operator)
    except LedgerError as e:
        click.echo(f"FAIL {e.message}")
        raise SystemExit(1)

    click.echo(f"PASS {series_id} now issues {sequence_service.format_identifier(series_id, counter.next_number)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(sequences_group)
