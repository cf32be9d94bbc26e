# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/salesdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: flask --app salesdesk <group> <command> [options]
#
# System bootstrap/repair:
# - flask --app salesdesk system init
#   Idempotent bootstrap: permissions, default roles, communication types,
#   sale/payment types, payment methods and the default prim rate.
# - flask --app salesdesk system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# User inspection/bootstrap:
# - flask --app salesdesk users list
#   List all users with role and status.
# - flask --app salesdesk users create --email a@b.com --first-name Ali --last-name Veli --role admin
#   Create an approved, active user (prompts for the password when omitted).
#
# Penalties:
# - flask --app salesdesk penalties check-daily [--date 2024-05-01]
#   Penalize users without a communication record for the day (default: today).
#
# Backups:
# - flask --app salesdesk backups clean [--days 30]
#   Deactivate backups older than the retention window.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, CommunicationType
from .permissions import ADMIN_ROLE, SALESPERSON_ROLE, VISITOR_ROLE
from .services import (
    auth_service,
    backup_service,
    catalog_service,
    communication_service,
    penalty_service,
    permission_service,
    prim_service,
)
from .services.auth_service import PasswordValidationError
from .services.backup_service import BackupError
from .services.penalty_service import PenaltyError

DEFAULT_PRIM_RATE = 1.0


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Full idempotent bootstrap.

    Safe to run repeatedly: every step skips data that already exists.
    """
    created = permission_service.initialize_permissions()
    click.echo(f"PASS Permissions initialized ({created} created)")

    auth_service.create_default_roles()
    linked = permission_service.assign_default_role_permissions()
    click.echo(f"PASS Default roles ready ({linked} role permissions linked)")

    if db.session.query(CommunicationType.id).first():
        click.echo("SKIP Communication types already exist")
    else:
        types = communication_service.create_default_types(None)
        click.echo(f"PASS Created {len(types)} default communication types")

    seeded = catalog_service.seed_defaults()
    click.echo(
        "PASS Catalogs seeded "
        f"(sale types: {seeded['sale_type']}, payment types: {seeded['payment_type']}, "
        f"payment methods: {seeded['payment_method']})"
    )

    if prim_service.get_active_rate() is None:
        prim_service.set_rate(DEFAULT_PRIM_RATE, "Default prim rate", None)
        click.echo(f"PASS Default prim rate set to {DEFAULT_PRIM_RATE}%")
    else:
        click.echo("SKIP Active prim rate already configured")

    click.echo("PASS System initialized")


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

    click.echo("PASS Database reset complete. Run 'flask --app salesdesk system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option(
    '--role',
    type=click.Choice([ADMIN_ROLE, SALESPERSON_ROLE, VISITOR_ROLE]),
    default=SALESPERSON_ROLE,
    show_default=True,
    help='Role',
)
@with_appcontext
def create_user_cli(email, password, first_name, last_name, role):
    """Create an approved, active user."""
    try:
        user = auth_service.create_user(
            first_name=first_name,
            last_name=last_name,
            email=email,
            password=password,
            role_name=role,
        )
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        return
    except ValueError as e:
        click.echo(f"FAIL Failed to create user: {e}")
        return

    click.echo(f"PASS Created user: {user.name} ({user.email}) with role '{role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and status."""
    users = db.session.query(User).order_by(User.id).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*100)
    click.echo(f"{'ID':<5} {'Name':<25} {'Email':<30} {'Role':<14} {'Status'}")
    click.echo("="*100)

    for user in users:
        if user.is_virtual:
            status = "virtual"
        elif not user.is_approved:
            status = "pending"
        elif user.is_penalty_deactivated:
            status = "penalty-locked"
        else:
            status = "active" if user.is_active else "inactive"
        role_name = user.role.name if user.role else "none"
        click.echo(f"{user.id:<5} {user.name:<25} {user.email:<30} {role_name:<14} {status}")

    click.echo("="*100 + "\n")


@click.group('penalties')
def penalties_group():
    """Communication penalty commands."""


@penalties_group.command('check-daily')
@click.option('--date', 'on_date', default=None, help='Day to check (YYYY-MM-DD, default: today)')
@with_appcontext
def check_daily_cli(on_date):
    """Penalize obliged users who entered no communication record for the day."""
    try:
        result = penalty_service.check_daily(on_date)
    except PenaltyError as e:
        click.echo(f"FAIL {e}")
        return

    if result["skipped"]:
        click.echo(f"SKIP {result['date']}: {result['reason']}")
        return

    click.echo(
        f"PASS {result['date']}: checked {result['checked_users']} users, "
        f"penalized {len(result['penalized_users'])}, deactivated {len(result['deactivated_users'])}"
    )


@click.group('backups')
def backups_group():
    """Backup maintenance commands."""


@backups_group.command('clean')
@click.option('--days', type=int, default=None, help='Retention in days (default: BACKUP_RETENTION_DAYS)')
@with_appcontext
def clean_backups_cli(days):
    """Deactivate backups older than the retention window."""
    try:
        deactivated = backup_service.clean_old_backups(days)
    except BackupError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"Deactivated {deactivated} old backups.")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(penalties_group)
    app.cli.add_command(backups_group)
