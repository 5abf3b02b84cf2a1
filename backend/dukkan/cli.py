# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/dukkan/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--admin-password "Admin123!"]
#   Idempotent bootstrap: settings row, default category and warehouse, admin user.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --username clerk --password "Clerk123!" --role user
#
# Accounts:
# - python -m flask accounts reconcile [--fix]
#   Compare stored balances with opening balance + transaction history.
#
# Backup:
# - python -m flask backup create [--dir backups]
# - python -m flask backup restore --file backups/backup_<ts>.sqlite3 --yes

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User
from .models.auth import USER_ROLES
from .services import account_service, backup_service, catalog_service, settings_service
from .services.auth_service import create_user, PasswordValidationError, UserExistsError
from .validation import ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--admin-username', default='admin', help='Administrator username')
@click.option('--admin-password', default='Admin123!', help='Administrator password')
@with_appcontext
def init_system(admin_username, admin_password):
    """
    Initialize the system.

    Creates (when missing):
    - The settings row
    - Default category and default warehouse
    - An admin user (default password "Admin123!")

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing system...")

    settings_service.get_settings()
    category, warehouse = catalog_service.ensure_defaults()
    settings = settings_service.get_settings()
    if settings.default_warehouse_id is None:
        settings.default_warehouse_id = warehouse.id
    db.session.commit()
    click.echo(f"PASS Default category: {category.name} (ID: {category.id})")
    click.echo(f"PASS Default warehouse: {warehouse.name} (ID: {warehouse.id})")

    if db.session.query(User).filter_by(username=admin_username).first():
        click.echo(f"WARN  User '{admin_username}' already exists, skipping...")
    else:
        try:
            create_user(admin_username, admin_password, full_name="Administrator", role="admin")
        except PasswordValidationError as e:
            click.echo(f"FAIL Password validation failed for '{admin_username}': {e}")
            raise SystemExit(1)
        click.echo(f"PASS Created admin user: {admin_username}")

    click.echo("\n" + "=" * 60)
    click.echo("DONE System initialized")
    click.echo("=" * 60)
    click.echo("SECURITY Change the admin password immediately in production!")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--full-name', default=None, help='Display name')
@click.option('--email', default=None, help='Email address')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='user', show_default=True, help='Role')
@with_appcontext
def create_user_cli(username, password, full_name, email, role):
    """
    Create a new user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character
    """
    try:
        user = create_user(username, password, full_name=full_name, email=email, role=role)
    except PasswordValidationError as e:
        click.echo(f"FAIL Password validation failed: {e}")
        click.echo("Requirements: 8+ chars, uppercase, lowercase, digit, special char")
        raise SystemExit(1)
    except (UserExistsError, ValueError) as e:
        click.echo(f"FAIL Failed to create user: {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created user: {user.username} with role '{user.role}'")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "=" * 72)
    click.echo(f"{'ID':<5} {'Username':<20} {'Full name':<25} {'Active':<8} {'Role'}")
    click.echo("=" * 72)
    for user in users:
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.username:<20} {(user.full_name or ''):<25} {active_str:<8} {user.role}")
    click.echo("=" * 72 + "\n")


@click.group('accounts')
def accounts_group():
    """Account balance maintenance."""


@accounts_group.command('reconcile')
@click.option('--fix', is_flag=True, help='Write the expected balances')
@with_appcontext
def reconcile_accounts(fix):
    """Report (and optionally repair) balance drift against transaction history."""
    mismatches = account_service.reconcile_balances(fix=fix)
    if not mismatches:
        click.echo("PASS All account balances match their transaction history.")
        return

    for m in mismatches:
        click.echo(f"MISMATCH account {m['accountId']} {m['name']}: stored={m['stored']} expected={m['expected']}")
    if fix:
        click.echo(f"PASS Fixed {len(mismatches)} account(s).")
    else:
        click.echo(f"WARN {len(mismatches)} mismatch(es). Re-run with --fix to repair.")


@click.group('backup')
def backup_group():
    """Database backup and restore."""


@backup_group.command('create')
@click.option('--dir', 'backup_dir', default=None, help='Target directory (defaults to BACKUP_DIR)')
@with_appcontext
def create_backup_cli(backup_dir):
    try:
        result = backup_service.create_backup(backup_dir)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Backup written: {result['backupFile']} ({result['size']} bytes)")


@backup_group.command('restore')
@click.option('--file', 'backup_file', required=True, help='Backup file to restore')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def restore_backup_cli(backup_file, yes):
    """
    DANGER: Replace the live database with a backup.

    A pre_restore_<timestamp> safety copy is written next to the database.
    """
    if not yes:
        click.confirm("WARN This will REPLACE ALL DATA. Are you sure?", abort=True)
    try:
        result = backup_service.restore_backup(backup_file)
    except ValidationError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)
    click.echo(f"PASS Database restored from {backup_file}")
    if result["safetyCopy"]:
        click.echo(f"     Safety copy: {result['safetyCopy']}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(accounts_group)
    app.cli.add_command(backup_group)
