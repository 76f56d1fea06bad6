# Overview: Flask CLI command groups for bootstrap, inspection, and seeding.

# backend/garage/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init-db
#   Create all tables (use "flask db upgrade" for migrated databases).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
# - python -m flask system seed-demo [--company-code GARAGE]
#   Idempotent demo data: company, roles, users, 3-level return ladder,
#   status vocabulary and some inventory.
#
# Workflow inspection/configuration:
# - python -m flask workflows list --company-id 1 [--process "Purchase Return Request"]
#   List configured approval levels.
# - python -m flask workflows add-level --company-id 1 --role "Store Manager" [--override-enabled]
#   Append the next level to a ladder.
#
# User bootstrap:
# - python -m flask users create --company-id 1 --username clerk --email clerk@garage.local --password "Password123!" --role Clerk
#   Create a user (prompts if options are omitted).

import click
from flask import current_app
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, Role, User, StatusMessage, InventoryLine
from .services.auth_service import create_user, get_or_create_role, PasswordValidationError
from .services import workflow_config_service
from .services.workflow_engine import (
    WorkflowConfigurationError,
    STATUS_ORDER_RETURN_CREATED,
    STATUS_APPROVAL_PENDING,
    STATUS_APPROVER_COMPLETED,
    STATUS_ORDER_RETURN_CANCELLED,
)


DEMO_PASSWORD = "Password123!"

DEMO_ROLES = [
    ("Clerk", "Raises purchase returns"),
    ("Store Manager", "Level 1 approver"),
    ("Purchase Manager", "Level 2 approver"),
    ("Finance", "Level 3 approver"),
]


def default_status_messages(levels: int) -> list[tuple[str, str]]:
    """Status vocabulary for a ladder of `levels` rungs."""
    rows = [(STATUS_ORDER_RETURN_CREATED, "Return Created")]
    rows += [(STATUS_APPROVAL_PENDING, f"Level {n} Approval Pending") for n in range(1, levels + 1)]
    rows += [
        (STATUS_APPROVER_COMPLETED, "Approval Completed"),
        (STATUS_ORDER_RETURN_CANCELLED, "Return Cancelled"),
    ]
    return rows


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Tables created.")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system seed-demo' to add demo data.")


@system_group.command('seed-demo')
@click.option('--company', 'company_name', default='Demo Garage', help='Company name')
@click.option('--company-code', default='GARAGE', help='Company code')
@with_appcontext
def seed_demo(company_name, company_code):
    """
    Seed a demo company with a 3-level purchase return ladder.

    Creates (idempotently):
    - Company, roles (Clerk, Store Manager, Purchase Manager, Finance, Super Admin)
    - One user per role, password "Password123!"
    - Ladder: Store Manager -> Purchase Manager -> Finance, override enabled at level 1
    - Status vocabulary for PURCHASE_ORDER_RETURN
    - Inventory for purchase order 1000, items 1-3

    SECURITY: Change passwords immediately outside development!
    """
    click.echo("START Seeding demo data...")

    company = db.session.query(Company).filter_by(code=company_code).first()
    if not company:
        company = Company(name=company_name, code=company_code, is_active=True)
        db.session.add(company)
        db.session.commit()
        click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")
    else:
        click.echo(f"PASS Using existing company: {company.name} (ID: {company.id})")

    override_name = current_app.config["OVERRIDE_ROLE_NAME"]
    roles = {}
    for name, description in DEMO_ROLES + [(override_name, "May collapse remaining approval levels")]:
        roles[name] = get_or_create_role(company.id, name, description)
    db.session.commit()
    click.echo(f"PASS Roles: {', '.join(roles)}")

    for name, role in roles.items():
        username = name.lower().replace(" ", "_")
        if db.session.query(User).filter_by(company_id=company.id, username=username).first():
            continue
        create_user(
            company_id=company.id,
            username=username,
            email=f"{username}@garage.local",
            password=DEMO_PASSWORD,
            role_id=role.id,
            first_name=name,
        )
        click.echo(f"PASS Created user: {username}")

    process = workflow_config_service.return_process_name()
    if not workflow_config_service.get_levels(company.id, process):
        for i, name in enumerate(["Store Manager", "Purchase Manager", "Finance"]):
            workflow_config_service.add_level(company.id, process, roles[name].id, override_enabled=(i == 0))
        db.session.commit()
        click.echo(f"PASS Created 3-level ladder for {process!r}")

    category = current_app.config["RETURN_STATUS_CATEGORY"]
    if not db.session.query(StatusMessage).filter_by(company_id=company.id, category_id=category).first():
        for sub_category, value in default_status_messages(3):
            db.session.add(StatusMessage(
                company_id=company.id,
                category_id=category,
                sub_category_id=sub_category,
                value=value,
            ))
        db.session.commit()
        click.echo("PASS Created status vocabulary")

    if not db.session.query(InventoryLine).filter_by(company_id=company.id).first():
        for item_id in (1, 2, 3):
            db.session.add(InventoryLine(company_id=company.id, purchase_order_id=1000, item_id=item_id, item_qty=50))
        db.session.commit()
        click.echo("PASS Created inventory for purchase order 1000")

    click.echo("\nDONE Demo data ready.")


@click.group('workflows')
def workflows_group():
    """Approval ladder inspection and configuration."""


@workflows_group.command('list')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--process', 'process_name', default=None, help='Process name (default: purchase returns)')
@with_appcontext
def list_levels(company_id, process_name):
    """List configured approval levels."""
    process_name = process_name or workflow_config_service.return_process_name()
    levels = workflow_config_service.get_levels(company_id, process_name)

    if not levels:
        click.echo(f"No levels configured for {process_name!r}.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'Level':<7} {'ID':<5} {'Role':<30} {'Override'}")
    click.echo("="*70)
    for level in levels:
        role_name = level.role.name if level.role else f"#{level.role_id}"
        click.echo(f"{level.level:<7} {level.id:<5} {role_name:<30} {'Yes' if level.override_enabled else 'No'}")
    click.echo("="*70 + "\n")


@workflows_group.command('add-level')
@click.option('--company-id', type=int, required=True, help='Company ID')
@click.option('--role', 'role_name', required=True, help='Role name gating the new level')
@click.option('--process', 'process_name', default=None, help='Process name (default: purchase returns)')
@click.option('--override-enabled', is_flag=True, help='Allow the override role to collapse from this level')
@with_appcontext
def add_level(company_id, role_name, process_name, override_enabled):
    """Append the next level to an approval ladder."""
    process_name = process_name or workflow_config_service.return_process_name()
    role = db.session.query(Role).filter_by(company_id=company_id, name=role_name).first()
    if not role:
        click.echo(f"FAIL Role {role_name!r} not found in company {company_id}")
        return

    try:
        level = workflow_config_service.add_level(company_id, process_name, role.id, override_enabled)
        db.session.commit()
    except WorkflowConfigurationError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Added level {level.level} ({role.name}) to {process_name!r}")


@click.group('users')
def users_group():
    """User bootstrap commands."""


@users_group.command('create')
@click.option('--company-id', type=int, prompt=True, help='Company ID')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', 'role_name', default=None, help='Role name')
@with_appcontext
def create_user_command(company_id, username, email, password, role_name):
    """Create a user in a company."""
    role_id = None
    if role_name:
        role = db.session.query(Role).filter_by(company_id=company_id, name=role_name).first()
        if not role:
            click.echo(f"FAIL Role {role_name!r} not found in company {company_id}")
            return
        role_id = role.id

    try:
        user = create_user(company_id, username, email, password, role_id=role_id)
    except (ValueError, PasswordValidationError) as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        return

    click.echo(f"PASS Created user {user.username} (ID: {user.id})")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(workflows_group)
    app.cli.add_command(users_group)
