# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/labflow/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init --tenant "Smile Lab" --code SMILE
#   Idempotent bootstrap: creates tables and a first tenant.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Tenant management (MULTI-TENANT):
# - python -m flask tenants list
# - python -m flask tenants create --name "Smile Lab" --code SMILE
#
# Client directory:
# - python -m flask clients list --tenant-id 1
# - python -m flask clients create --tenant-id 1 --name "Dr. Ana Costa" --email ana@clinic.test
#
# Catalog:
# - python -m flask catalog list [--category FIXED]
#
# Case inspection:
# - python -m flask cases list --tenant-id 1 [--status IN_PRODUCTION]
# - python -m flask cases kanban --tenant-id 1
# - python -m flask cases audit --tenant-id 1 --case-id 7

import click
from flask.cli import with_appcontext

from .errors import WorkflowError
from .extensions import db
from .models import Tenant, Client
from .services import case_service, catalog_service, client_service, kanban_service, tenant_service
from .validation import validate_case_filters


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--tenant', 'tenant_name', default='Default Lab', help='Tenant name')
@click.option('--code', 'tenant_code', default='DEFAULT', help='Tenant code')
@with_appcontext
def init_system(tenant_name, tenant_code):
    """Create tables and a first tenant (if none exists)."""
    click.echo("START Initializing labflow...")
    db.create_all()

    tenant = db.session.query(Tenant).first()
    if not tenant:
        tenant = tenant_service.create_tenant(tenant_name, tenant_code)
        click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")
    else:
        click.echo(f"PASS Using existing tenant: {tenant.name} (ID: {tenant.id})")


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
    click.echo("BUILD Creating all tables...")
    db.create_all()
    click.echo("PASS Database reset complete")


# =============================================================================
# TENANT MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('tenants')
def tenants_group():
    """Tenant (lab) management commands."""


@tenants_group.command('list')
@with_appcontext
def list_tenants():
    """List all tenants."""
    tenants = db.session.query(Tenant).order_by(Tenant.id).all()

    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Clients'}")
    click.echo("="*70)

    for tenant in tenants:
        client_count = db.session.query(Client).filter_by(tenant_id=tenant.id).count()
        active_str = "Yes" if tenant.is_active else "No"
        click.echo(f"{tenant.id:<5} {tenant.name:<30} {tenant.code or '-':<15} {active_str:<8} {client_count}")

    click.echo("="*70 + "\n")


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_tenant_cli(name, code):
    """Create a new tenant."""
    existing = db.session.query(Tenant).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Tenant with code '{code}' already exists")
        return

    tenant = tenant_service.create_tenant(name, code)
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code})")


# =============================================================================
# CLIENT DIRECTORY COMMANDS
# =============================================================================

@click.group('clients')
def clients_group():
    """Client (dentist/clinic) directory commands."""


@clients_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive clients')
@with_appcontext
def list_clients_cli(tenant_id, include_inactive):
    """List clients of a tenant."""
    clients = client_service.list_clients(tenant_id, include_inactive=include_inactive)
    if not clients:
        click.echo("No clients found.")
        return

    for client in clients:
        active_str = "" if client.is_active else " (inactive)"
        click.echo(f"{client.id:<5} {client.name:<40} {client.email or '-'}{active_str}")


@clients_group.command('create')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--name', required=True, help='Client name')
@click.option('--email', default=None, help='Contact email')
@click.option('--phone', default=None, help='Contact phone')
@with_appcontext
def create_client_cli(tenant_id, name, email, phone):
    """Create a client."""
    try:
        tenant_service.get_active_tenant(tenant_id)
        client = client_service.create_client(tenant_id, name, email=email, phone=phone)
    except WorkflowError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created client: {client.name} (ID: {client.id})")


# =============================================================================
# CATALOG COMMANDS
# =============================================================================

@click.group('catalog')
def catalog_group():
    """Prosthesis catalog commands."""


@catalog_group.command('list')
@click.option('--category', default=None, help='FIXED, REMOVABLE, IMPLANT, ORTHODONTIC or OTHER')
@with_appcontext
def list_catalog(category):
    """List prosthesis types with stage count and lead time."""
    try:
        types = catalog_service.list_types(category)
    except WorkflowError as e:
        click.echo(f"FAIL {e}")
        return

    for t in types:
        click.echo(
            f"{t.id:<28} {t.name:<40} {t.category:<12} "
            f"{len(t.stage_template)} stages, {t.estimated_lead_days} business days"
        )


# =============================================================================
# CASE INSPECTION COMMANDS
# =============================================================================

@click.group('cases')
def cases_group():
    """Case inspection commands."""


@cases_group.command('list')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--status', default=None, help='Filter by status')
@click.option('--search', default=None, help='Patient name or case number')
@click.option('--limit', type=click.IntRange(1, 100), default=20, help='Max rows')
@with_appcontext
def list_cases_cli(tenant_id, status, search, limit):
    """List recent cases."""
    try:
        filters = validate_case_filters({"status": status, "search": search})
    except WorkflowError as e:
        click.echo(f"FAIL {e}")
        return

    result = case_service.list_cases(tenant_id, filters, page=1, per_page=limit)
    click.echo(f"{result['total']} case(s)")
    for case in result["items"]:
        sla = case.sla_date.date().isoformat() if case.sla_date else "-"
        click.echo(
            f"#{case.case_number:<6} {case.status:<20} {case.priority:<9} "
            f"SLA {sla:<11} {case.patient_name} ({case.prosthesis_type_id})"
        )


@cases_group.command('kanban')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@with_appcontext
def kanban_cli(tenant_id):
    """Print the board, one column per active status."""
    board = kanban_service.get_board(tenant_id)
    for column in board["columns"]:
        click.echo(f"\n== {column['status']} ({column['count']})")
        for card in column["cases"]:
            click.echo(
                f"  #{card['case_number']:<6} {card['priority']:<9} "
                f"{card['stages_done']}/{card['stages_total']} {card['patient_name']}"
            )
    if board["truncated"]:
        click.echo("\nWARN Board truncated (KANBAN_MAX_CASES reached)")


@cases_group.command('audit')
@click.option('--tenant-id', type=int, required=True, help='Tenant ID')
@click.option('--case-id', type=int, required=True, help='Case ID')
@click.option('--limit', type=int, default=50, help='Max entries')
@with_appcontext
def case_audit_cli(tenant_id, case_id, limit):
    """Show the audit trail of a case, newest first."""
    try:
        entries = case_service.get_case_audit(tenant_id, case_id, limit=limit)
    except WorkflowError as e:
        click.echo(f"FAIL {e}")
        return

    for entry in entries:
        status = (entry.after or {}).get("status", "-")
        click.echo(
            f"{entry.occurred_at:%Y-%m-%d %H:%M:%S} {entry.action:<16} "
            f"{entry.entity}#{entry.entity_id:<6} -> {status:<20} {entry.actor_id or ''}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(tenants_group)  # Multi-tenant management
    app.cli.add_command(clients_group)
    app.cli.add_command(catalog_group)
    app.cli.add_command(cases_group)
