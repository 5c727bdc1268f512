# Overview: Flask CLI command groups for bootstrap, ledger checks, and maintenance.

# backend/shopledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--org "Org Name"] [--org-code ACME] [--location "Main Shop"]
#   Idempotent bootstrap: creates the schema, a default organization and location.
#
# Ledger checks:
# - python -m flask ledger verify [--org-id 1]
#   Re-walk every customer credit chain and every drawer session chain.
#   Exit code 1 when any chain is broken.
#
# Invoices:
# - python -m flask invoices mark-overdue --org-id 1 [--as-of 2026-02-01]
#   Flag SENT/PARTIAL invoices past their due date as OVERDUE.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import CashDrawer, Customer, Location, Organization
from .services.credit_service import mark_overdue_invoices
from .services.ledger_service import verify_customer_chain, verify_drawer_chain
from .time_utils import parse_iso_date


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--org', 'org_name', default='Default Organization', help='Organization name')
@click.option('--org-code', default='DEFAULT', help='Organization code')
@click.option('--location', 'location_name', default='Main Shop', help='Default location name')
@with_appcontext
def init_system(org_name, org_code, location_name):
    """
    Create tables (if missing), a default organization and a default location.

    MULTI-TENANT: The organization is the tenant root; everything else is
    scoped to it.
    """
    click.echo("START Initializing shopledger...")
    db.create_all()

    org = db.session.query(Organization).filter_by(code=org_code).first()
    if not org:
        org = Organization(name=org_name, code=org_code, is_active=True)
        db.session.add(org)
        db.session.commit()
        click.echo(f"PASS Created organization: {org.name} (ID: {org.id}, Code: {org.code})")
    else:
        click.echo(f"PASS Using existing organization: {org.name} (ID: {org.id})")

    location = db.session.query(Location).filter_by(org_id=org.id).first()
    if not location:
        location = Location(org_id=org.id, name=location_name, code="MAIN")
        db.session.add(location)
        db.session.commit()
        click.echo(f"PASS Created location: {location.name} (ID: {location.id})")
    else:
        click.echo(f"PASS Using existing location: {location.name} (ID: {location.id})")

    click.echo("DONE shopledger initialized")


@click.group('ledger')
def ledger_group():
    """Ledger integrity commands."""


@ledger_group.command('verify')
@click.option('--org-id', type=int, default=None, help='Limit to one organization')
@with_appcontext
def verify_ledgers(org_id):
    """Check balance_before/after chaining for customers and drawer sessions."""
    customers = db.session.query(Customer)
    drawers = db.session.query(CashDrawer)
    if org_id is not None:
        customers = customers.filter_by(org_id=org_id)
        drawers = drawers.filter_by(org_id=org_id)

    broken = 0
    checked = 0
    for customer in customers.order_by(Customer.id).all():
        report = verify_customer_chain(customer.id)
        checked += 1
        if not report.ok:
            broken += 1
            click.echo(f"FAIL customer {customer.id} ({customer.name}):")
            for problem in report.problems:
                click.echo(f"     {problem}")

    for drawer in drawers.order_by(CashDrawer.id).all():
        for report in verify_drawer_chain(drawer.id):
            checked += 1
            if not report.ok:
                broken += 1
                click.echo(f"FAIL drawer {drawer.id} session {report.entity_id}:")
                for problem in report.problems:
                    click.echo(f"     {problem}")

    click.echo(f"Checked {checked} chains, {broken} broken")
    if broken:
        raise SystemExit(1)


@click.group('invoices')
def invoices_group():
    """Invoice maintenance commands."""


@invoices_group.command('mark-overdue')
@click.option('--org-id', type=int, required=True)
@click.option('--as-of', default=None, help='YYYY-MM-DD (default: today)')
@with_appcontext
def mark_overdue(org_id, as_of):
    """Flag open invoices past their due date as OVERDUE."""
    try:
        as_of_date = parse_iso_date(as_of)
    except ValueError:
        raise click.BadParameter("as-of must be YYYY-MM-DD")
    count = mark_overdue_invoices(org_id=org_id, as_of=as_of_date)
    click.echo(f"PASS Marked {count} invoice(s) overdue")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(ledger_group)
    app.cli.add_command(invoices_group)
