# Overview: Flask CLI command groups for bootstrap, tenant management and stock checks.

# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init [--company "Company Name"] [--code DEFAULT]
#   Idempotent bootstrap: creates the schema and a default company.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Company management (MULTI-TENANT):
# - python -m flask companies list
# - python -m flask companies create --name "Acme Atacado" --code "ACME"
#
# Stock:
# - python -m flask stock reconcile --company-id 1
#   Compare product stock with the replayed stock ledger (exit code 1 on drift).

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Company, Product, PurchaseOrder
from .services.stock_ledger import reconcile_stock


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--company', 'company_name', default='Default Company', help='Company name')
@click.option('--code', 'company_code', default='DEFAULT', help='Company code')
@with_appcontext
def init_system(company_name, company_code):
    """
    Initialize the back-office database and a default company.

    Safe to run repeatedly: existing tables and companies are kept.
    """
    click.echo("START Initializing back-office...")

    db.create_all()
    click.echo("PASS Schema ready")

    company = db.session.query(Company).first()
    if not company:
        company = Company(name=company_name, code=company_code, is_active=True)
        db.session.add(company)
        db.session.commit()
        click.echo(f"PASS Created default company: {company.name} (ID: {company.id}, Code: {company.code})")
    else:
        click.echo(f"PASS Using existing company: {company.name} (ID: {company.id})")

    click.echo("\nDONE Send X-Company-Id: %s with API requests." % company.id)


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA, including the stock ledger!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('companies')
def companies_group():
    """Company (tenant) management commands."""


@companies_group.command('list')
@with_appcontext
def list_companies():
    """List all companies."""
    companies = db.session.query(Company).order_by(Company.id.asc()).all()

    if not companies:
        click.echo("No companies found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<15} {'Active':<8} {'Products':<10} {'Purchases'}")
    click.echo("="*80)

    for company in companies:
        product_count = db.session.query(Product).filter_by(company_id=company.id).count()
        order_count = db.session.query(PurchaseOrder).filter_by(company_id=company.id).count()
        active_str = "Yes" if company.is_active else "No"

        click.echo(
            f"{company.id:<5} {company.name:<30} {company.code or '-':<15} "
            f"{active_str:<8} {product_count:<10} {order_count}"
        )

    click.echo("="*80 + "\n")


@companies_group.command('create')
@click.option('--name', required=True, help='Company name')
@click.option('--code', required=True, help='Short code (unique)')
@with_appcontext
def create_company_cli(name, code):
    """Create a new company (tenant)."""
    existing = db.session.query(Company).filter_by(code=code).first()
    if existing:
        click.echo(f"FAIL Company with code '{code}' already exists")
        return

    company = Company(name=name, code=code, is_active=True)
    db.session.add(company)
    db.session.commit()

    click.echo(f"PASS Created company: {company.name} (ID: {company.id}, Code: {company.code})")


@click.group('stock')
def stock_group():
    """Stock ledger inspection commands."""


@stock_group.command('reconcile')
@click.option('--company-id', type=int, required=True, help='Company ID')
@with_appcontext
def reconcile_cli(company_id):
    """Report products whose stock differs from their ledger replay."""
    company = db.session.get(Company, company_id)
    if company is None:
        click.echo(f"FAIL Company {company_id} not found")
        raise SystemExit(1)

    mismatches = reconcile_stock(company_id)
    if not mismatches:
        click.echo(f"PASS Stock matches ledger for {company.name}")
        return

    click.echo(f"WARN {len(mismatches)} product(s) out of balance for {company.name}:")
    for row in mismatches:
        click.echo(
            f"  product {row['product_id']:<6} {row['sku']:<20} "
            f"stock={row['stock']:<8} ledger={row['ledger_quantity']:<8} diff={row['difference']}"
        )
    raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(companies_group)
    app.cli.add_command(stock_group)
