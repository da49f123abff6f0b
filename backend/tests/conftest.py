"""
Pytest fixtures for back-office backend tests.

Provides test database setup, tenant fixtures, catalog fixtures and a test
client with tenant headers.
"""

import pytest
from backoffice import create_app
from backoffice.extensions import db
from backoffice.models import Company, Supplier
from backoffice.services.products_service import create_product


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'STOCK_RETRY_ATTEMPTS': 3,
        'STOCK_RETRY_BACKOFF': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema (Core deletes bypass the ledger's ORM guards)
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def company_a(db_session):
    """Create Company A (first tenant)."""
    company = Company(name="Company A - Acme Atacado", code="ACME", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def company_b(db_session):
    """Create Company B (second tenant)."""
    company = Company(name="Company B - Beta Distribuidora", code="BETA", is_active=True)
    db_session.add(company)
    db_session.commit()
    return company


@pytest.fixture(scope='function')
def supplier_a(db_session, company_a):
    supplier = Supplier(company_id=company_a.id, name="Fornecedor A", tax_id="12345678000195")
    db_session.add(supplier)
    db_session.commit()
    return supplier


def make_product(company, sku, *, stock=0, cost_cents=0, price_cents=0, name=None):
    """Create a product through the service so opening stock is on the ledger."""
    patch = {
        "sku": sku,
        "name": name or f"Product {sku}",
        "cost_cents": cost_cents,
        "price_cents": price_cents,
    }
    if stock:
        patch["stock"] = stock
    return create_product(company_id=company.id, patch=patch)


@pytest.fixture(scope='function')
def product_a(db_session, company_a):
    """10 units on hand at 5.00, selling at 9.00."""
    return make_product(company_a, "PROD-A-001", stock=10, cost_cents=500, price_cents=900)


@pytest.fixture(scope='function')
def empty_product_a(db_session, company_a):
    """No stock, no cost."""
    return make_product(company_a, "PROD-A-002")


@pytest.fixture(scope='function')
def product_b(db_session, company_b):
    """Product owned by Company B."""
    return make_product(company_b, "PROD-B-001", stock=4, cost_cents=1000, price_cents=2000)


def company_headers(company, *, role: str | None = "admin", user: str | None = "user-1") -> dict:
    """Headers the upstream gateway would forward for an authenticated caller."""
    headers = {'X-Company-Id': str(company.id)}
    if role is not None:
        headers['X-User-Role'] = role
    if user is not None:
        headers['X-User-Id'] = user
    return headers
