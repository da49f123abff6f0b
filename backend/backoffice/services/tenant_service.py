"""
Multi-Tenant Service: Company Validation and Scoped Lookups

WHY: Every Product, Supplier and PurchaseOrder read or write is scoped by a
company id passed explicitly by the caller. Cross-tenant references must be
rejected the same way as missing rows so a caller cannot discover another
company's ids.

SECURITY INVARIANTS:
1. Every tenant route resolves the company before touching data
2. Ids from client input are looked up together with company_id
3. A row owned by another company is reported as "not found"
4. Cross-tenant attempts are logged at WARNING

USAGE:
    from backoffice.services.tenant_service import require_company, get_product_in_company

    company = require_company(company_id)
    product = get_product_in_company(company_id, product_id, lock=True)
"""

from __future__ import annotations

from flask import current_app, has_request_context, request

from ..extensions import db
from ..errors import NotFoundError, TenantAccessError
from ..models import Company, Product, Supplier, PurchaseOrder
from .concurrency import lock_for_update


def require_company(company_id: int | None) -> Company:
    """
    Validate that a company exists and is active.

    Raises:
        TenantAccessError if the id is missing, unknown or inactive
    """
    if not company_id:
        raise TenantAccessError("Company context not established")

    company = db.session.query(Company).filter_by(id=company_id).first()
    if not company:
        raise TenantAccessError("Company not found")
    if not company.is_active:
        raise TenantAccessError("Company is not active")
    return company


def _scoped_get(model, company_id: int, row_id: int, *, lock: bool = False):
    row = db.session.query(model).filter_by(id=row_id).first()
    if row is None:
        return None
    if row.company_id != company_id:
        _log_cross_tenant_attempt(
            f"{model.__name__} {row_id} belongs to company {row.company_id}, not {company_id}",
            company_id=company_id,
        )
        return None
    if lock:
        # Re-read under lock so the values used downstream are the locked ones
        row = lock_for_update(
            db.session.query(model).filter_by(id=row_id)
        ).populate_existing().first()
    return row


def get_product_in_company(company_id: int, product_id: int, *, lock: bool = False) -> Product:
    product = _scoped_get(Product, company_id, product_id, lock=lock)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found", product_id=product_id)
    return product


def get_supplier_in_company(company_id: int, supplier_id: int) -> Supplier:
    supplier = _scoped_get(Supplier, company_id, supplier_id)
    if supplier is None:
        raise NotFoundError(f"Supplier {supplier_id} not found", supplier_id=supplier_id)
    return supplier


def get_purchase_order_in_company(company_id: int, order_id: int, *, lock: bool = False) -> PurchaseOrder:
    order = _scoped_get(PurchaseOrder, company_id, order_id, lock=lock)
    if order is None:
        raise NotFoundError(f"Purchase order {order_id} not found", purchase_order_id=order_id)
    return order


def _log_cross_tenant_attempt(reason: str, company_id: int | None = None) -> None:
    """
    Log a cross-tenant access attempt.

    SECURITY: These lines should be monitored and alerted on.
    """
    path = request.path if has_request_context() else None
    current_app.logger.warning(
        "CROSS_TENANT_ACCESS_DENIED company_id=%s path=%s reason=%s",
        company_id,
        path,
        reason,
    )
