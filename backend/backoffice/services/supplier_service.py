# Overview: Service-layer operations for suppliers; encapsulates business logic and database work.

"""
Supplier Service

MULTI-TENANT: Suppliers are scoped to companies via company_id. A purchase
order may only name a supplier of its own company.

DESIGN:
- Suppliers are never hard-deleted; purchase orders keep referencing them.
  Deactivation hides them from new orders.
- tax_id (CNPJ) is stored digits-only.
"""

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Supplier
from .tenant_service import require_company, get_supplier_in_company

SUPPLIER_MUTABLE_FIELDS = {
    "name",
    "trading_name",
    "tax_id",
    "email",
    "phone",
    "contact",
    "payment_terms",
    "lead_time_days",
    "is_active",
    "notes",
}


def _normalize(patch: dict) -> dict:
    patch = dict(patch)
    if "name" in patch and patch["name"] is not None:
        name = patch["name"].strip()
        if not name:
            raise ValidationError("Supplier name cannot be empty")
        patch["name"] = name
    if patch.get("tax_id"):
        digits = "".join(ch for ch in patch["tax_id"] if ch.isdigit())
        patch["tax_id"] = digits or None
    if patch.get("lead_time_days") is not None and patch["lead_time_days"] < 0:
        raise ValidationError("lead_time_days must be >= 0")
    return patch


def _ensure_tax_id_free(company_id: int, tax_id: str | None, *, exclude_id: int | None = None) -> None:
    if not tax_id:
        return
    query = db.session.query(Supplier).filter(
        Supplier.company_id == company_id,
        Supplier.tax_id == tax_id,
    )
    if exclude_id is not None:
        query = query.filter(Supplier.id != exclude_id)
    if query.first():
        raise ConflictError(f"Supplier with tax id '{tax_id}' already exists in this company", tax_id=tax_id)


def create_supplier(*, company_id: int, patch: dict) -> Supplier:
    """
    Create a new supplier.

    Raises:
        TenantAccessError: company missing/inactive
        ValidationError: name missing
        ConflictError: tax id already registered in the company
    """
    require_company(company_id)

    patch = _normalize(patch)
    if not patch.get("name"):
        raise ValidationError("Supplier name is required")
    _ensure_tax_id_free(company_id, patch.get("tax_id"))

    supplier = Supplier(company_id=company_id, is_active=True)
    for k, v in patch.items():
        if k in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, k, v)

    db.session.add(supplier)
    db.session.commit()
    return supplier


def update_supplier(*, company_id: int, supplier_id: int, patch: dict) -> Supplier:
    supplier = get_supplier_in_company(company_id, supplier_id)

    patch = _normalize(patch)
    if "tax_id" in patch:
        _ensure_tax_id_free(company_id, patch["tax_id"], exclude_id=supplier.id)

    for k, v in patch.items():
        if k in SUPPLIER_MUTABLE_FIELDS:
            setattr(supplier, k, v)

    db.session.commit()
    return supplier


def get_supplier(company_id: int, supplier_id: int) -> Supplier:
    return get_supplier_in_company(company_id, supplier_id)


def list_suppliers(
    company_id: int,
    *,
    include_inactive: bool = False,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Supplier], int]:
    """
    List suppliers for a company.

    Args:
        include_inactive: If True, include inactive suppliers
        search: Optional search term for name, trading name or tax id

    Returns:
        Tuple of (list of Supplier objects, total count)
    """
    query = db.session.query(Supplier).filter(Supplier.company_id == company_id)

    if not include_inactive:
        query = query.filter(Supplier.is_active.is_(True))

    if search:
        search_term = f"%{search}%"
        query = query.filter(
            db.or_(
                Supplier.name.ilike(search_term),
                Supplier.trading_name.ilike(search_term),
                Supplier.tax_id.ilike(search_term),
            )
        )

    total = query.count()

    query = query.order_by(Supplier.name.asc(), Supplier.id.asc())
    query = query.offset(offset).limit(limit)

    return query.all(), total


def deactivate_supplier(*, company_id: int, supplier_id: int) -> Supplier:
    """
    Deactivate a supplier (soft delete).

    Raises:
        NotFoundError: supplier not in company
        ValidationError: supplier already inactive
    """
    supplier = get_supplier_in_company(company_id, supplier_id)
    if not supplier.is_active:
        raise ValidationError("Supplier is already inactive")

    supplier.is_active = False
    db.session.commit()
    return supplier
