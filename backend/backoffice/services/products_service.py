"""
Products Service with Multi-Tenant Support

MULTI-TENANT: All product operations are company-scoped.
- SKUs are unique within a company
- supplier_id must reference a supplier of the same company

STOCK: stock is never written through a patch. Opening stock is accepted on
create and recorded as an ADJUSTMENT movement so the ledger replays to the
stored value; after that only postings, reversals, adjustments and sales
move it.
"""
from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import ConflictError, ValidationError
from ..models import Product
from ..models.stock import MOVEMENT_IN, REASON_ADJUSTMENT, REF_MANUAL
from ..validation import check_stock_ceiling
from .concurrency import run_with_retry
from .stock_ledger import append_movement, list_movements_for_product
from .tenant_service import require_company, get_product_in_company, get_supplier_in_company

PRODUCT_MUTABLE_FIELDS = {
    "sku",
    "name",
    "brand",
    "description",
    "cost_cents",
    "price_cents",
    "supplier_id",
    "is_active",
}


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def _ensure_sku_free(company_id: int, sku: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product).filter(Product.company_id == company_id, Product.sku == sku)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError("SKU already exists for this company.", sku=sku)


def list_products(
    company_id: int,
    *,
    search: str | None = None,
    active: bool | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Product], int]:
    """
    Company-scoped product listing, ordered by name.

    Args:
        search: Case-insensitive match on SKU or name
        active: Filter on is_active when given

    Returns:
        Tuple of (products, total count)
    """
    query = db.session.query(Product).filter(Product.company_id == company_id)

    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(Product.sku.ilike(like), Product.name.ilike(like)))
    if active is not None:
        query = query.filter(Product.is_active.is_(active))

    total = query.count()
    products = (
        query.order_by(Product.name.asc(), Product.id.asc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return products, total


def get_product(company_id: int, product_id: int) -> Product:
    return get_product_in_company(company_id, product_id)


def create_product(*, company_id: int, patch: dict) -> Product:
    """
    Create product using a validated patch dict.

    patch may carry an opening "stock"; it is booked as an IN / ADJUSTMENT
    movement valued at the product cost.

    Raises:
        TenantAccessError: company missing/inactive
        ConflictError: SKU already exists in the company
        NotFoundError: supplier not in company
    """
    sku = patch.get("sku")
    if not sku:
        raise ValidationError("sku is required")

    opening_stock = patch.get("stock") or 0
    if opening_stock < 0:
        raise ValidationError("stock must be >= 0")
    check_stock_ceiling(sku, 0, opening_stock)

    def _op():
        require_company(company_id)
        _ensure_sku_free(company_id, sku)
        if patch.get("supplier_id") is not None:
            get_supplier_in_company(company_id, patch["supplier_id"])

        p = Product(company_id=company_id, stock=0)
        apply_product_patch(p, patch)

        db.session.add(p)
        db.session.flush()  # ensure p.id exists before ledger append

        if opening_stock:
            append_movement(
                company_id=company_id,
                product_id=p.id,
                type=MOVEMENT_IN,
                reason=REASON_ADJUSTMENT,
                ref_type=REF_MANUAL,
                ref_id=None,
                qty=opening_stock,
                unit_cost_cents=p.cost_cents or 0,
                notes="Opening balance",
            )
            p.stock = opening_stock

        db.session.commit()
        return p

    return run_with_retry(_op)


def update_product(*, company_id: int, product_id: int, patch: dict) -> Product:
    """
    Update catalog fields of a product.

    Raises:
        NotFoundError: product (or new supplier) not in company
        ConflictError: new SKU already exists in the company
        ValidationError: patch tries to set stock
    """
    if "stock" in patch:
        raise ValidationError("stock cannot be edited directly; use a stock adjustment")

    def _op():
        p = get_product_in_company(company_id, product_id, lock=True)

        if "sku" in patch and patch["sku"] != p.sku:
            _ensure_sku_free(company_id, patch["sku"], exclude_id=p.id)
        if patch.get("supplier_id") is not None:
            get_supplier_in_company(company_id, patch["supplier_id"])

        apply_product_patch(p, patch)
        db.session.commit()
        return p

    return run_with_retry(_op)


def list_product_movements(company_id: int, product_id: int, *, limit: int = 200) -> list:
    product = get_product_in_company(company_id, product_id)
    return list_movements_for_product(company_id, product.id, limit=limit)
