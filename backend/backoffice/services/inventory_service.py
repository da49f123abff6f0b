# Overview: Manual stock adjustments and sale deductions; every change goes through the ledger.

from __future__ import annotations

from ..extensions import db
from ..errors import InsufficientStockError
from ..models import StockMovement
from ..models.stock import (
    MOVEMENT_IN,
    MOVEMENT_OUT,
    REASON_ADJUSTMENT,
    REASON_SALE,
    REF_MANUAL,
    REF_ORDER,
)
from ..validation import check_stock_ceiling, enforce_rules_stock_adjust, enforce_rules_stock_sale
from .concurrency import run_with_retry
from .stock_ledger import append_movement
from .tenant_service import require_company, get_product_in_company
"""
Inventory Invariants (authoritative)

- Product.stock is never negative; a movement that would make it negative
  fails with InsufficientStockError and nothing is written.
- ADJUSTMENT changes stock but never cost or price.
- SALE decreases stock and records the current weighted-average cost as the
  movement's cost basis.
- Each change appends exactly one StockMovement in the same transaction as
  the product update.
"""


def adjust_stock(
    *,
    company_id: int,
    product_id: int,
    quantity_delta: int,
    notes: str | None = None,
) -> StockMovement:
    """
    Apply a manual signed adjustment (corrections, shrink, found stock).

    Raises:
        NotFoundError: product not in company
        InsufficientStockError: adjustment would make stock negative
    """
    enforce_rules_stock_adjust(quantity_delta)

    def _op():
        require_company(company_id)
        product = get_product_in_company(company_id, product_id, lock=True)

        if quantity_delta > 0:
            check_stock_ceiling(product.sku, product.stock, quantity_delta)

        new_stock = product.stock + quantity_delta
        if new_stock < 0:
            raise InsufficientStockError(
                f"Adjustment would make stock of {product.sku} negative",
                product_id=product.id,
                stock=product.stock,
                requested=-quantity_delta,
            )

        mv = append_movement(
            company_id=company_id,
            product_id=product.id,
            type=MOVEMENT_IN if quantity_delta > 0 else MOVEMENT_OUT,
            reason=REASON_ADJUSTMENT,
            ref_type=REF_MANUAL,
            ref_id=None,
            qty=abs(quantity_delta),
            unit_cost_cents=product.cost_cents,
            notes=notes,
        )
        product.stock = new_stock

        db.session.commit()
        return mv

    return run_with_retry(_op)


def record_sale(
    *,
    company_id: int,
    product_id: int,
    quantity: int,
    order_id: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Deduct stock for a sales order line.

    Raises:
        NotFoundError: product not in company
        InsufficientStockError: not enough stock on hand
    """
    enforce_rules_stock_sale(quantity)

    def _op():
        require_company(company_id)
        product = get_product_in_company(company_id, product_id, lock=True)

        if product.stock - quantity < 0:
            raise InsufficientStockError(
                f"Not enough stock of {product.sku} to sell {quantity}",
                product_id=product.id,
                stock=product.stock,
                requested=quantity,
            )

        mv = append_movement(
            company_id=company_id,
            product_id=product.id,
            type=MOVEMENT_OUT,
            reason=REASON_SALE,
            ref_type=REF_ORDER,
            ref_id=order_id,
            qty=quantity,
            unit_cost_cents=product.cost_cents,
            notes=notes,
        )
        product.stock = product.stock - quantity

        db.session.commit()
        return mv

    return run_with_retry(_op)
