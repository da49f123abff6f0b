# Overview: Append-only stock ledger writes, reads and replay.

from __future__ import annotations

from sqlalchemy import case, func

from ..extensions import db
from ..errors import ValidationError
from ..models import Product, StockMovement
from ..models.stock import (
    MOVEMENT_IN,
    MOVEMENT_TYPES,
    MOVEMENT_REASONS,
    REF_TYPES,
)
"""
Stock Ledger Invariants (authoritative)

- Append-only: movements are inserted, never updated or deleted
  (enforced again by ORM listeners on StockMovement).
- Movements are written inside the same DB transaction as the product
  update they explain; append_movement() flushes but never commits.
- qty is strictly positive; type carries the direction.
- Replaying a product's movements (IN minus OUT) yields its stock. Opening
  balances are themselves recorded as ADJUSTMENT movements.
"""


def append_movement(
    *,
    company_id: int,
    product_id: int,
    type: str,
    reason: str,
    ref_type: str,
    ref_id: int | None,
    qty: int,
    unit_cost_cents: int | None = None,
    notes: str | None = None,
) -> StockMovement:
    """
    Append one ledger row.

    - No product mutation here; callers update Product in the same transaction.
    - No deletes/updates of existing rows.
    """
    if type not in MOVEMENT_TYPES:
        raise ValidationError(f"Invalid movement type: {type}")
    if reason not in MOVEMENT_REASONS:
        raise ValidationError(f"Invalid movement reason: {reason}")
    if ref_type not in REF_TYPES:
        raise ValidationError(f"Invalid movement ref_type: {ref_type}")
    if qty is None or qty <= 0:
        raise ValidationError("Movement qty must be positive")

    mv = StockMovement(
        company_id=company_id,
        product_id=product_id,
        type=type,
        reason=reason,
        ref_type=ref_type,
        ref_id=ref_id,
        qty=qty,
        unit_cost_cents=unit_cost_cents,
        notes=notes,
    )
    db.session.add(mv)
    db.session.flush()  # assigns mv.id without committing
    return mv


def list_movements_for_ref(company_id: int, ref_type: str, ref_id: int) -> list[StockMovement]:
    """All movements of one source document, oldest first."""
    return (
        db.session.query(StockMovement)
        .filter(
            StockMovement.company_id == company_id,
            StockMovement.ref_type == ref_type,
            StockMovement.ref_id == ref_id,
        )
        .order_by(StockMovement.id.asc())
        .all()
    )


def list_movements_for_product(company_id: int, product_id: int, *, limit: int = 200) -> list[StockMovement]:
    """Most recent movements of a product first."""
    return (
        db.session.query(StockMovement)
        .filter(
            StockMovement.company_id == company_id,
            StockMovement.product_id == product_id,
        )
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
        .limit(limit)
        .all()
    )


def _signed_qty_expr():
    return case(
        (StockMovement.type == MOVEMENT_IN, StockMovement.qty),
        else_=-StockMovement.qty,
    )


def ledger_quantity(company_id: int, product_id: int) -> int:
    """Replay the ledger for one product: sum(IN) - sum(OUT)."""
    total = (
        db.session.query(func.coalesce(func.sum(_signed_qty_expr()), 0))
        .filter(
            StockMovement.company_id == company_id,
            StockMovement.product_id == product_id,
        )
        .scalar()
    )
    return int(total or 0)


def reconcile_stock(company_id: int) -> list[dict]:
    """
    Compare stored product stock with the replayed ledger.

    Returns one row per product whose stock differs from its ledger
    quantity; an empty list means the catalog and the ledger agree.
    """
    replayed = dict(
        db.session.query(StockMovement.product_id, func.sum(_signed_qty_expr()))
        .filter(StockMovement.company_id == company_id)
        .group_by(StockMovement.product_id)
        .all()
    )

    mismatches = []
    products = (
        db.session.query(Product)
        .filter(Product.company_id == company_id)
        .order_by(Product.id.asc())
        .all()
    )
    for product in products:
        ledger_qty = int(replayed.get(product.id) or 0)
        if ledger_qty != product.stock:
            mismatches.append({
                "product_id": product.id,
                "sku": product.sku,
                "stock": product.stock,
                "ledger_quantity": ledger_qty,
                "difference": product.stock - ledger_qty,
            })
    return mismatches
