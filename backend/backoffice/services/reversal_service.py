# Overview: Compensating reversal of a posted purchase order.

"""
Reversal Invariants (authoritative)

- Only STOCK_POSTED orders can be reversed.
- Every line appends one OUT / PURCHASE_REVERSE movement; the IN rows
  written by the posting stay untouched.
- Only stock is restored. Cost and price keep their post-posting values:
  later receipts and sales have already been valued at that cost.
- If any product would go below zero the whole reversal fails and the
  order stays STOCK_POSTED.
- The order returns to DRAFT; posted_at is kept, reversed_at is stamped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from ..extensions import db
from ..errors import InsufficientStockError, InvalidStateError
from ..models.stock import MOVEMENT_OUT, REASON_PURCHASE_REVERSE, REF_PURCHASE_ORDER
from .concurrency import run_with_retry
from .posting_service import lock_order_products
from .purchase_service import STATUS_DRAFT, STATUS_STOCK_POSTED
from .stock_ledger import append_movement
from .tenant_service import get_purchase_order_in_company
from backoffice.time_utils import utcnow, to_utc_z


@dataclass
class ReversalResult:
    purchase_order_id: int
    status: str
    reversed_at: datetime
    movements_written: int
    restored_products: list[tuple[int, int]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "purchaseOrderId": self.purchase_order_id,
            "status": self.status,
            "reversedAt": to_utc_z(self.reversed_at),
            "movementsWritten": self.movements_written,
            "restoredProducts": [
                {"productId": pid, "newStock": stock} for pid, stock in self.restored_products
            ],
        }


def reverse_stock(company_id: int, purchase_order_id: int, *, actor: str | None = None) -> ReversalResult:
    """
    Undo the stock effect of a posted purchase order.

    Raises:
        NotFoundError: order or one of its products not in company
        InvalidStateError: order is not STOCK_POSTED
        InsufficientStockError: a product no longer has the units to give back
        TransactionConflictError: concurrent modification, retries exhausted
    """
    def _op():
        order = get_purchase_order_in_company(company_id, purchase_order_id, lock=True)

        if order.status != STATUS_STOCK_POSTED:
            raise InvalidStateError(
                f"Purchase order {order.number} is not posted, nothing to reverse",
                status=order.status,
            )

        products = lock_order_products(company_id, order.items)

        movements = 0
        for item in order.items:
            product = products[item.product_id]

            new_stock = product.stock - item.qty
            if new_stock < 0:
                raise InsufficientStockError(
                    f"Cannot reverse purchase order {order.number}: "
                    f"product {product.sku} has {product.stock} units, {item.qty} needed",
                    product_id=product.id,
                    stock=product.stock,
                    requested=item.qty,
                )

            append_movement(
                company_id=company_id,
                product_id=product.id,
                type=MOVEMENT_OUT,
                reason=REASON_PURCHASE_REVERSE,
                ref_type=REF_PURCHASE_ORDER,
                ref_id=order.id,
                qty=item.qty,
                unit_cost_cents=item.unit_cost_cents,
                notes=f"Reversal of purchase {order.number}",
            )
            movements += 1

            product.stock = new_stock

        now = utcnow()
        order.status = STATUS_DRAFT
        order.reversed_at = now
        order.reversed_by = actor
        order.finalized_at = None

        db.session.commit()

        return ReversalResult(
            purchase_order_id=order.id,
            status=order.status,
            reversed_at=now,
            movements_written=movements,
            restored_products=[(pid, p.stock) for pid, p in products.items()],
        )

    return run_with_retry(_op)
