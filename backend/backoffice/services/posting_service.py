# Overview: Purchase order stock posting (stock, weighted-average cost and price in one transaction).

"""
Posting Invariants (authoritative)

- One call posts an order at most once: the order row is locked and its
  status re-checked after the lock, so a second call sees STOCK_POSTED.
- Product rows are locked in ascending id order to avoid deadlocks between
  postings that share products.
- Every line appends one IN / PURCHASE_POST movement with the line's unit
  cost. Stock, cost and price updates are written in the same transaction.
- Any failure (missing product, DB conflict) rolls back the whole posting:
  no product, movement or status change survives.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from ..extensions import db
from ..errors import InvalidStateError
from ..models import Product, PurchaseOrder, PurchaseOrderItem
from ..models.catalog import format_cents
from ..models.stock import MOVEMENT_IN, REASON_PURCHASE_POST, REF_PURCHASE_ORDER
from ..validation import check_stock_ceiling
from .concurrency import run_with_retry
from .costing import compute_weighted_average_cost, resolve_sell_price
from .purchase_service import POSTABLE_STATUSES, STATUS_STOCK_POSTED
from .stock_ledger import append_movement
from .tenant_service import get_product_in_company, get_purchase_order_in_company
from backoffice.time_utils import utcnow


@dataclass(frozen=True)
class ChangeManifest:
    """What a posting did to one product."""
    product_id: int
    name_snapshot: str
    cost_changed: bool
    price_changed: bool
    new_stock: int
    new_cost_cents: int
    new_price_cents: int

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "name": self.name_snapshot,
            "updatedCost": self.cost_changed,
            "updatedPrice": self.price_changed,
            "newStock": self.new_stock,
            "cost": format_cents(self.new_cost_cents),
            "price": format_cents(self.new_price_cents),
        }


@dataclass
class PostingResult:
    purchase_order: PurchaseOrder
    movements_written: int
    updated_products: list[ChangeManifest] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "updatedProducts": [m.to_dict() for m in self.updated_products],
            "order": self.purchase_order.to_dict(),
        }


def lock_order_products(company_id: int, items: list[PurchaseOrderItem]) -> dict[int, Product]:
    """
    Lock every product referenced by the lines, lowest id first.

    Raises:
        NotFoundError: a line references a product that no longer exists
            in the company
    """
    product_ids = sorted({item.product_id for item in items})
    return {
        pid: get_product_in_company(company_id, pid, lock=True)
        for pid in product_ids
    }


def post_stock(company_id: int, purchase_order_id: int, *, actor: str | None = None) -> PostingResult:
    """
    Post a purchase order into product stock.

    For each line: stock += qty, cost becomes the weighted average of the
    units on hand and the lot, price is replaced when the line carries a
    sell price. Products appearing on several lines are updated line by
    line and reported once.

    Args:
        company_id: Tenant owning the order
        purchase_order_id: Order to post
        actor: Caller identity recorded as posted_by

    Returns:
        PostingResult with one ChangeManifest per affected product

    Raises:
        NotFoundError: order or one of its products not in company
        InvalidStateError: already posted, or order has no lines
        ValidationError: a line would push stock past MAX_STOCK_UNITS
        TransactionConflictError: concurrent modification, retries exhausted
    """
    def _op():
        order = get_purchase_order_in_company(company_id, purchase_order_id, lock=True)

        if order.status == STATUS_STOCK_POSTED:
            raise InvalidStateError(
                f"Purchase order {order.number} is already posted",
                status=order.status,
            )
        if order.status not in POSTABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot post {order.status} purchase order {order.number}",
                status=order.status,
            )
        if not order.items:
            raise InvalidStateError(
                f"Cannot post purchase order {order.number} with no line items",
                status=order.status,
            )

        products = lock_order_products(company_id, order.items)
        before = {pid: (p.cost_cents, p.price_cents) for pid, p in products.items()}

        movements = 0
        for item in order.items:
            product = products[item.product_id]
            check_stock_ceiling(product.sku, product.stock, item.qty)

            new_cost = compute_weighted_average_cost(
                product.stock,
                product.cost_cents,
                item.qty,
                item.unit_cost_cents,
            )
            new_price, _ = resolve_sell_price(product.price_cents, item.sell_price_cents)

            append_movement(
                company_id=company_id,
                product_id=product.id,
                type=MOVEMENT_IN,
                reason=REASON_PURCHASE_POST,
                ref_type=REF_PURCHASE_ORDER,
                ref_id=order.id,
                qty=item.qty,
                unit_cost_cents=item.unit_cost_cents,
                notes=f"Purchase {order.number}",
            )
            movements += 1

            product.stock = product.stock + item.qty
            product.cost_cents = new_cost
            product.price_cents = new_price

        order.status = STATUS_STOCK_POSTED
        order.posted_at = utcnow()
        order.posted_by = actor

        db.session.commit()

        seen: list[int] = []
        for item in order.items:
            if item.product_id not in seen:
                seen.append(item.product_id)

        manifest = []
        for pid in seen:
            product = products[pid]
            old_cost, old_price = before[pid]
            manifest.append(ChangeManifest(
                product_id=product.id,
                name_snapshot=product.name,
                cost_changed=product.cost_cents != old_cost,
                price_changed=product.price_cents != old_price,
                new_stock=product.stock,
                new_cost_cents=product.cost_cents,
                new_price_cents=product.price_cents,
            ))

        return PostingResult(
            purchase_order=order,
            movements_written=movements,
            updated_products=manifest,
        )

    return run_with_retry(_op)
