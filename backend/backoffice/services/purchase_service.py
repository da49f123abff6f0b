# Overview: Purchase order authoring and lifecycle; stock effects live in posting/reversal services.

"""
Purchase Order Service

LIFECYCLE:
1. DRAFT: Created, header and lines editable
2. FINALIZED: Lines frozen, waiting for stock posting (reopen -> DRAFT)
3. STOCK_POSTED: Stock posted (posting_service)
4. Back to DRAFT after reverse_stock (reversal_service)

STOCK_REVERSED is treated like DRAFT (editable, postable, deletable).

DESIGN:
- number is allocated per company: PC-000001, PC-000002, ...
- A line without unit_cost_cents snapshots the product's current cost.
- Line description/SKU are snapshotted when the line is written.
- total_value_cents is recomputed from the lines on every line change.
- An order whose stock ever moved keeps its ledger trail and cannot be deleted.
"""

from __future__ import annotations

from sqlalchemy import or_

from ..extensions import db
from ..errors import InvalidStateError, NotFoundError, ValidationError
from ..models import PurchaseOrder, PurchaseOrderItem, StockMovement
from ..models.stock import REF_PURCHASE_ORDER
from ..validation import parse_purchase_item, coerce_int, check_total_cents
from .concurrency import run_with_retry
from .document_service import next_document_number
from .stock_ledger import list_movements_for_ref
from .tenant_service import (
    require_company,
    get_product_in_company,
    get_supplier_in_company,
    get_purchase_order_in_company,
)
from backoffice.time_utils import utcnow


STATUS_DRAFT = "DRAFT"
STATUS_FINALIZED = "FINALIZED"
STATUS_STOCK_POSTED = "STOCK_POSTED"
STATUS_STOCK_REVERSED = "STOCK_REVERSED"

STATUSES = {STATUS_DRAFT, STATUS_FINALIZED, STATUS_STOCK_POSTED, STATUS_STOCK_REVERSED}

EDITABLE_STATUSES = {STATUS_DRAFT, STATUS_STOCK_REVERSED}
POSTABLE_STATUSES = {STATUS_DRAFT, STATUS_FINALIZED, STATUS_STOCK_REVERSED}
DELETABLE_STATUSES = {STATUS_DRAFT, STATUS_STOCK_REVERSED}

DOCUMENT_TYPE = "PURCHASE_ORDER"
NUMBER_PREFIX = "PC"

_UNSET = object()


def _ensure_editable(order: PurchaseOrder) -> None:
    if order.status not in EDITABLE_STATUSES:
        raise InvalidStateError(
            f"Cannot modify {order.status} purchase order {order.number}. Only DRAFT orders can be edited.",
            status=order.status,
        )


def _recalculate_total(order: PurchaseOrder) -> None:
    total = sum(item.line_total_cents for item in order.items)
    check_total_cents("total_value_cents", total)
    order.total_value_cents = total
    # Any line change touches the order row so its version_id moves
    order.updated_at = utcnow()


def _build_item(company_id: int, raw: dict, *, index: int | None = None) -> PurchaseOrderItem:
    data = parse_purchase_item(raw, index=index)
    product = get_product_in_company(company_id, data["product_id"])

    unit_cost = data["unit_cost_cents"]
    if unit_cost is None:
        unit_cost = product.cost_cents

    return PurchaseOrderItem(
        product_id=product.id,
        description_snapshot=product.name,
        sku_snapshot=product.sku,
        qty=data["qty"],
        unit_cost_cents=unit_cost,
        sell_price_cents=data["sell_price_cents"],
        line_total_cents=data["qty"] * unit_cost,
    )


def _resolve_supplier_id(company_id: int, supplier_id) -> int | None:
    if supplier_id is None:
        return None
    supplier_id = coerce_int("supplier_id", supplier_id)
    supplier = get_supplier_in_company(company_id, supplier_id)
    if not supplier.is_active:
        raise ValidationError("Supplier is inactive")
    return supplier.id


def create_purchase_order(
    *,
    company_id: int,
    supplier_id: int | None = None,
    notes: str | None = None,
    items: list[dict] | None = None,
    created_by: str | None = None,
) -> PurchaseOrder:
    """
    Create a DRAFT purchase order, optionally with its lines.

    Raises:
        TenantAccessError: company missing/inactive
        NotFoundError: supplier or a product is not in the company
        ValidationError: malformed line input
    """
    if items is not None and not isinstance(items, list):
        raise ValidationError("items must be a list")

    def _op():
        require_company(company_id)
        resolved_supplier = _resolve_supplier_id(company_id, supplier_id)

        built = [_build_item(company_id, raw, index=i) for i, raw in enumerate(items or [])]

        order = PurchaseOrder(
            company_id=company_id,
            number=next_document_number(
                company_id=company_id,
                document_type=DOCUMENT_TYPE,
                prefix=NUMBER_PREFIX,
            ),
            status=STATUS_DRAFT,
            supplier_id=resolved_supplier,
            notes=notes,
            created_by=created_by,
        )
        order.items.extend(built)
        _recalculate_total(order)

        db.session.add(order)
        db.session.commit()
        return order

    return run_with_retry(_op)


def update_purchase_order(
    *,
    company_id: int,
    order_id: int,
    supplier_id=_UNSET,
    notes=_UNSET,
    items: list[dict] | None = None,
) -> PurchaseOrder:
    """
    Update header fields and, when items is given, replace all lines.

    Raises:
        NotFoundError: order/supplier/product not in company
        InvalidStateError: order is not editable
    """
    if items is not None and not isinstance(items, list):
        raise ValidationError("items must be a list")

    def _op():
        order = get_purchase_order_in_company(company_id, order_id, lock=True)
        _ensure_editable(order)

        if supplier_id is not _UNSET:
            order.supplier_id = _resolve_supplier_id(company_id, supplier_id)
        if notes is not _UNSET:
            order.notes = notes

        if items is not None:
            built = [_build_item(company_id, raw, index=i) for i, raw in enumerate(items)]
            order.items.clear()
            order.items.extend(built)
            _recalculate_total(order)

        db.session.commit()
        return order

    return run_with_retry(_op)


def add_purchase_item(*, company_id: int, order_id: int, item: dict) -> PurchaseOrderItem:
    """Append one line to an editable order."""
    def _op():
        order = get_purchase_order_in_company(company_id, order_id, lock=True)
        _ensure_editable(order)

        line = _build_item(company_id, item)
        order.items.append(line)
        _recalculate_total(order)

        db.session.commit()
        return line

    return run_with_retry(_op)


def _get_item_for_update(company_id: int, item_id: int) -> tuple[PurchaseOrderItem, PurchaseOrder]:
    """Load a line with its order row locked."""
    line = db.session.query(PurchaseOrderItem).filter_by(id=item_id).first()
    if line is None:
        raise NotFoundError(f"Purchase order item {item_id} not found", item_id=item_id)
    order = get_purchase_order_in_company(company_id, line.purchase_order_id, lock=True)
    return line, order


def update_purchase_item(
    *,
    company_id: int,
    item_id: int,
    qty: int | None = None,
    unit_cost_cents: int | None = None,
    sell_price_cents=_UNSET,
) -> PurchaseOrderItem:
    """
    Change quantity/cost/sell price of one line and recompute totals.

    sell_price_cents=None clears the sell price; omitting it leaves it as-is.
    """
    def _op():
        line, order = _get_item_for_update(company_id, item_id)
        _ensure_editable(order)

        patch = {
            "product_id": line.product_id,
            "qty": line.qty if qty is None else qty,
            "unit_cost_cents": line.unit_cost_cents if unit_cost_cents is None else unit_cost_cents,
            "sell_price_cents": line.sell_price_cents if sell_price_cents is _UNSET else sell_price_cents,
        }
        data = parse_purchase_item(patch)

        line.qty = data["qty"]
        line.unit_cost_cents = data["unit_cost_cents"]
        line.sell_price_cents = data["sell_price_cents"]
        line.line_total_cents = line.qty * line.unit_cost_cents
        _recalculate_total(order)

        db.session.commit()
        return line

    return run_with_retry(_op)


def remove_purchase_item(*, company_id: int, item_id: int) -> None:
    def _op():
        line, order = _get_item_for_update(company_id, item_id)
        _ensure_editable(order)

        order.items.remove(line)
        _recalculate_total(order)

        db.session.commit()

    run_with_retry(_op)


def finalize_purchase_order(*, company_id: int, order_id: int) -> PurchaseOrder:
    """
    Freeze an order's lines (DRAFT -> FINALIZED).

    Raises:
        InvalidStateError: not DRAFT, or no lines
    """
    def _op():
        order = get_purchase_order_in_company(company_id, order_id, lock=True)
        if order.status not in EDITABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot finalize {order.status} purchase order {order.number}",
                status=order.status,
            )
        if not order.items:
            raise InvalidStateError(
                f"Cannot finalize purchase order {order.number} with no line items",
                status=order.status,
            )

        order.status = STATUS_FINALIZED
        order.finalized_at = utcnow()

        db.session.commit()
        return order

    return run_with_retry(_op)


def reopen_purchase_order(*, company_id: int, order_id: int) -> PurchaseOrder:
    """Unfreeze a FINALIZED order so its lines can be edited again."""
    def _op():
        order = get_purchase_order_in_company(company_id, order_id, lock=True)
        if order.status != STATUS_FINALIZED:
            raise InvalidStateError(
                f"Cannot reopen {order.status} purchase order {order.number}. Only FINALIZED orders can be reopened.",
                status=order.status,
            )
        order.status = STATUS_DRAFT
        order.finalized_at = None

        db.session.commit()
        return order

    return run_with_retry(_op)


def delete_purchase_order(*, company_id: int, order_id: int) -> None:
    """
    Delete an order that never moved stock.

    Raises:
        InvalidStateError: order is not DRAFT, or has ledger history
    """
    def _op():
        order = get_purchase_order_in_company(company_id, order_id, lock=True)
        if order.status not in DELETABLE_STATUSES:
            raise InvalidStateError(
                f"Cannot delete {order.status} purchase order {order.number}",
                status=order.status,
            )

        has_movements = db.session.query(
            db.session.query(StockMovement)
            .filter(
                StockMovement.ref_type == REF_PURCHASE_ORDER,
                StockMovement.ref_id == order.id,
            )
            .exists()
        ).scalar()
        if has_movements:
            raise InvalidStateError(
                f"Purchase order {order.number} has stock history and cannot be deleted",
                status=order.status,
            )

        db.session.delete(order)
        db.session.commit()

    run_with_retry(_op)


def list_purchase_orders(
    company_id: int,
    *,
    status: str | None = None,
    search: str | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[PurchaseOrder], int]:
    """
    List purchase orders of a company, newest first.

    Args:
        status: Filter by status
        search: Case-insensitive match on number or notes

    Returns:
        Tuple of (orders, total count)
    """
    if status and status not in STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(sorted(STATUSES))}")

    query = db.session.query(PurchaseOrder).filter(PurchaseOrder.company_id == company_id)

    if status:
        query = query.filter(PurchaseOrder.status == status)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(PurchaseOrder.number.ilike(like), PurchaseOrder.notes.ilike(like)))

    total = query.count()

    query = query.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.id.desc())
    query = query.offset(offset).limit(limit)

    return query.all(), total


def get_purchase_order_details(company_id: int, order_id: int) -> dict:
    """
    Read model for the purchase detail screen: header, lines, supplier and
    every stock movement written for the order.
    """
    order = get_purchase_order_in_company(company_id, order_id)
    movements = list_movements_for_ref(company_id, REF_PURCHASE_ORDER, order.id)

    return {
        "order": order.to_dict(),
        "items": [item.to_dict() for item in order.items],
        "supplier": order.supplier.to_dict() if order.supplier else None,
        "movements": [mv.to_dict() for mv in movements],
    }
