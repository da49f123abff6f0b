# Overview: Flask API routes for purchase orders; parses input and returns JSON responses.

"""
Purchase Order Routes

MULTI-TENANT: Every route runs under @require_company; the company comes
from the X-Company-Id header and is passed explicitly to the services.

SECURITY:
- Any caller with a valid company context may read and author orders
- post-stock and reverse-stock require role admin, manager or super_admin

Service errors (not found, invalid state, insufficient stock, conflicts)
are turned into {"error", "kind"} payloads by the handler registered in
create_app(); post/reverse additionally log their rejections here.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_company, require_role, STOCK_POSTING_ROLES
from ..errors import StockEngineError
from ..services import purchase_service
from ..services.posting_service import post_stock
from ..services.reversal_service import reverse_stock
from ..services.tenant_service import get_purchase_order_in_company
from ..validation import parse_pagination, reject_unknown_fields, require_json_object


purchases_bp = Blueprint("purchases", __name__, url_prefix="/api/purchases")

ORDER_FIELDS = {"supplier_id", "notes", "items"}


def _json_body() -> dict:
    return require_json_object(request.get_json(silent=True))


@purchases_bp.get("")
@require_company
def list_purchases_route():
    """
    List purchase orders of the caller's company.

    Query parameters:
    - status: DRAFT, FINALIZED, STOCK_POSTED, STOCK_REVERSED
    - search: matches number or notes
    - limit / offset: pagination (limit capped by MAX_PAGE_SIZE)

    Returns:
        {items: PurchaseOrder[], count: int, limit: int, offset: int}
    """
    limit, offset = parse_pagination(request.args, max_page_size=current_app.config["MAX_PAGE_SIZE"])

    orders, total = purchase_service.list_purchase_orders(
        g.company_id,
        status=request.args.get("status") or None,
        search=request.args.get("search") or None,
        limit=limit,
        offset=offset,
    )

    return jsonify({
        "items": [o.to_dict() for o in orders],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@purchases_bp.post("")
@require_company
def create_purchase_route():
    """
    Create a DRAFT purchase order.

    Request body:
    {
        "supplier_id": 1,        // optional, must belong to the company
        "notes": "...",          // optional
        "items": [               // optional
            {"product_id": 1, "qty": 10, "unit_cost_cents": 700, "sell_price_cents": 1200}
        ]
    }
    """
    data = _json_body()
    reject_unknown_fields(data, ORDER_FIELDS)

    order = purchase_service.create_purchase_order(
        company_id=g.company_id,
        supplier_id=data.get("supplier_id"),
        notes=data.get("notes"),
        items=data.get("items"),
        created_by=g.actor,
    )
    return jsonify({"order": order.to_dict(), "items": [i.to_dict() for i in order.items]}), 201


@purchases_bp.get("/<int:order_id>")
@require_company
def get_purchase_route(order_id: int):
    """Order header, lines, supplier and stock movements."""
    return jsonify(purchase_service.get_purchase_order_details(g.company_id, order_id))


@purchases_bp.put("/<int:order_id>")
@require_company
def update_purchase_route(order_id: int):
    """
    Update header fields; "items", when present, replaces every line.

    Only DRAFT (or legacy STOCK_REVERSED) orders can be edited.
    """
    data = _json_body()
    reject_unknown_fields(data, ORDER_FIELDS)

    kwargs = {}
    if "supplier_id" in data:
        kwargs["supplier_id"] = data["supplier_id"]
    if "notes" in data:
        kwargs["notes"] = data["notes"]

    order = purchase_service.update_purchase_order(
        company_id=g.company_id,
        order_id=order_id,
        items=data.get("items"),
        **kwargs,
    )
    return jsonify({"order": order.to_dict(), "items": [i.to_dict() for i in order.items]})


@purchases_bp.post("/<int:order_id>/items")
@require_company
def add_purchase_item_route(order_id: int):
    line = purchase_service.add_purchase_item(
        company_id=g.company_id,
        order_id=order_id,
        item=_json_body(),
    )
    return jsonify(line.to_dict()), 201


@purchases_bp.put("/<int:order_id>/items/<int:item_id>")
@require_company
def update_purchase_item_route(order_id: int, item_id: int):
    data = _json_body()
    reject_unknown_fields(data, {"qty", "unit_cost_cents", "sell_price_cents"})

    # Scope check: the line must belong to this order
    order = get_purchase_order_in_company(g.company_id, order_id)
    if item_id not in {i.id for i in order.items}:
        return jsonify({"error": f"Purchase order item {item_id} not found", "kind": "not_found"}), 404

    kwargs = {}
    if "sell_price_cents" in data:
        kwargs["sell_price_cents"] = data["sell_price_cents"]

    line = purchase_service.update_purchase_item(
        company_id=g.company_id,
        item_id=item_id,
        qty=data.get("qty"),
        unit_cost_cents=data.get("unit_cost_cents"),
        **kwargs,
    )
    return jsonify(line.to_dict())


@purchases_bp.delete("/<int:order_id>/items/<int:item_id>")
@require_company
def remove_purchase_item_route(order_id: int, item_id: int):
    order = get_purchase_order_in_company(g.company_id, order_id)
    if item_id not in {i.id for i in order.items}:
        return jsonify({"error": f"Purchase order item {item_id} not found", "kind": "not_found"}), 404

    purchase_service.remove_purchase_item(company_id=g.company_id, item_id=item_id)
    return jsonify({"ok": True})


@purchases_bp.post("/<int:order_id>/finalize")
@require_company
def finalize_purchase_route(order_id: int):
    order = purchase_service.finalize_purchase_order(company_id=g.company_id, order_id=order_id)
    return jsonify({"order": order.to_dict()})


@purchases_bp.post("/<int:order_id>/reopen")
@require_company
def reopen_purchase_route(order_id: int):
    order = purchase_service.reopen_purchase_order(company_id=g.company_id, order_id=order_id)
    return jsonify({"order": order.to_dict()})


@purchases_bp.delete("/<int:order_id>")
@require_company
def delete_purchase_route(order_id: int):
    purchase_service.delete_purchase_order(company_id=g.company_id, order_id=order_id)
    return jsonify({"ok": True})


@purchases_bp.post("/<int:order_id>/post-stock")
@require_company
@require_role(*STOCK_POSTING_ROLES)
def post_stock_route(order_id: int):
    """
    Post the order into product stock.

    Returns:
        {updatedProducts: [{productId, name, updatedCost, updatedPrice,
                            newStock, cost, price}], order: PurchaseOrder}
    """
    try:
        result = post_stock(g.company_id, order_id, actor=g.actor)
    except StockEngineError as e:
        current_app.logger.warning(
            "Purchase stock posting rejected company_id=%s order_id=%s kind=%s: %s",
            g.company_id,
            order_id,
            e.kind,
            e.message,
        )
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception(
            "Purchase stock posting failed company_id=%s order_id=%s", g.company_id, order_id
        )
        return jsonify({"error": "Failed to post purchase stock", "kind": "error"}), 500

    current_app.logger.info(
        "Purchase stock posted company_id=%s order_id=%s number=%s products=%s actor=%s",
        g.company_id,
        order_id,
        result.purchase_order.number,
        len(result.updated_products),
        g.actor,
    )
    return jsonify(result.to_dict())


@purchases_bp.post("/<int:order_id>/reverse-stock")
@require_company
@require_role(*STOCK_POSTING_ROLES)
def reverse_stock_route(order_id: int):
    """
    Reverse the stock effect of a posted order; the order returns to DRAFT.

    Returns:
        {ok: true, order: PurchaseOrder, reversal: {...}}
    """
    try:
        result = reverse_stock(g.company_id, order_id, actor=g.actor)
    except StockEngineError as e:
        current_app.logger.warning(
            "Purchase stock reversal rejected company_id=%s order_id=%s kind=%s: %s",
            g.company_id,
            order_id,
            e.kind,
            e.message,
        )
        return jsonify(e.to_dict()), e.http_status
    except Exception:
        current_app.logger.exception(
            "Purchase stock reversal failed company_id=%s order_id=%s", g.company_id, order_id
        )
        return jsonify({"error": "Failed to reverse purchase stock", "kind": "error"}), 500

    order = get_purchase_order_in_company(g.company_id, order_id)
    current_app.logger.info(
        "Purchase stock reversed company_id=%s order_id=%s number=%s products=%s actor=%s",
        g.company_id,
        order_id,
        order.number,
        len(result.restored_products),
        g.actor,
    )
    return jsonify({"ok": True, "order": order.to_dict(), "reversal": result.to_dict()})
