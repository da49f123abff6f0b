# Overview: Flask API routes for manual stock movements and ledger reconciliation.
"""
Stock routes.

SECURITY:
- Manual adjustments require role admin, manager or super_admin
- Sale deductions are called by the order pipeline with company context only

Every change writes exactly one stock movement; see inventory_service.
"""
from flask import Blueprint, request, jsonify, g

from ..decorators import require_company, require_role, STOCK_POSTING_ROLES
from ..errors import ValidationError
from ..services.inventory_service import adjust_stock, record_sale
from ..services.stock_ledger import reconcile_stock
from ..validation import coerce_int, reject_unknown_fields, require_json_object


stock_bp = Blueprint("stock", __name__, url_prefix="/api/stock")


def _required_int(data: dict, key: str) -> int:
    if data.get(key) is None:
        raise ValidationError(f"{key} is required")
    return coerce_int(key, data[key])


@stock_bp.post("/adjust")
@require_company
@require_role(*STOCK_POSTING_ROLES)
def adjust_stock_route():
    """
    Request body:
    {"product_id": 1, "quantity_delta": -2, "notes": "broken in transit"}
    """
    data = require_json_object(request.get_json(silent=True))
    reject_unknown_fields(data, {"product_id", "quantity_delta", "notes"})

    mv = adjust_stock(
        company_id=g.company_id,
        product_id=_required_int(data, "product_id"),
        quantity_delta=_required_int(data, "quantity_delta"),
        notes=data.get("notes"),
    )
    return jsonify({"movement": mv.to_dict(), "product": mv.product.to_dict()}), 201


@stock_bp.post("/sale")
@require_company
def record_sale_route():
    """
    Request body:
    {"product_id": 1, "quantity": 3, "order_id": 42, "notes": "..."}
    """
    data = require_json_object(request.get_json(silent=True))
    reject_unknown_fields(data, {"product_id", "quantity", "order_id", "notes"})

    order_id = data.get("order_id")
    mv = record_sale(
        company_id=g.company_id,
        product_id=_required_int(data, "product_id"),
        quantity=_required_int(data, "quantity"),
        order_id=coerce_int("order_id", order_id) if order_id is not None else None,
        notes=data.get("notes"),
    )
    return jsonify({"movement": mv.to_dict(), "product": mv.product.to_dict()}), 201


@stock_bp.get("/reconcile")
@require_company
def reconcile_stock_route():
    """Products whose stored stock differs from the replayed ledger."""
    mismatches = reconcile_stock(g.company_id)
    return jsonify({"ok": not mismatches, "mismatches": mismatches})
