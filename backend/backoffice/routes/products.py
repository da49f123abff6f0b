# Overview: Flask API routes for products; parses input and returns JSON responses.

"""
Product management routes.

MULTI-TENANT: All product operations are scoped to the company in the
X-Company-Id header (g.company_id, set by @require_company).

stock is accepted on create only (opening balance). Afterwards it moves
through purchase postings, reversals and /api/stock endpoints.
"""
from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_company
from ..models import Product
from ..services import products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    parse_pagination,
)

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "brand", "description", "cost_cents", "price_cents",
        "supplier_id", "is_active", "stock",
    },
    required_on_create={"sku", "name"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "name", "brand", "description", "cost_cents", "price_cents",
        "supplier_id", "is_active",
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@require_company
def list_products_route():
    """
    List products of the caller's company.

    Query params:
    - search: matches SKU or name
    - active: "true"/"false"
    - limit / offset: pagination
    """
    limit, offset = parse_pagination(request.args, max_page_size=current_app.config["MAX_PAGE_SIZE"])

    active_arg = request.args.get("active")
    active = None
    if active_arg is not None:
        active = active_arg.strip().lower() in ("1", "true", "yes")

    products, total = products_service.list_products(
        g.company_id,
        search=request.args.get("search") or None,
        active=active,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [p.to_dict() for p in products],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@products_bp.post("")
@require_company
def create_product_route():
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    created = products_service.create_product(company_id=g.company_id, patch=patch)
    return jsonify(created.to_dict()), 201


@products_bp.get("/<int:product_id>")
@require_company
def get_product_route(product_id: int):
    return jsonify(products_service.get_product(g.company_id, product_id).to_dict())


@products_bp.put("/<int:product_id>")
@require_company
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}

    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    updated = products_service.update_product(company_id=g.company_id, product_id=product_id, patch=patch)
    return jsonify(updated.to_dict())


@products_bp.get("/<int:product_id>/movements")
@require_company
def product_movements_route(product_id: int):
    """Stock movements of one product, newest first."""
    limit, _ = parse_pagination(
        request.args,
        max_page_size=current_app.config["MAX_PAGE_SIZE"],
        default_limit=200,
    )
    movements = products_service.list_product_movements(g.company_id, product_id, limit=limit)
    return jsonify({"items": [m.to_dict() for m in movements], "count": len(movements)})
