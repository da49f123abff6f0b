# Overview: Flask API routes for suppliers; parses input and returns JSON responses.

"""
Supplier Routes

MULTI-TENANT: Suppliers belong to the company in X-Company-Id.
DELETE deactivates; suppliers referenced by purchase orders are kept.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..decorators import require_company
from ..models import Supplier
from ..services import supplier_service
from ..validation import ModelValidationPolicy, validate_payload, parse_pagination

SUPPLIER_POLICY = ModelValidationPolicy(
    writable_fields={
        "name", "trading_name", "tax_id", "email", "phone", "contact",
        "payment_terms", "lead_time_days", "is_active", "notes",
    },
    required_on_create={"name"},
)

suppliers_bp = Blueprint("suppliers", __name__, url_prefix="/api/suppliers")


@suppliers_bp.get("")
@require_company
def list_suppliers_route():
    """
    Query parameters:
    - include_inactive: "true" to include deactivated suppliers
    - search: name, trading name or tax id
    - limit / offset: pagination
    """
    limit, offset = parse_pagination(request.args, max_page_size=current_app.config["MAX_PAGE_SIZE"])
    include_inactive = request.args.get("include_inactive", "").lower() in ("1", "true", "yes")

    suppliers, total = supplier_service.list_suppliers(
        g.company_id,
        include_inactive=include_inactive,
        search=request.args.get("search") or None,
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [s.to_dict() for s in suppliers],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@suppliers_bp.post("")
@require_company
def create_supplier_route():
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=False)

    supplier = supplier_service.create_supplier(company_id=g.company_id, patch=patch)
    return jsonify(supplier.to_dict()), 201


@suppliers_bp.get("/<int:supplier_id>")
@require_company
def get_supplier_route(supplier_id: int):
    return jsonify(supplier_service.get_supplier(g.company_id, supplier_id).to_dict())


@suppliers_bp.put("/<int:supplier_id>")
@require_company
def update_supplier_route(supplier_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Supplier, payload=payload, policy=SUPPLIER_POLICY, partial=True)

    supplier = supplier_service.update_supplier(company_id=g.company_id, supplier_id=supplier_id, patch=patch)
    return jsonify(supplier.to_dict())


@suppliers_bp.delete("/<int:supplier_id>")
@require_company
def deactivate_supplier_route(supplier_id: int):
    supplier = supplier_service.deactivate_supplier(company_id=g.company_id, supplier_id=supplier_id)
    return jsonify({"ok": True, "supplier": supplier.to_dict()})
