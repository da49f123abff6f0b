from __future__ import annotations
from datetime import datetime
from backoffice.time_utils import parse_iso_datetime

from dataclasses import dataclass
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime
from sqlalchemy.orm import DeclarativeMeta

from .errors import ValidationError


# Maximum unit money value: 9,999,999.99 (fits a 32-bit INTEGER column)
MAX_MONEY_CENTS = 999_999_999

# Maximum units on a single purchase line or stock movement
MAX_LINE_QTY = 1_000_000

# Line and order totals are BIGINT columns
MAX_TOTAL_CENTS = 999_999_999_999_999

# products.stock is a 32-bit INTEGER column
MAX_STOCK_UNITS = 2_147_483_647


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    """
    writable_fields: set[str]
    required_on_create: set[str] = None  # type: ignore


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def coerce_int(key: str, value: Any) -> int:
    """
    Strict integer coercion: rejects bools, floats, decimals and
    scientific notation so "12.5" never silently becomes 12.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    if isinstance(coltype, Integer):
        return coerce_int(col.key, value)

    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        raise ValidationError(f"{col.key} must be a boolean")

    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    Returns a cleaned patch dict with only writable fields.
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    required = policy.required_on_create or set()
    if not partial:
        missing = sorted(f for f in required if f not in payload)
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        patch[k] = val

    return patch


def _check_money(key: str, value: int | None) -> None:
    if value is None:
        return
    if value < 0:
        raise ValidationError(f"{key} must be >= 0")
    if value > MAX_MONEY_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_MONEY_CENTS}")


def _check_qty(key: str, value: int) -> None:
    if value <= 0:
        raise ValidationError(f"{key} must be > 0")
    if value > MAX_LINE_QTY:
        raise ValidationError(f"{key} cannot exceed {MAX_LINE_QTY}")


def check_total_cents(key: str, value: int) -> None:
    if value > MAX_TOTAL_CENTS:
        raise ValidationError(f"{key} cannot exceed {MAX_TOTAL_CENTS}")


def check_stock_ceiling(sku: str, stock: int, incoming: int) -> None:
    """Raise before an increase would push a product past MAX_STOCK_UNITS."""
    if stock + incoming > MAX_STOCK_UNITS:
        raise ValidationError(
            f"Stock of {sku} cannot exceed {MAX_STOCK_UNITS} units",
            stock=stock,
            requested=incoming,
        )


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    for key in ("cost_cents", "price_cents"):
        if key in patch:
            _check_money(key, patch[key])

    if "stock" in patch and patch["stock"] is not None and patch["stock"] < 0:
        raise ValidationError("stock must be >= 0")


def parse_purchase_item(raw: Any, *, index: int | None = None) -> dict:
    """
    Validate one purchase order line from client input.

    unit_cost_cents may be omitted/null: the product's current cost is used.
    sell_price_cents may be omitted/null: the product price is not touched.
    """
    where = f"items[{index}]" if index is not None else "item"
    if not isinstance(raw, dict):
        raise ValidationError(f"{where} must be an object")

    allowed = {"product_id", "qty", "unit_cost_cents", "sell_price_cents"}
    unknown = sorted(set(raw.keys()) - allowed)
    if unknown:
        raise ValidationError(f"{where}: field not allowed: {unknown[0]}")

    if raw.get("product_id") is None:
        raise ValidationError(f"{where}.product_id is required")
    if raw.get("qty") is None:
        raise ValidationError(f"{where}.qty is required")

    item = {
        "product_id": coerce_int(f"{where}.product_id", raw["product_id"]),
        "qty": coerce_int(f"{where}.qty", raw["qty"]),
        "unit_cost_cents": None,
        "sell_price_cents": None,
    }
    _check_qty(f"{where}.qty", item["qty"])

    for key in ("unit_cost_cents", "sell_price_cents"):
        if raw.get(key) is not None:
            item[key] = coerce_int(f"{where}.{key}", raw[key])
            _check_money(f"{where}.{key}", item[key])

    return item


def enforce_rules_stock_adjust(quantity_delta: int) -> None:
    if quantity_delta == 0:
        raise ValidationError("quantity_delta must be non-zero")
    if abs(quantity_delta) > MAX_LINE_QTY:
        raise ValidationError(f"quantity_delta cannot exceed {MAX_LINE_QTY} units")


def enforce_rules_stock_sale(quantity: int) -> None:
    _check_qty("quantity", quantity)


def parse_pagination(args, *, max_page_size: int, default_limit: int = 100) -> tuple[int, int]:
    """Read limit/offset query params, clamped to [1, max_page_size] and >= 0."""
    limit = args.get("limit", default_limit, type=int)
    offset = args.get("offset", 0, type=int)

    if limit is None or limit < 1:
        limit = 1
    if limit > max_page_size:
        limit = max_page_size
    if offset is None or offset < 0:
        offset = 0
    return limit, offset


def reject_unknown_fields(payload: dict, allowed: set[str]) -> None:
    unknown = sorted(set(payload.keys()) - allowed)
    if unknown:
        raise ValidationError(f"Field not allowed: {unknown[0]}")


def require_json_object(data: Any) -> dict:
    """Request bodies must be a JSON object; an absent body reads as {}."""
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    return data
