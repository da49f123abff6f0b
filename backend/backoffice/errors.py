# Overview: Error taxonomy shared by services and routes.

"""
Service errors carry a machine-readable kind and the HTTP status the API
answers with. Routes never build error payloads by hand for these; the
handler registered in create_app() does it.

Every one of these errors is raised before commit (or triggers a rollback),
so a failed call leaves orders, products and the ledger untouched.
"""

from __future__ import annotations


class StockEngineError(Exception):
    kind = "error"
    http_status = 400

    def __init__(self, message: str, **details):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "kind": self.kind}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(StockEngineError, ValueError):
    """400-level input problem."""
    kind = "validation"
    http_status = 400


class NotFoundError(StockEngineError):
    """Order, product or supplier does not exist in the caller's company."""
    kind = "not_found"
    http_status = 404


class InvalidStateError(StockEngineError):
    """Operation not legal for the purchase order's current status."""
    kind = "invalid_state"
    http_status = 409


class InsufficientStockError(StockEngineError):
    """A movement would drive product stock below zero."""
    kind = "insufficient_stock"
    http_status = 409


class TransactionConflictError(StockEngineError):
    """Concurrent modification detected; safe to retry from scratch."""
    kind = "transaction_conflict"
    http_status = 409


class TenantAccessError(StockEngineError):
    """Company context missing, unknown or inactive."""
    kind = "forbidden"
    http_status = 403


class ConflictError(StockEngineError):
    """Uniqueness conflict, e.g. a SKU already used in the company."""
    kind = "conflict"
    http_status = 409
