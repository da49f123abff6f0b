from __future__ import annotations

from sqlalchemy import event

from ..extensions import db
from backoffice.time_utils import to_utc_z


MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_TYPES = {MOVEMENT_IN, MOVEMENT_OUT}

REASON_PURCHASE_POST = "PURCHASE_POST"
REASON_PURCHASE_REVERSE = "PURCHASE_REVERSE"
REASON_ADJUSTMENT = "ADJUSTMENT"
REASON_SALE = "SALE"
MOVEMENT_REASONS = {REASON_PURCHASE_POST, REASON_PURCHASE_REVERSE, REASON_ADJUSTMENT, REASON_SALE}

REF_PURCHASE_ORDER = "PURCHASE_ORDER"
REF_ORDER = "ORDER"
REF_MANUAL = "MANUAL"
REF_TYPES = {REF_PURCHASE_ORDER, REF_ORDER, REF_MANUAL}


class LedgerImmutableError(RuntimeError):
    """Raised when code tries to update or delete a stock movement."""


class StockMovement(db.Model):
    """
    Stock ledger entry.

    APPEND-ONLY: rows are never updated or deleted. A reversal writes a
    compensating OUT row instead of touching the IN row it undoes.

    - qty is always positive; direction is carried by type (IN / OUT).
    - unit_cost_cents is the cost basis at the moment of the movement.
    - ref_type/ref_id point back to the source document.

    Product stock is reconstructible as opening balance + sum(IN) - sum(OUT).
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_ref", "ref_type", "ref_id"),
        db.Index("ix_stock_movements_company_product", "company_id", "product_id", "created_at"),
        db.CheckConstraint("qty > 0", name="ck_stock_movements_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    type = db.Column(db.String(8), nullable=False, index=True)
    reason = db.Column(db.String(32), nullable=False, index=True)

    ref_type = db.Column(db.String(32), nullable=False)
    ref_id = db.Column(db.Integer, nullable=True)

    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    qty = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=True)

    notes = db.Column(db.String(255), nullable=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        index=True,
    )

    product = db.relationship("Product")

    @property
    def signed_qty(self) -> int:
        return self.qty if self.type == MOVEMENT_IN else -self.qty

    def __repr__(self) -> str:
        return (
            f"<StockMovement id={self.id} {self.type} {self.reason} "
            f"product_id={self.product_id} qty={self.qty}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "type": self.type,
            "reason": self.reason,
            "ref_type": self.ref_type,
            "ref_id": self.ref_id,
            "product_id": self.product_id,
            "qty": self.qty,
            "unit_cost_cents": self.unit_cost_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


@event.listens_for(StockMovement, "before_update")
def _block_movement_update(mapper, connection, target):
    raise LedgerImmutableError(f"Stock movement {target.id} is append-only and cannot be updated")


@event.listens_for(StockMovement, "before_delete")
def _block_movement_delete(mapper, connection, target):
    raise LedgerImmutableError(f"Stock movement {target.id} is append-only and cannot be deleted")
