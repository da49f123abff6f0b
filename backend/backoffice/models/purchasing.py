from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z
from .catalog import format_cents


class PurchaseOrder(db.Model):
    """
    Supplier purchase order (document header).

    LIFECYCLE:
    1. DRAFT: Created, header and lines editable
    2. FINALIZED: Lines frozen, waiting for stock posting
    3. STOCK_POSTED: Lines posted into product stock (IN movements written)
    4. DRAFT again after a reversal (OUT movements written)

    STOCK_REVERSED is accepted as an editable, postable state for orders
    reversed before reversals returned orders to DRAFT.

    AUDIT: posted_at stays set after a reversal; reversed_at records the
    latest reversal. Nothing is ever deleted once stock has moved.
    """
    __tablename__ = "purchase_orders"
    __table_args__ = (
        db.UniqueConstraint("company_id", "number", name="uq_purchase_orders_company_number"),
        db.Index("ix_purchase_orders_company_status", "company_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    # Human-readable number, e.g. "PC-000042"
    number = db.Column(db.String(32), nullable=False)

    status = db.Column(db.String(16), nullable=False, default="DRAFT", index=True)

    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Always the sum of line_total_cents
    total_value_cents = db.Column(db.BigInteger, nullable=False, default=0)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reversed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Caller identity supplied by the upstream auth layer
    created_by = db.Column(db.String(64), nullable=True)
    posted_by = db.Column(db.String(64), nullable=True)
    reversed_by = db.Column(db.String(64), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    company = db.relationship("Company", backref=db.backref("purchase_orders", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("purchase_orders", lazy=True))
    items = db.relationship(
        "PurchaseOrderItem",
        back_populates="purchase_order",
        cascade="all, delete-orphan",
        order_by="PurchaseOrderItem.id",
        lazy=True,
    )

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<PurchaseOrder id={self.id} number={self.number!r} status={self.status}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "number": self.number,
            "status": self.status,
            "supplier_id": self.supplier_id,
            "notes": self.notes,
            "total_value_cents": self.total_value_cents,
            "total_value": format_cents(self.total_value_cents),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "finalized_at": to_utc_z(self.finalized_at) if self.finalized_at else None,
            "posted_at": to_utc_z(self.posted_at) if self.posted_at else None,
            "reversed_at": to_utc_z(self.reversed_at) if self.reversed_at else None,
            "created_by": self.created_by,
            "posted_by": self.posted_by,
            "reversed_by": self.reversed_by,
            "version_id": self.version_id,
        }


class PurchaseOrderItem(db.Model):
    """
    Line item of a purchase order.

    unit_cost_cents and sell_price_cents are snapshots taken when the line
    is written; description/sku snapshots keep history readable after a
    product is renamed.
    """
    __tablename__ = "purchase_order_items"
    __table_args__ = (
        db.CheckConstraint("qty > 0", name="ck_purchase_order_items_qty_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    purchase_order_id = db.Column(
        db.Integer,
        db.ForeignKey("purchase_orders.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    description_snapshot = db.Column(db.String(255), nullable=True)
    sku_snapshot = db.Column(db.String(64), nullable=True)

    # Whole units (product stock is integral)
    qty = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=False)
    sell_price_cents = db.Column(db.Integer, nullable=True)

    # qty * unit_cost_cents
    line_total_cents = db.Column(db.BigInteger, nullable=False)

    purchase_order = db.relationship("PurchaseOrder", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "purchase_order_id": self.purchase_order_id,
            "product_id": self.product_id,
            "description_snapshot": self.description_snapshot,
            "sku_snapshot": self.sku_snapshot,
            "qty": self.qty,
            "unit_cost_cents": self.unit_cost_cents,
            "sell_price_cents": self.sell_price_cents,
            "line_total_cents": self.line_total_cents,
            "unit_cost": format_cents(self.unit_cost_cents),
            "sell_price": format_cents(self.sell_price_cents),
            "line_total": format_cents(self.line_total_cents),
        }


class DocumentSequence(db.Model):
    """Per-company counter used to allocate document numbers."""
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("company_id", "document_type", name="uq_document_sequences_company_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    document_type = db.Column(db.String(32), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)
