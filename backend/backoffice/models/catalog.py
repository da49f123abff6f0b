from __future__ import annotations

from ..extensions import db
from backoffice.time_utils import to_utc_z


def format_cents(cents: int | None) -> str | None:
    """Render integer cents as a two-decimal string ("6.00")."""
    if cents is None:
        return None
    sign = "-" if cents < 0 else ""
    cents = abs(cents)
    return f"{sign}{cents // 100}.{cents % 100:02d}"


class Product(db.Model):
    """
    Catalog product with its on-hand stock and valuation.

    MULTI-TENANT: Products are scoped to a company; SKUs are unique within
    the company, not globally.

    STOCK & COST:
    - stock is a whole-unit quantity and never negative.
    - cost_cents is the weighted-average unit cost of the units on hand.
      It is blended by purchase postings and left as-is by reversals.
    - price_cents is the selling price. Purchase postings replace it when a
      line carries a sell price.
    - reserved_stock is committed to open sales orders. Posting and
      reversal never touch it.

    version_id is an optimistic lock: concurrent writers that both read the
    same version cannot both commit.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("company_id", "sku", name="uq_products_company_sku"),
        db.Index("ix_products_company_name", "company_id", "name"),
        db.CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)
    supplier_id = db.Column(db.Integer, db.ForeignKey("suppliers.id"), nullable=True, index=True)

    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    brand = db.Column(db.String(120), nullable=True)
    description = db.Column(db.Text, nullable=True)

    stock = db.Column(db.Integer, nullable=False, default=0)
    reserved_stock = db.Column(db.Integer, nullable=False, default=0)

    # Authoritative storage in cents
    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    price_cents = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    company = db.relationship("Company", backref=db.backref("products", lazy=True))
    supplier = db.relationship("Supplier", backref=db.backref("products", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} stock={self.stock} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "supplier_id": self.supplier_id,
            "sku": self.sku,
            "name": self.name,
            "brand": self.brand,
            "description": self.description,
            "stock": self.stock,
            "reserved_stock": self.reserved_stock,
            "cost_cents": self.cost_cents,
            "price_cents": self.price_cents,
            "cost": format_cents(self.cost_cents),
            "price": format_cents(self.price_cents),
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Supplier(db.Model):
    """
    Supplier (vendor) a purchase order is placed with.

    MULTI-TENANT: Suppliers are scoped to a company. A purchase order may
    only reference a supplier of its own company.
    """
    __tablename__ = "suppliers"
    __table_args__ = (
        db.Index("ix_suppliers_company_active", "company_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    company_id = db.Column(db.Integer, db.ForeignKey("companies.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    trading_name = db.Column(db.String(255), nullable=True)
    tax_id = db.Column(db.String(32), nullable=True)  # CNPJ

    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    contact = db.Column(db.String(255), nullable=True)
    payment_terms = db.Column(db.String(255), nullable=True)
    lead_time_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    company = db.relationship("Company", backref=db.backref("suppliers", lazy=True))

    def __repr__(self) -> str:
        return f"<Supplier id={self.id} name={self.name!r} company_id={self.company_id}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "company_id": self.company_id,
            "name": self.name,
            "trading_name": self.trading_name,
            "tax_id": self.tax_id,
            "email": self.email,
            "phone": self.phone,
            "contact": self.contact,
            "payment_terms": self.payment_terms,
            "lead_time_days": self.lead_time_days,
            "is_active": self.is_active,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
