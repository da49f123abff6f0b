# Overview: Pytest coverage for purchase stock posting.

"""
Purchase Stock Posting Tests

Covers:
- Weighted-average cost and stock updates
- Zero-stock bootstrap
- Sell price replacement and the change manifest wire format
- Rejection of a second posting (no double counting)
- All-or-nothing behavior when a product is missing
"""

import pytest
from sqlalchemy import delete, update

from backoffice.errors import InvalidStateError, NotFoundError, ValidationError
from backoffice.models import Product, StockMovement
from backoffice.models.stock import REF_PURCHASE_ORDER
from backoffice.services.posting_service import post_stock
from backoffice.services.purchase_service import (
    create_purchase_order,
    finalize_purchase_order,
)
from backoffice.services.stock_ledger import list_movements_for_ref
from backoffice.validation import MAX_STOCK_UNITS


def _purchase(company, *items):
    return create_purchase_order(company_id=company.id, items=list(items))


class TestPostStock:

    def test_posting_blends_cost_and_adds_stock(self, db_session, company_a, product_a):
        order = _purchase(company_a, {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700})

        result = post_stock(company_a.id, order.id, actor="user-1")

        assert product_a.stock == 20
        assert product_a.cost_cents == 600
        assert product_a.price_cents == 900

        assert order.status == "STOCK_POSTED"
        assert order.posted_at is not None
        assert order.posted_by == "user-1"
        assert result.movements_written == 1

        assert len(result.updated_products) == 1
        change = result.updated_products[0]
        assert change.product_id == product_a.id
        assert change.cost_changed is True
        assert change.price_changed is False
        assert change.new_stock == 20
        assert change.new_cost_cents == 600

    def test_zero_stock_bootstrap(self, db_session, company_a, empty_product_a):
        order = _purchase(company_a, {"product_id": empty_product_a.id, "qty": 5, "unit_cost_cents": 300})

        post_stock(company_a.id, order.id)

        assert empty_product_a.stock == 5
        assert empty_product_a.cost_cents == 300

    def test_sell_price_replaces_product_price(self, db_session, company_a, product_a):
        order = _purchase(company_a, {
            "product_id": product_a.id,
            "qty": 10,
            "unit_cost_cents": 700,
            "sell_price_cents": 1200,
        })

        result = post_stock(company_a.id, order.id)

        assert product_a.price_cents == 1200
        assert result.updated_products[0].price_changed is True

    def test_manifest_wire_format(self, db_session, company_a, product_a):
        order = _purchase(company_a, {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700})

        payload = post_stock(company_a.id, order.id).to_dict()

        assert payload["order"]["status"] == "STOCK_POSTED"
        assert payload["updatedProducts"] == [{
            "productId": product_a.id,
            "name": product_a.name,
            "updatedCost": True,
            "updatedPrice": False,
            "newStock": 20,
            "cost": "6.00",
            "price": "9.00",
        }]

    def test_line_without_cost_uses_product_cost(self, db_session, company_a, product_a):
        order = _purchase(company_a, {"product_id": product_a.id, "qty": 4})

        result = post_stock(company_a.id, order.id)

        assert product_a.stock == 14
        assert product_a.cost_cents == 500
        assert result.updated_products[0].cost_changed is False

    def test_repeated_product_is_costed_line_by_line(self, db_session, company_a, product_a):
        order = _purchase(
            company_a,
            {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700},
            {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 900},
        )

        result = post_stock(company_a.id, order.id)

        # 10@5 + 10@7 -> 20@6, then + 10@9 -> 30@7
        assert product_a.stock == 30
        assert product_a.cost_cents == 700
        assert result.movements_written == 2
        assert len(result.updated_products) == 1
        assert result.updated_products[0].new_stock == 30

    def test_posting_writes_in_movement_per_line(self, db_session, company_a, product_a, empty_product_a):
        order = _purchase(
            company_a,
            {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700},
            {"product_id": empty_product_a.id, "qty": 3, "unit_cost_cents": 250},
        )

        post_stock(company_a.id, order.id)

        movements = list_movements_for_ref(company_a.id, REF_PURCHASE_ORDER, order.id)
        assert [(m.type, m.reason, m.product_id, m.qty, m.unit_cost_cents) for m in movements] == [
            ("IN", "PURCHASE_POST", product_a.id, 10, 700),
            ("IN", "PURCHASE_POST", empty_product_a.id, 3, 250),
        ]

    def test_finalized_order_can_be_posted(self, db_session, company_a, product_a):
        order = _purchase(company_a, {"product_id": product_a.id, "qty": 1, "unit_cost_cents": 500})
        finalize_purchase_order(company_id=company_a.id, order_id=order.id)

        post_stock(company_a.id, order.id)

        assert order.status == "STOCK_POSTED"


class TestPostStockRejections:

    def test_second_posting_is_rejected(self, db_session, company_a, product_a):
        order = _purchase(company_a, {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700})
        post_stock(company_a.id, order.id)

        with pytest.raises(InvalidStateError):
            post_stock(company_a.id, order.id)

        assert product_a.stock == 20
        assert product_a.cost_cents == 600
        assert len(list_movements_for_ref(company_a.id, REF_PURCHASE_ORDER, order.id)) == 1

    def test_order_without_lines_is_rejected(self, db_session, company_a):
        order = _purchase(company_a)

        with pytest.raises(InvalidStateError):
            post_stock(company_a.id, order.id)

        assert order.status == "DRAFT"

    def test_missing_order(self, db_session, company_a):
        with pytest.raises(NotFoundError):
            post_stock(company_a.id, 987654)

    def test_missing_product_rolls_back_everything(
        self, db_session, company_a, product_a, empty_product_a
    ):
        order = _purchase(
            company_a,
            {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700},
            {"product_id": empty_product_a.id, "qty": 5, "unit_cost_cents": 300},
        )
        missing_id = empty_product_a.id
        db_session.execute(delete(Product).where(Product.id == missing_id))
        db_session.commit()

        with pytest.raises(NotFoundError):
            post_stock(company_a.id, order.id)

        assert product_a.stock == 10
        assert product_a.cost_cents == 500
        assert order.status == "DRAFT"
        assert order.posted_at is None
        assert db_session.query(StockMovement).filter_by(ref_type=REF_PURCHASE_ORDER).count() == 0

    def test_stock_ceiling_rejects_whole_posting(self, db_session, company_a, product_a):
        order = _purchase(company_a, {"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700})
        db_session.execute(
            update(Product).where(Product.id == product_a.id).values(stock=MAX_STOCK_UNITS - 5)
        )
        db_session.commit()

        with pytest.raises(ValidationError):
            post_stock(company_a.id, order.id)

        assert product_a.stock == MAX_STOCK_UNITS - 5
        assert product_a.cost_cents == 500
        assert order.status == "DRAFT"
        assert list_movements_for_ref(company_a.id, REF_PURCHASE_ORDER, order.id) == []
