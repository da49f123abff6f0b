# Overview: Pytest coverage for purchase order authoring and lifecycle.

"""
Purchase Order Lifecycle Tests

Covers numbering, line snapshots and totals, and the
DRAFT -> FINALIZED -> STOCK_POSTED -> DRAFT state machine guards.
"""

import pytest

from backoffice.errors import InvalidStateError, NotFoundError, ValidationError
from backoffice.models import PurchaseOrder
from backoffice.services import purchase_service
from backoffice.services.posting_service import post_stock
from backoffice.services.purchase_service import (
    create_purchase_order,
    update_purchase_order,
    add_purchase_item,
    update_purchase_item,
    remove_purchase_item,
    finalize_purchase_order,
    reopen_purchase_order,
    delete_purchase_order,
    list_purchase_orders,
    get_purchase_order_details,
)
from backoffice.services.supplier_service import create_supplier
from backoffice.validation import MAX_MONEY_CENTS


class TestNumbering:

    def test_numbers_are_sequential_per_company(self, db_session, company_a, company_b):
        first = create_purchase_order(company_id=company_a.id)
        second = create_purchase_order(company_id=company_a.id)
        other = create_purchase_order(company_id=company_b.id)

        assert first.number == "PC-000001"
        assert second.number == "PC-000002"
        assert other.number == "PC-000001"


class TestAuthoring:

    def test_line_snapshots_product_and_defaults_cost(self, db_session, company_a, product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 3}],
        )

        line = order.items[0]
        assert line.unit_cost_cents == 500
        assert line.line_total_cents == 1500
        assert line.sku_snapshot == "PROD-A-001"
        assert line.description_snapshot == product_a.name
        assert line.sell_price_cents is None
        assert order.total_value_cents == 1500
        assert order.status == "DRAFT"

    def test_total_is_sum_of_lines(self, db_session, company_a, product_a, empty_product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[
                {"product_id": product_a.id, "qty": 2, "unit_cost_cents": 450},
                {"product_id": empty_product_a.id, "qty": 5, "unit_cost_cents": 120},
            ],
        )
        assert order.total_value_cents == 2 * 450 + 5 * 120

    def test_update_replaces_items(self, db_session, company_a, product_a, empty_product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 2, "unit_cost_cents": 450}],
        )

        update_purchase_order(
            company_id=company_a.id,
            order_id=order.id,
            notes="NF 1234",
            items=[{"product_id": empty_product_a.id, "qty": 7, "unit_cost_cents": 100}],
        )

        assert order.notes == "NF 1234"
        assert [(i.product_id, i.qty) for i in order.items] == [(empty_product_a.id, 7)]
        assert order.total_value_cents == 700

    def test_line_level_edits_recompute_total(self, db_session, company_a, product_a, empty_product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 2, "unit_cost_cents": 450}],
        )

        added = add_purchase_item(
            company_id=company_a.id,
            order_id=order.id,
            item={"product_id": empty_product_a.id, "qty": 1, "unit_cost_cents": 100},
        )
        assert order.total_value_cents == 1000

        update_purchase_item(company_id=company_a.id, item_id=added.id, qty=4, sell_price_cents=250)
        assert added.line_total_cents == 400
        assert added.sell_price_cents == 250
        assert order.total_value_cents == 1300

        remove_purchase_item(company_id=company_a.id, item_id=added.id)
        assert len(order.items) == 1
        assert order.total_value_cents == 900

    def test_supplier_of_the_company_is_accepted(self, db_session, company_a, supplier_a):
        order = create_purchase_order(company_id=company_a.id, supplier_id=supplier_a.id)
        assert order.supplier_id == supplier_a.id

    def test_supplier_of_another_company_is_not_found(self, db_session, company_a, company_b):
        foreign = create_supplier(company_id=company_b.id, patch={"name": "Outro"})

        with pytest.raises(NotFoundError):
            create_purchase_order(company_id=company_a.id, supplier_id=foreign.id)

    def test_product_of_another_company_is_not_found(self, db_session, company_a, product_b):
        with pytest.raises(NotFoundError):
            create_purchase_order(
                company_id=company_a.id,
                items=[{"product_id": product_b.id, "qty": 1}],
            )
        assert db_session.query(PurchaseOrder).count() == 0

    @pytest.mark.parametrize("qty", [0, -2, "1.5", 2.5, True, None])
    def test_invalid_quantities_are_rejected(self, db_session, company_a, product_a, qty):
        with pytest.raises(ValidationError):
            create_purchase_order(
                company_id=company_a.id,
                items=[{"product_id": product_a.id, "qty": qty}],
            )

    def test_unit_cost_is_capped(self, db_session, company_a, product_a):
        with pytest.raises(ValidationError):
            create_purchase_order(
                company_id=company_a.id,
                items=[{"product_id": product_a.id, "qty": 1, "unit_cost_cents": MAX_MONEY_CENTS + 1}],
            )

        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 1_000_000, "unit_cost_cents": MAX_MONEY_CENTS}],
        )
        assert order.total_value_cents == 1_000_000 * MAX_MONEY_CENTS

    def test_order_total_is_capped(self, db_session, company_a, product_a):
        big_line = {"product_id": product_a.id, "qty": 1_000_000, "unit_cost_cents": MAX_MONEY_CENTS}
        order = create_purchase_order(company_id=company_a.id, items=[big_line])

        with pytest.raises(ValidationError):
            add_purchase_item(company_id=company_a.id, order_id=order.id, item=dict(big_line))

        assert len(order.items) == 1
        assert order.total_value_cents == 1_000_000 * MAX_MONEY_CENTS

    def test_negative_cost_is_rejected(self, db_session, company_a, product_a):
        with pytest.raises(ValidationError):
            create_purchase_order(
                company_id=company_a.id,
                items=[{"product_id": product_a.id, "qty": 1, "unit_cost_cents": -1}],
            )


class TestStateMachine:

    def _order(self, company, product):
        return create_purchase_order(
            company_id=company.id,
            items=[{"product_id": product.id, "qty": 1, "unit_cost_cents": 500}],
        )

    def test_finalize_and_reopen(self, db_session, company_a, product_a):
        order = self._order(company_a, product_a)

        finalize_purchase_order(company_id=company_a.id, order_id=order.id)
        assert order.status == "FINALIZED"
        assert order.finalized_at is not None

        reopen_purchase_order(company_id=company_a.id, order_id=order.id)
        assert order.status == "DRAFT"
        assert order.finalized_at is None

    def test_empty_order_cannot_be_finalized(self, db_session, company_a):
        order = create_purchase_order(company_id=company_a.id)

        with pytest.raises(InvalidStateError):
            finalize_purchase_order(company_id=company_a.id, order_id=order.id)

    def test_finalized_lines_are_frozen(self, db_session, company_a, product_a):
        order = self._order(company_a, product_a)
        finalize_purchase_order(company_id=company_a.id, order_id=order.id)

        with pytest.raises(InvalidStateError):
            update_purchase_order(company_id=company_a.id, order_id=order.id, items=[])
        with pytest.raises(InvalidStateError):
            update_purchase_item(company_id=company_a.id, item_id=order.items[0].id, qty=9)

        assert order.items[0].qty == 1

    def test_reopen_requires_finalized(self, db_session, company_a, product_a):
        order = self._order(company_a, product_a)

        with pytest.raises(InvalidStateError):
            reopen_purchase_order(company_id=company_a.id, order_id=order.id)

    def test_posted_order_is_frozen(self, db_session, company_a, product_a):
        order = self._order(company_a, product_a)
        post_stock(company_a.id, order.id)

        with pytest.raises(InvalidStateError):
            update_purchase_order(company_id=company_a.id, order_id=order.id, notes="late edit")
        with pytest.raises(InvalidStateError):
            finalize_purchase_order(company_id=company_a.id, order_id=order.id)
        with pytest.raises(InvalidStateError):
            delete_purchase_order(company_id=company_a.id, order_id=order.id)

    def test_draft_order_can_be_deleted(self, db_session, company_a, product_a):
        order = self._order(company_a, product_a)
        order_id = order.id

        delete_purchase_order(company_id=company_a.id, order_id=order_id)

        assert db_session.get(PurchaseOrder, order_id) is None

    def test_legacy_reversed_status_is_editable_and_postable(self, db_session, company_a, product_a):
        order = self._order(company_a, product_a)
        order.status = purchase_service.STATUS_STOCK_REVERSED
        db_session.commit()

        update_purchase_order(company_id=company_a.id, order_id=order.id, notes="legacy")
        post_stock(company_a.id, order.id)

        assert order.status == "STOCK_POSTED"


class TestReadModels:

    def test_list_filters_by_status_and_search(self, db_session, company_a, company_b, product_a):
        draft = create_purchase_order(company_id=company_a.id, notes="Pedido semanal")
        posted = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 1}],
        )
        post_stock(company_a.id, posted.id)
        create_purchase_order(company_id=company_b.id, notes="Pedido semanal")

        orders, total = list_purchase_orders(company_a.id)
        assert total == 2

        orders, total = list_purchase_orders(company_a.id, status="STOCK_POSTED")
        assert [o.id for o in orders] == [posted.id]

        orders, total = list_purchase_orders(company_a.id, search="semanal")
        assert [o.id for o in orders] == [draft.id]

        orders, total = list_purchase_orders(company_a.id, search="PC-000002")
        assert [o.id for o in orders] == [posted.id]

    def test_list_rejects_unknown_status(self, db_session, company_a):
        with pytest.raises(ValidationError):
            list_purchase_orders(company_a.id, status="CANCELLED")

    def test_details_include_lines_supplier_and_movements(
        self, db_session, company_a, supplier_a, product_a
    ):
        order = create_purchase_order(
            company_id=company_a.id,
            supplier_id=supplier_a.id,
            items=[{"product_id": product_a.id, "qty": 2, "unit_cost_cents": 600}],
        )
        post_stock(company_a.id, order.id)

        details = get_purchase_order_details(company_a.id, order.id)

        assert details["order"]["number"] == order.number
        assert details["supplier"]["id"] == supplier_a.id
        assert [i["qty"] for i in details["items"]] == [2]
        assert [(m["type"], m["reason"], m["qty"]) for m in details["movements"]] == [
            ("IN", "PURCHASE_POST", 2),
        ]
