# Overview: Pytest coverage for retry handling and optimistic version checks.

"""
Concurrency Tests

SQLite ignores SELECT ... FOR UPDATE, so these tests exercise the other
half of the protection: version_id conflicts surface as StaleDataError and
run_with_retry turns repeated conflicts into TransactionConflictError.
"""

import pytest
from sqlalchemy import update
from sqlalchemy.orm.exc import StaleDataError

from backoffice.errors import InvalidStateError, NotFoundError, TransactionConflictError
from backoffice.models import Product, PurchaseOrder
from backoffice.services.concurrency import run_with_retry
from backoffice.services.posting_service import post_stock
from backoffice.services.purchase_service import (
    create_purchase_order,
    add_purchase_item,
    remove_purchase_item,
)


class TestRunWithRetry:

    def test_retries_until_success(self, db_session):
        calls = []

        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise StaleDataError("version mismatch")
            return "ok"

        assert run_with_retry(flaky) == "ok"
        assert len(calls) == 3

    def test_exhausted_retries_raise_conflict(self, db_session):
        calls = []

        def always_stale():
            calls.append(1)
            raise StaleDataError("version mismatch")

        with pytest.raises(TransactionConflictError) as exc_info:
            run_with_retry(always_stale, attempts=2, backoff_base=0)

        assert len(calls) == 2
        assert exc_info.value.kind == "transaction_conflict"
        assert exc_info.value.http_status == 409

    def test_business_errors_are_not_retried(self, db_session):
        calls = []

        def invalid():
            calls.append(1)
            raise InvalidStateError("nope")

        with pytest.raises(InvalidStateError):
            run_with_retry(invalid)

        assert len(calls) == 1


class TestOptimisticVersions:

    def test_stale_product_write_is_detected(self, db_session, company_a, product_a):
        assert product_a.stock == 10  # loads version 1 into the session

        # Simulate another writer bumping the row version
        db_session.execute(
            update(Product)
            .where(Product.id == product_a.id)
            .values(stock=11, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )

        product_a.name = "Renamed"
        with pytest.raises(StaleDataError):
            db_session.flush()
        db_session.rollback()

        assert product_a.stock == 10

    def test_stale_order_write_is_detected(self, db_session, company_a, product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 1}],
        )
        assert order.status == "DRAFT"

        db_session.execute(
            update(PurchaseOrder)
            .where(PurchaseOrder.id == order.id)
            .values(version_id=PurchaseOrder.version_id + 1)
            .execution_options(synchronize_session=False)
        )

        order.notes = "stale"
        with pytest.raises(StaleDataError):
            db_session.flush()
        db_session.rollback()

    def test_posting_reads_fresh_rows_after_lock(self, db_session, company_a, product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 10, "unit_cost_cents": 700}],
        )
        assert product_a.stock == 10

        # Stock changed behind the session's back; posting must not use the cached 10
        db_session.execute(
            update(Product)
            .where(Product.id == product_a.id)
            .values(stock=30, version_id=Product.version_id + 1)
            .execution_options(synchronize_session=False)
        )

        post_stock(company_a.id, order.id)

        # 30 @ 5.00 + 10 @ 7.00 -> 40 @ 5.50
        assert product_a.stock == 40
        assert product_a.cost_cents == 550


class TestLineEditsTouchOrder:

    def test_zero_cost_line_changes_bump_order_version(self, db_session, company_a, product_a, empty_product_a):
        order = create_purchase_order(
            company_id=company_a.id,
            items=[{"product_id": product_a.id, "qty": 1}],
        )
        start_version = order.version_id

        # empty_product_a has cost 0, so the total does not move
        line = add_purchase_item(
            company_id=company_a.id,
            order_id=order.id,
            item={"product_id": empty_product_a.id, "qty": 3},
        )
        assert order.total_value_cents == 500
        assert order.version_id == start_version + 1

        remove_purchase_item(company_id=company_a.id, item_id=line.id)
        assert order.total_value_cents == 500
        assert order.version_id == start_version + 2

    def test_line_of_foreign_order_is_not_found(self, db_session, company_a, company_b, product_b):
        foreign = create_purchase_order(
            company_id=company_b.id,
            items=[{"product_id": product_b.id, "qty": 1}],
        )

        with pytest.raises(NotFoundError):
            remove_purchase_item(company_id=company_a.id, item_id=foreign.items[0].id)

        assert len(foreign.items) == 1
