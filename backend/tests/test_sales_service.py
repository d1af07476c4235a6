"""
Sale ledger tests.

Verifies:
- Sale totals, discount clamping and stock decrements
- A sale that cannot be fully stocked records nothing
- Full and partial returns restock and move the sale to returned at most once
- Daily report totals count active sales only
"""

from datetime import date
from decimal import Decimal

import pytest

from lahemir.errors import (
    AlreadyReturned,
    DiscountExceedsProfit,
    InsufficientStock,
    NothingToReturn,
    ProductNotFound,
    SaleNotFound,
    StockInconsistency,
    StorageAccessError,
    ValidationError,
)
from lahemir.models import SALE_STATUS_ACTIVE, SALE_STATUS_RETURNED
from lahemir.services.products_service import products_slot
from lahemir.services.reporting_service import daily_report
from lahemir.services.storage_service import SqlSlotBackend
from lahemir.time_utils import parse_iso_datetime

from conftest import make_product


class TestRecordSale:

    def test_sale_with_discount(self, services, admin):
        widget = make_product(services, price="10", quantity=5)

        result = services.sales.record_sale([(widget.id, 3)], Decimal("5"), admin)
        sale = result.sale

        assert sale.original_total_amount == Decimal("30")
        assert sale.discount_amount == Decimal("5")
        assert sale.total_amount == Decimal("25")
        assert sale.status == SALE_STATUS_ACTIVE
        assert sale.seller_id == admin.id
        assert sale.seller_username == admin.username
        assert sale.payment_method == "نقدي"
        assert not result.discount_clamped
        assert services.products.get_by_id(widget.id).quantity == 2

    def test_discount_clamped_to_total(self, services, admin):
        widget = make_product(services, price="50", quantity=5)

        result = services.sales.record_sale([(widget.id, 2)], Decimal("150"), admin)

        assert result.sale.original_total_amount == Decimal("100")
        assert result.sale.discount_amount == Decimal("100")
        assert result.sale.total_amount == Decimal("0")
        assert result.discount_clamped
        assert result.requested_discount == Decimal("150")

    def test_negative_discount_counts_as_zero(self, services, admin):
        widget = make_product(services, price="10", quantity=5)
        sale = services.sales.record_sale([(widget.id, 1)], Decimal("-3"), admin).sale

        assert sale.discount_amount == Decimal("0")
        assert sale.total_amount == Decimal("10")

    def test_line_snapshot_survives_product_edit(self, services, admin):
        widget = make_product(services, price="10", quantity=5)
        sale = services.sales.record_sale([(widget.id, 1)], 0, admin, payment_method="سداد").sale

        services.products.update(widget.id, {"name": "Renamed", "price": Decimal("99")})

        stored = services.sales.require(sale.id)
        assert stored.items[0].product_name == "Widget"
        assert stored.items[0].price_per_unit == Decimal("10")
        assert stored.payment_method == "سداد"

    def test_repeated_lines_merge(self, services, admin):
        widget = make_product(services, quantity=5)
        sale = services.sales.record_sale([(widget.id, 1), (widget.id, 2)], 0, admin).sale

        assert len(sale.items) == 1
        assert sale.items[0].quantity == 3

    def test_insufficient_stock_records_nothing(self, services, admin):
        widget = make_product(services, name="Widget", quantity=5)
        gadget = make_product(services, name="Gadget", quantity=1)

        with pytest.raises(InsufficientStock):
            services.sales.record_sale([(widget.id, 2), (gadget.id, 2)], 0, admin)

        assert services.sales.list() == []
        assert services.products.get_by_id(widget.id).quantity == 5
        assert services.products.get_by_id(gadget.id).quantity == 1

    def test_unknown_product(self, services, admin):
        with pytest.raises(ProductNotFound):
            services.sales.record_sale([("prod_missing", 1)], 0, admin)

    def test_empty_or_non_positive_lines(self, services, admin):
        widget = make_product(services)
        with pytest.raises(ValidationError):
            services.sales.record_sale([], 0, admin)
        with pytest.raises(ValidationError):
            services.sales.record_sale([(widget.id, 0)], 0, admin)

    def test_stock_race_reported_as_inconsistency(self, services, admin, monkeypatch):
        widget = make_product(services, quantity=5)

        def fail(deltas):
            raise InsufficientStock("stock moved", details={"items": []})

        monkeypatch.setattr(services.products, "apply_quantity_deltas", fail)

        with pytest.raises(StockInconsistency):
            services.sales.record_sale([(widget.id, 1)], 0, admin)
        assert services.sales.list() == []

    def test_failed_sale_write_restores_stock(self, services, admin, monkeypatch):
        widget = make_product(services, quantity=5)
        sales_key = services.sales.slot.key
        save = services.backend.save

        def save_failing_for_sales(key, raw, origin=None):
            if key == sales_key:
                raise StorageAccessError(f"Failed to write storage key '{key}'")
            return save(key, raw, origin=origin)

        monkeypatch.setattr(services.backend, "save", save_failing_for_sales)

        with pytest.raises(StorageAccessError):
            services.sales.record_sale([(widget.id, 2)], 0, admin)

        assert services.products.get_by_id(widget.id).quantity == 5
        assert services.sales.list() == []

        assert services.products.slot.sync() is False
        assert services.products.get_by_id(widget.id).quantity == 5

        stored = products_slot(services.products.slot.key, SqlSlotBackend(), seed=False)
        assert [p.quantity for p in stored.get()] == [5]

    def test_admin_discount_over_profit_refused(self, services, admin):
        widget = make_product(services, price="10", quantity=5, costPrice=Decimal("7"))

        with pytest.raises(DiscountExceedsProfit) as exc_info:
            services.sales.record_sale([(widget.id, 2)], Decimal("7"), admin)

        assert exc_info.value.details == {"discount": "7", "profit": "6.00"}
        assert services.sales.list() == []
        assert services.products.get_by_id(widget.id).quantity == 5

        sale = services.sales.record_sale([(widget.id, 2)], Decimal("6"), admin).sale
        assert sale.total_amount == Decimal("14")

    def test_profit_cap_applies_to_admins_only(self, services, employee):
        widget = make_product(services, price="10", quantity=5, costPrice=Decimal("7"))

        sale = services.sales.record_sale([(widget.id, 2)], Decimal("7"), employee).sale

        assert sale.discount_amount == Decimal("7")
        assert sale.total_amount == Decimal("13")

    def test_profit_cap_skipped_without_cost_prices(self, services, admin):
        widget = make_product(services, price="10", quantity=5)

        result = services.sales.record_sale([(widget.id, 1)], Decimal("9"), admin)
        assert result.sale.total_amount == Decimal("1")

    def test_profit_cap_skipped_when_selling_at_a_loss(self, services, admin):
        widget = make_product(services, price="10", quantity=5, costPrice=Decimal("12"))

        result = services.sales.record_sale([(widget.id, 1)], Decimal("3"), admin)
        assert result.sale.total_amount == Decimal("7")

    def test_most_recent_first(self, services, admin):
        widget = make_product(services, quantity=5)
        first = services.sales.record_sale([(widget.id, 1)], 0, admin).sale
        second = services.sales.record_sale([(widget.id, 1)], 0, admin).sale

        assert [s.id for s in services.sales.list()] == [second.id, first.id]


class TestReturns:

    def test_full_return(self, services, admin):
        widget = make_product(services, price="10", quantity=5)
        sale = services.sales.record_sale([(widget.id, 3)], Decimal("5"), admin).sale

        result = services.sales.return_sale(sale.id)

        assert result.sale.status == SALE_STATUS_RETURNED
        assert result.sale.returned_date is not None
        assert result.sale.total_amount == Decimal("0")
        assert result.returned == {widget.id: 3}
        assert services.products.get_by_id(widget.id).quantity == 5
        assert services.sales.require(sale.id).is_returned

    def test_second_return_refused(self, services, admin):
        widget = make_product(services, quantity=5)
        sale = services.sales.record_sale([(widget.id, 3)], 0, admin).sale
        services.sales.return_sale(sale.id)

        with pytest.raises(AlreadyReturned):
            services.sales.return_sale(sale.id)
        assert services.products.get_by_id(widget.id).quantity == 5

    def test_return_unknown_sale(self, services):
        with pytest.raises(SaleNotFound):
            services.sales.return_sale("sale_missing")

    def test_partial_return_prorates_discount(self, services, admin):
        widget = make_product(services, price="10", quantity=5)
        sale = services.sales.record_sale([(widget.id, 4)], Decimal("8"), admin).sale

        result = services.sales.return_items(sale.id, [(widget.id, 1)])

        assert result.sale.status == SALE_STATUS_ACTIVE
        assert result.sale.items[0].returned_quantity == 1
        assert result.sale.total_amount == Decimal("24")
        assert services.products.get_by_id(widget.id).quantity == 2

        services.sales.return_items(sale.id, [(widget.id, 3)])
        final = services.sales.require(sale.id)
        assert final.status == SALE_STATUS_RETURNED
        assert final.total_amount == Decimal("0")
        assert services.products.get_by_id(widget.id).quantity == 5

    def test_partial_return_clamps_quantity(self, services, admin):
        widget = make_product(services, quantity=5)
        sale = services.sales.record_sale([(widget.id, 2)], 0, admin).sale

        result = services.sales.return_items(sale.id, [(widget.id, 10)])

        assert result.returned == {widget.id: 2}
        assert result.sale.is_returned

    def test_partial_return_with_nothing_valid(self, services, admin):
        widget = make_product(services, quantity=5)
        sale = services.sales.record_sale([(widget.id, 2)], 0, admin).sale

        with pytest.raises(NothingToReturn):
            services.sales.return_items(sale.id, [("prod_other", 1), (widget.id, 0)])

    def test_return_after_product_deleted(self, services, admin):
        widget = make_product(services, quantity=5)
        sale = services.sales.record_sale([(widget.id, 2)], 0, admin).sale
        services.products.delete(widget.id)

        result = services.sales.return_sale(sale.id)

        assert result.sale.is_returned
        assert result.restock_failures == [{"product_id": widget.id, "quantity": 2}]


class TestDailyReport:

    def test_counts_active_sales_only(self, services, admin):
        widget = make_product(services, price="10", quantity=10)
        kept = services.sales.record_sale([(widget.id, 2)], 0, admin).sale
        returned = services.sales.record_sale([(widget.id, 3)], 0, admin).sale
        services.sales.return_sale(returned.id)

        day = parse_iso_datetime(kept.sale_date).date()
        report = daily_report(services.sales, day)

        assert report["count"] == 2
        assert report["activeCount"] == 1
        assert report["returnedCount"] == 1
        assert report["totalActiveAmount"] == 20

    def test_other_day_is_empty(self, services, admin):
        widget = make_product(services, quantity=10)
        services.sales.record_sale([(widget.id, 1)], 0, admin)

        report = daily_report(services.sales, date(2000, 1, 1))
        assert report["count"] == 0
        assert report["totalActiveAmount"] == 0
