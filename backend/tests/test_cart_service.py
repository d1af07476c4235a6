"""
Cart tests.

Verifies:
- Staged quantities never exceed current stock
- The discount belongs to the cart and resets with it
- Checkout records the sale and clears the cart only on success
"""

from decimal import Decimal

import pytest

from lahemir.errors import (
    CannotExceedStock,
    DiscountExceedsProfit,
    ExceedsStock,
    InsufficientStock,
    OutOfStock,
    ProductNotFound,
)

from conftest import make_product


class TestCart:

    def test_add_item_stages_one_unit(self, services):
        widget = make_product(services, price="10", quantity=5)

        services.cart.add_item(widget)
        services.cart.add_item(widget)

        [line] = services.cart.items
        assert line.quantity == 2
        assert line.price_per_unit == Decimal("10")
        assert services.cart.total() == Decimal("20")

    def test_cannot_exceed_stock(self, services):
        widget = make_product(services, quantity=1)

        services.cart.add_item(widget)
        with pytest.raises(CannotExceedStock):
            services.cart.add_item(widget)
        assert services.cart.items[0].quantity == 1

    def test_out_of_stock(self, services):
        widget = make_product(services, quantity=0)

        with pytest.raises(OutOfStock):
            services.cart.add_item(widget)
        assert services.cart.items == []

    def test_set_quantity(self, services):
        widget = make_product(services, quantity=3)
        services.cart.add_item(widget)

        services.cart.set_item_quantity(widget.id, 3)
        assert services.cart.items[0].quantity == 3

        with pytest.raises(ExceedsStock):
            services.cart.set_item_quantity(widget.id, 4)
        assert services.cart.items[0].quantity == 3

        services.cart.set_item_quantity(widget.id, 0)
        assert services.cart.items == []

    def test_set_quantity_of_deleted_product(self, services):
        widget = make_product(services, quantity=3)
        services.cart.add_item(widget)
        services.products.delete(widget.id)

        with pytest.raises(ProductNotFound):
            services.cart.set_item_quantity(widget.id, 1)

    def test_add_more_of_deleted_product(self, services):
        widget = make_product(services, quantity=3)
        services.cart.add_item(widget)
        services.products.delete(widget.id)

        with pytest.raises(ProductNotFound):
            services.cart.add_item(widget)
        assert services.cart.items[0].quantity == 1

    def test_to_dict(self, services):
        widget = make_product(services, price="12.5", quantity=3)
        services.cart.add_item(widget)
        services.cart.add_item(widget)
        services.cart.set_discount(5)

        assert services.cart.to_dict() == {
            "items": [{
                "productId": widget.id,
                "productName": "Widget",
                "quantity": 2,
                "pricePerUnit": 12.5,
                "returnedQuantity": 0,
            }],
            "total": 25,
            "discount": 5,
            "finalTotal": 20,
        }

    def test_checkout(self, services, admin):
        widget = make_product(services, price="10", quantity=5)
        services.cart.add_item(widget)
        services.cart.add_item(widget)
        services.cart.set_discount(3)

        result = services.cart.checkout(services.sales, admin)

        assert result.sale.total_amount == Decimal("17")
        assert services.products.get_by_id(widget.id).quantity == 3
        assert services.cart.items == []
        assert services.cart.discount == Decimal("0")

    def test_failed_checkout_keeps_cart(self, services, admin):
        widget = make_product(services, quantity=2)
        services.cart.add_item(widget)
        services.cart.add_item(widget)
        services.products.adjust_quantity(widget.id, -1)

        with pytest.raises(InsufficientStock):
            services.cart.checkout(services.sales, admin)

        assert services.cart.items[0].quantity == 2
        assert services.sales.list() == []

    def test_discount_over_profit_resets_discount(self, services, admin):
        widget = make_product(services, price="10", quantity=5, costPrice=Decimal("6"))
        services.cart.add_item(widget)
        services.cart.add_item(widget)
        services.cart.set_discount(9)

        with pytest.raises(DiscountExceedsProfit):
            services.cart.checkout(services.sales, admin)

        assert services.cart.discount == Decimal("0")
        assert services.cart.items[0].quantity == 2
        assert services.products.get_by_id(widget.id).quantity == 5
        assert services.sales.list() == []
