# Overview: Point-of-sale cart; in-memory staging of one sale before checkout.

from __future__ import annotations

from decimal import Decimal
from typing import Optional

from ..errors import CannotExceedStock, DiscountExceedsProfit, ExceedsStock, OutOfStock, ProductNotFound
from ..models import Product, SaleItem, User
from ..money import ZERO, round_money, to_decimal, to_json_number
from .products_service import ProductRegistry
from .sales_service import SaleLedger, SaleResult


class Cart:
    """
    Lines staged for one checkout. Never persisted.

    Stock checks always use the registry's current quantity, not the snapshot
    taken when the line was staged. The discount belongs to the cart and is
    reset whenever the cart is cleared.
    """

    def __init__(self, products: ProductRegistry):
        self.products = products
        self._items: list[SaleItem] = []
        self.discount: Decimal = ZERO

    @property
    def items(self) -> list[SaleItem]:
        return list(self._items)

    def _find(self, product_id: str) -> Optional[SaleItem]:
        return next((i for i in self._items if i.product_id == product_id), None)

    def add_item(self, product: Product) -> SaleItem:
        """
        Stage one more unit of ``product``.

        Raises:
            OutOfStock: If the product has no stock
            ProductNotFound: If a staged product was deleted from the registry
            CannotExceedStock: If the staged quantity already equals current stock
        """
        if product.quantity <= 0:
            raise OutOfStock(f"Product \"{product.name}\" is out of stock.", details={"product_id": product.id})

        existing = self._find(product.id)
        if existing is not None:
            in_system = self.products.get_by_id(product.id)
            if in_system is None:
                raise ProductNotFound(f"Product {product.id} not found", details={"product_id": product.id})
            if existing.quantity >= in_system.quantity:
                raise CannotExceedStock(
                    f"Cannot add more of \"{product.name}\".",
                    details={"product_id": product.id, "on_hand": in_system.quantity},
                )
            existing.quantity += 1
            return existing

        item = SaleItem(
            product_id=product.id,
            product_name=product.name,
            price_per_unit=product.price,
            quantity=1,
        )
        self._items.append(item)
        return item

    def set_item_quantity(self, product_id: str, quantity: int) -> Optional[SaleItem]:
        """
        Set a staged line's quantity; zero or less removes the line.

        Raises:
            ProductNotFound: If the product no longer exists
            ExceedsStock: If quantity is above current stock
        """
        product = self.products.get_by_id(product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})

        if quantity <= 0:
            self.remove_item(product_id)
            return None

        if quantity > product.quantity:
            raise ExceedsStock(
                f"Available quantity of \"{product.name}\" is {product.quantity}.",
                details={"product_id": product_id, "on_hand": product.quantity},
            )

        item = self._find(product_id)
        if item is None:
            return None
        item.quantity = quantity
        return item

    def remove_item(self, product_id: str) -> None:
        self._items = [i for i in self._items if i.product_id != product_id]

    def set_discount(self, value) -> Decimal:
        self.discount = max(ZERO, to_decimal(value or 0))
        return self.discount

    def clear(self) -> None:
        self._items = []
        self.discount = ZERO

    def total(self) -> Decimal:
        return round_money(sum((i.line_total for i in self._items), ZERO))

    def to_dict(self) -> dict:
        total = self.total()
        return {
            "items": [i.to_dict() for i in self._items],
            "total": to_json_number(total),
            "discount": to_json_number(self.discount),
            "finalTotal": to_json_number(max(ZERO, total - self.discount)),
        }

    def checkout(self, ledger: SaleLedger, seller: User, payment_method: Optional[str] = None) -> SaleResult:
        """
        Record the staged lines as a sale; the cart is cleared only on success.

        A discount refused for exceeding the profit is reset to 0, the lines stay.
        """
        try:
            result = ledger.record_sale(
                [(i.product_id, i.quantity) for i in self._items],
                self.discount,
                seller,
                payment_method=payment_method,
            )
        except DiscountExceedsProfit:
            self.discount = ZERO
            raise
        self.clear()
        return result
