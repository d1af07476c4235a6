"""
Sale Ledger

Sales are recorded most-recent-first in a single persisted slot and are never
deleted. Each sale moves ``active -> returned`` at most once.

Recording a sale is all-or-nothing: every line is validated against current
stock before anything is written, and the stock decrements and the new sale
record are committed in one atomic storage block. A decrement that still fails
(stock moved between validation and write) is reported as a StockInconsistency
and nothing from that sale is kept.

Line items carry the product name and unit price as they were at the time of
sale; later product edits never rewrite history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Callable, Iterable, Optional

from ..errors import (
    AlreadyReturned,
    DiscountExceedsProfit,
    InsufficientStock,
    NothingToReturn,
    ProductNotFound,
    SaleNotFound,
    StockInconsistency,
    ValidationError,
)
from ..models import SALE_STATUS_ACTIVE, SALE_STATUS_RETURNED, Sale, SaleItem, User
from ..money import ZERO, round_money, to_decimal
from .products_service import ProductRegistry, new_id
from .storage_service import PersistedSlot
from lahemir.time_utils import now_iso

logger = logging.getLogger(__name__)


def sales_slot(key: str, backend) -> PersistedSlot[list[Sale]]:
    return PersistedSlot(
        key,
        list,
        backend=backend,
        decode=lambda doc: [Sale.from_dict(s) for s in doc],
        encode=lambda sales: [s.to_dict() for s in sales],
    )


@dataclass
class SaleResult:
    sale: Sale
    requested_discount: Decimal
    discount_clamped: bool = False


@dataclass
class ReturnResult:
    sale: Sale
    returned: dict[str, int] = field(default_factory=dict)
    restock_failures: list[dict] = field(default_factory=list)


def _merge_lines(lines: Iterable[tuple[str, int]]) -> dict[str, int]:
    merged: dict[str, int] = {}
    for product_id, quantity in lines:
        if quantity <= 0:
            raise ValidationError("Sale quantities must be positive", details={"product_id": product_id})
        merged[product_id] = merged.get(product_id, 0) + quantity
    return merged


class SaleLedger:

    def __init__(
        self,
        slot: PersistedSlot[list[Sale]],
        products: ProductRegistry,
        *,
        default_payment_method: Optional[str] = None,
        clock: Callable[[], str] = now_iso,
        id_factory: Callable[[str], str] = new_id,
    ):
        self.slot = slot
        self.products = products
        self.default_payment_method = default_payment_method
        self.clock = clock
        self.id_factory = id_factory

    def list(self) -> list[Sale]:
        return list(self.slot.get())

    def get_by_id(self, sale_id: str) -> Optional[Sale]:
        return next((s for s in self.slot.get() if s.id == sale_id), None)

    def require(self, sale_id: str) -> Sale:
        sale = self.get_by_id(sale_id)
        if sale is None:
            raise SaleNotFound("Sale not found", details={"sale_id": sale_id})
        return sale

    def _validate_on_hand(self, requested: dict[str, int]) -> list[SaleItem]:
        items = []
        insufficient = []
        for product_id, quantity in requested.items():
            product = self.products.get_by_id(product_id)
            if product is None:
                raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
            if product.quantity < quantity:
                insufficient.append({
                    "product_id": product_id,
                    "product_name": product.name,
                    "requested_quantity": quantity,
                    "on_hand": product.quantity,
                })
                continue
            items.append(SaleItem(
                product_id=product.id,
                product_name=product.name,
                quantity=quantity,
                price_per_unit=product.price,
            ))
        if insufficient:
            first = insufficient[0]
            raise InsufficientStock(
                f"Not enough stock for \"{first['product_name']}\". Available: {first['on_hand']}",
                details={"items": insufficient},
            )
        return items

    def _profit(self, items: list[SaleItem]) -> Optional[Decimal]:
        """Total minus the cost of the goods, or None when no item has a cost price."""
        costs = [(self.products.get_by_id(i.product_id), i.quantity) for i in items]
        if not any(p is not None and p.cost_price is not None for p, _ in costs):
            return None
        cost = sum(((p.cost_price or ZERO) * qty for p, qty in costs if p is not None), ZERO)
        return round_money(sum((i.line_total for i in items), ZERO) - cost)

    def record_sale(
        self,
        lines: Iterable[tuple[str, int]],
        discount,
        seller: User,
        payment_method: Optional[str] = None,
    ) -> SaleResult:
        """
        Record a sale and take its quantities out of stock.

        ``lines`` are (product_id, quantity) pairs; repeated products are merged.
        A discount larger than the sale total is cut down to the total (the
        result flags it so the caller can warn); a negative one counts as 0.

        When an admin sells goods with known cost prices, a discount larger
        than the profit is refused outright.

        Raises:
            ValidationError: If there are no lines or a quantity is not positive
            DiscountExceedsProfit: If an admin's discount is larger than the profit
            ProductNotFound: If a product does not exist
            InsufficientStock: If any line asks for more than is on hand
            StockInconsistency: If stock changed between validation and the write
        """
        requested = _merge_lines(lines)
        if not requested:
            raise ValidationError("Cannot record a sale with no items")

        items = self._validate_on_hand(requested)

        original_total = round_money(sum((i.line_total for i in items), ZERO))
        requested_discount = max(ZERO, to_decimal(discount or 0))
        if seller.is_admin and requested_discount > ZERO:
            profit = self._profit(items)
            if profit is not None and profit > ZERO and requested_discount > profit:
                raise DiscountExceedsProfit(
                    "The requested discount exceeds the allowed limit for this sale.",
                    details={"discount": str(requested_discount), "profit": str(profit)},
                )
        discount_amount = min(requested_discount, original_total)
        total = max(ZERO, original_total - discount_amount)

        sale = Sale(
            id=self.id_factory("sale"),
            items=items,
            original_total_amount=original_total,
            discount_amount=round_money(discount_amount),
            total_amount=round_money(total),
            sale_date=self.clock(),
            seller_id=seller.id,
            seller_username=seller.username,
            status=SALE_STATUS_ACTIVE,
            payment_method=payment_method or self.default_payment_method,
        )

        with self.slot.backend.atomic():
            try:
                self.products.apply_quantity_deltas([(i.product_id, -i.quantity) for i in items])
            except (InsufficientStock, ProductNotFound) as exc:
                logger.error("Stock changed while recording sale %s: %s", sale.id, exc)
                raise StockInconsistency(
                    "Failed to update product quantity. The sale was cancelled.",
                    details=exc.details,
                ) from exc
            self.slot.set(lambda prev: [sale, *prev])

        logger.info(
            "Recorded sale id=%s seller=%s total=%s discount=%s",
            sale.id, seller.username, sale.total_amount, sale.discount_amount,
        )
        return SaleResult(
            sale=sale,
            requested_discount=requested_discount,
            discount_clamped=requested_discount > original_total,
        )

    def return_sale(self, sale_id: str) -> ReturnResult:
        """
        Return everything still outstanding on a sale and restock it.

        Raises:
            SaleNotFound: If sale_id does not exist
            AlreadyReturned: If the sale was already returned
        """
        sale = self.require(sale_id)
        if sale.is_returned:
            raise AlreadyReturned("This sale has already been returned.", details={"sale_id": sale_id})
        remaining = {i.product_id: i.returnable_quantity for i in sale.items if i.returnable_quantity > 0}
        return self._process_return(sale, remaining)

    def return_items(self, sale_id: str, lines: Iterable[tuple[str, int]]) -> ReturnResult:
        """
        Return part of a sale. Quantities beyond what is still returnable on a
        line are cut down; lines for products not on the sale are ignored.

        Raises:
            SaleNotFound: If sale_id does not exist
            AlreadyReturned: If the sale was already fully returned
            NothingToReturn: If no valid quantity was requested
        """
        sale = self.require(sale_id)
        if sale.is_returned:
            raise AlreadyReturned("This sale has already been returned.", details={"sale_id": sale_id})

        requested: dict[str, int] = {}
        for product_id, quantity in lines:
            if quantity > 0:
                requested[product_id] = requested.get(product_id, 0) + quantity

        accepted = {}
        for item in sale.items:
            quantity = min(requested.get(item.product_id, 0), item.returnable_quantity)
            if quantity > 0:
                accepted[item.product_id] = quantity

        if not accepted:
            raise NothingToReturn("No valid quantities were selected for return.")
        return self._process_return(sale, accepted)

    def _process_return(self, sale: Sale, accepted: dict[str, int]) -> ReturnResult:
        result = ReturnResult(sale=sale, returned=dict(accepted))

        items = [
            replace(i, returned_quantity=i.returned_quantity + accepted.get(i.product_id, 0))
            for i in sale.items
        ]

        with self.slot.backend.atomic():
            for product_id, quantity in accepted.items():
                try:
                    self.products.adjust_quantity(product_id, quantity)
                except ProductNotFound as exc:
                    # Product deleted since the sale; the return still stands
                    logger.warning("Could not restock product %s for sale %s: %s", product_id, sale.id, exc)
                    result.restock_failures.append({"product_id": product_id, "quantity": quantity})

            updated = replace(sale, items=items, total_amount=_net_total(sale, items))
            if all(i.returnable_quantity == 0 for i in items):
                updated = replace(
                    updated,
                    status=SALE_STATUS_RETURNED,
                    returned_date=self.clock(),
                    total_amount=ZERO,
                )
            self.slot.set(lambda prev: [updated if s.id == sale.id else s for s in prev])

        logger.info("Returned items on sale id=%s status=%s items=%s", sale.id, updated.status, accepted)
        result.sale = updated
        return result

    def replace_all(self, sales: list[Sale]) -> None:
        self.slot.set(list(sales))
        logger.info("Replaced sale ledger with %d sales", len(sales))


def _net_total(sale: Sale, items: list[SaleItem]) -> Decimal:
    """Total of what is still sold, with the original discount pro-rated."""
    gross = sum((i.line_total for i in items), ZERO)
    net = sum((i.price_per_unit * i.returnable_quantity for i in items), ZERO)
    if gross <= ZERO:
        return ZERO
    ratio = sale.discount_amount / gross
    return max(ZERO, round_money(net - net * ratio))
