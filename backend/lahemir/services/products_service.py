# backend/lahemir/services/products_service.py
"""
Product Registry

The product list is a single persisted slot, rewritten whole on every change.
All stock movement from sales and returns goes through ``adjust_quantity`` or
``apply_quantity_deltas`` so quantity can never go negative; ``update`` may set
quantity directly and is reserved for manual admin edits.

Product names are unique after trimming and case-folding.
"""
from __future__ import annotations

import logging
import uuid
from dataclasses import replace
from typing import Callable, Iterable, Optional

from ..errors import DuplicateName, InsufficientStock, ProductNotFound
from ..models import Product
from ..models.records import normalize_name
from .image_service import ImageStore, is_image_data_uri
from .storage_service import PersistedSlot
from lahemir.time_utils import now_iso

logger = logging.getLogger(__name__)

PRODUCT_MUTABLE_FIELDS = {
    "name": "name",
    "price": "price",
    "costPrice": "cost_price",
    "quantity": "quantity",
    "imageUrl": "image_url",
    "barcodeValue": "barcode_value",
}

SAMPLE_PRODUCTS = (
    {"id": "prod_1", "name": "عباية سوداء كلاسيكية", "price": 350, "costPrice": 250, "quantity": 15,
     "imageUrl": "https://placehold.co/300x450.png", "barcodeValue": "123456789012"},
    {"id": "prod_2", "name": "عباية بتطريز فضي", "price": 420, "costPrice": 300, "quantity": 8,
     "imageUrl": "https://placehold.co/300x450.png", "barcodeValue": "123456789013"},
    {"id": "prod_3", "name": "عباية يومية عملية", "price": 280, "costPrice": 180, "quantity": 25,
     "imageUrl": "https://placehold.co/300x450.png", "barcodeValue": "123456789014"},
)


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:16]}"


def sample_products() -> list[Product]:
    stamp = now_iso()
    return [
        Product.from_dict({**p, "createdAt": stamp, "updatedAt": stamp})
        for p in SAMPLE_PRODUCTS
    ]


def products_slot(key: str, backend, *, seed: bool) -> PersistedSlot[list[Product]]:
    return PersistedSlot(
        key,
        sample_products if seed else list,
        backend=backend,
        decode=lambda doc: [Product.from_dict(p) for p in doc],
        encode=lambda products: [p.to_dict() for p in products],
    )


def apply_product_patch(p: Product, patch: dict) -> Product:
    changes = {
        PRODUCT_MUTABLE_FIELDS[k]: v
        for k, v in patch.items()
        if k in PRODUCT_MUTABLE_FIELDS
    }
    return replace(p, **changes)


class ProductRegistry:

    def __init__(
        self,
        slot: PersistedSlot[list[Product]],
        images: Optional[ImageStore] = None,
        *,
        clock: Callable[[], str] = now_iso,
        id_factory: Callable[[str], str] = new_id,
    ):
        self.slot = slot
        self.images = images
        self.clock = clock
        self.id_factory = id_factory

    # -- lookups -----------------------------------------------------------

    def list(self) -> list[Product]:
        return list(self.slot.get())

    def get_by_id(self, product_id: str) -> Optional[Product]:
        return next((p for p in self.slot.get() if p.id == product_id), None)

    def get_by_barcode(self, barcode_value: str) -> Optional[Product]:
        return next((p for p in self.slot.get() if p.barcode_value == barcode_value), None)

    def require(self, product_id: str) -> Product:
        product = self.get_by_id(product_id)
        if product is None:
            raise ProductNotFound(f"Product {product_id} not found", details={"product_id": product_id})
        return product

    def _name_taken(self, name: str, *, exclude_id: Optional[str] = None) -> bool:
        key = normalize_name(name)
        return any(p.normalized_name == key and p.id != exclude_id for p in self.slot.get())

    # -- mutations ---------------------------------------------------------

    def add(self, patch: dict) -> Product:
        """
        Create a product from a validated patch (camelCase keys).

        Raises:
            DuplicateName: If another product already has this name
        """
        name = patch["name"]
        if self._name_taken(name):
            raise DuplicateName("A product with the same name already exists.", details={"name": name})

        stamp = self.clock()
        product_id = self.id_factory("prod")
        image_url = patch.get("imageUrl")

        with self.slot.backend.atomic():
            if is_image_data_uri(image_url) and self.images is not None:
                self.images.save_data_uri(product_id, image_url)
                image_url = ""

            product = Product(
                id=product_id,
                name=name,
                price=patch["price"],
                quantity=patch["quantity"],
                cost_price=patch.get("costPrice"),
                image_url=image_url or "",
                barcode_value=patch.get("barcodeValue"),
                created_at=stamp,
                updated_at=stamp,
            )
            self.slot.set(lambda prev: [*prev, product])

        logger.info("Created product id=%s name=%s", product.id, product.name)
        return product

    def update(self, product_id: str, patch: dict) -> Product:
        """
        Merge a validated patch into a product.

        ``imageUrl`` absent leaves the image alone; a data URI replaces the
        stored image; an empty string removes it.

        Raises:
            ProductNotFound: If product_id does not exist
            DuplicateName: If renaming onto another product's name (nothing is changed)
        """
        current = self.require(product_id)

        if "name" in patch and normalize_name(patch["name"]) != current.normalized_name:
            if self._name_taken(patch["name"], exclude_id=product_id):
                raise DuplicateName("A product with the same name already exists.", details={"name": patch["name"]})

        patch = dict(patch)
        with self.slot.backend.atomic():
            if "imageUrl" in patch and self.images is not None:
                image_url = patch["imageUrl"]
                if is_image_data_uri(image_url):
                    self.images.save_data_uri(product_id, image_url)
                    patch["imageUrl"] = ""
                elif not image_url:
                    self.images.delete_image(product_id)
                    patch["imageUrl"] = ""

            updated = replace(apply_product_patch(current, patch), updated_at=self.clock())
            self.slot.set(lambda prev: [updated if p.id == product_id else p for p in prev])

        logger.info("Updated product id=%s fields=%s", product_id, ", ".join(sorted(patch.keys())))
        return updated

    def delete(self, product_id: str) -> Product:
        """
        Remove a product and its stored image.

        Raises:
            ProductNotFound: If product_id does not exist
        """
        product = self.require(product_id)
        with self.slot.backend.atomic():
            if self.images is not None:
                self.images.delete_image(product_id)
            self.slot.set(lambda prev: [p for p in prev if p.id != product_id])
        logger.info("Deleted product id=%s name=%s", product.id, product.name)
        return product

    def adjust_quantity(self, product_id: str, delta: int) -> Product:
        """
        Move stock by ``delta`` (negative for sales, positive for returns).

        Raises:
            ProductNotFound: If product_id does not exist
            InsufficientStock: If the result would be negative
        """
        return self.apply_quantity_deltas({product_id: delta})[0]

    def apply_quantity_deltas(self, deltas: dict[str, int] | Iterable[tuple[str, int]]) -> list[Product]:
        """
        Apply several stock movements as one write.

        Every delta is checked against current stock first; if any product is
        missing or would go negative, nothing is written.

        Returns:
            The updated products, in the order of ``deltas``
        """
        pairs = list(deltas.items()) if isinstance(deltas, dict) else list(deltas)
        combined: dict[str, int] = {}
        for product_id, delta in pairs:
            combined[product_id] = combined.get(product_id, 0) + delta

        insufficient = []
        by_id = {}
        for product_id, delta in combined.items():
            product = self.require(product_id)
            new_quantity = product.quantity + delta
            if new_quantity < 0:
                insufficient.append({
                    "product_id": product_id,
                    "product_name": product.name,
                    "requested_change": delta,
                    "on_hand": product.quantity,
                })
                continue
            by_id[product_id] = replace(product, quantity=new_quantity, updated_at=self.clock())

        if insufficient:
            raise InsufficientStock(
                "Insufficient quantity to apply stock change",
                details={"items": insufficient},
            )

        self.slot.set(lambda prev: [by_id.get(p.id, p) for p in prev])
        return [by_id[product_id] for product_id in dict.fromkeys(pid for pid, _ in pairs)]

    def replace_all(self, products: list[Product]) -> None:
        """Wholesale replacement (restore from backup). Caller owns image handling."""
        self.slot.set(list(products))
        logger.info("Replaced product registry with %d products", len(products))
