# Overview: Backup export and wholesale restore of users, products, sales and settings.
"""
Backup document:

    {"users": [...], "products": [...], "sales": [...], "settings": {...}}

Images held in the blob store are embedded into their product's ``imageUrl``
as data URIs on export, and moved back into the blob store on restore.

Restore is all-or-nothing: the document is fully parsed before anything is
written, and the four slots plus the image store are replaced in one atomic
block.
"""

from __future__ import annotations

import json
import logging
from dataclasses import replace
from typing import Any

from ..errors import InvalidBackupFormat
from ..models import AppSettings, Product, Sale, User
from .image_service import ImageStore, is_image_data_uri
from .storage_service import SlotBackend

logger = logging.getLogger(__name__)

BACKUP_SECTIONS = {
    "users": list,
    "products": list,
    "sales": list,
    "settings": dict,
}


def _is_local_image(product: Product) -> bool:
    url = product.image_url or ""
    return not url.startswith("data:image") and not url.startswith("http")


class BackupService:

    def __init__(self, *, backend: SlotBackend, products, users, sales, settings, session, images: ImageStore):
        self.backend = backend
        self.products = products
        self.users = users
        self.sales = sales
        self.settings = settings
        self.session = session
        self.images = images

    def create_backup(self) -> dict:
        products = []
        for product in self.products.list():
            doc = product.to_dict()
            if _is_local_image(product):
                data_uri = self.images.get_data_uri(product.id)
                if data_uri:
                    doc["imageUrl"] = data_uri
            products.append(doc)

        backup = {
            "users": [u.to_dict() for u in self.users.list()],
            "products": products,
            "sales": [s.to_dict() for s in self.sales.list()],
            "settings": self.settings.get().to_dict(),
        }
        logger.info(
            "Created backup: %d users, %d products, %d sales",
            len(backup["users"]), len(backup["products"]), len(backup["sales"]),
        )
        return backup

    def dumps(self) -> str:
        return json.dumps(self.create_backup(), ensure_ascii=False, indent=2)

    @staticmethod
    def parse(document: Any) -> tuple[list[User], list[Product], list[Sale], AppSettings]:
        """
        Parse a backup document without touching storage.

        Raises:
            InvalidBackupFormat: If a section is missing, has the wrong shape,
                or holds a record that cannot be read,
                or lists users without any admin
        """
        if isinstance(document, (str, bytes)):
            try:
                document = json.loads(document)
            except ValueError:
                raise InvalidBackupFormat("Backup file is not valid JSON.")

        if not isinstance(document, dict):
            raise InvalidBackupFormat("Backup file must contain a JSON object.")

        missing = [k for k in BACKUP_SECTIONS if k not in document or document[k] is None]
        if missing:
            raise InvalidBackupFormat(
                "Invalid backup file format.",
                details={"missing": missing},
            )

        wrong = [k for k, shape in BACKUP_SECTIONS.items() if not isinstance(document[k], shape)]
        if wrong:
            raise InvalidBackupFormat(
                "Invalid backup file format.",
                details={"wrong_shape": wrong},
            )

        try:
            users = [User.from_dict(u) for u in document["users"]]
            products = [Product.from_dict(p) for p in document["products"]]
            sales = [Sale.from_dict(s) for s in document["sales"]]
            settings = AppSettings.from_dict(document["settings"])
        except (ValueError, TypeError) as exc:
            raise InvalidBackupFormat(f"Invalid backup record: {exc}")

        if users and not any(u.is_admin for u in users):
            raise InvalidBackupFormat(
                "Backup must contain at least one admin user.",
                details={"users": "no admin"},
            )

        return users, products, sales, settings

    def restore_backup(self, document: Any) -> dict:
        """Replace users, products, sales and settings with the backup's contents."""
        users, products, sales, settings = self.parse(document)

        with self.backend.atomic():
            self.images.clear_images()
            stored_products = []
            for product in products:
                if is_image_data_uri(product.image_url):
                    self.images.save_data_uri(product.id, product.image_url)
                    product = replace(product, image_url="")
                stored_products.append(product)

            self.products.replace_all(stored_products)
            self.users.replace_all(users)
            self.sales.replace_all(sales)
            self.settings.replace_all(settings)

        self.session.revalidate()

        summary = {"users": len(users), "products": len(products), "sales": len(sales)}
        logger.info("Restored backup: %s", summary)
        return summary
