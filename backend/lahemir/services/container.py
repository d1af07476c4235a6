# Overview: Builds the service objects once per application and exposes them to routes and CLI.
"""
Service container

Everything stateful (slots, registries, ledger, cart) is created here once, in
``create_app``, and stored on ``app.extensions``. Routes and CLI commands get
it through ``get_services()``; tests can build their own with
``build_services`` and a MemorySlotBackend.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional

from flask import current_app

from ..models import ROLE_ADMIN, User
from .auth_service import UserRegistry, users_slot
from .backup_service import BackupService
from .cart_service import Cart
from .image_service import ImageStore, image_store_for
from .products_service import ProductRegistry, products_slot
from .sales_service import SaleLedger, sales_slot
from .session_service import Session, auth_sessions_slot
from .settings_service import AppSettingsService, settings_slot
from .storage_service import PersistedSlot, SlotBackend, SqlSlotBackend

EXTENSION_KEY = "lahemir"


@dataclass
class PosServices:
    backend: SlotBackend
    images: ImageStore
    products: ProductRegistry
    users: UserRegistry
    session: Session
    sales: SaleLedger
    settings: AppSettingsService
    cart: Cart
    backup: BackupService

    def slots(self) -> list[PersistedSlot]:
        return [
            self.products.slot,
            self.users.slot,
            self.sales.slot,
            self.settings.slot,
            self.session.slot,
        ]

    def sync(self) -> list[str]:
        """Pull changes other processes made to any slot; returns the keys that changed."""
        return [slot.key for slot in self.slots() if slot.sync()]


def build_services(config: Mapping, backend: Optional[SlotBackend] = None) -> PosServices:
    backend = backend if backend is not None else SqlSlotBackend()
    keys = config["STORAGE_KEYS"]

    default_admin = User(
        id=config["DEFAULT_ADMIN_ID"],
        username=config["DEFAULT_ADMIN_USERNAME"],
        password=config["DEFAULT_ADMIN_PASSWORD"],
        role=ROLE_ADMIN,
    )

    images = image_store_for(backend)
    products = ProductRegistry(
        products_slot(keys["products"], backend, seed=bool(config.get("SEED_SAMPLE_PRODUCTS"))),
        images,
    )
    users = UserRegistry(users_slot(keys["users"], backend, default_admin), default_admin)
    session = Session(auth_sessions_slot(keys["auth_user"], backend), users)
    sales = SaleLedger(
        sales_slot(keys["sales"], backend),
        products,
        default_payment_method=config.get("DEFAULT_PAYMENT_METHOD"),
    )
    settings = AppSettingsService(settings_slot(keys["settings"], backend))

    return PosServices(
        backend=backend,
        images=images,
        products=products,
        users=users,
        session=session,
        sales=sales,
        settings=settings,
        cart=Cart(products),
        backup=BackupService(
            backend=backend,
            products=products,
            users=users,
            sales=sales,
            settings=settings,
            session=session,
            images=images,
        ),
    )


def get_services() -> PosServices:
    return current_app.extensions[EXTENSION_KEY]
