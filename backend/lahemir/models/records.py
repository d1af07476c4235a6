"""
Records kept inside the persisted slots.

These are plain dataclasses, not tables: each slot stores a JSON list (or a
single object) of them, using the camelCase field names of the stored
documents. ``from_dict`` is strict and raises ValueError on anything it cannot
read, so restore and hydration can reject a malformed document as a whole.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Optional

from ..money import ZERO, to_decimal, to_json_number
from ..time_utils import parse_iso_datetime

ROLE_ADMIN = "admin"
ROLE_EMPLOYEE = "employee"
ROLE_EMPLOYEE_RETURN = "employee_return"
ALL_ROLES = (ROLE_ADMIN, ROLE_EMPLOYEE, ROLE_EMPLOYEE_RETURN)

SALE_STATUS_ACTIVE = "active"
SALE_STATUS_RETURNED = "returned"
SALE_STATUSES = (SALE_STATUS_ACTIVE, SALE_STATUS_RETURNED)


def _require(data: dict, key: str) -> Any:
    if key not in data or data[key] is None:
        raise ValueError(f"missing field: {key}")
    return data[key]


def _str(data: dict, key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _opt_str(data: dict, key: str) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _iso(data: dict, key: str, *, required: bool = True) -> Optional[str]:
    value = _str(data, key) if required else _opt_str(data, key)
    if value is None:
        return None
    try:
        parsed = parse_iso_datetime(value)
    except ValueError:
        parsed = None
    if parsed is None:
        raise ValueError(f"{key} is not an ISO-8601 timestamp: {value!r}")
    return value


def _int(data: dict, key: str, default: int | None = None) -> int:
    value = data.get(key, default)
    if value is None:
        raise ValueError(f"missing field: {key}")
    if isinstance(value, bool):
        raise ValueError(f"{key} must be an integer")
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, int):
        raise ValueError(f"{key} must be an integer")
    return value


def _money(data: dict, key: str, default: Any = None) -> Decimal:
    value = data.get(key, default)
    if value is None:
        raise ValueError(f"missing field: {key}")
    return to_decimal(value)


def _drop_none(d: dict) -> dict:
    return {k: v for k, v in d.items() if v is not None}


def normalize_name(name: str) -> str:
    """Comparison key for product names: trimmed, case-folded."""
    return name.strip().lower()


@dataclass
class Product:
    id: str
    name: str
    price: Decimal
    quantity: int
    created_at: str
    updated_at: str
    cost_price: Optional[Decimal] = None
    image_url: Optional[str] = None
    barcode_value: Optional[str] = None

    @property
    def normalized_name(self) -> str:
        return normalize_name(self.name)

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "name": self.name,
            "price": to_json_number(self.price),
            "costPrice": to_json_number(self.cost_price),
            "quantity": self.quantity,
            "imageUrl": self.image_url,
            "barcodeValue": self.barcode_value,
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "Product":
        if not isinstance(data, dict):
            raise ValueError("product must be an object")
        cost = data.get("costPrice")
        product = cls(
            id=_str(data, "id"),
            name=_str(data, "name"),
            price=_money(data, "price"),
            quantity=_int(data, "quantity"),
            created_at=_str(data, "createdAt"),
            updated_at=_str(data, "updatedAt"),
            cost_price=to_decimal(cost) if cost is not None else None,
            image_url=_opt_str(data, "imageUrl"),
            barcode_value=_opt_str(data, "barcodeValue"),
        )
        if product.quantity < 0:
            raise ValueError("quantity must be >= 0")
        if product.price < ZERO:
            raise ValueError("price must be >= 0")
        return product


@dataclass
class User:
    id: str
    username: str
    password: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "password": self.password,
            "role": self.role,
        }

    def public_dict(self) -> dict:
        """Same record without the credential, for API responses."""
        return {"id": self.id, "username": self.username, "role": self.role}

    @classmethod
    def from_dict(cls, data: dict) -> "User":
        if not isinstance(data, dict):
            raise ValueError("user must be an object")
        role = _str(data, "role")
        if role not in ALL_ROLES:
            raise ValueError(f"unknown role: {role}")
        return cls(
            id=_str(data, "id"),
            username=_str(data, "username"),
            password=_opt_str(data, "password") or "",
            role=role,
        )


@dataclass
class AuthSession:
    """
    One signed-in client. Only a hash of the bearer token is kept.

    ``username`` and ``role`` are a snapshot for display; access checks
    re-read the user from the registry.
    """
    token_hash: str
    user_id: str
    username: str
    role: str
    created_at: str

    def to_dict(self) -> dict:
        return {
            "tokenHash": self.token_hash,
            "userId": self.user_id,
            "username": self.username,
            "role": self.role,
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuthSession":
        if not isinstance(data, dict):
            raise ValueError("session must be an object")
        return cls(
            token_hash=_str(data, "tokenHash"),
            user_id=_str(data, "userId"),
            username=_str(data, "username"),
            role=_str(data, "role"),
            created_at=_str(data, "createdAt"),
        )


@dataclass
class SaleItem:
    product_id: str
    product_name: str
    quantity: int
    price_per_unit: Decimal
    returned_quantity: int = 0

    @property
    def line_total(self) -> Decimal:
        return self.price_per_unit * self.quantity

    @property
    def returnable_quantity(self) -> int:
        return self.quantity - self.returned_quantity

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "productName": self.product_name,
            "quantity": self.quantity,
            "pricePerUnit": to_json_number(self.price_per_unit),
            "returnedQuantity": self.returned_quantity,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SaleItem":
        if not isinstance(data, dict):
            raise ValueError("sale item must be an object")
        return cls(
            product_id=_str(data, "productId"),
            product_name=_str(data, "productName"),
            quantity=_int(data, "quantity"),
            price_per_unit=_money(data, "pricePerUnit"),
            returned_quantity=_int(data, "returnedQuantity", 0),
        )


@dataclass
class Sale:
    id: str
    items: list[SaleItem]
    original_total_amount: Decimal
    discount_amount: Decimal
    total_amount: Decimal
    sale_date: str
    seller_id: str
    seller_username: str
    status: str = SALE_STATUS_ACTIVE
    returned_date: Optional[str] = None
    payment_method: Optional[str] = None

    @property
    def is_returned(self) -> bool:
        return self.status == SALE_STATUS_RETURNED

    def to_dict(self) -> dict:
        return _drop_none({
            "id": self.id,
            "items": [i.to_dict() for i in self.items],
            "originalTotalAmount": to_json_number(self.original_total_amount),
            "discountAmount": to_json_number(self.discount_amount),
            "totalAmount": to_json_number(self.total_amount),
            "saleDate": self.sale_date,
            "sellerId": self.seller_id,
            "sellerUsername": self.seller_username,
            "status": self.status,
            "returnedDate": self.returned_date,
            "paymentMethod": self.payment_method,
        })

    @classmethod
    def from_dict(cls, data: dict) -> "Sale":
        if not isinstance(data, dict):
            raise ValueError("sale must be an object")
        items = _require(data, "items")
        if not isinstance(items, list):
            raise ValueError("items must be a list")
        status = data.get("status", SALE_STATUS_ACTIVE)
        if status not in SALE_STATUSES:
            raise ValueError(f"unknown sale status: {status}")
        return cls(
            id=_str(data, "id"),
            items=[SaleItem.from_dict(i) for i in items],
            original_total_amount=_money(data, "originalTotalAmount"),
            discount_amount=_money(data, "discountAmount", 0),
            total_amount=_money(data, "totalAmount"),
            sale_date=_iso(data, "saleDate"),
            seller_id=_str(data, "sellerId"),
            seller_username=_str(data, "sellerUsername"),
            status=status,
            returned_date=_iso(data, "returnedDate", required=False),
            payment_method=_opt_str(data, "paymentMethod"),
        )


@dataclass
class ThemeColors:
    primary: str
    background: str
    accent: str

    def to_dict(self) -> dict:
        return {"primary": self.primary, "background": self.background, "accent": self.accent}

    @classmethod
    def from_dict(cls, data: dict) -> "ThemeColors":
        if not isinstance(data, dict):
            raise ValueError("themeColors must be an object")
        return cls(
            primary=_str(data, "primary"),
            background=_str(data, "background"),
            accent=_str(data, "accent"),
        )


@dataclass
class BankService:
    name: str
    color: str

    def to_dict(self) -> dict:
        return {"name": self.name, "color": self.color}

    @classmethod
    def from_dict(cls, data: dict) -> "BankService":
        if not isinstance(data, dict):
            raise ValueError("bank service must be an object")
        return cls(name=_str(data, "name"), color=_str(data, "color"))


DEFAULT_THEME = ThemeColors(primary="207 89% 61%", background="0 0% 98%", accent="233 48% 59%")

DEFAULT_BANK_SERVICES = (
    BankService(name="ادفع لي", color="hsl(221, 83%, 53%)"),
    BankService(name="سداد", color="hsl(142, 71%, 45%)"),
    BankService(name="موبي كاش", color="hsl(24, 94%, 53%)"),
    BankService(name="نقدي", color="hsl(120, 60%, 35%)"),
)


@dataclass
class AppSettings:
    store_name: str
    theme_colors: ThemeColors
    sale_success_sound: Optional[str] = None
    rejected_operation_sound: Optional[str] = None
    bank_services: Optional[list[BankService]] = field(default=None)

    @classmethod
    def defaults(cls) -> "AppSettings":
        return cls(
            store_name="Lahemir",
            theme_colors=replace(DEFAULT_THEME),
            bank_services=[replace(b) for b in DEFAULT_BANK_SERVICES],
        )

    def to_dict(self) -> dict:
        return _drop_none({
            "storeName": self.store_name,
            "themeColors": self.theme_colors.to_dict(),
            "saleSuccessSound": self.sale_success_sound,
            "rejectedOperationSound": self.rejected_operation_sound,
            "bankServices": (
                [b.to_dict() for b in self.bank_services]
                if self.bank_services is not None else None
            ),
        })

    @classmethod
    def from_dict(cls, data: dict) -> "AppSettings":
        if not isinstance(data, dict):
            raise ValueError("settings must be an object")
        banks = data.get("bankServices")
        if banks is not None and not isinstance(banks, list):
            raise ValueError("bankServices must be a list")
        return cls(
            store_name=_str(data, "storeName"),
            theme_colors=ThemeColors.from_dict(_require(data, "themeColors")),
            sale_success_sound=_opt_str(data, "saleSuccessSound"),
            rejected_operation_sound=_opt_str(data, "rejectedOperationSound"),
            bank_services=[BankService.from_dict(b) for b in banks] if banks is not None else None,
        )
