from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from .errors import ValidationError
from .models import ALL_ROLES
from .money import ZERO, to_decimal


# Maximum price: 9,999,999.99
# This prevents nonsensical prices from typos in the price field
MAX_PRICE = Decimal("9999999.99")

KIND_TEXT = "text"
KIND_INT = "int"
KIND_MONEY = "money"
KIND_ROLE = "role"


@dataclass(frozen=True)
class FieldSpec:
    kind: str
    nullable: bool = False
    max_length: int | None = None
    allow_blank: bool = False


@dataclass(frozen=True)
class PayloadPolicy:
    """
    Central policy layer:
    - fields: what clients are allowed to set (security boundary) and how each is coerced
    - required_on_create: fields required for POST
    """
    fields: dict[str, FieldSpec]
    required_on_create: frozenset[str] = frozenset()


PRODUCT_POLICY = PayloadPolicy(
    fields={
        "name": FieldSpec(KIND_TEXT, max_length=255),
        "price": FieldSpec(KIND_MONEY),
        "costPrice": FieldSpec(KIND_MONEY, nullable=True),
        "quantity": FieldSpec(KIND_INT),
        # Either a reference/URL or a data:image URI that goes to the blob store
        "imageUrl": FieldSpec(KIND_TEXT, nullable=True, allow_blank=True),
        "barcodeValue": FieldSpec(KIND_TEXT, nullable=True, max_length=128, allow_blank=True),
    },
    required_on_create=frozenset({"name", "price", "quantity"}),
)

USER_POLICY = PayloadPolicy(
    fields={
        "username": FieldSpec(KIND_TEXT, max_length=64),
        # Blank on update means "keep the current password"
        "password": FieldSpec(KIND_TEXT, nullable=True, max_length=128, allow_blank=True),
        "role": FieldSpec(KIND_ROLE),
    },
    required_on_create=frozenset({"username", "password", "role"}),
)


def coerce_int(key: str, value: Any) -> int:
    """Strict integer coercion: rejects floats, booleans and scientific notation."""
    # Already an int (but not bool which is a subclass of int)
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    # String input - must be plain digits (with optional leading minus)
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped:
            raise ValidationError(f"{key} must be an integer")
        # Reject scientific notation (e.g., "1e15", "1E10")
        if 'e' in stripped.lower():
            raise ValidationError(f"{key} must be a plain integer (scientific notation not allowed)")
        # Reject decimal points (e.g., "12.5")
        if '.' in stripped:
            raise ValidationError(f"{key} must be an integer (no decimals)")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{key} must be an integer")
    # Reject floats explicitly
    if isinstance(value, float):
        raise ValidationError(f"{key} must be an integer, not a decimal")
    raise ValidationError(f"{key} must be an integer")


def coerce_money(key: str, value: Any) -> Decimal:
    try:
        amount = to_decimal(value)
    except ValueError:
        raise ValidationError(f"{key} must be a number")
    if amount < ZERO:
        raise ValidationError(f"{key} must be >= 0")
    if amount > MAX_PRICE:
        raise ValidationError(f"{key} cannot exceed {MAX_PRICE}")
    return amount


def _coerce_value(key: str, spec: FieldSpec, value: Any):
    if spec.kind == KIND_INT:
        result = coerce_int(key, value)
        if result < 0:
            raise ValidationError(f"{key} must be >= 0")
        return result

    if spec.kind == KIND_MONEY:
        return coerce_money(key, value)

    if spec.kind == KIND_ROLE:
        if value not in ALL_ROLES:
            raise ValidationError(f"{key} must be one of: {', '.join(ALL_ROLES)}")
        return value

    # Strings / Text
    if not isinstance(value, (str, int, float)) or isinstance(value, bool):
        raise ValidationError(f"{key} must be a string")
    text = str(value).strip()
    if not text and not spec.allow_blank:
        raise ValidationError(f"{key} cannot be blank")
    if spec.max_length and len(text) > spec.max_length:
        raise ValidationError(f"{key} exceeds max length {spec.max_length}")
    return text


def validate_payload(*, payload: Any, policy: PayloadPolicy, partial: bool) -> dict:
    """
    Validates + normalizes incoming JSON against a policy.
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.fields:
            raise ValidationError(f"Field not allowed: {k}")

    patch: dict = {}
    for k, raw in payload.items():
        spec = policy.fields[k]
        if raw is None:
            if not spec.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue
        patch[k] = _coerce_value(k, spec, raw)

    return patch


def parse_sale_lines(raw_items: Any) -> list[tuple[str, int]]:
    """Validate ``[{"productId": ..., "quantity": ...}, ...]`` into (product_id, quantity) pairs."""
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")
    lines = []
    for raw in raw_items:
        if not isinstance(raw, dict):
            raise ValidationError("each item must be an object")
        product_id = raw.get("productId")
        if not isinstance(product_id, str) or not product_id.strip():
            raise ValidationError("productId is required for each item")
        quantity = coerce_int("quantity", raw.get("quantity"))
        lines.append((product_id.strip(), quantity))
    return lines
