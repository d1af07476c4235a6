# Overview: Flask API routes for the point-of-sale cart and checkout.

from flask import Blueprint, request, g

from ..decorators import api_route, ok, require_auth
from ..errors import ValidationError
from ..money import to_json_number
from ..services.container import get_services
from ..validation import coerce_int, coerce_money

pos_bp = Blueprint("pos", __name__, url_prefix="/api/pos")


def _product_id(data: dict) -> str:
    product_id = data.get("productId")
    if not isinstance(product_id, str) or not product_id.strip():
        raise ValidationError("productId is required")
    return product_id.strip()


@pos_bp.get("/cart")
@api_route("Failed to load cart")
@require_auth
def get_cart():
    return ok(get_services().cart.to_dict())


@pos_bp.post("/cart/items")
@api_route("Failed to add item to cart")
@require_auth
def add_cart_item():
    """
    Stage one unit of a product, by id or by scanned barcode.

    Request body:
    - productId: str, or
    - barcodeValue: str
    """
    data = request.get_json(silent=True) or {}
    services = get_services()

    barcode = data.get("barcodeValue")
    if isinstance(barcode, str) and barcode.strip():
        product = services.products.get_by_barcode(barcode.strip())
        if product is None:
            raise ValidationError("No product matches this barcode.", details={"barcode_value": barcode})
    else:
        product = services.products.require(_product_id(data))

    services.cart.add_item(product)
    return ok(services.cart.to_dict(), f"\"{product.name}\" added to cart.")


@pos_bp.put("/cart/items/<product_id>")
@api_route("Failed to update cart item")
@require_auth
def set_cart_item_quantity(product_id: str):
    data = request.get_json(silent=True) or {}
    quantity = coerce_int("quantity", data.get("quantity"))
    cart = get_services().cart
    cart.set_item_quantity(product_id, quantity)
    return ok(cart.to_dict())


@pos_bp.delete("/cart/items/<product_id>")
@api_route("Failed to remove cart item")
@require_auth
def remove_cart_item(product_id: str):
    cart = get_services().cart
    cart.remove_item(product_id)
    return ok(cart.to_dict())


@pos_bp.put("/cart/discount")
@api_route("Failed to set discount")
@require_auth
def set_cart_discount():
    data = request.get_json(silent=True) or {}
    raw = data.get("discount")
    cart = get_services().cart
    cart.set_discount(coerce_money("discount", raw) if raw not in (None, "") else 0)
    return ok(cart.to_dict())


@pos_bp.delete("/cart")
@api_route("Failed to clear cart")
@require_auth
def clear_cart():
    cart = get_services().cart
    cart.clear()
    return ok(cart.to_dict())


@pos_bp.post("/checkout")
@api_route("Failed to complete sale")
@require_auth
def checkout():
    """
    Record the cart as a sale for the signed-in user.

    Request body (optional):
    - paymentMethod: str
    """
    data = request.get_json(silent=True) or {}
    payment_method = data.get("paymentMethod")
    if payment_method is not None and not isinstance(payment_method, str):
        raise ValidationError("paymentMethod must be a string")

    services = get_services()
    if not services.cart.items:
        raise ValidationError("The cart is empty.")

    result = services.cart.checkout(services.sales, g.current_user, payment_method or None)
    sale = result.sale

    if result.discount_clamped:
        return ok(
            {"sale": sale.to_dict(), "requestedDiscount": to_json_number(result.requested_discount)},
            f"Discount exceeds the total; it was set to {to_json_number(sale.discount_amount)}.",
            201,
            variant="destructive",
        )
    return ok(
        {"sale": sale.to_dict(), "requestedDiscount": to_json_number(result.requested_discount)},
        f"Sale completed. Total: {to_json_number(sale.total_amount)}",
        201,
    )
