# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product management routes.

- Reads are open to every signed-in role (the POS needs them)
- Create, update, delete and manual stock adjustments are admin-only
"""
from flask import Blueprint, Response, request

from ..decorators import api_route, ok, require_auth, require_role
from ..errors import ProductNotFound
from ..models import ROLE_ADMIN
from ..services.container import get_services
from ..validation import PRODUCT_POLICY, coerce_int, validate_payload

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("")
@api_route("Failed to list products")
@require_auth
def list_products():
    """
    List products in registry order.

    Query params:
    - q: str (optional) - case-insensitive name filter
    """
    q = (request.args.get("q") or "").strip().lower()
    products = get_services().products.list()
    if q:
        products = [p for p in products if q in p.name.lower()]
    return ok({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.post("")
@api_route("Failed to create product")
@require_auth
@require_role(ROLE_ADMIN)
def create_product_route():
    patch = validate_payload(payload=request.get_json(silent=True), policy=PRODUCT_POLICY, partial=False)
    product = get_services().products.add(patch)
    return ok(product.to_dict(), f"Product \"{product.name}\" added.", 201)


@products_bp.get("/<product_id>")
@api_route("Failed to load product")
@require_auth
def get_product_route(product_id: str):
    return ok(get_services().products.require(product_id).to_dict())


@products_bp.get("/barcode/<barcode_value>")
@api_route("Failed to look up barcode")
@require_auth
def get_product_by_barcode_route(barcode_value: str):
    product = get_services().products.get_by_barcode(barcode_value)
    if product is None:
        raise ProductNotFound("No product with this barcode.", details={"barcode_value": barcode_value})
    return ok(product.to_dict())


@products_bp.put("/<product_id>")
@api_route("Failed to update product")
@require_auth
@require_role(ROLE_ADMIN)
def update_product_route(product_id: str):
    patch = validate_payload(payload=request.get_json(silent=True), policy=PRODUCT_POLICY, partial=True)
    product = get_services().products.update(product_id, patch)
    return ok(product.to_dict(), "Product updated.")


@products_bp.delete("/<product_id>")
@api_route("Failed to delete product")
@require_auth
@require_role(ROLE_ADMIN)
def delete_product_route(product_id: str):
    get_services().products.delete(product_id)
    return ok({"ok": True}, "Product deleted.")


@products_bp.post("/<product_id>/adjust")
@api_route("Failed to adjust product quantity")
@require_auth
@require_role(ROLE_ADMIN)
def adjust_quantity_route(product_id: str):
    """
    Move stock by a signed delta. Refused if stock would go negative.

    Request body:
    - delta: int
    """
    data = request.get_json(silent=True) or {}
    delta = coerce_int("delta", data.get("delta"))
    product = get_services().products.adjust_quantity(product_id, delta)
    return ok(product.to_dict(), f"Quantity of \"{product.name}\" is now {product.quantity}.")


@products_bp.get("/<product_id>/image")
@api_route("Failed to load product image")
@require_auth
def get_product_image_route(product_id: str):
    blob = get_services().images.get_image(product_id)
    if blob is None:
        raise ProductNotFound("No stored image for this product.", details={"product_id": product_id})
    return Response(blob.data, mimetype=blob.content_type)
