# Overview: Flask API routes for the sale ledger; history, returns and daily reports.

"""
Sales routes.

- Any signed-in role can read sales and reports
- Returns are limited to admins and employee_return users
"""
from flask import Blueprint, request, g

from ..decorators import api_route, ok, require_auth, require_role
from ..errors import ValidationError
from ..models import ROLE_ADMIN, ROLE_EMPLOYEE_RETURN, SALE_STATUSES
from ..money import to_json_number
from ..services.container import get_services
from ..services.reporting_service import daily_report
from ..time_utils import parse_day
from ..validation import coerce_money, parse_sale_lines

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


def _return_payload(result) -> dict:
    return {
        "sale": result.sale.to_dict(),
        "returned": result.returned,
        "restockFailures": result.restock_failures,
    }


@sales_bp.get("")
@api_route("Failed to list sales")
@require_auth
def list_sales():
    """
    List sales, most recent first.

    Query params:
    - status: active | returned (optional)
    - sellerId: str (optional)
    """
    status = request.args.get("status")
    if status and status not in SALE_STATUSES:
        raise ValidationError(f"status must be one of {sorted(SALE_STATUSES)}")
    seller_id = request.args.get("sellerId")

    sales = get_services().sales.list()
    if status:
        sales = [s for s in sales if s.status == status]
    if seller_id:
        sales = [s for s in sales if s.seller_id == seller_id]
    return ok({"items": [s.to_dict() for s in sales], "count": len(sales)})


@sales_bp.post("")
@api_route("Failed to record sale")
@require_auth
def record_sale_route():
    """
    Record a sale directly, without the cart.

    Request body:
    - items: [{productId: str, quantity: int}, ...]
    - discount: number (optional)
    - paymentMethod: str (optional)
    """
    data = request.get_json(silent=True) or {}
    lines = parse_sale_lines(data.get("items"))
    payment_method = data.get("paymentMethod")
    if payment_method is not None and not isinstance(payment_method, str):
        raise ValidationError("paymentMethod must be a string")

    raw_discount = data.get("discount")
    discount = coerce_money("discount", raw_discount) if raw_discount not in (None, "") else 0

    result = get_services().sales.record_sale(
        lines, discount, g.current_user, payment_method=payment_method or None,
    )
    sale = result.sale
    if result.discount_clamped:
        message = f"Discount exceeds the total; it was set to {to_json_number(sale.discount_amount)}."
        return ok({"sale": sale.to_dict()}, message, 201, variant="destructive")
    return ok({"sale": sale.to_dict()}, f"Sale completed. Total: {to_json_number(sale.total_amount)}", 201)


@sales_bp.get("/report/daily")
@api_route("Failed to build daily report")
@require_auth
def daily_report_route():
    try:
        day = parse_day(request.args.get("date"))
    except ValueError:
        raise ValidationError("date must be YYYY-MM-DD")
    return ok(daily_report(get_services().sales, day))


@sales_bp.get("/<sale_id>")
@api_route("Failed to load sale")
@require_auth
def get_sale_route(sale_id: str):
    return ok(get_services().sales.require(sale_id).to_dict())


@sales_bp.post("/<sale_id>/return")
@api_route("Failed to return sale")
@require_auth
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE_RETURN)
def return_sale_route(sale_id: str):
    result = get_services().sales.return_sale(sale_id)
    if result.restock_failures:
        return ok(_return_payload(result), "Sale returned; some products no longer exist and were not restocked.")
    return ok(_return_payload(result), "Sale returned and stock restored.")


@sales_bp.post("/<sale_id>/return-items")
@api_route("Failed to return sale items")
@require_auth
@require_role(ROLE_ADMIN, ROLE_EMPLOYEE_RETURN)
def return_items_route(sale_id: str):
    """
    Return part of a sale.

    Request body:
    - items: [{productId: str, quantity: int}, ...]
    """
    data = request.get_json(silent=True) or {}
    lines = parse_sale_lines(data.get("items"))
    result = get_services().sales.return_items(sale_id, lines)
    return ok(_return_payload(result), "Selected items returned and stock restored.")
