# Overview: Flask API routes for user management; admin only.

from flask import Blueprint, request, g

from ..decorators import api_route, ok, require_auth, require_role
from ..models import ROLE_ADMIN
from ..services.container import get_services
from ..validation import USER_POLICY, validate_payload

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@api_route("Failed to list users")
@require_auth
@require_role(ROLE_ADMIN)
def list_users():
    users = get_services().users.list()
    return ok({"items": [u.public_dict() for u in users], "count": len(users)})


@users_bp.post("")
@api_route("Failed to create user")
@require_auth
@require_role(ROLE_ADMIN)
def create_user_route():
    patch = validate_payload(payload=request.get_json(silent=True), policy=USER_POLICY, partial=False)
    user = get_services().users.add(patch)
    return ok(user.public_dict(), f"User {user.username} added.", 201)


@users_bp.get("/<user_id>")
@api_route("Failed to load user")
@require_auth
@require_role(ROLE_ADMIN)
def get_user_route(user_id: str):
    return ok(get_services().users.require(user_id).public_dict())


@users_bp.put("/<user_id>")
@api_route("Failed to update user")
@require_auth
@require_role(ROLE_ADMIN)
def update_user_route(user_id: str):
    patch = validate_payload(payload=request.get_json(silent=True), policy=USER_POLICY, partial=True)
    services = get_services()
    user = services.users.update(user_id, patch, actor=g.current_user)
    services.session.revalidate()
    return ok(user.public_dict(), "User updated.")


@users_bp.delete("/<user_id>")
@api_route("Failed to delete user")
@require_auth
@require_role(ROLE_ADMIN)
def delete_user_route(user_id: str):
    services = get_services()
    user = services.users.delete(user_id)
    services.session.revalidate()
    return ok({"ok": True}, f"User {user.username} deleted.")
