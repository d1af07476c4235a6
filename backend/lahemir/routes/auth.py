# Overview: Flask API routes for sign-in and the current session.

from flask import Blueprint, request, g

from ..decorators import api_route, bearer_token, ok, require_auth
from ..services.container import get_services

auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
@api_route("Failed to login user")
def login():
    """
    Sign in with username and password.

    Request body:
    - username: str
    - password: str

    Returns a bearer token; send it as ``Authorization: Bearer <token>``.
    """
    data = request.get_json(silent=True) or {}
    user, token = get_services().session.login(
        str(data.get("username") or "").strip(),
        str(data.get("password") or ""),
        current_token=bearer_token(),
    )
    return ok({"user": user.public_dict(), "token": token}, f"Welcome {user.username}!")


@auth_bp.post("/logout")
@api_route("Failed to logout user")
@require_auth
def logout():
    get_services().session.logout(g.auth_token)
    return ok({"ok": True}, "Logged out.")


@auth_bp.get("/me")
@api_route("Failed to load session")
@require_auth
def me():
    return ok({"user": g.current_user.public_dict()})
