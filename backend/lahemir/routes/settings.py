# Overview: Flask API routes for application settings (store name, theme, sounds, bank services).

from flask import Blueprint, request

from ..decorators import api_route, ok, require_auth, require_role
from ..models import ROLE_ADMIN
from ..services.container import get_services

settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("")
@api_route("Failed to load settings")
def get_settings():
    # Open to the login screen, which shows the store name and theme
    return ok(get_services().settings.get().to_dict())


@settings_bp.patch("")
@api_route("Failed to update settings")
@require_auth
@require_role(ROLE_ADMIN)
def update_settings():
    settings = get_services().settings.update(request.get_json(silent=True))
    return ok(settings.to_dict(), "Settings saved.")


@settings_bp.post("/reset")
@api_route("Failed to reset settings")
@require_auth
@require_role(ROLE_ADMIN)
def reset_settings():
    settings = get_services().settings.reset_to_defaults()
    return ok(settings.to_dict(), "Settings restored to defaults.")
