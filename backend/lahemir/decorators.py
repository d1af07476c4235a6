# Overview: Request decorators and response helpers for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import AlreadyReturned, PosError
from .services.container import get_services


def notification(description: str, *, title: str = "Success", variant: str = "default") -> dict:
    return {"title": title, "description": description, "variant": variant}


def ok(payload: dict, message: str | None = None, status: int = 200, *, variant: str = "default"):
    """JSON success response; mutating routes pass the one notification they produce."""
    body = dict(payload)
    if message is not None:
        body["notification"] = notification(message, variant=variant)
    return jsonify(body), status


def error_response(exc: PosError):
    body = exc.to_dict()
    body["notification"] = notification(
        exc.message,
        title=exc.title,
        variant="default" if isinstance(exc, AlreadyReturned) else "destructive",
    )
    return jsonify(body), exc.http_status


def api_route(action: str):
    """
    Turn service exceptions into JSON responses.

    PosError subclasses become their own status and code. Anything else is
    logged with a traceback and answered with a generic 500.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            try:
                return f(*args, **kwargs)
            except PosError as e:
                if e.http_status >= 500:
                    current_app.logger.error("%s: %s", action, e.message)
                return error_response(e)
            except Exception:
                current_app.logger.exception(action)
                return jsonify({"error": "Internal server error", "code": "INTERNAL_ERROR"}), 500

        return decorated_function

    return decorator


def bearer_token():
    """The token from an ``Authorization: Bearer <token>`` header, or None."""
    auth_header = request.headers.get("Authorization") or ""
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a signed-in session for this client.

    Sets:
    - g.auth_token: The bearer token the request carried
    - g.current_user: The signed-in User, re-read from the user registry
    - g.services: The application's service container
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        services = get_services()
        g.services = services
        g.auth_token = bearer_token()
        g.current_user = services.session.require_user(g.auth_token)
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require the signed-in user to hold one of ``roles``. Use after @require_auth."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            g.current_user = get_services().session.require_role(g.auth_token, *roles)
            return f(*args, **kwargs)

        return decorated_function

    return decorator
