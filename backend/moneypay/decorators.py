# Overview: Request decorators resolving the acting account for API routes.

from functools import wraps
from flask import request, jsonify, g

from .extensions import db
from .models import Account


ACTOR_HEADER = "X-Actor-Id"


def require_actor(f):
    """
    Resolve the acting account from the upstream gateway.

    Authentication happens before requests reach this service; the gateway
    forwards the authenticated account id in the X-Actor-Id header.

    Sets g.actor to the Account.

    Returns 401 if the header is missing or names no account, 403 if the
    account is suspended.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(ACTOR_HEADER, "").strip()
        if not raw.isdigit():
            return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401

        actor = db.session.get(Account, int(raw))
        if actor is None:
            return jsonify({"error": "Unknown account", "code": "UNAUTHENTICATED"}), 401
        if actor.is_suspended:
            return jsonify({"error": "Account is suspended", "code": "FORBIDDEN"}), 403

        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Restrict a route to the given account roles.

    Must be applied AFTER @require_actor.

    Usage:
        @require_actor
        @require_role("admin")
        def my_route():
            ...
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required", "code": "UNAUTHENTICATED"}), 401
            if actor.role not in roles:
                return jsonify({"error": "Not allowed", "code": "FORBIDDEN"}), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
