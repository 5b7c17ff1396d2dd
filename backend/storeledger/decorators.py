# Overview: Request decorators and error rendering shared by API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import LedgerError
from .extensions import db
from .services.authorization import actor_for_user


def require_actor(f):
    """
    Resolve the calling staff member into g.actor.

    Authentication happens upstream; the gateway forwards the authenticated
    user id in the X-User-Id header.

    Returns 401 if the header is missing or malformed, 404 if the user is
    unknown or deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get("X-User-Id", "").strip()
        if not raw.isdigit():
            return jsonify({"error": "unauthenticated", "message": "X-User-Id header required"}), 401

        try:
            g.actor = actor_for_user(int(raw))
        except LedgerError as e:
            return jsonify(e.to_dict()), e.http_status

        return f(*args, **kwargs)

    return decorated_function


def error_response(e: Exception):
    """Render a failure raised inside a route as a JSON response."""
    if isinstance(e, LedgerError):
        return jsonify(e.to_dict()), e.http_status
    if isinstance(e, KeyError):
        return jsonify({"error": "validation_error", "message": f"Missing required field: {e}"}), 400

    db.session.rollback()
    current_app.logger.exception("Unhandled error on %s %s", request.method, request.path)
    return jsonify({"error": "internal_error", "message": "Unexpected error"}), 500
