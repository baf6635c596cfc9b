# Overview: Request decorators and Result rendering for API routes.

from functools import wraps

from flask import current_app, g, jsonify, request

from .errors import CoreError


# HTTP status per error kind
ERROR_STATUS = {
    "ValidationError": 400,
    "NotFound": 404,
    "InsufficientStock": 409,
    "InvalidStateTransition": 409,
    "TransactionConflict": 409,
}


def with_actor(f):
    """
    Establish the acting user for the request.

    There is no authentication: the actor is taken from the X-Actor header,
    falling back to the configured demo user. Sets g.actor.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = (request.headers.get("X-Actor") or "").strip()
        g.actor = actor or current_app.config["DEMO_USER_ID"]
        return f(*args, **kwargs)

    return decorated_function


def json_body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def error_response(error: CoreError):
    return jsonify({"error": error.to_dict()}), ERROR_STATUS.get(error.kind, 400)


def result_response(result, serialize, status: int = 200):
    """Render a command Result: serialized value on success, typed error otherwise."""
    if not result.ok:
        return error_response(result.error)
    return jsonify(serialize(result.value)), status
