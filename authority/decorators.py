from __future__ import annotations
from functools import wraps
from flask import request, g, current_app

from authority.results import FailureKind, Failure
from authority_api.errors import failure_response


def get_authority():
    """The TokenAuthority wired into the current app by create_app()."""
    return current_app.extensions["token_authority"]


def bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    if not auth.startswith("Bearer "):
        return None
    return auth.split(" ", 1)[1].strip() or None


def admission_required():
    """Reject the request unless it carries an admissible access token."""
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = bearer_token()
            if token is None:
                return failure_response(
                    Failure(FailureKind.TOKEN_INVALID, "Access token is missing or invalid")
                )
            result = get_authority().admit(token)
            if not result.ok:
                return failure_response(result.failure)

            claims = result.value
            g.access_token = token
            g.current_user_id = claims.user_id
            g.current_user_role = claims.role
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the token's role is one of the required roles.
    Deny (403) otherwise.
    """
    req = set(required_roles or [])
    def decorator(fn):
        @wraps(fn)
        @admission_required()
        def wrapper(*args, **kwargs):
            if getattr(g, "current_user_role", None) not in req:
                return failure_response(Failure(FailureKind.FORBIDDEN, "Insufficient role"))
            return fn(*args, **kwargs)

        return wrapper

    return decorator
