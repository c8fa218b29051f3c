"""
Authentication blueprint:
- POST /auth/register
- POST /auth/login
- POST /auth/refresh
- POST /auth/logout

The implementation:
- Delegates every decision to the TokenAuthority attached to the app
- Issues short-lived access tokens and longer-lived refresh tokens (JWTs, distinct secrets)
- Rotates refresh tokens per login family, honoring a short grace window
  for the just-superseded token and killing the family on any other reuse
"""
from __future__ import annotations

from flask import Blueprint, request, jsonify
from marshmallow import ValidationError

from authority.decorators import bearer_token, get_authority
from authority.rotation import TokenPair
from authority_api.errors import error_response, failure_response
from authority_store.schemas.user import RefreshSchema, UserCreateSchema, UserLoginSchema, UserOutSchema

bp = Blueprint("auth", __name__, url_prefix="/auth")

user_create_schema = UserCreateSchema()
user_out_schema = UserOutSchema()
user_login_schema = UserLoginSchema()
refresh_schema = RefreshSchema()


def token_payload(tokens: TokenPair) -> dict:
    authority = get_authority()
    return {
        "access_token": tokens.access_token,
        "refresh_token": tokens.refresh_token,
        "token_type": "bearer",
        "expires_in": int(authority.codec.access_ttl.total_seconds()),
    }


@bp.post("/register")
def register():
    """
    register a new user.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          properties:
            email: { type: string }
            password: { type: string }
            name: { type: string }
    responses:
      201:
        description: Created
      409:
        description: Email already taken
      400:
        description: Missing or malformed fields
    """
    payload = request.get_json(silent=True) or {}
    try:
        data = user_create_schema.load(payload)
    except ValidationError as err:
        return error_response("BAD_REQUEST", "Invalid input", 400, details=err.messages)

    result = get_authority().register(data["email"], data["password"], name=data.get("name"))
    if not result.ok:
        return failure_response(result.failure)

    return jsonify(
        {
            "data": user_out_schema.dump(result.value)
        }
    ), 201


@bp.post("/login")
def login():
    """
    Login: return access_token and refresh_token
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      400:
        description: Missing email or password
      401:
        description: Invalid email or password
    """
    payload = request.get_json(silent=True) or {}
    payload = user_login_schema.load(payload)

    result = get_authority().login(payload.get("email"), payload.get("password"))
    if not result.ok:
        return failure_response(result.failure)

    login_result = result.value
    body = token_payload(login_result.tokens)
    body["user"] = user_out_schema.dump(login_result.user)
    return jsonify(body), 200


@bp.post("/refresh")
def refresh():
    """
    Use a refresh token to obtain new access and refresh tokens (rotation)
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      200:
        description: OK (returns tokens; rotated=false inside the grace window)
      401:
        description: Invalid refresh token or revoked family
      403:
        description: Reuse detected, the whole session family was revoked
    """
    payload = refresh_schema.load(request.get_json(silent=True) or {})

    result = get_authority().refresh(payload.get("refresh_token"))
    if not result.ok:
        return failure_response(result.failure)

    tokens: TokenPair = result.value
    body = token_payload(tokens)
    body["rotated"] = tokens.rotated
    return jsonify(body), 200


@bp.post("/logout")
def logout():
    """
    logout: terminates the refresh token family, revokes the access token if sent
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           properties:
             refresh_token: { type: string }
    responses:
      204:
        description: ""
      503:
        description: Token store unavailable
    """
    payload = refresh_schema.load(request.get_json(silent=True) or {})

    result = get_authority().logout(payload.get("refresh_token"), access_token=bearer_token())
    if not result.ok:
        return failure_response(result.failure)
    return ("", 204)
