from __future__ import annotations

from flask import Blueprint, jsonify, g

from authority.decorators import admission_required, get_authority, roles_required
from authority_api.errors import failure_response
from authority_store.schemas.user import UserOutSchema

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()


@bp.get("/users/me")
@admission_required()
def me():
    """
    Get current user info.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200:
        description: OK
      401:
        description: Unauthorized
    """
    result = get_authority().get_user(g.current_user_id)
    if not result.ok:
        return failure_response(result.failure)
    return jsonify(
        {
            "data": user_out_schema.dump(result.value)
        }
    ), 200


@bp.delete("/users/<user_id>/sessions")
@roles_required(["admin"])
def revoke_sessions(user_id: str):
    """
    Admin-only: terminate every session family of a user.
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      -  in: path
         name: user_id
         type: string
         required: true
    responses:
      200: { description: OK }
      401: { description: Unauthorized }
      403: { description: Insufficient role }
    """
    result = get_authority().revoke_user_sessions(user_id)
    if not result.ok:
        return failure_response(result.failure)
    return jsonify(
      {
        "data": {"user_id": user_id, "revoked": result.value}
      }
    ), 200
