# backend/storefront/routes/auth.py
"""
Authentication API routes.

Registration always creates a CUSTOMER; sellers and admins are created
by an admin through the CLI (flask users create --role).
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import StorefrontError, UnauthorizedError, error_response, internal_error_response
from ..services import auth_service
from ..services import session_service


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/register")
def register_route():
    """
    Request body:
    {"username": "...", "email": "...", "password": "..."}

    Returns 201 with the user and a session token.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.create_user(
            username=data.get("username"),
            email=data.get("email"),
            password=data.get("password"),
        )
        _, token = session_service.create_session(user.id)
        return jsonify({"user": user.to_dict(), "token": token}), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to register user")
        return internal_error_response()


@auth_bp.post("/login")
def login_route():
    try:
        data = request.get_json(silent=True) or {}
        username = data.get("username") or data.get("email")
        password = data.get("password")

        user = auth_service.authenticate(username, password)
        if not user:
            return error_response(UnauthorizedError("Invalid credentials"))

        _, token = session_service.create_session(user.id)
        return jsonify({"user": user.to_dict(), "token": token}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to log in")
        return internal_error_response()


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token)
    return jsonify({"ok": True}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/change-password")
@require_auth
def change_password_route():
    """
    Request body:
    {"old_password": "...", "new_password": "..."}

    Every other session of the user is revoked; the calling one stays valid.
    """
    try:
        data = request.get_json(silent=True) or {}
        user = auth_service.change_password(
            g.current_user.id, data.get("old_password"), data.get("new_password")
        )
        revoked = session_service.revoke_all_user_sessions(user.id, keep_token=g.session_token)
        return jsonify({"ok": True, "sessions_revoked": revoked}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to change password")
        return internal_error_response()
