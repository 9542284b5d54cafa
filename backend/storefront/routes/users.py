# backend/storefront/routes/users.py
"""
User account routes.

Any signed-in user reads and edits their own account and may close it.
Admins list and read every account, assign roles and deactivate others.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import user_service
from ..services.auth_service import ROLE_ADMIN
from ..validation import validate_pagination

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_role(ROLE_ADMIN)
def list_users_route():
    """
    Query params:
    - role: CUSTOMER | SELLER | ADMIN (optional)
    - active_only: "true" hides deactivated accounts
    - page (default 1), page_size (default 10, max 100)
    """
    try:
        page, page_size = validate_pagination(
            request.args.get("page"),
            request.args.get("page_size"),
            current_app.config["MAX_PAGE_SIZE"],
        )
        result = user_service.list_users(
            g.current_user.role,
            role=request.args.get("role"),
            include_inactive=request.args.get("active_only", "false").lower() != "true",
            page=page,
            page_size=page_size,
        )
        return jsonify(result.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list users")
        return internal_error_response()


@users_bp.get("/by-email")
@require_auth
def get_user_by_email_route():
    try:
        user = user_service.get_user_by_email(
            g.current_user.id, g.current_user.role, request.args.get("email")
        )
        return jsonify(user.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to look up user by email")
        return internal_error_response()


@users_bp.get("/<int:user_id>")
@require_auth
def get_user_route(user_id: int):
    try:
        user = user_service.get_user(g.current_user.id, g.current_user.role, user_id)
        return jsonify(user.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load user %s", user_id)
        return internal_error_response()


@users_bp.patch("/me")
@require_auth
def update_me_route():
    """
    Request body (all optional):
    {"first_name": "...", "last_name": "...", "phone_number": "..."}
    """
    try:
        user = user_service.update_profile(g.current_user.id, request.get_json(silent=True))
        return jsonify(user.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update profile")
        return internal_error_response()


@users_bp.put("/<int:user_id>/role")
@require_auth
@require_role(ROLE_ADMIN)
def assign_role_route(user_id: int):
    """Request body: {"role": "SELLER"}"""
    try:
        data = request.get_json(silent=True) or {}
        user = user_service.assign_role(g.current_user.id, g.current_user.role, user_id, data.get("role"))
        return jsonify(user.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign role to user %s", user_id)
        return internal_error_response()


@users_bp.delete("/<int:user_id>")
@require_auth
def delete_user_route(user_id: int):
    """Soft delete: the account is deactivated and all its sessions revoked."""
    try:
        revoked = user_service.deactivate_user(g.current_user.id, g.current_user.role, user_id)
        return jsonify({"ok": True, "sessions_revoked": revoked}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete user %s", user_id)
        return internal_error_response()
