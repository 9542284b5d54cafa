# Overview: Account lookups, profile edits, role assignment and deactivation.

"""
User management.

Users read and edit their own account; admins read every account, change
roles and deactivate accounts. Accounts are never hard-deleted: orders and
payments keep pointing at them. "Delete" clears is_active and revokes every
session, which validate_session() already treats as logged out.
"""

from __future__ import annotations

from flask import current_app

from ..errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import User
from ..validation import ModelValidationPolicy, validate_payload
from .auth_service import ROLE_ADMIN, ROLES
from .pagination import PagedResult, paginate
from . import session_service

PROFILE_POLICY = ModelValidationPolicy(
    writable_fields={"first_name", "last_name", "phone_number"},
    required_on_create=set(),
)


def _load_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")
    return user


def get_user(actor_id: int, actor_role: str, user_id: int) -> User:
    if actor_role != ROLE_ADMIN and actor_id != user_id:
        raise ForbiddenError("You can only view your own account")
    return _load_user(user_id)


def get_user_by_email(actor_id: int, actor_role: str, email: str | None) -> User:
    email = (email or "").strip().lower()
    if not email:
        raise InvalidInputError("Email is required")

    user = db.session.query(User).filter_by(email=email).first()
    if actor_role != ROLE_ADMIN and (user is None or user.id != actor_id):
        raise ForbiddenError("You can only view your own account")
    if not user:
        raise NotFoundError(f"No user with email {email}")
    return user


def list_users(
    actor_role: str,
    *,
    role: str | None = None,
    include_inactive: bool = True,
    page: int = 1,
    page_size: int = 10,
) -> PagedResult:
    if actor_role != ROLE_ADMIN:
        raise ForbiddenError("Only admins can list users")

    query = db.session.query(User)
    if role:
        role = role.upper()
        if role not in ROLES:
            raise InvalidInputError(f"Role must be one of: {', '.join(ROLES)}")
        query = query.filter(User.role == role)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))

    query = query.order_by(User.username.asc(), User.id.asc())
    return paginate(query, page, page_size)


def update_profile(user_id: int, payload: dict) -> User:
    """Patch first_name, last_name and phone_number of the caller's own account."""
    user = _load_user(user_id)
    patch = validate_payload(model=User, payload=payload, policy=PROFILE_POLICY, partial=True)
    for k, v in patch.items():
        setattr(user, k, v)
    db.session.commit()
    return user


def assign_role(actor_id: int, actor_role: str, user_id: int, role: str | None) -> User:
    if actor_role != ROLE_ADMIN:
        raise ForbiddenError("Only admins can assign roles")
    role = (role or "").strip().upper()
    if role not in ROLES:
        raise InvalidInputError(f"Role must be one of: {', '.join(ROLES)}")
    if actor_id == user_id:
        raise InvalidInputError("You cannot change your own role")

    user = _load_user(user_id)
    previous = user.role
    user.role = role
    db.session.commit()
    current_app.logger.info("User %s role changed %s -> %s by admin %s", user_id, previous, role, actor_id)
    return user


def deactivate_user(actor_id: int, actor_role: str, user_id: int) -> int:
    """
    Deactivate an account and revoke its sessions; returns sessions revoked.

    Users may close their own account. Admins may close any account except
    their own.
    """
    if actor_role == ROLE_ADMIN:
        if actor_id == user_id:
            raise InvalidInputError("Cannot deactivate your own account")
    elif actor_id != user_id:
        raise ForbiddenError("You can only delete your own account")

    user = _load_user(user_id)
    if not user.is_active:
        raise ConflictError(f"User {user_id} is already deactivated")

    user.is_active = False
    db.session.commit()
    revoked = session_service.revoke_all_user_sessions(user_id)
    current_app.logger.info("User %s deactivated by %s; %s sessions revoked", user_id, actor_id, revoked)
    return revoked
