# Overview: Account creation, password hashing and credential checks.

"""
Authentication Service

Every order and payment is attributable to a user. Passwords are hashed
with bcrypt (cost from BCRYPT_LOG_ROUNDS) and checked for strength before
hashing.

SECURITY NOTES:
- Minimum 8 characters; upper, lower, digit and special char required
- Session tokens managed separately (see session_service.py)
- Unknown user and wrong password are indistinguishable to callers
"""

from __future__ import annotations

import re

import bcrypt
from flask import current_app

from ..errors import ConflictError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import User
from storefront.time_utils import utcnow


ROLE_CUSTOMER = "CUSTOMER"
ROLE_SELLER = "SELLER"
ROLE_ADMIN = "ADMIN"
ROLES = (ROLE_CUSTOMER, ROLE_SELLER, ROLE_ADMIN)

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class PasswordValidationError(InvalidInputError):
    """Raised when password doesn't meet strength requirements."""


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt(rounds=rounds))
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def create_user(username: str, email: str, password: str, role: str = ROLE_CUSTOMER) -> User:
    """
    Create a user with a bcrypt password hash.

    Raises:
        InvalidInputError: blank username, malformed email, weak password, unknown role
        ConflictError: username or email already taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    role = (role or ROLE_CUSTOMER).upper()

    if not username or len(username) > 64:
        raise InvalidInputError("Username must be 1-64 characters")
    if not EMAIL_RE.match(email):
        raise InvalidInputError("Email address is invalid")
    if role not in ROLES:
        raise InvalidInputError(f"Role must be one of: {', '.join(ROLES)}")

    existing = db.session.query(User).filter(
        db.or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(username: str, password: str) -> User | None:
    """
    Check credentials (username or email) and stamp last_login_at.

    Returns None for unknown users, inactive users and wrong passwords alike.
    """
    if not username or not password:
        return None

    user = db.session.query(User).filter(
        db.or_(User.username == username, User.email == username.lower()),
        User.is_active.is_(True),
    ).first()

    if not user or not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def change_password(user_id: int, old_password: str, new_password: str) -> User:
    """
    Replace a user's password after checking the current one.

    Raises:
        NotFoundError: no such user
        InvalidInputError: wrong current password, new password equal to the
            current one, or too weak
    """
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError(f"User {user_id} not found")

    if not old_password or not verify_password(old_password, user.password_hash):
        current_app.logger.warning("Password change with wrong current password for user %s", user_id)
        raise InvalidInputError("Current password is incorrect")
    if verify_password(new_password or "", user.password_hash):
        raise InvalidInputError("New password cannot be the same as the old password")

    user.password_hash = hash_password(new_password)
    db.session.commit()
    current_app.logger.info("Password changed for user %s", user_id)
    return user
