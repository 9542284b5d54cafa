# Overview: Request authentication and role decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import ForbiddenError, UnauthorizedError, error_response
from .services import session_service


def require_auth(f):
    """
    Require a valid bearer session token.

    Sets g.current_user to the authenticated User. Returns 401 when the
    Authorization header is missing, the token is unknown, revoked or
    expired, or the account is deactivated.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return error_response(UnauthorizedError("Authentication required"))

        token = auth_header.split(" ", 1)[1].strip()
        user = session_service.validate_session(token)
        if not user:
            return error_response(UnauthorizedError("Invalid or expired token"))

        g.current_user = user
        g.session_token = token
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require g.current_user.role to be one of roles (use after @require_auth)."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not hasattr(g, "current_user"):
                return error_response(UnauthorizedError("Authentication required"))
            if g.current_user.role not in roles:
                return error_response(ForbiddenError(f"Requires role: {', '.join(roles)}"))
            return f(*args, **kwargs)

        return decorated_function
    return decorator
