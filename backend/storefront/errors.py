# Overview: Service-layer error taxonomy shared by services and routes.

"""
Storefront errors.

Every service failure is raised as a StorefrontError subclass with a stable
`kind` (rendered to API clients) and the HTTP status the routes answer with.
`details` carries structured data, e.g. the per-line stock errors of a
rejected order.
"""

from flask import jsonify


class StorefrontError(Exception):
    """Base class for expected, client-visible failures."""
    kind = "INTERNAL"
    status_code = 500

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        payload = {"error": self.kind, "message": self.message}
        if self.details:
            payload["details"] = self.details
        return payload


class NotFoundError(StorefrontError):
    kind = "NOT_FOUND"
    status_code = 404


class InvalidInputError(StorefrontError):
    kind = "INVALID_INPUT"
    status_code = 400


class ConflictError(StorefrontError):
    kind = "CONFLICT"
    status_code = 409


class StockUnavailableError(ConflictError):
    """Raised when one or more order lines exceed available stock."""

    def __init__(self, stock_errors: list):
        self.stock_errors = list(stock_errors)
        super().__init__(
            "Insufficient stock for one or more items",
            details={"stock_errors": [e.to_dict() for e in self.stock_errors]},
        )


class UnauthorizedError(StorefrontError):
    kind = "UNAUTHORIZED"
    status_code = 401


class ForbiddenError(StorefrontError):
    kind = "FORBIDDEN"
    status_code = 403


class GatewayError(StorefrontError):
    kind = "GATEWAY_FAILURE"
    status_code = 502


class InternalError(StorefrontError):
    kind = "INTERNAL"
    status_code = 500


class PaymentRecordingError(InternalError):
    """
    The gateway captured funds but the result could not be persisted.

    Leaves order and payment out of sync with the provider; must be
    reconciled by an operator using the transaction id in `details`.
    """


def error_response(exc: StorefrontError):
    """Render a StorefrontError as a (json, status) route return value."""
    return jsonify(exc.to_dict()), exc.status_code


def internal_error_response():
    """Generic 500 for unexpected exceptions; details stay in the log."""
    return jsonify(InternalError("Internal server error").to_dict()), 500
