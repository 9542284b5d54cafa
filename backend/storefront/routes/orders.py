# backend/storefront/routes/orders.py
"""
Order API routes.

Thin layer: parse JSON/query input, pass the caller's id and role to
order_service, render StorefrontError as {"error", "message", "details"}.
Stock failures answer 409 with details.stock_errors.
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import InvalidInputError, StorefrontError, error_response, internal_error_response
from ..services import order_service
from ..validation import optional_int

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


# =============================================================================
# CREATION
# =============================================================================

@orders_bp.post("")
@require_auth
def create_order_route():
    """
    Request body:
    {
        "lines": [{"product_id": 1, "quantity": 2}, ...],
        "shipping_address_id": 3   (optional, defaults to the user's default address)
    }

    Returns:
        201: Order created in PENDING_PAYMENT
        400: Invalid input
        409: Insufficient stock (details.stock_errors lists every offending line)
    """
    try:
        data = request.get_json(silent=True) or {}
        lines = data.get("lines")
        if not isinstance(lines, list):
            raise InvalidInputError("lines must be a list of {product_id, quantity}")

        order = order_service.create_order(
            g.current_user.id,
            lines,
            optional_int(data.get("shipping_address_id"), "shipping_address_id"),
        )
        return jsonify(order.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order")
        return internal_error_response()


@orders_bp.post("/from-cart")
@require_auth
def create_order_from_cart_route():
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.create_order_from_cart(
            g.current_user.id,
            optional_int(data.get("shipping_address_id"), "shipping_address_id"),
        )
        return jsonify(order.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create order from cart")
        return internal_error_response()


# =============================================================================
# QUERIES
# =============================================================================

@orders_bp.get("")
@require_auth
def list_orders_route():
    """
    Query params (all optional):
    - status: DRAFT | PENDING_PAYMENT | PAID | SHIPPED | DELIVERED | CANCELLED
    - start_date, end_date: ISO-8601, not in the future
    - user_id: filter by customer (admins; customers may pass their own)
    - seller_id: orders containing this seller's products
    - page (default 1), page_size (default 10, max 100)
    """
    try:
        args = request.args
        result = order_service.list_orders(
            g.current_user.id,
            g.current_user.role,
            status=args.get("status"),
            start_date=args.get("start_date"),
            end_date=args.get("end_date"),
            filter_user_id=optional_int(args.get("user_id"), "user_id"),
            seller_id=optional_int(args.get("seller_id"), "seller_id"),
            page=args.get("page"),
            page_size=args.get("page_size"),
            max_page_size=current_app.config["MAX_PAGE_SIZE"],
        )
        return jsonify(result.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list orders")
        return internal_error_response()


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = order_service.get_order(g.current_user.id, g.current_user.role, order_id)
        return jsonify(order), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order %s", order_id)
        return internal_error_response()


@orders_bp.get("/<int:order_id>/details")
@require_auth
def get_order_details_route(order_id: int):
    try:
        details = order_service.get_order_details(g.current_user.id, g.current_user.role, order_id)
        return jsonify({"items": details, "count": len(details)}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load order details %s", order_id)
        return internal_error_response()


# =============================================================================
# MUTATIONS
# =============================================================================

@orders_bp.patch("/<int:order_id>/status")
@require_auth
def update_order_status_route(order_id: int):
    """
    Request body:
    {"status": "SHIPPED"}

    Returns:
        200: Updated order
        400: Unknown status
        403: Caller may not perform this transition
        409: Transition not allowed from the current status
    """
    try:
        data = request.get_json(silent=True) or {}
        order = order_service.update_order_status(
            g.current_user.id, g.current_user.role, order_id, data.get("status")
        )
        return jsonify(order.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update status of order %s", order_id)
        return internal_error_response()


@orders_bp.post("/<int:order_id>/cancel")
@require_auth
def cancel_order_route(order_id: int):
    try:
        order = order_service.cancel_order(g.current_user.id, g.current_user.role, order_id)
        return jsonify(order.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to cancel order %s", order_id)
        return internal_error_response()


@orders_bp.patch("/<int:order_id>/address")
@require_auth
def update_order_address_route(order_id: int):
    try:
        data = request.get_json(silent=True) or {}
        if data.get("address_id") is None:
            raise InvalidInputError("address_id is required")
        order = order_service.update_order_address(g.current_user.id, order_id, data["address_id"])
        return jsonify(order.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update address of order %s", order_id)
        return internal_error_response()
