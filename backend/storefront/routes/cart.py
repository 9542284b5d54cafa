# backend/storefront/routes/cart.py
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import InvalidInputError, StorefrontError, error_response, internal_error_response
from ..services import cart_service
from ..validation import coerce_int

cart_bp = Blueprint("cart", __name__, url_prefix="/api/cart")


@cart_bp.get("")
@require_auth
def get_cart_route():
    try:
        return jsonify(cart_service.get_cart(g.current_user.id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load cart")
        return internal_error_response()


@cart_bp.get("/total")
@require_auth
def get_cart_total_route():
    try:
        return jsonify(cart_service.get_cart_total(g.current_user.id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to compute cart total")
        return internal_error_response()


@cart_bp.delete("")
@require_auth
def clear_cart_route():
    cart_service.clear_cart(g.current_user.id)
    return jsonify({"ok": True}), 200


@cart_bp.post("/items")
@require_auth
def add_cart_item_route():
    """
    Request body:
    {"product_id": 1, "quantity": 2}
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("product_id") is None:
            raise InvalidInputError("product_id is required")
        cart = cart_service.add_item(
            g.current_user.id,
            coerce_int(data["product_id"], "product_id"),
            data.get("quantity", 1),
        )
        return jsonify(cart.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to add cart item")
        return internal_error_response()


@cart_bp.patch("/items/<int:product_id>")
@require_auth
def update_cart_item_route(product_id: int):
    try:
        data = request.get_json(silent=True) or {}
        cart = cart_service.update_item(g.current_user.id, product_id, data.get("quantity"))
        return jsonify(cart.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update cart item %s", product_id)
        return internal_error_response()


@cart_bp.delete("/items/<int:product_id>")
@require_auth
def remove_cart_item_route(product_id: int):
    try:
        cart = cart_service.remove_item(g.current_user.id, product_id)
        return jsonify(cart.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove cart item %s", product_id)
        return internal_error_response()
