# backend/storefront/routes/addresses.py
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import address_service

addresses_bp = Blueprint("addresses", __name__, url_prefix="/api/addresses")


@addresses_bp.get("")
@require_auth
def list_addresses_route():
    addresses = address_service.list_addresses(g.current_user.id)
    return jsonify({"items": [a.to_dict() for a in addresses], "count": len(addresses)}), 200


@addresses_bp.post("")
@require_auth
def create_address_route():
    try:
        address = address_service.create_address(g.current_user.id, request.get_json(silent=True))
        return jsonify(address.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create address")
        return internal_error_response()


@addresses_bp.get("/default")
@require_auth
def get_default_address_route():
    try:
        return jsonify(address_service.get_default_address(g.current_user.id).to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load default address")
        return internal_error_response()


@addresses_bp.get("/<int:address_id>")
@require_auth
def get_address_route(address_id: int):
    try:
        return jsonify(address_service.get_address(g.current_user.id, address_id).to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load address %s", address_id)
        return internal_error_response()


@addresses_bp.patch("/<int:address_id>")
@require_auth
def update_address_route(address_id: int):
    try:
        address = address_service.update_address(g.current_user.id, address_id, request.get_json(silent=True))
        return jsonify(address.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update address %s", address_id)
        return internal_error_response()


@addresses_bp.put("/<int:address_id>/default")
@require_auth
def set_default_address_route(address_id: int):
    try:
        address = address_service.set_default_address(g.current_user.id, address_id)
        return jsonify(address.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set default address %s", address_id)
        return internal_error_response()


@addresses_bp.delete("/<int:address_id>")
@require_auth
def delete_address_route(address_id: int):
    try:
        address_service.delete_address(g.current_user.id, address_id)
        return jsonify({"ok": True}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete address %s", address_id)
        return internal_error_response()
