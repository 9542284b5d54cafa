# backend/storefront/routes/catalog.py
"""
Catalog routes: categories and products.

Browsing is public. Creating products requires a SELLER or ADMIN account;
sellers can only change their own products.
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import StorefrontError, error_response, internal_error_response
from ..services import products_service
from ..services.auth_service import ROLE_ADMIN, ROLE_SELLER
from ..validation import optional_int, validate_pagination

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# CATEGORIES
# =============================================================================

@catalog_bp.get("/categories")
def list_categories_route():
    categories = products_service.list_categories()
    return jsonify({"items": [c.to_dict() for c in categories], "count": len(categories)}), 200


@catalog_bp.post("/categories")
@require_auth
@require_role(ROLE_ADMIN)
def create_category_route():
    try:
        category = products_service.create_category(g.current_user.role, request.get_json(silent=True))
        return jsonify(category.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create category")
        return internal_error_response()


@catalog_bp.get("/categories/<int:category_id>")
def get_category_route(category_id: int):
    try:
        return jsonify(products_service.get_category(category_id).to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load category %s", category_id)
        return internal_error_response()


@catalog_bp.patch("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_category_route(category_id: int):
    try:
        category = products_service.update_category(
            g.current_user.role, category_id, request.get_json(silent=True)
        )
        return jsonify(category.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update category %s", category_id)
        return internal_error_response()


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_category_route(category_id: int):
    """Products in the category stay and become uncategorized."""
    try:
        detached = products_service.delete_category(g.current_user.role, category_id)
        return jsonify({"ok": True, "products_detached": detached}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete category %s", category_id)
        return internal_error_response()


# =============================================================================
# PRODUCTS
# =============================================================================

@catalog_bp.get("/products")
def list_products_route():
    """
    Query params:
    - category_id, tag_id, owner_id: int (optional)
    - q: name substring (optional)
    - page (default 1), page_size (default 10, max 100)
    """
    try:
        page, page_size = validate_pagination(
            request.args.get("page"),
            request.args.get("page_size"),
            current_app.config["MAX_PAGE_SIZE"],
        )
        result = products_service.list_products(
            category_id=optional_int(request.args.get("category_id"), "category_id"),
            tag_id=optional_int(request.args.get("tag_id"), "tag_id"),
            owner_user_id=optional_int(request.args.get("owner_id"), "owner_id"),
            search=request.args.get("q"),
            page=page,
            page_size=page_size,
        )
        return jsonify(result.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list products")
        return internal_error_response()


@catalog_bp.get("/products/<int:product_id>")
def get_product_route(product_id: int):
    try:
        return jsonify(products_service.get_product(product_id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load product %s", product_id)
        return internal_error_response()


@catalog_bp.post("/products")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def create_product_route():
    """
    Request body:
    {"name": "...", "price": "10.00" | "price_cents": 1000, "stock": 5,
     "currency": "USD", "description": "...", "category_id": 1}
    """
    try:
        product = products_service.create_product(
            g.current_user.id, g.current_user.role, request.get_json(silent=True)
        )
        return jsonify(product.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create product")
        return internal_error_response()


@catalog_bp.patch("/products/<int:product_id>")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def update_product_route(product_id: int):
    try:
        product = products_service.update_product(
            g.current_user.id, g.current_user.role, product_id, request.get_json(silent=True)
        )
        return jsonify(product.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update product %s", product_id)
        return internal_error_response()


@catalog_bp.delete("/products/<int:product_id>")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def delete_product_route(product_id: int):
    """Soft delete: the product stays referenced by past orders."""
    try:
        products_service.deactivate_product(g.current_user.id, g.current_user.role, product_id)
        return jsonify({"ok": True}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete product %s", product_id)
        return internal_error_response()
