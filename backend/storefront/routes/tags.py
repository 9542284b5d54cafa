# backend/storefront/routes/tags.py
"""
Tag routes: the tag vocabulary and the tags on a product.

Browsing and searching tags is for SELLER and ADMIN accounts; only admins
create, rename or delete tags. A product's tags are public to read and
managed by the product's owner (or an admin).
"""
from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth, require_role
from ..errors import InvalidInputError, StorefrontError, error_response, internal_error_response
from ..services import tag_service
from ..services.auth_service import ROLE_ADMIN, ROLE_SELLER
from ..validation import validate_pagination

tags_bp = Blueprint("tags", __name__, url_prefix="/api")


def _tag_pagination():
    return validate_pagination(
        request.args.get("page"),
        request.args.get("page_size", tag_service.DEFAULT_TAG_PAGE_SIZE),
        current_app.config["MAX_PAGE_SIZE"],
    )


# =============================================================================
# TAGS
# =============================================================================

@tags_bp.get("/tags")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def list_tags_route():
    try:
        page, page_size = _tag_pagination()
        return jsonify(tag_service.list_tags(page, page_size).to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list tags")
        return internal_error_response()


@tags_bp.get("/tags/search")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def search_tags_route():
    """Query params: q (name substring), page, page_size (default 20)."""
    try:
        page, page_size = _tag_pagination()
        result = tag_service.search_tags(request.args.get("q"), page, page_size)
        return jsonify(result.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to search tags")
        return internal_error_response()


@tags_bp.get("/tags/<int:tag_id>")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def get_tag_route(tag_id: int):
    try:
        return jsonify(tag_service.get_tag(tag_id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load tag %s", tag_id)
        return internal_error_response()


@tags_bp.post("/tags")
@require_auth
@require_role(ROLE_ADMIN)
def create_tag_route():
    try:
        tag = tag_service.create_tag(g.current_user.role, request.get_json(silent=True))
        return jsonify(tag.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create tag")
        return internal_error_response()


@tags_bp.patch("/tags/<int:tag_id>")
@require_auth
@require_role(ROLE_ADMIN)
def update_tag_route(tag_id: int):
    try:
        tag = tag_service.update_tag(g.current_user.role, tag_id, request.get_json(silent=True))
        return jsonify(tag.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update tag %s", tag_id)
        return internal_error_response()


@tags_bp.delete("/tags/<int:tag_id>")
@require_auth
@require_role(ROLE_ADMIN)
def delete_tag_route(tag_id: int):
    try:
        tag_service.delete_tag(g.current_user.role, tag_id)
        return jsonify({"ok": True}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to delete tag %s", tag_id)
        return internal_error_response()


# =============================================================================
# PRODUCT TAGS
# =============================================================================

@tags_bp.get("/products/<int:product_id>/tags")
def list_product_tags_route(product_id: int):
    try:
        tags = tag_service.list_product_tags(product_id)
        return jsonify({"items": [t.to_dict() for t in tags], "count": len(tags)}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list tags of product %s", product_id)
        return internal_error_response()


@tags_bp.post("/products/<int:product_id>/tags")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def assign_product_tags_route(product_id: int):
    """
    Request body, one of:
    {"tag_id": 3}          strict; 201 with the new link
    {"tag_ids": [3, 4]}    lenient; 200 with the links actually added
    """
    try:
        data = request.get_json(silent=True) or {}
        user = g.current_user
        if "tag_ids" in data:
            links = tag_service.try_assign_tags(user.id, user.role, product_id, data["tag_ids"])
            return jsonify({"items": [link.to_dict() for link in links], "count": len(links)}), 200
        if "tag_id" not in data:
            raise InvalidInputError("tag_id or tag_ids is required")
        link = tag_service.assign_tag(user.id, user.role, product_id, data["tag_id"])
        return jsonify(link.to_dict()), 201
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to tag product %s", product_id)
        return internal_error_response()


@tags_bp.delete("/products/<int:product_id>/tags/<int:tag_id>")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def remove_product_tag_route(product_id: int, tag_id: int):
    try:
        tag_service.remove_tag(g.current_user.id, g.current_user.role, product_id, tag_id)
        return jsonify({"ok": True}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to untag product %s", product_id)
        return internal_error_response()


@tags_bp.delete("/products/<int:product_id>/tags")
@require_auth
@require_role(ROLE_SELLER, ROLE_ADMIN)
def clear_product_tags_route(product_id: int):
    try:
        removed = tag_service.remove_all_tags(g.current_user.id, g.current_user.role, product_id)
        return jsonify({"ok": True, "removed": removed}), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to clear tags of product %s", product_id)
        return internal_error_response()
