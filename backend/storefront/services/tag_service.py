# Overview: Tag catalog and product tagging with a per-product cap.

"""
Tag service.

Tags are a flat, admin-managed vocabulary (unique names). Sellers attach
tags to their own products; admins may tag any product. A product carries
at most MAX_TAGS_PER_PRODUCT tags.

assign_tag() is strict (duplicate or over-cap raises ConflictError);
try_assign_tags() is lenient: unknown ids and tags already on the product
are skipped and the batch is cut at the cap.
"""

from __future__ import annotations

from typing import Iterable

from ..errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from ..extensions import db
from ..models import Product, ProductTag, Tag
from ..validation import ModelValidationPolicy, coerce_int, validate_payload
from .auth_service import ROLE_ADMIN
from .cache_service import get_or_set, invalidate, tag_key
from .pagination import PagedResult, paginate
from .products_service import get_manageable_product

MAX_TAGS_PER_PRODUCT = 10
DEFAULT_TAG_PAGE_SIZE = 20

TAG_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)


# =============================================================================
# TAGS
# =============================================================================

def _require_admin(role: str, action: str) -> None:
    if role != ROLE_ADMIN:
        raise ForbiddenError(f"Only admins can {action} tags")


def _load_tag(tag_id: int) -> Tag:
    tag = db.session.get(Tag, tag_id)
    if not tag:
        raise NotFoundError(f"Tag {tag_id} not found")
    return tag


def _check_name_free(name: str, tag_id: int | None = None) -> None:
    query = db.session.query(Tag.id).filter(db.func.lower(Tag.name) == name.lower())
    if tag_id is not None:
        query = query.filter(Tag.id != tag_id)
    if query.first():
        raise ConflictError(f"Tag '{name}' already exists")


def get_tag(tag_id: int) -> dict:
    """Cached read. Raises NotFoundError."""
    def _load():
        tag = db.session.get(Tag, tag_id)
        return tag.to_dict() if tag else None

    data = get_or_set(tag_key(tag_id), _load)
    if data is None:
        raise NotFoundError(f"Tag {tag_id} not found")
    return data


def list_tags(page: int = 1, page_size: int = DEFAULT_TAG_PAGE_SIZE) -> PagedResult:
    query = db.session.query(Tag).order_by(Tag.name.asc(), Tag.id.asc())
    return paginate(query, page, page_size)


def search_tags(term: str | None, page: int = 1, page_size: int = DEFAULT_TAG_PAGE_SIZE) -> PagedResult:
    """Case-insensitive substring match on name. A blank term matches nothing."""
    term = (term or "").strip()
    if not term:
        return PagedResult(items=[], page=page, page_size=page_size, total=0)

    query = (
        db.session.query(Tag)
        .filter(Tag.name.ilike(f"%{term}%"))
        .order_by(Tag.name.asc(), Tag.id.asc())
    )
    return paginate(query, page, page_size)


def create_tag(role: str, payload: dict) -> Tag:
    _require_admin(role, "create")
    patch = validate_payload(model=Tag, payload=payload, policy=TAG_POLICY, partial=False)
    _check_name_free(patch["name"])

    tag = Tag(**patch)
    db.session.add(tag)
    db.session.commit()
    return tag


def update_tag(role: str, tag_id: int, payload: dict) -> Tag:
    _require_admin(role, "update")
    tag = _load_tag(tag_id)
    patch = validate_payload(model=Tag, payload=payload, policy=TAG_POLICY, partial=True)
    if "name" in patch:
        _check_name_free(patch["name"], tag_id)

    for k, v in patch.items():
        setattr(tag, k, v)
    db.session.commit()
    invalidate(tag_key(tag_id))
    return tag


def delete_tag(role: str, tag_id: int) -> None:
    """Hard delete; the tag's product links go with it."""
    _require_admin(role, "delete")
    tag = _load_tag(tag_id)
    db.session.delete(tag)
    db.session.commit()
    invalidate(tag_key(tag_id))


# =============================================================================
# PRODUCT TAGS
# =============================================================================

def _tag_ids_for_product(product_id: int) -> list[int]:
    rows = (
        db.session.query(ProductTag.tag_id)
        .filter(ProductTag.product_id == product_id)
        .order_by(ProductTag.id.asc())
        .all()
    )
    return [r.tag_id for r in rows]


def list_product_tags(product_id: int) -> list[Tag]:
    if not db.session.get(Product, product_id):
        raise NotFoundError(f"Product {product_id} not found")
    return (
        db.session.query(Tag)
        .join(ProductTag, ProductTag.tag_id == Tag.id)
        .filter(ProductTag.product_id == product_id)
        .order_by(Tag.name.asc())
        .all()
    )


def assign_tag(user_id: int, role: str, product_id: int, tag_id) -> ProductTag:
    """
    Attach one tag to a product.

    Raises:
        NotFoundError: product or tag missing
        ForbiddenError: caller neither owns the product nor is an admin
        ConflictError: tag already attached, or the product is at the cap
    """
    get_manageable_product(user_id, role, product_id)
    tag = _load_tag(coerce_int(tag_id, "tag_id"))

    existing = _tag_ids_for_product(product_id)
    if tag.id in existing:
        raise ConflictError(f"Product {product_id} already has tag '{tag.name}'")
    if len(existing) >= MAX_TAGS_PER_PRODUCT:
        raise ConflictError(f"Product {product_id} already has {MAX_TAGS_PER_PRODUCT} tags")

    link = ProductTag(product_id=product_id, tag_id=tag.id)
    db.session.add(link)
    db.session.commit()
    return link


def try_assign_tags(user_id: int, role: str, product_id: int, tag_ids: Iterable) -> list[ProductTag]:
    """
    Attach whichever of tag_ids can be attached; returns only the new links.

    Unknown tags and tags already on the product are skipped. When the batch
    would pass the cap, the first ids that fit are kept.
    """
    get_manageable_product(user_id, role, product_id)
    if not isinstance(tag_ids, (list, tuple)):
        raise InvalidInputError("tag_ids must be a list")
    if len(tag_ids) > MAX_TAGS_PER_PRODUCT:
        raise InvalidInputError(f"You can only assign a maximum of {MAX_TAGS_PER_PRODUCT} tags")

    requested = []
    for raw in tag_ids:
        tag_id = coerce_int(raw, "tag_ids")
        if tag_id not in requested:
            requested.append(tag_id)

    known = {r.id for r in db.session.query(Tag.id).filter(Tag.id.in_(requested)).all()} if requested else set()
    existing = set(_tag_ids_for_product(product_id))
    new_ids = [t for t in requested if t in known and t not in existing]
    new_ids = new_ids[:max(0, MAX_TAGS_PER_PRODUCT - len(existing))]
    if not new_ids:
        return []

    links = [ProductTag(product_id=product_id, tag_id=t) for t in new_ids]
    db.session.add_all(links)
    db.session.commit()
    return links


def remove_tag(user_id: int, role: str, product_id: int, tag_id: int) -> None:
    get_manageable_product(user_id, role, product_id)
    tag = _load_tag(tag_id)

    link = db.session.query(ProductTag).filter_by(product_id=product_id, tag_id=tag.id).first()
    if not link:
        raise ConflictError(f"Product {product_id} does not have tag '{tag.name}'")
    db.session.delete(link)
    db.session.commit()


def remove_all_tags(user_id: int, role: str, product_id: int) -> int:
    """Detach every tag; returns how many links were removed."""
    get_manageable_product(user_id, role, product_id)
    removed = (
        db.session.query(ProductTag)
        .filter(ProductTag.product_id == product_id)
        .delete(synchronize_session="fetch")
    )
    db.session.commit()
    return removed
