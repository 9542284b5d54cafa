# backend/storefront/services/products_service.py
"""
Catalog service: categories and products.

Sellers manage their own products; admins manage everything. Products are
never hard-deleted because order lines reference them; "delete" clears
is_active, which also makes them unorderable.
"""
from __future__ import annotations

from ..errors import ConflictError, ForbiddenError, NotFoundError, InvalidInputError
from ..extensions import db
from ..models import Category, Product, ProductTag
from ..money import parse_amount_to_cents
from ..validation import ModelValidationPolicy, validate_payload, enforce_rules_product
from .auth_service import ROLE_ADMIN, ROLE_SELLER
from .cache_service import get_or_set, invalidate, product_key
from .pagination import PagedResult, paginate

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description", "price_cents", "currency", "stock", "is_active", "category_id"},
    required_on_create={"name", "price_cents"},
)

CATEGORY_POLICY = ModelValidationPolicy(
    writable_fields={"name", "description"},
    required_on_create={"name"},
)


# =============================================================================
# CATEGORIES
# =============================================================================

def list_categories() -> list[Category]:
    return db.session.query(Category).order_by(Category.name.asc()).all()


def get_category(category_id: int) -> Category:
    category = db.session.get(Category, category_id)
    if not category:
        raise NotFoundError(f"Category {category_id} not found")
    return category


def _check_category_name_free(name: str, category_id: int | None = None) -> None:
    query = db.session.query(Category.id).filter_by(name=name)
    if category_id is not None:
        query = query.filter(Category.id != category_id)
    if query.first():
        raise ConflictError(f"Category '{name}' already exists")


def create_category(role: str, payload: dict) -> Category:
    if role != ROLE_ADMIN:
        raise ForbiddenError("Only admins can create categories")

    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=False)
    _check_category_name_free(patch["name"])

    category = Category(**patch)
    db.session.add(category)
    db.session.commit()
    return category


def update_category(role: str, category_id: int, payload: dict) -> Category:
    if role != ROLE_ADMIN:
        raise ForbiddenError("Only admins can update categories")

    category = get_category(category_id)
    patch = validate_payload(model=Category, payload=payload, policy=CATEGORY_POLICY, partial=True)
    if "name" in patch:
        _check_category_name_free(patch["name"], category_id)

    for k, v in patch.items():
        setattr(category, k, v)
    db.session.commit()
    return category


def delete_category(role: str, category_id: int) -> int:
    """
    Delete a category. Its products stay and become uncategorized.

    Returns how many products were detached.
    """
    if role != ROLE_ADMIN:
        raise ForbiddenError("Only admins can delete categories")

    category = get_category(category_id)
    product_ids = [
        r.id for r in db.session.query(Product.id).filter(Product.category_id == category_id).all()
    ]
    if product_ids:
        db.session.query(Product).filter(Product.id.in_(product_ids)).update(
            {Product.category_id: None, Product.version_id: Product.version_id + 1},
            synchronize_session="fetch",
        )
    db.session.delete(category)
    db.session.commit()
    invalidate(*(product_key(pid) for pid in product_ids))
    return len(product_ids)


# =============================================================================
# PRODUCTS
# =============================================================================

def _normalize_price(payload: dict) -> dict:
    """Accept either price_cents or a decimal "price" from clients."""
    payload = dict(payload or {})
    if "price" in payload:
        if "price_cents" in payload:
            raise InvalidInputError("Send either price or price_cents, not both")
        payload["price_cents"] = parse_amount_to_cents(payload.pop("price"))
    return payload


def _check_category(patch: dict) -> None:
    category_id = patch.get("category_id")
    if category_id is not None and not db.session.get(Category, category_id):
        raise InvalidInputError(f"Category {category_id} not found")


def list_products(
    *,
    category_id: int | None = None,
    tag_id: int | None = None,
    search: str | None = None,
    owner_user_id: int | None = None,
    include_inactive: bool = False,
    page: int = 1,
    page_size: int = 10,
) -> PagedResult:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if tag_id is not None:
        query = query.join(ProductTag, ProductTag.product_id == Product.id).filter(ProductTag.tag_id == tag_id)
    if owner_user_id is not None:
        query = query.filter(Product.owner_user_id == owner_user_id)
    if search:
        query = query.filter(Product.name.ilike(f"%{search.strip()}%"))

    query = query.order_by(Product.name.asc(), Product.id.asc())
    return paginate(query, page, page_size)


def get_product(product_id: int) -> dict:
    """Cached read. Raises NotFoundError."""
    def _load():
        product = db.session.get(Product, product_id)
        return product.to_dict() if product else None

    data = get_or_set(product_key(product_id), _load)
    if data is None:
        raise NotFoundError(f"Product {product_id} not found")
    return data


def create_product(user_id: int, role: str, payload: dict) -> Product:
    if role not in (ROLE_SELLER, ROLE_ADMIN):
        raise ForbiddenError("Only sellers and admins can create products")

    patch = validate_payload(
        model=Product, payload=_normalize_price(payload), policy=PRODUCT_POLICY, partial=False
    )
    enforce_rules_product(patch)
    _check_category(patch)

    product = Product(owner_user_id=user_id, **patch)
    db.session.add(product)
    db.session.commit()
    return product


def get_manageable_product(user_id: int, role: str, product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product {product_id} not found")
    if role != ROLE_ADMIN and product.owner_user_id != user_id:
        raise ForbiddenError("You can only manage your own products")
    return product


def update_product(user_id: int, role: str, product_id: int, payload: dict) -> Product:
    """
    Patch a product. Price changes never alter existing order lines: those
    carry their own unit_price_cents snapshot.
    """
    product = get_manageable_product(user_id, role, product_id)

    patch = validate_payload(
        model=Product, payload=_normalize_price(payload), policy=PRODUCT_POLICY, partial=True
    )
    enforce_rules_product(patch)
    _check_category(patch)

    for k, v in patch.items():
        setattr(product, k, v)
    db.session.commit()
    invalidate(product_key(product_id))
    return product


def deactivate_product(user_id: int, role: str, product_id: int) -> Product:
    product = get_manageable_product(user_id, role, product_id)
    product.is_active = False
    db.session.commit()
    invalidate(product_key(product_id))
    return product
