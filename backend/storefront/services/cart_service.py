# Overview: Per-user shopping cart; feeds order checkout.

from __future__ import annotations

from ..errors import NotFoundError, InvalidInputError, StockUnavailableError
from ..extensions import db
from ..models import Cart, CartItem, Product
from ..validation import require_positive_quantity
from .cache_service import cart_key, get_or_set, invalidate
from .stock_service import StockError


def _get_or_create_cart(user_id: int) -> Cart:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None:
        cart = Cart(user_id=user_id)
        db.session.add(cart)
        db.session.flush()
    return cart


def get_cart(user_id: int) -> dict:
    """Cached cart view; an empty cart is created on first access."""
    def _load():
        cart = _get_or_create_cart(user_id)
        db.session.commit()
        return cart.to_dict()

    return get_or_set(cart_key(user_id), _load)


def get_cart_total(user_id: int) -> dict:
    """Total of the cart at the prices shown when items were added."""
    cart = get_cart(user_id)
    return {
        "total_cents": cart["total_cents"],
        "total": cart["total"],
        "item_count": sum(item["quantity"] for item in cart["items"]),
    }


def _require_orderable(product_id: int, quantity: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product or not product.is_active:
        raise NotFoundError(f"Product {product_id} not found")
    if quantity > product.stock:
        raise StockUnavailableError([StockError(product.id, product.name, product.stock, quantity)])
    return product


def add_item(user_id: int, product_id: int, quantity) -> Cart:
    """
    Add quantity of a product; adding a product already in the cart
    increases its quantity. The combined quantity must be in stock.
    """
    quantity = require_positive_quantity(quantity)
    cart = _get_or_create_cart(user_id)

    item = next((i for i in cart.items if i.product_id == product_id), None)
    combined = quantity + (item.quantity if item else 0)
    product = _require_orderable(product_id, combined)

    if item:
        item.quantity = combined
        item.unit_price_cents = product.price_cents
    else:
        cart.items.append(CartItem(product_id=product_id, quantity=quantity, unit_price_cents=product.price_cents))

    db.session.commit()
    invalidate(cart_key(user_id))
    return cart


def update_item(user_id: int, product_id: int, quantity) -> Cart:
    quantity = require_positive_quantity(quantity)
    cart = _get_or_create_cart(user_id)

    item = next((i for i in cart.items if i.product_id == product_id), None)
    if not item:
        raise NotFoundError(f"Product {product_id} is not in the cart")

    product = _require_orderable(product_id, quantity)
    item.quantity = quantity
    item.unit_price_cents = product.price_cents

    db.session.commit()
    invalidate(cart_key(user_id))
    return cart


def remove_item(user_id: int, product_id: int) -> Cart:
    cart = _get_or_create_cart(user_id)

    item = next((i for i in cart.items if i.product_id == product_id), None)
    if not item:
        raise NotFoundError(f"Product {product_id} is not in the cart")

    cart.items.remove(item)
    db.session.commit()
    invalidate(cart_key(user_id))
    return cart


def clear_cart(user_id: int, *, commit: bool = True) -> None:
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is not None:
        cart.items.clear()
    if commit:
        db.session.commit()
        invalidate(cart_key(user_id))


def cart_lines(user_id: int) -> list[tuple[int, int]]:
    """(product_id, quantity) pairs for checkout, read from the database."""
    cart = db.session.query(Cart).filter_by(user_id=user_id).first()
    if cart is None or not cart.items:
        raise InvalidInputError("Cart is empty")
    return [(item.product_id, item.quantity) for item in cart.items]
