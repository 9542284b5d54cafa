# Overview: Order assembly, visibility rules and the order status state machine.

"""
Order service.

LIFECYCLE:
    DRAFT -> PENDING_PAYMENT -> PAID -> SHIPPED -> DELIVERED
    DRAFT | PENDING_PAYMENT | PAID -> CANCELLED

Orders are created directly in PENDING_PAYMENT. Creation checks stock for
every line, snapshots each product's current price onto the line, and
takes the stock in the same transaction as the order insert. PAID is only
ever reached through payment_service; a failed payment leaves the order in
PENDING_PAYMENT so the customer can retry. Cancelling returns the stock.

VISIBILITY:
- CUSTOMER: own orders
- SELLER: orders containing at least one of the seller's products
- ADMIN: everything
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable

from ..errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StockUnavailableError,
)
from ..extensions import db
from ..models import Order, OrderDetail, Payment, Product
from ..validation import MAX_PAGE_SIZE, coerce_int, validate_date_range, validate_pagination
from .address_service import resolve_shipping_address
from .auth_service import ROLE_ADMIN, ROLE_SELLER
from .cache_service import get_or_set, invalidate, order_details_key, order_key, product_key, cart_key
from .cart_service import cart_lines, clear_cart
from .concurrency import lock_for_update, run_with_retry
from .pagination import PagedResult, paginate
from .stock_service import StockError, aggregate_lines, check_stock, decrement_stock, restore_stock


# Order status constants
ORDER_STATUS_DRAFT = "DRAFT"
ORDER_STATUS_PENDING_PAYMENT = "PENDING_PAYMENT"
ORDER_STATUS_PAID = "PAID"
ORDER_STATUS_SHIPPED = "SHIPPED"
ORDER_STATUS_DELIVERED = "DELIVERED"
ORDER_STATUS_CANCELLED = "CANCELLED"

ORDER_STATUSES = (
    ORDER_STATUS_DRAFT,
    ORDER_STATUS_PENDING_PAYMENT,
    ORDER_STATUS_PAID,
    ORDER_STATUS_SHIPPED,
    ORDER_STATUS_DELIVERED,
    ORDER_STATUS_CANCELLED,
)

ALLOWED_TRANSITIONS = {
    ORDER_STATUS_DRAFT: {ORDER_STATUS_PENDING_PAYMENT, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PENDING_PAYMENT: {ORDER_STATUS_PAID, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_PAID: {ORDER_STATUS_SHIPPED, ORDER_STATUS_CANCELLED},
    ORDER_STATUS_SHIPPED: {ORDER_STATUS_DELIVERED},
    ORDER_STATUS_DELIVERED: set(),
    ORDER_STATUS_CANCELLED: set(),
}

ADDRESS_EDITABLE_STATUSES = {ORDER_STATUS_DRAFT, ORDER_STATUS_PENDING_PAYMENT}
FULFILMENT_STATUSES = {ORDER_STATUS_SHIPPED, ORDER_STATUS_DELIVERED}


def normalize_status(status: str) -> str:
    value = (status or "").strip().upper()
    if value not in ORDER_STATUSES:
        raise InvalidInputError(f"Unknown order status: {status}")
    return value


# =============================================================================
# VISIBILITY
# =============================================================================

def seller_has_products_in_order(seller_id: int, order_id: int) -> bool:
    return (
        db.session.query(OrderDetail.id)
        .join(Product, Product.id == OrderDetail.product_id)
        .filter(OrderDetail.order_id == order_id, Product.owner_user_id == seller_id)
        .first()
        is not None
    )


def can_view_order(user_id: int, role: str, order_user_id: int, order_id: int) -> bool:
    if role == ROLE_ADMIN or order_user_id == user_id:
        return True
    if role == ROLE_SELLER:
        return seller_has_products_in_order(user_id, order_id)
    return False


def _load_visible_order(user_id: int, role: str, order_id: int, *, lock: bool = False) -> Order:
    query = db.session.query(Order).filter_by(id=order_id)
    if lock:
        query = lock_for_update(query).populate_existing()
    order = query.first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    if not can_view_order(user_id, role, order.user_id, order.id):
        raise ForbiddenError("You do not have access to this order")
    return order


def invalidate_order(order_id: int, product_ids: Iterable[int] = ()) -> None:
    invalidate(order_key(order_id), order_details_key(order_id), *(product_key(pid) for pid in product_ids))


# =============================================================================
# ASSEMBLY
# =============================================================================

def _parse_lines(lines) -> list[tuple[int, int]]:
    if not lines:
        raise InvalidInputError("Order must contain at least one line")
    parsed = []
    for line in lines:
        if isinstance(line, dict):
            product_id, quantity = line.get("product_id"), line.get("quantity")
        else:
            product_id, quantity = line
        if product_id is None:
            raise InvalidInputError("product_id is required for every line")
        parsed.append((coerce_int(product_id, "product_id"), quantity))
    return parsed


def assemble_order(user_id: int, lines, shipping_address_id: int | None = None) -> Order:
    """
    Build and flush an order aggregate without committing.

    Raises:
        InvalidInputError: no lines, bad quantity, no usable shipping address
        StockUnavailableError: one or more lines exceed stock (every
            offending line is reported); nothing is written
    """
    totals = aggregate_lines(_parse_lines(lines))
    address = resolve_shipping_address(user_id, shipping_address_id)

    def _op():
        check = check_stock(totals.items())
        if not check.success:
            raise StockUnavailableError(check.errors)

        currencies = {p.currency for p in check.products.values()}
        if len(currencies) > 1:
            raise InvalidInputError("All products in an order must share one currency")

        order = Order(
            user_id=user_id,
            shipping_address_id=address.id,
            status=ORDER_STATUS_PENDING_PAYMENT,
            currency=currencies.pop(),
        )

        for product_id, quantity in totals.items():
            product = check.products[product_id]
            unit_price_cents = product.price_cents
            if not decrement_stock(product_id, quantity):
                # Sold between the check and the UPDATE: report fresh numbers
                db.session.rollback()
                recheck = check_stock(totals.items())
                errors = recheck.errors or [StockError(product_id, product.name, product.stock, quantity)]
                raise StockUnavailableError(errors)
            order.details.append(
                OrderDetail(product_id=product_id, quantity=quantity, unit_price_cents=unit_price_cents)
            )

        order.total_cents = sum(d.unit_price_cents * d.quantity for d in order.details)
        db.session.add(order)
        db.session.flush()
        return order

    return run_with_retry(_op)


def create_order(user_id: int, lines, shipping_address_id: int | None = None) -> Order:
    order = assemble_order(user_id, lines, shipping_address_id)
    db.session.commit()
    invalidate(*(product_key(d.product_id) for d in order.details))
    return order


def create_order_from_cart(user_id: int, shipping_address_id: int | None = None) -> Order:
    """Check out the user's cart; the cart is emptied in the order's transaction."""
    lines = cart_lines(user_id)
    order = assemble_order(user_id, lines, shipping_address_id)
    clear_cart(user_id, commit=False)
    db.session.commit()
    invalidate(cart_key(user_id), *(product_key(d.product_id) for d in order.details))
    return order


# =============================================================================
# READS
# =============================================================================

def get_order(user_id: int, role: str, order_id: int) -> dict:
    """Order with its lines. Access is always checked against the database."""
    order_user_id = db.session.query(Order.user_id).filter_by(id=order_id).scalar()
    if order_user_id is None:
        raise NotFoundError(f"Order {order_id} not found")
    if not can_view_order(user_id, role, order_user_id, order_id):
        raise ForbiddenError("You do not have access to this order")

    def _load():
        order = db.session.get(Order, order_id)
        return order.to_dict() if order else None

    return get_or_set(order_key(order_id), _load)


def get_order_details(user_id: int, role: str, order_id: int) -> list[dict]:
    order_user_id = db.session.query(Order.user_id).filter_by(id=order_id).scalar()
    if order_user_id is None:
        raise NotFoundError(f"Order {order_id} not found")
    if not can_view_order(user_id, role, order_user_id, order_id):
        raise ForbiddenError("You do not have access to this order")

    def _load():
        details = (
            db.session.query(OrderDetail)
            .filter_by(order_id=order_id)
            .order_by(OrderDetail.id.asc())
            .all()
        )
        return [d.to_dict() for d in details]

    return get_or_set(order_details_key(order_id), _load)


def list_orders(
    user_id: int,
    role: str,
    *,
    status: str | None = None,
    start_date: datetime | str | None = None,
    end_date: datetime | str | None = None,
    filter_user_id: int | None = None,
    seller_id: int | None = None,
    page=1,
    page_size=10,
    max_page_size: int | None = None,
) -> PagedResult:
    """
    Filtered, paginated order listing, newest first.

    Customers may only list their own orders; sellers list orders that
    contain their products (seller_id defaults to, and must equal, their
    own id); admins are unrestricted.
    """
    page, page_size = validate_pagination(page, page_size, max_page_size or MAX_PAGE_SIZE)
    start, end = validate_date_range(start_date, end_date)

    if role == ROLE_ADMIN:
        pass
    elif role == ROLE_SELLER:
        if seller_id is None:
            seller_id = user_id
        elif seller_id != user_id:
            raise ForbiddenError("Sellers can only list orders for their own products")
    else:
        if filter_user_id is None:
            filter_user_id = user_id
        elif filter_user_id != user_id:
            raise ForbiddenError("You can only list your own orders")
        if seller_id is not None:
            raise ForbiddenError("Only sellers and admins can filter by seller")

    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == normalize_status(status))
    if filter_user_id is not None:
        query = query.filter(Order.user_id == filter_user_id)
    if seller_id is not None:
        seller_orders = (
            db.session.query(OrderDetail.order_id)
            .join(Product, Product.id == OrderDetail.product_id)
            .filter(Product.owner_user_id == seller_id)
        )
        query = query.filter(Order.id.in_(seller_orders))
    if start:
        query = query.filter(Order.created_at >= start)
    if end:
        query = query.filter(Order.created_at <= end)

    query = query.order_by(Order.created_at.desc(), Order.id.desc())
    return paginate(query, page, page_size)


# =============================================================================
# STATUS CHANGES
# =============================================================================

def _authorize_transition(user_id: int, role: str, order: Order, new_status: str) -> None:
    if role == ROLE_ADMIN:
        return
    if new_status in FULFILMENT_STATUSES:
        if role != ROLE_SELLER:
            raise ForbiddenError("Only sellers and admins can mark orders shipped or delivered")
        return
    if order.user_id != user_id:
        raise ForbiddenError("Only the order owner or an admin can change this order")


def update_order_status(user_id: int, role: str, order_id: int, new_status: str) -> Order:
    """
    Apply one state-machine transition.

    The UPDATE is conditional on the status that was read, so two racing
    transitions cannot both apply. Cancelling returns each line's quantity
    to stock in the same transaction.

    Raises:
        InvalidInputError: unknown status
        NotFoundError / ForbiddenError: order missing or not the caller's
        ConflictError: transition not allowed from the current status, a
            payment is in flight, or the status changed concurrently
    """
    new_status = normalize_status(new_status)
    if new_status == ORDER_STATUS_PAID:
        raise ConflictError("Orders can only become PAID through a successful payment")

    def _op():
        order = _load_visible_order(user_id, role, order_id, lock=True)
        _authorize_transition(user_id, role, order, new_status)

        current = order.status
        if new_status not in ALLOWED_TRANSITIONS[current]:
            raise ConflictError(f"Cannot change order status from {current} to {new_status}")

        if new_status == ORDER_STATUS_CANCELLED:
            in_flight = db.session.query(Payment.id).filter_by(
                order_id=order_id, status="PROCESSING"
            ).first()
            if in_flight:
                raise ConflictError("A payment for this order is being processed")

        updated = (
            db.session.query(Order)
            .filter(Order.id == order_id, Order.status == current)
            .update(
                {Order.status: new_status, Order.version_id: Order.version_id + 1},
                synchronize_session="fetch",
            )
        )
        if updated != 1:
            db.session.rollback()
            raise ConflictError("Order status changed concurrently; reload and retry")

        if new_status == ORDER_STATUS_CANCELLED:
            for detail in order.details:
                restore_stock(detail.product_id, detail.quantity)

        db.session.commit()
        return order

    order = run_with_retry(_op)
    invalidate_order(order_id, [d.product_id for d in order.details])
    return order


def cancel_order(user_id: int, role: str, order_id: int) -> Order:
    return update_order_status(user_id, role, order_id, ORDER_STATUS_CANCELLED)


def update_order_address(user_id: int, order_id: int, address_id) -> Order:
    """Owner only, and only before the order is paid."""
    address_id = coerce_int(address_id, "address_id")

    def _op():
        order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).first()
        if not order:
            raise NotFoundError(f"Order {order_id} not found")
        if order.user_id != user_id:
            raise ForbiddenError("Only the order owner can change the shipping address")
        if order.status not in ADDRESS_EDITABLE_STATUSES:
            raise ConflictError(f"Cannot change the address of a {order.status} order")

        address = resolve_shipping_address(user_id, address_id)
        order.shipping_address_id = address.id
        db.session.commit()
        return order

    order = run_with_retry(_op)
    invalidate_order(order_id)
    return order
