# Overview: Charges an order through the configured gateway and reconciles the outcome.

"""
Payment Processing Service

One call to process_payment() runs three short phases:

1. CLAIM (one transaction): lock and re-read the order, check the caller
   and the order status, then insert a PROCESSING payment row. The partial
   unique index uq_payments_order_active allows a single non-FAILED payment
   per order, so a concurrent second claim fails at INSERT.
2. CHARGE (no transaction held): call the gateway. Declines and timeouts
   come back as FAILED results.
3. RECONCILE (one transaction): write the gateway outcome onto the payment
   and, on success, move the order PENDING_PAYMENT -> PAID with a
   conditional UPDATE.

A FAILED attempt leaves the order PENDING_PAYMENT and frees the claim, so
the customer can retry. If phase 3 fails after the gateway captured funds,
the error is logged at CRITICAL with the transaction id and surfaced as
PaymentRecordingError for manual reconciliation.
"""

from __future__ import annotations

from datetime import datetime

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PaymentRecordingError,
)
from ..extensions import db
from ..models import Order, Payment
from ..validation import validate_card_fields, validate_date_range, validate_pagination
from .auth_service import ROLE_ADMIN
from .cache_service import get_or_set, invalidate, order_key, payment_key
from .concurrency import lock_for_update, run_with_retry
from .order_service import ORDER_STATUS_PAID, ORDER_STATUS_PENDING_PAYMENT
from .pagination import PagedResult, paginate
from .payment_gateway import (
    PAYMENT_METHODS,
    PAYMENT_STATUS_FAILED,
    PAYMENT_STATUS_PAID,
    PAYMENT_STATUS_PROCESSING,
    CardDetails,
    PaymentResult,
    get_payment_gateway,
    infer_card_provider,
)

PAYMENT_STATUSES = (PAYMENT_STATUS_PROCESSING, PAYMENT_STATUS_PAID, PAYMENT_STATUS_FAILED)


# =============================================================================
# PROCESSING
# =============================================================================

def _claim(user_id: int, role: str, order_id: int, card: CardDetails, currency: str, provider: str) -> Payment:
    order = lock_for_update(db.session.query(Order).filter_by(id=order_id)).populate_existing().first()
    if not order:
        raise NotFoundError(f"Order {order_id} not found")
    if order.user_id != user_id and role != ROLE_ADMIN:
        raise ForbiddenError("You can only pay for your own orders")
    if order.status != ORDER_STATUS_PENDING_PAYMENT:
        raise ConflictError(f"Order {order_id} is {order.status} and cannot be paid")
    if order.currency != currency:
        raise InvalidInputError(f"Payment currency must match the order currency ({order.currency})")
    if order.total_cents <= 0:
        raise ConflictError(f"Order {order_id} has nothing to charge")

    active = (
        db.session.query(Payment)
        .filter(Payment.order_id == order_id, Payment.status != PAYMENT_STATUS_FAILED)
        .first()
    )
    if active:
        if active.status == PAYMENT_STATUS_PROCESSING:
            raise ConflictError("A payment for this order is already being processed")
        raise ConflictError(f"Order {order_id} is already paid")

    payment = Payment(
        order_id=order_id,
        amount_cents=order.total_cents,
        currency=currency,
        method=card.method,
        provider=provider,
        card_provider=infer_card_provider(card.number),
        status=PAYMENT_STATUS_PROCESSING,
        last_four_digits=card.last_four,
        created_by_user_id=user_id,
    )
    db.session.add(payment)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A payment for this order is already being processed")
    return payment


def _record(payment_id: int, order_id: int, result: PaymentResult) -> None:
    payment = lock_for_update(db.session.query(Payment).filter_by(id=payment_id)).populate_existing().one()
    payment.status = result.status
    payment.transaction_id = result.transaction_id or ""
    payment.message = (result.message or "")[:255]
    payment.card_provider = result.card_provider
    db.session.flush()

    if result.succeeded:
        updated = (
            db.session.query(Order)
            .filter(Order.id == order_id, Order.status == ORDER_STATUS_PENDING_PAYMENT)
            .update(
                {Order.status: ORDER_STATUS_PAID, Order.version_id: Order.version_id + 1},
                synchronize_session="fetch",
            )
        )
        if updated != 1:
            raise ConflictError(f"Order {order_id} left PENDING_PAYMENT while being charged")

    db.session.commit()


def process_payment(
    user_id: int,
    role: str,
    order_id: int,
    card: CardDetails,
    currency: str,
) -> PaymentResult:
    """
    Charge an order's total to a card.

    Returns the gateway's PaymentResult (payment_id set). A FAILED result
    is a normal return value; check result.succeeded.

    Raises:
        InvalidInputError: card fields or method malformed
        NotFoundError: order missing
        ForbiddenError: caller is neither the order owner nor an admin
        ConflictError: order not PENDING_PAYMENT, or a payment is in flight
        PaymentRecordingError: charged but the outcome could not be stored
    """
    if card is None:
        raise InvalidInputError("Card details are required")
    validate_card_fields(
        holder_name=card.holder_name,
        number=card.number,
        exp_month=card.exp_month,
        exp_year=card.exp_year,
        cvc=card.cvc,
        currency=currency,
    )
    if card.method not in PAYMENT_METHODS:
        raise InvalidInputError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
    currency = currency.upper()

    gateway = get_payment_gateway()

    payment = run_with_retry(lambda: _claim(user_id, role, order_id, card, currency, gateway.provider))
    payment_id, amount_cents = payment.id, payment.amount_cents

    try:
        result = gateway.charge(card, amount_cents, currency, reference=f"payment-{payment_id}")
    except Exception:
        current_app.logger.exception("Gateway raised while charging order %s", order_id)
        run_with_retry(lambda: _record(payment_id, order_id, PaymentResult(
            status=PAYMENT_STATUS_FAILED,
            transaction_id="",
            message="Payment gateway error",
            amount_cents=amount_cents,
            currency=currency,
            method=card.method,
            provider=gateway.provider,
            card_provider=infer_card_provider(card.number),
            last_four_digits=card.last_four,
        )))
        invalidate(payment_key(payment_id))
        raise
    result.payment_id = payment_id

    if result.succeeded:
        try:
            run_with_retry(lambda: _record(payment_id, order_id, result))
        except Exception as exc:
            db.session.rollback()
            current_app.logger.critical(
                "Payment captured but not recorded: order=%s payment=%s transaction=%s",
                order_id, payment_id, result.transaction_id,
            )
            raise PaymentRecordingError(
                "Payment was charged but could not be recorded",
                details={
                    "order_id": order_id,
                    "payment_id": payment_id,
                    "transaction_id": result.transaction_id,
                },
            ) from exc
    else:
        current_app.logger.warning(
            "Payment %s for order %s failed%s: %s",
            payment_id, order_id, " (timeout)" if result.timed_out else "", result.message,
        )
        run_with_retry(lambda: _record(payment_id, order_id, result))

    invalidate(order_key(order_id), payment_key(payment_id))
    return result


# =============================================================================
# QUERIES
# =============================================================================

def get_payment(user_id: int, role: str, payment_id: int) -> dict:
    owner_id = (
        db.session.query(Order.user_id)
        .join(Payment, Payment.order_id == Order.id)
        .filter(Payment.id == payment_id)
        .scalar()
    )
    if owner_id is None:
        raise NotFoundError(f"Payment {payment_id} not found")
    if owner_id != user_id and role != ROLE_ADMIN:
        raise ForbiddenError("You do not have access to this payment")

    def _load():
        payment = db.session.get(Payment, payment_id)
        return payment.to_dict() if payment else None

    return get_or_set(payment_key(payment_id), _load)


def list_payments(
    user_id: int,
    role: str,
    *,
    filter_user_id: int | None = None,
    order_id: int | None = None,
    method: str | None = None,
    status: str | None = None,
    start_date: datetime | str | None = None,
    end_date: datetime | str | None = None,
    page=1,
    page_size=10,
) -> PagedResult:
    """Newest first. Non-admins only ever see payments for their own orders."""
    page, page_size = validate_pagination(page, page_size)
    start, end = validate_date_range(start_date, end_date)

    if role != ROLE_ADMIN:
        if filter_user_id is None:
            filter_user_id = user_id
        elif filter_user_id != user_id:
            raise ForbiddenError("You can only list your own payments")

    query = db.session.query(Payment).join(Order, Order.id == Payment.order_id)
    if filter_user_id is not None:
        query = query.filter(Order.user_id == filter_user_id)
    if order_id is not None:
        query = query.filter(Payment.order_id == order_id)
    if method:
        method = method.upper()
        if method not in PAYMENT_METHODS:
            raise InvalidInputError(f"Payment method must be one of: {', '.join(PAYMENT_METHODS)}")
        query = query.filter(Payment.method == method)
    if status:
        status = status.upper()
        if status not in PAYMENT_STATUSES:
            raise InvalidInputError(f"Payment status must be one of: {', '.join(PAYMENT_STATUSES)}")
        query = query.filter(Payment.status == status)
    if start:
        query = query.filter(Payment.created_at >= start)
    if end:
        query = query.filter(Payment.created_at <= end)

    query = query.order_by(Payment.created_at.desc(), Payment.id.desc())
    return paginate(query, page, page_size)
