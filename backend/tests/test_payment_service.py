"""
Payment orchestration tests.

Verifies:
- Successful charge marks payment and order PAID
- Paying a PAID or CANCELLED order is a conflict and writes nothing
- Declines and timeouts leave the order PENDING_PAYMENT and allow retry
- A payment in flight blocks a second attempt
- A charge that cannot be recorded is escalated, not hidden
"""

import logging

import pytest
from sqlalchemy.exc import IntegrityError

from storefront.errors import (
    ConflictError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    PaymentRecordingError,
)
from storefront.models import Order, Payment
from storefront.services import order_service, payment_service
from storefront.services.payment_gateway import EXTENSION_KEY, CardDetails

from .conftest import DECLINED_CARD_NUMBER, TIMEOUT_CARD_NUMBER, VALID_CARD


def _card(**overrides):
    return CardDetails(**{**VALID_CARD, **overrides})


@pytest.fixture
def order(db_session, customer, address, products):
    widget, _ = products
    return order_service.create_order(customer.id, [(widget.id, 2)])


def _pay(customer, order, role="CUSTOMER", **card):
    return payment_service.process_payment(customer.id, role, order.id, _card(**card), "USD")


def test_successful_payment(db_session, customer, order):
    result = _pay(customer, order)

    assert result.succeeded
    assert result.status == "PAID"
    assert result.transaction_id
    assert result.amount_cents == 2000
    assert result.card_provider == "VISA"
    assert result.last_four_digits == "4242"
    assert result.error_kind is None

    payment = db_session.get(Payment, result.payment_id)
    assert payment.status == "PAID"
    assert payment.transaction_id == result.transaction_id
    assert db_session.get(Order, order.id).status == "PAID"


def test_second_payment_rejected_without_charge(db_session, customer, order, app, monkeypatch):
    _pay(customer, order)

    gateway = app.extensions[EXTENSION_KEY]
    calls = []
    monkeypatch.setattr(gateway, "charge", lambda *a, **k: calls.append(a))

    with pytest.raises(ConflictError):
        _pay(customer, order)

    assert calls == []
    assert db_session.query(Payment).filter_by(order_id=order.id).count() == 1
    assert db_session.get(Order, order.id).status == "PAID"


def test_gateway_reference_names_the_payment_row(db_session, customer, order, app, monkeypatch):
    gateway = app.extensions[EXTENSION_KEY]
    real_charge = gateway.charge
    references = []

    def charge(card, amount_cents, currency, *, reference=None):
        references.append(reference)
        return real_charge(card, amount_cents, currency, reference=reference)

    monkeypatch.setattr(gateway, "charge", charge)

    result = _pay(customer, order)

    assert references == [f"payment-{result.payment_id}"]


def test_gateway_timeout(db_session, customer, order):
    result = _pay(customer, order, number=TIMEOUT_CARD_NUMBER)

    assert result.status == "FAILED"
    assert result.timed_out
    assert result.error_kind == "GATEWAY_FAILURE"
    assert db_session.get(Payment, result.payment_id).status == "FAILED"
    assert db_session.get(Order, order.id).status == "PENDING_PAYMENT"


def test_decline_then_retry_succeeds(db_session, customer, order):
    declined = _pay(customer, order, number=DECLINED_CARD_NUMBER)
    assert declined.status == "FAILED"
    assert db_session.get(Order, order.id).status == "PENDING_PAYMENT"

    retried = _pay(customer, order)

    assert retried.succeeded
    statuses = sorted(p.status for p in db_session.query(Payment).filter_by(order_id=order.id))
    assert statuses == ["FAILED", "PAID"]
    assert db_session.get(Order, order.id).status == "PAID"


def test_cancelled_order_cannot_be_paid(db_session, customer, order):
    order_service.cancel_order(customer.id, "CUSTOMER", order.id)

    with pytest.raises(ConflictError):
        _pay(customer, order)
    assert db_session.query(Payment).count() == 0


def test_only_owner_or_admin_can_pay(db_session, customer, other_customer, admin, order):
    with pytest.raises(ForbiddenError):
        _pay(other_customer, order)

    assert _pay(admin, order, role="ADMIN").succeeded


def test_missing_order(db_session, customer):
    with pytest.raises(NotFoundError):
        payment_service.process_payment(customer.id, "CUSTOMER", 987654, _card(), "USD")


@pytest.mark.parametrize(
    "overrides,message",
    [
        ({"number": "4242424242424241"}, "Card number is invalid"),
        ({"number": "42424242"}, "Card number is invalid"),
        ({"exp_month": "13"}, "Expiration month must be in MM format (01-12)"),
        ({"exp_year": "30"}, "Expiration year must be in YYYY format"),
        ({"exp_year": "2001"}, "Card is expired"),
        ({"cvc": "12"}, "Invalid CVC format. Use 3 or 4 digits"),
        ({"holder_name": " "}, "Card holder name is required"),
    ],
)
def test_invalid_card_rejected_before_claim(db_session, customer, order, overrides, message):
    with pytest.raises(InvalidInputError) as exc_info:
        _pay(customer, order, **overrides)

    assert exc_info.value.message == message
    assert db_session.query(Payment).count() == 0


def test_currency_must_match_order(db_session, customer, order):
    with pytest.raises(InvalidInputError):
        payment_service.process_payment(customer.id, "CUSTOMER", order.id, _card(), "EUR")


def test_payment_in_flight_blocks_second_attempt(db_session, customer, order):
    db_session.add(Payment(
        order_id=order.id, amount_cents=2000, currency="USD",
        status="PROCESSING", created_by_user_id=customer.id,
    ))
    db_session.commit()

    with pytest.raises(ConflictError):
        _pay(customer, order)


def test_order_with_payment_in_flight_cannot_be_cancelled(db_session, customer, order):
    db_session.add(Payment(
        order_id=order.id, amount_cents=2000, currency="USD",
        status="PROCESSING", created_by_user_id=customer.id,
    ))
    db_session.commit()

    with pytest.raises(ConflictError):
        order_service.cancel_order(customer.id, "CUSTOMER", order.id)


def test_unique_index_allows_one_active_payment(db_session, customer, order):
    for status in ("FAILED", "FAILED", "PAID"):
        db_session.add(Payment(
            order_id=order.id, amount_cents=2000, currency="USD",
            status=status, created_by_user_id=customer.id,
        ))
    db_session.commit()

    db_session.add(Payment(
        order_id=order.id, amount_cents=2000, currency="USD",
        status="PROCESSING", created_by_user_id=customer.id,
    ))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_unrecorded_charge_is_escalated(db_session, customer, order, monkeypatch, caplog):
    def broken_record(payment_id, order_id, result):
        raise RuntimeError("database went away")

    monkeypatch.setattr(payment_service, "_record", broken_record)

    with caplog.at_level(logging.CRITICAL):
        with pytest.raises(PaymentRecordingError) as exc_info:
            _pay(customer, order)

    assert exc_info.value.kind == "INTERNAL"
    assert exc_info.value.details["transaction_id"]
    assert any(r.levelno == logging.CRITICAL for r in caplog.records)


def test_get_and_list_payments(db_session, customer, other_customer, admin, order):
    result = _pay(customer, order)

    assert payment_service.get_payment(customer.id, "CUSTOMER", result.payment_id)["status"] == "PAID"
    assert payment_service.get_payment(admin.id, "ADMIN", result.payment_id)["order_id"] == order.id
    with pytest.raises(ForbiddenError):
        payment_service.get_payment(other_customer.id, "CUSTOMER", result.payment_id)
    with pytest.raises(NotFoundError):
        payment_service.get_payment(customer.id, "CUSTOMER", 555555)

    assert payment_service.list_payments(customer.id, "CUSTOMER").total == 1
    assert payment_service.list_payments(other_customer.id, "CUSTOMER").total == 0
    assert payment_service.list_payments(admin.id, "ADMIN", status="paid").total == 1
    with pytest.raises(ForbiddenError):
        payment_service.list_payments(other_customer.id, "CUSTOMER", filter_user_id=customer.id)
    with pytest.raises(InvalidInputError):
        payment_service.list_payments(admin.id, "ADMIN", method="CASH")
