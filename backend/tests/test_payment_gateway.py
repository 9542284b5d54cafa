"""
Payment gateway adapter tests.

The Stripe adapter runs against monkeypatched stripe.Token and stripe.Charge,
so no network access is needed.
"""

import time

import pytest
import stripe

from storefront.errors import InvalidInputError
from storefront.services.payment_gateway import (
    CardDetails,
    MockPaymentGateway,
    StripePaymentGateway,
    build_payment_gateway,
    infer_card_provider,
)

from .conftest import DECLINED_CARD_NUMBER, TIMEOUT_CARD_NUMBER, VALID_CARD


def _card(**overrides):
    return CardDetails(**{**VALID_CARD, **overrides})


@pytest.mark.parametrize(
    "number,brand",
    [
        ("4242424242424242", "VISA"),
        ("5555555555554444", "MASTERCARD"),
        ("2223003122003222", "MASTERCARD"),
        ("378282246310005", "AMERICAN_EXPRESS"),
        ("6011111111111117", "DISCOVER"),
        ("3566002020360505", "JCB"),
        ("30569309025904", "DINERS_CLUB"),
        ("6200000000000005", "UNIONPAY"),
        ("9999999999999995", "UNKNOWN"),
        ("4242 4242 4242 4242", "VISA"),
    ],
)
def test_infer_card_provider(number, brand):
    assert infer_card_provider(number) == brand


def test_card_repr_hides_number():
    text = repr(_card())
    assert "4242424242424242" not in text
    assert "123" not in text
    assert "4242" in text


# =============================================================================
# MOCK GATEWAY
# =============================================================================


@pytest.fixture
def mock_gateway():
    return MockPaymentGateway(declined_cards=[DECLINED_CARD_NUMBER], timeout_cards=[TIMEOUT_CARD_NUMBER])


def test_mock_success(app, mock_gateway):
    result = mock_gateway.charge(_card(), 2000, "usd")

    assert result.status == "PAID"
    assert result.provider == "MOCK"
    assert result.currency == "USD"
    assert len(result.transaction_id) == 36


def test_mock_decline(app, mock_gateway):
    result = mock_gateway.charge(_card(number=DECLINED_CARD_NUMBER), 2000, "USD")

    assert result.status == "FAILED"
    assert not result.timed_out
    assert result.transaction_id == ""


def test_mock_timeout(app, mock_gateway):
    result = mock_gateway.charge(_card(number=TIMEOUT_CARD_NUMBER), 2000, "USD")

    assert result.status == "FAILED"
    assert result.timed_out
    assert result.to_dict()["error"] == "GATEWAY_FAILURE"


@pytest.mark.parametrize("amount", [0, -100, 10.5, True])
def test_non_positive_amount_raises(app, mock_gateway, amount):
    with pytest.raises(InvalidInputError):
        mock_gateway.charge(_card(), amount, "USD")


def test_missing_card_raises(app, mock_gateway):
    with pytest.raises(InvalidInputError):
        mock_gateway.charge(None, 100, "USD")


# =============================================================================
# STRIPE GATEWAY
# =============================================================================


class FakeStripe:
    """Records Token/Charge calls and answers with canned dicts or errors."""

    def __init__(self, monkeypatch, token=None, charge=None, token_error=None, charge_error=None, delay=0):
        self.calls = []
        self.token = token if token is not None else {"id": "tok_1", "card": {"brand": "Visa"}}
        self.charge = charge if charge is not None else {"id": "ch_1", "status": "succeeded"}
        self.token_error = token_error
        self.charge_error = charge_error
        self.delay = delay
        monkeypatch.setattr(stripe.Token, "create", self.create_token)
        monkeypatch.setattr(stripe.Charge, "create", self.create_charge)

    def create_token(self, **params):
        self.calls.append(("token", params))
        if self.delay:
            time.sleep(self.delay)
        if self.token_error:
            raise self.token_error
        return self.token

    def create_charge(self, **params):
        self.calls.append(("charge", params))
        if self.delay:
            time.sleep(self.delay)
        if self.charge_error:
            raise self.charge_error
        return self.charge


def _stripe(timeout_seconds=2):
    return StripePaymentGateway(secret_key="sk_test_123", timeout_seconds=timeout_seconds)


def test_stripe_success(app, monkeypatch):
    fake = FakeStripe(monkeypatch)

    result = _stripe().charge(_card(), 2000, "USD", reference="payment-7")

    assert [kind for kind, _ in fake.calls] == ["token", "charge"]
    token_params, charge_params = fake.calls[0][1], fake.calls[1][1]
    assert token_params["api_key"] == "sk_test_123"
    assert token_params["idempotency_key"] == "payment-7-token"
    assert token_params["card"]["number"] == "4242424242424242"
    assert charge_params["idempotency_key"] == "payment-7-charge"
    assert (charge_params["amount"], charge_params["currency"], charge_params["source"]) == (2000, "usd", "tok_1")
    assert result.status == "PAID"
    assert result.transaction_id == "ch_1"
    assert result.provider == "STRIPE"
    assert result.card_provider == "VISA"


def test_stripe_resend_reuses_idempotency_keys(app, monkeypatch):
    fake = FakeStripe(monkeypatch)
    gateway = _stripe()

    gateway.charge(_card(), 2000, "USD", reference="payment-9")
    gateway.charge(_card(), 2000, "USD", reference="payment-9")

    keys = [params["idempotency_key"] for _, params in fake.calls]
    assert keys == ["payment-9-token", "payment-9-charge", "payment-9-token", "payment-9-charge"]


def test_stripe_card_error(app, monkeypatch):
    FakeStripe(
        monkeypatch,
        token={"id": "tok_1", "card": {"brand": "MasterCard"}},
        charge_error=stripe.CardError("Your card was declined.", param=None, code="card_declined"),
    )

    result = _stripe().charge(_card(), 2000, "USD", reference="payment-1")

    assert result.status == "FAILED"
    assert result.message == "Your card was declined."
    assert result.card_provider == "MASTERCARD"


def test_stripe_token_rejected(app, monkeypatch):
    fake = FakeStripe(
        monkeypatch,
        token_error=stripe.InvalidRequestError("Your card number is incorrect.", param="number"),
    )

    result = _stripe().charge(_card(), 2000, "USD", reference="payment-1")

    assert result.status == "FAILED"
    assert result.message == "Your card number is incorrect."
    assert [kind for kind, _ in fake.calls] == ["token"]


def test_stripe_charge_not_succeeded(app, monkeypatch):
    FakeStripe(monkeypatch, token={"id": "tok_1", "card": {}}, charge={"id": "ch_2", "status": "pending"})

    result = _stripe().charge(_card(), 2000, "USD", reference="payment-1")

    assert result.status == "FAILED"
    assert result.transaction_id == "ch_2"
    assert result.card_provider == "VISA"


def test_stripe_connection_error(app, monkeypatch):
    FakeStripe(monkeypatch, token_error=stripe.APIConnectionError("connection refused"))

    result = _stripe().charge(_card(), 2000, "USD", reference="payment-1")

    assert result.status == "FAILED"
    assert result.message == "Payment gateway unavailable"
    assert not result.timed_out


def test_stripe_malformed_token(app, monkeypatch):
    FakeStripe(monkeypatch, token={"card": {"brand": "Visa"}})

    result = _stripe().charge(_card(), 2000, "USD", reference="payment-1")

    assert result.status == "FAILED"
    assert result.message == "Payment gateway returned an invalid response"


def test_stripe_deadline_covers_both_calls(app, monkeypatch):
    # Each call alone fits the deadline; together they do not.
    FakeStripe(monkeypatch, delay=0.4)

    started = time.monotonic()
    result = _stripe(timeout_seconds=0.6).charge(_card(), 2000, "USD", reference="payment-1")
    elapsed = time.monotonic() - started

    assert result.status == "FAILED"
    assert result.timed_out
    assert elapsed < 0.8


# =============================================================================
# SELECTION
# =============================================================================


def test_build_gateway_from_config():
    assert isinstance(build_payment_gateway({"PAYMENT_GATEWAY": "mock"}), MockPaymentGateway)
    gateway = build_payment_gateway({
        "PAYMENT_GATEWAY": "stripe",
        "STRIPE_SECRET_KEY": "sk_test",
        "PAYMENT_GATEWAY_TIMEOUT_SECONDS": 3.5,
    })
    assert isinstance(gateway, StripePaymentGateway)
    assert gateway.timeout_seconds == 3.5


def test_stripe_requires_key():
    with pytest.raises(ValueError):
        build_payment_gateway({"PAYMENT_GATEWAY": "stripe", "STRIPE_SECRET_KEY": ""})


def test_unknown_gateway():
    with pytest.raises(ValueError):
        build_payment_gateway({"PAYMENT_GATEWAY": "paypal"})
