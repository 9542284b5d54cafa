# Overview: Card-charge adapters (mock and Stripe) normalized to a uniform PaymentResult.

"""
Payment gateway adapters.

A gateway turns one card charge into a PaymentResult. Declines, provider
errors, network failures and timeouts are results with status FAILED, not
exceptions; only malformed input (missing card, non-positive amount) raises.

PROVIDERS:
- MockPaymentGateway: deterministic, offline. Configured card numbers are
  declined or simulate a gateway timeout; every other card is charged.
- StripePaymentGateway: the stripe SDK (token, then charge), both calls
  sharing one PAYMENT_GATEWAY_TIMEOUT_SECONDS deadline.
"""

from __future__ import annotations

import uuid
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

import stripe
from flask import current_app

from ..errors import InvalidInputError
from ..validation import normalize_card_number
from ..time_utils import to_utc_z, utcnow


PAYMENT_STATUS_PROCESSING = "PROCESSING"
PAYMENT_STATUS_PAID = "PAID"
PAYMENT_STATUS_FAILED = "FAILED"

METHOD_CARD = "CARD"
METHOD_CREDIT_CARD = "CREDIT_CARD"
METHOD_DEBIT_CARD = "DEBIT_CARD"
PAYMENT_METHODS = (METHOD_CARD, METHOD_CREDIT_CARD, METHOD_DEBIT_CARD)

PROVIDER_MOCK = "MOCK"
PROVIDER_STRIPE = "STRIPE"

GATEWAY_FAILURE = "GATEWAY_FAILURE"


# =============================================================================
# CARD BRANDS
# =============================================================================

CARD_UNKNOWN = "UNKNOWN"
CARD_VISA = "VISA"
CARD_MASTERCARD = "MASTERCARD"
CARD_AMERICAN_EXPRESS = "AMERICAN_EXPRESS"
CARD_DISCOVER = "DISCOVER"
CARD_JCB = "JCB"
CARD_DINERS_CLUB = "DINERS_CLUB"
CARD_UNIONPAY = "UNIONPAY"

# Stripe's card.brand strings
STRIPE_BRANDS = {
    "visa": CARD_VISA,
    "mastercard": CARD_MASTERCARD,
    "american express": CARD_AMERICAN_EXPRESS,
    "amex": CARD_AMERICAN_EXPRESS,
    "discover": CARD_DISCOVER,
    "jcb": CARD_JCB,
    "diners club": CARD_DINERS_CLUB,
    "diners": CARD_DINERS_CLUB,
    "unionpay": CARD_UNIONPAY,
}


def infer_card_provider(number: str) -> str:
    """Card brand from the issuer identification number (leading digits)."""
    digits = normalize_card_number(number or "")
    if not digits.isdigit():
        return CARD_UNKNOWN

    def prefix(n: int) -> int:
        return int(digits[:n]) if len(digits) >= n else -1

    if digits.startswith("4"):
        return CARD_VISA
    if 51 <= prefix(2) <= 55 or 2221 <= prefix(4) <= 2720:
        return CARD_MASTERCARD
    if prefix(2) in (34, 37):
        return CARD_AMERICAN_EXPRESS
    if digits.startswith("6011") or digits.startswith("65") or 644 <= prefix(3) <= 649:
        return CARD_DISCOVER
    if 3528 <= prefix(4) <= 3589:
        return CARD_JCB
    if 300 <= prefix(3) <= 305 or prefix(2) in (36, 38):
        return CARD_DINERS_CLUB
    if digits.startswith("62"):
        return CARD_UNIONPAY
    return CARD_UNKNOWN


# =============================================================================
# REQUEST / RESULT
# =============================================================================

@dataclass(frozen=True)
class CardDetails:
    holder_name: str
    number: str
    exp_month: str
    exp_year: str
    cvc: str
    method: str = METHOD_CARD

    @property
    def digits(self) -> str:
        return normalize_card_number(self.number)

    @property
    def last_four(self) -> str:
        return self.digits[-4:]

    def __repr__(self) -> str:
        # Never let the PAN or CVC reach logs
        return f"CardDetails(holder_name={self.holder_name!r}, last_four={self.last_four!r}, method={self.method!r})"


@dataclass
class PaymentResult:
    status: str
    transaction_id: str
    message: str
    amount_cents: int
    currency: str
    method: str
    provider: str
    card_provider: str = CARD_UNKNOWN
    last_four_digits: str = ""
    timed_out: bool = False
    created_at: datetime = field(default_factory=utcnow)
    payment_id: int | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PAYMENT_STATUS_PAID

    @property
    def error_kind(self) -> str | None:
        return None if self.succeeded else GATEWAY_FAILURE

    def to_dict(self) -> dict:
        return {
            "payment_id": self.payment_id,
            "status": self.status,
            "transaction_id": self.transaction_id,
            "message": self.message,
            "amount_cents": self.amount_cents,
            "currency": self.currency,
            "method": self.method,
            "provider": self.provider,
            "card_provider": self.card_provider,
            "last_four_digits": self.last_four_digits,
            "timed_out": self.timed_out,
            "created_at": to_utc_z(self.created_at),
            "error": self.error_kind,
        }


# =============================================================================
# GATEWAYS
# =============================================================================

class PaymentGateway:
    """Shared request checks and result construction."""
    provider = ""

    def charge(self, card: CardDetails, amount_cents: int, currency: str, *,
               reference: str | None = None) -> PaymentResult:
        raise NotImplementedError

    def _check_request(self, card: CardDetails | None, amount_cents: int, currency: str) -> None:
        if card is None or not card.number:
            raise InvalidInputError("Card details are required")
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
            raise InvalidInputError("Amount must be a positive number of cents")
        if not currency or len(currency) != 3:
            raise InvalidInputError("Currency must be a 3-letter ISO code")

    def _result(self, card: CardDetails, amount_cents: int, currency: str, *, status: str,
                message: str, transaction_id: str = "", card_provider: str | None = None,
                timed_out: bool = False) -> PaymentResult:
        return PaymentResult(
            status=status,
            transaction_id=transaction_id,
            message=message,
            amount_cents=amount_cents,
            currency=currency.upper(),
            method=card.method,
            provider=self.provider,
            card_provider=card_provider or infer_card_provider(card.number),
            last_four_digits=card.last_four,
            timed_out=timed_out,
        )


class MockPaymentGateway(PaymentGateway):
    provider = PROVIDER_MOCK

    def __init__(self, declined_cards: Iterable[str] = (), timeout_cards: Iterable[str] = ()):
        self.declined_cards = {normalize_card_number(c) for c in declined_cards}
        self.timeout_cards = {normalize_card_number(c) for c in timeout_cards}

    def charge(self, card, amount_cents, currency, *, reference=None):
        self._check_request(card, amount_cents, currency)

        if card.digits in self.timeout_cards:
            current_app.logger.info("Mock gateway timeout for card ending %s", card.last_four)
            return self._result(
                card, amount_cents, currency,
                status=PAYMENT_STATUS_FAILED,
                message="Payment gateway timed out",
                timed_out=True,
            )

        if card.digits in self.declined_cards:
            current_app.logger.info("Mock gateway declined card ending %s", card.last_four)
            return self._result(
                card, amount_cents, currency,
                status=PAYMENT_STATUS_FAILED,
                message="Your card was declined",
            )

        transaction_id = str(uuid.uuid4())
        current_app.logger.info("Mock gateway charged %s %s (txn %s)", amount_cents, currency, transaction_id)
        return self._result(
            card, amount_cents, currency,
            status=PAYMENT_STATUS_PAID,
            message="Payment completed successfully",
            transaction_id=transaction_id,
        )


class StripePaymentGateway(PaymentGateway):
    """
    Two Stripe calls per charge: Token.create turns the card into a one-time
    token, Charge.create captures the amount. Both carry idempotency keys
    derived from the caller's reference, so a resend of the same payment
    cannot double charge.

    The whole exchange shares one deadline of timeout_seconds. The calls run
    on a worker thread and the caller stops waiting when the deadline passes.
    """
    provider = PROVIDER_STRIPE

    def __init__(self, secret_key: str, timeout_seconds: float = 10.0, max_workers: int = 4):
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY is required for the stripe gateway")
        self.secret_key = secret_key
        self.timeout_seconds = timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="stripe-charge")

    def _exchange(self, card: CardDetails, amount_cents: int, currency: str, reference: str):
        # Worker thread: no app context here, so no logging.
        token = stripe.Token.create(
            api_key=self.secret_key,
            idempotency_key=f"{reference}-token",
            card={
                "number": card.digits,
                "exp_month": card.exp_month,
                "exp_year": card.exp_year,
                "cvc": card.cvc,
                "name": card.holder_name,
            },
        )
        brand = (token.get("card") or {}).get("brand") or ""
        card_provider = STRIPE_BRANDS.get(brand.lower())

        try:
            charge = stripe.Charge.create(
                api_key=self.secret_key,
                idempotency_key=f"{reference}-charge",
                amount=amount_cents,
                currency=currency.lower(),
                source=token["id"],
                description=f"Charge for {card.holder_name}",
                metadata={"reference": reference},
            )
        except stripe.StripeError as e:
            e.card_provider = card_provider
            raise
        return charge, card_provider

    def charge(self, card, amount_cents, currency, *, reference=None):
        self._check_request(card, amount_cents, currency)
        reference = reference or f"charge-{uuid.uuid4()}"

        def failed(message, **kwargs):
            return self._result(card, amount_cents, currency, status=PAYMENT_STATUS_FAILED, message=message, **kwargs)

        future = self._executor.submit(self._exchange, card, amount_cents, currency, reference)
        try:
            charge, card_provider = future.result(timeout=self.timeout_seconds)
        except FutureTimeoutError:
            future.cancel()
            current_app.logger.error("Stripe charge %s exceeded %ss deadline", reference, self.timeout_seconds)
            return failed("Payment gateway timed out", timed_out=True)
        except stripe.CardError as e:
            message = getattr(e, "user_message", None) or str(e)
            current_app.logger.warning("Stripe declined %s: %s", reference, message)
            return failed(message, card_provider=getattr(e, "card_provider", None))
        except (stripe.InvalidRequestError, stripe.RateLimitError, stripe.AuthenticationError) as e:
            message = getattr(e, "user_message", None) or str(e)
            current_app.logger.warning("Stripe rejected %s: %s", reference, message)
            return failed(message, card_provider=getattr(e, "card_provider", None))
        except stripe.APIConnectionError as e:
            current_app.logger.error("Stripe unreachable for %s: %s", reference, e)
            return failed("Payment gateway unavailable")
        except stripe.StripeError as e:
            current_app.logger.error("Stripe error for %s: %s", reference, e)
            return failed("Payment gateway unavailable", card_provider=getattr(e, "card_provider", None))
        except (KeyError, TypeError, AttributeError):
            current_app.logger.exception("Stripe returned an unexpected response for %s", reference)
            return failed("Payment gateway returned an invalid response")

        if charge.get("status") == "succeeded":
            current_app.logger.info("Stripe charge %s succeeded for %s", charge.get("id"), reference)
            return self._result(
                card, amount_cents, currency,
                status=PAYMENT_STATUS_PAID,
                message="Payment completed successfully",
                transaction_id=charge.get("id") or "",
                card_provider=card_provider,
            )

        message = charge.get("failure_message") or f"Charge status: {charge.get('status')}"
        current_app.logger.warning("Stripe charge %s not captured: %s", charge.get("id"), message)
        return failed(message, transaction_id=charge.get("id") or "", card_provider=card_provider)


# =============================================================================
# SELECTION
# =============================================================================

EXTENSION_KEY = "storefront_payment_gateway"


def build_payment_gateway(config) -> PaymentGateway:
    name = (config.get("PAYMENT_GATEWAY") or "mock").lower()
    if name == "mock":
        return MockPaymentGateway(
            declined_cards=config.get("MOCK_DECLINED_CARDS", ()),
            timeout_cards=config.get("MOCK_TIMEOUT_CARDS", ()),
        )
    if name == "stripe":
        return StripePaymentGateway(
            secret_key=config.get("STRIPE_SECRET_KEY", ""),
            timeout_seconds=config.get("PAYMENT_GATEWAY_TIMEOUT_SECONDS", 10.0),
        )
    raise ValueError(f"Unknown PAYMENT_GATEWAY: {name}")


def get_payment_gateway() -> PaymentGateway:
    return current_app.extensions[EXTENSION_KEY]
