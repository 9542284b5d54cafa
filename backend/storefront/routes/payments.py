# backend/storefront/routes/payments.py
"""
Payment Processing API Routes

POST /api/payments charges an order's total to a card through the
configured gateway (mock or Stripe).

Returns:
    201: Payment PAID, order PAID
    402: Gateway declined or timed out (error GATEWAY_FAILURE); the order
         stays PENDING_PAYMENT and may be retried
    409: Order already paid, cancelled, or a payment is in flight
    500: Charged but not recorded (error INTERNAL, details carry the
         transaction id for reconciliation)
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..errors import InvalidInputError, StorefrontError, error_response, internal_error_response
from ..services import payment_service
from ..services.payment_gateway import METHOD_CARD, CardDetails
from ..validation import coerce_int, optional_int

payments_bp = Blueprint("payments", __name__, url_prefix="/api/payments")


def _card_from_payload(data: dict) -> CardDetails:
    card = data.get("card")
    if not isinstance(card, dict):
        raise InvalidInputError("card is required")
    return CardDetails(
        holder_name=str(card.get("holder_name") or ""),
        number=str(card.get("number") or ""),
        exp_month=str(card.get("exp_month") or "").zfill(2),
        exp_year=str(card.get("exp_year") or ""),
        cvc=str(card.get("cvc") or ""),
        method=str(data.get("method") or METHOD_CARD).upper(),
    )


@payments_bp.post("")
@require_auth
def process_payment_route():
    """
    Request body:
    {
        "order_id": 12,
        "currency": "USD",
        "method": "CARD",   (optional: CARD, CREDIT_CARD, DEBIT_CARD)
        "card": {
            "holder_name": "Jane Doe",
            "number": "4242424242424242",
            "exp_month": "12",
            "exp_year": "2030",
            "cvc": "123"
        }
    }
    """
    try:
        data = request.get_json(silent=True) or {}
        if data.get("order_id") is None:
            raise InvalidInputError("order_id is required")

        result = payment_service.process_payment(
            g.current_user.id,
            g.current_user.role,
            coerce_int(data["order_id"], "order_id"),
            _card_from_payload(data),
            str(data.get("currency") or ""),
        )
        return jsonify(result.to_dict()), 201 if result.succeeded else 402
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to process payment")
        return internal_error_response()


@payments_bp.get("")
@require_auth
def list_payments_route():
    """
    Query params (all optional): user_id (admins), order_id, method, status,
    start_date, end_date, page, page_size.
    """
    try:
        args = request.args
        result = payment_service.list_payments(
            g.current_user.id,
            g.current_user.role,
            filter_user_id=optional_int(args.get("user_id"), "user_id"),
            order_id=optional_int(args.get("order_id"), "order_id"),
            method=args.get("method"),
            status=args.get("status"),
            start_date=args.get("start_date"),
            end_date=args.get("end_date"),
            page=args.get("page"),
            page_size=args.get("page_size"),
        )
        return jsonify(result.to_dict()), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list payments")
        return internal_error_response()


@payments_bp.get("/<int:payment_id>")
@require_auth
def get_payment_route(payment_id: int):
    try:
        return jsonify(payment_service.get_payment(g.current_user.id, g.current_user.role, payment_id)), 200
    except StorefrontError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to load payment %s", payment_id)
        return internal_error_response()
