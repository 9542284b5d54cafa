from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z
from storefront.money import format_cents


class Payment(db.Model):
    """
    One charge attempt against an order.

    STATUS: PROCESSING (claimed, gateway call in flight), PAID, FAILED.

    DESIGN: An order may accumulate several FAILED attempts, but at most one
    row per order may be PROCESSING or PAID. The partial unique index below
    is the data-store guard that makes a concurrent second charge attempt
    fail at INSERT time.
    """
    __tablename__ = "payments"
    __table_args__ = (
        db.Index(
            "uq_payments_order_active",
            "order_id",
            unique=True,
            sqlite_where=db.text("status != 'FAILED'"),
            postgresql_where=db.text("status != 'FAILED'"),
        ),
        db.Index("ix_payments_status_created", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    method = db.Column(db.String(16), nullable=False, default="CARD")  # CARD, CREDIT_CARD, DEBIT_CARD
    provider = db.Column(db.String(16), nullable=False, default="MOCK")  # MOCK, STRIPE
    card_provider = db.Column(db.String(32), nullable=False, default="UNKNOWN")

    status = db.Column(db.String(16), nullable=False, default="PROCESSING", index=True)

    last_four_digits = db.Column(db.String(4), nullable=False, default="")
    transaction_id = db.Column(db.String(100), nullable=False, default="")
    message = db.Column(db.String(255), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    order = db.relationship("Order", backref=db.backref("payments", lazy=True, order_by="Payment.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "amount_cents": self.amount_cents,
            "amount": format_cents(self.amount_cents),
            "currency": self.currency,
            "method": self.method,
            "provider": self.provider,
            "card_provider": self.card_provider,
            "status": self.status,
            "last_four_digits": self.last_four_digits,
            "transaction_id": self.transaction_id,
            "message": self.message,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
