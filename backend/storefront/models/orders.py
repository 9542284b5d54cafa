from __future__ import annotations

from ..extensions import db
from storefront.time_utils import to_utc_z
from storefront.money import format_cents


class Order(db.Model):
    """
    Order header.

    STATUS: DRAFT, PENDING_PAYMENT, PAID, SHIPPED, DELIVERED, CANCELLED
    (transitions enforced by order_service.update_order_status).

    total_cents is fixed at creation: SUM(unit_price_cents * quantity)
    over its details. Later product price changes never touch it.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("total_cents >= 0", name="ck_orders_total_non_negative"),
        db.Index("ix_orders_user_status_created", "user_id", "status", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    shipping_address_id = db.Column(db.Integer, db.ForeignKey("addresses.id"), nullable=False)

    total_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="USD")

    status = db.Column(db.String(20), nullable=False, default="DRAFT", index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    user = db.relationship("User", backref=db.backref("orders", lazy=True))
    shipping_address = db.relationship("Address")
    details = db.relationship(
        "OrderDetail",
        backref="order",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="OrderDetail.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Order id={self.id} user_id={self.user_id} status={self.status} total_cents={self.total_cents}>"

    def to_dict(self, include_details: bool = True) -> dict:
        data = {
            "id": self.id,
            "user_id": self.user_id,
            "shipping_address_id": self.shipping_address_id,
            "total_cents": self.total_cents,
            "total_amount": format_cents(self.total_cents),
            "currency": self.currency,
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_details:
            data["details"] = [d.to_dict() for d in self.details]
        return data


class OrderDetail(db.Model):
    """Order line; unit_price_cents is a snapshot taken when the order was placed."""
    __tablename__ = "order_details"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_order_details_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)

    product = db.relationship("Product")

    @property
    def line_total_cents(self) -> int:
        return self.unit_price_cents * self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "unit_price": format_cents(self.unit_price_cents),
            "line_total_cents": self.line_total_cents,
        }
