# Overview: Stock availability checks and conditional stock movements for orders.

"""
Stock service.

check_stock() is pure validation: it re-reads the products from the
database (never the cache) and reports every line that cannot be filled.

decrement_stock()/restore_stock() are the only writers of Product.stock
outside the catalog admin endpoints. The decrement is a single conditional
UPDATE (stock = stock - q WHERE stock >= q), so two orders racing for the
last unit cannot both succeed.
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Iterable

from ..extensions import db
from ..models import Product
from ..validation import require_positive_quantity


@dataclass(frozen=True)
class StockError:
    product_id: int
    product_name: str
    available_stock: int
    requested_quantity: int

    @property
    def message(self) -> str:
        return (
            f"Insufficient stock for '{self.product_name}' (ID: {self.product_id}). "
            f"Available: {self.available_stock}, Requested: {self.requested_quantity}."
        )

    def to_dict(self) -> dict:
        return {
            "product_id": self.product_id,
            "product_name": self.product_name,
            "available_stock": self.available_stock,
            "requested_quantity": self.requested_quantity,
            "message": self.message,
        }


@dataclass
class StockCheckResult:
    errors: list[StockError] = field(default_factory=list)
    products: dict[int, Product] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.errors


def aggregate_lines(lines: Iterable[tuple[int, int]]) -> "OrderedDict[int, int]":
    """Sum quantities per product, keeping first-seen order."""
    totals: "OrderedDict[int, int]" = OrderedDict()
    for product_id, quantity in lines:
        quantity = require_positive_quantity(quantity)
        totals[product_id] = totals.get(product_id, 0) + quantity
    return totals


def check_stock(lines: Iterable[tuple[int, int]]) -> StockCheckResult:
    """
    Validate requested quantities against current stock.

    Missing products report product_name "Unknown" and available 0;
    inactive products report available 0.
    """
    totals = aggregate_lines(lines)
    result = StockCheckResult()
    if not totals:
        return result

    products = {
        p.id: p
        for p in db.session.query(Product)
        .filter(Product.id.in_(list(totals.keys())))
        .populate_existing()
        .all()
    }

    for product_id, requested in totals.items():
        product = products.get(product_id)
        if product is None:
            result.errors.append(StockError(product_id, "Unknown", 0, requested))
            continue
        available = product.stock if product.is_active else 0
        if requested > available:
            result.errors.append(StockError(product_id, product.name, available, requested))
        result.products[product_id] = product

    return result


def decrement_stock(product_id: int, quantity: int) -> bool:
    """
    Conditionally take quantity units. Returns False when the row no longer
    has enough stock (or is inactive); nothing is changed in that case.
    Caller owns the transaction.
    """
    updated = (
        db.session.query(Product)
        .filter(
            Product.id == product_id,
            Product.is_active.is_(True),
            Product.stock >= quantity,
        )
        .update(
            {
                Product.stock: Product.stock - quantity,
                Product.version_id: Product.version_id + 1,
            },
            synchronize_session="fetch",
        )
    )
    return updated == 1


def restore_stock(product_id: int, quantity: int) -> None:
    """Return quantity units (order cancellation). Caller owns the transaction."""
    db.session.query(Product).filter(Product.id == product_id).update(
        {
            Product.stock: Product.stock + quantity,
            Product.version_id: Product.version_id + 1,
        },
        synchronize_session="fetch",
    )
