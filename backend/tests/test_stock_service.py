"""
Stock check tests.

Verifies:
- Lines within stock pass with no side effects
- Every offending line is reported, with the documented message
- Missing and inactive products report zero availability
- Quantities for the same product are summed before comparison
"""

import pytest

from storefront.errors import InvalidInputError
from storefront.models import Product
from storefront.services.stock_service import StockError, check_stock, decrement_stock, restore_stock


def test_check_passes_within_stock(db_session, products):
    widget, gadget = products

    result = check_stock([(widget.id, 2), (gadget.id, 3)])

    assert result.success
    assert result.errors == []
    assert set(result.products) == {widget.id, gadget.id}
    assert db_session.get(Product, widget.id).stock == 5


def test_check_reports_insufficient_stock(db_session, products):
    _, gadget = products

    result = check_stock([(gadget.id, 10)])

    assert not result.success
    assert result.errors == [StockError(gadget.id, "Gadget", 3, 10)]


def test_check_reports_every_offending_line(db_session, products):
    widget, gadget = products

    result = check_stock([(widget.id, 6), (gadget.id, 1), (9999, 1)])

    assert [e.product_id for e in result.errors] == [widget.id, 9999]
    missing = result.errors[1]
    assert missing.product_name == "Unknown"
    assert missing.available_stock == 0


def test_inactive_product_has_no_stock(db_session, products):
    widget, _ = products
    widget.is_active = False
    db_session.commit()

    result = check_stock([(widget.id, 1)])

    assert result.errors[0].available_stock == 0


def test_duplicate_lines_are_aggregated(db_session, products):
    widget, _ = products

    result = check_stock([(widget.id, 3), (widget.id, 3)])

    assert result.errors == [StockError(widget.id, "Widget", 5, 6)]


def test_non_positive_quantity_rejected(db_session, products):
    widget, _ = products
    with pytest.raises(InvalidInputError):
        check_stock([(widget.id, 0)])


def test_stock_error_message():
    err = StockError(2, "Gadget", 3, 10)
    assert err.message == "Insufficient stock for 'Gadget' (ID: 2). Available: 3, Requested: 10."
    assert err.to_dict()["requested_quantity"] == 10


def test_conditional_decrement_never_goes_negative(db_session, products):
    widget, _ = products

    assert decrement_stock(widget.id, 5) is True
    assert decrement_stock(widget.id, 1) is False
    db_session.commit()
    assert db_session.get(Product, widget.id).stock == 0

    restore_stock(widget.id, 2)
    db_session.commit()
    assert db_session.get(Product, widget.id).stock == 2
