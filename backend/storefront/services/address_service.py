# Overview: Shipping address book per user, including the default-address rule.

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, InvalidInputError
from ..extensions import db
from ..models import Address, Order
from ..validation import ModelValidationPolicy, validate_payload

ADDRESS_POLICY = ModelValidationPolicy(
    writable_fields={"street_address", "address_line2", "city", "state", "postal_code", "country"},
    required_on_create={"street_address", "city", "state", "postal_code", "country"},
)


def list_addresses(user_id: int) -> list[Address]:
    return (
        db.session.query(Address)
        .filter_by(user_id=user_id)
        .order_by(Address.is_default.desc(), Address.id.asc())
        .all()
    )


def _get_owned(user_id: int, address_id: int) -> Address:
    address = db.session.get(Address, address_id)
    if not address or address.user_id != user_id:
        raise NotFoundError(f"Address {address_id} not found")
    return address


def get_address(user_id: int, address_id: int) -> Address:
    return _get_owned(user_id, address_id)


def get_default_address(user_id: int) -> Address:
    address = db.session.query(Address).filter_by(user_id=user_id, is_default=True).first()
    if not address:
        raise NotFoundError("No default address on file")
    return address


def update_address(user_id: int, address_id: int, payload: dict) -> Address:
    """
    Patch an address. Refused once any order references it, as for deletion.
    """
    address = _get_owned(user_id, address_id)
    patch = validate_payload(model=Address, payload=payload, policy=ADDRESS_POLICY, partial=True)

    in_use = db.session.query(Order.id).filter_by(shipping_address_id=address_id).first()
    if in_use:
        raise ConflictError("Address is used by an order and cannot be changed")

    for k, v in patch.items():
        setattr(address, k, v)
    db.session.commit()
    return address


def create_address(user_id: int, payload: dict) -> Address:
    """Create an address; the user's first address becomes the default."""
    patch = validate_payload(model=Address, payload=payload, policy=ADDRESS_POLICY, partial=False)

    has_any = db.session.query(Address.id).filter_by(user_id=user_id).first() is not None
    address = Address(user_id=user_id, is_default=not has_any, **patch)
    db.session.add(address)
    db.session.commit()
    return address


def set_default_address(user_id: int, address_id: int) -> Address:
    address = _get_owned(user_id, address_id)

    db.session.query(Address).filter(
        Address.user_id == user_id,
        Address.id != address_id,
    ).update({Address.is_default: False}, synchronize_session="fetch")
    address.is_default = True
    db.session.commit()
    return address


def delete_address(user_id: int, address_id: int) -> None:
    """
    Delete an address. Addresses already used by an order are kept for the
    order's history and cannot be deleted. Removing the default promotes the
    oldest remaining address.
    """
    address = _get_owned(user_id, address_id)

    in_use = db.session.query(Order.id).filter_by(shipping_address_id=address_id).first()
    if in_use:
        raise ConflictError("Address is used by an order and cannot be deleted")

    was_default = address.is_default
    db.session.delete(address)
    db.session.flush()

    if was_default:
        replacement = (
            db.session.query(Address)
            .filter_by(user_id=user_id)
            .order_by(Address.id.asc())
            .first()
        )
        if replacement:
            replacement.is_default = True

    db.session.commit()


def resolve_shipping_address(user_id: int, address_id: int | None = None) -> Address:
    """Explicit address (must be the user's own) or the user's default."""
    if address_id is not None:
        address = db.session.get(Address, address_id)
        if not address or address.user_id != user_id:
            raise InvalidInputError(f"Shipping address {address_id} not found")
        return address

    address = db.session.query(Address).filter_by(user_id=user_id, is_default=True).first()
    if not address:
        raise InvalidInputError("No shipping address given and no default address on file")
    return address
