"""
User management and password change tests.

Verifies:
- Self-or-admin reads by id and by email
- Admin-only listing with role filter and pagination
- Profile edits limited to profile fields
- Role assignment rules
- Deactivation revokes every session and keeps the row
- Password change checks the current password and revokes other sessions
"""

import pytest

from storefront.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from storefront.models import SessionToken, User
from storefront.services import auth_service, session_service, user_service

from .conftest import PASSWORD


# =============================================================================
# READS
# =============================================================================


def test_user_reads_own_account_admin_reads_any(db_session, customer, other_customer, admin):
    assert user_service.get_user(customer.id, "CUSTOMER", customer.id).username == "carol"
    assert user_service.get_user(admin.id, "ADMIN", customer.id).username == "carol"

    with pytest.raises(ForbiddenError):
        user_service.get_user(other_customer.id, "CUSTOMER", customer.id)
    with pytest.raises(NotFoundError):
        user_service.get_user(admin.id, "ADMIN", 4242)


def test_get_user_by_email(db_session, customer, other_customer, admin):
    assert user_service.get_user_by_email(customer.id, "CUSTOMER", " Carol@Example.com ").id == customer.id
    assert user_service.get_user_by_email(admin.id, "ADMIN", "dave@example.com").id == other_customer.id

    with pytest.raises(ForbiddenError):
        user_service.get_user_by_email(customer.id, "CUSTOMER", "dave@example.com")
    # Non-admins cannot tell a foreign address from an unknown one
    with pytest.raises(ForbiddenError):
        user_service.get_user_by_email(customer.id, "CUSTOMER", "nobody@example.com")
    with pytest.raises(NotFoundError):
        user_service.get_user_by_email(admin.id, "ADMIN", "nobody@example.com")
    with pytest.raises(InvalidInputError):
        user_service.get_user_by_email(admin.id, "ADMIN", "  ")


def test_list_users_by_role(db_session, customer, other_customer, seller, admin):
    everyone = user_service.list_users("ADMIN")
    sellers = user_service.list_users("ADMIN", role="seller")
    second_page = user_service.list_users("ADMIN", page=2, page_size=3)

    assert [u.username for u in everyone.items] == ["carol", "dave", "root", "sam"]
    assert [u.username for u in sellers.items] == ["sam"]
    assert [u.username for u in second_page.items] == ["sam"]

    with pytest.raises(InvalidInputError):
        user_service.list_users("ADMIN", role="OWNER")
    with pytest.raises(ForbiddenError):
        user_service.list_users("SELLER")


def test_list_users_hides_inactive_on_request(db_session, customer, other_customer, admin):
    user_service.deactivate_user(other_customer.id, "CUSTOMER", other_customer.id)

    active = user_service.list_users("ADMIN", include_inactive=False)

    assert [u.username for u in active.items] == ["carol", "root"]


# =============================================================================
# UPDATES
# =============================================================================


def test_update_profile(db_session, customer):
    user = user_service.update_profile(
        customer.id, {"first_name": " Carol ", "last_name": "Jones", "phone_number": "555-0100"}
    )

    assert (user.first_name, user.last_name, user.phone_number) == ("Carol", "Jones", "555-0100")
    assert user.to_dict()["first_name"] == "Carol"


@pytest.mark.parametrize("payload", [{"role": "ADMIN"}, {"email": "x@example.com"}, {"first_name": "x" * 101}])
def test_update_profile_rejects_non_profile_fields(db_session, customer, payload):
    with pytest.raises(InvalidInputError):
        user_service.update_profile(customer.id, payload)
    assert db_session.get(User, customer.id).role == "CUSTOMER"


def test_assign_role(db_session, customer, admin):
    user = user_service.assign_role(admin.id, "ADMIN", customer.id, "seller")

    assert user.role == "SELLER"
    with pytest.raises(InvalidInputError):
        user_service.assign_role(admin.id, "ADMIN", customer.id, "OWNER")
    with pytest.raises(InvalidInputError):
        user_service.assign_role(admin.id, "ADMIN", admin.id, "CUSTOMER")
    with pytest.raises(ForbiddenError):
        user_service.assign_role(customer.id, "SELLER", customer.id, "ADMIN")


# =============================================================================
# DEACTIVATION
# =============================================================================


def test_user_closes_own_account(db_session, customer):
    _, token = session_service.create_session(customer.id)
    session_service.create_session(customer.id)

    revoked = user_service.deactivate_user(customer.id, "CUSTOMER", customer.id)

    assert revoked == 2
    assert db_session.get(User, customer.id).is_active is False
    assert session_service.validate_session(token) is None
    assert auth_service.authenticate("carol", PASSWORD) is None


def test_deactivation_rules(db_session, customer, other_customer, admin):
    with pytest.raises(ForbiddenError):
        user_service.deactivate_user(other_customer.id, "CUSTOMER", customer.id)
    with pytest.raises(InvalidInputError):
        user_service.deactivate_user(admin.id, "ADMIN", admin.id)

    user_service.deactivate_user(admin.id, "ADMIN", customer.id)

    with pytest.raises(ConflictError):
        user_service.deactivate_user(admin.id, "ADMIN", customer.id)


# =============================================================================
# PASSWORD CHANGE
# =============================================================================


def test_change_password(db_session, customer):
    auth_service.change_password(customer.id, PASSWORD, "N3w-Password!")

    assert auth_service.authenticate("carol", "N3w-Password!").id == customer.id
    assert auth_service.authenticate("carol", PASSWORD) is None


@pytest.mark.parametrize(
    "old,new,message",
    [
        ("Wrong123!", "N3w-Password!", "Current password is incorrect"),
        (None, "N3w-Password!", "Current password is incorrect"),
        (PASSWORD, PASSWORD, "New password cannot be the same as the old password"),
        (PASSWORD, "short", "Password must be at least 8 characters long"),
    ],
)
def test_change_password_rejects(db_session, customer, old, new, message):
    with pytest.raises(InvalidInputError) as exc_info:
        auth_service.change_password(customer.id, old, new)

    assert exc_info.value.message == message
    assert auth_service.authenticate("carol", PASSWORD).id == customer.id


def test_revoke_all_sessions_can_spare_current(db_session, customer, other_customer):
    _, current = session_service.create_session(customer.id)
    _, stale = session_service.create_session(customer.id)
    _, foreign = session_service.create_session(other_customer.id)

    assert session_service.revoke_all_user_sessions(customer.id, keep_token=current) == 1

    assert session_service.validate_session(current).id == customer.id
    assert session_service.validate_session(stale) is None
    assert session_service.validate_session(foreign).id == other_customer.id
    assert db_session.query(SessionToken).filter_by(is_revoked=True).count() == 1
