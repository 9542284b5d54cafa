"""
Tag service tests.

Verifies:
- Admin-only tag vocabulary with unique names and a cached read
- Search: case-insensitive substring, blank term returns nothing
- Strict single assignment (owner or admin, no duplicates, 10-tag cap)
- Lenient batch assignment (skips unknown and present tags, cuts at the cap)
- Removing one tag and clearing all tags
"""

import pytest

from storefront.errors import ConflictError, ForbiddenError, InvalidInputError, NotFoundError
from storefront.models import ProductTag, Tag
from storefront.services import products_service, tag_service
from storefront.services.cache_service import get_cache, tag_key


def _tags(*names):
    return [tag_service.create_tag("ADMIN", {"name": n}) for n in names]


# =============================================================================
# VOCABULARY
# =============================================================================


def test_admin_creates_tag(db_session):
    tag = tag_service.create_tag("ADMIN", {"name": "outdoor", "description": "For the garden"})

    assert tag.id
    assert tag.to_dict() == {"id": tag.id, "name": "outdoor", "description": "For the garden"}


@pytest.mark.parametrize("role", ["CUSTOMER", "SELLER"])
def test_only_admin_manages_tags(db_session, role):
    (tag,) = _tags("sale")

    with pytest.raises(ForbiddenError):
        tag_service.create_tag(role, {"name": "new"})
    with pytest.raises(ForbiddenError):
        tag_service.update_tag(role, tag.id, {"name": "renamed"})
    with pytest.raises(ForbiddenError):
        tag_service.delete_tag(role, tag.id)


def test_tag_names_are_unique_ignoring_case(db_session):
    _tags("Sale", "New")

    with pytest.raises(ConflictError):
        tag_service.create_tag("ADMIN", {"name": "sale"})
    new = db_session.query(Tag).filter_by(name="New").one()
    with pytest.raises(ConflictError):
        tag_service.update_tag("ADMIN", new.id, {"name": "SALE"})


@pytest.mark.parametrize("payload", [{}, {"name": ""}, {"name": "x" * 51}, {"name": "ok", "color": "red"}])
def test_tag_payload_validation(db_session, payload):
    with pytest.raises(InvalidInputError):
        tag_service.create_tag("ADMIN", payload)


def test_get_tag_is_cached_and_dropped_on_update(db_session):
    (tag,) = _tags("sale")

    assert tag_service.get_tag(tag.id)["name"] == "sale"
    assert get_cache().get(tag_key(tag.id))["name"] == "sale"

    tag_service.update_tag("ADMIN", tag.id, {"name": "clearance"})

    assert get_cache().get(tag_key(tag.id)) is None
    assert tag_service.get_tag(tag.id)["name"] == "clearance"


def test_missing_tag(db_session):
    with pytest.raises(NotFoundError):
        tag_service.get_tag(4242)
    with pytest.raises(NotFoundError):
        tag_service.update_tag("ADMIN", 4242, {"name": "x"})


def test_list_tags_pages_by_name(db_session):
    _tags("delta", "alpha", "charlie", "bravo")

    first = tag_service.list_tags(page=1, page_size=3)
    second = tag_service.list_tags(page=2, page_size=3)

    assert [t.name for t in first.items] == ["alpha", "bravo", "charlie"]
    assert [t.name for t in second.items] == ["delta"]
    assert first.total == 4


def test_search_tags(db_session):
    _tags("Summer Sale", "sale", "winter")

    result = tag_service.search_tags("SALE")

    assert [t.name for t in result.items] == ["Summer Sale", "sale"]
    assert tag_service.search_tags("   ").total == 0
    assert tag_service.search_tags(None).items == []


def test_delete_tag_detaches_products(db_session, seller, products):
    widget, _ = products
    (tag,) = _tags("sale")
    tag_service.assign_tag(seller.id, "SELLER", widget.id, tag.id)

    tag_service.delete_tag("ADMIN", tag.id)

    assert db_session.query(Tag).count() == 0
    assert db_session.query(ProductTag).count() == 0
    assert tag_service.list_product_tags(widget.id) == []


# =============================================================================
# PRODUCT TAGS
# =============================================================================


def test_owner_assigns_and_lists_tags(db_session, seller, products):
    widget, _ = products
    sale, new = _tags("sale", "new")

    link = tag_service.assign_tag(seller.id, "SELLER", widget.id, sale.id)
    tag_service.assign_tag(seller.id, "SELLER", widget.id, str(new.id))

    assert link.to_dict()["tag"]["name"] == "sale"
    assert [t.name for t in tag_service.list_product_tags(widget.id)] == ["new", "sale"]


def test_other_seller_cannot_tag(db_session, other_seller, admin, products):
    widget, _ = products
    (tag,) = _tags("sale")

    with pytest.raises(ForbiddenError):
        tag_service.assign_tag(other_seller.id, "SELLER", widget.id, tag.id)

    assert tag_service.assign_tag(admin.id, "ADMIN", widget.id, tag.id).product_id == widget.id


def test_duplicate_assignment_conflicts(db_session, seller, products):
    widget, _ = products
    (tag,) = _tags("sale")
    tag_service.assign_tag(seller.id, "SELLER", widget.id, tag.id)

    with pytest.raises(ConflictError):
        tag_service.assign_tag(seller.id, "SELLER", widget.id, tag.id)


def test_assignment_cap(db_session, seller, products):
    widget, _ = products
    tags = _tags(*(f"t{i:02d}" for i in range(11)))
    for tag in tags[:10]:
        tag_service.assign_tag(seller.id, "SELLER", widget.id, tag.id)

    with pytest.raises(ConflictError) as exc_info:
        tag_service.assign_tag(seller.id, "SELLER", widget.id, tags[10].id)

    assert "10 tags" in exc_info.value.message
    assert db_session.query(ProductTag).filter_by(product_id=widget.id).count() == 10


def test_assign_unknown_tag_or_product(db_session, seller, products):
    widget, _ = products
    (tag,) = _tags("sale")

    with pytest.raises(NotFoundError):
        tag_service.assign_tag(seller.id, "SELLER", widget.id, 4242)
    with pytest.raises(NotFoundError):
        tag_service.assign_tag(seller.id, "SELLER", 4242, tag.id)


def test_try_assign_skips_unknown_and_present(db_session, seller, products):
    widget, _ = products
    a, b, c = _tags("a", "b", "c")
    tag_service.assign_tag(seller.id, "SELLER", widget.id, a.id)

    links = tag_service.try_assign_tags(seller.id, "SELLER", widget.id, [a.id, b.id, 4242, c.id, b.id])

    assert [link.tag_id for link in links] == [b.id, c.id]
    assert len(tag_service.list_product_tags(widget.id)) == 3


def test_try_assign_cuts_at_cap(db_session, seller, products):
    widget, _ = products
    tags = _tags(*(f"t{i:02d}" for i in range(12)))
    for tag in tags[:8]:
        tag_service.assign_tag(seller.id, "SELLER", widget.id, tag.id)

    links = tag_service.try_assign_tags(seller.id, "SELLER", widget.id, [t.id for t in tags[8:]])

    assert [link.tag_id for link in links] == [tags[8].id, tags[9].id]
    assert db_session.query(ProductTag).filter_by(product_id=widget.id).count() == 10


@pytest.mark.parametrize("tag_ids", ["1,2", list(range(1, 12)), [1, "x"]])
def test_try_assign_rejects_bad_batches(db_session, seller, products, tag_ids):
    widget, _ = products

    with pytest.raises(InvalidInputError):
        tag_service.try_assign_tags(seller.id, "SELLER", widget.id, tag_ids)


def test_remove_tag(db_session, seller, products):
    widget, _ = products
    sale, new = _tags("sale", "new")
    tag_service.assign_tag(seller.id, "SELLER", widget.id, sale.id)

    tag_service.remove_tag(seller.id, "SELLER", widget.id, sale.id)

    assert tag_service.list_product_tags(widget.id) == []
    with pytest.raises(ConflictError):
        tag_service.remove_tag(seller.id, "SELLER", widget.id, new.id)


def test_remove_all_tags(db_session, seller, other_seller, products):
    widget, gadget = products
    sale, new = _tags("sale", "new")
    tag_service.try_assign_tags(seller.id, "SELLER", widget.id, [sale.id, new.id])
    tag_service.assign_tag(seller.id, "SELLER", gadget.id, sale.id)

    with pytest.raises(ForbiddenError):
        tag_service.remove_all_tags(other_seller.id, "SELLER", widget.id)

    assert tag_service.remove_all_tags(seller.id, "SELLER", widget.id) == 2
    assert tag_service.list_product_tags(widget.id) == []
    assert [t.name for t in tag_service.list_product_tags(gadget.id)] == ["sale"]


def test_list_products_by_tag(db_session, seller, products):
    widget, gadget = products
    sale, _ = _tags("sale", "new")
    tag_service.assign_tag(seller.id, "SELLER", gadget.id, sale.id)

    result = products_service.list_products(tag_id=sale.id)

    assert [p.id for p in result.items] == [gadget.id]
