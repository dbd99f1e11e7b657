from __future__ import annotations

import uuid
from datetime import datetime, timezone
from decimal import Decimal

import pydantic
import pytest

from shopcore.core.errors import NotFound, ValidationError
from shopcore.models.product import ProductState
from shopcore.repositories.product_repo import ProductRepository
from shopcore.schemas.product import Money, ProductFilter


@pytest.fixture
def family(session, make_product, product_service):
    """A parent with two variants plus one standalone product."""
    parent = make_product(name="Linen Shirt")
    small = make_product(name="Linen Shirt S")
    large = make_product(name="Linen Shirt L")
    standalone = make_product(name="Wool Scarf")
    product_service.add_variant(session, parent.id, small.id)
    product_service.add_variant(session, parent.id, large.id)
    return parent, small, large, standalone


def test_admin_display_hides_variant_children(session, family, product_service):
    parent, small, large, standalone = family

    ids = {p.id for p in product_service.admin_product_list(session)}

    assert ids == {parent.id, standalone.id}


def test_sellable_products_hide_parents(session, family, product_service):
    parent, small, large, standalone = family

    ids = {p.id for p in product_service.sellable_products(session)}

    assert ids == {small.id, large.id, standalone.id}


def test_listings_skip_inactive_and_deleted(session, make_product, product_service):
    live = make_product()
    make_product(state=ProductState.IN_ACTIVE.value)
    gone = make_product()
    product_service.delete_product(session, gone.id)

    assert [p.id for p in product_service.active_products(session)] == [live.id]
    assert [p.id for p in product_service.admin_product_list(session)] == [live.id]
    assert [p.id for p in product_service.sellable_products(session)] == [live.id]


def test_variant_cannot_be_its_own_parent(session, make_product, product_service):
    product = make_product()

    with pytest.raises(ValidationError):
        product_service.add_variant(session, product.id, product.id)


def test_variant_child_has_single_parent(session, make_product, product_service):
    first, second, child = make_product(), make_product(), make_product()
    product_service.add_variant(session, first.id, child.id)

    with pytest.raises(ValidationError):
        product_service.add_variant(session, second.id, child.id)


def test_list_products_search_filter_and_paging(session, family, make_product, product_service):
    make_product(name="Linen Trousers", store="north")
    make_product(name="Linen Towel", store="south")

    page = product_service.list_products(
        session,
        ProductFilter(search_term="LINEN", sort_field="name", sort_order="asc", per_page=2),
    )

    # variants of the shirt are hidden, the parent is not
    assert page.total == 3
    assert [p.name for p in page.items] == ["Linen Shirt", "Linen Towel"]

    second = product_service.list_products(
        session,
        ProductFilter(search_term="linen", sort_field="name", sort_order="asc", per_page=2, page=2),
    )
    assert [p.name for p in second.items] == ["Linen Trousers"]

    filtered = product_service.list_products(
        session, ProductFilter(filters={"store": "south"})
    )
    assert [p.name for p in filtered.items] == ["Linen Towel"]


def test_list_products_filter_values_take_column_types(session, make_product, make_taxon, product_service):
    shirts = make_taxon("Shirts")
    in_category = make_product(name="Oxford Shirt", taxon_id=shirts.id)
    hidden = make_product(name="Old Shirt", is_active=False)

    by_taxon = product_service.list_products(
        session, ProductFilter(filters={"taxon_id": str(shirts.id)})
    )
    by_flag = product_service.list_products(
        session, ProductFilter(filters={"is_active": "false"})
    )

    assert [p.id for p in by_taxon.items] == [in_category.id]
    assert by_flag.total == 1
    assert [p.id for p in by_flag.items] == [hidden.id]


def test_list_products_rejects_uncoercible_filter_values():
    with pytest.raises(pydantic.ValidationError):
        ProductFilter(filters={"taxon_id": "not-a-uuid"})
    with pytest.raises(pydantic.ValidationError):
        ProductFilter(filters={"is_active": "maybe"})


def test_list_products_rejects_unknown_fields():
    with pytest.raises(pydantic.ValidationError):
        ProductFilter(filters={"password": "x"})
    with pytest.raises(pydantic.ValidationError):
        ProductFilter(sort_field="description")


def test_get_product_missing_raises_not_found(session, product_service):
    with pytest.raises(NotFound):
        product_service.get_product(session, uuid.uuid4())


def test_find_product_by_columns(session, make_product, product_service):
    product = make_product(store="north")

    assert product_service.find_product(session, store="north").id == product.id
    assert product_service.find_product(session, store="east") is None
    with pytest.raises(ValidationError):
        product_service.find_product(session, colour="red")


def test_is_orderable_requires_stock_on_hand(session, make_product, product_service):
    repo = ProductRepository()
    no_stock = make_product()
    empty_stock = make_product()
    stocked = make_product()
    repo.add_stock_item(session, empty_stock.id, 0)
    repo.add_stock_item(session, stocked.id, 0)
    repo.add_stock_item(session, stocked.id, 3)

    assert product_service.is_orderable(session, no_stock.id) is False
    assert product_service.is_orderable(session, empty_stock.id) is False
    assert product_service.is_orderable(session, stocked.id) is True


def test_get_selling_prices(session, make_product, product_service):
    a = make_product(selling_price_amount=Decimal("5.50"), selling_price_currency="EUR")
    b = make_product(selling_price_amount=Decimal("7.25"))

    prices = product_service.get_selling_prices(session, [a.id, b.id])

    assert prices[a.id] == Money(amount=Decimal("5.50"), currency="EUR")
    assert prices[b.id].amount == Decimal("7.25")


def test_count_by_state_in_date_range(session, family, make_product, product_service):
    in_range = datetime(2024, 3, 10, tzinfo=timezone.utc)
    out_of_range = datetime(2023, 1, 1, tzinfo=timezone.utc)
    parent, small, large, standalone = family
    for product in (parent, small, large, standalone):
        product.created_at = in_range
        session.add(product)
    session.commit()
    make_product(state=ProductState.DRAFT.value, created_at=in_range)
    make_product(state=ProductState.DRAFT.value, created_at=in_range)
    make_product(state=ProductState.IN_ACTIVE.value, created_at=in_range)
    make_product(state=ProductState.DRAFT.value, created_at=out_of_range)
    make_product(state=ProductState.DELETED.value, created_at=in_range)

    counts = product_service.product_count_by_state(
        session,
        datetime(2024, 3, 1, tzinfo=timezone.utc),
        datetime(2024, 3, 31, tzinfo=timezone.utc),
    )

    assert {c.state: c.count for c in counts} == {"active": 2, "draft": 2, "in_active": 1}


def test_count_by_state_rejects_reversed_range(session, product_service):
    with pytest.raises(ValidationError):
        product_service.product_count_by_state(
            session,
            datetime(2024, 2, 1, tzinfo=timezone.utc),
            datetime(2024, 1, 1, tzinfo=timezone.utc),
        )


def test_product_with_default_image(session, make_product, product_service):
    from shopcore.schemas.product import NewImage

    product = make_product()
    product_service.add_images(
        session,
        product.id,
        [
            NewImage(content_type="image/png", data=b"a"),
            NewImage(content_type="image/png", data=b"b", is_default=True),
        ],
    )

    found, image = product_service.get_product_with_default_image(session, product.id)

    assert found.id == product.id
    assert image is not None and image.is_default
