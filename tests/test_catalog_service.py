"""Catalog admin writes, soft removal and product reviews."""
import pytest

from conftest import ADDRESS, ALICE, get_product
from storefront.errors import NotFoundError, ValidationError
from storefront.services.catalog_service import CatalogService


@pytest.fixture
def catalog(products):
    return CatalogService(products)


def test_create_product_validates_quantity(catalog):
    with pytest.raises(ValidationError) as exc:
        catalog.create_product({"name": "Bowl", "price": 12, "quantity": "ten"})
    assert exc.value.field == "quantity"

    bowl = catalog.create_product({"name": "Bowl", "price": 12, "quantity": "4"})
    assert bowl["quantity"] == 4
    assert bowl["inStock"] is True


def test_update_product_applies_given_fields(catalog, products):
    updated = catalog.update_product("p-mug", {"price": "55.5", "quantity": 0, "description": "Stoneware"})
    assert updated["price"] == "55.50"
    assert updated["quantity"] == 0
    assert updated["inStock"] is False
    assert updated["name"] == "Mug"
    assert get_product(products, "p-mug").description == "Stoneware"


@pytest.mark.parametrize("fields", [{"price": "cheap"}, {"quantity": "ten"}, {"quantity": -1}, {"name": "  "}])
def test_update_product_rejects_bad_values(catalog, products, fields):
    with pytest.raises(ValidationError):
        catalog.update_product("p-mug", fields)
    assert get_product(products, "p-mug").quantity == 10


def test_update_unknown_product(catalog):
    with pytest.raises(NotFoundError):
        catalog.update_product("p-ghost", {"price": 1})


def test_removed_product_is_hidden_but_kept(catalog, products, order_service):
    catalog.remove_product("p-pen")
    assert "p-pen" not in [p["id"] for p in catalog.list_products()]
    with pytest.raises(NotFoundError):
        catalog.get_product("p-pen")
    assert get_product(products, "p-pen") is not None

    with pytest.raises(NotFoundError):
        order_service.create_order(
            identity=ALICE,
            order_items=[{"product": "p-pen", "price": "19.99", "qty": 1}],
            shipping_address=ADDRESS,
            payment_method="khalti",
        )


def test_reviews_update_rating(catalog):
    catalog.add_review("p-mug", user_id="user-alice", name="Alice", rating=5, comment="Lovely")
    catalog.add_review("p-mug", user_id="user-bob", name="Bob", rating="2", comment="Chipped")

    mug = catalog.get_product("p-mug")
    assert mug["numReviews"] == 2
    assert mug["rating"] == 3.5
    reviews = catalog.list_reviews("p-mug")
    assert sorted(r["name"] for r in reviews) == ["Alice", "Bob"]


def test_one_review_per_user(catalog):
    catalog.add_review("p-mug", user_id="user-alice", rating=4, comment="Nice")
    with pytest.raises(ValidationError):
        catalog.add_review("p-mug", user_id="user-alice", rating=1, comment="Changed my mind")
    assert catalog.get_product("p-mug")["numReviews"] == 1


@pytest.mark.parametrize("rating", [0, 6, 4.5, "great", None, True])
def test_review_rating_must_be_one_to_five(catalog, rating):
    with pytest.raises(ValidationError):
        catalog.add_review("p-mug", user_id="user-alice", rating=rating, comment="Hmm")


def test_review_requires_comment(catalog):
    with pytest.raises(ValidationError):
        catalog.add_review("p-mug", user_id="user-alice", rating=3, comment=" ")


def test_top_products_follow_rating(catalog):
    catalog.add_review("p-pen", user_id="user-alice", rating=5, comment="Smooth")
    catalog.add_review("p-lamp", user_id="user-alice", rating=3, comment="Fine")
    assert [p["id"] for p in catalog.top_products()][:2] == ["p-pen", "p-lamp"]
    assert len(catalog.new_products(limit=2)) == 2
