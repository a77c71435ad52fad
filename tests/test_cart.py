"""Tests for cart validation and the add-to-cart health gate."""

from unittest.mock import MagicMock

import pytest
from conftest import FakeRanker, unavailable

from src.api.exceptions import (
    CartValidationError,
    InvalidProductIdError,
    ProductNotFoundError,
    UserNotFoundError,
)
from src.recommender.cart import INVALID_CART_ITEMS_MESSAGE, CartService, validate_cart_items


@pytest.mark.parametrize(
    "cart_items",
    [
        [{"category": "bakery", "ingredients": []}],
        [{"id": "", "category": "bakery", "ingredients": []}],
        [{"id": "p00001", "ingredients": []}],
        [{"id": "p00001", "category": "bakery"}],
        [{"id": "p00001", "category": "bakery", "ingredients": "flour"}],
        [{"id": "p00001", "category": "bakery", "ingredients": [1]}],
        ["p00001"],
    ],
)
def test_validate_cart_items_rejects_malformed_item(cart_items):
    with pytest.raises(CartValidationError) as exc_info:
        validate_cart_items(cart_items)

    assert exc_info.value.message == INVALID_CART_ITEMS_MESSAGE


def test_validate_cart_items_reports_offending_index():
    good = {"id": "p00001", "category": "bakery", "ingredients": ["flour"]}

    with pytest.raises(CartValidationError) as exc_info:
        validate_cart_items([good, {"id": "p00002"}])

    assert exc_info.value.details == {"index": 1}


@pytest.mark.parametrize("cart_items", [None, {}, [], "p00001"])
def test_validate_cart_items_requires_non_empty_list(cart_items):
    with pytest.raises(CartValidationError):
        validate_cart_items(cart_items)


def test_validate_cart_items_returns_models(cart_items):
    items = validate_cart_items(cart_items)

    assert items[0].id == "p00001"
    assert items[0].ingredients == ["Flour", "Salt", "Yeast"]


def test_invalid_cart_touches_nothing():
    """Validation happens before any store, model or engine access."""
    catalog, users, engine = MagicMock(), MagicMock(), MagicMock()
    service = CartService(catalog=catalog, users=users, engine=engine)

    with pytest.raises(CartValidationError):
        service.get_cart_recommendations("u1", [{"id": "p00001"}])

    catalog.assert_not_called()
    assert catalog.method_calls == []
    assert users.method_calls == []
    engine.recommend.assert_not_called()


def test_get_cart_recommendations_runs_pipeline(cart_service, cart_items):
    result = cart_service.get_cart_recommendations("u1", cart_items)

    assert result.error is None
    assert result.current_item_status.status == "harmful"


def test_add_to_cart_rejects_harmful_product(cart_service):
    result = cart_service.add_to_cart("u1", "p00001")

    assert result.success is False
    assert result.harmful_ingredients == ["salt"]
    assert result.message == (
        "This product contains ingredients that may not be suitable for "
        "your health conditions (Hypertension): salt"
    )


def test_add_to_cart_accepts_safe_product(cart_service, products):
    result = cart_service.add_to_cart("u1", "p00002")

    assert result.success is True
    assert result.product == products[1]
    assert result.message == "Item added to cart successfully"


def test_add_to_cart_user_without_conditions(cart_service):
    assert cart_service.add_to_cart("u2", "p00001").success is True


def test_add_to_cart_fails_open(catalog, user_store, make_engine):
    """An unavailable ingredient screen lets the product through."""
    service = CartService(catalog, user_store, make_engine(FakeRanker(harmful=unavailable())))

    assert service.add_to_cart("u1", "p00001").success is True


def test_add_to_cart_invalid_product_id(cart_service):
    with pytest.raises(InvalidProductIdError):
        cart_service.add_to_cart("u1", "bread-1")


def test_add_to_cart_without_id_pattern_skips_format_check(catalog, user_store, make_engine):
    service = CartService(catalog, user_store, make_engine(FakeRanker()))

    with pytest.raises(ProductNotFoundError):
        service.add_to_cart("u1", "bread-1")


def test_add_to_cart_unknown_product(cart_service):
    with pytest.raises(ProductNotFoundError):
        cart_service.add_to_cart("u1", "p99999")


def test_add_to_cart_unknown_user(cart_service):
    with pytest.raises(UserNotFoundError):
        cart_service.add_to_cart("ghost", "p00001")
