"""Cart operations: the add-to-cart health gate and cart recommendations."""

import logging
import re
from typing import Any, List, Optional

from src.api.exceptions import CartValidationError, InvalidProductIdError, ProductNotFoundError
from src.recommender.engine import RecommendationEngine
from src.recommender.filters import load_user
from src.recommender.harmful import HarmfulIngredientResolver
from src.recommender.models import AddToCartResult, CartItem, RecommendationResult
from src.recommender.store import CatalogReader, UserReader

# Configure module logger
logger = logging.getLogger(__name__)

INVALID_CART_ITEMS_MESSAGE = "Each cart item must contain id, category, and ingredients"


def validate_cart_items(cart_items: Any) -> List[CartItem]:
    """Validate a raw cart item list as a whole.

    Every item needs a non-empty string id, a string category and a list of
    ingredient strings. One bad item rejects the request.

    Raises:
        CartValidationError: If the list is empty, not a list, or any item is
            malformed.
    """
    if not isinstance(cart_items, list):
        raise CartValidationError("cartItems must be an array")
    if not cart_items:
        raise CartValidationError("cartItems must contain at least one item")

    validated = []
    for index, item in enumerate(cart_items):
        if (
            not isinstance(item, dict)
            or not isinstance(item.get("id"), str)
            or not item["id"].strip()
            or not isinstance(item.get("category"), str)
            or not isinstance(item.get("ingredients"), list)
            or not all(isinstance(ingredient, str) for ingredient in item["ingredients"])
        ):
            raise CartValidationError(INVALID_CART_ITEMS_MESSAGE, details={"index": index})

        validated.append(
            CartItem(id=item["id"], category=item["category"], ingredients=item["ingredients"])
        )
    return validated


class CartService:
    """Entry point for cart requests.

    Args:
        catalog: Product catalog reader.
        users: User profile reader.
        engine: Recommendation engine for cart recommendations.
        resolver: Harmful ingredient resolver; the engine's by default.
        product_id_pattern: Regex a product id must match when adding to cart.
            None disables the format check.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        users: UserReader,
        engine: RecommendationEngine,
        resolver: Optional[HarmfulIngredientResolver] = None,
        product_id_pattern: Optional[str] = None,
    ):
        self.catalog = catalog
        self.users = users
        self.engine = engine
        self.resolver = resolver or engine.resolver
        self._product_id_re = re.compile(product_id_pattern) if product_id_pattern else None

    def validate_product_id(self, product_id: str) -> None:
        if self._product_id_re is not None and not self._product_id_re.match(product_id or ""):
            logger.warning(f"Invalid product ID format: {product_id}")
            raise InvalidProductIdError(product_id)

    def add_to_cart(self, user_id: str, product_id: str) -> AddToCartResult:
        """Check a product against the user's health conditions before adding it.

        Args:
            user_id: User adding the product.
            product_id: Product to add.

        Returns:
            ``success=False`` with the offending ingredients when the product
            contains anything harmful for the user, otherwise the product.

        Raises:
            InvalidProductIdError: If the id does not match the catalog format.
            ProductNotFoundError: If the product does not exist.
            UserNotFoundError: If the user does not exist.
        """
        self.validate_product_id(product_id)

        product = self.catalog.find_by_id(product_id)
        if product is None:
            raise ProductNotFoundError(product_id)

        user = load_user(self.users, user_id)

        harmful = self.resolver.resolve(user.health_conditions)
        found = harmful.matches(product.ingredients)
        if found:
            conditions = ", ".join(user.health_conditions)
            logger.info(
                "Rejected harmful cart item",
                extra={"user_id": user_id, "product_id": product_id, "harmful_ingredients": found},
            )
            return AddToCartResult(
                success=False,
                message=(
                    "This product contains ingredients that may not be suitable for "
                    f"your health conditions ({conditions}): {', '.join(found)}"
                ),
                harmful_ingredients=found,
            )

        return AddToCartResult(
            success=True,
            message="Item added to cart successfully",
            product=product,
        )

    def get_cart_recommendations(self, user_id: str, cart_items: Any) -> RecommendationResult:
        """Validate a raw cart and run the recommendation pipeline.

        Raises:
            CartValidationError: If the cart items are malformed. Raised before
                any store or model access.
        """
        items = validate_cart_items(cart_items)
        return self.engine.recommend(user_id, items)
