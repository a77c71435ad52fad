"""Health and budget filters applied to recommendation candidates.

Each filter has an id-based entry point (loads the user and products itself)
and a record-based one used inside the pipeline, where the profile and the
category catalog have already been read once.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from src.api.exceptions import UserNotFoundError
from src.recommender.harmful import HarmfulIngredientResolver, HarmfulIngredientSet
from src.recommender.models import CurrentItemStatus, Product, UserProfile
from src.recommender.store import CatalogReader, UserReader

# Configure module logger
logger = logging.getLogger(__name__)

BUDGET_LOWER_FACTOR = 0.7
BUDGET_UPPER_FACTOR = 1.3


def load_user(users: UserReader, user_id: str) -> UserProfile:
    user = users.find_by_id(user_id)
    if user is None:
        raise UserNotFoundError(user_id)
    return user


def assess_product(
    product: Product,
    harmful: HarmfulIngredientSet,
    conditions: Sequence[str],
) -> CurrentItemStatus:
    """Health verdict for a single product."""
    found = harmful.matches(product.ingredients)
    if found:
        return CurrentItemStatus(
            id=product.id,
            status="harmful",
            harmful_ingredients=found,
            message=(
                f"Contains ingredients ({', '.join(found)}) "
                f"that may worsen {', '.join(conditions)}"
            ),
        )
    return CurrentItemStatus(
        id=product.id,
        status="healthy",
        harmful_ingredients=[],
        message="This item meets your health requirements",
    )


class HealthFilter:
    """Drops products containing any ingredient harmful to the user."""

    def __init__(
        self,
        resolver: HarmfulIngredientResolver,
        catalog: CatalogReader,
        users: UserReader,
    ):
        self.resolver = resolver
        self.catalog = catalog
        self.users = users

    def filter(self, user_id: str, product_ids: List[str]) -> List[str]:
        """Filter candidate ids for a user.

        Args:
            user_id: User whose health conditions apply.
            product_ids: Candidate product ids.

        Returns:
            Ids of safe products. The input list unchanged when the harmful
            set is empty.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        user = load_user(self.users, user_id)
        harmful = self.resolver.resolve(user.health_conditions)
        if not harmful:
            return list(product_ids)

        products = self.catalog.find_by_ids(product_ids)
        safe_ids = {product.id for product in self.exclude_harmful(products, harmful)}
        return [product_id for product_id in product_ids if product_id in safe_ids]

    def filter_products(
        self,
        user: UserProfile,
        products: List[Product],
        harmful: Optional[HarmfulIngredientSet] = None,
    ) -> List[Product]:
        """Filter already-loaded products.

        Args:
            user: Profile read once for the current request.
            products: Candidate products.
            harmful: A set already resolved for this user; resolved here if omitted.
        """
        if harmful is None:
            harmful = self.resolver.resolve(user.health_conditions)
        if not harmful:
            return list(products)
        return self.exclude_harmful(products, harmful)

    @staticmethod
    def exclude_harmful(
        products: List[Product], harmful: HarmfulIngredientSet
    ) -> List[Product]:
        safe = [product for product in products if not harmful.matches(product.ingredients)]
        logger.debug(
            "Health filter applied",
            extra={"num_candidates": len(products), "num_safe": len(safe)},
        )
        return safe


def budget_range(average_order_value: float) -> Tuple[float, float]:
    """Inclusive price window around a user's average order value."""
    return (
        round(average_order_value * BUDGET_LOWER_FACTOR, 2),
        round(average_order_value * BUDGET_UPPER_FACTOR, 2),
    )


class BudgetFilter:
    """Keeps products priced within the user's historical budget band.

    Users without an average order value get no candidates at all.
    """

    def __init__(self, catalog: CatalogReader, users: UserReader):
        self.catalog = catalog
        self.users = users

    def filter(self, user_id: str, product_ids: List[str]) -> List[str]:
        """Filter candidate ids by the user's budget.

        Raises:
            UserNotFoundError: If the user does not exist.
        """
        user = load_user(self.users, user_id)
        if not user.average_order_value:
            logger.warning(f"User {user_id} has no average order value, skipping budget candidates")
            return []

        products = self.catalog.find_by_ids(product_ids)
        in_budget = {product.id for product in self.filter_products(user, products)}
        return [product_id for product_id in product_ids if product_id in in_budget]

    def filter_products(self, user: UserProfile, products: List[Product]) -> List[Product]:
        if not user.average_order_value:
            return []

        low, high = budget_range(user.average_order_value)
        return [product for product in products if low <= product.price <= high]
