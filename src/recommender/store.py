"""Read-side collaborators: product catalog and user profiles.

The pipeline only ever reads through ``CatalogReader`` and ``UserReader``.
Mongo implementations map the storefront's documents (nested
``specifications.nutritionInfo``, camelCase user fields) onto the domain
models; in-memory implementations back tests and the CLI.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional, Protocol

from bson import ObjectId
from bson.errors import InvalidId
from pymongo.database import Database

from src.recommender.models import NutritionInfo, Product, PurchaseRecord, UserProfile

# Configure module logger
logger = logging.getLogger(__name__)

PRODUCTS_COLLECTION = "products"
USERS_COLLECTION = "users"


class CatalogReader(Protocol):
    def find_by_id(self, product_id: str) -> Optional[Product]:
        ...

    def find_by_ids(self, product_ids: Iterable[str]) -> List[Product]:
        ...

    def find_by_category(self, category: str) -> List[Product]:
        ...

    def distinct_ingredients(self) -> List[str]:
        ...


class UserReader(Protocol):
    def find_by_id(self, user_id: str) -> Optional[UserProfile]:
        ...


def product_from_document(document: Dict[str, Any]) -> Product:
    """Convert a stored product document into a Product."""
    specifications = document.get("specifications") or {}
    nutrition = specifications.get("nutritionInfo") or document.get("nutrition") or {}

    return Product(
        id=str(document["id"]),
        name=document.get("name") or "Unnamed",
        category=document.get("category", ""),
        ingredients=list(document.get("ingredients") or []),
        price=float(document.get("price", 0.0)),
        nutrition=NutritionInfo(**_nutrition_fields(nutrition)),
        brand=specifications.get("brand"),
        popularity_score=float(document.get("popularityScore", 0.0)),
    )


def user_from_document(document: Dict[str, Any]) -> UserProfile:
    """Convert a stored user document into a UserProfile."""
    orders = [
        PurchaseRecord(
            product_id=str(order.get("productId", "")),
            name=order.get("name"),
            category=order.get("category") or "",
            price=float(order.get("price") or 0.0),
            nutrition=NutritionInfo(**_nutrition_fields(order.get("nutritionInfo") or {})),
            purchased_at=order.get("purchasedAt"),
        )
        for order in document.get("previousOrders") or []
    ]

    return UserProfile(
        id=str(document.get("_id", document.get("id", ""))),
        name=document.get("name"),
        age=document.get("age"),
        health_conditions=list(document.get("healthConditions") or []),
        average_order_value=float(document.get("averageOrderValue") or 0.0),
        previous_orders=orders,
    )


def _nutrition_fields(raw: Dict[str, Any]) -> Dict[str, float]:
    # Missing or null facts count as zero
    return {
        name: float(raw.get(name) or 0.0)
        for name in NutritionInfo.model_fields
    }


class MongoCatalog:
    """Catalog reader over the ``products`` collection."""

    def __init__(self, database: Database):
        self.collection = database[PRODUCTS_COLLECTION]

    def find_by_id(self, product_id: str) -> Optional[Product]:
        document = self.collection.find_one({"id": product_id})
        return product_from_document(document) if document else None

    def find_by_ids(self, product_ids: Iterable[str]) -> List[Product]:
        ids = list(product_ids)
        if not ids:
            return []
        documents = self.collection.find({"id": {"$in": ids}})
        return [product_from_document(document) for document in documents]

    def find_by_category(self, category: str) -> List[Product]:
        # Categories are matched case-insensitively
        pattern = f"^{re.escape(category)}$"
        documents = self.collection.find(
            {"category": {"$regex": pattern, "$options": "i"}}
        )
        return [product_from_document(document) for document in documents]

    def distinct_ingredients(self) -> List[str]:
        return sorted(self.collection.distinct("ingredients"))


class MongoUserStore:
    """User reader over the ``users`` collection.

    Accepts both ObjectId hex strings and plain string ids.
    """

    def __init__(self, database: Database):
        self.collection = database[USERS_COLLECTION]

    def find_by_id(self, user_id: str) -> Optional[UserProfile]:
        try:
            query: Dict[str, Any] = {"_id": ObjectId(user_id)}
        except (InvalidId, TypeError):
            query = {"_id": user_id}

        document = self.collection.find_one(
            query,
            {"name": 1, "age": 1, "healthConditions": 1, "averageOrderValue": 1, "previousOrders": 1},
        )
        if document is None:
            logger.debug(f"User {user_id} not found")
            return None
        return user_from_document(document)


class InMemoryCatalog:
    """Catalog reader over a list of products."""

    def __init__(self, products: Iterable[Product]):
        self._products: Dict[str, Product] = {product.id: product for product in products}

    def find_by_id(self, product_id: str) -> Optional[Product]:
        return self._products.get(product_id)

    def find_by_ids(self, product_ids: Iterable[str]) -> List[Product]:
        return [
            self._products[product_id]
            for product_id in dict.fromkeys(product_ids)
            if product_id in self._products
        ]

    def find_by_category(self, category: str) -> List[Product]:
        return [
            product for product in self._products.values()
            if product.category.lower() == category.lower()
        ]

    def distinct_ingredients(self) -> List[str]:
        return sorted({
            ingredient
            for product in self._products.values()
            for ingredient in product.ingredients
        })


class InMemoryUserStore:
    """User reader over a list of profiles."""

    def __init__(self, users: Iterable[UserProfile]):
        self._users: Dict[str, UserProfile] = {user.id: user for user in users}

    def find_by_id(self, user_id: str) -> Optional[UserProfile]:
        return self._users.get(user_id)
