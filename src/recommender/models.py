"""Domain models for the cart recommendation pipeline.

Products and user profiles are read-only snapshots taken from the document
store. Everything the pipeline produces is JSON-serializable so a finished
result can be cached as-is.
"""

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field


class NutritionInfo(BaseModel):
    """Nutrition facts per serving. Sodium is in mg, everything else in g."""

    model_config = ConfigDict(frozen=True)

    calories: float = Field(default=0.0, ge=0)
    protein: float = Field(default=0.0, ge=0)
    fiber: float = Field(default=0.0, ge=0)
    sugar: float = Field(default=0.0, ge=0)
    sodium: float = Field(default=0.0, ge=0)
    fat: float = Field(default=0.0, ge=0)


class Product(BaseModel):
    """Catalog product snapshot."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Stable external product key")
    name: str
    category: str
    ingredients: List[str] = Field(default_factory=list)
    price: float = Field(..., ge=0)
    nutrition: NutritionInfo = Field(default_factory=NutritionInfo)
    brand: Optional[str] = None
    popularity_score: float = 0.0

    def normalized_ingredients(self) -> List[str]:
        return [ingredient.strip().lower() for ingredient in self.ingredients]


class PurchaseRecord(BaseModel):
    """One line of a user's order history."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    name: Optional[str] = None
    category: str = ""
    price: float = 0.0
    nutrition: NutritionInfo = Field(default_factory=NutritionInfo)
    purchased_at: Optional[datetime] = None


class UserProfile(BaseModel):
    """Read-only projection of a user used by the pipeline."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    age: Optional[int] = None
    health_conditions: List[str] = Field(default_factory=list)
    average_order_value: float = Field(default=0.0, ge=0)
    previous_orders: List[PurchaseRecord] = Field(default_factory=list)

    def purchased_in_category(self, category: str) -> List[PurchaseRecord]:
        """Purchase history restricted to one category (case-insensitive)."""
        wanted = category.lower()
        return [
            order for order in self.previous_orders
            if order.category.lower() == wanted
        ]


class CartItem(BaseModel):
    """Minimal product reference sent in a cart recommendation request."""

    id: str = Field(..., min_length=1)
    category: str
    ingredients: List[str]


class CurrentItemStatus(BaseModel):
    """Health verdict for the cart item that triggered the pipeline."""

    id: str
    status: Literal["healthy", "harmful"]
    harmful_ingredients: List[str] = Field(default_factory=list)
    message: str


class NutritionMetric(BaseModel):
    """Per-recommendation nutrition summary."""

    id: str = Field(..., min_length=1)
    health_index: int
    value_score: float = Field(..., ge=0)


class Recommendation(BaseModel):
    """A recommended product with the reason it was picked."""

    product: Product
    reasoning: str = Field(..., min_length=1)
    metric: Optional[NutritionMetric] = None


class RecommendationResult(BaseModel):
    """Full pipeline response, also the value stored in the cache."""

    recommendations: List[Recommendation] = Field(default_factory=list)
    metrics: List[NutritionMetric] = Field(default_factory=list)
    explanation: str = ""
    current_item_status: Optional[CurrentItemStatus] = None
    ranking_source: Literal["model", "fallback", "none"] = "none"
    timestamp: datetime
    expires_at: Optional[datetime] = None
    error: Optional[str] = None
    error_type: Optional[Literal["validation", "not_found", "internal"]] = None


class AddToCartResult(BaseModel):
    """Outcome of the add-to-cart health gate."""

    success: bool
    message: str
    product: Optional[Product] = None
    harmful_ingredients: List[str] = Field(default_factory=list)
