"""Cart endpoints for the CartRec API.

Provides the add-to-cart health gate and cart-based recommendations.
"""

import logging
from typing import Any, Dict, Optional, Union

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from src.api.dependencies import get_cart_service
from src.api.exceptions import HarmfulProductError
from src.recommender.cart import CartService
from src.recommender.models import Product, RecommendationResult

# Configure module logger
logger = logging.getLogger(__name__)

# Create API router
router = APIRouter(
    prefix="/cart",
    tags=["cart"],
)

_ERROR_STATUS = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "not_found": status.HTTP_404_NOT_FOUND,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}


class AddToCartRequest(BaseModel):
    """Request body for adding a product to the cart."""

    user_id: str = Field(..., min_length=1, description="User adding the product")
    product_id: str = Field(..., description="Catalog product id, e.g. p00042")


class AddToCartResponse(BaseModel):
    success: bool
    product: Optional[Product] = None
    message: str


class CartRecommendationsRequest(BaseModel):
    """Request body for cart recommendations.

    ``cart_items`` is validated by the cart service so malformed carts get a
    400 with a specific message instead of a generic schema error.
    """

    user_id: str = Field(..., min_length=1, description="User to recommend for")
    cart_items: Any = Field(
        default=None, description="Cart items: [{id, category, ingredients}]"
    )


@router.post("/add", response_model=AddToCartResponse)
def add_to_cart(
    request: AddToCartRequest,
    service: CartService = Depends(get_cart_service),
) -> AddToCartResponse:
    """Add a product to the cart if it is safe for the user.

    Raises:
        HarmfulProductError: 400 with the offending ingredients.
        InvalidProductIdError: 400 for a malformed product id.
        NotFoundError: 404 for an unknown user or product.
    """
    result = service.add_to_cart(request.user_id, request.product_id)
    if not result.success:
        raise HarmfulProductError(result.message, result.harmful_ingredients)

    return AddToCartResponse(success=True, product=result.product, message=result.message)


@router.post("/recommendations", response_model=RecommendationResult)
def get_cart_recommendations(
    request: CartRecommendationsRequest,
    service: CartService = Depends(get_cart_service),
) -> Union[RecommendationResult, JSONResponse]:
    """Get health-safe, budget-appropriate recommendations for the cart.

    Example:
        POST /cart/recommendations
        {"user_id": "u1", "cart_items": [{"id": "p00001", "category": "dairy",
         "ingredients": ["milk"]}]}
    """
    result = service.get_cart_recommendations(request.user_id, request.cart_items)

    if result.error_type is not None:
        payload: Dict[str, Any] = result.model_dump(mode="json")
        return JSONResponse(status_code=_ERROR_STATUS[result.error_type], content=payload)

    return result
