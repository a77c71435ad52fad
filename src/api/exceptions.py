"""Custom exceptions for the CartRec service.

Defines specific exception types for better error handling and reporting.
Only validation and not-found errors ever reach a caller; upstream and cache
errors are resolved inside the recommendation pipeline.
"""

from typing import Any, Dict, List, Optional


class CartRecException(Exception):
    """Base exception for CartRec errors."""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None,
    ):
        """Initialize exception.

        Args:
            message: Human-readable error message
            status_code: HTTP status code for API responses
            details: Additional error details for debugging
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.details = details or {}


class CartValidationError(CartRecException):
    """Raised when a cart request is malformed."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=400, details=details)


class InvalidProductIdError(CartValidationError):
    """Raised when a product id does not match the catalog id format."""

    def __init__(self, product_id: str):
        super().__init__(
            message=f"Invalid product ID format: '{product_id}'",
            details={"product_id": product_id},
        )


class NotFoundError(CartRecException):
    """Raised when a referenced user or product does not exist."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message=message, status_code=404, details=details)


class UserNotFoundError(NotFoundError):
    """Raised when a user is not found in the user store."""

    def __init__(self, user_id: str):
        super().__init__(
            message=f"User {user_id} not found",
            details={"user_id": user_id},
        )


class ProductNotFoundError(NotFoundError):
    """Raised when a product is not found in the catalog."""

    def __init__(self, product_id: str):
        super().__init__(
            message=f"Product {product_id} not found",
            details={"product_id": product_id},
        )


class UpstreamError(CartRecException):
    """Raised when the generative ranking service fails or times out.

    Never surfaced to callers; the pipeline falls back to local scoring.
    """

    def __init__(self, message: str, error: Optional[Exception] = None):
        details: Dict[str, Any] = {}
        if error is not None:
            details = {"error": str(error), "error_type": type(error).__name__}
        super().__init__(message=message, status_code=502, details=details)


class CacheError(CartRecException):
    """Raised when the cache store cannot be read or written."""

    def __init__(self, operation: str, key: str, error: Exception):
        message = f"Cache {operation} failed for '{key}': {str(error)}"
        super().__init__(
            message=message,
            status_code=500,
            details={
                "operation": operation,
                "key": key,
                "error": str(error),
                "error_type": type(error).__name__,
            },
        )


class HarmfulProductError(CartRecException):
    """Raised when a product is unsafe for the user's health conditions."""

    def __init__(self, message: str, harmful_ingredients: List[str]):
        super().__init__(
            message=message,
            status_code=400,
            details={"harmful_ingredients": harmful_ingredients},
        )
        self.harmful_ingredients = harmful_ingredients
