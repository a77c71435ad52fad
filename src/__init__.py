"""CartRec: health-aware cart recommendations for a grocery storefront.

This package provides a backend service that suggests additional products for
a shopping cart, filtered for the user's health conditions and budget and
re-ranked by a generative model with a deterministic fallback.

Modules:
    api: FastAPI application and REST API endpoints
    recommender: Filtering, ranking and the recommendation pipeline
"""

__version__ = "0.1.0"
