"""Service wiring for the API.

Builds the production collaborators (document store, Gemini ranker, cache)
once per process. Tests replace ``get_cart_service`` through FastAPI's
``dependency_overrides``.
"""

import logging
from functools import lru_cache

from pymongo import MongoClient

from src.config import Settings
from src.recommender.cache import CACHE_COLLECTION, MongoPipelineCache
from src.recommender.cart import CartService
from src.recommender.engine import RecommendationEngine
from src.recommender.llm import GeminiRanker
from src.recommender.store import MongoCatalog, MongoUserStore

# Configure module logger
logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()


@lru_cache(maxsize=1)
def get_cart_service() -> CartService:
    """Build the cart service from settings (cached for the process)."""
    settings = get_settings()

    client: MongoClient = MongoClient(settings.mongo_uri, serverSelectionTimeoutMS=10000)
    database = client[settings.mongo_db_name]
    logger.info(f"Using document store database '{settings.mongo_db_name}'")

    catalog = MongoCatalog(database)
    users = MongoUserStore(database)
    cache = MongoPipelineCache(database[CACHE_COLLECTION])
    ranker = GeminiRanker(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout_seconds=settings.llm_timeout_seconds,
    )

    engine = RecommendationEngine(
        catalog=catalog,
        users=users,
        ranker=ranker,
        cache=cache,
        top_n=settings.top_n,
        cache_ttl=settings.recommendation_cache_ttl,
        harmful_cache_ttl=settings.harmful_ingredients_cache_ttl,
    )
    return CartService(
        catalog=catalog,
        users=users,
        engine=engine,
        product_id_pattern=settings.product_id_pattern,
    )
