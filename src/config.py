"""Runtime configuration for CartRec.

Settings are read from the environment (and a local ``.env`` file when
present) once per process.
"""

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

# Pipeline configuration constants
DEFAULT_GEMINI_MODEL = "gemini-2.5-flash"
DEFAULT_LLM_TIMEOUT_SECONDS = 20.0
DEFAULT_RECOMMENDATION_CACHE_TTL = 1800  # 30 minutes
DEFAULT_HARMFUL_INGREDIENTS_CACHE_TTL = 3600  # 1 hour
DEFAULT_TOP_N = 3
DEFAULT_PRODUCT_ID_PATTERN = r"^p\d{5}$"


@dataclass
class Settings:
    """Service settings.

    Attributes:
        mongo_uri: Connection string for the document store.
        mongo_db_name: Database holding the products, users and cache collections.
        gemini_api_key: API key for the generative ranking service.
        gemini_model: Model name used for both ingredient screening and ranking.
        llm_timeout_seconds: Upper bound on a single model call.
        recommendation_cache_ttl: TTL in seconds for cached pipeline results.
        harmful_ingredients_cache_ttl: TTL in seconds for resolved ingredient sets.
        top_n: Number of recommendations requested per pipeline run.
        log_level: Root logging level.
        product_id_pattern: Regex a product id must match on the add-to-cart path.
    """

    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db_name: str = "ai_cart"
    gemini_api_key: Optional[str] = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    llm_timeout_seconds: float = DEFAULT_LLM_TIMEOUT_SECONDS
    recommendation_cache_ttl: int = DEFAULT_RECOMMENDATION_CACHE_TTL
    harmful_ingredients_cache_ttl: int = DEFAULT_HARMFUL_INGREDIENTS_CACHE_TTL
    top_n: int = DEFAULT_TOP_N
    log_level: str = "INFO"
    product_id_pattern: str = DEFAULT_PRODUCT_ID_PATTERN

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from environment variables."""
        load_dotenv()

        return cls(
            mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            mongo_db_name=os.getenv("MONGO_DB_NAME", "ai_cart"),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or os.getenv("GOOGLE_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", DEFAULT_GEMINI_MODEL),
            llm_timeout_seconds=float(
                os.getenv("LLM_TIMEOUT_SECONDS", str(DEFAULT_LLM_TIMEOUT_SECONDS))
            ),
            recommendation_cache_ttl=int(
                os.getenv(
                    "RECOMMENDATION_CACHE_TTL", str(DEFAULT_RECOMMENDATION_CACHE_TTL)
                )
            ),
            harmful_ingredients_cache_ttl=int(
                os.getenv(
                    "HARMFUL_INGREDIENTS_CACHE_TTL",
                    str(DEFAULT_HARMFUL_INGREDIENTS_CACHE_TTL),
                )
            ),
            top_n=int(os.getenv("RECOMMENDATION_TOP_N", str(DEFAULT_TOP_N))),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            product_id_pattern=os.getenv(
                "PRODUCT_ID_PATTERN", DEFAULT_PRODUCT_ID_PATTERN
            ),
        )
