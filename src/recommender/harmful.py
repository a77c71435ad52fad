"""Harmful ingredient resolution.

Asks the generative service which catalog ingredients are contraindicated for
a set of health conditions. Resolution is fail-open: if the service is down or
answers with something unusable, the resolved set is empty and health
filtering becomes a pass-through for that request.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, List

from src.api.exceptions import UpstreamError
from src.recommender.cache import PipelineCache, safe_get, safe_set
from src.recommender.llm import GenerativeRanker, strip_code_fence
from src.recommender.store import CatalogReader

# Configure module logger
logger = logging.getLogger(__name__)

CACHE_KEY_PREFIX = "harmful_ingredients_"
DEFAULT_CACHE_TTL = 3600


@dataclass(frozen=True)
class HarmfulIngredientSet:
    """Ingredients judged unsafe for a set of health conditions.

    Attributes:
        ingredients: Lower-cased ingredient names, for membership tests.
        raw: The list exactly as resolved, which is what gets cached.
    """

    ingredients: FrozenSet[str] = frozenset()
    raw: List[str] = field(default_factory=list)

    @classmethod
    def from_list(cls, raw: List[str]) -> "HarmfulIngredientSet":
        return cls(
            ingredients=frozenset(item.strip().lower() for item in raw),
            raw=list(raw),
        )

    def __bool__(self) -> bool:
        return bool(self.ingredients)

    def matches(self, ingredients: Iterable[str]) -> List[str]:
        """Return the given ingredients that are harmful, lower-cased."""
        return [
            ingredient.strip().lower()
            for ingredient in ingredients
            if ingredient.strip().lower() in self.ingredients
        ]


def normalize_conditions(conditions: Iterable[str]) -> List[str]:
    """Lower-case, de-duplicate and sort condition tags."""
    return sorted({
        condition.strip().lower()
        for condition in conditions
        if condition and condition.strip()
    })


def build_harmful_ingredients_prompt(conditions: List[str], ingredients: List[str]) -> str:
    return (
        f"Analyze the following health conditions: {', '.join(conditions)}.\n"
        f"Identify which of these ingredients might be harmful: {', '.join(ingredients)}.\n"
        "Return ONLY a JSON array of harmful ingredients, or an empty array if none are harmful.\n"
        'Example: ["salt", "sugar"]\n'
    )


def parse_ingredient_list(text: str) -> List[str]:
    """Parse a model answer into a list of ingredient names.

    Raises:
        ValueError: If the answer is not a JSON array of strings.
    """
    payload = json.loads(strip_code_fence(text))
    if not isinstance(payload, list) or not all(isinstance(item, str) for item in payload):
        raise ValueError("Expected a JSON array of strings")
    return payload


class HarmfulIngredientResolver:
    """Resolves and caches harmful ingredient sets per condition combination."""

    def __init__(
        self,
        ranker: GenerativeRanker,
        catalog: CatalogReader,
        cache: PipelineCache,
        cache_ttl: int = DEFAULT_CACHE_TTL,
    ):
        self.ranker = ranker
        self.catalog = catalog
        self.cache = cache
        self.cache_ttl = cache_ttl

    @staticmethod
    def cache_key(conditions: Iterable[str]) -> str:
        return CACHE_KEY_PREFIX + "_".join(normalize_conditions(conditions))

    def resolve(self, conditions: Iterable[str]) -> HarmfulIngredientSet:
        """Resolve the harmful ingredient set for ``conditions``.

        Args:
            conditions: Health condition tags, any case, possibly empty.

        Returns:
            The resolved set. Empty when there are no conditions or when
            resolution failed.
        """
        normalized = normalize_conditions(conditions)
        if not normalized:
            return HarmfulIngredientSet()

        key = self.cache_key(normalized)
        cached = safe_get(self.cache, key)
        if isinstance(cached, list):
            logger.debug("Returning harmful ingredients from cache", extra={"cache_key": key})
            return HarmfulIngredientSet.from_list(cached)

        universe = self.catalog.distinct_ingredients()
        prompt = build_harmful_ingredients_prompt(normalized, universe)

        try:
            raw = parse_ingredient_list(self.ranker.generate(prompt))
        except (UpstreamError, ValueError) as e:
            # Fail open: no information means no health-based exclusions
            logger.error(
                "Harmful ingredient resolution failed",
                extra={
                    "conditions": normalized,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
            )
            return HarmfulIngredientSet()

        safe_set(self.cache, key, raw, self.cache_ttl)
        logger.info(
            "Resolved harmful ingredients",
            extra={"conditions": normalized, "num_harmful": len(raw)},
        )
        return HarmfulIngredientSet.from_list(raw)
