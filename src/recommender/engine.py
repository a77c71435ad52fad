"""Cart-based recommendation engine.

Runs one request through the pipeline::

    IDLE -> CACHE_CHECK -> FILTERING -> EXTERNAL_RANK -> VALIDATE
         -> SUCCESS | FALLBACK -> METRICS_COMPUTE -> CACHE_PERSIST -> DONE

The generative model only re-ranks candidates that already passed the health
and budget filters. Whatever it answers is validated as a whole; on any
failure the engine ranks locally by health score instead. The engine never
raises: not-found and validation failures come back as a result with
``error`` set and no recommendations.
"""

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, List, Optional, Tuple

from pydantic import ValidationError as SchemaValidationError

from src.api.exceptions import (
    CartRecException,
    CartValidationError,
    NotFoundError,
    ProductNotFoundError,
    UpstreamError,
)
from src.api.metrics import metrics_service
from src.recommender.cache import PipelineCache, safe_get, safe_set
from src.recommender.filters import BudgetFilter, HealthFilter, assess_product, load_user
from src.recommender.harmful import DEFAULT_CACHE_TTL as DEFAULT_HARMFUL_CACHE_TTL
from src.recommender.harmful import HarmfulIngredientResolver
from src.recommender.llm import GenerativeRanker, Rejected, validate_picks
from src.recommender.models import (
    CartItem,
    CurrentItemStatus,
    Recommendation,
    RecommendationResult,
    UserProfile,
)
from src.recommender.ranking import (
    FALLBACK_REASONING,
    CandidateRanker,
    RankedCandidate,
    fallback_top_n,
    nutrition_metric,
)
from src.recommender.store import CatalogReader, UserReader

# Configure module logger
logger = logging.getLogger(__name__)

# Default parameters
DEFAULT_TOP_N = 3
DEFAULT_CACHE_TTL = 1800  # 30 minutes


class PipelineStage(str, Enum):
    IDLE = "idle"
    CACHE_CHECK = "cache_check"
    FILTERING = "filtering"
    EXTERNAL_RANK = "external_rank"
    VALIDATE = "validate"
    SUCCESS = "success"
    FALLBACK = "fallback"
    METRICS_COMPUTE = "metrics_compute"
    CACHE_PERSIST = "cache_persist"
    DONE = "done"


@dataclass
class PipelineRun:
    """Per-request state. Never shared between requests."""

    user_id: str
    request_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    stages: List[PipelineStage] = field(default_factory=lambda: [PipelineStage.IDLE])
    current_item_status: Optional[CurrentItemStatus] = None

    @property
    def stage(self) -> PipelineStage:
        return self.stages[-1]

    def advance(self, stage: PipelineStage) -> None:
        logger.debug(
            f"Pipeline {self.stage.value} -> {stage.value}",
            extra={"request_id": self.request_id, "user_id": self.user_id},
        )
        self.stages.append(stage)


def recommendation_cache_key(user_id: str, category: str, item_id: str) -> str:
    return f"recs:{user_id}:{category}:{item_id}"


def build_ranking_prompt(
    user: UserProfile,
    candidates: List[RankedCandidate],
    category: str,
    top_n: int,
) -> str:
    """Prompt asking the model to pick ``top_n`` candidates as strict JSON."""
    conditions = ", ".join(user.health_conditions) or "None"
    lines = []
    for candidate in candidates:
        product = candidate.product
        lines.append(
            f"- {product.id} - {product.name}: ${product.price:.2f}, "
            f"sodium {product.nutrition.sodium:g}mg, sugar {product.nutrition.sugar:g}g"
        )

    return (
        f"User has the following health conditions: {conditions}.\n"
        f"Their average budget is around ${user.average_order_value:.2f}.\n\n"
        f'Please analyze the following product candidates from the category "{category}" '
        f"and select the top {top_n} most suitable products for the user's health "
        "profile and budget.\n\n"
        "Return ONLY a JSON array with exactly this structure:\n"
        "[\n"
        "  {\n"
        '    "id": "p02527",\n'
        '    "name": "Organic Milk",\n'
        '    "price": 6.83,\n'
        '    "sodium": "11mg",\n'
        '    "sugar": "12.8g",\n'
        '    "reasoning": "Low sodium and budget-friendly, ideal for hypertension."\n'
        "  }\n"
        "]\n\n"
        "Products to evaluate:\n" + "\n".join(lines)
    )


class RecommendationEngine:
    """Health-safe, budget-aware cart recommendations.

    Args:
        catalog: Product catalog reader.
        users: User profile reader.
        ranker: Generative ranking service used as an advisory re-ranker.
        cache: Shared result cache.
        top_n: Number of recommendations per request.
        cache_ttl: TTL in seconds for cached results.
        harmful_cache_ttl: TTL in seconds for resolved harmful ingredient sets.
        resolver: Override for the harmful ingredient resolver.
        clock: Returns the current UTC time, for result timestamps.
    """

    def __init__(
        self,
        catalog: CatalogReader,
        users: UserReader,
        ranker: GenerativeRanker,
        cache: PipelineCache,
        top_n: int = DEFAULT_TOP_N,
        cache_ttl: int = DEFAULT_CACHE_TTL,
        harmful_cache_ttl: int = DEFAULT_HARMFUL_CACHE_TTL,
        resolver: Optional[HarmfulIngredientResolver] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.catalog = catalog
        self.users = users
        self.ranker = ranker
        self.cache = cache
        self.top_n = top_n
        self.cache_ttl = cache_ttl
        self.resolver = resolver or HarmfulIngredientResolver(
            ranker, catalog, cache, cache_ttl=harmful_cache_ttl
        )
        self.health_filter = HealthFilter(self.resolver, catalog, users)
        self.budget_filter = BudgetFilter(catalog, users)
        self.candidate_ranker = CandidateRanker()
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def recommend(self, user_id: str, cart_items: List[CartItem]) -> RecommendationResult:
        """Recommend products to go with the cart.

        The first cart item is the triggering item: its category scopes the
        candidates and its health verdict is reported.

        Args:
            user_id: User to recommend for.
            cart_items: Validated cart items, triggering item first.

        Returns:
            The pipeline result. On failure ``error`` is set and
            ``recommendations`` is empty.
        """
        start_time = time.time()
        run = PipelineRun(user_id=user_id)

        logger.info(
            "Starting recommendation pipeline",
            extra={
                "request_id": run.request_id,
                "user_id": user_id,
                "num_cart_items": len(cart_items),
            },
        )

        try:
            result, outcome = self._run(run, cart_items)
        except CartRecException as e:
            error_type = "validation" if isinstance(e, CartValidationError) else (
                "not_found" if isinstance(e, NotFoundError) else "internal"
            )
            logger.warning(
                "Recommendation pipeline aborted",
                extra={
                    "request_id": run.request_id,
                    "user_id": user_id,
                    "error": e.message,
                    "error_type": type(e).__name__,
                },
            )
            result = self._error_result(run, e.message, error_type)
            outcome = "error"
        except Exception as e:
            logger.error(
                "Recommendation pipeline failed",
                extra={
                    "request_id": run.request_id,
                    "user_id": user_id,
                    "error": str(e),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            result = self._error_result(run, "Failed to generate recommendations", "internal")
            outcome = "error"

        if run.stage != PipelineStage.DONE:
            run.advance(PipelineStage.DONE)

        total_time_ms = round((time.time() - start_time) * 1000, 2)
        metrics_service.record_pipeline(outcome, total_time_ms)

        logger.info(
            "Recommendation pipeline finished",
            extra={
                "request_id": run.request_id,
                "user_id": user_id,
                "outcome": outcome,
                "num_recommendations": len(result.recommendations),
                "total_time_ms": total_time_ms,
            },
        )
        return result

    def _run(
        self, run: PipelineRun, cart_items: List[CartItem]
    ) -> Tuple[RecommendationResult, str]:
        if not cart_items:
            raise CartValidationError("cartItems must contain at least one item")

        user = load_user(self.users, run.user_id)

        current_item = self.catalog.find_by_id(cart_items[0].id)
        if current_item is None:
            raise ProductNotFoundError(cart_items[0].id)

        category = current_item.category.lower()
        if not category:
            logger.warning(f"Product {current_item.id} has no category")
            return self._empty_result(run, "Missing or invalid product category"), "empty"

        run.advance(PipelineStage.CACHE_CHECK)
        cache_key = recommendation_cache_key(run.user_id, category, current_item.id)
        cached = self._read_cached_result(cache_key)
        if cached is not None:
            logger.info(
                "Returning cached recommendations",
                extra={"request_id": run.request_id, "cache_key": cache_key},
            )
            run.advance(PipelineStage.DONE)
            return cached, "cache_hit"

        run.advance(PipelineStage.FILTERING)
        harmful = self.resolver.resolve(user.health_conditions)
        run.current_item_status = assess_product(current_item, harmful, user.health_conditions)

        cart_ids = {item.id for item in cart_items}
        category_products = [
            product for product in self.catalog.find_by_category(category)
            if product.id not in cart_ids
        ]
        if not category_products:
            return self._empty_result(run, "No products in same category"), "empty"

        safe_products = self.health_filter.filter_products(user, category_products, harmful)
        if not safe_products:
            return self._empty_result(run, "No healthy products found"), "empty"

        budget_products = self.budget_filter.filter_products(user, safe_products)
        if not budget_products:
            return self._empty_result(run, "No products matched budget"), "empty"

        candidates = self.candidate_ranker.rank(
            budget_products,
            user.purchased_in_category(category),
            run.current_item_status,
        )

        logger.info(
            "Filtered candidates",
            extra={
                "request_id": run.request_id,
                "category": category,
                "num_category_products": len(category_products),
                "num_safe": len(safe_products),
                "num_in_budget": len(budget_products),
            },
        )

        recommendations = self._rank_with_model(run, user, candidates, category)
        if recommendations is not None:
            source = "model"
            explanation = (
                f"Top {len(recommendations)} {category} picks selected by the "
                "recommendation model for your health profile and budget"
            )
        else:
            run.advance(PipelineStage.FALLBACK)
            recommendations = [
                Recommendation(product=candidate.product, reasoning=FALLBACK_REASONING)
                for candidate in fallback_top_n(candidates, self.top_n)
            ]
            source = "fallback"
            explanation = (
                f"Top {len(recommendations)} {category} picks ranked by health index"
            )

        run.advance(PipelineStage.METRICS_COMPUTE)
        metrics = [nutrition_metric(rec.product) for rec in recommendations]
        recommendations = [
            rec.model_copy(update={"metric": metric})
            for rec, metric in zip(recommendations, metrics)
        ]

        run.advance(PipelineStage.CACHE_PERSIST)
        now = self._clock()
        result = RecommendationResult(
            recommendations=recommendations,
            metrics=metrics,
            explanation=explanation,
            current_item_status=run.current_item_status,
            ranking_source=source,
            timestamp=now,
            expires_at=now + timedelta(seconds=self.cache_ttl),
        )
        payload = result.model_dump(mode="json")
        safe_set(self.cache, cache_key, payload, self.cache_ttl)

        run.advance(PipelineStage.DONE)
        # Hand back exactly what was cached so later hits are identical
        return RecommendationResult.model_validate(payload), source

    def _rank_with_model(
        self,
        run: PipelineRun,
        user: UserProfile,
        candidates: List[RankedCandidate],
        category: str,
    ) -> Optional[List[Recommendation]]:
        """Ask the generative model for a shortlist.

        Returns:
            Recommendations in the model's order, or None when the call or
            its answer failed and the fallback should run.
        """
        run.advance(PipelineStage.EXTERNAL_RANK)
        prompt = build_ranking_prompt(user, candidates, category, self.top_n)

        try:
            text = self.ranker.generate(prompt)
        except UpstreamError as e:
            logger.error(
                "Model ranking unavailable, using fallback",
                extra={"request_id": run.request_id, "error": e.message},
            )
            return None

        run.advance(PipelineStage.VALIDATE)
        outcome = validate_picks(text)
        if isinstance(outcome, Rejected):
            logger.error(
                "Model ranking rejected, using fallback",
                extra={"request_id": run.request_id, "reason": outcome.reason},
            )
            return None

        by_id = {candidate.product.id: candidate for candidate in candidates}
        recommendations: List[Recommendation] = []
        seen = set()
        for pick in outcome.picks:
            candidate = by_id.get(pick.id)
            if candidate is None or pick.id in seen:
                continue
            seen.add(pick.id)
            recommendations.append(
                Recommendation(product=candidate.product, reasoning=pick.reasoning)
            )

        if not recommendations:
            logger.error(
                "Model picked no known candidates, using fallback",
                extra={"request_id": run.request_id, "num_picks": len(outcome.picks)},
            )
            return None

        run.advance(PipelineStage.SUCCESS)
        return recommendations

    def _read_cached_result(self, cache_key: str) -> Optional[RecommendationResult]:
        cached = safe_get(self.cache, cache_key)
        if not isinstance(cached, dict) or not cached.get("recommendations"):
            return None

        try:
            return RecommendationResult.model_validate(cached)
        except SchemaValidationError as e:
            logger.warning(
                "Ignoring malformed cache entry",
                extra={"cache_key": cache_key, "error": str(e)},
            )
            return None

    def _empty_result(self, run: PipelineRun, explanation: str) -> RecommendationResult:
        run.advance(PipelineStage.DONE)
        return RecommendationResult(
            explanation=explanation,
            current_item_status=run.current_item_status,
            timestamp=self._clock(),
        )

    def _error_result(
        self, run: PipelineRun, message: str, error_type: str
    ) -> RecommendationResult:
        return RecommendationResult(
            explanation=message,
            current_item_status=run.current_item_status,
            timestamp=self._clock(),
            error=message,
            error_type=error_type,
        )
