"""Deterministic ranking and scoring of recommendation candidates."""

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

from src.recommender.models import (
    CurrentItemStatus,
    NutritionInfo,
    NutritionMetric,
    Product,
    PurchaseRecord,
)

# Configure module logger
logger = logging.getLogger(__name__)

# Health score weights
PROTEIN_WEIGHT = 2.0
SUGAR_WEIGHT = 0.5
SODIUM_WEIGHT = 0.01

FALLBACK_REASONING = "High health index for your health conditions"


@dataclass(frozen=True)
class RankedCandidate:
    """A candidate product in ranked position.

    Attributes:
        product: The candidate.
        affinity: 1 if the user bought this product in the category before.
        status: Health verdict when the candidate is the triggering cart item.
    """

    product: Product
    affinity: int = 0
    status: Optional[CurrentItemStatus] = None


def health_score(nutrition: NutritionInfo) -> float:
    return (
        nutrition.protein * PROTEIN_WEIGHT
        - nutrition.sugar * SUGAR_WEIGHT
        - nutrition.sodium * SODIUM_WEIGHT
    )


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def nutrition_metric(product: Product) -> NutritionMetric:
    """Health index and protein-per-price value score for one product."""
    value_score = round(product.nutrition.protein / max(product.price, 1), 2)
    return NutritionMetric(
        id=product.id,
        health_index=_round_half_up(health_score(product.nutrition)),
        value_score=value_score,
    )


class CandidateRanker:
    """Orders candidates by purchase affinity, then ascending price."""

    def rank(
        self,
        products: List[Product],
        history: List[PurchaseRecord],
        current_item_status: Optional[CurrentItemStatus] = None,
    ) -> List[RankedCandidate]:
        """Rank filtered candidates.

        Args:
            products: Health- and budget-filtered candidates.
            history: The user's purchases in the current category.
            current_item_status: Verdict for the triggering cart item, attached
                to that item if it is among the candidates.

        Returns:
            Candidates ordered by (affinity desc, price asc). Python's sort is
            stable, so full ties keep their input order.
        """
        purchased_ids = {record.product_id for record in history}

        ranked = [
            RankedCandidate(
                product=product,
                affinity=1 if product.id in purchased_ids else 0,
                status=(
                    current_item_status
                    if current_item_status is not None and product.id == current_item_status.id
                    else None
                ),
            )
            for product in products
        ]
        ranked.sort(key=lambda candidate: (-candidate.affinity, candidate.product.price))

        logger.debug(
            "Ranked candidates",
            extra={
                "num_candidates": len(ranked),
                "num_with_affinity": sum(candidate.affinity for candidate in ranked),
            },
        )
        return ranked


def fallback_top_n(candidates: List[RankedCandidate], top_n: int) -> List[RankedCandidate]:
    """Pick the ``top_n`` candidates by local health score.

    Ties keep their ranked order.
    """
    ordered = sorted(
        candidates,
        key=lambda candidate: health_score(candidate.product.nutrition),
        reverse=True,
    )
    return ordered[:top_n]
