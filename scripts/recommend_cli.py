"""CLI script for cart recommendations against a local data snapshot.

Useful for testing and evaluation. Loads the products and users written by
``scripts/generate_fake_data.py``, runs the add-to-cart check or the
recommendation pipeline for one user, and prints the result.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.api.exceptions import CartRecException, UpstreamError
from src.config import Settings
from src.recommender.cache import InMemoryPipelineCache
from src.recommender.cart import CartService
from src.recommender.engine import RecommendationEngine
from src.recommender.llm import GeminiRanker
from src.recommender.utils import check_snapshot_exists, load_catalog, load_users

# Setup logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(levelname)s: %(message)s"
)
logger = logging.getLogger(__name__)


class OfflineRanker:
    """Ranker that is always unavailable, forcing local fallback scoring."""

    def generate(self, prompt: str) -> str:
        raise UpstreamError("Offline mode: generative service disabled")


def build_service(data_dir: str, offline: bool, top_n: int) -> CartService:
    """Wire a cart service over the snapshot in ``data_dir``.

    Raises:
        FileNotFoundError: If the snapshot files are missing.
        ValueError: If not offline and no API key is configured.
    """
    settings = Settings.from_env()
    catalog = load_catalog(data_dir)
    users = load_users(data_dir)

    if offline:
        ranker = OfflineRanker()
    else:
        ranker = GeminiRanker(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout_seconds=settings.llm_timeout_seconds,
        )

    engine = RecommendationEngine(
        catalog=catalog,
        users=users,
        ranker=ranker,
        cache=InMemoryPipelineCache(),
        top_n=top_n,
        cache_ttl=settings.recommendation_cache_ttl,
        harmful_cache_ttl=settings.harmful_ingredients_cache_ttl,
    )
    return CartService(
        catalog=catalog,
        users=users,
        engine=engine,
        product_id_pattern=settings.product_id_pattern,
    )


def cart_items_for(service: CartService, product_ids: List[str]) -> List[dict]:
    """Build raw cart items from catalog products, skipping unknown ids."""
    items = []
    for product_id in product_ids:
        product = service.catalog.find_by_id(product_id)
        if product is None:
            logger.warning(f"Skipping unknown product {product_id}")
            continue
        items.append({
            "id": product.id,
            "category": product.category,
            "ingredients": list(product.ingredients),
        })
    return items


def main() -> None:
    """Main CLI function."""
    parser = argparse.ArgumentParser(
        description="Get health-aware cart recommendations for a user",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/recommend_cli.py u001 p00012
  python scripts/recommend_cli.py u001 p00012 p00040 --offline
  python scripts/recommend_cli.py u001 p00012 --add
        """
    )

    parser.add_argument("user_id", type=str, help="User ID to get recommendations for")
    parser.add_argument(
        "product_ids",
        nargs="+",
        help="Cart product IDs; the first one triggers the recommendations",
    )
    parser.add_argument(
        "--add",
        action="store_true",
        help="Run the add-to-cart health check for the first product instead",
    )
    parser.add_argument(
        "--top-n",
        type=int,
        default=3,
        help="Number of recommendations to return (default: 3)"
    )
    parser.add_argument(
        "--data-dir",
        type=str,
        default="data",
        help="Directory containing products.json and users.json (default: data)"
    )
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Skip the generative service and rank by health index only",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    if not check_snapshot_exists(args.data_dir):
        print(f"Error: No data snapshot in {args.data_dir}", file=sys.stderr)
        print("  Run scripts/generate_fake_data.py first", file=sys.stderr)
        sys.exit(1)

    try:
        service = build_service(args.data_dir, args.offline, args.top_n)
    except ValueError as e:
        print(f"Error: {e} (use --offline to rank locally)", file=sys.stderr)
        sys.exit(1)

    try:
        if args.add:
            result = service.add_to_cart(args.user_id, args.product_ids[0])
            print(f"\n{'Added' if result.success else 'Rejected'}: {result.message}\n")
            return

        result = service.get_cart_recommendations(
            args.user_id, cart_items_for(service, args.product_ids)
        )
    except CartRecException as e:
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(1)

    if result.error:
        print(f"Error ({result.error_type}): {result.error}", file=sys.stderr)
        sys.exit(1)

    print(f"\nRecommendations for user {args.user_id} (source: {result.ranking_source}):")
    print(f"  {result.explanation}")
    if result.current_item_status is not None:
        status = result.current_item_status
        print(f"  Cart item {status.id}: {status.status} - {status.message}")

    for rec in result.recommendations:
        product = rec.product
        print(f"\n  {product.id}  {product.name}  ${product.price:.2f}")
        print(f"    {rec.reasoning}")
        if rec.metric is not None:
            print(
                f"    health index {rec.metric.health_index}, "
                f"value score {rec.metric.value_score}"
            )

    if args.verbose:
        print("\nRaw result:")
        print(json.dumps(result.model_dump(mode="json"), indent=2))

    print()


if __name__ == "__main__":
    main()
