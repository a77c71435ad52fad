"""Shared fixtures: a small bakery catalog, users and a scripted ranker.

The catalog is built so that for user ``u1`` (hypertension, average order
value 10.00, budget window [7.00, 13.00]) and a cart holding ``p00001``:

- ``p00003`` contains salt and is removed by the health filter,
- ``p00005`` (13.01) and ``p00006`` (6.99) fall outside the budget,
- ``p00002``, ``p00004`` (13.00) and ``p00007`` (7.00) survive.
"""

import json
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import pytest

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from src.api.exceptions import UpstreamError
from src.api.metrics import metrics_service
from src.recommender.cache import InMemoryPipelineCache
from src.recommender.cart import CartService
from src.recommender.engine import RecommendationEngine
from src.recommender.models import NutritionInfo, Product, PurchaseRecord, UserProfile
from src.recommender.store import InMemoryCatalog, InMemoryUserStore

FIXED_NOW = datetime(2026, 1, 15, 12, 0, tzinfo=timezone.utc)

HARMFUL_PROMPT_MARKER = "Analyze the following health conditions"
RANKING_PROMPT_MARKER = "Products to evaluate"


def make_product(
    product_id: str,
    name: str,
    price: float,
    ingredients: List[str],
    category: str = "bakery",
    protein: float = 0.0,
    sugar: float = 0.0,
    sodium: float = 0.0,
) -> Product:
    return Product(
        id=product_id,
        name=name,
        category=category,
        ingredients=ingredients,
        price=price,
        nutrition=NutritionInfo(protein=protein, sugar=sugar, sodium=sodium),
    )


def model_pick(product: Product, reasoning: str = "Good fit") -> Dict:
    """A well-formed ranking entry for ``product``."""
    return {
        "id": product.id,
        "name": product.name,
        "price": product.price,
        "sodium": f"{product.nutrition.sodium:g}mg",
        "sugar": f"{product.nutrition.sugar:g}g",
        "reasoning": reasoning,
    }


class FakeRanker:
    """Scripted generative service.

    Answers ingredient screening prompts with ``harmful`` and ranking prompts
    with ``ranking``. Either answer can be an exception to raise instead.
    """

    def __init__(self, harmful=None, ranking=None):
        self.harmful = harmful if harmful is not None else ["salt"]
        self.ranking = ranking if ranking is not None else "[]"
        self.prompts: List[str] = []

    def generate(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if HARMFUL_PROMPT_MARKER in prompt:
            answer = self.harmful
        elif RANKING_PROMPT_MARKER in prompt:
            answer = self.ranking
        else:
            raise AssertionError(f"Unexpected prompt: {prompt[:60]}")

        if isinstance(answer, Exception):
            raise answer
        if isinstance(answer, list):
            return "```json\n" + json.dumps(answer) + "\n```"
        return answer

    @property
    def harmful_calls(self) -> int:
        return sum(HARMFUL_PROMPT_MARKER in prompt for prompt in self.prompts)

    @property
    def ranking_calls(self) -> int:
        return sum(RANKING_PROMPT_MARKER in prompt for prompt in self.prompts)


@pytest.fixture(autouse=True)
def reset_metrics():
    """Metrics are a process-wide singleton; start every test from zero."""
    metrics_service.reset()
    yield
    metrics_service.reset()


@pytest.fixture
def products() -> List[Product]:
    return [
        make_product("p00001", "White Bread", 9.00, ["Flour", "Salt", "Yeast"], protein=7, sugar=3, sodium=450),
        make_product("p00002", "Oat Loaf", 10.00, ["oats", "flour", "yeast"], protein=8, sugar=3, sodium=150),
        make_product("p00003", "Salted Crackers", 8.00, ["flour", "salt"], protein=4, sugar=1, sodium=700),
        make_product("p00004", "Rye Bread", 13.00, ["rye flour", "yeast"], protein=6, sugar=2, sodium=200),
        make_product("p00005", "Artisan Sourdough", 13.01, ["flour", "water"], protein=9, sugar=1, sodium=100),
        make_product("p00006", "Budget Rolls", 6.99, ["flour", "yeast"], protein=5, sugar=4, sodium=180),
        make_product("p00007", "Seeded Bagel", 7.00, ["flour", "seeds"], protein=10, sugar=4, sodium=300),
        make_product("p00010", "Whole Milk", 4.00, ["milk"], category="dairy", protein=8, sugar=12, sodium=100),
    ]


@pytest.fixture
def users() -> List[UserProfile]:
    rye_order = PurchaseRecord(product_id="p00004", name="Rye Bread", category="Bakery", price=13.00)
    return [
        UserProfile(
            id="u1",
            name="Hypertensive Shopper",
            health_conditions=["Hypertension"],
            average_order_value=10.0,
            previous_orders=[rye_order],
        ),
        UserProfile(id="u2", name="Healthy Shopper", average_order_value=10.0),
        UserProfile(id="u3", name="New Shopper", health_conditions=["hypertension"]),
    ]


@pytest.fixture
def catalog(products) -> InMemoryCatalog:
    return InMemoryCatalog(products)


@pytest.fixture
def user_store(users) -> InMemoryUserStore:
    return InMemoryUserStore(users)


@pytest.fixture
def cache() -> InMemoryPipelineCache:
    return InMemoryPipelineCache()


@pytest.fixture
def ranker() -> FakeRanker:
    return FakeRanker()


@pytest.fixture
def make_engine(catalog, user_store, cache):
    """Factory for engines sharing the fixture catalog, users and cache."""

    def _make(ranker: FakeRanker, top_n: int = 3, cache_override: Optional[object] = None):
        return RecommendationEngine(
            catalog=catalog,
            users=user_store,
            ranker=ranker,
            cache=cache_override if cache_override is not None else cache,
            top_n=top_n,
            clock=lambda: FIXED_NOW,
        )

    return _make


@pytest.fixture
def cart_service(catalog, user_store, make_engine, ranker) -> CartService:
    return CartService(
        catalog=catalog,
        users=user_store,
        engine=make_engine(ranker),
        product_id_pattern=r"^p\d{5}$",
    )


@pytest.fixture
def cart_items(products) -> List[Dict]:
    """Raw cart holding the salted white bread."""
    bread = products[0]
    return [{"id": bread.id, "category": bread.category, "ingredients": list(bread.ingredients)}]


def unavailable(message: str = "service down") -> UpstreamError:
    return UpstreamError(message)
