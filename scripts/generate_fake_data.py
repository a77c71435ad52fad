"""Generate a fake grocery catalog and user profiles for local runs.

Writes ``products.json`` and ``users.json`` in the same document layout the
storefront keeps in its document store, so ``scripts/recommend_cli.py`` can run
the full pipeline without a database.

Example:
    Run the script directly to generate default data:
        $ python scripts/generate_fake_data.py

    Or import and use programmatically:
        from scripts.generate_fake_data import generate_fake_catalog
        products = generate_fake_catalog(num_products=200)
"""

import argparse
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

# Default configuration constants
DEFAULT_NUM_PRODUCTS = 120
DEFAULT_NUM_USERS = 20
DEFAULT_MAX_ORDERS = 12
DEFAULT_DAYS_BACK = 90
DEFAULT_SEED = 42

CATEGORIES: Dict[str, List[str]] = {
    "dairy": ["milk", "cream", "salt", "sugar", "cultures", "vitamin d"],
    "bakery": ["flour", "yeast", "salt", "sugar", "butter", "oats", "eggs"],
    "snacks": ["potato", "salt", "palm oil", "sugar", "corn", "peanuts", "msg"],
    "beverages": ["water", "sugar", "caffeine", "citric acid", "fruit juice", "sweetener"],
    "cereals": ["oats", "wheat", "sugar", "honey", "salt", "almonds", "raisins"],
}
BRANDS = ["GreenFarm", "DailyHarvest", "NutriBest", "PureLife", "Golden Fields"]
HEALTH_CONDITIONS = ["hypertension", "diabetes", "obesity", "celiac disease", "lactose intolerance"]


def generate_fake_catalog(
    num_products: int = DEFAULT_NUM_PRODUCTS,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate synthetic product documents.

    Args:
        num_products: Number of products. Must be positive.
        seed: Random seed for reproducibility.

    Returns:
        A DataFrame with one product document per row: id (``p`` + 5
        digits), name, category, ingredients, price and nested
        specifications.nutritionInfo.

    Raises:
        ValueError: If num_products is not positive.
    """
    if num_products <= 0:
        raise ValueError("num_products must be positive")

    rng = np.random.default_rng(seed)
    category_names = list(CATEGORIES)

    rows = []
    for index in range(1, num_products + 1):
        category = category_names[int(rng.integers(len(category_names)))]
        pool = CATEGORIES[category]
        num_ingredients = int(rng.integers(2, min(5, len(pool)) + 1))
        ingredients = sorted(rng.choice(pool, size=num_ingredients, replace=False).tolist())
        brand = BRANDS[int(rng.integers(len(BRANDS)))]

        rows.append({
            "id": f"p{index:05d}",
            "name": f"{brand} {category.title()} #{index}",
            "category": category,
            "ingredients": ingredients,
            "price": round(float(rng.uniform(1.5, 20.0)), 2),
            "specifications": {
                "brand": brand,
                "nutritionInfo": {
                    "calories": round(float(rng.uniform(20, 450)), 1),
                    "protein": round(float(rng.uniform(0, 25)), 1),
                    "fiber": round(float(rng.uniform(0, 10)), 1),
                    "sugar": round(float(rng.uniform(0, 30)), 1),
                    "sodium": round(float(rng.uniform(0, 800)), 0),
                    "fat": round(float(rng.uniform(0, 20)), 1),
                },
            },
            "popularityScore": round(float(rng.uniform(0, 5)), 2),
        })

    return pd.DataFrame(rows)


def generate_fake_users(
    products: pd.DataFrame,
    num_users: int = DEFAULT_NUM_USERS,
    max_orders: int = DEFAULT_MAX_ORDERS,
    end_date: Optional[datetime] = None,
    seed: int = DEFAULT_SEED,
) -> pd.DataFrame:
    """Generate user documents with order histories drawn from ``products``.

    Each user's averageOrderValue is the mean price of their orders, or 0 for
    users without orders.

    Raises:
        ValueError: If num_users is not positive or products is empty.
    """
    if num_users <= 0:
        raise ValueError("num_users must be positive")
    if products.empty:
        raise ValueError("Cannot generate orders from an empty catalog")

    rng = np.random.default_rng(seed + 1)
    if end_date is None:
        end_date = datetime.now()

    rows = []
    for index in range(1, num_users + 1):
        num_conditions = int(rng.integers(0, 3))
        conditions = sorted(rng.choice(HEALTH_CONDITIONS, size=num_conditions, replace=False).tolist())

        num_orders = int(rng.integers(0, max_orders + 1))
        picks = products.sample(n=num_orders, replace=True, random_state=int(rng.integers(1_000_000)))
        orders = []
        for _, product in picks.iterrows():
            purchased_at = end_date - timedelta(
                days=int(rng.integers(DEFAULT_DAYS_BACK)),
                seconds=int(rng.integers(86400)),
            )
            orders.append({
                "productId": product["id"],
                "name": product["name"],
                "category": product["category"],
                "price": product["price"],
                "nutritionInfo": product["specifications"]["nutritionInfo"],
                "purchasedAt": purchased_at.isoformat(),
            })
        orders.sort(key=lambda order: order["purchasedAt"])

        average = round(float(np.mean([o["price"] for o in orders])), 2) if orders else 0.0
        rows.append({
            "_id": f"u{index:03d}",
            "name": f"Test User {index}",
            "age": int(rng.integers(18, 80)),
            "healthConditions": conditions,
            "previousOrders": orders,
            "averageOrderValue": average,
        })

    return pd.DataFrame(rows)


def main() -> None:
    """Generate the catalog and users and write them as JSON snapshots."""
    parser = argparse.ArgumentParser(description="Generate fake CartRec data")
    parser.add_argument("--num-products", type=int, default=DEFAULT_NUM_PRODUCTS)
    parser.add_argument("--num-users", type=int, default=DEFAULT_NUM_USERS)
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED)
    parser.add_argument(
        "--output-dir",
        type=str,
        default=str(Path(__file__).parent.parent / "data"),
        help="Directory for products.json and users.json (default: data/)",
    )
    args = parser.parse_args()

    print(f"Generating {args.num_products} products and {args.num_users} users...")

    try:
        products = generate_fake_catalog(num_products=args.num_products, seed=args.seed)
        users = generate_fake_users(products, num_users=args.num_users, seed=args.seed)
    except ValueError as e:
        print(f"Error generating data: {e}")
        return

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    products.to_json(output_dir / "products.json", orient="records", indent=2)
    users.to_json(output_dir / "users.json", orient="records", indent=2)

    print(f"\nData generated successfully!")
    print(f"Saved to: {output_dir}")
    print(f"\nCatalog summary:")
    print(products.groupby("category")["price"].agg(["count", "mean"]).round(2))
    print(f"\nUsers with orders: {(users['previousOrders'].str.len() > 0).sum()} / {len(users)}")


if __name__ == '__main__':
    main()
