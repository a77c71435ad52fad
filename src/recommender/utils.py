"""Utility functions for loading catalog and user snapshots from disk.

Snapshot files hold the same documents the storefront keeps in its document
store, so they go through the same mappers as the Mongo readers.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List

from src.recommender.store import (
    InMemoryCatalog,
    InMemoryUserStore,
    product_from_document,
    user_from_document,
)

# Configure module logger
logger = logging.getLogger(__name__)

# Snapshot filenames
PRODUCTS_FILENAME = "products.json"
USERS_FILENAME = "users.json"


def load_documents(json_path: str) -> List[Dict[str, Any]]:
    """Load a JSON array of documents.

    Args:
        json_path: Path to a file containing a JSON array of objects.

    Returns:
        The documents.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file does not contain a JSON array.
    """
    path = Path(json_path)
    if not path.exists():
        raise FileNotFoundError(f"Snapshot file not found: {json_path}")

    with path.open(encoding="utf-8") as f:
        documents = json.load(f)

    if not isinstance(documents, list):
        raise ValueError(f"Expected a JSON array in {json_path}")

    logger.info(f"Loaded {len(documents)} documents from {json_path}")
    return documents


def load_catalog(data_dir: str, filename: str = PRODUCTS_FILENAME) -> InMemoryCatalog:
    """Load a product snapshot into an in-memory catalog."""
    documents = load_documents(str(Path(data_dir) / filename))
    return InMemoryCatalog(product_from_document(document) for document in documents)


def load_users(data_dir: str, filename: str = USERS_FILENAME) -> InMemoryUserStore:
    """Load a user snapshot into an in-memory user store."""
    documents = load_documents(str(Path(data_dir) / filename))
    return InMemoryUserStore(user_from_document(document) for document in documents)


def check_snapshot_exists(data_dir: str) -> bool:
    """Check if both snapshot files exist in ``data_dir``."""
    path = Path(data_dir)
    return (path / PRODUCTS_FILENAME).exists() and (path / USERS_FILENAME).exists()
