"""Listing cache owned by the read path.

Backed by Flask-Caching. With ``CACHE_TYPE=SimpleCache`` the store holds at
most ``CACHE_THRESHOLD`` entries and each entry expires after
``CACHE_DEFAULT_TIMEOUT`` seconds. Writers never read from it; they only
call :func:`invalidate_listings` after a successful mutation.
"""

from typing import Any, Optional

from flask import current_app

from extensions import cache

LIST_KEY_PREFIX = "hierarchy:list"


def listing_key(kind: str, parent_id: Optional[str], status: str) -> str:
    return f"{LIST_KEY_PREFIX}:{kind}:{parent_id or '*'}:{status}"


def get_listing(key: str) -> Optional[Any]:
    return cache.get(key)


def store_listing(key: str, items: Any) -> None:
    cache.set(key, items)


def invalidate_listings() -> None:
    """Drop every cached listing after a write."""
    cache.clear()
    current_app.logger.debug("Listing cache cleared")
