from __future__ import annotations

from typing import Optional

import redis

from certwatch.core.models import CertwatchSettings
from certwatch.store.layout import StoreLayout


def create_store_client(redis_url: str) -> redis.Redis:
    """
    Create a Redis client from a URL without connecting.

    Raises ValueError when the URL cannot be parsed.
    """
    return redis.Redis.from_url(redis_url, decode_responses=False)


def client_db(client: redis.Redis) -> int:
    """Return the logical database index the client is bound to."""
    kwargs = client.connection_pool.connection_kwargs
    return int(kwargs.get("db") or 0)


def build_store_layout(settings: CertwatchSettings, client: Optional[redis.Redis] = None) -> StoreLayout:
    """Derive the key layout, taking the keyspace db from settings or the client URL."""
    db = settings.keyspace_db
    if db is None:
        db = client_db(client) if client is not None else 0
    return StoreLayout(
        key_prefix=settings.key_prefix,
        acme_dir_name=settings.acme_dir_name,
        db=db,
    )
