# marketplace/services/cache_service.py
import json

import redis

from marketplace.utils.logging import get_logger
from marketplace.utils.retry import redis_retry
from marketplace.utils.settings import CACHE_TTL_SECONDS, REDIS_URL

logger = get_logger(__name__)


class RedisCache:
    """
    Port cache dla sciezek tylko do odczytu (katalog).
    Wycena i finalizacja nigdy z niego nie czytaja.
    """

    def __init__(self, url: str | None = None, ttl: int | None = None):
        self.redis = redis.Redis.from_url(url or REDIS_URL, decode_responses=True)
        self.ttl = ttl or CACHE_TTL_SECONDS

    @redis_retry()
    def get(self, key: str):
        raw = self.redis.get(key)
        return json.loads(raw) if raw is not None else None

    @redis_retry()
    def set(self, key: str, value, ttl: int | None = None) -> None:
        # SET key value EX ttl, wpis sam wygasa
        self.redis.set(name=key, value=json.dumps(value, default=str), ex=ttl or self.ttl)

    @redis_retry()
    def invalidate(self, *keys: str) -> int:
        if not keys:
            return 0
        logger.debug(f"Cache invalidate {keys}")
        return self.redis.delete(*keys)


def product_key(product_id: int) -> str:
    return f"product:{product_id}"


def vendor_products_key(vendor_id: int) -> str:
    return f"vendor:{vendor_id}:products"
