# marketplace/services/catalog_service.py
from redis.exceptions import RedisError
from sqlalchemy.orm import Session

from marketplace.domain.errors import NotFoundError
from marketplace.domain.schemas import ProductOut
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.services.cache_service import product_key, vendor_products_key
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


class CatalogService:
    """Odczyt katalogu przez cache; awaria redisa konczy sie odczytem z bazy."""

    def __init__(self, db: Session, cache):
        self.repo = CatalogRepo(db)
        self.cache = cache

    def get_product(self, product_id: int) -> dict:
        key = product_key(product_id)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        product = self.repo.get_product(product_id)
        if product is None or product.status != "active":
            raise NotFoundError("Product not found")

        data = ProductOut.model_validate(product).model_dump(mode="json")
        self._cache_set(key, data)
        return data

    def list_vendor_products(self, vendor_id: int) -> list[dict]:
        key = vendor_products_key(vendor_id)
        cached = self._cache_get(key)
        if cached is not None:
            return cached

        data = [ProductOut.model_validate(p).model_dump(mode="json") for p in self.repo.list_vendor_products(vendor_id)]
        self._cache_set(key, data)
        return data

    def _cache_get(self, key: str):
        try:
            return self.cache.get(key)
        except RedisError as e:
            logger.warning(f"Cache read failed for {key}: {e}")
            return None

    def _cache_set(self, key: str, value) -> None:
        try:
            self.cache.set(key, value)
        except RedisError as e:
            logger.warning(f"Cache write failed for {key}: {e}")


def invalidate_products(cache, product_ids, vendor_ids=()) -> None:
    """Po zmianie stanu magazynu, best effort."""
    if cache is None:
        return
    keys = [product_key(pid) for pid in product_ids] + [vendor_products_key(vid) for vid in vendor_ids]
    try:
        cache.invalidate(*keys)
    except RedisError as e:
        logger.warning(f"Cache invalidation failed for {keys}: {e}")
