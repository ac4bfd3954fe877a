# marketplace/api/routers/catalog.py
from functools import lru_cache
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from marketplace.api.errors import DOMAIN_ERRORS, http_error
from marketplace.data.database import get_db
from marketplace.domain.schemas import ProductOut
from marketplace.services.cache_service import RedisCache
from marketplace.services.catalog_service import CatalogService

router = APIRouter(tags=["catalog"])


@lru_cache
def get_cache() -> RedisCache:
    return RedisCache()


def get_service(db: Session = Depends(get_db), cache=Depends(get_cache)) -> CatalogService:
    return CatalogService(db, cache)


@router.get("/products/{product_id}", response_model=ProductOut)
def get_product(product_id: int, svc: CatalogService = Depends(get_service)):
    try:
        return svc.get_product(product_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.get("/vendors/{vendor_id}/products", response_model=List[ProductOut])
def list_vendor_products(vendor_id: int, svc: CatalogService = Depends(get_service)):
    return svc.list_vendor_products(vendor_id)
