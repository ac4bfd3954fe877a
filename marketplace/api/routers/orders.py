# marketplace/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from marketplace.api.errors import DOMAIN_ERRORS, http_error
from marketplace.api.routers.catalog import get_cache
from marketplace.data.database import get_db
from marketplace.domain.schemas import CheckoutOut, CreateOrderIn, OrderOut, OrderStatusIn
from marketplace.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session = Depends(get_db), cache=Depends(get_cache)) -> OrderService:
    return OrderService(db, cache=cache)


@router.post("", response_model=CheckoutOut, status_code=201)
def create_order(
    payload: CreateOrderIn,
    customer_id: int = Query(..., gt=0),
    svc: OrderService = Depends(get_service),
):
    """
    COD zwraca gotowe zamowienie, bramka zwraca platnosc pending
    i uchwyt do dokonczenia po stronie klienta.
    """
    try:
        return svc.create_order(customer_id, payload)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.get("", response_model=List[OrderOut])
def list_orders(
    customer_id: int = Query(..., gt=0),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    svc: OrderService = Depends(get_service),
):
    return svc.list_orders(customer_id, limit=limit, offset=offset)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: int, customer_id: int = Query(..., gt=0), svc: OrderService = Depends(get_service)):
    try:
        return svc.get_order(order_id, customer_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.patch("/{order_id}/status", response_model=OrderOut)
def update_status(order_id: int, payload: OrderStatusIn, svc: OrderService = Depends(get_service)):
    try:
        return svc.update_status(order_id, payload.status)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e
