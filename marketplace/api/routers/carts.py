# marketplace/api/routers/carts.py
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from marketplace.api.errors import DOMAIN_ERRORS, http_error
from marketplace.data.database import get_db
from marketplace.domain.schemas import (
    CartOut,
    CouponIn,
    ItemIn,
    MergeCartIn,
    OfferIn,
    OwnerRef,
    QuantityIn,
)
from marketplace.services.cart_service import CartService

router = APIRouter(prefix="/cart", tags=["cart"])


def get_service(db: Session = Depends(get_db)) -> CartService:
    return CartService(db)


def get_owner(
    customer_id: Optional[int] = Query(None, gt=0),
    session_id: Optional[str] = Query(None, min_length=1, max_length=128),
) -> OwnerRef:
    # tozsamosc rozwiazuje warstwa wyzej, tu dostajemy klienta albo sesje
    if customer_id is None and not session_id:
        raise HTTPException(status_code=400, detail="Session ID or login required")
    return OwnerRef(customer_id=customer_id, session_id=session_id)


@router.get("", response_model=CartOut)
def get_cart(owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.get_cart(owner.customer_id, owner.session_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.post("/items", response_model=CartOut)
def add_item(payload: ItemIn, owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.add_item(owner.customer_id, owner.session_id, payload.product_id, payload.quantity)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.put("/items/{product_id}", response_model=CartOut)
def update_item(
    product_id: int,
    payload: QuantityIn,
    owner: OwnerRef = Depends(get_owner),
    svc: CartService = Depends(get_service),
):
    try:
        return svc.update_quantity(owner.customer_id, owner.session_id, product_id, payload.quantity)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.delete("/items/{product_id}", response_model=CartOut)
def remove_item(product_id: int, owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.remove_item(owner.customer_id, owner.session_id, product_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.delete("", response_model=CartOut)
def clear_cart(owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.clear_cart(owner.customer_id, owner.session_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.post("/coupon", response_model=CartOut)
def apply_coupon(payload: CouponIn, owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.apply_coupon(owner.customer_id, owner.session_id, payload.code)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.delete("/coupon", response_model=CartOut)
def remove_coupon(owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.remove_coupon(owner.customer_id, owner.session_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.post("/offers", response_model=CartOut)
def apply_offer(payload: OfferIn, owner: OwnerRef = Depends(get_owner), svc: CartService = Depends(get_service)):
    try:
        return svc.apply_offer(
            owner.customer_id,
            owner.session_id,
            rule_id=payload.rule_id,
            product_id=payload.product_id,
            replaced_product_id=payload.replaced_product_id,
        )
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e


@router.post("/merge", response_model=CartOut)
def merge_cart(
    payload: MergeCartIn,
    customer_id: int = Query(..., gt=0),
    svc: CartService = Depends(get_service),
):
    """Koszyk goscia przechodzi do klienta po zalogowaniu."""
    try:
        return svc.merge_guest_cart(customer_id, payload.session_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e
