# marketplace/api/routers/payments.py
from fastapi import APIRouter, Depends

from marketplace.api.errors import DOMAIN_ERRORS, http_error
from marketplace.api.routers.orders import get_service
from marketplace.domain.schemas import CheckoutOut, PaymentSettlementIn
from marketplace.services.order_service import OrderService

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("/{payment_id}/confirm", response_model=CheckoutOut)
def confirm_payment(
    payment_id: int,
    payload: PaymentSettlementIn,
    svc: OrderService = Depends(get_service),
):
    """Webhook bramki albo potwierdzenie z klienta. Ponowienie zwraca to samo zamowienie."""
    try:
        return svc.confirm_payment(payment_id, payload.status, payload.gateway_payment_id)
    except DOMAIN_ERRORS as e:
        raise http_error(e) from e
