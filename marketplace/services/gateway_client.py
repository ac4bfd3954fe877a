# marketplace/services/gateway_client.py
from decimal import Decimal

import requests

from marketplace.utils.logging import get_logger
from marketplace.utils.retry import gateway_retry
from marketplace.utils.settings import PAYMENT_GATEWAY_URL

logger = get_logger(__name__)


class PaymentGatewayClient:
    """
    Adapter bramek platnosci (razorpay, stripe, paypal) za jednym endpointem.

    Kazde wywolanie niesie Idempotency-Key, wiec ponowienie po timeoucie
    nie tworzy drugiego zamowienia w bramce.
    """

    def __init__(self, base_url: str | None = None, timeout: int = 5):
        self.base_url = (base_url or PAYMENT_GATEWAY_URL).rstrip("/")
        self.timeout = timeout

    @gateway_retry()
    def create_order(
        self,
        gateway: str,
        amount: Decimal,
        currency: str,
        idempotency_key: str,
        receipt: str,
    ) -> dict:
        url = f"{self.base_url}/gateways/{gateway}/orders"
        logger.info(f"PaymentGatewayClient POST {url}", extra={"event": "GATEWAY_ORDER_CREATE"})

        resp = requests.post(
            url,
            json={"amount": str(amount), "currency": currency, "receipt": receipt},
            headers={"Idempotency-Key": idempotency_key},
            timeout=self.timeout,
        )
        resp.raise_for_status()
        return resp.json()
