# marketplace/services/carrier_client.py
import requests

from marketplace.utils.logging import get_logger
from marketplace.utils.retry import http_retry
from marketplace.utils.settings import CARRIER_API_URL

logger = get_logger(__name__)


class CarrierClient:
    def __init__(self, base_url: str | None = None, timeout: int = 5):
        self.base_url = (base_url or CARRIER_API_URL).rstrip("/")
        self.timeout = timeout

    @http_retry()
    def create_shipment(self, payload: dict) -> dict:
        url = f"{self.base_url}/shipments"
        logger.info(
            f"CarrierClient POST {url}",
            extra={"order_id": payload.get("order_id"), "vendor_id": payload.get("vendor_id")},
        )

        resp = requests.post(url, json=payload, timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()
