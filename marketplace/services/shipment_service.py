# marketplace/services/shipment_service.py
from decimal import Decimal

import requests
from sqlalchemy.orm import Session

from marketplace.celery_worker import celery_app
from marketplace.data.database import SessionLocal
from marketplace.domain.errors import NotFoundError
from marketplace.repos.order_repo import OrderRepo
from marketplace.services.carrier_client import CarrierClient
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def build_shipment_payload(order, vendor_id: int) -> dict:
    """{vendorId, order, lineItems} dla przewoznika."""
    items = [i for i in order.items if i.vendor_id == vendor_id]
    return {
        "order_id": order.id,
        "vendor_id": vendor_id,
        "customer_id": order.customer_id,
        "address_id": order.address_id,
        "payment_method": order.payment_method,
        "items": [
            {
                "product_id": i.product_id,
                "name": i.name,
                "quantity": i.quantity,
                "unit_price": str(i.final_unit_price),
                "line_total": str(i.line_total),
            }
            for i in items
        ],
        "subtotal": str(sum((Decimal(str(i.line_total)) for i in items), Decimal("0.00"))),
    }


class ShipmentService:
    """Tworzy przesylke u przewoznika i zapisuje numer sledzenia."""

    def __init__(self, db: Session, carrier: CarrierClient | None = None):
        self.db = db
        self.repo = OrderRepo(db)
        self.carrier = carrier or CarrierClient()

    def create_shipment(self, order_id: int, vendor_id: int) -> dict:
        order = self.repo.get_order(order_id)
        if order is None:
            raise NotFoundError(f"Order {order_id} not found")
        shipment = self.repo.get_shipment(order_id, vendor_id)
        if shipment is None:
            raise NotFoundError(f"Shipment for vendor {vendor_id} not found in order {order_id}")

        # ponowiony job nie tworzy drugiej przesylki
        if shipment.tracking_id:
            return {"tracking_id": shipment.tracking_id, "courier": shipment.courier}

        result = self.carrier.create_shipment(build_shipment_payload(order, vendor_id))

        shipment.tracking_id = result.get("tracking_id")
        shipment.courier = result.get("courier")
        shipment.status = "created"
        self.db.commit()

        logger.info(
            f"Shipment created for order {order_id}, vendor {vendor_id}: {shipment.tracking_id}",
            extra={"event": "SHIPMENT_CREATED", "order_id": order_id, "vendor_id": vendor_id},
        )
        return {"tracking_id": shipment.tracking_id, "courier": shipment.courier}


class ShipmentDispatcher:
    """
    Kolejkuje job per vendor. Gdy broker nie przyjmie joba, tworzy
    przesylke od razu; gdy i to sie nie uda, zostaje wpis w logu
    do recznego uzgodnienia.
    """

    def __init__(self, db: Session, carrier: CarrierClient | None = None):
        self.db = db
        self.carrier = carrier

    def dispatch(self, order_id: int, vendor_ids) -> None:
        for vendor_id in vendor_ids:
            try:
                create_shipment_task.delay(order_id, vendor_id)
                logger.info(
                    f"Shipment job queued for order {order_id}, vendor {vendor_id}",
                    extra={"event": "SHIPMENT_QUEUED", "order_id": order_id, "vendor_id": vendor_id},
                )
            except Exception as e:
                logger.warning(
                    f"Shipment enqueue failed for order {order_id}, vendor {vendor_id}: {e}, using direct call",
                    extra={"event": "SHIPMENT_ENQUEUE_FAILED", "order_id": order_id, "vendor_id": vendor_id},
                )
                self._create_now(order_id, vendor_id)

    def _create_now(self, order_id: int, vendor_id: int) -> None:
        try:
            ShipmentService(self.db, self.carrier).create_shipment(order_id, vendor_id)
        except Exception:
            self.db.rollback()
            logger.error(
                f"Shipment fallback failed for order {order_id}, vendor {vendor_id}, manual reconciliation needed",
                extra={"event": "SHIPMENT_FALLBACK_FAILED", "order_id": order_id, "vendor_id": vendor_id},
                exc_info=True,
            )


@celery_app.task(
    name="marketplace.services.shipment_service.create_shipment_task",
    autoretry_for=(requests.RequestException,),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def create_shipment_task(order_id: int, vendor_id: int):
    db = SessionLocal()
    try:
        return ShipmentService(db).create_shipment(order_id, vendor_id)
    finally:
        db.close()
