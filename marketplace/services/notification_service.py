# marketplace/services/notification_service.py
from marketplace.celery_worker import celery_app
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import ADMIN_EMAIL

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia o zamowieniu przez Celery.
    Fire-and-forget: blad kolejkowania jest logowany i nic wiecej.
    """

    def order_confirmed(self, order) -> None:
        vendor_ids = sorted({i.vendor_id for i in order.items})
        total = str(order.total)

        self._enqueue(send_customer_order_email_task, order.customer_id, order.id, total)
        for vendor_id in vendor_ids:
            self._enqueue(send_vendor_order_email_task, vendor_id, order.id)
        self._enqueue(send_admin_order_email_task, ADMIN_EMAIL, order.id, total)

    def order_status_changed(self, order) -> None:
        self._enqueue(send_order_status_email_task, order.customer_id, order.id, order.status)

    @staticmethod
    def _enqueue(task, *args) -> None:
        try:
            task.delay(*args)
        except Exception as e:
            logger.warning(
                f"Notification {task.name} not queued: {e}",
                extra={"event": "NOTIFICATION_ENQUEUE_FAILED"},
            )


# w prawdziwym systemie tu bylby klient SMTP / SES, na razie tylko log


@celery_app.task(name="marketplace.services.notification_service.send_customer_order_email_task")
def send_customer_order_email_task(customer_id: int, order_id: int, total: str):
    logger.info(f"[NOTIFICATION] Customer {customer_id}: order {order_id} confirmed, total {total}")
    return {"customer_id": customer_id, "order_id": order_id, "status": "sent"}


@celery_app.task(name="marketplace.services.notification_service.send_vendor_order_email_task")
def send_vendor_order_email_task(vendor_id: int, order_id: int):
    logger.info(f"[NOTIFICATION] Vendor {vendor_id}: new order {order_id}")
    return {"vendor_id": vendor_id, "order_id": order_id, "status": "sent"}


@celery_app.task(name="marketplace.services.notification_service.send_admin_order_email_task")
def send_admin_order_email_task(admin_email: str, order_id: int, total: str):
    logger.info(f"[NOTIFICATION] Admin {admin_email}: order {order_id} placed, total {total}")
    return {"order_id": order_id, "status": "sent"}


@celery_app.task(name="marketplace.services.notification_service.send_order_status_email_task")
def send_order_status_email_task(customer_id: int, order_id: int, status: str):
    logger.info(f"[NOTIFICATION] Customer {customer_id}: order {order_id} is now {status}")
    return {"customer_id": customer_id, "order_id": order_id, "status": "sent"}
