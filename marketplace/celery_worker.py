# marketplace/celery_worker.py
from celery import Celery

from marketplace.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "marketplace",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# taski musza byc zaimportowane, inaczej worker ich nie zarejestruje
celery_app.conf.imports = (
    "marketplace.tasks.expire",
    "marketplace.services.shipment_service",
    "marketplace.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "expire-campaigns-every-minute": {
        "task": "marketplace.tasks.expire.expire_campaigns_task",
        "schedule": 60.0,
    },
}

celery_app.conf.timezone = "UTC"
celery_app.conf.task_acks_late = True
