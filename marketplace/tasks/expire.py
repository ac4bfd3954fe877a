# marketplace/tasks/expire.py
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.celery_worker import celery_app
from marketplace.data.database import SessionLocal
from marketplace.data.models.campaign import FlashSaleModel, PricingRuleModel
from marketplace.data.models.coupon import CouponModel
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def expire_campaigns(db: Session, now: datetime | None = None) -> dict:
    """Kampanie i kupony po dacie konca przechodza w status expired."""
    now = now or datetime.now(timezone.utc)
    counts = {}

    for name, model in (
        ("flash_sales", FlashSaleModel),
        ("pricing_rules", PricingRuleModel),
        ("coupons", CouponModel),
    ):
        res = db.execute(
            update(model)
            .where(model.status == "active", model.ends_at < now)
            .values(status="expired")
            .execution_options(synchronize_session=False)
        )
        counts[name] = res.rowcount

    db.commit()
    return counts


@celery_app.task(name="marketplace.tasks.expire.expire_campaigns_task")
def expire_campaigns_task():
    logger.info("Expire campaigns task started")

    db = SessionLocal()
    try:
        counts = expire_campaigns(db)
        logger.info(f"Expired campaigns: {counts}")
        return counts
    finally:
        db.close()
