# tests/test_expire.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from marketplace.tasks.expire import expire_campaigns


def test_ended_campaigns_and_coupons_expire(db, seed, shop):
    past = datetime.now(timezone.utc) - timedelta(hours=1)
    vendor, product = shop["vendor"], shop["product"]
    old_sale = seed.flash_sale(vendor, [product], ends_at=past, starts_at=past - timedelta(days=1))
    live_sale = seed.flash_sale(vendor, [product])
    old_rule = seed.pricing_rule(vendor, [product], ends_at=past, starts_at=past - timedelta(days=1))
    old_coupon = seed.coupon(vendor, code="OLD", ends_at=past, starts_at=past - timedelta(days=1))
    live_coupon = seed.coupon(vendor, code="NEW")

    counts = expire_campaigns(db)

    assert counts == {"flash_sales": 1, "pricing_rules": 1, "coupons": 1}
    for obj in (old_sale, live_sale, old_rule, old_coupon, live_coupon):
        db.refresh(obj)
    assert old_sale.status == "expired"
    assert old_rule.status == "expired"
    assert old_coupon.status == "expired"
    assert live_sale.status == "active"
    assert live_coupon.status == "active"


def test_inactive_campaigns_keep_their_status(db, seed, shop):
    past = datetime.now(timezone.utc) - timedelta(days=1)
    sale = seed.flash_sale(shop["vendor"], [shop["product"]], status="inactive", ends_at=past, starts_at=past - timedelta(days=1))

    counts = expire_campaigns(db)

    db.refresh(sale)
    assert counts["flash_sales"] == 0
    assert sale.status == "inactive"


def test_expired_campaign_no_longer_discounts(db, seed, shop, cart_service):
    past = datetime.now(timezone.utc) - timedelta(minutes=1)
    seed.flash_sale(shop["vendor"], [shop["product"]], value="50", ends_at=past, starts_at=past - timedelta(days=1))

    expire_campaigns(db)
    cart = cart_service.add_item(shop["customer"].id, None, shop["product"].id, 1)

    assert cart.snapshot.lines[0].campaign is None
    assert cart.snapshot.grand_total == Decimal("1112.00")
