# tests/test_cart_service.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import update

from marketplace.data.models import CartModel, CouponUsageModel
from marketplace.domain.errors import (
    CheckoutValidationError,
    ConcurrentCartModificationError,
    NotFoundError,
)
from marketplace.repos.abandoned_cart_repo import AbandonedCartRepo
from marketplace.repos.cart_repo import CartRepo


def test_add_item_prices_cart_and_bumps_version(cart_service, shop):
    customer = shop["customer"]
    cart = cart_service.add_item(customer.id, None, shop["product"].id, 1)

    assert cart.version == 2
    assert [i.product_id for i in cart.items] == [shop["product"].id]
    assert cart.snapshot.subtotal == Decimal("1062.00")
    assert cart.snapshot.shipping_total == Decimal("50.00")
    assert cart.snapshot.grand_total == Decimal("1112.00")


def test_adding_same_product_accumulates_quantity(cart_service, shop):
    customer = shop["customer"]
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart = cart_service.add_item(customer.id, None, shop["product"].id, 2)

    assert cart.items[0].quantity == 3
    assert cart.snapshot.lines[0].line_total == Decimal("3186.00")
    assert cart.version == 3


def test_quantity_above_stock_is_rejected(cart_service, shop):
    with pytest.raises(CheckoutValidationError, match="Available: 5"):
        cart_service.add_item(shop["customer"].id, None, shop["product"].id, 6)


def test_minimum_order_quantity_is_enforced(cart_service, seed, shop):
    bulk = seed.product(shop["vendor"], price="10", stock=100, name="Bulk", min_order_qty=3)
    with pytest.raises(CheckoutValidationError, match="Minimum order quantity is 3"):
        cart_service.add_item(shop["customer"].id, None, bulk.id, 1)


def test_unknown_and_inactive_products_are_rejected(cart_service, seed, shop):
    hidden = seed.product(shop["vendor"], name="Hidden", status="inactive")
    with pytest.raises(NotFoundError):
        cart_service.add_item(shop["customer"].id, None, 9999, 1)
    with pytest.raises(CheckoutValidationError, match="not available"):
        cart_service.add_item(shop["customer"].id, None, hidden.id, 1)


def test_product_of_inactive_vendor_is_rejected(cart_service, seed, shop):
    closed = seed.vendor(name="Closed", status="inactive")
    product = seed.product(closed, name="Orphan")
    with pytest.raises(CheckoutValidationError, match="Vendor is not active"):
        cart_service.add_item(shop["customer"].id, None, product.id, 1)


def test_guest_cart_uses_list_price_without_tax(cart_service, shop):
    cart = cart_service.add_item(None, "guest-1", shop["product"].id, 1)

    assert cart.session_id == "guest-1"
    assert cart.customer_id is None
    assert cart.snapshot.guest
    assert cart.snapshot.tax_total == Decimal("0.00")
    assert cart.snapshot.grand_total == Decimal("1050.00")


def test_owner_is_required(cart_service, shop):
    with pytest.raises(CheckoutValidationError, match="Session ID or login required"):
        cart_service.add_item(None, None, shop["product"].id, 1)


def test_empty_cart_returns_empty_snapshot(cart_service, shop):
    cart = cart_service.get_cart(shop["customer"].id, None)
    assert cart.cart_id is None
    assert cart.snapshot.lines == []
    assert cart.snapshot.grand_total == Decimal("0")


def test_update_quantity(cart_service, shop):
    customer = shop["customer"]
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart = cart_service.update_quantity(customer.id, None, shop["product"].id, 4)

    assert cart.items[0].quantity == 4
    with pytest.raises(CheckoutValidationError):
        cart_service.update_quantity(customer.id, None, shop["product"].id, 0)
    with pytest.raises(NotFoundError):
        cart_service.update_quantity(customer.id, None, 9999, 1)


def test_remove_item_recomputes_and_drops_tracking(cart_service, db, shop):
    customer = shop["customer"]
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart = cart_service.remove_item(customer.id, None, shop["product"].id)

    assert cart.items == []
    assert cart.snapshot.grand_total == Decimal("0.00")
    assert AbandonedCartRepo(db).list_for_owner(customer.id, None) == []
    with pytest.raises(NotFoundError):
        cart_service.remove_item(customer.id, None, shop["product"].id)


def test_adding_records_abandoned_line(cart_service, db, shop):
    customer = shop["customer"]
    cart_service.add_item(customer.id, None, shop["product"].id, 2)

    rows = AbandonedCartRepo(db).list_for_owner(customer.id, None)
    assert len(rows) == 1
    assert rows[0].status == "pending"
    assert rows[0].quantity == 2
    assert Decimal(str(rows[0].value)) == Decimal("2000.00")


def test_clear_cart_removes_lines_and_coupon(cart_service, seed, shop):
    customer = shop["customer"]
    seed.coupon(shop["vendor"])
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart_service.apply_coupon(customer.id, None, "SAVE20")

    cart = cart_service.clear_cart(customer.id, None)
    assert cart.items == []
    assert cart.coupon_code is None
    assert cart.snapshot.coupon is None


def test_apply_coupon_discounts_before_tax(cart_service, seed, shop):
    customer = shop["customer"]
    seed.coupon(shop["vendor"])
    cart_service.add_item(customer.id, None, shop["product"].id, 1)

    cart = cart_service.apply_coupon(customer.id, None, " save20 ")

    assert cart.coupon_code == "SAVE20"
    assert cart.snapshot.coupon_discount == Decimal("180.00")
    assert cart.snapshot.tax_total == Decimal("129.60")
    assert cart.snapshot.grand_total == Decimal("899.60")


def test_guest_cannot_apply_coupon(cart_service, seed, shop):
    seed.coupon(shop["vendor"])
    cart_service.add_item(None, "guest-2", shop["product"].id, 1)
    with pytest.raises(CheckoutValidationError, match="Login required"):
        cart_service.apply_coupon(None, "guest-2", "SAVE20")


def test_coupon_on_empty_cart_is_rejected(cart_service, seed, shop):
    customer = shop["customer"]
    seed.coupon(shop["vendor"])
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart_service.remove_item(customer.id, None, shop["product"].id)
    with pytest.raises(CheckoutValidationError, match="Cart is empty"):
        cart_service.apply_coupon(customer.id, None, "SAVE20")


@pytest.mark.parametrize(
    "coupon_kw, message",
    [
        ({"status": "inactive"}, "Coupon is not active"),
        ({"starts_at": datetime.now(timezone.utc) + timedelta(days=2)}, "Coupon is not valid yet"),
        ({"ends_at": datetime.now(timezone.utc) - timedelta(days=1)}, "Coupon has expired"),
    ],
)
def test_coupon_validity_checks(cart_service, seed, shop, coupon_kw, message):
    customer = shop["customer"]
    seed.coupon(shop["vendor"], **coupon_kw)
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    with pytest.raises(CheckoutValidationError, match=message):
        cart_service.apply_coupon(customer.id, None, "SAVE20")


def test_unknown_or_foreign_coupon_is_rejected(cart_service, seed, shop):
    customer = shop["customer"]
    other = seed.vendor(name="Other")
    seed.coupon(other, code="OTHER10")
    cart_service.add_item(customer.id, None, shop["product"].id, 1)

    with pytest.raises(CheckoutValidationError, match="Invalid coupon code"):
        cart_service.apply_coupon(customer.id, None, "NOPE")
    with pytest.raises(CheckoutValidationError, match="not applicable"):
        cart_service.apply_coupon(customer.id, None, "OTHER10")


def test_coupon_used_before_is_rejected(cart_service, db, seed, shop):
    customer = shop["customer"]
    coupon = seed.coupon(shop["vendor"])
    db.add(CouponUsageModel(coupon_id=coupon.id, customer_id=customer.id))
    db.commit()
    cart_service.add_item(customer.id, None, shop["product"].id, 1)

    with pytest.raises(CheckoutValidationError, match="already used"):
        cart_service.apply_coupon(customer.id, None, "SAVE20")


def test_coupon_that_became_invalid_is_cleared_on_read(cart_service, db, seed, shop):
    customer = shop["customer"]
    coupon = seed.coupon(shop["vendor"])
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart_service.apply_coupon(customer.id, None, "SAVE20")

    coupon.status = "inactive"
    db.commit()

    cart = cart_service.get_cart(customer.id, None)
    assert cart.coupon_code is None
    assert cart.snapshot.coupon is None
    assert cart.snapshot.grand_total == Decimal("1112.00")


def test_remove_coupon(cart_service, seed, shop):
    customer = shop["customer"]
    seed.coupon(shop["vendor"])
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart_service.apply_coupon(customer.id, None, "SAVE20")

    cart = cart_service.remove_coupon(customer.id, None)
    assert cart.coupon_code is None
    assert cart.snapshot.grand_total == Decimal("1112.00")


def test_merge_moves_guest_lines_to_customer(cart_service, db, shop):
    customer = shop["customer"]
    cart_service.add_item(None, "guest-3", shop["product"].id, 2)
    cart_service.add_item(customer.id, None, shop["product"].id, 1)

    cart = cart_service.merge_guest_cart(customer.id, "guest-3")

    assert cart.customer_id == customer.id
    assert cart.items[0].quantity == 3
    assert not cart.snapshot.guest
    assert CartRepo(db).get_cart_by_session("guest-3") is None
    assert AbandonedCartRepo(db).list_for_owner(None, "guest-3") == []


def test_reading_with_session_after_login_merges(cart_service, shop):
    customer = shop["customer"]
    cart_service.add_item(None, "guest-4", shop["product"].id, 1)

    cart = cart_service.get_cart(customer.id, "guest-4")

    assert cart.customer_id == customer.id
    assert cart.items[0].quantity == 1
    assert cart.snapshot.grand_total == Decimal("1112.00")


def test_cross_sell_offer_freezes_price(cart_service, seed, shop):
    customer = shop["customer"]
    extra = seed.product(shop["vendor"], price="400", name="Bookmark", discount_type="percentage", discount_value=Decimal("50"))
    rule = seed.upsell_rule(shop["vendor"], [extra], rule_type="cross_sell", value="25")
    cart_service.add_item(customer.id, None, shop["product"].id, 1)

    cart = cart_service.apply_offer(customer.id, None, rule.id, extra.id)

    line = cart.snapshot.line_for(extra.id)
    assert line.unit_price_pre_coupon == Decimal("300.00")
    assert line.product_discount == Decimal("0")
    assert line.offer.rule_id == rule.id
    assert len(cart.items) == 2


def test_upsell_offer_replaces_product(cart_service, seed, shop):
    customer = shop["customer"]
    premium = seed.product(shop["vendor"], price="1500", name="Hardcover")
    rule = seed.upsell_rule(shop["vendor"], [premium], rule_type="upsell", discount_type="flat", value="200")
    cart_service.add_item(customer.id, None, shop["product"].id, 2)

    cart = cart_service.apply_offer(customer.id, None, rule.id, premium.id, replaced_product_id=shop["product"].id)

    assert [i.product_id for i in cart.items] == [premium.id]
    assert cart.items[0].quantity == 2
    assert cart.snapshot.lines[0].unit_price_pre_coupon == Decimal("1300.00")


def test_offer_validation(cart_service, seed, shop):
    customer = shop["customer"]
    premium = seed.product(shop["vendor"], price="1500", name="Hardcover")
    rule = seed.upsell_rule(shop["vendor"], [premium], rule_type="upsell")
    cart_service.add_item(customer.id, None, shop["product"].id, 1)

    with pytest.raises(CheckoutValidationError, match="requires the product it replaces"):
        cart_service.apply_offer(customer.id, None, rule.id, premium.id)
    with pytest.raises(CheckoutValidationError, match="not part of this offer"):
        cart_service.apply_offer(customer.id, None, rule.id, shop["product"].id)
    with pytest.raises(CheckoutValidationError, match="no longer available"):
        cart_service.apply_offer(customer.id, None, 9999, premium.id)


def test_stale_version_is_a_conflict(cart_service, db, shop):
    customer = shop["customer"]
    cart_service.add_item(customer.id, None, shop["product"].id, 1)
    cart = CartRepo(db).get_cart_by_customer(customer.id)

    # inny proces zapisal koszyk w miedzyczasie
    db.execute(
        update(CartModel)
        .where(CartModel.id == cart.id)
        .values(version=CartModel.version + 5)
        .execution_options(synchronize_session=False)
    )

    with pytest.raises(ConcurrentCartModificationError):
        cart_service.remove_ordered_items(cart, [shop["product"].id], datetime.now(timezone.utc))
