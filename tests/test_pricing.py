# tests/test_pricing.py
import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from marketplace.domain.coupons import Coupon
from marketplace.domain.errors import PricingIntegrityError
from marketplace.domain.pricing import (
    FLASH_SALE,
    PRICING_RULE,
    Campaign,
    PricingContext,
    PricingLine,
    ProductInfo,
    best_campaign,
    discount_amount,
    price_cart,
)
from marketplace.domain.shipping import ShippingRule
from marketplace.domain.tax import APPLY_TAX_TO_SHIPPING, VendorTaxSettings

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _product(pid=1, vendor_id=1, price="1000", discount_type="percentage", discount_value="10", **kw):
    return ProductInfo(
        id=pid,
        vendor_id=vendor_id,
        name=f"Product {pid}",
        unit_price=Decimal(price),
        discount_type=discount_type,
        discount_value=Decimal(discount_value),
        **kw,
    )


def _campaign(kind, cid=1, vendor_id=1, discount_type="percentage", value="10", **kw):
    kw.setdefault("starts_at", NOW - timedelta(days=1))
    kw.setdefault("ends_at", NOW + timedelta(days=1))
    return Campaign(
        id=cid,
        kind=kind,
        vendor_id=vendor_id,
        name=f"{kind} {cid}",
        discount_type=discount_type,
        discount_value=Decimal(value),
        **kw,
    )


def _coupon(vendor_id=1, discount_type="percentage", value="20", **kw):
    kw.setdefault("starts_at", NOW - timedelta(days=1))
    kw.setdefault("ends_at", NOW + timedelta(days=1))
    return Coupon(id=5, vendor_id=vendor_id, code="SAVE20", discount_type=discount_type, value=Decimal(value), **kw)


def _ctx(products, customer_id=1, **kw):
    kw.setdefault("customer_segment", "retail")
    kw.setdefault("region", "Maharashtra")
    kw.setdefault("tax_settings", {1: VendorTaxSettings(vendor_id=1, default_rate=Decimal("18"))})
    kw.setdefault(
        "shipping_rules",
        {1: ShippingRule(vendor_id=1, flat_rate=Decimal("50"), free_shipping_threshold=Decimal("0"))},
    )
    return PricingContext(now=NOW, products={p.id: p for p in products}, customer_id=customer_id, **kw)


def _line(product, quantity=1, **kw):
    return PricingLine(product_id=product.id, vendor_id=product.vendor_id, quantity=quantity, **kw)


def test_single_line_with_product_discount_and_tax():
    product = _product()
    snapshot = price_cart([_line(product)], _ctx([product])).snapshot

    line = snapshot.lines[0]
    assert line.price_after_product == Decimal("900.00")
    assert line.line_tax == Decimal("162.00")
    assert snapshot.shipping_total == Decimal("50.00")
    assert snapshot.grand_total == Decimal("1112.00")
    assert line.applied_layers == ["product_discount", "tax"]


def test_vendor_coupon_is_taxed_after_discount():
    product = _product()
    snapshot = price_cart([_line(product)], _ctx([product], coupon=_coupon(), coupon_id=5)).snapshot

    line = snapshot.lines[0]
    assert snapshot.coupon_discount == Decimal("180.00")
    assert line.line_pre_tax == Decimal("720.00")
    assert snapshot.tax_total == Decimal("129.60")
    assert snapshot.grand_total == Decimal("899.60")
    assert snapshot.coupon.code == "SAVE20"
    assert snapshot.total_savings == Decimal("280.00")


def test_coupon_share_stays_with_its_vendor():
    books = _product(1, vendor_id=1, discount_type=None, discount_value="0")
    tools = _product(2, vendor_id=2, price="700", discount_type=None, discount_value="0")
    ctx = _ctx([books, tools], coupon=_coupon(vendor_id=1, discount_type="flat", value="5000"), coupon_id=5)

    snapshot = price_cart([_line(books), _line(tools)], ctx).snapshot

    assert snapshot.line_for(2).coupon_discount == Decimal("0.00")
    assert snapshot.line_for(1).coupon_discount == Decimal("1000.00")
    assert snapshot.coupon_discount == Decimal("1000.00")


def test_better_campaign_wins_and_they_never_stack():
    product = _product(discount_type=None, discount_value="0")
    ctx = _ctx(
        [product],
        flash_sales={1: [_campaign(FLASH_SALE, value="20")]},
        pricing_rules={1: [_campaign(PRICING_RULE, value="10")]},
    )
    line = price_cart([_line(product)], ctx).snapshot.lines[0]

    assert line.campaign.type == FLASH_SALE
    assert line.flash_sale_discount == Decimal("200.00")
    assert line.pricing_rule_discount == Decimal("0")
    assert line.unit_price_pre_coupon == Decimal("800.00")


def test_campaign_tie_goes_to_pricing_rule():
    sale = _campaign(FLASH_SALE, value="10")
    rule = _campaign(PRICING_RULE, discount_type="flat", value="100")
    chosen, discount = best_campaign(Decimal("1000"), sale, rule)
    assert chosen is rule
    assert discount == Decimal("100.00")


def test_campaign_applies_to_price_after_product_discount():
    product = _product()
    ctx = _ctx([product], pricing_rules={1: [_campaign(PRICING_RULE, value="10")]})
    line = price_cart([_line(product)], ctx).snapshot.lines[0]
    # 1000 -> 900 -> 810
    assert line.pricing_rule_discount == Decimal("90.00")
    assert line.unit_price_pre_coupon == Decimal("810.00")


def test_higher_priority_rule_is_considered_first():
    product = _product(discount_type=None, discount_value="0")
    rules = [
        _campaign(PRICING_RULE, cid=1, value="30", priority=1),
        _campaign(PRICING_RULE, cid=2, value="5", priority=9),
    ]
    line = price_cart([_line(product)], _ctx([product], pricing_rules={1: rules})).snapshot.lines[0]
    assert line.campaign.id == 2


@pytest.mark.parametrize(
    "campaign",
    [
        _campaign(PRICING_RULE, customer_segment="wholesale"),
        _campaign(PRICING_RULE, vendor_id=2),
        _campaign(PRICING_RULE, status="inactive"),
        _campaign(PRICING_RULE, ends_at=NOW - timedelta(seconds=1)),
        _campaign(PRICING_RULE, starts_at=NOW + timedelta(hours=1)),
    ],
)
def test_ineligible_campaign_is_ignored(campaign):
    product = _product()
    line = price_cart([_line(product)], _ctx([product], pricing_rules={1: [campaign]})).snapshot.lines[0]
    assert line.campaign is None
    assert line.unit_price_pre_coupon == Decimal("900.00")


def test_segment_specific_campaign_applies_to_matching_customer():
    product = _product(discount_type=None, discount_value="0")
    rule = _campaign(PRICING_RULE, discount_type="flat", value="300", customer_segment="wholesale")
    ctx = _ctx([product], customer_segment="wholesale", pricing_rules={1: [rule]})
    line = price_cart([_line(product)], ctx).snapshot.lines[0]
    assert line.unit_price_pre_coupon == Decimal("700.00")


def test_offer_price_is_frozen():
    product = _product()
    ctx = _ctx([product], pricing_rules={1: [_campaign(PRICING_RULE, value="50")]})
    line = price_cart(
        [_line(product, offer_price=Decimal("500"), offer_rule_id=3, offer_rule_type="cross_sell")], ctx
    ).snapshot.lines[0]

    assert line.unit_price_pre_coupon == Decimal("500.00")
    assert line.campaign is None
    assert line.product_discount == Decimal("0")
    assert line.offer.rule_id == 3
    assert line.offer.discount_amount == Decimal("500")
    assert line.applied_layers[0] == "offer"


def test_guest_pays_list_price_without_tax_or_coupon():
    product = _product()
    ctx = _ctx([product], customer_id=None, coupon=_coupon(), coupon_id=5)
    result = price_cart([_line(product)], ctx)
    snapshot = result.snapshot

    assert snapshot.guest
    assert snapshot.lines[0].final_unit_price == Decimal("1000")
    assert snapshot.tax_total == Decimal("0.00")
    assert snapshot.coupon is None
    assert snapshot.grand_total == Decimal("1050.00")
    assert not result.should_clear_coupon


def test_expired_coupon_is_flagged_for_removal():
    product = _product()
    ctx = _ctx([product], coupon=_coupon(ends_at=NOW - timedelta(minutes=5)), coupon_id=5)
    result = price_cart([_line(product)], ctx)

    assert result.coupon_clear_reason == "expired"
    assert result.snapshot.coupon is None
    assert result.snapshot.grand_total == Decimal("1112.00")


def test_vendor_taxing_shipping_adds_shipping_tax():
    product = _product()
    ctx = _ctx(
        [product],
        tax_settings={
            1: VendorTaxSettings(vendor_id=1, default_rate=Decimal("18"), calculation_method=APPLY_TAX_TO_SHIPPING)
        },
    )
    snapshot = price_cart([_line(product)], ctx).snapshot
    assert snapshot.shipping_tax == Decimal("9.00")
    assert snapshot.grand_total == Decimal("1121.00")


def test_regional_rate_is_used_for_customer_region():
    product = _product()
    ctx = _ctx(
        [product],
        region="kerala",
        tax_settings={
            1: VendorTaxSettings(vendor_id=1, default_rate=Decimal("18"), regional_rates={"Kerala": Decimal("12")})
        },
    )
    line = price_cart([_line(product)], ctx).snapshot.lines[0]
    assert line.tax_rate == Decimal("12")
    assert line.line_tax == Decimal("108.00")


def test_tax_is_computed_per_unit():
    product = _product(price="333.33", discount_type=None, discount_value="0")
    line = price_cart([_line(product, quantity=3)], _ctx([product])).snapshot.lines[0]
    assert line.tax_amount == Decimal("60.00")
    assert line.line_tax == Decimal("180.00")
    assert line.line_total == Decimal("1179.99")


def test_uneven_coupon_share_is_charged_in_full():
    product = _product(price="10", discount_type=None, discount_value="0")
    ctx = _ctx([product], coupon=_coupon(discount_type="flat", value="1"), coupon_id=5)

    snapshot = price_cart([_line(product, quantity=3)], ctx).snapshot

    line = snapshot.lines[0]
    assert snapshot.coupon_discount == Decimal("1.00")
    assert line.line_pre_tax == Decimal("29.00")
    assert line.line_tax == Decimal("5.22")
    assert line.line_total == Decimal("34.22")
    assert snapshot.subtotal == snapshot.subtotal_before_tax + snapshot.tax_total
    assert snapshot.grand_total == Decimal("84.22")


def test_inclusive_line_total_keeps_the_pre_tax_amount():
    product = _product(price="10", discount_type=None, discount_value="0", tax_type="inclusive")
    ctx = _ctx([product], coupon=_coupon(discount_type="flat", value="1"), coupon_id=5)

    line = price_cart([_line(product, quantity=3)], ctx).snapshot.lines[0]

    assert line.line_total == Decimal("29.00")
    assert line.base_price + line.tax_amount == line.final_unit_price


def test_missing_vendor_is_an_integrity_error():
    product = _product(vendor_id=None)
    with pytest.raises(PricingIntegrityError):
        price_cart([_line(product)], _ctx([product]))


def test_missing_product_is_reported_as_unavailable():
    product = _product()
    lines = [_line(product), PricingLine(product_id=42, vendor_id=1, quantity=1)]
    snapshot = price_cart(lines, _ctx([product])).snapshot
    assert snapshot.unavailable_product_ids == [42]
    assert len(snapshot.lines) == 1


@pytest.mark.parametrize(
    "price, discount_type, value, expected",
    [
        ("100", "percentage", "10", "10.00"),
        ("100", "percentage", "250", "100.00"),
        ("100", "flat", "150", "100.00"),
        ("100", None, "10", "0"),
        ("100", "flat", "-5", "0"),
    ],
)
def test_discount_amount_never_exceeds_price(price, discount_type, value, expected):
    assert discount_amount(Decimal(price), discount_type, Decimal(value)) == Decimal(expected)


def test_totals_never_go_negative_for_random_discounts():
    rng = random.Random(1337)

    def random_discount():
        kind = rng.choice(["percentage", "flat"])
        upper = 100 if kind == "percentage" else 2000
        return kind, str(rng.randint(0, upper))

    for _ in range(300):
        products = []
        flash_sales = {}
        pricing_rules = {}
        for pid in range(1, rng.randint(1, 4) + 1):
            kind, value = random_discount()
            products.append(
                _product(pid, vendor_id=rng.choice([1, 2]), price=str(rng.randint(1, 2000)), discount_type=kind, discount_value=value)
            )
            kind, value = random_discount()
            flash_sales[pid] = [_campaign(FLASH_SALE, cid=pid, vendor_id=products[-1].vendor_id, discount_type=kind, value=value)]
            kind, value = random_discount()
            pricing_rules[pid] = [_campaign(PRICING_RULE, cid=pid, vendor_id=products[-1].vendor_id, discount_type=kind, value=value)]

        kind, value = random_discount()
        ctx = _ctx(
            products,
            flash_sales=flash_sales,
            pricing_rules=pricing_rules,
            coupon=_coupon(vendor_id=rng.choice([1, 2]), discount_type=kind, value=value),
            coupon_id=5,
        )
        snapshot = price_cart([_line(p, quantity=rng.randint(1, 5)) for p in products], ctx).snapshot

        assert snapshot.grand_total >= 0
        for line in snapshot.lines:
            assert line.unit_price_pre_coupon >= 0
            assert line.line_pre_tax >= 0
            assert line.line_total >= 0
            assert line.coupon_discount <= line.line_pre_coupon
