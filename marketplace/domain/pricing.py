# marketplace/domain/pricing.py
"""
Silnik wyceny koszyka.

Czysta funkcja: dostaje komplet danych zaladowanych z bazy (PricingContext)
i zwraca PricedSnapshot. Nic tu nie czyta z bazy ani z cache, wiec kazde
przeliczenie korzysta tylko z tego, co serwis swiezo zaladowal.

Kolejnosc warstw na linii:
1. zamrozona cena oferty (upsell/cross-sell) - pomija rabaty
2. rabat produktu
3. lepsza z kampanii: flash sale albo pricing rule (nigdy obie)
4. udzial w kuponie (poziom koszyka)
5. podatek od ceny po kuponie
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Mapping, Sequence

from marketplace.domain.coupons import PERCENTAGE, Coupon, CouponLine, allocate_coupon
from marketplace.domain.errors import PricingIntegrityError
from marketplace.domain.money import HUNDRED, ZERO, as_utc, floor_zero, money, to_decimal
from marketplace.domain.schemas import (
    AppliedCouponOut,
    CampaignApplied,
    OfferApplied,
    PricedLine,
    PricedSnapshot,
    VendorShippingOut,
)
from marketplace.domain.shipping import ShippableLine, ShippingRule, calculate_shipping
from marketplace.domain.tax import EXCLUSIVE, INCLUSIVE, VendorTaxSettings, calculate_tax, resolve_tax
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

FLASH_SALE = "flash_sale"
PRICING_RULE = "pricing_rule"
ALL_SEGMENTS = "all"


@dataclass(frozen=True)
class ProductInfo:
    id: int
    vendor_id: int | None
    name: str
    unit_price: Decimal
    discount_type: str | None = None
    discount_value: Decimal = ZERO
    shipping_cost: Decimal = ZERO
    tax_type: str = EXCLUSIVE
    stock: int = 0
    min_order_qty: int = 1
    status: str = "active"
    vendor_status: str = "active"


@dataclass(frozen=True)
class Campaign:
    """Flash sale albo pricing rule przypiety do produktu."""

    id: int
    kind: str
    vendor_id: int
    name: str
    discount_type: str
    discount_value: Decimal
    starts_at: datetime | None = None
    ends_at: datetime | None = None
    status: str = "active"
    customer_segment: str = ALL_SEGMENTS
    priority: int = 0

    def is_live(self, now: datetime) -> bool:
        if self.status != "active":
            return False
        if self.starts_at is not None and now < as_utc(self.starts_at):
            return False
        if self.ends_at is not None and now > as_utc(self.ends_at):
            return False
        return True

    def matches_segment(self, segment: str | None) -> bool:
        return self.customer_segment in (ALL_SEGMENTS, segment)


@dataclass(frozen=True)
class PricingLine:
    product_id: int
    vendor_id: int | None
    quantity: int
    price_at_addition: Decimal = ZERO
    offer_price: Decimal | None = None
    offer_rule_id: int | None = None
    offer_rule_type: str | None = None


@dataclass
class PricingContext:
    now: datetime
    products: Mapping[int, ProductInfo]
    customer_id: int | None = None
    customer_segment: str | None = None
    region: str | None = None
    # produkt -> kandydaci; serwis laduje je hurtem na starcie przeliczenia
    flash_sales: Mapping[int, Sequence[Campaign]] = field(default_factory=dict)
    pricing_rules: Mapping[int, Sequence[Campaign]] = field(default_factory=dict)
    coupon: Coupon | None = None
    coupon_id: int | None = None
    tax_settings: Mapping[int, VendorTaxSettings] = field(default_factory=dict)
    shipping_rules: Mapping[int, ShippingRule] = field(default_factory=dict)

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None


@dataclass
class PricingResult:
    snapshot: PricedSnapshot
    # powod usuniecia kuponu z koszyka, None gdy kupon zostaje
    coupon_clear_reason: str | None = None

    @property
    def should_clear_coupon(self) -> bool:
        return self.coupon_clear_reason is not None


def discount_amount(price: Decimal, discount_type: str | None, value) -> Decimal:
    """Kwota rabatu na sztuke, nigdy wieksza niz cena."""
    value = to_decimal(value)
    if not discount_type or value <= ZERO or price <= ZERO:
        return ZERO
    if discount_type == PERCENTAGE:
        return money(price * min(value, HUNDRED) / HUNDRED)
    return money(min(value, price))


def _eligible_campaign(candidates: Sequence[Campaign], vendor_id: int, ctx: PricingContext) -> Campaign | None:
    eligible = [
        c
        for c in candidates
        if c.vendor_id == vendor_id and c.is_live(ctx.now) and c.matches_segment(ctx.customer_segment)
    ]
    if not eligible:
        return None
    # sortowanie stabilne: przy rownym priorytecie wygrywa kolejnosc z repo
    eligible.sort(key=lambda c: -c.priority)
    return eligible[0]


def best_campaign(
    price: Decimal,
    flash_sale: Campaign | None,
    pricing_rule: Campaign | None,
) -> tuple[Campaign | None, Decimal]:
    """
    Wybiera kampanie dajaca nizsza cene koncowa.

    Remis wygrywa pricing rule. Zwraca (kampania, rabat na sztuke).
    """
    fs_discount = discount_amount(price, flash_sale.discount_type, flash_sale.discount_value) if flash_sale else None
    pr_discount = (
        discount_amount(price, pricing_rule.discount_type, pricing_rule.discount_value) if pricing_rule else None
    )

    if fs_discount is None and pr_discount is None:
        return None, ZERO
    if pr_discount is None:
        return flash_sale, fs_discount
    if fs_discount is None:
        return pricing_rule, pr_discount
    if fs_discount > pr_discount:
        return flash_sale, fs_discount
    return pricing_rule, pr_discount


@dataclass
class _Draft:
    """Linia po rabatach produktowych, przed kuponem i podatkiem."""

    line: PricingLine
    product: ProductInfo
    vendor_id: int
    product_discount: Decimal = ZERO
    price_after_product: Decimal = ZERO
    campaign: Campaign | None = None
    campaign_discount: Decimal = ZERO
    offer_discount: Decimal = ZERO
    unit_price: Decimal = ZERO
    layers: list[str] = field(default_factory=list)

    @property
    def line_amount(self) -> Decimal:
        return money(self.unit_price * self.line.quantity)


def _draft_line(line: PricingLine, product: ProductInfo, ctx: PricingContext) -> _Draft:
    vendor_id = line.vendor_id or product.vendor_id
    if vendor_id is None:
        raise PricingIntegrityError(
            f"Missing vendor reference for product {product.id}",
            product_id=product.id,
            customer_id=ctx.customer_id,
        )

    original = to_decimal(product.unit_price)
    draft = _Draft(line=line, product=product, vendor_id=vendor_id, price_after_product=original)

    if line.offer_price is not None:
        # oferta ma zamrozona cene, bez kolejnych rabatow
        draft.unit_price = floor_zero(money(line.offer_price))
        draft.price_after_product = draft.unit_price
        draft.offer_discount = floor_zero(original - draft.unit_price)
        draft.layers.append("offer")
        return draft

    if ctx.is_guest:
        draft.unit_price = original
        return draft

    draft.product_discount = discount_amount(original, product.discount_type, product.discount_value)
    draft.price_after_product = floor_zero(original - draft.product_discount)
    if draft.product_discount > ZERO:
        draft.layers.append("product_discount")

    flash_sale = _eligible_campaign(ctx.flash_sales.get(product.id, ()), vendor_id, ctx)
    pricing_rule = _eligible_campaign(ctx.pricing_rules.get(product.id, ()), vendor_id, ctx)
    campaign, campaign_discount = best_campaign(draft.price_after_product, flash_sale, pricing_rule)

    if campaign is not None and campaign_discount > ZERO:
        draft.campaign = campaign
        draft.campaign_discount = campaign_discount
        draft.layers.append(campaign.kind)

    draft.unit_price = floor_zero(draft.price_after_product - draft.campaign_discount)
    return draft


def _priced_line(draft: _Draft, coupon_share: Decimal, ctx: PricingContext) -> PricedLine:
    product = draft.product
    quantity = draft.line.quantity
    line_pre_coupon = draft.line_amount
    line_pre_tax = floor_zero(line_pre_coupon - coupon_share)
    unit_pre_tax = money(line_pre_tax / quantity)

    layers = list(draft.layers)
    if coupon_share > ZERO:
        layers.append("coupon")

    if ctx.is_guest:
        tax_rate = ZERO
        tax_per_unit = ZERO
        base_price = unit_pre_tax
        unit_with_tax = unit_pre_tax
    else:
        info = resolve_tax(ctx.tax_settings.get(draft.vendor_id), ctx.region)
        tax = calculate_tax(unit_pre_tax, info.rate, product.tax_type)
        tax_rate = info.rate
        tax_per_unit = tax.tax
        base_price = tax.base
        unit_with_tax = tax.amount_with_tax
        if tax.tax > ZERO:
            layers.append("tax")

    # kwoty pozycji liczone od line_pre_tax, wartosci jednostkowe tylko do wgladu
    line_tax = money(tax_per_unit * quantity)
    if product.tax_type == INCLUSIVE:
        line_total = line_pre_tax
    else:
        line_total = money(line_pre_tax + line_tax)

    campaign = None
    if draft.campaign is not None:
        campaign = CampaignApplied(
            type=draft.campaign.kind,
            id=draft.campaign.id,
            name=draft.campaign.name,
            discount_type=draft.campaign.discount_type,
            discount_value=to_decimal(draft.campaign.discount_value),
            discount_amount=draft.campaign_discount,
        )

    offer = None
    if draft.line.offer_price is not None and draft.line.offer_rule_id is not None:
        offer = OfferApplied(
            rule_id=draft.line.offer_rule_id,
            rule_type=draft.line.offer_rule_type or "upsell",
            discount_amount=draft.offer_discount,
        )

    kind = draft.campaign.kind if draft.campaign else None
    return PricedLine(
        product_id=product.id,
        vendor_id=draft.vendor_id,
        name=product.name,
        quantity=quantity,
        original_price=money(product.unit_price),
        product_discount_type=product.discount_type,
        product_discount_value=to_decimal(product.discount_value),
        product_discount=draft.product_discount,
        price_after_product=draft.price_after_product,
        campaign=campaign,
        flash_sale_discount=draft.campaign_discount if kind == FLASH_SALE else ZERO,
        pricing_rule_discount=draft.campaign_discount if kind == PRICING_RULE else ZERO,
        offer=offer,
        unit_price_pre_coupon=draft.unit_price,
        line_pre_coupon=line_pre_coupon,
        coupon_discount=money(coupon_share),
        line_pre_tax=line_pre_tax,
        unit_price_pre_tax=unit_pre_tax,
        tax_type=product.tax_type,
        tax_rate=tax_rate,
        tax_amount=tax_per_unit,
        line_tax=line_tax,
        base_price=base_price,
        final_unit_price=unit_with_tax,
        line_total=line_total,
        shipping_cost=money(product.shipping_cost),
        region=None if ctx.is_guest else ctx.region,
        applied_layers=layers,
    )


def price_cart(lines: Sequence[PricingLine], ctx: PricingContext) -> PricingResult:
    """Przelicza caly koszyk od zera."""
    drafts: list[_Draft] = []
    unavailable: list[int] = []

    for line in lines:
        product = ctx.products.get(line.product_id)
        if product is None:
            logger.warning(
                f"Product {line.product_id} no longer exists, skipped in pricing",
                extra={"event": "PRICING_PRODUCT_MISSING", "product_id": line.product_id},
            )
            unavailable.append(line.product_id)
            continue
        drafts.append(_draft_line(line, product, ctx))

    # kupon tylko dla zalogowanych
    coupon_clear_reason = None
    shares: dict[int, Decimal] = {}
    applied_coupon = None
    if not ctx.is_guest and (ctx.coupon is not None or ctx.coupon_id is not None):
        allocation = allocate_coupon(
            ctx.coupon,
            [CouponLine(vendor_id=d.vendor_id, pre_tax_amount=d.line_amount) for d in drafts],
            ctx.now,
            coupon_id=ctx.coupon_id,
        )
        coupon_clear_reason = allocation.clear_reason
        if not allocation.should_clear:
            shares = allocation.shares
            applied_coupon = AppliedCouponOut(
                coupon_id=allocation.coupon.id,
                code=allocation.coupon.code,
                vendor_id=allocation.coupon.vendor_id,
                discount_type=allocation.coupon.discount_type,
                value=to_decimal(allocation.coupon.value),
                discount_amount=allocation.total_discount,
            )

    priced = [_priced_line(d, shares.get(i, ZERO), ctx) for i, d in enumerate(drafts)]

    shipping = calculate_shipping(
        [
            ShippableLine(
                product_id=d.product.id,
                vendor_id=d.vendor_id,
                unit_price=d.unit_price if d.line.offer_price is not None else d.product.unit_price,
                quantity=d.line.quantity,
                shipping_cost=d.product.shipping_cost,
            )
            for d in drafts
        ],
        ctx.shipping_rules,
    )

    breakdown = []
    shipping_tax_total = ZERO
    for vendor in shipping.vendors:
        vendor_tax = ZERO
        if not ctx.is_guest and vendor.total > ZERO:
            info = resolve_tax(ctx.tax_settings.get(vendor.vendor_id), ctx.region)
            if info.taxes_shipping:
                vendor_tax = calculate_tax(vendor.total, info.rate, EXCLUSIVE).tax
        shipping_tax_total += vendor_tax
        breakdown.append(
            VendorShippingOut(
                vendor_id=vendor.vendor_id,
                subtotal=money(vendor.subtotal),
                rule_subtotal=money(vendor.rule_subtotal),
                fixed_shipping=money(vendor.fixed_shipping),
                rule_shipping=money(vendor.rule_shipping),
                shipping=money(vendor.total),
                shipping_tax=vendor_tax,
                free_shipping_applied=vendor.free_shipping_applied,
                rule_active=vendor.rule_active,
            )
        )

    subtotal = money(sum((p.line_total for p in priced), ZERO))
    tax_total = money(sum((p.line_tax for p in priced), ZERO))
    coupon_discount = money(sum((p.coupon_discount for p in priced), ZERO))
    subtotal_before_tax = money(sum((p.line_pre_tax for p in priced), ZERO))
    savings = sum(
        (
            (p.product_discount + (p.campaign.discount_amount if p.campaign else ZERO)) * p.quantity
            + (p.offer.discount_amount * p.quantity if p.offer else ZERO)
            + p.coupon_discount
            for p in priced
        ),
        ZERO,
    )
    grand_total = money(subtotal + shipping.total + shipping_tax_total)

    if grand_total < ZERO:
        logger.error(
            f"Negative grand total {grand_total} computed",
            extra={"event": "PRICING_INTEGRITY", "customer_id": ctx.customer_id},
        )
        raise PricingIntegrityError(
            "Computed cart total is negative",
            grand_total=str(grand_total),
            customer_id=ctx.customer_id,
        )

    snapshot = PricedSnapshot(
        guest=ctx.is_guest,
        customer_id=ctx.customer_id,
        region=None if ctx.is_guest else ctx.region,
        lines=priced,
        coupon=applied_coupon,
        coupon_discount=coupon_discount,
        total_savings=money(savings),
        subtotal_before_tax=subtotal_before_tax,
        tax_total=tax_total,
        subtotal=subtotal,
        shipping_total=shipping.total,
        shipping_tax=money(shipping_tax_total),
        shipping_breakdown=breakdown,
        grand_total=grand_total,
        unavailable_product_ids=unavailable,
        computed_at=ctx.now,
    )

    logger.debug(
        f"Cart priced: lines={len(priced)}, subtotal={subtotal}, shipping={shipping.total}, total={grand_total}",
        extra={"customer_id": ctx.customer_id},
    )
    return PricingResult(snapshot=snapshot, coupon_clear_reason=coupon_clear_reason)


def empty_snapshot(now: datetime, customer_id: int | None = None) -> PricedSnapshot:
    return PricedSnapshot(guest=customer_id is None, customer_id=customer_id, computed_at=now)
