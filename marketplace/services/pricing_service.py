# marketplace/services/pricing_service.py
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from marketplace.data.models.campaign import FlashSaleModel, PricingRuleModel
from marketplace.data.models.coupon import CouponModel
from marketplace.data.models.product import ProductModel
from marketplace.domain.coupons import Coupon
from marketplace.domain.money import to_decimal
from marketplace.domain.pricing import (
    FLASH_SALE,
    PRICING_RULE,
    Campaign,
    PricingContext,
    PricingLine,
    PricingResult,
    ProductInfo,
    price_cart,
)
from marketplace.domain.shipping import ShippingRule
from marketplace.domain.tax import VendorTaxSettings
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.repos.coupon_repo import CouponRepo
from marketplace.repos.customer_repo import CustomerRepo
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SEGMENT = "retail"


def product_info(product: ProductModel) -> ProductInfo:
    return ProductInfo(
        id=product.id,
        vendor_id=product.vendor_id,
        name=product.name,
        unit_price=to_decimal(product.unit_price),
        discount_type=product.discount_type,
        discount_value=to_decimal(product.discount_value),
        shipping_cost=to_decimal(product.shipping_cost),
        tax_type=product.tax_type,
        stock=product.stock,
        min_order_qty=product.min_order_qty,
        status=product.status,
        vendor_status=product.vendor.status if product.vendor is not None else "missing",
    )


def flash_sale_campaign(sale: FlashSaleModel) -> Campaign:
    return Campaign(
        id=sale.id,
        kind=FLASH_SALE,
        vendor_id=sale.vendor_id,
        name=sale.name,
        discount_type=sale.discount_type,
        discount_value=to_decimal(sale.discount_value),
        starts_at=sale.starts_at,
        ends_at=sale.ends_at,
        status=sale.status,
    )


def pricing_rule_campaign(rule: PricingRuleModel) -> Campaign:
    return Campaign(
        id=rule.id,
        kind=PRICING_RULE,
        vendor_id=rule.vendor_id,
        name=rule.name,
        discount_type=rule.discount_type,
        discount_value=to_decimal(rule.discount_value),
        starts_at=rule.starts_at,
        ends_at=rule.ends_at,
        status=rule.status,
        customer_segment=rule.customer_segment,
        priority=rule.priority,
    )


def coupon_from_model(coupon: CouponModel) -> Coupon:
    return Coupon(
        id=coupon.id,
        vendor_id=coupon.vendor_id,
        code=coupon.code,
        discount_type=coupon.discount_type,
        value=to_decimal(coupon.value),
        starts_at=coupon.starts_at,
        ends_at=coupon.ends_at,
        status=coupon.status,
    )


def pricing_line(item) -> PricingLine:
    """CartItemModel -> linia wejsciowa silnika."""
    return PricingLine(
        product_id=item.product_id,
        vendor_id=item.vendor_id,
        quantity=item.quantity,
        price_at_addition=to_decimal(item.price_at_addition),
        offer_price=to_decimal(item.offer_price) if item.offer_price is not None else None,
        offer_rule_id=item.offer_rule_id,
        offer_rule_type=item.offer_rule_type,
    )


class PricingService:
    """
    Laduje hurtem wszystko, czego potrzebuje silnik wyceny, i go uruchamia.

    Zadnych odczytow z cache: kampanie, kupon i ustawienia podatkowe
    sa pobierane z bazy przy kazdym przeliczeniu.
    """

    def __init__(self, db: Session):
        self.catalog = CatalogRepo(db)
        self.coupons = CouponRepo(db)
        self.customers = CustomerRepo(db)

    def customer_region(self, customer_id: int | None) -> str | None:
        if customer_id is None:
            return None
        address = self.customers.get_default_address(customer_id)
        return address.region if address else None

    def load_context(
        self,
        lines: list[PricingLine],
        customer_id: int | None,
        region: str | None = None,
        coupon_id: int | None = None,
        now: datetime | None = None,
    ) -> PricingContext:
        now = now or datetime.now(timezone.utc)
        product_ids = [line.product_id for line in lines]
        products = self.catalog.get_products(product_ids)

        vendor_ids = {p.vendor_id for p in products.values() if p.vendor_id is not None}
        vendor_ids |= {line.vendor_id for line in lines if line.vendor_id is not None}

        shipping_rules = {
            vendor_id: ShippingRule(
                vendor_id=vendor_id,
                flat_rate=to_decimal(rule.flat_rate),
                free_shipping_threshold=to_decimal(rule.free_shipping_threshold),
                is_active=rule.is_active,
            )
            for vendor_id, rule in self.catalog.shipping_rules_for(vendor_ids).items()
        }

        ctx = PricingContext(
            now=now,
            products={pid: product_info(p) for pid, p in products.items()},
            customer_id=customer_id,
            shipping_rules=shipping_rules,
        )
        if customer_id is None:
            return ctx

        customer = self.customers.get_customer(customer_id)
        ctx.customer_segment = customer.segment if customer and customer.segment else DEFAULT_SEGMENT
        ctx.region = region

        ctx.flash_sales = {
            pid: [flash_sale_campaign(s) for s in sales]
            for pid, sales in self.catalog.flash_sales_for(product_ids, now).items()
        }
        ctx.pricing_rules = {
            pid: [pricing_rule_campaign(r) for r in rules]
            for pid, rules in self.catalog.pricing_rules_for(product_ids, now).items()
        }
        ctx.tax_settings = {
            vendor_id: VendorTaxSettings(
                vendor_id=vendor_id,
                default_rate=to_decimal(settings.default_rate),
                calculation_method=settings.calculation_method,
                regional_rates={r.region: to_decimal(r.rate) for r in settings.regional_rates},
            )
            for vendor_id, settings in self.catalog.tax_settings_for(vendor_ids).items()
        }

        if coupon_id is not None:
            coupon = self.coupons.get_coupon(coupon_id)
            ctx.coupon_id = coupon_id
            ctx.coupon = coupon_from_model(coupon) if coupon else None

        return ctx

    def price_items(
        self,
        items,
        customer_id: int | None,
        region: str | None = None,
        coupon_id: int | None = None,
        now: datetime | None = None,
    ) -> PricingResult:
        lines = [pricing_line(i) for i in items]
        if customer_id is not None and region is None:
            region = self.customer_region(customer_id)
        ctx = self.load_context(lines, customer_id, region=region, coupon_id=coupon_id, now=now)
        return price_cart(lines, ctx)
