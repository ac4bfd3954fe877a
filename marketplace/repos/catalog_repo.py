# marketplace/repos/catalog_repo.py
from collections import defaultdict
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from marketplace.data.models.campaign import (
    FlashSaleModel,
    PricingRuleModel,
    UpsellRuleModel,
    flash_sale_products,
    pricing_rule_products,
)
from marketplace.data.models.product import ProductModel
from marketplace.data.models.vendor_settings import ShippingRuleModel, TaxSettingsModel


class CatalogRepo:
    """
    Odczyty katalogu potrzebne do wyceny, zawsze hurtem dla calego koszyka,
    oraz warunkowe zapisy stanu magazynu.
    """

    def __init__(self, db: Session):
        self.db = db

    # ---------- produkty ----------

    def get_product(self, product_id: int) -> ProductModel | None:
        return self.db.get(ProductModel, product_id)

    def get_products(self, product_ids) -> dict[int, ProductModel]:
        ids = list(set(product_ids))
        if not ids:
            return {}
        rows = self.db.execute(
            select(ProductModel).options(selectinload(ProductModel.vendor)).where(ProductModel.id.in_(ids))
        ).scalars()
        return {p.id: p for p in rows}

    def list_vendor_products(self, vendor_id: int) -> list[ProductModel]:
        return list(
            self.db.execute(
                select(ProductModel)
                .where(ProductModel.vendor_id == vendor_id, ProductModel.status == "active")
                .order_by(ProductModel.id)
            ).scalars()
        )

    # ---------- kampanie ----------

    def flash_sales_for(self, product_ids, now: datetime) -> dict[int, list[FlashSaleModel]]:
        ids = list(set(product_ids))
        result: dict[int, list[FlashSaleModel]] = defaultdict(list)
        if not ids:
            return result
        rows = self.db.execute(
            select(flash_sale_products.c.product_id, FlashSaleModel)
            .join(FlashSaleModel, FlashSaleModel.id == flash_sale_products.c.flash_sale_id)
            .where(
                flash_sale_products.c.product_id.in_(ids),
                FlashSaleModel.status == "active",
                FlashSaleModel.starts_at <= now,
                FlashSaleModel.ends_at >= now,
            )
            .order_by(FlashSaleModel.id)
        ).all()
        for product_id, sale in rows:
            result[product_id].append(sale)
        return result

    def pricing_rules_for(self, product_ids, now: datetime) -> dict[int, list[PricingRuleModel]]:
        ids = list(set(product_ids))
        result: dict[int, list[PricingRuleModel]] = defaultdict(list)
        if not ids:
            return result
        rows = self.db.execute(
            select(pricing_rule_products.c.product_id, PricingRuleModel)
            .join(PricingRuleModel, PricingRuleModel.id == pricing_rule_products.c.pricing_rule_id)
            .where(
                pricing_rule_products.c.product_id.in_(ids),
                PricingRuleModel.status == "active",
                PricingRuleModel.starts_at <= now,
                PricingRuleModel.ends_at >= now,
            )
            .order_by(
                PricingRuleModel.priority.desc(),
                PricingRuleModel.discount_value.desc(),
                PricingRuleModel.id,
            )
        ).all()
        for product_id, rule in rows:
            result[product_id].append(rule)
        return result

    def get_upsell_rule(self, rule_id: int) -> UpsellRuleModel | None:
        return self.db.get(UpsellRuleModel, rule_id)

    def record_pricing_rule_usage(self, rule_id: int, discount: Decimal) -> int:
        res = self.db.execute(
            update(PricingRuleModel)
            .where(PricingRuleModel.id == rule_id)
            .values(
                usage_count=PricingRuleModel.usage_count + 1,
                total_discount_given=PricingRuleModel.total_discount_given + discount,
            )
            .execution_options(synchronize_session=False)
        )
        return res.rowcount

    # ---------- ustawienia vendorow ----------

    def tax_settings_for(self, vendor_ids) -> dict[int, TaxSettingsModel]:
        ids = list(set(vendor_ids))
        if not ids:
            return {}
        rows = self.db.execute(select(TaxSettingsModel).where(TaxSettingsModel.vendor_id.in_(ids))).scalars()
        return {s.vendor_id: s for s in rows}

    def shipping_rules_for(self, vendor_ids) -> dict[int, ShippingRuleModel]:
        ids = list(set(vendor_ids))
        if not ids:
            return {}
        rows = self.db.execute(select(ShippingRuleModel).where(ShippingRuleModel.vendor_id.in_(ids))).scalars()
        return {r.vendor_id: r for r in rows}

    # ---------- magazyn ----------

    def reserve_stock(self, product_id: int, quantity: int) -> bool:
        """stock = stock - q tylko gdy stock >= q, jedno zapytanie."""
        res = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id, ProductModel.stock >= quantity)
            .values(stock=ProductModel.stock - quantity)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount == 1

    def restore_stock(self, product_id: int, quantity: int) -> int:
        res = self.db.execute(
            update(ProductModel)
            .where(ProductModel.id == product_id)
            .values(stock=ProductModel.stock + quantity)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount
