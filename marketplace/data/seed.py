# marketplace/data/seed.py
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from marketplace.data.database import SessionLocal
from marketplace.data.models import (
    AddressModel,
    CouponModel,
    CustomerModel,
    FlashSaleModel,
    PricingRuleModel,
    ProductModel,
    RegionalTaxRateModel,
    ShippingRuleModel,
    TaxSettingsModel,
    UpsellRuleModel,
    VendorModel,
)
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


def seed():
    """Dane demo: dwoch vendorow, produkty, kampanie, kupon, klient z adresem."""
    db = SessionLocal()
    try:
        # tylko gdy baza jest pusta
        if db.query(VendorModel).first():
            return

        now = datetime.now(timezone.utc)
        month = timedelta(days=30)

        books = VendorModel(name="Book Corner", email="books@example.com")
        gadgets = VendorModel(name="Gadget Hub", email="gadgets@example.com")
        db.add_all([books, gadgets])
        db.flush()

        novel = ProductModel(
            vendor_id=books.id,
            name="Novel",
            sku="BK-001",
            unit_price=Decimal("1000.00"),
            discount_type="percentage",
            discount_value=Decimal("10"),
            stock=50,
        )
        atlas = ProductModel(
            vendor_id=books.id,
            name="World Atlas",
            sku="BK-002",
            unit_price=Decimal("1500.00"),
            stock=20,
        )
        charger = ProductModel(
            vendor_id=gadgets.id,
            name="USB Charger",
            sku="GD-001",
            unit_price=Decimal("799.00"),
            shipping_cost=Decimal("40.00"),
            tax_type="inclusive",
            stock=100,
            min_order_qty=1,
        )
        cable = ProductModel(
            vendor_id=gadgets.id,
            name="USB Cable",
            sku="GD-002",
            unit_price=Decimal("199.00"),
            stock=200,
        )
        db.add_all([novel, atlas, charger, cable])
        db.flush()

        db.add_all(
            [
                ShippingRuleModel(vendor_id=books.id, flat_rate=Decimal("50"), free_shipping_threshold=Decimal("2000"), is_active=True),
                ShippingRuleModel(vendor_id=gadgets.id, flat_rate=Decimal("30"), free_shipping_threshold=Decimal("0"), is_active=True),
            ]
        )

        books_tax = TaxSettingsModel(vendor_id=books.id, default_rate=Decimal("18"))
        books_tax.regional_rates = [RegionalTaxRateModel(region="Kerala", rate=Decimal("12"))]
        gadgets_tax = TaxSettingsModel(
            vendor_id=gadgets.id,
            default_rate=Decimal("18"),
            calculation_method="apply_tax_to_shipping",
        )
        db.add_all([books_tax, gadgets_tax])

        sale = FlashSaleModel(
            vendor_id=books.id,
            name="Weekend Reads",
            discount_type="percentage",
            discount_value=Decimal("15"),
            starts_at=now - timedelta(days=1),
            ends_at=now + timedelta(days=2),
        )
        sale.products = [atlas]
        rule = PricingRuleModel(
            vendor_id=books.id,
            name="Wholesale Atlas",
            discount_type="flat",
            discount_value=Decimal("300"),
            customer_segment="wholesale",
            priority=10,
            starts_at=now - timedelta(days=1),
            ends_at=now + month,
        )
        rule.products = [atlas]
        offer = UpsellRuleModel(
            vendor_id=gadgets.id,
            name="Add a cable",
            rule_type="cross_sell",
            discount_type="percentage",
            discount_value=Decimal("25"),
        )
        offer.offered_products = [cable]
        db.add_all([sale, rule, offer])

        db.add(
            CouponModel(
                vendor_id=books.id,
                code="READ20",
                name="20% off books",
                discount_type="percentage",
                value=Decimal("20"),
                starts_at=now - timedelta(days=1),
                ends_at=now + month,
            )
        )

        customer = CustomerModel(name="Demo Customer", email="customer@example.com")
        db.add(customer)
        db.flush()
        db.add(AddressModel(customer_id=customer.id, line1="1 MG Road", city="Kochi", region="Kerala", postal_code="682001", is_default=True))

        db.commit()
        logger.info("Seed data created")
    finally:
        db.close()


if __name__ == "__main__":
    from marketplace.main import init_db

    init_db()
    seed()
