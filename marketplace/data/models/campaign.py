from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, Table
from sqlalchemy.orm import relationship

from marketplace.data.database import Base

flash_sale_products = Table(
    "flash_sale_products",
    Base.metadata,
    Column("flash_sale_id", Integer, ForeignKey("flash_sales.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)

pricing_rule_products = Table(
    "pricing_rule_products",
    Base.metadata,
    Column("pricing_rule_id", Integer, ForeignKey("pricing_rules.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)

upsell_rule_products = Table(
    "upsell_rule_products",
    Base.metadata,
    Column("upsell_rule_id", Integer, ForeignKey("upsell_rules.id", ondelete="CASCADE"), primary_key=True),
    Column("product_id", Integer, ForeignKey("products.id", ondelete="CASCADE"), primary_key=True),
)


class FlashSaleModel(Base):
    __tablename__ = "flash_sales"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    discount_type = Column(String, nullable=False)  # flat, percentage
    discount_value = Column(Numeric(12, 2), nullable=False)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default="active")  # active, inactive, expired

    products = relationship("ProductModel", secondary=flash_sale_products)


class PricingRuleModel(Base):
    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    discount_type = Column(String, nullable=False)
    discount_value = Column(Numeric(12, 2), nullable=False)
    customer_segment = Column(String, nullable=False, default="all")  # all, retail, wholesale, vip
    priority = Column(Integer, nullable=False, default=0)
    starts_at = Column(DateTime(timezone=True), nullable=False)
    ends_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default="active")

    usage_count = Column(Integer, nullable=False, default=0)
    total_discount_given = Column(Numeric(14, 2), nullable=False, default=0)

    products = relationship("ProductModel", secondary=pricing_rule_products)


class UpsellRuleModel(Base):
    __tablename__ = "upsell_rules"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    rule_type = Column(String, nullable=False)  # upsell, cross_sell
    discount_type = Column(String, nullable=False, default="flat")
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="active")

    offered_products = relationship("ProductModel", secondary=upsell_rule_products)
