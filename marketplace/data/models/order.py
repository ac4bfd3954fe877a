from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    address_id = Column(Integer, ForeignKey("addresses.id"), nullable=False)
    # jedno zamowienie na platnosc
    payment_id = Column(Integer, ForeignKey("payments.id"), nullable=False, unique=True)
    payment_method = Column(String, nullable=False)

    # confirmed, shipped, delivered, cancelled, returned
    status = Column(String, nullable=False, default="confirmed")

    subtotal = Column(Numeric(12, 2), nullable=False)
    taxes = Column(Numeric(12, 2), nullable=False, default=0)
    shipping = Column(Numeric(12, 2), nullable=False, default=0)
    shipping_tax = Column(Numeric(12, 2), nullable=False, default=0)
    coupon_discount = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(12, 2), nullable=False)

    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String, nullable=True)
    region = Column(String, nullable=True)
    notes = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    returned_at = Column(DateTime(timezone=True), nullable=True)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )
    shipments = relationship(
        "ShipmentModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="ShipmentModel.id",
    )


class OrderItemModel(Base):
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    name = Column(String, nullable=False)
    quantity = Column(Integer, nullable=False)

    # pelny rozklad cen skopiowany ze snapshotu koszyka
    original_price = Column(Numeric(12, 2), nullable=False)
    product_discount = Column(Numeric(12, 2), nullable=False, default=0)
    campaign_type = Column(String, nullable=True)  # flash_sale, pricing_rule
    campaign_id = Column(Integer, nullable=True)
    campaign_name = Column(String, nullable=True)
    campaign_discount = Column(Numeric(12, 2), nullable=False, default=0)
    offer_rule_id = Column(Integer, nullable=True)
    offer_discount = Column(Numeric(12, 2), nullable=False, default=0)
    coupon_discount = Column(Numeric(12, 2), nullable=False, default=0)
    unit_price_pre_tax = Column(Numeric(12, 2), nullable=False)
    tax_type = Column(String, nullable=False)
    tax_rate = Column(Numeric(5, 2), nullable=False)
    tax_amount = Column(Numeric(12, 2), nullable=False)
    final_unit_price = Column(Numeric(12, 2), nullable=False)
    line_total = Column(Numeric(12, 2), nullable=False)
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    breakdown = Column(JSON, nullable=True)

    order = relationship("OrderModel", back_populates="items")


class ShipmentModel(Base):
    __tablename__ = "shipments"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, created, failed
    tracking_id = Column(String, nullable=True)
    courier = Column(String, nullable=True)
    shipping_amount = Column(Numeric(12, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    order = relationship("OrderModel", back_populates="shipments")
