from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class ProductModel(Base):
    __tablename__ = "products"
    __table_args__ = (CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),)

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=True, index=True)
    name = Column(String, nullable=False)
    sku = Column(String, nullable=True)

    unit_price = Column(Numeric(12, 2), nullable=False)
    discount_type = Column(String, nullable=True)  # flat, percentage, None
    discount_value = Column(Numeric(12, 2), nullable=False, default=0)
    # stala wysylka per sztuka, nadpisuje shipping rule vendora
    shipping_cost = Column(Numeric(12, 2), nullable=False, default=0)
    tax_type = Column(String, nullable=False, default="exclusive")  # inclusive, exclusive

    stock = Column(Integer, nullable=False, default=0)
    min_order_qty = Column(Integer, nullable=False, default=1)
    status = Column(String, nullable=False, default="active")

    vendor = relationship("VendorModel")
