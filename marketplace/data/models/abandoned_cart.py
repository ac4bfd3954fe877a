from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String

from marketplace.data.database import Base


class AbandonedCartModel(Base):
    __tablename__ = "abandoned_carts"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, index=True)
    session_id = Column(String, nullable=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    value = Column(Numeric(12, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending, sent, recovered
    abandoned_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    recovered_at = Column(DateTime(timezone=True), nullable=True)
