from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, Numeric, String

from marketplace.data.database import Base


class PaymentModel(Base):
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False)
    currency = Column(String, nullable=False)
    gateway = Column(String, nullable=False)  # cod, razorpay, stripe, paypal
    status = Column(String, nullable=False, default="pending")  # pending, paid, failed

    # jeden klucz na probe checkoutu, ponowiony request do bramki go reuzywa
    idempotency_key = Column(String, nullable=False, unique=True)
    gateway_order_id = Column(String, nullable=True, index=True)
    gateway_payment_id = Column(String, nullable=True)

    # snapshot koszyka zatwierdzony przez klienta + adres, sesja, kupon
    checkout = Column(JSON, nullable=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    paid_at = Column(DateTime(timezone=True), nullable=True)
