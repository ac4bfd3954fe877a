# marketplace/data/models/cart.py
from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class CartModel(Base):
    __tablename__ = "carts"
    __table_args__ = (
        # koszyk ma dokladnie jednego wlasciciela: klienta albo sesje
        CheckConstraint(
            "(customer_id IS NULL) <> (session_id IS NULL)",
            name="ck_carts_single_owner",
        ),
    )

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=True, unique=True)
    session_id = Column(String, nullable=True, unique=True)

    status = Column(String, nullable=False, default="ACTIVE")
    version = Column(Integer, nullable=False, default=1)

    # tylko do wyswietlania, kwoty zawsze liczone od nowa
    coupon_id = Column(Integer, ForeignKey("coupons.id"), nullable=True)
    coupon_code = Column(String, nullable=True)

    priced_snapshot = Column(JSON, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    items = relationship(
        "CartItemModel",
        back_populates="cart",
        cascade="all, delete-orphan",
        order_by="CartItemModel.id",
    )
