from sqlalchemy import Column, ForeignKey, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class CartItemModel(Base):
    __tablename__ = "cart_items"
    __table_args__ = (UniqueConstraint("cart_id", "product_id", name="u_cart_product"),)

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False)

    quantity = Column(Integer, nullable=False)
    price_at_addition = Column(Numeric(12, 2), nullable=False)

    # zamrozona cena z oferty upsell/cross-sell
    offer_rule_id = Column(Integer, ForeignKey("upsell_rules.id"), nullable=True)
    offer_rule_type = Column(String, nullable=True)
    offer_price = Column(Numeric(12, 2), nullable=True)

    cart = relationship("CartModel", back_populates="items")
