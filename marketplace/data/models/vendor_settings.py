from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship

from marketplace.data.database import Base


class ShippingRuleModel(Base):
    __tablename__ = "shipping_rules"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, unique=True)
    flat_rate = Column(Numeric(12, 2), nullable=False, default=0)
    free_shipping_threshold = Column(Numeric(12, 2), nullable=False, default=0)
    is_active = Column(Boolean, nullable=False, default=False)


class TaxSettingsModel(Base):
    __tablename__ = "tax_settings"

    id = Column(Integer, primary_key=True)
    vendor_id = Column(Integer, ForeignKey("vendors.id"), nullable=False, unique=True)
    default_rate = Column(Numeric(5, 2), nullable=False, default=18)
    # apply_tax_to_shipping, exclude_shipping
    calculation_method = Column(String, nullable=False, default="exclude_shipping")

    regional_rates = relationship(
        "RegionalTaxRateModel",
        back_populates="settings",
        cascade="all, delete-orphan",
        lazy="selectin",
    )


class RegionalTaxRateModel(Base):
    __tablename__ = "regional_tax_rates"

    id = Column(Integer, primary_key=True)
    settings_id = Column(Integer, ForeignKey("tax_settings.id", ondelete="CASCADE"), nullable=False)
    region = Column(String, nullable=False)
    rate = Column(Numeric(5, 2), nullable=False)

    settings = relationship("TaxSettingsModel", back_populates="regional_rates")
