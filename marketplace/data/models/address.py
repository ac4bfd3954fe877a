from sqlalchemy import Boolean, Column, ForeignKey, Integer, String

from marketplace.data.database import Base


class AddressModel(Base):
    """Read-only kopia adresu z address service, rdzen czyta tylko region."""

    __tablename__ = "addresses"

    id = Column(Integer, primary_key=True)
    customer_id = Column(Integer, ForeignKey("customers.id"), nullable=False, index=True)
    line1 = Column(String, nullable=True)
    city = Column(String, nullable=True)
    region = Column(String, nullable=True)
    postal_code = Column(String, nullable=True)
    is_default = Column(Boolean, nullable=False, default=False)
