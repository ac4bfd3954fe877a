from sqlalchemy import Column, Integer, String

from marketplace.data.database import Base


class VendorModel(Base):
    __tablename__ = "vendors"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    status = Column(String, nullable=False, default="active")  # active, inactive
