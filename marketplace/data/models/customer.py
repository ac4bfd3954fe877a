from sqlalchemy import Column, Integer, String

from marketplace.data.database import Base


class CustomerModel(Base):
    __tablename__ = "customers"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    # segment dla pricing rules: retail, wholesale, vip
    segment = Column(String, nullable=False, default="retail")
