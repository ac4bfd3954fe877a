# marketplace/repos/customer_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from marketplace.data.models.address import AddressModel
from marketplace.data.models.customer import CustomerModel


class CustomerRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_customer(self, customer_id: int) -> CustomerModel | None:
        return self.db.get(CustomerModel, customer_id)

    def get_address(self, address_id: int) -> AddressModel | None:
        return self.db.get(AddressModel, address_id)

    def get_default_address(self, customer_id: int) -> AddressModel | None:
        return self.db.execute(
            select(AddressModel)
            .where(AddressModel.customer_id == customer_id)
            .order_by(AddressModel.is_default.desc(), AddressModel.id)
            .limit(1)
        ).scalar_one_or_none()
