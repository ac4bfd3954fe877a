# marketplace/repos/order_repo.py
from sqlalchemy import select, update
from sqlalchemy.orm import Session, selectinload

from marketplace.data.models.order import OrderModel, ShipmentModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.flush()
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_payment(self, payment_id: int) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_id == payment_id)
        ).scalar_one_or_none()

    def list_for_customer(self, customer_id: int, limit: int = 50, offset: int = 0) -> list[OrderModel]:
        return list(
            self.db.execute(
                select(OrderModel)
                .options(selectinload(OrderModel.items), selectinload(OrderModel.shipments))
                .where(OrderModel.customer_id == customer_id)
                .order_by(OrderModel.id.desc())
                .limit(limit)
                .offset(offset)
            ).scalars()
        )

    def get_shipment(self, order_id: int, vendor_id: int) -> ShipmentModel | None:
        return self.db.execute(
            select(ShipmentModel).where(ShipmentModel.order_id == order_id, ShipmentModel.vendor_id == vendor_id)
        ).scalar_one_or_none()

    def transition_status(self, order_id: int, from_status: str, new_data: dict) -> int:
        """Zmiana statusu tylko z oczekiwanego stanu, 0 wierszy = ktos zmienil go wczesniej."""
        res = self.db.execute(
            update(OrderModel)
            .where(OrderModel.id == order_id, OrderModel.status == from_status)
            .values(**new_data)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
