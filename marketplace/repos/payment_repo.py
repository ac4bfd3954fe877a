# marketplace/repos/payment_repo.py
from datetime import datetime

from sqlalchemy import update
from sqlalchemy.orm import Session

from marketplace.data.models.payment import PaymentModel


class PaymentRepo:
    def __init__(self, db: Session):
        self.db = db

    def add_payment(self, payment: PaymentModel) -> PaymentModel:
        self.db.add(payment)
        self.db.flush()
        return payment

    def get_payment(self, payment_id: int) -> PaymentModel | None:
        return self.db.get(PaymentModel, payment_id)

    def mark_paid(self, payment_id: int, paid_at: datetime, gateway_payment_id: str | None = None) -> int:
        """Przejscie do paid tylko z innego stanu, ponowne wywolanie nic nie zmienia."""
        values = {"status": "paid", "paid_at": paid_at}
        if gateway_payment_id:
            values["gateway_payment_id"] = gateway_payment_id
        res = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status != "paid")
            .values(**values)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def mark_failed(self, payment_id: int) -> int:
        res = self.db.execute(
            update(PaymentModel)
            .where(PaymentModel.id == payment_id, PaymentModel.status == "pending")
            .values(status="failed")
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def commit(self):
        self.db.commit()

    def rollback(self):
        self.db.rollback()
