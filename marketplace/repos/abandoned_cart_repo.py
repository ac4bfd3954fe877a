# marketplace/repos/abandoned_cart_repo.py
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from marketplace.data.models.abandoned_cart import AbandonedCartModel


def _owner_filter(customer_id: int | None, session_id: str | None):
    if customer_id is not None:
        return AbandonedCartModel.customer_id == customer_id
    return AbandonedCartModel.session_id == session_id


class AbandonedCartRepo:
    """Sledzenie porzuconych linii koszyka, wpisy w stanie pending."""

    def __init__(self, db: Session):
        self.db = db

    def upsert(
        self,
        customer_id: int | None,
        session_id: str | None,
        product_id: int,
        vendor_id: int,
        quantity: int,
        value: Decimal,
    ) -> AbandonedCartModel:
        row = self.db.execute(
            select(AbandonedCartModel).where(
                _owner_filter(customer_id, session_id),
                AbandonedCartModel.product_id == product_id,
                AbandonedCartModel.status == "pending",
            )
        ).scalar_one_or_none()

        if row is None:
            row = AbandonedCartModel(
                customer_id=customer_id,
                session_id=None if customer_id is not None else session_id,
                product_id=product_id,
                vendor_id=vendor_id,
                status="pending",
            )
            self.db.add(row)

        row.quantity = quantity
        row.value = value
        row.abandoned_at = datetime.now(timezone.utc)
        self.db.flush()
        return row

    def remove(self, customer_id: int | None, session_id: str | None, product_ids=None) -> int:
        stmt = delete(AbandonedCartModel).where(
            _owner_filter(customer_id, session_id),
            AbandonedCartModel.status == "pending",
        )
        if product_ids is not None:
            stmt = stmt.where(AbandonedCartModel.product_id.in_(list(product_ids)))
        res = self.db.execute(stmt.execution_options(synchronize_session="fetch"))
        return res.rowcount

    def reassign_session(self, session_id: str, customer_id: int) -> int:
        res = self.db.execute(
            update(AbandonedCartModel)
            .where(AbandonedCartModel.session_id == session_id, AbandonedCartModel.status == "pending")
            .values(customer_id=customer_id, session_id=None)
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def mark_recovered(self, customer_id: int, product_ids) -> int:
        res = self.db.execute(
            update(AbandonedCartModel)
            .where(
                AbandonedCartModel.customer_id == customer_id,
                AbandonedCartModel.product_id.in_(list(product_ids)),
                AbandonedCartModel.status != "recovered",
            )
            .values(status="recovered", recovered_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        return res.rowcount

    def list_for_owner(self, customer_id: int | None, session_id: str | None) -> list[AbandonedCartModel]:
        return list(
            self.db.execute(
                select(AbandonedCartModel)
                .where(_owner_filter(customer_id, session_id))
                .order_by(AbandonedCartModel.id)
            ).scalars()
        )
