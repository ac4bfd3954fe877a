# marketplace/repos/coupon_repo.py
from decimal import Decimal

from sqlalchemy import exists, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.data.models.coupon import CouponModel, CouponUsageModel
from marketplace.domain.errors import CouponAlreadyUsedError


class CouponRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_coupon(self, coupon_id: int) -> CouponModel | None:
        return self.db.get(CouponModel, coupon_id)

    def find_by_code(self, code: str) -> list[CouponModel]:
        # ten sam kod moze istniec u kilku vendorow
        return list(
            self.db.execute(
                select(CouponModel).where(CouponModel.code == code.strip().upper()).order_by(CouponModel.id)
            ).scalars()
        )

    def has_used(self, coupon_id: int, customer_id: int) -> bool:
        return self.db.execute(
            select(
                exists().where(
                    CouponUsageModel.coupon_id == coupon_id,
                    CouponUsageModel.customer_id == customer_id,
                )
            )
        ).scalar()

    def redeem_coupon_once(
        self,
        coupon_id: int,
        customer_id: int,
        order_id: int | None,
        order_amount: Decimal,
        discount_amount: Decimal,
    ) -> CouponUsageModel:
        """
        Zwieksza licznik uzyc i dopisuje wpis do rejestru tylko wtedy,
        gdy klienta jeszcze w rejestrze nie ma.

        Warunek siedzi w samym UPDATE; unikalny indeks (coupon_id, customer_id)
        lapie wyscig, ktory przeszedl przez oba UPDATE naraz.
        """
        already_used = exists().where(
            CouponUsageModel.coupon_id == coupon_id,
            CouponUsageModel.customer_id == customer_id,
        )
        res = self.db.execute(
            update(CouponModel)
            .where(CouponModel.id == coupon_id, ~already_used)
            .values(usage_count=CouponModel.usage_count + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount == 0:
            raise CouponAlreadyUsedError(coupon_id, customer_id)

        usage = CouponUsageModel(
            coupon_id=coupon_id,
            customer_id=customer_id,
            order_id=order_id,
            order_amount=order_amount,
            discount_amount=discount_amount,
        )
        self.db.add(usage)
        try:
            self.db.flush()
        except IntegrityError as e:
            raise CouponAlreadyUsedError(coupon_id, customer_id) from e
        return usage
