# marketplace/domain/coupons.py
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Sequence

from marketplace.domain.money import HUNDRED, ZERO, as_utc, money, to_decimal
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

FLAT = "flat"
PERCENTAGE = "percentage"


@dataclass(frozen=True)
class Coupon:
    id: int
    vendor_id: int
    code: str
    discount_type: str
    value: Decimal
    starts_at: datetime
    ends_at: datetime
    status: str = "active"

    def invalid_reason(self, now: datetime) -> str | None:
        if self.status != "active":
            return "inactive"
        if now < as_utc(self.starts_at) or now > as_utc(self.ends_at):
            return "expired"
        return None


@dataclass(frozen=True)
class CouponLine:
    vendor_id: int | None
    pre_tax_amount: Decimal


@dataclass
class CouponAllocation:
    coupon: Coupon | None = None
    total_discount: Decimal = ZERO
    eligible_subtotal: Decimal = ZERO
    # indeks linii -> udzial w rabacie
    shares: dict[int, Decimal] = field(default_factory=dict)
    clear_reason: str | None = None

    @property
    def should_clear(self) -> bool:
        return self.clear_reason is not None

    def share_for(self, index: int) -> Decimal:
        return self.shares.get(index, ZERO)


def coupon_total(coupon: Coupon, eligible_subtotal: Decimal) -> Decimal:
    value = to_decimal(coupon.value)
    if coupon.discount_type == PERCENTAGE:
        percent = min(value, HUNDRED)
        return money(eligible_subtotal * percent / HUNDRED)
    return money(min(value, eligible_subtotal))


def allocate_coupon(
    coupon: Coupon | None,
    lines: Sequence[CouponLine],
    now: datetime,
    coupon_id: int | None = None,
) -> CouponAllocation:
    """
    Rozklada rabat kuponu proporcjonalnie na linie vendora kuponu.

    Ostatnia uprawniona linia dostaje reszte, wiec suma udzialow
    jest rowna rabatowi co do grosza.
    """
    if coupon is None:
        if coupon_id is not None:
            logger.warning(
                f"Coupon {coupon_id} not found during recalculation",
                extra={"event": "COUPON_INVALID_DURING_RECALC", "coupon_id": coupon_id},
            )
            return CouponAllocation(clear_reason="not_found")
        return CouponAllocation()

    reason = coupon.invalid_reason(now)
    if reason is not None:
        logger.warning(
            f"Coupon {coupon.id} is {reason}, clearing from cart",
            extra={"event": "COUPON_INVALID_DURING_RECALC", "coupon_id": coupon.id},
        )
        return CouponAllocation(coupon=coupon, clear_reason=reason)

    eligible = [i for i, line in enumerate(lines) if line.vendor_id == coupon.vendor_id]
    eligible_subtotal = money(sum((to_decimal(lines[i].pre_tax_amount) for i in eligible), ZERO))

    if not eligible or eligible_subtotal <= ZERO:
        logger.warning(
            f"Coupon {coupon.id} has no applicable lines for vendor {coupon.vendor_id}",
            extra={"event": "COUPON_NO_APPLICABLE_ITEMS", "coupon_id": coupon.id},
        )
        return CouponAllocation(coupon=coupon, clear_reason="no_applicable_items")

    total = coupon_total(coupon, eligible_subtotal)
    shares: dict[int, Decimal] = {}
    allocated = ZERO

    for position, index in enumerate(eligible):
        line_amount = to_decimal(lines[index].pre_tax_amount)
        if position == len(eligible) - 1:
            share = total - allocated
        else:
            share = money(line_amount / eligible_subtotal * total)
        # udzial nie moze przekroczyc wartosci linii
        share = max(ZERO, min(share, line_amount, total - allocated))
        shares[index] = share
        allocated += share

    # reszta po zaokragleniach trafia do linii z zapasem, od konca
    leftover = total - allocated
    for index in reversed(eligible):
        if leftover <= ZERO:
            break
        room = to_decimal(lines[index].pre_tax_amount) - shares[index]
        take = min(room, leftover)
        if take > ZERO:
            shares[index] += take
            allocated += take
            leftover -= take

    logger.info(
        f"Coupon {coupon.code} allocated: total={total}, eligible_subtotal={eligible_subtotal}, lines={len(eligible)}",
        extra={"event": "COUPON_DISCOUNT_CALCULATED", "coupon_id": coupon.id},
    )

    return CouponAllocation(
        coupon=coupon,
        total_discount=money(allocated),
        eligible_subtotal=eligible_subtotal,
        shares=shares,
    )
