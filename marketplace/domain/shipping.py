# marketplace/domain/shipping.py
from collections import OrderedDict
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, Mapping

from marketplace.domain.money import ZERO, money, to_decimal
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ShippingRule:
    vendor_id: int
    flat_rate: Decimal
    free_shipping_threshold: Decimal
    is_active: bool = True


@dataclass(frozen=True)
class ShippableLine:
    """Linia koszyka albo zamowienia widziana przez kalkulator wysylki."""

    product_id: int
    vendor_id: int | None
    unit_price: Decimal
    quantity: int
    shipping_cost: Decimal = ZERO


@dataclass
class VendorShipping:
    vendor_id: int
    subtotal: Decimal = ZERO
    rule_subtotal: Decimal = ZERO
    fixed_shipping: Decimal = ZERO
    rule_shipping: Decimal = ZERO
    total: Decimal = ZERO
    free_shipping_applied: bool = False
    rule_active: bool = False
    fixed_product_ids: list[int] = field(default_factory=list)
    rule_product_ids: list[int] = field(default_factory=list)


@dataclass
class ShippingQuote:
    total: Decimal
    vendors: list[VendorShipping]

    def for_vendor(self, vendor_id: int) -> VendorShipping | None:
        for vendor in self.vendors:
            if vendor.vendor_id == vendor_id:
                return vendor
        return None


def group_by_vendor(lines: Iterable[ShippableLine]) -> "OrderedDict[int, list[ShippableLine]]":
    groups: "OrderedDict[int, list[ShippableLine]]" = OrderedDict()
    for line in lines:
        if line.vendor_id is None:
            logger.warning(f"Line for product {line.product_id} has no vendor, skipped in shipping")
            continue
        groups.setdefault(line.vendor_id, []).append(line)
    return groups


def calculate_vendor_shipping(
    vendor_id: int,
    lines: list[ShippableLine],
    rule: ShippingRule | None,
) -> VendorShipping:
    result = VendorShipping(vendor_id=vendor_id)

    for line in lines:
        line_value = money(to_decimal(line.unit_price) * line.quantity)
        result.subtotal += line_value

        shipping_cost = to_decimal(line.shipping_cost)
        if shipping_cost > ZERO:
            result.fixed_shipping += money(shipping_cost * line.quantity)
            result.fixed_product_ids.append(line.product_id)
        else:
            result.rule_subtotal += line_value
            result.rule_product_ids.append(line.product_id)

    active_rule = rule if rule is not None and rule.is_active else None
    result.rule_active = active_rule is not None

    # regula dotyczy tylko linii bez wlasnej stawki
    if active_rule is not None and result.rule_product_ids:
        threshold = to_decimal(active_rule.free_shipping_threshold)
        if threshold > ZERO and result.rule_subtotal >= threshold:
            result.free_shipping_applied = True
            result.rule_shipping = ZERO
        else:
            result.rule_shipping = money(active_rule.flat_rate)

    result.total = money(result.fixed_shipping + result.rule_shipping)
    return result


def calculate_shipping(
    lines: Iterable[ShippableLine],
    rules: Mapping[int, ShippingRule],
) -> ShippingQuote:
    """Wysylka liczona niezaleznie dla kazdego vendora, suma po grupach."""
    vendors = [
        calculate_vendor_shipping(vendor_id, vendor_lines, rules.get(vendor_id))
        for vendor_id, vendor_lines in group_by_vendor(lines).items()
    ]
    total = money(sum((v.total for v in vendors), ZERO))

    logger.debug(f"Shipping calculated: total={total}, vendors={len(vendors)}")
    return ShippingQuote(total=total, vendors=vendors)
