# marketplace/domain/tax.py
from dataclasses import dataclass, field
from decimal import Decimal

from marketplace.domain.money import HUNDRED, money, to_decimal
from marketplace.utils.settings import DEFAULT_TAX_RATE

EXCLUSIVE = "exclusive"
INCLUSIVE = "inclusive"

APPLY_TAX_TO_SHIPPING = "apply_tax_to_shipping"
EXCLUDE_SHIPPING = "exclude_shipping"


@dataclass(frozen=True)
class VendorTaxSettings:
    vendor_id: int
    default_rate: Decimal
    calculation_method: str = EXCLUDE_SHIPPING
    # region -> stawka
    regional_rates: dict[str, Decimal] = field(default_factory=dict)


@dataclass(frozen=True)
class TaxInfo:
    rate: Decimal
    mode: str
    region: str | None = None

    @property
    def taxes_shipping(self) -> bool:
        return self.mode == APPLY_TAX_TO_SHIPPING


@dataclass(frozen=True)
class TaxAmount:
    tax: Decimal
    amount_with_tax: Decimal
    base: Decimal


def _normalize_region(region: str | None) -> str:
    return (region or "").strip().lower()


def resolve_tax(settings: VendorTaxSettings | None, region: str | None) -> TaxInfo:
    """(ustawienia vendora, region klienta) -> stawka i tryb liczenia."""
    if settings is None:
        return TaxInfo(rate=DEFAULT_TAX_RATE, mode=EXCLUDE_SHIPPING, region=None)

    wanted = _normalize_region(region)
    if wanted:
        for configured, rate in settings.regional_rates.items():
            if _normalize_region(configured) == wanted:
                return TaxInfo(rate=to_decimal(rate), mode=settings.calculation_method, region=region)

    return TaxInfo(
        rate=to_decimal(settings.default_rate),
        mode=settings.calculation_method,
        region=region or None,
    )


def calculate_tax(amount, rate, tax_type: str = EXCLUSIVE) -> TaxAmount:
    amount = to_decimal(amount)
    rate = to_decimal(rate)

    if tax_type == INCLUSIVE:
        # kwota juz zawiera podatek
        base = money(amount / (1 + rate / HUNDRED))
        return TaxAmount(tax=money(amount - base), amount_with_tax=money(amount), base=base)

    tax = money(amount * rate / HUNDRED)
    return TaxAmount(tax=tax, amount_with_tax=money(amount + tax), base=money(amount))
