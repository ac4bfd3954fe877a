# marketplace/domain/schemas.py
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# =====================================================
# INPUT DTO - walidowane na granicy HTTP
# =====================================================


class OwnerRef(BaseModel):
    """Wlasciciel koszyka: zalogowany klient albo anonimowa sesja."""

    customer_id: Optional[int] = Field(None, gt=0)
    session_id: Optional[str] = Field(None, min_length=1, max_length=128)

    @model_validator(mode="after")
    def _require_owner(self):
        if self.customer_id is None and not self.session_id:
            raise ValueError("Session ID or login required")
        return self

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None


class ItemIn(BaseModel):
    """Dodanie produktu do koszyka."""

    product_id: int = Field(..., gt=0)
    quantity: int = Field(..., gt=0)


class QuantityIn(BaseModel):
    quantity: int = Field(..., gt=0)


class CouponIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)


class OfferIn(BaseModel):
    """Przyjecie oferty upsell (zamiana produktu) albo cross-sell (dodanie)."""

    rule_id: int = Field(..., gt=0)
    product_id: int = Field(..., gt=0)
    replaced_product_id: Optional[int] = Field(None, gt=0)


class MergeCartIn(BaseModel):
    session_id: str = Field(..., min_length=1, max_length=128)


class CreateOrderIn(BaseModel):
    address_id: int = Field(..., gt=0)
    payment_method: str = Field(..., min_length=1, max_length=32)
    session_id: Optional[str] = Field(None, max_length=128)
    notes: Optional[str] = Field(None, max_length=500)


class PaymentSettlementIn(BaseModel):
    """Wynik rozliczenia z bramki (webhook albo potwierdzenie klienta)."""

    status: Literal["paid", "failed"]
    gateway_payment_id: Optional[str] = Field(None, max_length=128)


class OrderStatusIn(BaseModel):
    status: Literal["shipped", "delivered", "cancelled", "returned"]


# =====================================================
# PRICED SNAPSHOT
# =====================================================


class CampaignApplied(BaseModel):
    type: Literal["flash_sale", "pricing_rule"]
    id: int
    name: str
    discount_type: str
    discount_value: Decimal
    discount_amount: Decimal


class OfferApplied(BaseModel):
    rule_id: int
    rule_type: str
    discount_amount: Decimal


class PricedLine(BaseModel):
    product_id: int
    vendor_id: int
    name: str
    quantity: int

    original_price: Decimal
    product_discount_type: Optional[str] = None
    product_discount_value: Decimal = Decimal("0")
    product_discount: Decimal = Decimal("0.00")
    price_after_product: Decimal

    campaign: Optional[CampaignApplied] = None
    flash_sale_discount: Decimal = Decimal("0.00")
    pricing_rule_discount: Decimal = Decimal("0.00")
    offer: Optional[OfferApplied] = None

    unit_price_pre_coupon: Decimal
    line_pre_coupon: Decimal
    coupon_discount: Decimal = Decimal("0.00")
    line_pre_tax: Decimal
    unit_price_pre_tax: Decimal

    tax_type: str
    tax_rate: Decimal = Decimal("0")
    tax_amount: Decimal = Decimal("0.00")
    line_tax: Decimal = Decimal("0.00")
    base_price: Decimal
    final_unit_price: Decimal
    line_total: Decimal

    shipping_cost: Decimal = Decimal("0.00")
    region: Optional[str] = None
    applied_layers: List[str] = Field(default_factory=list)


class AppliedCouponOut(BaseModel):
    coupon_id: int
    code: str
    vendor_id: int
    discount_type: str
    value: Decimal
    discount_amount: Decimal


class VendorShippingOut(BaseModel):
    vendor_id: int
    subtotal: Decimal
    rule_subtotal: Decimal
    fixed_shipping: Decimal
    rule_shipping: Decimal
    shipping: Decimal
    shipping_tax: Decimal = Decimal("0.00")
    free_shipping_applied: bool = False
    rule_active: bool = False


class PricedSnapshot(BaseModel):
    guest: bool
    customer_id: Optional[int] = None
    region: Optional[str] = None
    lines: List[PricedLine] = Field(default_factory=list)
    coupon: Optional[AppliedCouponOut] = None

    coupon_discount: Decimal = Decimal("0.00")
    total_savings: Decimal = Decimal("0.00")
    subtotal_before_tax: Decimal = Decimal("0.00")
    tax_total: Decimal = Decimal("0.00")
    subtotal: Decimal = Decimal("0.00")
    shipping_total: Decimal = Decimal("0.00")
    shipping_tax: Decimal = Decimal("0.00")
    shipping_breakdown: List[VendorShippingOut] = Field(default_factory=list)
    grand_total: Decimal = Decimal("0.00")

    unavailable_product_ids: List[int] = Field(default_factory=list)
    computed_at: datetime

    def line_for(self, product_id: int) -> Optional[PricedLine]:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None


# =====================================================
# OUTPUT DTO
# =====================================================


class CartItemOut(BaseModel):
    product_id: int
    vendor_id: int
    quantity: int
    price_at_addition: Decimal
    offer_rule_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class CartOut(BaseModel):
    cart_id: Optional[int] = None
    customer_id: Optional[int] = None
    session_id: Optional[str] = None
    version: int = 0
    coupon_code: Optional[str] = None
    items: List[CartItemOut] = Field(default_factory=list)
    snapshot: PricedSnapshot


class ShipmentOut(BaseModel):
    vendor_id: int
    status: str
    tracking_id: Optional[str] = None
    courier: Optional[str] = None
    shipping_amount: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderItemOut(BaseModel):
    product_id: int
    vendor_id: int
    name: str
    quantity: int
    original_price: Decimal
    product_discount: Decimal
    campaign_type: Optional[str] = None
    campaign_discount: Decimal
    offer_discount: Decimal
    coupon_discount: Decimal
    unit_price_pre_tax: Decimal
    tax_type: str
    tax_rate: Decimal
    tax_amount: Decimal
    final_unit_price: Decimal
    line_total: Decimal

    model_config = ConfigDict(from_attributes=True)


class OrderOut(BaseModel):
    id: int
    customer_id: int
    address_id: int
    payment_id: int
    payment_method: str
    status: str
    subtotal: Decimal
    taxes: Decimal
    shipping: Decimal
    shipping_tax: Decimal
    coupon_discount: Decimal
    total: Decimal
    coupon_code: Optional[str] = None
    created_at: datetime
    items: List[OrderItemOut]
    shipments: List[ShipmentOut]

    model_config = ConfigDict(from_attributes=True)


class GatewayHandle(BaseModel):
    """Uchwyt bramki do dokonczenia platnosci po stronie klienta."""

    gateway: str
    gateway_order_id: Optional[str] = None
    client_secret: Optional[str] = None
    approval_url: Optional[str] = None


class PaymentOut(BaseModel):
    id: int
    status: str
    gateway: str
    amount: Decimal
    currency: str
    idempotency_key: str

    model_config = ConfigDict(from_attributes=True)


class CheckoutOut(BaseModel):
    """Wynik createOrder: gotowe zamowienie (COD) albo platnosc do dokonczenia."""

    kind: Literal["order", "payment"]
    order: Optional[OrderOut] = None
    payment: Optional[PaymentOut] = None
    handle: Optional[GatewayHandle] = None


class ProductOut(BaseModel):
    id: int
    vendor_id: Optional[int]
    name: str
    unit_price: Decimal
    discount_type: Optional[str] = None
    discount_value: Decimal
    shipping_cost: Decimal
    tax_type: str
    stock: int
    min_order_qty: int
    status: str

    model_config = ConfigDict(from_attributes=True)
