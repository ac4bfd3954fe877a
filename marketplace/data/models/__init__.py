# import wszystkich modeli zeby SQLAlchemy zarejestrowal je w Base.metadata

from marketplace.data.models.vendor import VendorModel
from marketplace.data.models.customer import CustomerModel
from marketplace.data.models.address import AddressModel
from marketplace.data.models.product import ProductModel
from marketplace.data.models.campaign import FlashSaleModel, PricingRuleModel, UpsellRuleModel
from marketplace.data.models.coupon import CouponModel, CouponUsageModel
from marketplace.data.models.vendor_settings import ShippingRuleModel, TaxSettingsModel, RegionalTaxRateModel
from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.data.models.order import OrderModel, OrderItemModel, ShipmentModel
from marketplace.data.models.payment import PaymentModel
from marketplace.data.models.abandoned_cart import AbandonedCartModel

__all__ = [
    "VendorModel",
    "CustomerModel",
    "AddressModel",
    "ProductModel",
    "FlashSaleModel",
    "PricingRuleModel",
    "UpsellRuleModel",
    "CouponModel",
    "CouponUsageModel",
    "ShippingRuleModel",
    "TaxSettingsModel",
    "RegionalTaxRateModel",
    "CartModel",
    "CartItemModel",
    "OrderModel",
    "OrderItemModel",
    "ShipmentModel",
    "PaymentModel",
    "AbandonedCartModel",
]
