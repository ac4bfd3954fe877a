# marketplace/services/order_service.py
import uuid
from datetime import datetime, timezone
from decimal import Decimal

import requests
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from marketplace.data.models.order import OrderItemModel, OrderModel, ShipmentModel
from marketplace.data.models.payment import PaymentModel
from marketplace.domain.errors import (
    CheckoutValidationError,
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PricingIntegrityError,
)
from marketplace.domain.money import ZERO, money
from marketplace.domain.pricing import PRICING_RULE
from marketplace.domain.schemas import (
    CheckoutOut,
    CreateOrderIn,
    GatewayHandle,
    OrderOut,
    PaymentOut,
    PricedSnapshot,
)
from marketplace.repos.abandoned_cart_repo import AbandonedCartRepo
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.repos.coupon_repo import CouponRepo
from marketplace.repos.customer_repo import CustomerRepo
from marketplace.repos.order_repo import OrderRepo
from marketplace.repos.payment_repo import PaymentRepo
from marketplace.services.cart_service import CartService
from marketplace.services.catalog_service import invalidate_products
from marketplace.services.gateway_client import PaymentGatewayClient
from marketplace.services.notification_service import NotificationService
from marketplace.services.shipment_service import ShipmentDispatcher
from marketplace.utils.logging import get_logger
from marketplace.utils.settings import (
    COD_ENABLED,
    DEFAULT_CURRENCY,
    DIGITAL_PAYMENT_ENABLED,
    ENABLED_GATEWAYS,
)

logger = get_logger(__name__)

COD = "cod"

# confirmed -> shipped -> delivered, confirmed -> cancelled, shipped -> returned
ORDER_TRANSITIONS = {
    "confirmed": {"shipped", "cancelled"},
    "shipped": {"delivered", "returned"},
}
RESTOCK_STATUSES = {"cancelled", "returned"}
STATUS_TIMESTAMPS = {
    "shipped": "shipped_at",
    "delivered": "delivered_at",
    "cancelled": "cancelled_at",
    "returned": "returned_at",
}


class OrderService:
    """
    Checkout i finalizacja zamowien.

    Wszystko, co musi byc atomowe (stan magazynu, zamowienie, rejestr kuponu,
    czyszczenie koszyka, status platnosci) idzie w jednej transakcji.
    Wysylka, maile i statystyki dopiero po commicie i nigdy nie cofaja zamowienia.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGatewayClient | None = None,
        dispatcher: ShipmentDispatcher | None = None,
        notifier: NotificationService | None = None,
        cache=None,
        cart_service: CartService | None = None,
    ):
        self.db = db
        self.orders = OrderRepo(db)
        self.payments = PaymentRepo(db)
        self.catalog = CatalogRepo(db)
        self.coupons = CouponRepo(db)
        self.customers = CustomerRepo(db)
        self.carts = CartRepo(db)
        self.abandoned = AbandonedCartRepo(db)
        self.cart_service = cart_service or CartService(db)
        self.gateway = gateway or PaymentGatewayClient()
        self.dispatcher = dispatcher or ShipmentDispatcher(db)
        self.notifier = notifier or NotificationService()
        self.cache = cache

    # =====================================================
    # QUERY
    # =====================================================

    def get_order(self, order_id: int, customer_id: int) -> OrderOut:
        order = self.orders.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        if order.customer_id != customer_id:
            raise PermissionError("Access denied to this order")
        return OrderOut.model_validate(order)

    def list_orders(self, customer_id: int, limit: int = 50, offset: int = 0) -> list[OrderOut]:
        return [OrderOut.model_validate(o) for o in self.orders.list_for_customer(customer_id, limit, offset)]

    # =====================================================
    # CHECKOUT
    # =====================================================

    def create_order(self, customer_id: int, payload: CreateOrderIn) -> CheckoutOut:
        """
        createOrder: walidacja, swieza wycena z regionem adresu, potem
        COD finalizuje od razu, a bramka dostaje platnosc pending.
        """
        method = payload.payment_method.strip().lower()

        address = self.customers.get_address(payload.address_id)
        if address is None:
            raise CheckoutValidationError("Address not found")
        if address.customer_id != customer_id:
            raise PermissionError("Access denied to this address")

        self._check_payment_method(method)

        cart = self.cart_service.find_cart(customer_id, payload.session_id)
        if cart is None:
            raise CheckoutValidationError("Cart is empty")

        items, result = self.cart_service.price_for_checkout(cart, address.region)
        if not items:
            raise CheckoutValidationError("Cart is empty")

        if result.should_clear_coupon:
            self.cart_service.remove_coupon(customer_id, None)
            raise CheckoutValidationError("Applied coupon is no longer valid and was removed")

        snapshot = result.snapshot
        self._validate_snapshot(customer_id, snapshot)

        checkout = {
            "snapshot": snapshot.model_dump(mode="json"),
            "cart_id": cart.id,
            "address_id": address.id,
            "region": address.region,
            "session_id": payload.session_id,
            "coupon_id": snapshot.coupon.coupon_id if snapshot.coupon else None,
            "coupon_code": snapshot.coupon.code if snapshot.coupon else None,
            "notes": payload.notes,
        }
        payment = PaymentModel(
            customer_id=customer_id,
            amount=snapshot.grand_total,
            currency=DEFAULT_CURRENCY,
            gateway=method,
            status="pending",
            idempotency_key=uuid.uuid4().hex,
            checkout=checkout,
        )

        if method == COD:
            # platnosc i zamowienie w tej samej transakcji
            self.payments.add_payment(payment)
            order = self.finalize_order(payment.id)
            return CheckoutOut(kind="order", order=order)

        self.payments.add_payment(payment)
        self.payments.commit()
        handle = self._open_gateway_order(payment)
        return CheckoutOut(kind="payment", payment=PaymentOut.model_validate(payment), handle=handle)

    def confirm_payment(self, payment_id: int, status: str, gateway_payment_id: str | None = None) -> CheckoutOut:
        """Rozliczenie z bramki: paid -> finalizacja, failed -> platnosc failed."""
        payment = self.payments.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")

        if status == "failed":
            if self.orders.get_by_payment(payment_id) is not None or payment.status == "paid":
                raise CheckoutValidationError("Payment is already settled")
            self.payments.mark_failed(payment_id)
            self.payments.commit()
            logger.warning(
                f"Payment {payment_id} failed at gateway",
                extra={"event": "PAYMENT_FAILED", "payment_id": payment_id},
            )
            return CheckoutOut(kind="payment", payment=PaymentOut.model_validate(payment))

        order = self.finalize_order(payment_id, gateway_payment_id=gateway_payment_id)
        return CheckoutOut(kind="order", order=order)

    # =====================================================
    # FINALIZACJA
    # =====================================================

    def finalize_order(self, payment_id: int, gateway_payment_id: str | None = None) -> OrderOut:
        """
        Dokladnie jedno zamowienie na platnosc.

        Ponowne wywolanie dla tej samej platnosci zwraca istniejace zamowienie
        i niczego nie przelicza ani nie zdejmuje drugi raz z magazynu.
        """
        existing = self.orders.get_by_payment(payment_id)
        if existing is not None:
            logger.info(
                f"Order {existing.id} already exists for payment {payment_id}",
                extra={"event": "ORDER_ALREADY_FINALIZED", "order_id": existing.id, "payment_id": payment_id},
            )
            return OrderOut.model_validate(existing)

        payment = self.payments.get_payment(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        if payment.status == "failed":
            raise CheckoutValidationError("Payment has failed, please retry checkout")

        checkout = payment.checkout or {}
        snapshot = PricedSnapshot.model_validate(checkout["snapshot"])
        now = datetime.now(timezone.utc)

        try:
            order = self._persist_order(payment, snapshot, checkout, now, gateway_payment_id)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            # rownolegla finalizacja tej samej platnosci wygrala wyscig
            winner = self.orders.get_by_payment(payment_id)
            if winner is not None:
                logger.info(
                    f"Concurrent finalization for payment {payment_id} resolved to order {winner.id}",
                    extra={"event": "ORDER_ALREADY_FINALIZED", "order_id": winner.id, "payment_id": payment_id},
                )
                return OrderOut.model_validate(winner)
            raise
        except PricingIntegrityError as e:
            self.db.rollback()
            logger.error(
                f"Integrity error while finalizing payment {payment_id}: {e}",
                extra={"event": "ORDER_INTEGRITY_ERROR", "payment_id": payment_id},
            )
            raise
        except Exception:
            self.db.rollback()
            raise

        logger.info(
            f"Order {order.id} finalized for payment {payment_id}, total {order.total}",
            extra={"event": "ORDER_FINALIZED", "order_id": order.id, "payment_id": payment_id},
        )
        self._after_commit(order, snapshot)
        return OrderOut.model_validate(order)

    def _persist_order(
        self,
        payment: PaymentModel,
        snapshot: PricedSnapshot,
        checkout: dict,
        now: datetime,
        gateway_payment_id: str | None,
    ) -> OrderModel:
        if not snapshot.lines:
            raise CheckoutValidationError("Cart is empty")

        # 1. walidacja linii i warunkowa rezerwacja stanu
        products = self.catalog.get_products([line.product_id for line in snapshot.lines])
        for line in snapshot.lines:
            product = products.get(line.product_id)
            if product is None:
                raise CheckoutValidationError(f"Product {line.product_id} not found")
            if product.status != "active":
                raise CheckoutValidationError(f"Product {product.name} is no longer available")
            if product.vendor_id is None or product.vendor is None:
                raise PricingIntegrityError(
                    f"Missing vendor reference for product {product.id}",
                    product_id=product.id,
                    payment_id=payment.id,
                )
            if product.vendor.status != "active":
                raise CheckoutValidationError(f"Vendor of {product.name} is not active")

            if not self.catalog.reserve_stock(product.id, line.quantity):
                self.db.refresh(product, ["stock"])
                logger.warning(
                    f"Stock conflict for product {product.id}: requested {line.quantity}, available {product.stock}",
                    extra={"event": "STOCK_CONFLICT", "product_id": product.id, "payment_id": payment.id},
                )
                raise InsufficientStockError(product.id, line.quantity, product.stock)

        if snapshot.grand_total <= ZERO:
            raise PricingIntegrityError(
                "Order total must be greater than zero",
                grand_total=str(snapshot.grand_total),
                payment_id=payment.id,
            )

        # 2. zamowienie z rozkladem cen skopiowanym ze snapshotu, bez przeliczania
        order = OrderModel(
            customer_id=payment.customer_id,
            address_id=checkout["address_id"],
            payment_id=payment.id,
            payment_method=payment.gateway,
            status="confirmed",
            subtotal=snapshot.subtotal,
            taxes=snapshot.tax_total,
            shipping=snapshot.shipping_total,
            shipping_tax=snapshot.shipping_tax,
            coupon_discount=snapshot.coupon_discount,
            total=snapshot.grand_total,
            coupon_id=snapshot.coupon.coupon_id if snapshot.coupon else None,
            coupon_code=snapshot.coupon.code if snapshot.coupon else None,
            region=checkout.get("region"),
            notes=checkout.get("notes"),
            created_at=now,
        )
        order.items = [self._order_item(line) for line in snapshot.lines]

        # 3. jedna przesylka na vendora
        shipping_by_vendor = {v.vendor_id: v.shipping for v in snapshot.shipping_breakdown}
        vendor_ids = list(dict.fromkeys(line.vendor_id for line in snapshot.lines))
        order.shipments = [
            ShipmentModel(
                vendor_id=vendor_id,
                status="pending",
                shipping_amount=shipping_by_vendor.get(vendor_id, ZERO),
            )
            for vendor_id in vendor_ids
        ]
        self.orders.add_order(order)

        # 4. kupon: licznik + rejestr tylko raz na klienta
        if snapshot.coupon is not None:
            self.coupons.redeem_coupon_once(
                coupon_id=snapshot.coupon.coupon_id,
                customer_id=payment.customer_id,
                order_id=order.id,
                order_amount=snapshot.grand_total,
                discount_amount=snapshot.coupon_discount,
            )

        # 5. zamowione linie znikaja z koszyka
        cart = self.carts.get_cart_by_customer(payment.customer_id)
        if cart is not None:
            self.cart_service.remove_ordered_items(cart, [line.product_id for line in snapshot.lines], now)

        # 6. platnosc
        if payment.status != "paid":
            self.payments.mark_paid(payment.id, now, gateway_payment_id)

        return order

    @staticmethod
    def _order_item(line) -> OrderItemModel:
        campaign = line.campaign
        return OrderItemModel(
            product_id=line.product_id,
            vendor_id=line.vendor_id,
            name=line.name,
            quantity=line.quantity,
            original_price=line.original_price,
            product_discount=line.product_discount,
            campaign_type=campaign.type if campaign else None,
            campaign_id=campaign.id if campaign else None,
            campaign_name=campaign.name if campaign else None,
            campaign_discount=campaign.discount_amount if campaign else ZERO,
            offer_rule_id=line.offer.rule_id if line.offer else None,
            offer_discount=line.offer.discount_amount if line.offer else ZERO,
            coupon_discount=line.coupon_discount,
            unit_price_pre_tax=line.unit_price_pre_tax,
            tax_type=line.tax_type,
            tax_rate=line.tax_rate,
            tax_amount=line.tax_amount,
            final_unit_price=line.final_unit_price,
            line_total=line.line_total,
            shipping_cost=line.shipping_cost,
            breakdown=line.model_dump(mode="json"),
        )

    def _after_commit(self, order: OrderModel, snapshot: PricedSnapshot) -> None:
        """Best effort po commicie, bledy tylko logowane."""
        product_ids = [line.product_id for line in snapshot.lines]
        vendor_ids = [s.vendor_id for s in order.shipments]

        try:
            self.dispatcher.dispatch(order.id, vendor_ids)
        except Exception as e:
            logger.error(
                f"Shipment dispatch failed for order {order.id}: {e}",
                extra={"event": "SHIPMENT_DISPATCH_FAILED", "order_id": order.id},
            )

        try:
            self.notifier.order_confirmed(order)
        except Exception as e:
            logger.warning(
                f"Order notifications failed for order {order.id}: {e}",
                extra={"event": "NOTIFICATION_FAILED", "order_id": order.id},
            )

        try:
            self.abandoned.mark_recovered(order.customer_id, product_ids)
            self._track_pricing_rules(snapshot)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.warning(
                f"Post-order bookkeeping failed for order {order.id}: {e}",
                extra={"event": "POST_ORDER_BOOKKEEPING_FAILED", "order_id": order.id},
            )

        invalidate_products(self.cache, product_ids, vendor_ids)

    def _track_pricing_rules(self, snapshot: PricedSnapshot) -> None:
        for line in snapshot.lines:
            if line.campaign is not None and line.campaign.type == PRICING_RULE:
                self.catalog.record_pricing_rule_usage(
                    line.campaign.id,
                    money(line.campaign.discount_amount * line.quantity),
                )

    # =====================================================
    # STATUS
    # =====================================================

    def update_status(self, order_id: int, status: str) -> OrderOut:
        order = self.orders.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found")

        current = order.status
        if status not in ORDER_TRANSITIONS.get(current, set()):
            raise CheckoutValidationError(f"Cannot change order status from {current} to {status}")

        now = datetime.now(timezone.utc)
        new_data = {"status": status, STATUS_TIMESTAMPS[status]: now}
        if self.orders.transition_status(order_id, current, new_data) == 0:
            self.orders.rollback()
            raise ConflictError("Order status was changed by another operation, retry")

        if status in RESTOCK_STATUSES:
            for item in order.items:
                self.catalog.restore_stock(item.product_id, item.quantity)

        self.orders.commit()
        logger.info(
            f"Order {order_id} status {current} -> {status}",
            extra={"event": "ORDER_STATUS_CHANGED", "order_id": order_id},
        )

        if status in RESTOCK_STATUSES:
            invalidate_products(self.cache, [i.product_id for i in order.items], {i.vendor_id for i in order.items})
        try:
            self.notifier.order_status_changed(order)
        except Exception as e:
            logger.warning(f"Status notification failed for order {order_id}: {e}")

        return OrderOut.model_validate(order)

    # =====================================================
    # HELPERS
    # =====================================================

    @staticmethod
    def _check_payment_method(method: str) -> None:
        if method == COD:
            if not COD_ENABLED:
                raise CheckoutValidationError("Cash on delivery is not available")
            return
        if not DIGITAL_PAYMENT_ENABLED or method not in ENABLED_GATEWAYS:
            raise CheckoutValidationError(f"Payment method {method} is not available")

    def _validate_snapshot(self, customer_id: int, snapshot: PricedSnapshot) -> None:
        if snapshot.unavailable_product_ids:
            raise CheckoutValidationError("Some products in your cart are no longer available")

        if snapshot.coupon is not None and self.coupons.has_used(snapshot.coupon.coupon_id, customer_id):
            raise CheckoutValidationError("You have already used this coupon")

        products = self.catalog.get_products([line.product_id for line in snapshot.lines])
        for line in snapshot.lines:
            product = products[line.product_id]
            if product.status != "active" or product.vendor is None or product.vendor.status != "active":
                raise CheckoutValidationError(f"Product {product.name} is no longer available")
            if line.quantity < product.min_order_qty:
                raise CheckoutValidationError(f"Minimum order quantity for {product.name} is {product.min_order_qty}")
            if line.quantity > product.stock:
                raise CheckoutValidationError(f"Insufficient stock for {product.name}. Available: {product.stock}")

        if snapshot.grand_total <= ZERO:
            logger.error(
                f"Non-positive checkout total {snapshot.grand_total} for customer {customer_id}",
                extra={"event": "PRICING_INTEGRITY", "customer_id": customer_id},
            )
            raise PricingIntegrityError("Order total must be greater than zero", customer_id=customer_id)

    def _open_gateway_order(self, payment: PaymentModel) -> GatewayHandle:
        try:
            data = self.gateway.create_order(
                gateway=payment.gateway,
                amount=Decimal(str(payment.amount)),
                currency=payment.currency,
                idempotency_key=payment.idempotency_key,
                receipt=f"payment_{payment.id}",
            )
        except requests.RequestException as e:
            self.payments.mark_failed(payment.id)
            self.payments.commit()
            logger.error(
                f"Gateway {payment.gateway} unavailable for payment {payment.id}: {e}",
                extra={"event": "GATEWAY_UNAVAILABLE", "payment_id": payment.id},
            )
            raise ConflictError("Payment gateway is unavailable, please retry checkout") from e

        payment.gateway_order_id = data.get("id")
        self.payments.commit()
        logger.info(
            f"Gateway order {payment.gateway_order_id} opened for payment {payment.id}",
            extra={"event": "PAYMENT_PENDING", "payment_id": payment.id},
        )
        return GatewayHandle(
            gateway=payment.gateway,
            gateway_order_id=payment.gateway_order_id,
            client_secret=data.get("client_secret"),
            approval_url=data.get("approval_url"),
        )
