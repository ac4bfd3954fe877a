# marketplace/services/cart_service.py
from datetime import datetime, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from marketplace.data.models.cart import CartModel
from marketplace.data.models.cart_item import CartItemModel
from marketplace.domain.errors import (
    CheckoutValidationError,
    ConcurrentCartModificationError,
    NotFoundError,
)
from marketplace.domain.money import as_utc, floor_zero, money, to_decimal
from marketplace.domain.pricing import discount_amount, empty_snapshot
from marketplace.domain.schemas import CartItemOut, CartOut, PricedSnapshot
from marketplace.repos.abandoned_cart_repo import AbandonedCartRepo
from marketplace.repos.cart_repo import CartRepo
from marketplace.repos.catalog_repo import CatalogRepo
from marketplace.repos.coupon_repo import CouponRepo
from marketplace.services.pricing_service import PricingService
from marketplace.utils.logging import get_logger

logger = get_logger(__name__)

UPSELL = "upsell"
CROSS_SELL = "cross_sell"


class CartService:
    """
    Use case'y koszyka.
    Query (get) tylko czyta i przelicza, commands (add, update, remove,
    clear, kupon, oferta, merge) zmieniaja stan z optimistic lockingiem
    na kolumnie version. Kazda komenda konczy sie pelnym przeliczeniem.
    """

    def __init__(self, db: Session, pricing: PricingService | None = None):
        self.repo = CartRepo(db)
        self.catalog = CatalogRepo(db)
        self.coupons = CouponRepo(db)
        self.abandoned = AbandonedCartRepo(db)
        self.pricing = pricing or PricingService(db)

    # =====================================================
    # QUERY
    # =====================================================

    def get_cart(self, customer_id: int | None, session_id: str | None) -> CartOut:
        cart = self.find_cart(customer_id, session_id)
        now = datetime.now(timezone.utc)

        if cart is None:
            return CartOut(
                customer_id=customer_id,
                session_id=None if customer_id is not None else session_id,
                snapshot=empty_snapshot(now, customer_id),
            )

        items = self.repo.get_cart_items(cart.id)
        result = self.pricing.price_items(items, cart.customer_id, coupon_id=cart.coupon_id, now=now)

        # niewazny kupon trzeba zdjac z koszyka, to juz jest zapis
        if result.should_clear_coupon:
            return self._save(cart, cart.version, clear_coupon=True)

        return self._to_out(cart, items, result.snapshot)

    def price_for_checkout(self, cart: CartModel, region: str | None):
        """Przeliczenie z regionem wybranego adresu, bez zapisu."""
        items = self.repo.get_cart_items(cart.id)
        return items, self.pricing.price_items(items, cart.customer_id, region=region, coupon_id=cart.coupon_id)

    # =====================================================
    # COMMANDS
    # =====================================================

    def add_item(self, customer_id: int | None, session_id: str | None, product_id: int, quantity: int) -> CartOut:
        if quantity <= 0:
            raise CheckoutValidationError("Quantity must be greater than 0")

        product = self._sellable_product(product_id)
        cart = self._get_or_create_cart(customer_id, session_id)
        version = cart.version

        existing = self.repo.get_cart_item(cart.id, product_id)
        new_quantity = quantity + (existing.quantity if existing else 0)
        self._check_quantity(product, new_quantity)

        if existing:
            existing.quantity = new_quantity
            if existing.offer_price is None:
                existing.price_at_addition = product.unit_price
            self.repo.add_cart_item(existing)
        else:
            self.repo.add_cart_item(
                CartItemModel(
                    cart_id=cart.id,
                    product_id=product.id,
                    vendor_id=product.vendor_id,
                    quantity=new_quantity,
                    price_at_addition=product.unit_price,
                )
            )

        self._track_abandoned(cart, product.id, product.vendor_id, new_quantity, product.unit_price)
        logger.info(
            f"Product {product_id} x{quantity} added to cart {cart.id}",
            extra={"cart_id": cart.id, "product_id": product_id},
        )
        return self._save(cart, version)

    def update_quantity(
        self, customer_id: int | None, session_id: str | None, product_id: int, quantity: int
    ) -> CartOut:
        if quantity <= 0:
            raise CheckoutValidationError("Quantity must be greater than 0")

        cart = self._require_cart(customer_id, session_id)
        version = cart.version
        item = self.repo.get_cart_item(cart.id, product_id)
        if item is None:
            raise NotFoundError("Product not found in cart")

        product = self._sellable_product(product_id)
        self._check_quantity(product, quantity)

        item.quantity = quantity
        self.repo.add_cart_item(item)

        unit_price = item.offer_price if item.offer_price is not None else product.unit_price
        self._track_abandoned(cart, product.id, item.vendor_id, quantity, unit_price)
        return self._save(cart, version)

    def remove_item(self, customer_id: int | None, session_id: str | None, product_id: int) -> CartOut:
        cart = self._require_cart(customer_id, session_id)
        version = cart.version

        if self.repo.delete_cart_item(cart.id, product_id) == 0:
            raise NotFoundError("Product not found in cart")

        self.abandoned.remove(cart.customer_id, cart.session_id, [product_id])
        logger.info(
            f"Product {product_id} removed from cart {cart.id}",
            extra={"cart_id": cart.id, "product_id": product_id},
        )
        return self._save(cart, version)

    def clear_cart(self, customer_id: int | None, session_id: str | None) -> CartOut:
        cart = self._require_cart(customer_id, session_id)
        version = cart.version

        product_ids = [i.product_id for i in self.repo.get_cart_items(cart.id)]
        self.repo.delete_cart_items(cart.id, product_ids)
        self.abandoned.remove(cart.customer_id, cart.session_id)
        return self._save(cart, version, clear_coupon=True)

    def apply_coupon(self, customer_id: int | None, session_id: str | None, code: str) -> CartOut:
        if customer_id is None:
            raise CheckoutValidationError("Login required to apply a coupon")

        cart = self._require_cart(customer_id, session_id)
        version = cart.version
        items = self.repo.get_cart_items(cart.id)
        if not items:
            raise CheckoutValidationError("Cart is empty")

        candidates = self.coupons.find_by_code(code)
        if not candidates:
            raise CheckoutValidationError("Invalid coupon code")

        cart_vendors = {i.vendor_id for i in items}
        matching = [c for c in candidates if c.vendor_id in cart_vendors]
        if not matching:
            raise CheckoutValidationError("Coupon is not applicable to items in your cart")

        coupon = matching[0]
        now = datetime.now(timezone.utc)
        if coupon.status != "active":
            raise CheckoutValidationError("Coupon is not active")
        if now < as_utc(coupon.starts_at):
            raise CheckoutValidationError("Coupon is not valid yet")
        if now > as_utc(coupon.ends_at):
            raise CheckoutValidationError("Coupon has expired")
        if self.coupons.has_used(coupon.id, customer_id):
            raise CheckoutValidationError("You have already used this coupon")

        logger.info(
            f"Coupon {coupon.code} applied to cart {cart.id}",
            extra={"event": "COUPON_APPLIED", "cart_id": cart.id, "coupon_id": coupon.id},
        )
        return self._save(cart, version, coupon=(coupon.id, coupon.code))

    def remove_coupon(self, customer_id: int | None, session_id: str | None) -> CartOut:
        cart = self._require_cart(customer_id, session_id)
        return self._save(cart, cart.version, clear_coupon=True)

    def apply_offer(
        self,
        customer_id: int | None,
        session_id: str | None,
        rule_id: int,
        product_id: int,
        replaced_product_id: int | None = None,
    ) -> CartOut:
        """
        Przyjecie oferty upsell/cross-sell.

        Cena po rabacie oferty jest zamrazana na linii; pozniejsze przeliczenia
        nie nakladaja na nia rabatu produktu ani kampanii.
        """
        rule = self.catalog.get_upsell_rule(rule_id)
        if rule is None or rule.status != "active":
            raise CheckoutValidationError("Offer is no longer available")
        if product_id not in {p.id for p in rule.offered_products}:
            raise CheckoutValidationError("Product is not part of this offer")

        product = self._sellable_product(product_id)
        if product.vendor_id != rule.vendor_id:
            raise CheckoutValidationError("Product is not part of this offer")

        cart = self._get_or_create_cart(customer_id, session_id)
        version = cart.version
        quantity = max(1, product.min_order_qty)

        if rule.rule_type == UPSELL:
            if replaced_product_id is None:
                raise CheckoutValidationError("Upsell offer requires the product it replaces")
            replaced = self.repo.get_cart_item(cart.id, replaced_product_id)
            if replaced is None or replaced.vendor_id != rule.vendor_id:
                raise CheckoutValidationError("Replaced product not found in cart")
            quantity = max(replaced.quantity, product.min_order_qty)
            self.repo.delete_cart_item(cart.id, replaced_product_id)
            self.abandoned.remove(cart.customer_id, cart.session_id, [replaced_product_id])
        elif rule.rule_type != CROSS_SELL:
            raise CheckoutValidationError(f"Unsupported offer type: {rule.rule_type}")

        self._check_quantity(product, quantity)

        price = to_decimal(product.unit_price)
        offer_price = floor_zero(price - discount_amount(price, rule.discount_type, rule.discount_value))

        item = self.repo.get_cart_item(cart.id, product.id)
        if item is None:
            item = CartItemModel(cart_id=cart.id, product_id=product.id, vendor_id=product.vendor_id)
        item.quantity = quantity
        item.price_at_addition = offer_price
        item.offer_rule_id = rule.id
        item.offer_rule_type = rule.rule_type
        item.offer_price = offer_price
        self.repo.add_cart_item(item)

        self._track_abandoned(cart, product.id, product.vendor_id, quantity, offer_price)
        logger.info(
            f"{rule.rule_type} offer {rule.id} applied to cart {cart.id}, product {product.id} at {offer_price}",
            extra={"event": "OFFER_APPLIED", "cart_id": cart.id, "product_id": product.id},
        )
        return self._save(cart, version)

    def merge_guest_cart(self, customer_id: int, session_id: str) -> CartOut:
        self._merge(customer_id, session_id)
        return self.get_cart(customer_id, None)

    def remove_ordered_items(self, cart: CartModel, product_ids: list[int], now: datetime) -> PricedSnapshot:
        """
        Czesc transakcji finalizacji: usuwa zamowione linie i przelicza koszyk.
        Bez commita, robi go finalizer.
        """
        version = cart.version
        self.repo.delete_cart_items(cart.id, product_ids)
        items = self.repo.get_cart_items(cart.id)

        result = self.pricing.price_items(items, cart.customer_id, coupon_id=None, now=now)
        rowcount = self.repo.update_cart_version(
            cart_id=cart.id,
            old_version=version,
            new_data={
                "version": version + 1,
                "coupon_id": None,
                "coupon_code": None,
                "priced_snapshot": result.snapshot.model_dump(mode="json"),
                "updated_at": now,
            },
        )
        if rowcount == 0:
            raise ConcurrentCartModificationError(cart.id)
        return result.snapshot

    # =====================================================
    # HELPERS
    # =====================================================

    def find_cart(self, customer_id: int | None, session_id: str | None) -> CartModel | None:
        if customer_id is not None:
            if session_id:
                # zalogowanie z aktywna sesja goscia
                self._merge(customer_id, session_id)
            return self.repo.get_cart_by_customer(customer_id)
        if not session_id:
            raise CheckoutValidationError("Session ID or login required")
        return self.repo.get_cart_by_session(session_id)

    def _require_cart(self, customer_id: int | None, session_id: str | None) -> CartModel:
        cart = self.find_cart(customer_id, session_id)
        if cart is None:
            raise NotFoundError("Cart not found")
        return cart

    def _get_or_create_cart(self, customer_id: int | None, session_id: str | None) -> CartModel:
        cart = self.find_cart(customer_id, session_id)
        if cart is not None:
            return cart

        new_cart = CartModel(
            customer_id=customer_id,
            session_id=None if customer_id is not None else session_id,
            status="ACTIVE",
            version=1,
        )
        try:
            created = self.repo.create_cart(new_cart)
        except IntegrityError as e:
            # rownolegle utworzenie koszyka dla tego samego wlasciciela
            self.repo.rollback()
            raise ConcurrentCartModificationError(0) from e

        logger.info(f"Created cart {created.id}", extra={"cart_id": created.id, "customer_id": customer_id})
        return created

    def _merge(self, customer_id: int, session_id: str) -> CartModel | None:
        guest = self.repo.get_cart_by_session(session_id)
        if guest is None:
            return None

        guest_items = self.repo.get_cart_items(guest.id)
        target = self.repo.get_cart_by_customer(customer_id)
        if target is None:
            target = self._get_or_create_cart(customer_id, None)
        version = target.version

        products = self.catalog.get_products([i.product_id for i in guest_items])
        merged = 0
        for item in guest_items:
            product = products.get(item.product_id)
            if not self._is_sellable(product):
                logger.info(
                    f"Dropping inactive product {item.product_id} while merging guest cart",
                    extra={"cart_id": target.id, "product_id": item.product_id},
                )
                continue

            existing = self.repo.get_cart_item(target.id, item.product_id)
            if existing:
                existing.quantity += item.quantity
                self.repo.add_cart_item(existing)
            else:
                self.repo.add_cart_item(
                    CartItemModel(
                        cart_id=target.id,
                        product_id=item.product_id,
                        vendor_id=item.vendor_id,
                        quantity=item.quantity,
                        price_at_addition=item.price_at_addition,
                        offer_rule_id=item.offer_rule_id,
                        offer_rule_type=item.offer_rule_type,
                        offer_price=item.offer_price,
                    )
                )
            merged += 1

        self.abandoned.reassign_session(session_id, customer_id)
        self.repo.delete_cart(guest)

        logger.info(
            f"Merged {merged} lines from guest session into cart {target.id}",
            extra={"event": "CART_MERGED", "cart_id": target.id, "customer_id": customer_id},
        )
        self._save(target, version)
        return target

    def _save(
        self,
        cart: CartModel,
        version: int,
        coupon: tuple[int, str] | None = None,
        clear_coupon: bool = False,
    ) -> CartOut:
        now = datetime.now(timezone.utc)
        coupon_id = None if clear_coupon else (coupon[0] if coupon else cart.coupon_id)

        items = self.repo.get_cart_items(cart.id)
        result = self.pricing.price_items(items, cart.customer_id, coupon_id=coupon_id, now=now)

        new_data = {
            "version": version + 1,
            "priced_snapshot": result.snapshot.model_dump(mode="json"),
            "updated_at": now,
        }
        if coupon is not None and not result.should_clear_coupon:
            new_data["coupon_id"], new_data["coupon_code"] = coupon
        if clear_coupon or result.should_clear_coupon:
            new_data["coupon_id"] = None
            new_data["coupon_code"] = None

        rowcount = self.repo.update_cart_version(cart_id=cart.id, old_version=version, new_data=new_data)
        if rowcount == 0:
            self.repo.rollback()
            raise ConcurrentCartModificationError(cart.id)

        self.repo.commit()
        return self._to_out(cart, items, result.snapshot)

    def _to_out(self, cart: CartModel, items, snapshot: PricedSnapshot) -> CartOut:
        return CartOut(
            cart_id=cart.id,
            customer_id=cart.customer_id,
            session_id=cart.session_id,
            version=cart.version,
            coupon_code=cart.coupon_code,
            items=[CartItemOut.model_validate(i) for i in items],
            snapshot=snapshot,
        )

    @staticmethod
    def _is_sellable(product) -> bool:
        return (
            product is not None
            and product.status == "active"
            and product.vendor is not None
            and product.vendor.status == "active"
        )

    def _sellable_product(self, product_id: int):
        product = self.catalog.get_product(product_id)
        if product is None:
            raise NotFoundError("Product not found")
        if product.status != "active":
            raise CheckoutValidationError("Product is not available")
        if product.vendor is None:
            raise CheckoutValidationError("Product has no vendor")
        if product.vendor.status != "active":
            raise CheckoutValidationError("Vendor is not active")
        return product

    @staticmethod
    def _check_quantity(product, quantity: int) -> None:
        if quantity < product.min_order_qty:
            raise CheckoutValidationError(f"Minimum order quantity is {product.min_order_qty}")
        if quantity > product.stock:
            raise CheckoutValidationError(f"Insufficient stock. Available: {product.stock}")

    def _track_abandoned(self, cart: CartModel, product_id: int, vendor_id: int, quantity: int, unit_price) -> None:
        self.abandoned.upsert(
            customer_id=cart.customer_id,
            session_id=cart.session_id,
            product_id=product_id,
            vendor_id=vendor_id,
            quantity=quantity,
            value=money(to_decimal(unit_price) * quantity),
        )
