# marketplace/domain/errors.py
"""
Bledy domenowe checkoutu.

Dziedzicza po wbudowanych wyjatkach. Routery mapuja tylko te klasy
(plus PermissionError -> 403), kazdy inny wyjatek konczy sie 500.
"""


class CheckoutValidationError(ValueError):
    """Blad do poprawienia przez uzytkownika, ponowienie bez zmian nic nie da."""


class NotFoundError(LookupError):
    pass


class ConflictError(RuntimeError):
    """Konflikt wspolbieznosci, klient moze ponowic checkout."""


class InsufficientStockError(ConflictError):
    def __init__(self, product_id: int, requested: int, available: int | None = None):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        if available is None:
            message = f"Insufficient stock for product {product_id}"
        else:
            message = f"Insufficient stock for product {product_id}, available: {available}"
        super().__init__(message)


class CouponAlreadyUsedError(ConflictError):
    def __init__(self, coupon_id: int, customer_id: int):
        self.coupon_id = coupon_id
        self.customer_id = customer_id
        super().__init__("Coupon has already been used by this customer")


class ConcurrentCartModificationError(ConflictError):
    def __init__(self, cart_id: int):
        self.cart_id = cart_id
        super().__init__(f"Cart {cart_id} was modified by another operation, retry")


class PricingIntegrityError(ArithmeticError):
    """Stan, ktory nie powinien wystapic. Logowany z kontekstem, nie pokazywany klientowi."""

    def __init__(self, message: str, **context):
        self.context = context
        super().__init__(message)
