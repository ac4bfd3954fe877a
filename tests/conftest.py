# tests/conftest.py
import os

# przed importem marketplace: settings czyta env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import marketplace.data.models  # noqa: F401
from marketplace.data.database import Base, get_db
from marketplace.data.models import (
    AddressModel,
    CouponModel,
    CustomerModel,
    FlashSaleModel,
    PricingRuleModel,
    ProductModel,
    RegionalTaxRateModel,
    ShippingRuleModel,
    TaxSettingsModel,
    UpsellRuleModel,
    VendorModel,
)
from marketplace.services.cart_service import CartService
from marketplace.services.order_service import OrderService


# =====================================================
# FAKES - zadnego redisa, celery ani sieci w testach
# =====================================================


class FakeDispatcher:
    def __init__(self):
        self.calls = []

    def dispatch(self, order_id, vendor_ids):
        self.calls.append((order_id, list(vendor_ids)))


class FakeNotifier:
    def __init__(self, fail=False):
        self.confirmed = []
        self.status_changes = []
        self.fail = fail

    def order_confirmed(self, order):
        if self.fail:
            raise RuntimeError("smtp down")
        self.confirmed.append(order.id)

    def order_status_changed(self, order):
        self.status_changes.append((order.id, order.status))


class FakeGateway:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    def create_order(self, gateway, amount, currency, idempotency_key, receipt):
        self.calls.append(
            {"gateway": gateway, "amount": amount, "currency": currency, "idempotency_key": idempotency_key}
        )
        if self.fail:
            raise requests.ConnectionError("gateway timeout")
        return {"id": f"gw_{receipt}", "client_secret": "secret_123"}


class FakeCache:
    def __init__(self):
        self.store = {}
        self.invalidated = []

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, ttl=None):
        self.store[key] = value

    def invalidate(self, *keys):
        self.invalidated.extend(keys)
        for key in keys:
            self.store.pop(key, None)
        return len(keys)


# =====================================================
# BAZA
# =====================================================


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


class Seeder:
    """Fabryka rekordow testowych z rozsadnymi wartosciami domyslnymi."""

    def __init__(self, db):
        self.db = db
        self.now = datetime.now(timezone.utc)

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        return obj

    def vendor(self, **kw):
        kw.setdefault("name", "Vendor")
        return self._save(VendorModel(**kw))

    def customer(self, **kw):
        kw.setdefault("name", "Customer")
        return self._save(CustomerModel(**kw))

    def address(self, customer, region="Maharashtra", **kw):
        return self._save(AddressModel(customer_id=customer.id, region=region, is_default=True, **kw))

    def product(self, vendor, price="1000", stock=10, **kw):
        kw.setdefault("name", "Product")
        return self._save(
            ProductModel(
                vendor_id=vendor.id if vendor is not None else None,
                unit_price=Decimal(price),
                stock=stock,
                **kw,
            )
        )

    def shipping_rule(self, vendor, flat_rate="50", threshold="0", active=True):
        return self._save(
            ShippingRuleModel(
                vendor_id=vendor.id,
                flat_rate=Decimal(flat_rate),
                free_shipping_threshold=Decimal(threshold),
                is_active=active,
            )
        )

    def tax_settings(self, vendor, rate="18", method="exclude_shipping", regional=None):
        settings = TaxSettingsModel(vendor_id=vendor.id, default_rate=Decimal(rate), calculation_method=method)
        settings.regional_rates = [
            RegionalTaxRateModel(region=region, rate=Decimal(r)) for region, r in (regional or {}).items()
        ]
        return self._save(settings)

    def coupon(self, vendor, code="SAVE20", discount_type="percentage", value="20", **kw):
        kw.setdefault("starts_at", self.now - timedelta(days=1))
        kw.setdefault("ends_at", self.now + timedelta(days=1))
        return self._save(
            CouponModel(vendor_id=vendor.id, code=code, discount_type=discount_type, value=Decimal(value), **kw)
        )

    def flash_sale(self, vendor, products, discount_type="percentage", value="10", **kw):
        kw.setdefault("name", "Flash")
        kw.setdefault("starts_at", self.now - timedelta(days=1))
        kw.setdefault("ends_at", self.now + timedelta(days=1))
        sale = FlashSaleModel(vendor_id=vendor.id, discount_type=discount_type, discount_value=Decimal(value), **kw)
        sale.products = list(products)
        return self._save(sale)

    def pricing_rule(self, vendor, products, discount_type="percentage", value="10", **kw):
        kw.setdefault("name", "Rule")
        kw.setdefault("starts_at", self.now - timedelta(days=1))
        kw.setdefault("ends_at", self.now + timedelta(days=1))
        rule = PricingRuleModel(vendor_id=vendor.id, discount_type=discount_type, discount_value=Decimal(value), **kw)
        rule.products = list(products)
        return self._save(rule)

    def upsell_rule(self, vendor, products, rule_type="cross_sell", discount_type="percentage", value="25", **kw):
        kw.setdefault("name", "Offer")
        rule = UpsellRuleModel(
            vendor_id=vendor.id,
            rule_type=rule_type,
            discount_type=discount_type,
            discount_value=Decimal(value),
            **kw,
        )
        rule.offered_products = list(products)
        return self._save(rule)


@pytest.fixture
def seed(db):
    return Seeder(db)


@pytest.fixture
def shop(seed):
    """Jeden vendor, stawka 18% exclusive, wysylka 50 bez progu, klient z adresem."""
    vendor = seed.vendor(name="Books")
    seed.shipping_rule(vendor, flat_rate="50", threshold="0")
    seed.tax_settings(vendor, rate="18")
    product = seed.product(vendor, price="1000", stock=5, discount_type="percentage", discount_value=Decimal("10"))
    customer = seed.customer()
    address = seed.address(customer)
    return {"vendor": vendor, "product": product, "customer": customer, "address": address}


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def failing_gateway():
    return FakeGateway(fail=True)


@pytest.fixture
def failing_notifier():
    return FakeNotifier(fail=True)


@pytest.fixture
def cache():
    return FakeCache()


@pytest.fixture
def cart_service(db):
    return CartService(db)


@pytest.fixture
def order_service(db, gateway, dispatcher, notifier, cache):
    return OrderService(db, gateway=gateway, dispatcher=dispatcher, notifier=notifier, cache=cache)


@pytest.fixture
def client(session_factory, gateway, dispatcher, notifier, cache):
    from marketplace.api.routers import catalog, orders
    from marketplace.main import create_app

    app = create_app(with_lifespan=False)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    def override_order_service():
        session = session_factory()
        try:
            yield OrderService(session, gateway=gateway, dispatcher=dispatcher, notifier=notifier, cache=cache)
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[catalog.get_cache] = lambda: cache
    app.dependency_overrides[orders.get_service] = override_order_service

    with TestClient(app) as c:
        yield c
