# marketplace/api/__init__.py
from marketplace.api.routers import carts, catalog, health, orders, payments

routers = (
    health.router,
    catalog.router,
    carts.router,
    orders.router,
    payments.router,
)
