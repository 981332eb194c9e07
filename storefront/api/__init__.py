# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import admin_orders, carts, health, orders, payments, users


def create_app(**kwargs) -> FastAPI:
    app = FastAPI(title="Storefront Checkout Service", version="1.0.0", **kwargs)

    app.include_router(health.router)
    app.include_router(users.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(payments.router)
    app.include_router(admin_orders.router)

    return app
