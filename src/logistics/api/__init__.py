"""Logistics API package."""

from logistics.api.routes import (
    billing_router,
    bulk_router,
    install_exception_handlers,
    order_router,
    wallet_router,
    warehouse_router,
    webhook_router,
)

__all__ = [
    "order_router",
    "bulk_router",
    "wallet_router",
    "webhook_router",
    "billing_router",
    "warehouse_router",
    "install_exception_handlers",
]
