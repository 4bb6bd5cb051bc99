import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from logistics.api import (
    billing_router,
    bulk_router,
    install_exception_handlers,
    order_router,
    wallet_router,
    warehouse_router,
    webhook_router,
)
from protean.integrations.fastapi import register_exception_handlers


@pytest.fixture()
def client():
    app = FastAPI()
    for router in (order_router, bulk_router, wallet_router, webhook_router, billing_router, warehouse_router):
        app.include_router(router)
    register_exception_handlers(app)
    install_exception_handlers(app)
    return TestClient(app)
