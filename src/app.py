"""Logistics FastAPI application.

Web server that runs the fulfillment workflows synchronously per request.
Each request is wrapped in the logistics domain context and tagged with
the merchant and a request id in the structured log context.

Usage:
    uvicorn src.app:app --host 0.0.0.0 --port 8000 --reload
"""

# ---------------------------------------------------------------------------
# Domain initialization
# ---------------------------------------------------------------------------
# The domain is initialized at module level so uvicorn workers share it.
# PROTEAN_ENV controls which config overlay is applied:
#   - "test"       → event_processing = "sync"  (handlers fire in UoW)
#   - "production" → event_processing = "async" (handlers fire via Engine)
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from logistics.domain import logistics
from logistics.utils.logging import add_context, clear_context
from protean.integrations.fastapi import register_exception_handlers

logistics.init()

# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------
app = FastAPI(
    title="Logistics API",
    description="Shipment fulfillment, merchant wallet and billing",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def domain_context_middleware(request: Request, call_next):
    """Push the logistics domain context and bind request log context."""
    if request.url.path == "/health":
        return await call_next(request)

    add_context(
        request_id=request.headers.get("x-request-id") or uuid4().hex,
        merchant_id=request.headers.get("x-merchant-id"),
        path=request.url.path,
    )
    try:
        with logistics.domain_context():
            response = await call_next(request)
    finally:
        clear_context()
    return response


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
from logistics.api import (  # noqa: E402
    billing_router,
    bulk_router,
    install_exception_handlers,
    order_router,
    wallet_router,
    warehouse_router,
    webhook_router,
)

app.include_router(order_router)
app.include_router(bulk_router)
app.include_router(wallet_router)
app.include_router(webhook_router)
app.include_router(billing_router)
app.include_router(warehouse_router)

register_exception_handlers(app)
install_exception_handlers(app)


# ---------------------------------------------------------------------------
# Health / root
# ---------------------------------------------------------------------------
@app.get("/health")
async def health():
    return JSONResponse(
        content={
            "status": "ok",
            "domains": {"logistics": {"name": logistics.name}},
        }
    )
