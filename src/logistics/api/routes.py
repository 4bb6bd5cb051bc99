"""FastAPI routes for the logistics service.

Every merchant-facing route is scoped by the ``X-Merchant-Id`` header.
Authentication sits in front of this service and sets that header.
"""

import os
from dataclasses import asdict

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from logistics.api.schemas import (
    BalanceResponse,
    BillingCycleResponse,
    BulkCancelRequest,
    BulkOrdersRequest,
    BulkPickupRequest,
    CancelOrderRequest,
    ConfigureCourierRequest,
    ConfigureGatewayRequest,
    CourierWebhookRequest,
    CreateOrderRequest,
    OrderResponse,
    RegisterWarehouseRequest,
    SchedulePickupRequest,
    StatusResponse,
    TopUpCallbackRequest,
    TopUpRequest,
    TransactionResponse,
)
from logistics.billing.aggregator import BillingCycleAggregator
from logistics.courier import get_courier
from logistics.courier.fake_adapter import FakeCourier
from logistics.errors import LogisticsError
from logistics.gateway import get_gateway
from logistics.gateway.fake_adapter import FakeGateway
from logistics.orchestration.commands import CreateShipmentOrder
from logistics.orchestration.orchestrator import FulfillmentOrchestrator, create_orchestrator
from logistics.order.tracking import UpdateShipmentStatus
from logistics.wallet.ledger import WalletLedger
from logistics.wallet.topup import WalletTopUpService, create_topup_service
from logistics.warehouse.warehouse import Warehouse


def get_orchestrator() -> FulfillmentOrchestrator:
    return create_orchestrator()


def get_topup_service() -> WalletTopUpService:
    return create_topup_service()


def install_exception_handlers(app: FastAPI) -> None:
    """Render ``LogisticsError`` subclasses with their status code and details."""

    @app.exception_handler(LogisticsError)
    async def logistics_error_handler(request: Request, exc: LogisticsError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def _guard_non_production(what: str) -> None:
    if os.environ.get("PROTEAN_ENV") == "production":
        raise HTTPException(status_code=403, detail=f"{what} configuration not available in production")


def _order_response(order) -> OrderResponse:
    return OrderResponse(
        order_id=order.order_id,
        merchant_id=str(order.merchant_id),
        reference_id=order.reference_id,
        status=order.status,
        waybill=order.waybill,
        provider_status=order.provider_status,
        pickup_id=order.pickup_id,
        payment_mode=order.payment.mode,
        shipping_charge=order.shipping_charge,
        charge_status=order.charge_status,
        wallet_transaction_id=order.wallet_transaction_id,
        cancellation=order.cancellation.to_dict() if order.cancellation else None,
        billing=order.billing.to_dict() if order.billing else None,
        status_history=[
            {
                "status": entry.status,
                "timestamp": entry.timestamp.isoformat(),
                "remarks": entry.remarks,
                "location": entry.location,
                "actor": entry.actor,
            }
            for entry in order.history()
        ],
    )


def _transaction_response(txn) -> TransactionResponse:
    return TransactionResponse(
        transaction_id=txn.transaction_id,
        type=txn.type,
        category=txn.category,
        amount=txn.amount,
        status=txn.status,
        order_id=txn.order_id,
        description=txn.description,
        opening_balance=txn.balance.opening_balance if txn.balance else None,
        closing_balance=txn.balance.closing_balance if txn.balance else None,
        gateway_order_id=txn.gateway_order_id,
        created_at=txn.created_at.isoformat() if txn.created_at else None,
    )


# ---------------------------------------------------------------------------
# Orders
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201)
async def create_order(
    body: CreateOrderRequest,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Create an order. Requests with more than one box fan out per box."""
    command = CreateShipmentOrder(
        merchant_id=x_merchant_id,
        order_id=body.order_id,
        reference_id=body.reference_id,
        warehouse_id=body.warehouse_id,
        pickup_address=body.pickup_address.model_dump() if body.pickup_address else None,
        delivery_address=body.delivery_address.model_dump(),
        package=body.package.model_dump(),
        payment=body.payment.model_dump(),
        zone=body.zone,
        generate_awb=body.generate_awb,
    )
    if body.package.number_of_boxes > 1:
        return orchestrator.create_multi_package_order(command).to_dict()
    return orchestrator.create_order(command).to_dict()


@order_router.post("/pickup")
async def schedule_pickup(
    body: SchedulePickupRequest,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = orchestrator.schedule_pickup(
        x_merchant_id,
        body.order_ids,
        body.pickup_date,
        body.pickup_time,
        location=body.location,
    )
    return result.to_dict()


@order_router.post("/courier/configure")
async def configure_courier(body: ConfigureCourierRequest) -> dict:
    """Configure the FakeCourier behavior (non-production only)."""
    _guard_non_production("Courier")
    courier = get_courier()
    if not isinstance(courier, FakeCourier):
        raise HTTPException(status_code=400, detail="Courier configuration only available for FakeCourier")
    courier.configure(create_mode=body.create_mode, cancel_mode=body.cancel_mode)
    return {"courier": type(courier).__name__, "create_mode": courier.create_mode, "cancel_mode": courier.cancel_mode}


@order_router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: str,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> OrderResponse:
    return _order_response(orchestrator.get_order(x_merchant_id, order_id))


@order_router.post("/{order_id}/awb")
async def generate_awb(
    order_id: str,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.generate_awb(x_merchant_id, order_id).to_dict()


@order_router.post("/{order_id}/cancel")
async def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.cancel_order(x_merchant_id, order_id, reason=body.reason).to_dict()


@order_router.get("/{order_id}/tracking")
async def track_order(
    order_id: str,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    tracking = orchestrator.track_order(x_merchant_id, order_id)
    return {
        "waybill": tracking.waybill,
        "success": tracking.success,
        "status": tracking.status,
        "scans": [asdict(scan) for scan in tracking.scans],
        "error": tracking.error,
    }


@order_router.get("/{order_id}/label")
async def render_label(
    order_id: str,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.render_label(x_merchant_id, order_id)


# ---------------------------------------------------------------------------
# Bulk
# ---------------------------------------------------------------------------
bulk_router = APIRouter(prefix="/bulk", tags=["bulk"])


@bulk_router.post("/generate-awb")
async def bulk_generate_awb(
    body: BulkOrdersRequest,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.bulk_generate_awb(x_merchant_id, body.order_ids).to_dict()


@bulk_router.post("/request-pickup")
async def bulk_request_pickup(
    body: BulkPickupRequest,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    result = orchestrator.bulk_request_pickup(
        x_merchant_id,
        body.order_ids,
        body.pickup_date,
        body.pickup_time,
        location=body.location,
    )
    return result.to_dict()


@bulk_router.post("/cancel")
async def bulk_cancel(
    body: BulkCancelRequest,
    x_merchant_id: str = Header(),
    orchestrator: FulfillmentOrchestrator = Depends(get_orchestrator),
) -> dict:
    return orchestrator.bulk_cancel(x_merchant_id, body.order_ids, reason=body.reason).to_dict()


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------
wallet_router = APIRouter(prefix="/wallet", tags=["wallet"])


@wallet_router.get("/balance", response_model=BalanceResponse)
async def wallet_balance(x_merchant_id: str = Header()) -> BalanceResponse:
    return BalanceResponse(merchant_id=x_merchant_id, balance=WalletLedger().balance(x_merchant_id))


@wallet_router.get("/transactions", response_model=list[TransactionResponse])
async def wallet_transactions(
    x_merchant_id: str = Header(),
    type: str | None = Query(default=None),
    category: str | None = Query(default=None),
    status: str | None = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[TransactionResponse]:
    txns = WalletLedger().transactions(x_merchant_id, txn_type=type, category=category, status=status, limit=limit)
    return [_transaction_response(txn) for txn in txns]


@wallet_router.get("/summary")
async def wallet_summary(x_merchant_id: str = Header()) -> dict:
    return WalletLedger().summary(x_merchant_id)


@wallet_router.post("/topup", status_code=201)
async def start_topup(
    body: TopUpRequest,
    x_merchant_id: str = Header(),
    service: WalletTopUpService = Depends(get_topup_service),
) -> dict:
    return service.initiate(x_merchant_id, body.amount).to_dict()


@wallet_router.post("/topup/callback", response_model=TransactionResponse)
async def topup_callback(
    body: TopUpCallbackRequest,
    service: WalletTopUpService = Depends(get_topup_service),
) -> TransactionResponse:
    """Gateway redirect or webhook. Settlement uses the gateway's own status."""
    return _transaction_response(service.reconcile(body.order_id))


@wallet_router.post("/gateway/configure")
async def configure_gateway(body: ConfigureGatewayRequest) -> dict:
    """Set the outcome of a FakeGateway order (non-production only)."""
    _guard_non_production("Gateway")
    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")
    if body.order_id not in gateway.sessions:
        raise HTTPException(status_code=404, detail=f"Unknown gateway order {body.order_id}")
    gateway.set_status(body.order_id, body.status)
    return {"order_id": body.order_id, "status": body.status}


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/courier", response_model=StatusResponse)
async def courier_webhook(
    request: Request,
    x_courier_signature: str = Header(default=""),
) -> StatusResponse:
    """Courier tracking push, verified against the raw request body."""
    payload = await request.body()
    if not get_courier().verify_webhook_signature(payload, x_courier_signature):
        raise HTTPException(status_code=401, detail="Invalid courier webhook signature")

    body = CourierWebhookRequest.model_validate_json(payload)
    status = current_domain.process(
        UpdateShipmentStatus(
            waybill=body.waybill,
            courier_status=body.status,
            status_type=body.status_type,
            location=body.location,
            remarks=body.remarks,
        ),
        asynchronous=False,
    )
    return StatusResponse(status=status)


# ---------------------------------------------------------------------------
# Billing
# ---------------------------------------------------------------------------
billing_router = APIRouter(prefix="/billing", tags=["billing"])


@billing_router.get("/cycles/current", response_model=BillingCycleResponse)
async def current_billing_cycle(x_merchant_id: str = Header()) -> BillingCycleResponse:
    cycle = BillingCycleAggregator().get_current_cycle(x_merchant_id)
    return BillingCycleResponse(
        cycle_id=cycle.cycle_id,
        merchant_id=str(cycle.merchant_id),
        status=cycle.status,
        period=cycle.period_display,
        start_date=cycle.start_date.isoformat(),
        end_date=cycle.end_date.isoformat(),
        summary=cycle.summary(),
        zone_distribution=cycle.zone_distribution,
        order_ids=[item.order_id for item in cycle.line_items or []],
    )


# ---------------------------------------------------------------------------
# Warehouses
# ---------------------------------------------------------------------------
warehouse_router = APIRouter(prefix="/warehouses", tags=["warehouses"])


@warehouse_router.post("", status_code=201)
async def register_warehouse(body: RegisterWarehouseRequest, x_merchant_id: str = Header()) -> dict:
    warehouse = Warehouse.register(x_merchant_id, **body.model_dump())
    current_domain.repository_for(Warehouse).add(warehouse)
    return {"warehouse_id": warehouse.warehouse_id, "name": warehouse.name}
