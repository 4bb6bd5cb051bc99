"""Pydantic API schemas for the logistics service.

These are the external API contracts — separate from domain commands.
The API layer validates requests once against these schemas and then
builds immutable command objects for the orchestrator.
"""

from typing import Literal

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class AddressRequest(BaseModel):
    name: str | None = None
    full_address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    pincode: str = Field(pattern=r"^\d{6}$")
    phone: str = Field(pattern=r"^[6-9]\d{9}$")


class PackageRequest(BaseModel):
    weight_kg: float = Field(ge=0.1)
    length_cm: float = Field(ge=1)
    width_cm: float = Field(ge=1)
    height_cm: float = Field(ge=1)
    number_of_boxes: int = Field(default=1, ge=1)


class PaymentRequest(BaseModel):
    mode: Literal["prepaid", "cod", "pickup"]
    order_value: float = Field(ge=0)
    shipping_charge: float = Field(default=0.0, ge=0)
    cod_amount: float = Field(default=0.0, ge=0)


class CreateOrderRequest(BaseModel):
    order_id: str | None = None
    reference_id: str | None = None
    warehouse_id: str | None = None
    pickup_address: AddressRequest | None = None
    delivery_address: AddressRequest
    package: PackageRequest
    payment: PaymentRequest
    zone: Literal["A", "B", "C1", "C2", "D1", "D2", "E", "F"] | None = None
    generate_awb: bool = True


class CancelOrderRequest(BaseModel):
    reason: str | None = None


class SchedulePickupRequest(BaseModel):
    order_ids: list[str] = Field(min_length=1)
    pickup_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    pickup_time: str = Field(pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    location: str | None = None


class BulkOrdersRequest(BaseModel):
    order_ids: list[str] = Field(min_length=1, max_length=500)


class BulkCancelRequest(BulkOrdersRequest):
    reason: str | None = None


class BulkPickupRequest(BulkOrdersRequest):
    pickup_date: str = Field(pattern=r"^\d{4}-\d{2}-\d{2}$")
    pickup_time: str = Field(pattern=r"^\d{2}:\d{2}(:\d{2})?$")
    location: str | None = None


class TopUpRequest(BaseModel):
    amount: float = Field(gt=0)


class TopUpCallbackRequest(BaseModel):
    order_id: str
    # Whatever the gateway puts in the redirect is informational only.
    status: str | None = None


class CourierWebhookRequest(BaseModel):
    waybill: str
    status: str
    status_type: str | None = None
    location: str | None = None
    remarks: str | None = None


class RegisterWarehouseRequest(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    contact_name: str | None = None
    full_address: str = Field(min_length=1)
    city: str = Field(min_length=1)
    state: str = Field(min_length=1)
    pincode: str = Field(pattern=r"^\d{6}$")
    phone: str = Field(pattern=r"^[6-9]\d{9}$")


class ConfigureCourierRequest(BaseModel):
    create_mode: Literal["ok", "fail", "no_waybill", "timeout"] = "ok"
    cancel_mode: Literal["confirmed", "ambiguous", "denied", "timeout"] = "confirmed"


class ConfigureGatewayRequest(BaseModel):
    order_id: str
    status: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class StatusHistoryResponse(BaseModel):
    status: str
    timestamp: str
    remarks: str | None = None
    location: str | None = None
    actor: str | None = None


class OrderResponse(BaseModel):
    order_id: str
    merchant_id: str
    reference_id: str | None = None
    status: str
    waybill: str | None = None
    provider_status: str | None = None
    pickup_id: str | None = None
    payment_mode: str
    shipping_charge: float
    charge_status: str | None = None
    wallet_transaction_id: str | None = None
    cancellation: dict | None = None
    billing: dict | None = None
    status_history: list[StatusHistoryResponse] = []


class BalanceResponse(BaseModel):
    merchant_id: str
    balance: float


class TransactionResponse(BaseModel):
    transaction_id: str
    type: str
    category: str
    amount: float
    status: str
    order_id: str | None = None
    description: str | None = None
    opening_balance: float | None = None
    closing_balance: float | None = None
    gateway_order_id: str | None = None
    created_at: str | None = None


class BillingCycleResponse(BaseModel):
    cycle_id: str
    merchant_id: str
    status: str
    period: str
    start_date: str
    end_date: str
    summary: dict
    zone_distribution: dict
    order_ids: list[str]


class StatusResponse(BaseModel):
    status: str
