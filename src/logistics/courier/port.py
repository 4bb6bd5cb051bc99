"""Courier port (abstract interface) and the result types it returns.

The courier is the only source of truth for whether a shipment exists.
Adapters translate provider responses into these result types; they never
decide business outcomes. Transport failures (timeouts, connection errors,
5xx) are raised as ``CourierProviderError`` so callers can tell "the
courier said no" apart from "the courier did not answer".
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class PincodeServiceability:
    pincode: str
    success: bool
    serviceable: bool = False
    pickup_available: bool = False
    cash_on_delivery: bool = False
    prepaid: bool = False
    city: str | None = None
    state_code: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class ShipmentResult:
    """Outcome of a create-shipment call.

    ``success`` alone is not confirmation: only a non-blank ``waybill``
    proves the courier holds the shipment.
    """

    success: bool
    waybill: str | None = None
    provider_status: str | None = None
    error: str | None = None
    raw: dict = field(default_factory=dict)

    @property
    def confirmed(self) -> bool:
        return self.success and bool(self.waybill and str(self.waybill).strip())


@dataclass(frozen=True)
class CancellationResponse:
    """``confirmed`` is True only on an explicit positive answer."""

    success: bool
    confirmed: bool = False
    remark: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class TrackingScan:
    status: str
    timestamp: str | None = None
    location: str | None = None
    remarks: str | None = None
    status_type: str | None = None


@dataclass(frozen=True)
class TrackingResult:
    waybill: str
    success: bool
    status: str | None = None
    status_type: str | None = None
    origin: str | None = None
    destination: str | None = None
    scans: list[TrackingScan] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class PickupResult:
    success: bool
    pickup_id: str | None = None
    error: str | None = None


class CourierPort(ABC):
    """Abstract courier interface."""

    @abstractmethod
    def check_serviceability(self, pincode: str) -> PincodeServiceability:
        """Report whether the courier serves ``pincode``."""
        ...

    @abstractmethod
    def allocate_waybills(self, count: int = 1) -> list[str]:
        """Pre-allocate ``count`` waybill numbers."""
        ...

    @abstractmethod
    def create_shipment(self, payload: dict) -> ShipmentResult:
        """Create one shipment. ``payload`` is built by ``build_shipment_payload``."""
        ...

    @abstractmethod
    def cancel_shipment(self, waybill: str) -> CancellationResponse:
        """Ask the courier to cancel the shipment behind ``waybill``."""
        ...

    @abstractmethod
    def track_shipment(self, waybill: str, reference_id: str | None = None) -> TrackingResult:
        """Fetch the courier's scan history for ``waybill``."""
        ...

    @abstractmethod
    def schedule_pickup(
        self,
        location: str,
        pickup_date: str,
        pickup_time: str,
        expected_count: int = 1,
    ) -> PickupResult:
        """Request a pickup at a registered pickup location."""
        ...

    @abstractmethod
    def render_label(self, waybill: str) -> dict:
        """Structured packing-slip fields for ``waybill``."""
        ...

    @abstractmethod
    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        """Check that a tracking push really came from the courier."""
        ...


def build_shipment_payload(order, waybill: str | None = None) -> dict:
    """Courier create-shipment payload for an in-memory ``Order``."""
    pickup = order.pickup_address
    delivery = order.delivery_address
    shipment = {
        "name": delivery.name or "Customer",
        "add": delivery.full_address,
        "pin": delivery.pincode,
        "city": delivery.city,
        "state": delivery.state,
        "country": "India",
        "phone": delivery.phone,
        "order": order.order_id,
        "payment_mode": _PAYMENT_MODES[order.payment.mode],
        "cod_amount": order.payment.cod_amount or 0,
        "total_amount": order.payment.order_value,
        "return_pin": pickup.pincode,
        "return_city": pickup.city,
        "return_state": pickup.state,
        "return_phone": pickup.phone,
        "return_add": pickup.full_address,
        "return_country": "India",
        "seller_add": pickup.full_address,
        "seller_name": pickup.name or "",
        "weight": round(order.package.weight_kg * 1000),
        "shipment_length": order.package.length_cm,
        "shipment_width": order.package.width_cm,
        "shipment_height": order.package.height_cm,
        "quantity": 1,
        "shipping_mode": "Surface",
    }
    if waybill:
        shipment["waybill"] = waybill
    return {
        "shipments": [shipment],
        "pickup_location": {
            "name": pickup.name or order.warehouse_id or "Default Pickup",
            "add": pickup.full_address,
            "city": pickup.city,
            "pin_code": pickup.pincode,
            "country": "India",
            "phone": pickup.phone,
        },
    }


_PAYMENT_MODES = {"prepaid": "Prepaid", "cod": "COD", "pickup": "Pickup"}
