"""Fake courier — deterministic courier for testing and development.

Every pincode is serviceable with pickup and COD unless overridden with
``set_pincode``. Shipment creation and cancellation outcomes are
configurable per test.
"""

import hashlib
import hmac
from itertools import count
from uuid import uuid4

from logistics.courier.port import (
    CancellationResponse,
    CourierPort,
    PickupResult,
    PincodeServiceability,
    ShipmentResult,
    TrackingResult,
    TrackingScan,
)
from logistics.errors import CourierProviderError

CANCEL_CONFIRMED = "confirmed"
CANCEL_AMBIGUOUS = "ambiguous"
CANCEL_DENIED = "denied"
CANCEL_TIMEOUT = "timeout"

CREATE_OK = "ok"
CREATE_FAIL = "fail"
CREATE_NO_WAYBILL = "no_waybill"
CREATE_TIMEOUT = "timeout"


class FakeCourier(CourierPort):
    def __init__(self, webhook_secret: str = "fake-webhook-secret"):
        self.webhook_secret = webhook_secret
        self.pincodes: dict[str, PincodeServiceability] = {}
        self.unreachable_pincodes: set[str] = set()
        self.create_mode = CREATE_OK
        self.fail_on_create_calls: set[int] = set()
        self.cancel_mode = CANCEL_CONFIRMED
        self.pickup_succeeds = True
        self.waybill_allocation_fails = False
        self.shipments: dict[str, dict] = {}
        self.tracking: dict[str, list[TrackingScan]] = {}
        self.calls: list[dict] = []
        self._create_counter = count(1)
        self._waybill_counter = count(1)

    # -------------------------------------------------------------------
    # Test configuration
    # -------------------------------------------------------------------
    def configure(self, create_mode: str = CREATE_OK, cancel_mode: str = CANCEL_CONFIRMED):
        """Configure the fake courier behavior for testing."""
        self.create_mode = create_mode
        self.cancel_mode = cancel_mode

    def set_pincode(
        self,
        pincode: str,
        serviceable: bool = True,
        pickup_available: bool = True,
        cash_on_delivery: bool = True,
    ):
        self.pincodes[pincode] = PincodeServiceability(
            pincode=pincode,
            success=True,
            serviceable=serviceable,
            pickup_available=pickup_available if serviceable else False,
            cash_on_delivery=cash_on_delivery if serviceable else False,
            prepaid=serviceable,
        )

    def fail_on_create(self, *call_numbers: int):
        """Make the given 1-based create-shipment calls fail."""
        self.fail_on_create_calls.update(call_numbers)

    def add_scan(self, waybill: str, status: str, location: str | None = None, remarks: str | None = None):
        self.tracking.setdefault(waybill, []).append(TrackingScan(status=status, location=location, remarks=remarks))

    def calls_to(self, method: str) -> list[dict]:
        return [c for c in self.calls if c["method"] == method]

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def check_serviceability(self, pincode: str) -> PincodeServiceability:
        self.calls.append({"method": "check_serviceability", "pincode": pincode})
        if pincode in self.unreachable_pincodes:
            raise CourierProviderError(f"Serviceability lookup for {pincode} timed out")
        return self.pincodes.get(
            pincode,
            PincodeServiceability(
                pincode=pincode,
                success=True,
                serviceable=True,
                pickup_available=True,
                cash_on_delivery=True,
                prepaid=True,
            ),
        )

    def allocate_waybills(self, count: int = 1) -> list[str]:
        self.calls.append({"method": "allocate_waybills", "count": count})
        if self.waybill_allocation_fails:
            raise CourierProviderError("Waybill allocation unavailable")
        return [self._next_waybill() for _ in range(count)]

    def create_shipment(self, payload: dict) -> ShipmentResult:
        call_number = next(self._create_counter)
        shipment = payload["shipments"][0]
        self.calls.append({"method": "create_shipment", "order": shipment["order"], "call": call_number})

        if self.create_mode == CREATE_TIMEOUT:
            raise CourierProviderError("Shipment creation timed out")
        if self.create_mode == CREATE_FAIL or call_number in self.fail_on_create_calls:
            return ShipmentResult(success=False, error="Pincode blocked for this client")
        if self.create_mode == CREATE_NO_WAYBILL:
            return ShipmentResult(success=True, waybill=None, raw={"packages": []})

        waybill = shipment.get("waybill") or self._next_waybill()
        self.shipments[waybill] = {"payload": payload, "status": "Manifested", "cancelled": False}
        return ShipmentResult(
            success=True,
            waybill=waybill,
            provider_status="Manifested",
            raw={"packages": [{"waybill": waybill, "status": "Success"}]},
        )

    def cancel_shipment(self, waybill: str) -> CancellationResponse:
        self.calls.append({"method": "cancel_shipment", "waybill": waybill})
        if self.cancel_mode == CANCEL_TIMEOUT:
            raise CourierProviderError(f"Cancellation of {waybill} timed out")
        if self.cancel_mode == CANCEL_DENIED:
            return CancellationResponse(success=False, error="Shipment already picked up")
        if self.cancel_mode == CANCEL_AMBIGUOUS:
            return CancellationResponse(success=True, confirmed=False, remark="Request received")

        if waybill in self.shipments:
            self.shipments[waybill]["cancelled"] = True
        return CancellationResponse(success=True, confirmed=True, remark="Shipment has been cancelled")

    def track_shipment(self, waybill: str, reference_id: str | None = None) -> TrackingResult:
        self.calls.append({"method": "track_shipment", "waybill": waybill})
        if waybill not in self.shipments and waybill not in self.tracking:
            return TrackingResult(waybill=waybill, success=False, error="No tracking information found")
        scans = [TrackingScan(status="Manifested")] + self.tracking.get(waybill, [])
        return TrackingResult(waybill=waybill, success=True, status=scans[-1].status, scans=scans)

    def schedule_pickup(
        self,
        location: str,
        pickup_date: str,
        pickup_time: str,
        expected_count: int = 1,
    ) -> PickupResult:
        self.calls.append(
            {
                "method": "schedule_pickup",
                "location": location,
                "pickup_date": pickup_date,
                "pickup_time": pickup_time,
                "expected_count": expected_count,
            }
        )
        if not self.pickup_succeeds:
            return PickupResult(success=False, error="No pickup slots available")
        return PickupResult(success=True, pickup_id=f"PU{uuid4().hex[:8].upper()}")

    def render_label(self, waybill: str) -> dict:
        shipment = self.shipments.get(waybill)
        if shipment is None:
            return {}
        details = shipment["payload"]["shipments"][0]
        return {
            "waybill": waybill,
            "order": details["order"],
            "consignee": details["name"],
            "address": details["add"],
            "pin": details["pin"],
            "payment_mode": details["payment_mode"],
            "cod_amount": details["cod_amount"],
            "barcode": waybill,
        }

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)

    def sign(self, payload: bytes) -> str:
        return hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()

    def _next_waybill(self) -> str:
        return f"FAKE{next(self._waybill_counter):010d}"
