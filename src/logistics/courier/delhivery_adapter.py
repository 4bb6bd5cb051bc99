"""Delhivery courier adapter (httpx, token auth).

Staging and production hosts differ; ``PROTEAN_ENV=production`` selects
the production host unless ``DELHIVERY_API_URL`` is set. Every request
carries ``Authorization: Token <key>`` and a 30 second timeout.
"""

import hashlib
import hmac
import os
import re

import httpx
import structlog

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

logger = structlog.get_logger(__name__)

PRODUCTION_URL = "https://track.delhivery.com/api"
STAGING_URL = "https://staging-express.delhivery.com/api"


def default_base_url() -> str:
    if os.environ.get("DELHIVERY_API_URL"):
        return os.environ["DELHIVERY_API_URL"]
    if os.environ.get("PROTEAN_ENV") == "production":
        return PRODUCTION_URL
    return os.environ.get("DELHIVERY_STAGING_URL", STAGING_URL)


# Denials are checked first: "Cancellation not allowed" mentions cancellation too.
_CANCEL_DENIAL = re.compile(r"\b(not|failed|unable|cannot|can't|denied|rejected|error)\b")
_CANCEL_CONFIRMED = re.compile(
    r"(has been cancel+ed|cancel+ed successfully|successfully cancel+ed|cancellation successful)"
)


def cancellation_confirmed(data: dict) -> bool:
    """True only for an explicit, positive cancellation answer from Delhivery."""
    remark = str(data.get("remark") or data.get("rmk") or "").lower()
    if data.get("status") is False or _CANCEL_DENIAL.search(remark):
        return False
    return data.get("status") is True or bool(_CANCEL_CONFIRMED.search(remark))


class DelhiveryCourier(CourierPort):
    def __init__(
        self,
        api_key: str,
        base_url: str | None = None,
        webhook_secret: str | None = None,
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.webhook_secret = webhook_secret
        self._client = httpx.Client(
            base_url=(base_url or default_base_url()).rstrip("/"),
            headers={
                "Authorization": f"Token {api_key}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "DelhiveryCourier":
        return cls(
            api_key=os.environ["DELHIVERY_API_KEY"],
            webhook_secret=os.environ.get("DELHIVERY_WEBHOOK_SECRET"),
        )

    def close(self) -> None:
        self._client.close()

    # -------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------
    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            logger.error("Delhivery request timed out", path=path)
            raise CourierProviderError(f"Courier request to {path} timed out") from exc
        except httpx.TransportError as exc:
            logger.error("Delhivery request failed", path=path, error=str(exc))
            raise CourierProviderError(f"Courier unreachable: {exc}") from exc

        if response.status_code >= 500:
            logger.error("Delhivery server error", path=path, status_code=response.status_code)
            raise CourierProviderError(f"Courier returned HTTP {response.status_code}")
        return response

    @staticmethod
    def _json(response: httpx.Response):
        try:
            return response.json()
        except ValueError:
            return {}

    # -------------------------------------------------------------------
    # Port
    # -------------------------------------------------------------------
    def check_serviceability(self, pincode: str) -> PincodeServiceability:
        response = self._request("GET", "/c/api/pin-codes/json/", params={"filter_codes": pincode})
        if response.status_code != 200:
            return PincodeServiceability(pincode=pincode, success=False, error=f"HTTP {response.status_code}")

        codes = (self._json(response) or {}).get("delivery_codes") or []
        if not codes:
            return PincodeServiceability(pincode=pincode, success=True, serviceable=False)

        details = codes[0].get("postal_code", codes[0])
        return PincodeServiceability(
            pincode=pincode,
            success=True,
            serviceable=True,
            pickup_available=details.get("pickup") == "Y",
            cash_on_delivery=details.get("cash_on_delivery", details.get("cod")) == "Y",
            prepaid=details.get("pre_paid") == "Y",
            city=details.get("city"),
            state_code=details.get("state_code"),
        )

    def allocate_waybills(self, count: int = 1) -> list[str]:
        response = self._request("GET", "/waybill/api/bulk/json/", params={"count": count})
        if response.status_code != 200:
            raise CourierProviderError(f"Waybill allocation failed with HTTP {response.status_code}")
        data = self._json(response)
        if isinstance(data, str):
            return [w.strip() for w in data.split(",") if w.strip()]
        return [str(w) for w in data or []]

    def create_shipment(self, payload: dict) -> ShipmentResult:
        order_id = payload["shipments"][0].get("order")
        response = self._request(
            "POST",
            "/cmu/create.json",
            json=payload,
        )
        data = self._json(response) or {}
        if response.status_code != 200 or not data.get("success"):
            error = data.get("rmk") or _first_remark(data) or f"HTTP {response.status_code}"
            logger.warning("Delhivery rejected shipment", order_id=order_id, error=error)
            return ShipmentResult(success=False, error=error, raw=data)

        packages = data.get("packages") or []
        waybill = packages[0].get("waybill") if packages else None
        return ShipmentResult(
            success=True,
            waybill=waybill,
            provider_status=packages[0].get("status") if packages else None,
            raw=data,
        )

    def cancel_shipment(self, waybill: str) -> CancellationResponse:
        response = self._request(
            "POST",
            "/api/backend/clientwarehouse/editorders/",
            json={"waybill": waybill, "cancellation": True},
        )
        data = self._json(response) or {}
        remark = data.get("remark") or data.get("rmk")
        if response.status_code != 200:
            return CancellationResponse(success=False, remark=remark, error=f"HTTP {response.status_code}")

        return CancellationResponse(success=True, confirmed=cancellation_confirmed(data), remark=remark)

    def track_shipment(self, waybill: str, reference_id: str | None = None) -> TrackingResult:
        params = {"waybill": waybill, "ref_ids": reference_id or ""}
        response = self._request("GET", "/v1/packages/json/", params=params)
        data = self._json(response) or {}
        shipments = data.get("ShipmentData") or []
        if response.status_code != 200 or not shipments:
            return TrackingResult(waybill=waybill, success=False, error="No tracking information found")

        shipment = shipments[0].get("Shipment", shipments[0])
        status = shipment.get("Status") or {}
        scans = []
        for entry in shipment.get("Scans") or []:
            detail = entry.get("ScanDetail", entry)
            scans.append(
                TrackingScan(
                    status=detail.get("Scan") or detail.get("ScanType") or "",
                    timestamp=detail.get("ScanDateTime"),
                    location=detail.get("ScannedLocation") or detail.get("ScanLocation"),
                    remarks=detail.get("Instructions") or detail.get("Remarks"),
                    status_type=detail.get("StatusType") or detail.get("ScanType"),
                )
            )
        return TrackingResult(
            waybill=shipment.get("AWB", waybill),
            success=True,
            status=status.get("Status") if isinstance(status, dict) else status,
            status_type=status.get("StatusType") if isinstance(status, dict) else None,
            origin=shipment.get("Origin"),
            destination=shipment.get("Destination"),
            scans=scans,
        )

    def schedule_pickup(
        self,
        location: str,
        pickup_date: str,
        pickup_time: str,
        expected_count: int = 1,
    ) -> PickupResult:
        response = self._request(
            "POST",
            "/fm/request/new/",
            json={
                "pickup_location": location,
                "pickup_date": pickup_date,
                "pickup_time": pickup_time,
                "expected_package_count": expected_count,
            },
        )
        data = self._json(response) or {}
        if response.status_code not in (200, 201) or not data.get("pickup_id"):
            error = data.get("error") or data.get("message") or f"HTTP {response.status_code}"
            return PickupResult(success=False, error=str(error))
        return PickupResult(success=True, pickup_id=str(data["pickup_id"]))

    def render_label(self, waybill: str) -> dict:
        response = self._request("GET", "/p/packing_slip", params={"wbns": waybill, "pdf": "false"})
        data = self._json(response) or {}
        packages = data.get("packages") or []
        if response.status_code != 200 or not packages:
            return {}
        slip = packages[0]
        return {
            "waybill": slip.get("wbn", waybill),
            "order": slip.get("oid"),
            "consignee": slip.get("name"),
            "address": slip.get("address"),
            "pin": slip.get("pin"),
            "destination": slip.get("destination"),
            "sort_code": slip.get("sort_code"),
            "payment_mode": slip.get("pt"),
            "cod_amount": slip.get("cod"),
            "barcode": slip.get("barcode"),
        }

    def verify_webhook_signature(self, payload: bytes, signature: str | None) -> bool:
        if not self.webhook_secret:
            logger.warning("Courier webhook secret not configured, rejecting push")
            return False
        if not signature:
            return False
        expected = hmac.new(self.webhook_secret.encode(), payload, hashlib.sha256).hexdigest()
        return hmac.compare_digest(expected, signature)


def _first_remark(data: dict) -> str | None:
    for package in data.get("packages") or []:
        remarks = package.get("remarks")
        if remarks:
            return remarks[0] if isinstance(remarks, list) else str(remarks)
    return None
