"""Serviceability gate — pincode and payment-mode checks before dispatch.

The gate is run immediately before every waybill generation attempt and
never caches: courier coverage changes over time. A provider that cannot
answer is treated exactly like a provider that says no.
"""

from dataclasses import dataclass

import structlog

from logistics.courier.port import CourierPort, PincodeServiceability
from logistics.errors import CourierProviderError, ServiceabilityError
from logistics.order.order import PaymentMode

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ServiceabilityReport:
    pickup: PincodeServiceability
    delivery: PincodeServiceability


class ServiceabilityGate:
    def __init__(self, courier: CourierPort):
        self.courier = courier

    def check_serviceable(
        self,
        pickup_pincode: str,
        delivery_pincode: str,
        payment_mode: str,
    ) -> ServiceabilityReport:
        """Return both pincode reports, or raise ``ServiceabilityError``."""
        pickup = self._lookup(pickup_pincode, pickup_pincode, delivery_pincode, "pickup")
        delivery = self._lookup(delivery_pincode, pickup_pincode, delivery_pincode, "delivery")

        if not pickup.pickup_available:
            self._reject(
                f"Pickup is not available at pincode {pickup_pincode}",
                pickup_pincode,
                delivery_pincode,
            )
        if payment_mode == PaymentMode.COD.value and not delivery.cash_on_delivery:
            self._reject(
                f"Cash on delivery is not available at pincode {delivery_pincode}",
                pickup_pincode,
                delivery_pincode,
            )

        return ServiceabilityReport(pickup=pickup, delivery=delivery)

    def _lookup(self, pincode: str, pickup_pincode: str, delivery_pincode: str, role: str) -> PincodeServiceability:
        try:
            report = self.courier.check_serviceability(pincode)
        except CourierProviderError as exc:
            self._reject(
                f"Could not verify {role} pincode {pincode}: {exc.message}",
                pickup_pincode,
                delivery_pincode,
            )
        except Exception as exc:
            logger.exception("Serviceability lookup failed", pincode=pincode, role=role)
            self._reject(
                f"Could not verify {role} pincode {pincode}: {exc}",
                pickup_pincode,
                delivery_pincode,
            )

        if report is None or not report.success:
            reason = report.error if report is not None and report.error else "no answer from courier"
            self._reject(f"Could not verify {role} pincode {pincode}: {reason}", pickup_pincode, delivery_pincode)
        if not report.serviceable:
            self._reject(f"{role.capitalize()} pincode {pincode} is not serviceable", pickup_pincode, delivery_pincode)
        return report

    @staticmethod
    def _reject(reason: str, pickup_pincode: str, delivery_pincode: str):
        logger.warning(
            "Serviceability check failed",
            reason=reason,
            pickup_pincode=pickup_pincode,
            delivery_pincode=delivery_pincode,
        )
        raise ServiceabilityError(reason, pickup_pincode=pickup_pincode, delivery_pincode=delivery_pincode)
