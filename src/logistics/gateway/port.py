"""Payment gateway port (abstract interface).

Only wallet top-ups go through the payment gateway. The gateway creates a
hosted payment session; the merchant pays on the gateway's page and is
redirected back. The redirect payload is never trusted: the top-up is
settled from ``get_order_status``.

Adapters raise ``PaymentGatewayError`` when the gateway cannot be reached
or answers with an HTTP error.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

_STATUS_MAP = {
    "CHARGED": "completed",
    "COD_INITIATED": "completed",
    "AUTHORIZED": "pending",
    "PENDING": "pending",
    "PENDING_VBV": "pending",
    "AUTHORIZING": "pending",
    "NEW": "pending",
    "STARTED": "pending",
    "AUTHORIZATION_FAILED": "failed",
    "AUTHENTICATION_FAILED": "failed",
    "JUSPAY_DECLINED": "failed",
    "AUTO_REFUNDED": "failed",
}

_SUCCESS_STATUSES = {"CHARGED", "COD_INITIATED"}


@dataclass(frozen=True)
class OrderSession:
    """A hosted payment session for a top-up."""

    order_id: str
    session_id: str | None = None
    payment_link: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class GatewayOrderStatus:
    """Authoritative status of a gateway order."""

    order_id: str
    status: str
    amount: float | None = None
    txn_id: str | None = None
    bank_ref_no: str | None = None
    error_message: str | None = None


class PaymentGateway(ABC):
    """Abstract payment gateway interface."""

    @abstractmethod
    def create_order_session(self, amount: float, merchant_id: str, order_id: str) -> OrderSession:
        """Create a hosted payment session for ``amount``."""
        ...

    @abstractmethod
    def get_order_status(self, order_id: str) -> GatewayOrderStatus:
        """Fetch the authoritative status of ``order_id`` from the gateway."""
        ...

    def map_payment_status(self, gateway_status: str | None) -> str:
        """Translate a gateway status into ``completed``, ``pending`` or ``failed``."""
        return map_payment_status(gateway_status)

    def is_payment_successful(self, gateway_status: str | None) -> bool:
        return is_payment_successful(gateway_status)


def map_payment_status(gateway_status: str | None) -> str:
    """Unknown statuses stay ``pending`` so a later re-query can settle them."""
    return _STATUS_MAP.get((gateway_status or "").upper(), "pending")


def is_payment_successful(gateway_status: str | None) -> bool:
    return (gateway_status or "").upper() in _SUCCESS_STATUSES
