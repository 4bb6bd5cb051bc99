"""Fake payment gateway — deterministic gateway for testing and development.

Sessions are kept in memory. Tests decide the authoritative outcome of an
order with ``set_status`` before the callback is reconciled.
"""

from uuid import uuid4

from logistics.errors import PaymentGatewayError
from logistics.gateway.port import GatewayOrderStatus, OrderSession, PaymentGateway


class FakeGateway(PaymentGateway):
    """Fake gateway whose orders stay NEW until told otherwise."""

    def __init__(self):
        self.should_succeed = True
        self.failure_reason = "Gateway unavailable"
        self.sessions: dict[str, dict] = {}
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool = True, failure_reason: str = "Gateway unavailable"):
        """Configure the fake gateway behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def set_status(self, order_id: str, status: str, txn_id: str | None = None, bank_ref_no: str | None = None):
        session = self.sessions[order_id]
        session["status"] = status
        session["txn_id"] = txn_id or f"txn_{uuid4().hex[:10]}"
        session["bank_ref_no"] = bank_ref_no or f"BRN{uuid4().hex[:8].upper()}"

    def create_order_session(self, amount: float, merchant_id: str, order_id: str) -> OrderSession:
        self.calls.append({"method": "create_order_session", "amount": amount, "order_id": order_id})
        if not self.should_succeed:
            raise PaymentGatewayError(self.failure_reason)

        session_id = f"ses_{uuid4().hex[:12]}"
        self.sessions[order_id] = {
            "amount": amount,
            "merchant_id": merchant_id,
            "status": "NEW",
            "txn_id": None,
            "bank_ref_no": None,
        }
        return OrderSession(
            order_id=order_id,
            session_id=session_id,
            payment_link=f"https://fake-gateway.example.com/pay/{session_id}",
            status="NEW",
        )

    def get_order_status(self, order_id: str) -> GatewayOrderStatus:
        self.calls.append({"method": "get_order_status", "order_id": order_id})
        if not self.should_succeed:
            raise PaymentGatewayError(self.failure_reason)

        session = self.sessions.get(order_id)
        if session is None:
            return GatewayOrderStatus(order_id=order_id, status="NOT_FOUND", error_message="Unknown order")
        return GatewayOrderStatus(
            order_id=order_id,
            status=session["status"],
            amount=session["amount"],
            txn_id=session["txn_id"],
            bank_ref_no=session["bank_ref_no"],
        )
