"""HDFC SmartGateway adapter (Juspay order API over httpx).

Session creation: ``POST /session`` with the merchant's API key (HTTP basic
auth) and ``x-merchantid`` header. Status: ``GET /orders/{order_id}``.
"""

import os

import httpx
import structlog

from logistics.errors import PaymentGatewayError
from logistics.gateway.port import GatewayOrderStatus, OrderSession, PaymentGateway

logger = structlog.get_logger(__name__)

DEFAULT_BASE_URL = "https://smartgateway.hdfcuat.bank.in"
DEFAULT_RETURN_URL = "https://app.example.com/billing?payment_redirect=true"


class HdfcGateway(PaymentGateway):
    def __init__(
        self,
        api_key: str,
        merchant_id: str,
        base_url: str = DEFAULT_BASE_URL,
        return_url: str = DEFAULT_RETURN_URL,
        payment_page_client_id: str = "hdfcmaster",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.merchant_id = merchant_id
        self.return_url = return_url
        self.payment_page_client_id = payment_page_client_id
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            auth=(api_key, ""),
            headers={"x-merchantid": merchant_id, "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_env(cls) -> "HdfcGateway":
        return cls(
            api_key=os.environ["HDFC_API_KEY"],
            merchant_id=os.environ["HDFC_MERCHANT_ID"],
            base_url=os.environ.get("HDFC_BASE_URL", DEFAULT_BASE_URL),
            return_url=os.environ.get("HDFC_RETURN_URL", DEFAULT_RETURN_URL),
            payment_page_client_id=os.environ.get("HDFC_PAYMENT_PAGE_CLIENT_ID", "hdfcmaster"),
        )

    def close(self) -> None:
        self._client.close()

    def _request(self, method: str, path: str, **kwargs) -> dict:
        """Send one request; every transport or HTTP failure becomes ``PaymentGatewayError``."""
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.error("HDFC request timed out", path=path)
            raise PaymentGatewayError(f"Payment gateway request to {path} timed out") from exc
        except httpx.TransportError as exc:
            logger.error("HDFC request failed", path=path, error=str(exc))
            raise PaymentGatewayError(f"Payment gateway unreachable: {exc}") from exc
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            logger.error("HDFC returned an error", path=path, status_code=status_code)
            raise PaymentGatewayError(
                f"Payment gateway returned HTTP {status_code}", retryable=status_code >= 500
            ) from exc

        try:
            return response.json()
        except ValueError as exc:
            raise PaymentGatewayError(f"Payment gateway sent an unreadable response for {path}") from exc

    def create_order_session(self, amount: float, merchant_id: str, order_id: str) -> OrderSession:
        payload = {
            "order_id": order_id,
            "amount": f"{amount:.2f}",
            "customer_id": merchant_id,
            "payment_page_client_id": self.payment_page_client_id,
            "action": "paymentPage",
            "return_url": self.return_url,
            "currency": "INR",
            "description": f"Wallet recharge - {order_id}",
        }
        data = self._request("POST", "/session", json=payload, headers={"x-customerid": merchant_id})
        links = data.get("payment_links") or {}
        logger.info("HDFC order session created", order_id=order_id, status=data.get("status"))
        return OrderSession(
            order_id=order_id,
            session_id=data.get("id"),
            payment_link=links.get("web") or links.get("iframe"),
            status=data.get("status"),
        )

    def get_order_status(self, order_id: str) -> GatewayOrderStatus:
        data = self._request("GET", f"/orders/{order_id}")
        amount = data.get("amount")
        return GatewayOrderStatus(
            order_id=data.get("order_id", order_id),
            status=data.get("status", ""),
            amount=float(amount) if amount is not None else None,
            txn_id=data.get("txn_id"),
            bank_ref_no=data.get("bank_ref_no"),
            error_message=data.get("error_message"),
        )
