"""Wallet top-up through the payment gateway.

``initiate`` opens a gateway session and records a pending credit.
``reconcile`` handles the gateway's redirect or webhook: it looks the
pending credit up by gateway order id and settles it from the gateway's
own order status. The callback payload itself is never trusted.
"""

import random
import string
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.utils.globals import current_domain

from logistics.gateway import get_gateway
from logistics.gateway.port import PaymentGateway
from logistics.utils.money import round2
from logistics.wallet.ledger import WalletLedger
from logistics.wallet.transaction import WalletTransaction

logger = structlog.get_logger(__name__)

MIN_TOPUP = 1.0
MAX_TOPUP = 500000.0


def generate_gateway_order_id() -> str:
    """``wal`` + epoch milliseconds + random suffix, at most 20 characters."""
    millis = int(datetime.now(UTC).timestamp() * 1000)
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
    return f"wal{millis}{suffix}"[:20]


@dataclass(frozen=True)
class TopUpSession:
    transaction_id: str
    gateway_order_id: str
    amount: float
    payment_link: str | None

    def to_dict(self) -> dict:
        return {
            "transaction_id": self.transaction_id,
            "gateway_order_id": self.gateway_order_id,
            "amount": self.amount,
            "payment_link": self.payment_link,
        }


class WalletTopUpService:
    def __init__(self, gateway: PaymentGateway, ledger: WalletLedger):
        self.gateway = gateway
        self.ledger = ledger

    def initiate(self, merchant_id: str, amount: float) -> TopUpSession:
        amount = round2(amount)
        if amount < MIN_TOPUP or amount > MAX_TOPUP:
            raise ValidationError({"amount": [f"Top-up amount must be between {MIN_TOPUP:.0f} and {MAX_TOPUP:.0f}"]})

        gateway_order_id = generate_gateway_order_id()
        session = self.gateway.create_order_session(amount, merchant_id, gateway_order_id)

        txn = WalletTransaction.pending_topup(
            merchant_id=merchant_id,
            amount=amount,
            gateway_order_id=gateway_order_id,
            payment_link=session.payment_link,
        )
        current_domain.repository_for(WalletTransaction).add(txn)
        logger.info(
            "Top-up initiated",
            merchant_id=merchant_id,
            transaction_id=txn.transaction_id,
            gateway_order_id=gateway_order_id,
            amount=amount,
        )
        return TopUpSession(
            transaction_id=txn.transaction_id,
            gateway_order_id=gateway_order_id,
            amount=amount,
            payment_link=session.payment_link,
        )

    def reconcile(self, gateway_order_id: str) -> WalletTransaction:
        """Settle a pending top-up from the gateway's authoritative status."""
        txn = self.ledger.find_by_gateway_order(gateway_order_id)
        if txn is None:
            raise ObjectNotFoundError(f"No top-up found for gateway order {gateway_order_id}")
        if not txn.is_pending:
            logger.info("Top-up already settled", transaction_id=txn.transaction_id, status=txn.status)
            return txn

        status = self.gateway.get_order_status(gateway_order_id)
        outcome = self.gateway.map_payment_status(status.status)

        if outcome == "completed":
            if status.amount is not None and round2(status.amount) != round2(txn.amount):
                logger.error(
                    "Gateway amount does not match pending top-up",
                    transaction_id=txn.transaction_id,
                    expected=txn.amount,
                    gateway_amount=status.amount,
                )
                raise ValidationError({"amount": ["Gateway amount does not match the top-up"]})
            return self.ledger.settle_pending_credit(
                txn,
                gateway_transaction_id=status.txn_id,
                bank_reference_number=status.bank_ref_no,
                gateway_status=status.status,
            )

        if outcome == "failed":
            txn.fail(gateway_status=status.status)
            current_domain.repository_for(WalletTransaction).add(txn)
            logger.warning(
                "Top-up failed at gateway",
                transaction_id=txn.transaction_id,
                gateway_status=status.status,
            )
            return txn

        logger.info("Top-up still pending at gateway", transaction_id=txn.transaction_id, gateway_status=status.status)
        return txn


def create_topup_service(gateway: PaymentGateway | None = None) -> WalletTopUpService:
    return WalletTopUpService(gateway=gateway or get_gateway(), ledger=WalletLedger())
