"""Wallet balance notifications — event handler.

Every completed wallet transaction pushes two events to the merchant's live
session: a human-readable balance change and a machine-readable balance
snapshot. Zero-amount operations never produce a transaction, so they never
notify either.
"""

import structlog
from protean.utils.mixins import handle

from logistics.domain import logistics
from logistics.notifier import get_notifier
from logistics.utils.side_effects import best_effort
from logistics.wallet.events import WalletCredited, WalletDebited
from logistics.wallet.transaction import WalletTransaction

logger = structlog.get_logger(__name__)

BALANCE_CHANGED = "wallet.balance_changed"
BALANCE_SNAPSHOT = "wallet.balance_snapshot"

_CATEGORY_LABELS = {
    "wallet_topup": "Wallet recharge",
    "shipping_charge": "Shipping charge",
    "shipment_cancellation_refund": "Cancellation refund",
    "cod_remittance": "COD remittance",
    "penalty": "Penalty",
}


def _message(direction: str, event) -> str:
    label = _CATEGORY_LABELS.get(event.category, event.category)
    suffix = f" for order {event.order_id}" if event.order_id else ""
    return (
        f"{label}{suffix}: ₹{event.amount:.2f} {direction}. "
        f"Balance ₹{event.opening_balance:.2f} → ₹{event.closing_balance:.2f}"
    )


def _publish(direction: str, event) -> None:
    with best_effort("wallet.balance_changed", merchant_id=event.merchant_id, transaction_id=event.transaction_id):
        get_notifier().publish(
            event.merchant_id,
            BALANCE_CHANGED,
            {
                "transaction_id": event.transaction_id,
                "type": direction,
                "category": event.category,
                "amount": event.amount,
                "order_id": event.order_id,
                "message": _message(direction, event),
            },
        )
    with best_effort("wallet.balance_snapshot", merchant_id=event.merchant_id, transaction_id=event.transaction_id):
        get_notifier().publish(
            event.merchant_id,
            BALANCE_SNAPSHOT,
            {
                "balance": event.closing_balance,
                "transaction_id": event.transaction_id,
                "as_of": event.recorded_at.isoformat() if event.recorded_at else None,
            },
        )


@logistics.event_handler(part_of=WalletTransaction)
class WalletNotificationHandler:
    """Pushes balance updates to the merchant after each ledger entry."""

    @handle(WalletDebited)
    def on_wallet_debited(self, event: WalletDebited) -> None:
        _publish("debited", event)

    @handle(WalletCredited)
    def on_wallet_credited(self, event: WalletCredited) -> None:
        _publish("credited", event)
