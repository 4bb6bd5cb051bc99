"""Domain events for wallet ledger entries.

Raised when a completed transaction is recorded, so every subscriber sees
the transaction id together with the balance snapshot it captured.
"""

from protean.fields import DateTime, Float, Identifier, String

from logistics.domain import logistics


@logistics.event(part_of="WalletTransaction")
class WalletDebited:
    """Money left a merchant wallet."""

    __version__ = 1

    transaction_id = String(required=True)
    merchant_id = Identifier(required=True)
    amount = Float(required=True)
    category = String(required=True)
    order_id = String()
    opening_balance = Float(required=True)
    closing_balance = Float(required=True)
    description = String()
    recorded_at = DateTime(required=True)


@logistics.event(part_of="WalletTransaction")
class WalletCredited:
    """Money entered a merchant wallet."""

    __version__ = 1

    transaction_id = String(required=True)
    merchant_id = Identifier(required=True)
    amount = Float(required=True)
    category = String(required=True)
    order_id = String()
    opening_balance = Float(required=True)
    closing_balance = Float(required=True)
    description = String()
    recorded_at = DateTime(required=True)


@logistics.event(part_of="WalletTransaction")
class TopUpFailed:
    """The payment gateway reported a wallet top-up as failed."""

    __version__ = 1

    transaction_id = String(required=True)
    merchant_id = Identifier(required=True)
    amount = Float(required=True)
    gateway_order_id = String(required=True)
    gateway_status = String()
    failed_at = DateTime(required=True)
