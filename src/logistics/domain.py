"""Logistics bounded context — Shipment Fulfillment and Wallet Ledger.

Turns a merchant's shipment request into a courier-confirmed, billed
shipment. The Order aggregate owns the shipment lifecycle, the Wallet and
WalletTransaction aggregates own the prepaid balance and its audit trail,
and BillingCycle accumulates charges per semi-monthly period. Uses CQRS:
the courier provider owns tracking state and the wallet needs conditional
updates, neither of which benefits from event sourcing.
"""

from protean.domain import Domain

from logistics.utils.logging import configure_logging, get_logger

# Configure logging for the application
configure_logging()

logger = get_logger(__name__)

# Domain Composition Root
logistics = Domain(name="logistics")
