"""Billing event handlers — fold ledger debits and lifecycle changes into cycles.

Billing never blocks fulfillment: every handler here runs after the primary
write committed, and any failure is logged and dropped.
"""

import structlog
from protean.utils.globals import current_domain
from protean.utils.mixins import handle

from logistics.billing.aggregator import BillingCycleAggregator, compute_breakdown
from logistics.billing.billing_cycle import BillingCycle
from logistics.domain import logistics
from logistics.order.events import OrderStatusChanged
from logistics.order.order import Order
from logistics.utils.side_effects import best_effort
from logistics.wallet.events import WalletDebited
from logistics.wallet.ledger import WalletLedger
from logistics.wallet.transaction import TransactionCategory

logger = structlog.get_logger(__name__)


@logistics.event_handler(part_of=BillingCycle, stream_category="logistics::wallet_transaction")
class ShippingChargeBillingHandler:
    """Bills an order into the current cycle once its shipping charge is debited."""

    @handle(WalletDebited)
    def on_wallet_debited(self, event: WalletDebited) -> None:
        if event.category != TransactionCategory.SHIPPING_CHARGE.value or not event.order_id:
            return

        with best_effort("billing.add_order", order_id=event.order_id, merchant_id=event.merchant_id):
            order_repo = current_domain.repository_for(Order)
            order = order_repo.get(event.order_id)
            user_category = WalletLedger().get_wallet(event.merchant_id).user_category

            aggregator = BillingCycleAggregator()
            cycle = aggregator.get_current_cycle(event.merchant_id)
            breakdown = compute_breakdown(order, user_category, fallback_charge=event.amount)
            aggregator.add_order_to_cycle(cycle, order, breakdown)

            order.record_billing(**breakdown, billing_cycle_id=cycle.cycle_id)
            order_repo.add(order)


@logistics.event_handler(part_of=BillingCycle, stream_category="logistics::order")
class OrderLifecycleBillingHandler:
    """Keeps cycle status counters in step with the order lifecycle."""

    @handle(OrderStatusChanged)
    def on_order_status_changed(self, event: OrderStatusChanged) -> None:
        with best_effort("billing.status_change", order_id=event.order_id, status=event.to_status):
            order = current_domain.repository_for(Order).get(event.order_id)
            cycle = BillingCycleAggregator().record_status_change(order, event.to_status)
            if cycle is not None:
                logger.debug(
                    "Billing cycle counters updated",
                    cycle_id=cycle.cycle_id,
                    order_id=event.order_id,
                    status=event.to_status,
                )
