"""Billing cycle aggregation.

Folds each charged order into the merchant's current billing cycle and keeps
the cycle's status counters in step with the order lifecycle. Charges come
from the rate card when the order has a zone and the merchant's category has
a card; otherwise the flat shipping charge already debited is billed as is.
"""

from datetime import UTC, date, datetime

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from logistics.billing.billing_cycle import (
    BillingCycle,
    BillingCycleStatus,
    cycle_number_for,
    make_cycle_id,
)
from logistics.billing.rate_card import (
    FORWARD,
    RTO,
    RateCardError,
    calculate_charges,
    charged_weight_g,
    resolve_category,
    volumetric_weight_g,
)
from logistics.order.order import Order, OrderStatus
from logistics.utils.money import round2

logger = structlog.get_logger(__name__)


def compute_breakdown(order: Order, user_category: str | None, fallback_charge: float | None = None) -> dict:
    """Billing breakdown for ``order``, shaped like ``BillingInfo``."""
    package = order.package
    declared = round2(package.weight_kg * 1000)
    volumetric = volumetric_weight_g(package.length_cm, package.width_cm, package.height_cm)
    charged = charged_weight_g(declared, volumetric)
    flat = round2(fallback_charge if fallback_charge is not None else order.shipping_charge)

    breakdown = {
        "zone": order.zone,
        "declared_weight_g": declared,
        "volumetric_weight_g": volumetric,
        "charged_weight_g": charged,
        "forward_charge": flat,
        "rto_charge": 0.0,
        "cod_charge": 0.0,
        "total_charge": flat,
    }

    if not order.zone or resolve_category(user_category) is None:
        logger.info(
            "Rate card unavailable, billing flat shipping charge",
            order_id=order.order_id,
            zone=order.zone,
            user_category=user_category,
        )
        return breakdown

    try:
        forward = calculate_charges(user_category, charged, order.zone, order.payment.cod_amount, FORWARD)
        rto = calculate_charges(user_category, charged, order.zone, direction=RTO)
    except RateCardError as exc:
        logger.warning("Rate card lookup failed, billing flat shipping charge", order_id=order.order_id, error=str(exc))
        return breakdown

    breakdown.update(
        forward_charge=forward.shipping_charge,
        rto_charge=rto.shipping_charge,
        cod_charge=forward.cod_charge,
        total_charge=forward.total,
    )
    return breakdown


class BillingCycleAggregator:
    def _cycles(self):
        return current_domain.repository_for(BillingCycle)

    def get_current_cycle(self, merchant_id: str, today: date | None = None) -> BillingCycle:
        """The merchant's cycle containing ``today``, created on first use."""
        today = today or datetime.now(UTC).date()
        cycle_id = make_cycle_id(merchant_id, today.year, today.month, cycle_number_for(today))
        repo = self._cycles()
        try:
            return repo.get(cycle_id)
        except ObjectNotFoundError:
            cycle = BillingCycle.start(merchant_id, today)
            repo.add(cycle)
            logger.info("Billing cycle opened", merchant_id=merchant_id, cycle_id=cycle_id)
            return repo.get(cycle_id)

    def get_cycle(self, cycle_id: str) -> BillingCycle:
        return self._cycles().get(cycle_id)

    def cycles_for(self, merchant_id: str) -> list[BillingCycle]:
        results = self._cycles()._dao.query.filter(merchant_id=merchant_id).all()
        return sorted(results.items, key=lambda c: c.start_date, reverse=True)

    def add_order_to_cycle(self, cycle: BillingCycle, order: Order, charges: dict) -> BillingCycle:
        added = cycle.add_order(
            order_id=order.order_id,
            payment_mode=order.payment.mode,
            declared_weight_g=charges["declared_weight_g"],
            charged_weight_g=charges["charged_weight_g"],
            forward_charge=charges["forward_charge"],
            cod_charge=charges["cod_charge"],
            total_charge=charges["total_charge"],
            zone=charges.get("zone"),
            cod_amount=order.payment.cod_amount,
            waybill=order.waybill,
        )
        if added:
            self._cycles().add(cycle)
            logger.info(
                "Order added to billing cycle",
                cycle_id=cycle.cycle_id,
                order_id=order.order_id,
                total_charge=charges["total_charge"],
            )
        else:
            logger.debug("Order already in billing cycle", cycle_id=cycle.cycle_id, order_id=order.order_id)
        return cycle

    def record_status_change(self, order: Order, status: str) -> BillingCycle | None:
        """Update counters (and RTO charges) of the cycle the order was billed in."""
        cycle_id = order.billing.billing_cycle_id if order.billing else None
        if not cycle_id:
            return None

        cycle = self.get_cycle(cycle_id)
        cycle.update_order_status(status)
        if status == OrderStatus.RTO.value and order.billing.rto_charge:
            cycle.add_rto_charges(order.billing.rto_charge, order_id=order.order_id)
        self._cycles().add(cycle)
        return cycle

    def close_expired_cycles(self, today: date | None = None) -> list[BillingCycle]:
        now = datetime.combine(today, datetime.min.time(), tzinfo=UTC) if today else datetime.now(UTC)
        results = self._cycles()._dao.query.filter(status=BillingCycleStatus.OPEN.value).all()
        closed = []
        for cycle in results.items:
            end_date = cycle.end_date if cycle.end_date.tzinfo else cycle.end_date.replace(tzinfo=UTC)
            if end_date < now:
                cycle.close()
                self._cycles().add(cycle)
                closed.append(cycle)
                logger.info("Billing cycle closed", cycle_id=cycle.cycle_id, merchant_id=cycle.merchant_id)
        return closed

    def mark_invoiced(self, cycle_id: str, invoice_id: str) -> BillingCycle:
        cycle = self.get_cycle(cycle_id)
        cycle.mark_invoiced(invoice_id)
        self._cycles().add(cycle)
        return cycle
