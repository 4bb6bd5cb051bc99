"""Courier tracking updates — command and handler.

Tracking pushes (courier webhook) and polled tracking results both land
here. The courier speaks its own status vocabulary; ``map_courier_status``
translates it into ``OrderStatus`` and the aggregate's transition table
decides whether the update is legal.
"""

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from logistics.domain import logistics
from logistics.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)

# Delhivery status strings, upper-cased. Status type (UD/RT/DL) disambiguates
# the few strings the courier reuses across forward and return legs.
_COURIER_STATUS_MAP = {
    "MANIFESTED": OrderStatus.READY_TO_SHIP,
    "NOT PICKED": OrderStatus.PICKUPS_MANIFESTS,
    "PICKUP SCHEDULED": OrderStatus.PICKUPS_MANIFESTS,
    "OPEN": OrderStatus.PICKUPS_MANIFESTS,
    "SCHEDULED": OrderStatus.PICKUPS_MANIFESTS,
    "PICKED UP": OrderStatus.IN_TRANSIT,
    "IN TRANSIT": OrderStatus.IN_TRANSIT,
    "PENDING": OrderStatus.IN_TRANSIT,
    "REACHED AT DESTINATION HUB": OrderStatus.IN_TRANSIT,
    "DISPATCHED": OrderStatus.OUT_FOR_DELIVERY,
    "OUT FOR DELIVERY": OrderStatus.OUT_FOR_DELIVERY,
    "DELIVERED": OrderStatus.DELIVERED,
    "UNDELIVERED": OrderStatus.NDR,
    "NDR": OrderStatus.NDR,
    "RTO": OrderStatus.RTO,
    "RETURNED": OrderStatus.RTO,
    "RTO DELIVERED": OrderStatus.RTO,
    "LOST": OrderStatus.LOST,
}


def map_courier_status(courier_status: str | None, status_type: str | None = None) -> OrderStatus | None:
    """Translate a courier status string, or return None when it is unknown."""
    if not courier_status:
        return None
    key = courier_status.strip().upper()
    if (status_type or "").upper() == "RT" and key in ("DELIVERED", "IN TRANSIT", "PENDING", "DISPATCHED"):
        # Movement on the return leg; only the final delivery back is terminal.
        return OrderStatus.RTO if key == "DELIVERED" else OrderStatus.NDR
    try:
        return OrderStatus(courier_status.strip().lower())
    except ValueError:
        return _COURIER_STATUS_MAP.get(key)


def find_order_by_waybill(waybill: str) -> Order | None:
    repo = current_domain.repository_for(Order)
    results = repo._dao.query.filter(waybill=waybill).all()
    if not results or not results.items:
        return None
    return results.first


@logistics.command(part_of="Order")
class UpdateShipmentStatus:
    """Apply a courier status update to an order identified by its waybill."""

    waybill = String(required=True, max_length=50)
    courier_status = String(required=True, max_length=100)
    status_type = String(max_length=10)
    location = String(max_length=200)
    remarks = String(max_length=500)
    merchant_id = Identifier()


@logistics.command_handler(part_of=Order)
class UpdateShipmentStatusHandler:
    @handle(UpdateShipmentStatus)
    def update_shipment_status(self, command):
        order = find_order_by_waybill(command.waybill)
        if order is None or (command.merchant_id and order.merchant_id != command.merchant_id):
            raise ValidationError({"waybill": [f"No order found for waybill {command.waybill}"]})

        target = map_courier_status(command.courier_status, command.status_type)
        if target is None:
            logger.info(
                "Ignoring unmapped courier status",
                waybill=command.waybill,
                courier_status=command.courier_status,
            )
            return order.status

        if target != order.current_status and not order.can_transition_to(target):
            logger.warning(
                "Out-of-sequence tracking update ignored",
                order_id=order.order_id,
                status=order.status,
                courier_status=command.courier_status,
            )
            return order.status

        changed = order.apply_courier_status(
            target,
            remarks=command.remarks,
            location=command.location,
            provider_status=command.courier_status,
        )
        current_domain.repository_for(Order).add(order)
        if changed:
            logger.info(
                "Order status updated from courier",
                order_id=order.order_id,
                waybill=command.waybill,
                status=order.status,
            )
        return order.status
