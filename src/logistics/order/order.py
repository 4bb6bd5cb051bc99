"""Order aggregate (CQRS) — the shipment lifecycle state machine.

An Order is one shipment request from a merchant. The courier is the only
source of truth for whether a shipment exists, so the aggregate accepts a
waybill exactly once and only through ``assign_waybill``, which the
orchestrator calls after the courier confirmed the shipment.

State Machine:
    NEW → READY_TO_SHIP → PICKUPS_MANIFESTS → IN_TRANSIT → OUT_FOR_DELIVERY → DELIVERED
    {PICKUPS_MANIFESTS, IN_TRANSIT, OUT_FOR_DELIVERY} → NDR
    NDR → {RTO, IN_TRANSIT, OUT_FOR_DELIVERY}
    {PICKUPS_MANIFESTS, IN_TRANSIT, OUT_FOR_DELIVERY, NDR} → LOST
    any non-terminal → CANCELLED
"""

import random
import re
from datetime import UTC, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from logistics.domain import logistics
from logistics.order.events import (
    OrderCancellationPending,
    OrderCancelled,
    OrderDispatched,
    OrderPlaced,
    OrderStatusChanged,
)

_PINCODE_RE = re.compile(r"^\d{6}$")
_PHONE_RE = re.compile(r"^[6-9]\d{9}$")


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    NEW = "new"
    READY_TO_SHIP = "ready_to_ship"
    PICKUPS_MANIFESTS = "pickups_manifests"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    NDR = "ndr"
    RTO = "rto"
    CANCELLED = "cancelled"
    LOST = "lost"


class PaymentMode(Enum):
    PREPAID = "prepaid"
    COD = "cod"
    PICKUP = "pickup"


class CancellationStatus(Enum):
    CANCELLED = "cancelled"
    PENDING = "pending"


class CancellationType(Enum):
    CN = "CN"  # cancelled before dispatch or at manifest stage
    RT = "RT"  # cancelled while moving, returns to origin
    UD = "UD"  # waybill issued but never handed over


class ChargeStatus(Enum):
    UNPAID = "unpaid"
    DEBITED = "debited"
    REFUNDED = "refunded"


_VALID_TRANSITIONS = {
    OrderStatus.NEW: {OrderStatus.READY_TO_SHIP, OrderStatus.CANCELLED},
    OrderStatus.READY_TO_SHIP: {OrderStatus.PICKUPS_MANIFESTS, OrderStatus.CANCELLED},
    OrderStatus.PICKUPS_MANIFESTS: {
        OrderStatus.IN_TRANSIT,
        OrderStatus.NDR,
        OrderStatus.LOST,
        OrderStatus.CANCELLED,
    },
    OrderStatus.IN_TRANSIT: {
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.NDR,
        OrderStatus.LOST,
        OrderStatus.CANCELLED,
    },
    OrderStatus.OUT_FOR_DELIVERY: {
        OrderStatus.DELIVERED,
        OrderStatus.NDR,
        OrderStatus.LOST,
        OrderStatus.CANCELLED,
    },
    OrderStatus.NDR: {
        OrderStatus.RTO,
        OrderStatus.IN_TRANSIT,
        OrderStatus.OUT_FOR_DELIVERY,
        OrderStatus.LOST,
        OrderStatus.CANCELLED,
    },
    OrderStatus.LOST: {OrderStatus.CANCELLED},
    OrderStatus.DELIVERED: set(),  # terminal
    OrderStatus.RTO: set(),  # terminal
    OrderStatus.CANCELLED: set(),  # terminal
}

TERMINAL_STATUSES = {OrderStatus.DELIVERED, OrderStatus.RTO, OrderStatus.CANCELLED}

# Statuses in which the courier holds a live shipment for the order.
WAYBILL_STATUSES = {
    OrderStatus.READY_TO_SHIP,
    OrderStatus.PICKUPS_MANIFESTS,
    OrderStatus.IN_TRANSIT,
    OrderStatus.OUT_FOR_DELIVERY,
    OrderStatus.DELIVERED,
    OrderStatus.NDR,
    OrderStatus.RTO,
    OrderStatus.LOST,
}

_CANCELLATION_TYPE_BY_STATUS = {
    OrderStatus.NEW: CancellationType.CN,
    OrderStatus.READY_TO_SHIP: CancellationType.UD,
    OrderStatus.PICKUPS_MANIFESTS: CancellationType.CN,
    OrderStatus.IN_TRANSIT: CancellationType.RT,
    OrderStatus.OUT_FOR_DELIVERY: CancellationType.RT,
    OrderStatus.NDR: CancellationType.RT,
    OrderStatus.LOST: CancellationType.RT,
}


def generate_order_id(now: datetime | None = None) -> str:
    """``ORD`` + epoch milliseconds + three random digits."""
    now = now or datetime.now(UTC)
    return f"ORD{int(now.timestamp() * 1000)}{random.randint(0, 999):03d}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@logistics.value_object(part_of="Order")
class Address:
    """A pickup or delivery location."""

    name = String(max_length=200)
    full_address = String(required=True, max_length=500)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    pincode = String(required=True, max_length=6)
    phone = String(required=True, max_length=10)

    @invariant.post
    def pincode_has_six_digits(self):
        if not _PINCODE_RE.match(self.pincode or ""):
            raise ValidationError({"pincode": [f"Invalid pincode {self.pincode!r}, expected 6 digits"]})

    @invariant.post
    def phone_is_a_mobile_number(self):
        if not _PHONE_RE.match(self.phone or ""):
            raise ValidationError({"phone": [f"Invalid phone {self.phone!r}, expected 10 digits starting 6-9"]})


@logistics.value_object(part_of="Order")
class PackageInfo:
    """Declared physical package."""

    weight_kg = Float(required=True, min_value=0.1)
    length_cm = Float(required=True, min_value=1.0)
    width_cm = Float(required=True, min_value=1.0)
    height_cm = Float(required=True, min_value=1.0)
    number_of_boxes = Integer(default=1, min_value=1)


@logistics.value_object(part_of="Order")
class PaymentInfo:
    mode = String(required=True, choices=PaymentMode)
    order_value = Float(required=True, min_value=0.0)
    shipping_charge = Float(default=0.0, min_value=0.0)
    cod_amount = Float(default=0.0, min_value=0.0)

    @invariant.post
    def cod_orders_collect_an_amount(self):
        if self.mode == PaymentMode.COD.value and not self.cod_amount:
            raise ValidationError({"cod_amount": ["COD orders require a positive cod_amount"]})


@logistics.value_object(part_of="Order")
class CancellationInfo:
    status = String(choices=CancellationStatus)
    status_type = String(choices=CancellationType)
    reason = String(max_length=500)
    remark = String(max_length=500)
    requested_at = DateTime()
    cancelled_at = DateTime()


@logistics.value_object(part_of="Order")
class BillingInfo:
    """Charge breakdown computed for the billing cycle."""

    zone = String(max_length=4)
    declared_weight_g = Float()
    volumetric_weight_g = Float()
    charged_weight_g = Float()
    forward_charge = Float()
    rto_charge = Float()
    cod_charge = Float()
    total_charge = Float()
    billing_cycle_id = String(max_length=50)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@logistics.entity(part_of="Order")
class StatusHistoryEntry:
    """One append-only lifecycle record."""

    sequence = Integer(required=True)
    status = String(required=True, max_length=50)
    timestamp = DateTime(required=True)
    remarks = String(max_length=500)
    location = String(max_length=200)
    actor = String(max_length=100)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@logistics.aggregate
class Order:
    order_id = String(identifier=True, max_length=60)
    merchant_id = Identifier(required=True)
    reference_id = String(max_length=100)
    warehouse_id = String(max_length=100)
    pickup_address = ValueObject(Address, required=True)
    delivery_address = ValueObject(Address, required=True)
    package = ValueObject(PackageInfo, required=True)
    payment = ValueObject(PaymentInfo, required=True)
    zone = String(max_length=4)
    status = String(choices=OrderStatus, default=OrderStatus.NEW.value)
    waybill = String(max_length=50)
    provider_status = String(max_length=100)
    pickup_id = String(max_length=100)
    cancellation = ValueObject(CancellationInfo)
    billing = ValueObject(BillingInfo)
    wallet_transaction_id = String(max_length=50)
    refund_transaction_id = String(max_length=50)
    charge_status = String(choices=ChargeStatus, default=ChargeStatus.UNPAID.value)
    status_history = HasMany(StatusHistoryEntry)
    created_at = DateTime()
    updated_at = DateTime()

    @invariant.post
    def waybill_only_with_courier_shipment(self):
        status = OrderStatus(self.status)
        if self.waybill and status not in WAYBILL_STATUSES and status != OrderStatus.CANCELLED:
            raise ValidationError({"waybill": [f"An order in {status.value} cannot carry a waybill"]})
        if not self.waybill and status in WAYBILL_STATUSES:
            raise ValidationError({"waybill": [f"An order in {status.value} requires a waybill"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_id: str,
        merchant_id: str,
        pickup_address: dict,
        delivery_address: dict,
        package: dict,
        payment: dict,
        reference_id: str | None = None,
        warehouse_id: str | None = None,
        zone: str | None = None,
        actor: str = "merchant",
    ):
        """Build a new order in memory. Nothing is persisted here."""
        now = datetime.now(UTC)
        payment = dict(payment)
        if payment.get("mode") != PaymentMode.COD.value:
            payment["cod_amount"] = 0.0

        order = cls(
            order_id=order_id,
            merchant_id=merchant_id,
            reference_id=reference_id,
            warehouse_id=warehouse_id,
            pickup_address=Address(**pickup_address),
            delivery_address=Address(**delivery_address),
            package=PackageInfo(**package),
            payment=PaymentInfo(**payment),
            zone=zone,
            status=OrderStatus.NEW.value,
            charge_status=ChargeStatus.UNPAID.value,
            created_at=now,
            updated_at=now,
        )
        order._append_history(OrderStatus.NEW, now, remarks="Order created", actor=actor)
        order.raise_(
            OrderPlaced(
                order_id=order_id,
                merchant_id=merchant_id,
                reference_id=reference_id,
                payment_mode=order.payment.mode,
                order_value=order.payment.order_value,
                shipping_charge=order.payment.shipping_charge,
                cod_amount=order.payment.cod_amount,
                customer_name=order.delivery_address.name,
                customer_phone=order.delivery_address.phone,
                delivery_city=order.delivery_address.city,
                delivery_pincode=order.delivery_address.pincode,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_terminal(self) -> bool:
        return self.current_status in TERMINAL_STATUSES

    @property
    def is_cancellable(self) -> bool:
        return not self.is_terminal

    @property
    def shipping_charge(self) -> float:
        return self.payment.shipping_charge or 0.0

    def history(self) -> list:
        """Status history in the order it was written."""
        return sorted(self.status_history or [], key=lambda entry: entry.sequence)

    # -------------------------------------------------------------------
    # State transition helpers
    # -------------------------------------------------------------------
    def can_transition_to(self, target_status: OrderStatus) -> bool:
        return target_status in _VALID_TRANSITIONS.get(self.current_status, set())

    def _assert_can_transition(self, target_status: OrderStatus) -> None:
        current = self.current_status
        if not self.can_transition_to(target_status):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target_status.value}"]})

    def _append_history(
        self,
        status: OrderStatus,
        timestamp: datetime,
        remarks: str | None = None,
        actor: str | None = None,
        location: str | None = None,
    ) -> None:
        self.add_status_history(
            StatusHistoryEntry(
                sequence=len(self.status_history or []) + 1,
                status=status.value,
                timestamp=timestamp,
                remarks=remarks,
                actor=actor,
                location=location,
            )
        )

    def _move_to(
        self,
        target_status: OrderStatus,
        remarks: str | None = None,
        actor: str | None = None,
        location: str | None = None,
    ) -> datetime:
        self._assert_can_transition(target_status)
        now = datetime.now(UTC)
        previous = self.current_status
        self.status = target_status.value
        self.updated_at = now
        self._append_history(target_status, now, remarks=remarks, actor=actor, location=location)
        self.raise_(
            OrderStatusChanged(
                order_id=self.order_id,
                merchant_id=self.merchant_id,
                from_status=previous.value,
                to_status=target_status.value,
                remarks=remarks,
                actor=actor,
                changed_at=now,
            )
        )
        return now

    # -------------------------------------------------------------------
    # Courier confirmation
    # -------------------------------------------------------------------
    def assign_waybill(self, waybill: str, provider_status: str | None = None, actor: str = "system") -> None:
        """Attach the courier-issued waybill and move to READY_TO_SHIP."""
        if self.waybill:
            raise ValidationError({"waybill": [f"Order {self.order_id} already has waybill {self.waybill}"]})
        if not waybill or not str(waybill).strip():
            raise ValidationError({"waybill": ["Courier did not return a usable waybill"]})
        self._assert_can_transition(OrderStatus.READY_TO_SHIP)

        with atomic_change(self):
            self.waybill = str(waybill).strip()
            self.provider_status = provider_status or "Manifested"
            now = self._move_to(OrderStatus.READY_TO_SHIP, remarks=f"Waybill {self.waybill} assigned", actor=actor)

        self.raise_(
            OrderDispatched(
                order_id=self.order_id,
                merchant_id=self.merchant_id,
                waybill=self.waybill,
                dispatched_at=now,
            )
        )

    def schedule_pickup(self, pickup_id: str | None, actor: str = "merchant") -> None:
        self._move_to(
            OrderStatus.PICKUPS_MANIFESTS,
            remarks=f"Pickup {pickup_id} scheduled" if pickup_id else "Pickup scheduled",
            actor=actor,
        )
        self.pickup_id = pickup_id

    def apply_courier_status(
        self,
        target_status: OrderStatus,
        remarks: str | None = None,
        location: str | None = None,
        provider_status: str | None = None,
        actor: str = "courier",
    ) -> bool:
        """Apply a tracking update. Returns False when it carries no change."""
        if target_status == self.current_status:
            if provider_status:
                self.provider_status = provider_status
            return False
        if target_status == OrderStatus.CANCELLED:
            raise ValidationError({"status": ["Cancellation goes through the cancellation workflow"]})
        self._move_to(target_status, remarks=remarks, actor=actor, location=location)
        if provider_status:
            self.provider_status = provider_status
        return True

    # -------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------
    def cancel(self, reason: str | None = None, actor: str = "merchant", remark: str | None = None) -> None:
        """Close the order. Callers holding a waybill must have the courier's confirmation."""
        if not self.is_cancellable:
            raise ValidationError({"status": [f"Cannot cancel an order in {self.status}"]})

        previous = self.current_status
        status_type = _CANCELLATION_TYPE_BY_STATUS[previous]
        requested_at = self.cancellation.requested_at if self.cancellation else None
        now = self._move_to(OrderStatus.CANCELLED, remarks=reason or "Cancelled", actor=actor)
        self.cancellation = CancellationInfo(
            status=CancellationStatus.CANCELLED.value,
            status_type=status_type.value,
            reason=reason,
            remark=remark,
            requested_at=requested_at or now,
            cancelled_at=now,
        )
        self.raise_(
            OrderCancelled(
                order_id=self.order_id,
                merchant_id=self.merchant_id,
                waybill=self.waybill,
                previous_status=previous.value,
                status_type=status_type.value,
                reason=reason,
                shipping_charge=self.shipping_charge,
                cancelled_at=now,
            )
        )

    def mark_cancellation_pending(self, remark: str | None, reason: str | None = None) -> None:
        """Record an unconfirmed courier cancellation without changing status."""
        if not self.is_cancellable:
            raise ValidationError({"status": [f"Cannot cancel an order in {self.status}"]})
        now = datetime.now(UTC)
        self.cancellation = CancellationInfo(
            status=CancellationStatus.PENDING.value,
            reason=reason,
            remark=remark,
            requested_at=now,
        )
        self.updated_at = now
        self.raise_(
            OrderCancellationPending(
                order_id=self.order_id,
                merchant_id=self.merchant_id,
                waybill=self.waybill,
                remark=remark,
                requested_at=now,
            )
        )

    # -------------------------------------------------------------------
    # Billing linkage
    # -------------------------------------------------------------------
    def record_charge(self, transaction_id: str | None) -> None:
        self.wallet_transaction_id = transaction_id
        self.charge_status = ChargeStatus.DEBITED.value if transaction_id else ChargeStatus.UNPAID.value

    def record_refund(self, transaction_id: str) -> None:
        self.refund_transaction_id = transaction_id
        self.charge_status = ChargeStatus.REFUNDED.value

    def record_billing(self, **breakdown) -> None:
        self.billing = BillingInfo(**breakdown)
