"""Tests for the Order state machine — waybill rule, transitions and cancellation types."""

import pytest
from logistics.order.events import (
    OrderCancellationPending,
    OrderCancelled,
    OrderDispatched,
    OrderPlaced,
    OrderStatusChanged,
)
from logistics.order.order import (
    CancellationStatus,
    ChargeStatus,
    Order,
    OrderStatus,
)
from protean.exceptions import ValidationError

_ADDRESS = {
    "name": "Asha Rao",
    "full_address": "4, Park Street",
    "city": "Kolkata",
    "state": "West Bengal",
    "pincode": "700016",
    "phone": "9123456780",
}


def _make_order(**overrides):
    fields = {
        "order_id": "ORD-1",
        "merchant_id": "merchant-001",
        "pickup_address": {**_ADDRESS, "pincode": "560038"},
        "delivery_address": _ADDRESS,
        "package": {"weight_kg": 0.5, "length_cm": 10, "width_cm": 10, "height_cm": 10},
        "payment": {"mode": "prepaid", "order_value": 999.0, "shipping_charge": 35.5},
    }
    fields.update(overrides)
    return Order.create(**fields)


def _order_at_state(target_status):
    """Create an order and advance it to the desired state."""
    order = _make_order()
    if target_status == OrderStatus.NEW:
        return order

    order.assign_waybill("WB0001")
    if target_status == OrderStatus.READY_TO_SHIP:
        return order

    order.schedule_pickup("PU0001")
    if target_status == OrderStatus.PICKUPS_MANIFESTS:
        return order

    path = {
        OrderStatus.IN_TRANSIT: [OrderStatus.IN_TRANSIT],
        OrderStatus.OUT_FOR_DELIVERY: [OrderStatus.IN_TRANSIT, OrderStatus.OUT_FOR_DELIVERY],
        OrderStatus.DELIVERED: [OrderStatus.IN_TRANSIT, OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED],
        OrderStatus.NDR: [OrderStatus.IN_TRANSIT, OrderStatus.NDR],
        OrderStatus.RTO: [OrderStatus.IN_TRANSIT, OrderStatus.NDR, OrderStatus.RTO],
        OrderStatus.LOST: [OrderStatus.IN_TRANSIT, OrderStatus.LOST],
    }[target_status]
    for status in path:
        order.apply_courier_status(status)
    return order


class TestOrderCreation:
    def test_new_order_has_no_waybill(self):
        order = _make_order()
        assert order.status == OrderStatus.NEW.value
        assert order.waybill is None
        assert order.charge_status == ChargeStatus.UNPAID.value

    def test_creation_records_history_and_event(self):
        order = _make_order()
        assert [entry.status for entry in order.history()] == ["new"]
        assert isinstance(order._events[-1], OrderPlaced)
        assert order._events[-1].customer_phone == "9123456780"

    def test_non_cod_orders_carry_no_cod_amount(self):
        order = _make_order(payment={"mode": "prepaid", "order_value": 500.0, "cod_amount": 500.0})
        assert order.payment.cod_amount == 0.0

    def test_cod_order_requires_cod_amount(self):
        with pytest.raises(ValidationError):
            _make_order(payment={"mode": "cod", "order_value": 500.0})

    def test_invalid_pincode_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _make_order(delivery_address={**_ADDRESS, "pincode": "7000"})
        assert "pincode" in exc.value.messages

    def test_invalid_phone_rejected(self):
        with pytest.raises(ValidationError) as exc:
            _make_order(delivery_address={**_ADDRESS, "phone": "1234567890"})
        assert "phone" in exc.value.messages


class TestWaybillAssignment:
    def test_assign_waybill_moves_to_ready_to_ship(self):
        order = _make_order()
        order.assign_waybill("WB0001", provider_status="Manifested")

        assert order.status == OrderStatus.READY_TO_SHIP.value
        assert order.waybill == "WB0001"
        assert order.provider_status == "Manifested"

    def test_assign_waybill_raises_dispatched_event(self):
        order = _make_order()
        order._events.clear()
        order.assign_waybill("WB0001")

        event_types = [type(e) for e in order._events]
        assert OrderStatusChanged in event_types
        assert OrderDispatched in event_types

    def test_blank_waybill_rejected(self):
        order = _make_order()
        with pytest.raises(ValidationError):
            order.assign_waybill("   ")
        assert order.status == OrderStatus.NEW.value
        assert order.waybill is None

    def test_waybill_assigned_only_once(self):
        order = _order_at_state(OrderStatus.READY_TO_SHIP)
        with pytest.raises(ValidationError):
            order.assign_waybill("WB0002")
        assert order.waybill == "WB0001"

    def test_cancelled_order_keeps_its_waybill(self):
        order = _order_at_state(OrderStatus.IN_TRANSIT)
        order.cancel(reason="Customer refused")
        assert order.waybill == "WB0001"


class TestTransitions:
    @pytest.mark.parametrize(
        "current, target",
        [
            (OrderStatus.READY_TO_SHIP, OrderStatus.PICKUPS_MANIFESTS),
            (OrderStatus.PICKUPS_MANIFESTS, OrderStatus.IN_TRANSIT),
            (OrderStatus.IN_TRANSIT, OrderStatus.OUT_FOR_DELIVERY),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.DELIVERED),
            (OrderStatus.OUT_FOR_DELIVERY, OrderStatus.NDR),
            (OrderStatus.NDR, OrderStatus.RTO),
            (OrderStatus.NDR, OrderStatus.OUT_FOR_DELIVERY),
            (OrderStatus.IN_TRANSIT, OrderStatus.LOST),
        ],
    )
    def test_valid_transition(self, current, target):
        order = _order_at_state(current)
        assert order.can_transition_to(target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (OrderStatus.NEW, OrderStatus.IN_TRANSIT),
            (OrderStatus.READY_TO_SHIP, OrderStatus.DELIVERED),
            (OrderStatus.IN_TRANSIT, OrderStatus.READY_TO_SHIP),
            (OrderStatus.DELIVERED, OrderStatus.RTO),
            (OrderStatus.RTO, OrderStatus.IN_TRANSIT),
        ],
    )
    def test_invalid_transition_rejected(self, current, target):
        order = _order_at_state(current)
        with pytest.raises(ValidationError):
            order.apply_courier_status(target)
        assert order.status == current.value

    def test_same_status_is_not_a_change(self):
        order = _order_at_state(OrderStatus.IN_TRANSIT)
        history_length = len(order.history())

        changed = order.apply_courier_status(OrderStatus.IN_TRANSIT, provider_status="Reached hub")

        assert changed is False
        assert len(order.history()) == history_length
        assert order.provider_status == "Reached hub"

    def test_courier_cannot_cancel(self):
        order = _order_at_state(OrderStatus.IN_TRANSIT)
        with pytest.raises(ValidationError):
            order.apply_courier_status(OrderStatus.CANCELLED)

    def test_history_follows_the_lifecycle(self):
        order = _order_at_state(OrderStatus.DELIVERED)
        assert [entry.status for entry in order.history()] == [
            "new",
            "ready_to_ship",
            "pickups_manifests",
            "in_transit",
            "out_for_delivery",
            "delivered",
        ]
        assert [entry.sequence for entry in order.history()] == [1, 2, 3, 4, 5, 6]

    def test_schedule_pickup_records_pickup_id(self):
        order = _order_at_state(OrderStatus.PICKUPS_MANIFESTS)
        assert order.pickup_id == "PU0001"


class TestCancellation:
    @pytest.mark.parametrize(
        "current, status_type",
        [
            (OrderStatus.NEW, "CN"),
            (OrderStatus.READY_TO_SHIP, "UD"),
            (OrderStatus.PICKUPS_MANIFESTS, "CN"),
            (OrderStatus.IN_TRANSIT, "RT"),
            (OrderStatus.NDR, "RT"),
        ],
    )
    def test_cancellation_type_follows_status(self, current, status_type):
        order = _order_at_state(current)
        order.cancel(reason="Merchant request")

        assert order.status == OrderStatus.CANCELLED.value
        assert order.cancellation.status == CancellationStatus.CANCELLED.value
        assert order.cancellation.status_type == status_type
        assert order.cancellation.cancelled_at is not None

    def test_cancel_raises_event(self):
        order = _order_at_state(OrderStatus.READY_TO_SHIP)
        order._events.clear()
        order.cancel(reason="Duplicate")

        cancelled = [e for e in order._events if isinstance(e, OrderCancelled)]
        assert len(cancelled) == 1
        assert cancelled[0].previous_status == "ready_to_ship"
        assert cancelled[0].shipping_charge == 35.5

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.RTO])
    def test_terminal_orders_cannot_be_cancelled(self, terminal):
        order = _order_at_state(terminal)
        assert not order.is_cancellable
        with pytest.raises(ValidationError):
            order.cancel()

    def test_cancelled_order_cannot_be_cancelled_again(self):
        order = _make_order()
        order.cancel()
        with pytest.raises(ValidationError):
            order.cancel()

    def test_lost_order_can_be_closed(self):
        order = _order_at_state(OrderStatus.LOST)
        order.cancel(reason="Lost in transit")
        assert order.status == OrderStatus.CANCELLED.value

    def test_pending_cancellation_keeps_status(self):
        order = _order_at_state(OrderStatus.READY_TO_SHIP)
        order._events.clear()
        order.mark_cancellation_pending(remark="Request received")

        assert order.status == OrderStatus.READY_TO_SHIP.value
        assert order.cancellation.status == CancellationStatus.PENDING.value
        assert any(isinstance(e, OrderCancellationPending) for e in order._events)

    def test_confirmed_cancellation_keeps_original_request_time(self):
        order = _order_at_state(OrderStatus.READY_TO_SHIP)
        order.mark_cancellation_pending(remark="Request received")
        requested_at = order.cancellation.requested_at

        order.cancel(remark="Shipment has been cancelled")

        assert order.cancellation.requested_at == requested_at
        assert order.cancellation.status == CancellationStatus.CANCELLED.value


class TestChargeLinkage:
    def test_record_charge_and_refund(self):
        order = _order_at_state(OrderStatus.READY_TO_SHIP)
        order.record_charge("DR1")
        assert order.charge_status == ChargeStatus.DEBITED.value
        assert order.wallet_transaction_id == "DR1"

        order.record_refund("RF1")
        assert order.charge_status == ChargeStatus.REFUNDED.value
        assert order.refund_transaction_id == "RF1"

    def test_record_billing(self):
        order = _order_at_state(OrderStatus.READY_TO_SHIP)
        order.record_billing(zone="A", forward_charge=42.0, total_charge=42.0, billing_cycle_id="BC-1")
        assert order.billing.zone == "A"
        assert order.billing.billing_cycle_id == "BC-1"
