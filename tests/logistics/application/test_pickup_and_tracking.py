"""Pickup scheduling, courier tracking updates, labels and listings."""

import pytest
from logistics.errors import CourierProviderError
from logistics.order.order import Order, OrderStatus
from logistics.order.tracking import UpdateShipmentStatus
from protean import current_domain
from protean.exceptions import ValidationError

MERCHANT = "merchant-001"


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _update(waybill, courier_status, **fields):
    return current_domain.process(
        UpdateShipmentStatus(waybill=waybill, courier_status=courier_status, **fields),
        asynchronous=False,
    )


class TestSchedulePickup:
    def test_ready_orders_move_to_pickups_manifests(self, orchestrator, shipped_order, courier):
        result = orchestrator.schedule_pickup(MERCHANT, [shipped_order.order_id], "2024-03-01", "14:00")

        assert result.pickup_id.startswith("PU")
        assert result.scheduled == [shipped_order.order_id]
        assert result.rejected == []

        order = _order(shipped_order.order_id)
        assert order.status == OrderStatus.PICKUPS_MANIFESTS.value
        assert order.pickup_id == result.pickup_id

        call = courier.calls_to("schedule_pickup")[0]
        assert call["location"] == "Indiranagar Warehouse"
        assert call["expected_count"] == 1

    def test_explicit_location(self, orchestrator, shipped_order, courier):
        orchestrator.schedule_pickup(MERCHANT, [shipped_order.order_id], "2024-03-01", "14:00", location="Dock 2")
        assert courier.calls_to("schedule_pickup")[0]["location"] == "Dock 2"

    def test_orders_not_ready_are_rejected(self, orchestrator, shipped_order, make_command):
        orchestrator.create_order(make_command(order_id="ORD-NEW", generate_awb=False))

        result = orchestrator.schedule_pickup(
            MERCHANT,
            [shipped_order.order_id, "ORD-NEW", "ORD-404"],
            "2024-03-01",
            "14:00",
        )

        assert result.scheduled == [shipped_order.order_id]
        assert {r["order_id"] for r in result.rejected} == {"ORD-NEW", "ORD-404"}
        assert _order("ORD-NEW").status == OrderStatus.NEW.value

    def test_nothing_ready(self, orchestrator, make_command, fund, courier):
        fund(100.0)
        orchestrator.create_order(make_command(order_id="ORD-NEW", generate_awb=False))

        with pytest.raises(ValidationError):
            orchestrator.schedule_pickup(MERCHANT, ["ORD-NEW"], "2024-03-01", "14:00")
        assert courier.calls_to("schedule_pickup") == []

    def test_courier_failure_leaves_orders_ready(self, orchestrator, shipped_order, courier):
        courier.pickup_succeeds = False

        with pytest.raises(CourierProviderError):
            orchestrator.schedule_pickup(MERCHANT, [shipped_order.order_id], "2024-03-01", "14:00")

        assert _order(shipped_order.order_id).status == OrderStatus.READY_TO_SHIP.value


class TestTrackOrder:
    def test_latest_scan_synced_to_order(self, orchestrator, shipped_order, courier):
        orchestrator.schedule_pickup(MERCHANT, [shipped_order.order_id], "2024-03-01", "14:00")
        courier.add_scan(shipped_order.waybill, "Picked Up", location="Bengaluru Hub")

        tracking = orchestrator.track_order(MERCHANT, shipped_order.order_id)

        assert tracking.status == "Picked Up"
        assert [scan.status for scan in tracking.scans] == ["Manifested", "Picked Up"]
        order = _order(shipped_order.order_id)
        assert order.status == OrderStatus.IN_TRANSIT.value
        assert order.provider_status == "Picked Up"

    def test_out_of_sequence_scan_ignored(self, orchestrator, shipped_order, courier):
        courier.add_scan(shipped_order.waybill, "Delivered")

        orchestrator.track_order(MERCHANT, shipped_order.order_id)

        assert _order(shipped_order.order_id).status == OrderStatus.READY_TO_SHIP.value

    def test_sync_can_be_disabled(self, orchestrator, shipped_order, courier):
        orchestrator.schedule_pickup(MERCHANT, [shipped_order.order_id], "2024-03-01", "14:00")
        courier.add_scan(shipped_order.waybill, "Picked Up")

        orchestrator.track_order(MERCHANT, shipped_order.order_id, sync_status=False)

        assert _order(shipped_order.order_id).status == OrderStatus.PICKUPS_MANIFESTS.value

    def test_order_without_waybill(self, orchestrator, make_command, fund):
        fund(100.0)
        orchestrator.create_order(make_command(order_id="ORD-NEW", generate_awb=False))

        with pytest.raises(ValidationError):
            orchestrator.track_order(MERCHANT, "ORD-NEW")


class TestUpdateShipmentStatus:
    def test_courier_status_applied(self, shipped_order):
        _update(shipped_order.waybill, "Pickup Scheduled")
        status = _update(shipped_order.waybill, "In Transit", location="Nagpur Hub", remarks="Bagged")

        assert status == OrderStatus.IN_TRANSIT.value
        entry = _order(shipped_order.order_id).history()[-1]
        assert entry.status == "in_transit"
        assert entry.location == "Nagpur Hub"
        assert entry.actor == "courier"

    def test_full_forward_journey(self, shipped_order):
        for courier_status in ("Pickup Scheduled", "Picked Up", "Out for Delivery", "Delivered"):
            _update(shipped_order.waybill, courier_status)

        order = _order(shipped_order.order_id)
        assert order.status == OrderStatus.DELIVERED.value
        assert order.is_terminal

    def test_undelivered_then_return(self, shipped_order):
        for courier_status in ("Pickup Scheduled", "In Transit", "Undelivered"):
            _update(shipped_order.waybill, courier_status)
        _update(shipped_order.waybill, "In Transit", status_type="RT")
        _update(shipped_order.waybill, "Delivered", status_type="RT")

        assert _order(shipped_order.order_id).status == OrderStatus.RTO.value

    def test_repeated_status_is_not_a_new_history_entry(self, shipped_order):
        _update(shipped_order.waybill, "Pickup Scheduled")
        before = len(_order(shipped_order.order_id).history())

        _update(shipped_order.waybill, "Not Picked")

        order = _order(shipped_order.order_id)
        assert len(order.history()) == before
        assert order.provider_status == "Not Picked"

    def test_unmapped_status_ignored(self, shipped_order):
        status = _update(shipped_order.waybill, "Shipment Weighed")

        assert status == OrderStatus.READY_TO_SHIP.value

    def test_unknown_waybill(self, shipped_order):
        with pytest.raises(ValidationError):
            _update("NOPE0000000000", "In Transit")

    def test_other_merchants_waybill(self, shipped_order):
        with pytest.raises(ValidationError):
            _update(shipped_order.waybill, "Pickup Scheduled", merchant_id="merchant-002")


class TestLabelsAndListing:
    def test_label_combines_order_and_courier_fields(self, orchestrator, shipped_order):
        label = orchestrator.render_label(MERCHANT, shipped_order.order_id)

        assert label["waybill"] == shipped_order.waybill
        assert label["consignee"] == "Asha Rao"
        assert label["pin"] == "700016"
        assert label["return_pin"] == "560038"
        assert label["barcode"] == shipped_order.waybill

    def test_no_label_before_waybill(self, orchestrator, make_command, fund):
        fund(100.0)
        orchestrator.create_order(make_command(order_id="ORD-NEW", generate_awb=False))

        with pytest.raises(ValidationError):
            orchestrator.render_label(MERCHANT, "ORD-NEW")

    def test_list_orders_filters_by_status(self, orchestrator, shipped_order, make_command):
        orchestrator.create_order(make_command(order_id="ORD-NEW", generate_awb=False))

        assert {o.order_id for o in orchestrator.list_orders(MERCHANT)} == {shipped_order.order_id, "ORD-NEW"}
        assert [o.order_id for o in orchestrator.list_orders(MERCHANT, status="new")] == ["ORD-NEW"]
        assert orchestrator.list_orders("merchant-002") == []
