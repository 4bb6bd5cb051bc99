"""Tests for the BillingCycle aggregate."""

from datetime import date

import pytest
from logistics.billing.billing_cycle import (
    BillingCycle,
    BillingCycleStatus,
    cycle_number_for,
    make_cycle_id,
    zone_bucket,
)
from protean.exceptions import ValidationError


def _cycle(on=date(2024, 2, 20)):
    return BillingCycle.start("merchant-000123", on)


def _add(cycle, order_id="ORD-1", **overrides):
    fields = {
        "order_id": order_id,
        "payment_mode": "prepaid",
        "declared_weight_g": 500.0,
        "charged_weight_g": 1200.0,
        "forward_charge": 62.0,
        "total_charge": 62.0,
        "zone": "C1",
    }
    fields.update(overrides)
    return cycle.add_order(**fields)


class TestCyclePeriods:
    @pytest.mark.parametrize("day, number", [(1, 1), (15, 1), (16, 2), (29, 2)])
    def test_cycle_number(self, day, number):
        assert cycle_number_for(date(2024, 2, day)) == number

    def test_cycle_id(self):
        assert make_cycle_id("merchant-000123", 2024, 2, 2) == "BC-000123-202402-C2"

    def test_first_half_period(self):
        assert _cycle(date(2024, 3, 3)).period_display == "01 Mar - 15 Mar, 2024"

    def test_second_half_ends_on_last_day_of_month(self):
        cycle = _cycle(date(2024, 2, 20))
        assert cycle.period_display == "16 Feb - 29 Feb, 2024"
        assert cycle.end_date.day == 29

    def test_zone_bucket(self):
        assert zone_bucket("C2") == "C"
        assert zone_bucket("D1") == "D"
        assert zone_bucket(None) is None


class TestAccumulation:
    def test_add_order_updates_summary(self):
        cycle = _cycle()
        assert _add(cycle) is True

        summary = cycle.summary()
        assert summary["total_orders"] == 1
        assert summary["prepaid_orders"] == 1
        assert summary["total_charged_weight_g"] == 1200.0
        assert summary["estimated_total"] == 62.0
        assert cycle.zone_distribution["C"] == 1

    def test_cod_orders_tracked(self):
        cycle = _cycle()
        _add(cycle, payment_mode="cod", cod_amount=1500.0, cod_charge=53.1, total_charge=115.1)

        assert cycle.cod_orders == 1
        assert cycle.total_cod_amount == 1500.0
        assert cycle.total_cod_charges == 53.1

    def test_order_billed_once(self):
        cycle = _cycle()
        _add(cycle)
        assert _add(cycle) is False
        assert cycle.total_orders == 1
        assert len(cycle.line_items) == 1

    def test_status_counters(self):
        cycle = _cycle()
        cycle.update_order_status("in_transit")
        cycle.update_order_status("delivered")
        cycle.update_order_status("cancelled")

        assert cycle.delivered_orders == 1
        assert cycle.in_transit_orders == 0
        assert cycle.cancelled_orders == 1

    def test_rto_charges_added_to_line_item(self):
        cycle = _cycle()
        _add(cycle)
        cycle.add_rto_charges(74.0, order_id="ORD-1")

        assert cycle.total_rto_charges == 74.0
        assert cycle.estimated_total == 136.0
        assert cycle.line_item_for("ORD-1").rto_charge == 74.0


class TestLifecycle:
    def test_close_then_invoice(self):
        cycle = _cycle()
        cycle.close()
        assert cycle.status == BillingCycleStatus.CLOSED.value

        cycle.mark_invoiced("INV-1")
        assert cycle.status == BillingCycleStatus.INVOICED.value
        assert cycle.invoice_id == "INV-1"

    def test_open_cycle_cannot_be_invoiced(self):
        with pytest.raises(ValidationError):
            _cycle().mark_invoiced("INV-1")

    def test_closed_cycle_cannot_close_again(self):
        cycle = _cycle()
        cycle.close()
        with pytest.raises(ValidationError):
            cycle.close()
