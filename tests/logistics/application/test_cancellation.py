"""Cancellation through the courier, with the shipping charge refunded once."""

import threading
import time

import pytest
from logistics.domain import logistics
from logistics.errors import CourierProviderError
from logistics.order.order import ChargeStatus, Order, OrderStatus
from logistics.order.tracking import UpdateShipmentStatus
from logistics.wallet.ledger import WalletLedger
from logistics.wallet.transaction import TransactionCategory
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

MERCHANT = "merchant-001"


def _advance(waybill, *courier_statuses):
    for courier_status in courier_statuses:
        current_domain.process(
            UpdateShipmentStatus(waybill=waybill, courier_status=courier_status),
            asynchronous=False,
        )


def _refunds(ledger, order_id):
    return [
        t
        for t in ledger.transactions(MERCHANT, category=TransactionCategory.SHIPMENT_CANCELLATION_REFUND.value)
        if t.order_id == order_id
    ]


class TestConfirmedCancellation:
    def test_refund_restores_the_balance(self, orchestrator, shipped_order, ledger):
        result = orchestrator.cancel_order(MERCHANT, shipped_order.order_id, reason="Customer changed mind")

        assert result.outcome == "cancelled"
        assert result.status == OrderStatus.CANCELLED.value
        assert result.refund_amount == 35.5
        assert ledger.balance(MERCHANT) == 100.0

        refund = ledger.transactions(MERCHANT)[0]
        assert refund.transaction_id == result.refund_transaction_id
        assert refund.transaction_id.startswith("RF")
        assert refund.balance.opening_balance == 64.5
        assert refund.balance.closing_balance == 100.0

    def test_order_records_cancellation_and_refund(self, orchestrator, shipped_order):
        result = orchestrator.cancel_order(MERCHANT, shipped_order.order_id, reason="Duplicate")

        order = current_domain.repository_for(Order).get(shipped_order.order_id)
        assert order.cancellation.status == "cancelled"
        assert order.cancellation.status_type == "UD"
        assert order.cancellation.reason == "Duplicate"
        assert order.charge_status == ChargeStatus.REFUNDED.value
        assert order.refund_transaction_id == result.refund_transaction_id
        assert order.waybill == shipped_order.waybill

    def test_courier_asked_to_cancel_the_waybill(self, orchestrator, shipped_order, courier):
        orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert courier.calls_to("cancel_shipment") == [{"method": "cancel_shipment", "waybill": shipped_order.waybill}]
        assert courier.shipments[shipped_order.waybill]["cancelled"] is True

    def test_in_transit_cancellation_is_return_to_origin(self, orchestrator, shipped_order):
        _advance(shipped_order.waybill, "Pickup Scheduled", "In Transit")

        result = orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert result.status_type == "RT"

    def test_saved_order_cancelled_without_courier(self, orchestrator, make_command, fund, courier, ledger):
        fund(100.0)
        orchestrator.create_order(make_command(order_id="ORD-1", generate_awb=False))

        result = orchestrator.cancel_order(MERCHANT, "ORD-1")

        assert result.status_type == "CN"
        assert result.refund_amount == 35.5
        assert courier.calls_to("cancel_shipment") == []
        assert ledger.balance(MERCHANT) == 100.0

    def test_unpaid_order_gets_no_refund(self, orchestrator, make_command, ledger):
        orchestrator.create_order(make_command(order_id="ORD-1", payment={"shipping_charge": 0.0}))

        result = orchestrator.cancel_order(MERCHANT, "ORD-1")

        assert result.outcome == "cancelled"
        assert result.refund_transaction_id is None
        assert ledger.transactions(MERCHANT) == []


class TestRepeatedCancellation:
    def test_second_cancel_reports_already_cancelled(self, orchestrator, shipped_order, courier, ledger):
        first = orchestrator.cancel_order(MERCHANT, shipped_order.order_id)
        second = orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert second.outcome == "already_cancelled"
        assert second.refund_transaction_id == first.refund_transaction_id
        assert len(_refunds(ledger, shipped_order.order_id)) == 1
        assert len(courier.calls_to("cancel_shipment")) == 1
        assert ledger.balance(MERCHANT) == 100.0

    def test_missing_refund_is_issued_on_retry(self, orchestrator, shipped_order, ledger):
        repo = current_domain.repository_for(Order)
        order = repo.get(shipped_order.order_id)
        order.cancel(reason="Cancelled by courier")
        repo.add(order)
        assert ledger.balance(MERCHANT) == 64.5

        result = orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert result.outcome == "already_cancelled"
        assert result.refund_amount == 35.5
        assert ledger.balance(MERCHANT) == 100.0
        assert len(_refunds(ledger, shipped_order.order_id)) == 1

    def test_concurrent_heals_refund_once(self, orchestrator, shipped_order, ledger, monkeypatch):
        repo = current_domain.repository_for(Order)
        order = repo.get(shipped_order.order_id)
        order.cancel(reason="Cancelled by courier")
        repo.add(order)

        # Widen the gap between the refund lookup and the credit.
        lookup = WalletLedger.find_refund

        def slow_lookup(self, merchant_id, order_id):
            found = lookup(self, merchant_id, order_id)
            time.sleep(0.05)
            return found

        monkeypatch.setattr(WalletLedger, "find_refund", slow_lookup)

        errors = []

        def heal():
            try:
                with logistics.domain_context():
                    orchestrator.cancel_order(MERCHANT, shipped_order.order_id)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=heal) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(_refunds(ledger, shipped_order.order_id)) == 1
        assert ledger.balance(MERCHANT) == 100.0

    def test_refund_once_returns_existing_refund(self, ledger, fund):
        fund(64.5)
        first = ledger.refund_once(MERCHANT, "ORD-7", 35.5)
        second = ledger.refund_once(MERCHANT, "ORD-7", 35.5)

        assert second.transaction_id == first.transaction_id
        assert first.transaction_id.startswith("RF")
        assert ledger.balance(MERCHANT) == 100.0


class TestUnconfirmedCancellation:
    def test_timeout_leaves_order_and_wallet_untouched(self, orchestrator, shipped_order, courier, ledger):
        courier.configure(cancel_mode="timeout")

        with pytest.raises(CourierProviderError) as exc:
            orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert exc.value.retryable is True
        order = current_domain.repository_for(Order).get(shipped_order.order_id)
        assert order.status == OrderStatus.READY_TO_SHIP.value
        assert order.charge_status == ChargeStatus.DEBITED.value
        assert ledger.balance(MERCHANT) == 64.5

    def test_courier_denial(self, orchestrator, shipped_order, courier, ledger):
        courier.configure(cancel_mode="denied")

        with pytest.raises(CourierProviderError) as exc:
            orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert exc.value.retryable is False
        assert "already picked up" in exc.value.message
        assert ledger.balance(MERCHANT) == 64.5

    def test_ambiguous_answer_leaves_cancellation_pending(self, orchestrator, shipped_order, courier, ledger):
        courier.configure(cancel_mode="ambiguous")

        result = orchestrator.cancel_order(MERCHANT, shipped_order.order_id, reason="Wrong address")

        assert result.outcome == "pending"
        assert result.status == OrderStatus.READY_TO_SHIP.value
        assert result.remark == "Request received"
        assert result.refund_transaction_id is None
        assert ledger.balance(MERCHANT) == 64.5

        order = current_domain.repository_for(Order).get(shipped_order.order_id)
        assert order.cancellation.status == "pending"

    def test_pending_cancellation_completes_on_retry(self, orchestrator, shipped_order, courier, ledger):
        courier.configure(cancel_mode="ambiguous")
        orchestrator.cancel_order(MERCHANT, shipped_order.order_id)
        requested_at = current_domain.repository_for(Order).get(shipped_order.order_id).cancellation.requested_at

        courier.configure(cancel_mode="confirmed")
        result = orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert result.outcome == "cancelled"
        assert ledger.balance(MERCHANT) == 100.0
        order = current_domain.repository_for(Order).get(shipped_order.order_id)
        assert order.cancellation.requested_at == requested_at


class TestCancellationRejected:
    def test_delivered_order_cannot_be_cancelled(self, orchestrator, shipped_order, courier):
        _advance(shipped_order.waybill, "Pickup Scheduled", "In Transit", "Out for Delivery", "Delivered")

        with pytest.raises(ValidationError) as exc:
            orchestrator.cancel_order(MERCHANT, shipped_order.order_id)

        assert "status" in exc.value.messages
        assert courier.calls_to("cancel_shipment") == []

    def test_other_merchants_order_is_not_found(self, orchestrator, shipped_order):
        with pytest.raises(ObjectNotFoundError):
            orchestrator.cancel_order("merchant-002", shipped_order.order_id)

    def test_unknown_order(self, orchestrator):
        with pytest.raises(ObjectNotFoundError):
            orchestrator.cancel_order(MERCHANT, "ORD-404")
