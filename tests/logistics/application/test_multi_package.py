"""Multi-box requests fan out into independent per-box orders."""

import pytest
from logistics.orchestration.results import OverallResult, PackageOutcome
from logistics.order.order import Order
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

MERCHANT = "merchant-001"


def _three_boxes(make_command, **fields):
    return make_command(order_id="P", package={"number_of_boxes": 3}, **fields)


class TestMultiPackageOrders:
    def test_all_boxes_dispatched(self, orchestrator, make_command, fund, ledger):
        fund(200.0)

        result = orchestrator.create_multi_package_order(_three_boxes(make_command))

        assert result.overall == OverallResult.ALL_SUCCESS.value
        assert result.successful_orders == ["P-1", "P-2", "P-3"]
        assert result.failed_orders == []
        # Shipping charge is per box.
        assert ledger.balance(MERCHANT) == 93.5

    def test_each_box_is_a_single_package_order(self, orchestrator, make_command, fund):
        fund(200.0)
        orchestrator.create_multi_package_order(_three_boxes(make_command))

        order = current_domain.repository_for(Order).get("P-2")
        assert order.package.number_of_boxes == 1
        assert order.waybill

    def test_one_failed_box_does_not_roll_back_the_others(self, orchestrator, make_command, fund, courier):
        fund(200.0)
        courier.fail_on_create(2)

        result = orchestrator.create_multi_package_order(_three_boxes(make_command))

        assert result.overall == OverallResult.PARTIAL_SUCCESS.value
        assert result.successful_orders == ["P-1", "P-3"]
        assert [f["order_id"] for f in result.failed_orders] == ["P-2"]
        assert result.failed_orders[0]["error_type"] == "CourierProviderError"

        repo = current_domain.repository_for(Order)
        assert repo.get("P-1").waybill
        assert repo.get("P-3").waybill
        with pytest.raises(ObjectNotFoundError):
            repo.get("P-2")

    def test_exhausted_wallet_skips_remaining_boxes(self, orchestrator, make_command, fund, courier):
        fund(40.0)

        result = orchestrator.create_multi_package_order(_three_boxes(make_command))

        outcomes = [p.outcome for p in result.packages]
        assert outcomes == [
            PackageOutcome.SUCCESS.value,
            PackageOutcome.FAILED.value,
            PackageOutcome.SKIPPED.value,
        ]
        assert result.packages[1].error_type == "InsufficientBalanceError"
        assert len(courier.calls_to("create_shipment")) == 1

    def test_all_boxes_failing(self, orchestrator, make_command, fund, courier):
        fund(200.0)
        courier.configure(create_mode="fail")

        result = orchestrator.create_multi_package_order(_three_boxes(make_command))

        assert result.overall == OverallResult.ALL_FAILED.value
        assert result.successful_orders == []
        assert len(result.failed_orders) == 3

    def test_order_value_split_with_remainder_on_last_box(self, orchestrator, make_command, fund):
        fund(200.0)
        orchestrator.create_multi_package_order(_three_boxes(make_command, payment={"order_value": 1000.0}))

        repo = current_domain.repository_for(Order)
        values = [repo.get(f"P-{box}").payment.order_value for box in (1, 2, 3)]
        assert values == [333.33, 333.33, 333.34]

    def test_cod_amount_split(self, orchestrator, make_command, fund):
        fund(200.0)
        payment = {"mode": "cod", "order_value": 500.0, "cod_amount": 500.0}
        orchestrator.create_multi_package_order(_three_boxes(make_command, payment=payment))

        repo = current_domain.repository_for(Order)
        amounts = [repo.get(f"P-{box}").payment.cod_amount for box in (1, 2, 3)]
        assert amounts == [166.66, 166.66, 166.68]

    def test_small_cod_amount_leaves_every_box_collecting(self, orchestrator, make_command, fund):
        fund(200.0)
        payment = {"mode": "cod", "order_value": 0.05, "cod_amount": 0.05}
        result = orchestrator.create_multi_package_order(_three_boxes(make_command, payment=payment))

        assert result.overall == OverallResult.ALL_SUCCESS.value
        repo = current_domain.repository_for(Order)
        assert [repo.get(f"P-{box}").payment.cod_amount for box in (1, 2, 3)] == [0.01, 0.01, 0.03]

    def test_cod_amount_below_one_paisa_per_box_rejected(self, orchestrator, make_command, fund, courier, ledger):
        fund(200.0)
        payment = {"mode": "cod", "order_value": 0.02, "cod_amount": 0.02}

        with pytest.raises(ValidationError) as exc:
            orchestrator.create_multi_package_order(_three_boxes(make_command, payment=payment))

        assert "cod_amount" in exc.value.messages
        assert courier.calls_to("create_shipment") == []
        assert ledger.balance(MERCHANT) == 200.0
        with pytest.raises(ObjectNotFoundError):
            current_domain.repository_for(Order).get("P-1")

    def test_child_reference_ids(self, orchestrator, make_command, fund):
        fund(200.0)
        orchestrator.create_multi_package_order(_three_boxes(make_command, reference_id="REF-9"))

        assert current_domain.repository_for(Order).get("P-3").reference_id == "REF-9-3"

    def test_result_serialises(self, orchestrator, make_command, fund):
        fund(200.0)
        payload = orchestrator.create_multi_package_order(_three_boxes(make_command)).to_dict()

        assert payload["parent_order_id"] == "P"
        assert len(payload["packages"]) == 3
