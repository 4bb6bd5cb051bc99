"""Shared BDD step definitions for fulfillment and wallet scenarios."""

import pytest
from logistics.errors import LogisticsError
from logistics.order.order import Order
from logistics.wallet.transaction import TransactionCategory
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError
from pytest_bdd import given, parsers, then

MERCHANT = "merchant-001"


@pytest.fixture()
def attempt():
    """Run a workflow step, capturing the business error instead of raising it."""

    def _attempt(action):
        try:
            return {"result": action(), "error": None}
        except (LogisticsError, ValidationError) as exc:
            return {"result": None, "error": exc}

    return _attempt


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse("a merchant wallet funded with {amount:f}"))
def _(fund, amount):
    fund(amount)


@given("the wallet is drained")
def _(ledger):
    ledger.debit(MERCHANT, ledger.balance(MERCHANT), category=TransactionCategory.PENALTY)


@given(parsers.cfparse('order "{order_id}" was shipped with shipping charge {charge:f}'))
def _(orchestrator, make_command, order_id, charge):
    orchestrator.create_order(make_command(order_id=order_id, payment={"shipping_charge": charge}))


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse("the wallet balance is {amount:f}"))
def _(ledger, amount):
    assert ledger.balance(MERCHANT) == amount


@then(parsers.cfparse('the request fails with "{error}"'))
def _(outcome, error):
    assert outcome["error"] is not None
    assert type(outcome["error"]).__name__ == error


@then(parsers.cfparse('order "{order_id}" is "{status}" with a waybill'))
def _(order_id, status):
    order = current_domain.repository_for(Order).get(order_id)
    assert order.status == status
    assert order.waybill


@then(parsers.cfparse('no order "{order_id}" exists'))
def _(order_id):
    try:
        current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        return
    raise AssertionError(f"Order {order_id} was persisted")
