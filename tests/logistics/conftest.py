"""Shared fixtures for the logistics tests.

Every test gets fresh fake adapters (courier, payment gateway, merchant
notifier) installed in the factories, so code that resolves its adapter
through ``get_courier()`` and friends sees the same fake the test
configures.
"""

import pytest
from logistics.courier import reset_courier, set_courier
from logistics.courier.fake_adapter import FakeCourier
from logistics.gateway import reset_gateway, set_gateway
from logistics.gateway.fake_adapter import FakeGateway
from logistics.notifier import reset_notifier, set_notifier
from logistics.notifier.fake_adapter import FakeNotifier
from logistics.orchestration.commands import CreateShipmentOrder
from logistics.orchestration.orchestrator import create_orchestrator
from logistics.wallet.ledger import WalletLedger
from logistics.wallet.topup import create_topup_service

MERCHANT_ID = "merchant-001"
OTHER_MERCHANT_ID = "merchant-002"

PICKUP_ADDRESS = {
    "name": "Indiranagar Warehouse",
    "full_address": "12, 100 Feet Road, Indiranagar",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560038",
    "phone": "9876543210",
}

DELIVERY_ADDRESS = {
    "name": "Asha Rao",
    "full_address": "4, Park Street",
    "city": "Kolkata",
    "state": "West Bengal",
    "pincode": "700016",
    "phone": "9123456780",
}

PACKAGE = {
    "weight_kg": 0.5,
    "length_cm": 10.0,
    "width_cm": 10.0,
    "height_cm": 10.0,
    "number_of_boxes": 1,
}

PREPAID_PAYMENT = {
    "mode": "prepaid",
    "order_value": 999.0,
    "shipping_charge": 35.5,
}


# ---------------------------------------------------------------------------
# Fake adapters
# ---------------------------------------------------------------------------
@pytest.fixture(autouse=True)
def courier():
    fake = FakeCourier()
    set_courier(fake)
    yield fake
    reset_courier()


@pytest.fixture(autouse=True)
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture(autouse=True)
def notifier():
    fake = FakeNotifier()
    set_notifier(fake)
    yield fake
    reset_notifier()


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------
@pytest.fixture()
def ledger():
    return WalletLedger()


@pytest.fixture()
def orchestrator(courier):
    return create_orchestrator(courier)


@pytest.fixture()
def topup_service(gateway):
    return create_topup_service(gateway)


@pytest.fixture()
def fund(ledger):
    """Credit a merchant wallet directly, as a settled top-up would."""

    def _fund(amount: float, merchant_id: str = MERCHANT_ID):
        return ledger.credit(merchant_id, amount)

    return _fund


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------
@pytest.fixture()
def make_command():
    """Build a ``CreateShipmentOrder`` with sensible defaults and overrides."""

    def _make(
        merchant_id: str = MERCHANT_ID,
        package: dict | None = None,
        payment: dict | None = None,
        delivery: dict | None = None,
        pickup: dict | None = None,
        **fields,
    ) -> CreateShipmentOrder:
        pickup_address = None if fields.get("warehouse_id") else {**PICKUP_ADDRESS, **(pickup or {})}
        return CreateShipmentOrder(
            merchant_id=merchant_id,
            pickup_address=pickup_address,
            delivery_address={**DELIVERY_ADDRESS, **(delivery or {})},
            package={**PACKAGE, **(package or {})},
            payment={**PREPAID_PAYMENT, **(payment or {})},
            **fields,
        )

    return _make


@pytest.fixture()
def shipped_order(orchestrator, make_command, fund):
    """A funded, dispatched order in ``ready_to_ship``."""
    fund(100.0)
    return orchestrator.create_order(make_command(order_id="ORD-1001", reference_id="REF-1001"))
