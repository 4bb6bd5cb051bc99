"""Courier factory.

Provides get_courier() / set_courier() to swap implementations:
- FakeCourier for development and testing
- DelhiveryCourier for production (COURIER_ADAPTER=delhivery)
"""

import os

from logistics.courier.port import CourierPort

_current_courier: CourierPort | None = None


def get_courier() -> CourierPort:
    """Return the current courier adapter. Defaults to FakeCourier."""
    global _current_courier
    if _current_courier is None:
        adapter = os.environ.get("COURIER_ADAPTER", "fake")
        if adapter == "fake":
            from logistics.courier.fake_adapter import FakeCourier

            _current_courier = FakeCourier()
        elif adapter == "delhivery":
            from logistics.courier.delhivery_adapter import DelhiveryCourier

            _current_courier = DelhiveryCourier.from_env()
        else:
            raise ValueError(f"Unknown courier adapter: {adapter}")
    return _current_courier


def set_courier(courier: CourierPort) -> None:
    """Override the active courier adapter (useful for tests)."""
    global _current_courier
    _current_courier = courier


def reset_courier() -> None:
    """Reset to default courier."""
    global _current_courier
    _current_courier = None
