"""Order creation request handed from the API to the orchestrator."""

from dataclasses import dataclass


@dataclass(frozen=True)
class CreateShipmentOrder:
    """Create an order, optionally dispatching it to the courier right away.

    The API has already validated the shape with pydantic; the nested
    structures are plain dicts. ``pickup_address`` is ignored when
    ``warehouse_id`` is given.
    """

    merchant_id: str
    delivery_address: dict
    package: dict
    payment: dict
    order_id: str | None = None
    reference_id: str | None = None
    warehouse_id: str | None = None
    pickup_address: dict | None = None
    zone: str | None = None
    generate_awb: bool = True
    actor: str = "merchant"
