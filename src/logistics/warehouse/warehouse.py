"""Warehouse aggregate — a merchant's registered pickup location.

The warehouse name doubles as the courier's pickup location name, so pickup
requests for orders shipped from it refer to it by name.
"""

from datetime import UTC, datetime

from protean.exceptions import ObjectNotFoundError, ValidationError
from protean.fields import Boolean, DateTime, Identifier, String
from protean.utils.globals import current_domain

from logistics.domain import logistics


def warehouse_key(merchant_id: str, name: str) -> str:
    return f"{merchant_id}:{name.strip().lower()}"


@logistics.aggregate
class Warehouse:
    warehouse_id = String(identifier=True, max_length=150)
    merchant_id = Identifier(required=True)
    name = String(required=True, max_length=100)
    contact_name = String(max_length=200)
    full_address = String(required=True, max_length=500)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    pincode = String(required=True, max_length=6)
    phone = String(required=True, max_length=10)
    is_active = Boolean(default=True)
    created_at = DateTime()

    @classmethod
    def register(cls, merchant_id: str, name: str, **address):
        if not name or not name.strip():
            raise ValidationError({"name": ["Warehouse name is required"]})
        return cls(
            warehouse_id=warehouse_key(merchant_id, name),
            merchant_id=merchant_id,
            name=name.strip(),
            created_at=datetime.now(UTC),
            **address,
        )

    def pickup_address(self) -> dict:
        """Address fields in the shape ``Order`` expects."""
        return {
            "name": self.name,
            "full_address": self.full_address,
            "city": self.city,
            "state": self.state,
            "pincode": self.pincode,
            "phone": self.phone,
        }

    def deactivate(self) -> None:
        self.is_active = False


def find_warehouse(merchant_id: str, warehouse_id: str) -> Warehouse:
    """A merchant's active warehouse, looked up by id or by name."""
    repo = current_domain.repository_for(Warehouse)
    for key in (warehouse_id, warehouse_key(merchant_id, warehouse_id)):
        try:
            warehouse = repo.get(key)
        except ObjectNotFoundError:
            continue
        if warehouse.merchant_id == merchant_id and warehouse.is_active:
            return warehouse
    raise ValidationError({"warehouse_id": [f"Unknown or inactive warehouse {warehouse_id}"]})
