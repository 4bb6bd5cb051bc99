"""Customer aggregate — a merchant's recipient book with order statistics.

Customers are keyed by merchant and phone number and are never created
directly: the first order shipped to a phone number creates the profile,
later orders update its statistics.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, Float, Identifier, Integer, String

from logistics.domain import logistics
from logistics.utils.money import round2


def customer_key(merchant_id: str, phone: str) -> str:
    return f"{merchant_id}:{phone}"


@logistics.aggregate
class Customer:
    customer_id = String(identifier=True, max_length=120)
    merchant_id = Identifier(required=True)
    phone = String(required=True, max_length=10)
    name = String(max_length=200)
    city = String(max_length=100)
    pincode = String(max_length=6)
    total_orders = Integer(default=0)
    total_order_value = Float(default=0.0)
    cod_orders = Integer(default=0)
    prepaid_orders = Integer(default=0)
    first_order_at = DateTime()
    last_order_at = DateTime()
    last_order_id = String(max_length=60)

    @classmethod
    def first_seen(cls, merchant_id: str, phone: str, name: str | None = None):
        return cls(
            customer_id=customer_key(merchant_id, phone),
            merchant_id=merchant_id,
            phone=phone,
            name=name,
        )

    def record_order(
        self,
        order_id: str,
        payment_mode: str,
        order_value: float,
        placed_at: datetime | None = None,
        name: str | None = None,
        city: str | None = None,
        pincode: str | None = None,
    ) -> None:
        placed_at = placed_at or datetime.now(UTC)
        if self.last_order_id == order_id:
            return

        self.total_orders += 1
        self.total_order_value = round2(self.total_order_value + (order_value or 0.0))
        if payment_mode == "cod":
            self.cod_orders += 1
        else:
            self.prepaid_orders += 1

        self.first_order_at = self.first_order_at or placed_at
        self.last_order_at = placed_at
        self.last_order_id = order_id
        # Latest order wins for contact details.
        self.name = name or self.name
        self.city = city or self.city
        self.pincode = pincode or self.pincode
