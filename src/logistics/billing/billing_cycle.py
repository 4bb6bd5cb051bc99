"""BillingCycle aggregate — semi-monthly charge accumulation per merchant.

Cycle 1 covers days 1-15 of a month, cycle 2 runs from the 16th to the last
day. A cycle is created lazily the first time an order is billed in it.

Lifecycle:
    OPEN → CLOSED → INVOICED
"""

import calendar
from datetime import UTC, date, datetime, time
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, HasMany, Identifier, Integer, String

from logistics.domain import logistics
from logistics.utils.money import round2

_MONTH_NAMES = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")


class BillingCycleStatus(Enum):
    OPEN = "open"
    CLOSED = "closed"
    INVOICED = "invoiced"


def cycle_number_for(day: date) -> int:
    return 1 if day.day <= 15 else 2


def cycle_bounds(year: int, month: int, cycle_number: int) -> tuple[datetime, datetime]:
    if cycle_number == 1:
        start, end = date(year, month, 1), date(year, month, 15)
    else:
        last_day = calendar.monthrange(year, month)[1]
        start, end = date(year, month, 16), date(year, month, last_day)
    return (
        datetime.combine(start, time.min, tzinfo=UTC),
        datetime.combine(end, time.max, tzinfo=UTC),
    )


def make_cycle_id(merchant_id: str, year: int, month: int, cycle_number: int) -> str:
    """``BC-<last six chars of merchant>-<YYYYMM>-C<n>``"""
    return f"BC-{str(merchant_id)[-6:]}-{year}{month:02d}-C{cycle_number}"


def zone_bucket(zone: str | None) -> str | None:
    """C1/C2 count as C, D1/D2 as D."""
    if not zone:
        return None
    bucket = zone[0].upper()
    return bucket if bucket in "ABCDEF" else None


@logistics.entity(part_of="BillingCycle")
class BillingLineItem:
    order_id = String(required=True, max_length=60)
    waybill = String(max_length=50)
    zone = String(max_length=4)
    payment_mode = String(max_length=20)
    declared_weight_g = Float(default=0.0)
    charged_weight_g = Float(default=0.0)
    forward_charge = Float(default=0.0)
    rto_charge = Float(default=0.0)
    cod_charge = Float(default=0.0)
    total_charge = Float(default=0.0)
    added_at = DateTime()


@logistics.aggregate
class BillingCycle:
    cycle_id = String(identifier=True, max_length=50)
    merchant_id = Identifier(required=True)
    year = Integer(required=True)
    month = Integer(required=True, min_value=1, max_value=12)
    cycle_number = Integer(required=True, min_value=1, max_value=2)
    start_date = DateTime(required=True)
    end_date = DateTime(required=True)
    status = String(choices=BillingCycleStatus, default=BillingCycleStatus.OPEN.value)
    invoice_id = String(max_length=100)
    closed_at = DateTime()
    invoiced_at = DateTime()

    # Running summary
    total_orders = Integer(default=0)
    delivered_orders = Integer(default=0)
    rto_orders = Integer(default=0)
    cancelled_orders = Integer(default=0)
    in_transit_orders = Integer(default=0)
    prepaid_orders = Integer(default=0)
    cod_orders = Integer(default=0)
    total_declared_weight_g = Float(default=0.0)
    total_charged_weight_g = Float(default=0.0)
    total_forward_charges = Float(default=0.0)
    total_rto_charges = Float(default=0.0)
    total_cod_charges = Float(default=0.0)
    estimated_total = Float(default=0.0)
    total_cod_amount = Float(default=0.0)

    # Zone distribution
    zone_a = Integer(default=0)
    zone_b = Integer(default=0)
    zone_c = Integer(default=0)
    zone_d = Integer(default=0)
    zone_e = Integer(default=0)
    zone_f = Integer(default=0)

    line_items = HasMany(BillingLineItem)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def start(cls, merchant_id: str, on: date):
        """Open the cycle that contains ``on``."""
        number = cycle_number_for(on)
        start_date, end_date = cycle_bounds(on.year, on.month, number)
        now = datetime.now(UTC)
        return cls(
            cycle_id=make_cycle_id(merchant_id, on.year, on.month, number),
            merchant_id=merchant_id,
            year=on.year,
            month=on.month,
            cycle_number=number,
            start_date=start_date,
            end_date=end_date,
            status=BillingCycleStatus.OPEN.value,
            created_at=now,
            updated_at=now,
        )

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return self.status == BillingCycleStatus.OPEN.value

    @property
    def period_display(self) -> str:
        month = _MONTH_NAMES[self.month - 1]
        if self.cycle_number == 1:
            return f"01 {month} - 15 {month}, {self.year}"
        last_day = calendar.monthrange(self.year, self.month)[1]
        return f"16 {month} - {last_day} {month}, {self.year}"

    @property
    def zone_distribution(self) -> dict[str, int]:
        return {
            "A": self.zone_a,
            "B": self.zone_b,
            "C": self.zone_c,
            "D": self.zone_d,
            "E": self.zone_e,
            "F": self.zone_f,
        }

    def has_order(self, order_id: str) -> bool:
        return any(item.order_id == order_id for item in self.line_items or [])

    def line_item_for(self, order_id: str) -> BillingLineItem | None:
        return next((item for item in self.line_items or [] if item.order_id == order_id), None)

    def summary(self) -> dict:
        return {
            "total_orders": self.total_orders,
            "delivered_orders": self.delivered_orders,
            "rto_orders": self.rto_orders,
            "cancelled_orders": self.cancelled_orders,
            "in_transit_orders": self.in_transit_orders,
            "prepaid_orders": self.prepaid_orders,
            "cod_orders": self.cod_orders,
            "total_declared_weight_g": self.total_declared_weight_g,
            "total_charged_weight_g": self.total_charged_weight_g,
            "total_forward_charges": self.total_forward_charges,
            "total_rto_charges": self.total_rto_charges,
            "total_cod_charges": self.total_cod_charges,
            "estimated_total": self.estimated_total,
            "total_cod_amount": self.total_cod_amount,
        }

    # -------------------------------------------------------------------
    # Accumulation
    # -------------------------------------------------------------------
    def add_order(
        self,
        order_id: str,
        payment_mode: str,
        declared_weight_g: float,
        charged_weight_g: float | None = None,
        forward_charge: float = 0.0,
        cod_charge: float = 0.0,
        total_charge: float = 0.0,
        zone: str | None = None,
        cod_amount: float = 0.0,
        waybill: str | None = None,
    ) -> bool:
        """Fold one order into the summary. Returns False if it was already billed here."""
        if self.has_order(order_id):
            return False

        charged = charged_weight_g or declared_weight_g
        self.total_orders += 1
        if payment_mode == "cod":
            self.cod_orders += 1
            self.total_cod_amount = round2(self.total_cod_amount + (cod_amount or 0.0))
        else:
            self.prepaid_orders += 1

        self.total_declared_weight_g = round2(self.total_declared_weight_g + declared_weight_g)
        self.total_charged_weight_g = round2(self.total_charged_weight_g + charged)
        self.total_forward_charges = round2(self.total_forward_charges + forward_charge)
        self.total_cod_charges = round2(self.total_cod_charges + cod_charge)
        self.estimated_total = round2(self.estimated_total + total_charge)

        bucket = zone_bucket(zone)
        if bucket:
            attr = f"zone_{bucket.lower()}"
            setattr(self, attr, getattr(self, attr) + 1)

        self.add_line_items(
            BillingLineItem(
                order_id=order_id,
                waybill=waybill,
                zone=zone,
                payment_mode=payment_mode,
                declared_weight_g=declared_weight_g,
                charged_weight_g=charged,
                forward_charge=forward_charge,
                cod_charge=cod_charge,
                total_charge=total_charge,
                added_at=datetime.now(UTC),
            )
        )
        self.updated_at = datetime.now(UTC)
        return True

    def update_order_status(self, new_status: str) -> None:
        if new_status == "delivered":
            self.delivered_orders += 1
            self.in_transit_orders = max(self.in_transit_orders - 1, 0)
        elif new_status == "rto":
            self.rto_orders += 1
            self.in_transit_orders = max(self.in_transit_orders - 1, 0)
        elif new_status == "cancelled":
            self.cancelled_orders += 1
        elif new_status in ("in_transit", "pickups_manifests"):
            self.in_transit_orders += 1
        self.updated_at = datetime.now(UTC)

    def add_rto_charges(self, rto_charge: float, order_id: str | None = None) -> None:
        self.total_rto_charges = round2(self.total_rto_charges + rto_charge)
        self.estimated_total = round2(self.estimated_total + rto_charge)
        item = self.line_item_for(order_id) if order_id else None
        if item is not None:
            item.rto_charge = round2((item.rto_charge or 0.0) + rto_charge)
            item.total_charge = round2((item.total_charge or 0.0) + rto_charge)
            self.add_line_items(item)
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------
    def close(self) -> None:
        if not self.is_open:
            raise ValidationError({"status": [f"Billing cycle {self.cycle_id} is already {self.status}"]})
        self.status = BillingCycleStatus.CLOSED.value
        self.closed_at = datetime.now(UTC)
        self.updated_at = self.closed_at

    def mark_invoiced(self, invoice_id: str) -> None:
        if self.status != BillingCycleStatus.CLOSED.value:
            raise ValidationError({"status": ["Only closed billing cycles can be invoiced"]})
        self.status = BillingCycleStatus.INVOICED.value
        self.invoice_id = invoice_id
        self.invoiced_at = datetime.now(UTC)
        self.updated_at = self.invoiced_at
