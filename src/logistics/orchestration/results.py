"""Result types returned by the orchestrator."""

from dataclasses import asdict, dataclass, field
from enum import Enum


class PackageOutcome(Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


class OverallResult(Enum):
    ALL_SUCCESS = "all_success"
    PARTIAL_SUCCESS = "partial_success"
    ALL_FAILED = "all_failed"


class CancellationOutcome(Enum):
    CANCELLED = "cancelled"
    PENDING = "pending"
    ALREADY_CANCELLED = "already_cancelled"


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    status: str
    waybill: str | None = None
    shipping_charge: float = 0.0
    charge_status: str | None = None
    transaction_id: str | None = None

    @classmethod
    def from_order(cls, order):
        return cls(
            order_id=order.order_id,
            status=order.status,
            waybill=order.waybill,
            shipping_charge=order.shipping_charge,
            charge_status=order.charge_status,
            transaction_id=order.wallet_transaction_id,
        )

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PackageResult:
    box_number: int
    order_id: str
    outcome: str
    waybill: str | None = None
    error: str | None = None
    error_type: str | None = None


@dataclass(frozen=True)
class MultiPackageResult:
    parent_order_id: str
    overall: str
    packages: list[PackageResult]

    @property
    def successful_orders(self) -> list[str]:
        return [p.order_id for p in self.packages if p.outcome == PackageOutcome.SUCCESS.value]

    @property
    def failed_orders(self) -> list[dict]:
        return [
            {"box_number": p.box_number, "order_id": p.order_id, "error": p.error, "error_type": p.error_type}
            for p in self.packages
            if p.outcome == PackageOutcome.FAILED.value
        ]

    def to_dict(self) -> dict:
        return {
            "parent_order_id": self.parent_order_id,
            "overall": self.overall,
            "packages": [asdict(p) for p in self.packages],
            "successful_orders": self.successful_orders,
            "failed_orders": self.failed_orders,
        }


@dataclass(frozen=True)
class CancellationResult:
    order_id: str
    outcome: str
    status: str
    status_type: str | None = None
    remark: str | None = None
    refund_transaction_id: str | None = None
    refund_amount: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class PickupScheduleResult:
    pickup_id: str | None
    scheduled: list[str] = field(default_factory=list)
    rejected: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class BulkItemResult:
    order_id: str
    outcome: str
    message: str | None = None
    error_type: str | None = None
    data: dict | None = None


@dataclass(frozen=True)
class BulkResult:
    action: str
    items: list[BulkItemResult]
    halted_reason: str | None = None

    def _count(self, outcome: PackageOutcome) -> int:
        return sum(1 for item in self.items if item.outcome == outcome.value)

    @property
    def success(self) -> int:
        return self._count(PackageOutcome.SUCCESS)

    @property
    def failed(self) -> int:
        return self._count(PackageOutcome.FAILED)

    @property
    def skipped(self) -> int:
        return self._count(PackageOutcome.SKIPPED)

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "results": [asdict(item) for item in self.items],
            "summary": {
                "total": len(self.items),
                "success": self.success,
                "failed": self.failed,
                "skipped": self.skipped,
            },
            "halted_reason": self.halted_reason,
        }
