"""WalletTransaction aggregate — one immutable ledger entry.

Amount, direction, category and order never change after creation. A
refund is a new credit, never an edit of the debit it compensates. The only
mutation a transaction accepts is the single settlement of a gateway top-up
from ``pending`` to ``completed`` or ``failed``.
"""

import random
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, String, ValueObject

from logistics.domain import logistics
from logistics.utils.money import round2
from logistics.wallet.events import TopUpFailed, WalletCredited, WalletDebited


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class TransactionType(Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class TransactionCategory(Enum):
    WALLET_TOPUP = "wallet_topup"
    SHIPPING_CHARGE = "shipping_charge"
    SHIPMENT_CANCELLATION_REFUND = "shipment_cancellation_refund"
    COD_REMITTANCE = "cod_remittance"
    PENALTY = "penalty"


class TransactionStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


def generate_transaction_id(txn_type: TransactionType, category: TransactionCategory) -> str:
    """``CR``/``DR``/``RF`` + epoch milliseconds + six random digits."""
    if category == TransactionCategory.SHIPMENT_CANCELLATION_REFUND:
        prefix = "RF"
    else:
        prefix = "CR" if txn_type == TransactionType.CREDIT else "DR"
    millis = int(datetime.now(UTC).timestamp() * 1000)
    return f"{prefix}{millis}{random.randint(0, 999999):06d}"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@logistics.value_object(part_of="WalletTransaction")
class BalanceSnapshot:
    opening_balance = Float(required=True)
    closing_balance = Float(required=True)


@logistics.value_object(part_of="WalletTransaction")
class GatewayInfo:
    """Payment gateway references for a top-up."""

    gateway_transaction_id = String(max_length=100)
    bank_reference_number = String(max_length=100)
    gateway_status = String(max_length=50)
    payment_link = String(max_length=500)


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@logistics.aggregate
class WalletTransaction:
    transaction_id = String(identifier=True, max_length=30)
    merchant_id = Identifier(required=True)
    type = String(required=True, choices=TransactionType)
    category = String(required=True, choices=TransactionCategory)
    amount = Float(required=True)
    order_id = String(max_length=60)
    description = String(max_length=500)
    balance = ValueObject(BalanceSnapshot)
    status = String(choices=TransactionStatus, default=TransactionStatus.PENDING.value)
    gateway_order_id = String(max_length=50)
    gateway = ValueObject(GatewayInfo)
    created_at = DateTime()
    settled_at = DateTime()

    # -------------------------------------------------------------------
    # Factory methods
    # -------------------------------------------------------------------
    @classmethod
    def record(
        cls,
        merchant_id: str,
        txn_type: TransactionType,
        category: TransactionCategory,
        amount: float,
        opening_balance: float,
        closing_balance: float,
        order_id: str | None = None,
        description: str | None = None,
    ):
        """A completed entry carrying the persisted balance snapshot."""
        amount = round2(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Transaction amount must be positive"]})

        now = datetime.now(UTC)
        txn = cls(
            transaction_id=generate_transaction_id(txn_type, category),
            merchant_id=merchant_id,
            type=txn_type.value,
            category=category.value,
            amount=amount,
            order_id=order_id,
            description=description,
            balance=BalanceSnapshot(
                opening_balance=round2(opening_balance),
                closing_balance=round2(closing_balance),
            ),
            status=TransactionStatus.COMPLETED.value,
            created_at=now,
            settled_at=now,
        )
        txn._raise_recorded(now)
        return txn

    @classmethod
    def pending_topup(
        cls,
        merchant_id: str,
        amount: float,
        gateway_order_id: str,
        payment_link: str | None = None,
    ):
        """A top-up awaiting gateway confirmation. No balance snapshot yet."""
        amount = round2(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Top-up amount must be positive"]})

        return cls(
            transaction_id=generate_transaction_id(TransactionType.CREDIT, TransactionCategory.WALLET_TOPUP),
            merchant_id=merchant_id,
            type=TransactionType.CREDIT.value,
            category=TransactionCategory.WALLET_TOPUP.value,
            amount=amount,
            description="Wallet recharge",
            status=TransactionStatus.PENDING.value,
            gateway_order_id=gateway_order_id,
            gateway=GatewayInfo(payment_link=payment_link),
            created_at=datetime.now(UTC),
        )

    # -------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------
    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING.value

    def _assert_pending(self) -> None:
        if not self.is_pending:
            raise ValidationError({"status": [f"Transaction {self.transaction_id} is already {self.status}"]})

    def _gateway_with(self, **updates) -> GatewayInfo:
        current = self.gateway.to_dict() if self.gateway else {}
        current.update({k: v for k, v in updates.items() if v is not None})
        return GatewayInfo(**current)

    def complete(
        self,
        opening_balance: float,
        closing_balance: float,
        gateway_transaction_id: str | None = None,
        bank_reference_number: str | None = None,
        gateway_status: str | None = None,
    ) -> None:
        self._assert_pending()
        now = datetime.now(UTC)
        self.balance = BalanceSnapshot(
            opening_balance=round2(opening_balance),
            closing_balance=round2(closing_balance),
        )
        self.gateway = self._gateway_with(
            gateway_transaction_id=gateway_transaction_id,
            bank_reference_number=bank_reference_number,
            gateway_status=gateway_status,
        )
        self.status = TransactionStatus.COMPLETED.value
        self.settled_at = now
        self._raise_recorded(now)

    def fail(self, gateway_status: str | None = None) -> None:
        self._assert_pending()
        now = datetime.now(UTC)
        self.gateway = self._gateway_with(gateway_status=gateway_status)
        self.status = TransactionStatus.FAILED.value
        self.settled_at = now
        self.raise_(
            TopUpFailed(
                transaction_id=self.transaction_id,
                merchant_id=self.merchant_id,
                amount=self.amount,
                gateway_order_id=self.gateway_order_id,
                gateway_status=gateway_status,
                failed_at=now,
            )
        )

    def _raise_recorded(self, now: datetime) -> None:
        event_cls = WalletDebited if self.type == TransactionType.DEBIT.value else WalletCredited
        self.raise_(
            event_cls(
                transaction_id=self.transaction_id,
                merchant_id=self.merchant_id,
                amount=self.amount,
                category=self.category,
                order_id=self.order_id,
                opening_balance=self.balance.opening_balance,
                closing_balance=self.balance.closing_balance,
                description=self.description,
                recorded_at=now,
            )
        )
