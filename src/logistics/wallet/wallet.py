"""Wallet aggregate — one prepaid balance per merchant.

The balance is only changed by ``WalletLedger``. Every change bumps
``revision``; the ledger writes a new balance only if the stored revision
is still the one it read (compare-and-set), so two debits racing on the same
wallet cannot both spend the same money.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import DateTime, Float, Identifier, Integer, String

from logistics.domain import logistics
from logistics.errors import InsufficientBalanceError
from logistics.utils.money import round2

DEFAULT_USER_CATEGORY = "New User"


@logistics.aggregate
class Wallet:
    merchant_id = Identifier(identifier=True, required=True)
    balance = Float(default=0.0)
    revision = Integer(default=0)
    user_category = String(max_length=50, default=DEFAULT_USER_CATEGORY)
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def open(cls, merchant_id: str, user_category: str | None = None):
        now = datetime.now(UTC)
        return cls(
            merchant_id=merchant_id,
            balance=0.0,
            revision=0,
            user_category=user_category or DEFAULT_USER_CATEGORY,
            created_at=now,
            updated_at=now,
        )

    def withdraw(self, amount: float) -> tuple[float, float]:
        """Take ``amount`` out. Returns ``(opening, closing)``."""
        amount = round2(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Debit amount must be positive"]})
        opening = round2(self.balance)
        if opening < amount:
            raise InsufficientBalanceError(required=amount, available=opening)
        return opening, self._set_balance(round2(opening - amount))

    def deposit(self, amount: float) -> tuple[float, float]:
        """Put ``amount`` in. Returns ``(opening, closing)``."""
        amount = round2(amount)
        if amount <= 0:
            raise ValidationError({"amount": ["Credit amount must be positive"]})
        opening = round2(self.balance)
        return opening, self._set_balance(round2(opening + amount))

    def _set_balance(self, closing: float) -> float:
        self.balance = closing
        self.revision = (self.revision or 0) + 1
        self.updated_at = datetime.now(UTC)
        return closing
