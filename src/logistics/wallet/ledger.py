"""Wallet ledger — the only writer of wallet balances.

Each mutation follows the same sequence:

1. read the wallet and remember its ``revision``;
2. compute the new balance (two-decimal, half away from zero);
3. write the balance only if the stored revision is unchanged
   (compare-and-set, retried a bounded number of times);
4. re-read the persisted balance;
5. write a completed ``WalletTransaction`` with the re-read snapshot.

The balance write happens before the transaction write, and the snapshot
is what was actually stored, so the transaction log stays a reconcilable
audit trail. Zero amounts are no-ops: no transaction, no notification.
"""

import threading
from collections import defaultdict

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from logistics.errors import InsufficientBalanceError, WalletConcurrencyError
from logistics.utils.money import round2
from logistics.wallet.transaction import (
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from logistics.wallet.wallet import Wallet

logger = structlog.get_logger(__name__)

MAX_CAS_ATTEMPTS = 5

_merchant_locks = defaultdict(threading.RLock)
_locks_guard = threading.Lock()


def _lock_for(merchant_id: str):
    with _locks_guard:
        return _merchant_locks[merchant_id]


class WalletLedger:
    """Debit, credit and query merchant wallets."""

    # -------------------------------------------------------------------
    # Wallet access
    # -------------------------------------------------------------------
    def _wallets(self):
        return current_domain.repository_for(Wallet)

    def _transactions(self):
        return current_domain.repository_for(WalletTransaction)

    def get_wallet(self, merchant_id: str) -> Wallet:
        """Return the merchant's wallet, opening an empty one on first use."""
        repo = self._wallets()
        try:
            return repo.get(merchant_id)
        except ObjectNotFoundError:
            wallet = Wallet.open(merchant_id)
            repo.add(wallet)
            logger.info("Wallet opened", merchant_id=merchant_id)
            return repo.get(merchant_id)

    def balance(self, merchant_id: str) -> float:
        return round2(self.get_wallet(merchant_id).balance)

    def ensure_sufficient(self, merchant_id: str, amount: float) -> None:
        """Raise ``InsufficientBalanceError`` when ``amount`` cannot be debited right now."""
        amount = round2(amount)
        if amount <= 0:
            return
        available = self.balance(merchant_id)
        if available < amount:
            raise InsufficientBalanceError(required=amount, available=available)

    def set_user_category(self, merchant_id: str, user_category: str) -> Wallet:
        """Switch the rate card the merchant is billed on."""
        with _lock_for(merchant_id):
            wallet = self.get_wallet(merchant_id)
            wallet.user_category = user_category
            self._wallets().add(wallet)
        return wallet

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    def debit(
        self,
        merchant_id: str,
        amount: float,
        order_id: str | None = None,
        category: TransactionCategory = TransactionCategory.SHIPPING_CHARGE,
        description: str | None = None,
    ) -> WalletTransaction | None:
        """Take money out of the wallet, or raise ``InsufficientBalanceError``."""
        return self._post(TransactionType.DEBIT, merchant_id, amount, order_id, category, description)

    def credit(
        self,
        merchant_id: str,
        amount: float,
        order_id: str | None = None,
        category: TransactionCategory = TransactionCategory.WALLET_TOPUP,
        description: str | None = None,
    ) -> WalletTransaction | None:
        """Put money into the wallet. Refunds and top-ups come through here."""
        return self._post(TransactionType.CREDIT, merchant_id, amount, order_id, category, description)

    def refund_once(self, merchant_id: str, order_id: str, amount: float, description: str | None = None):
        """Credit the cancellation refund for ``order_id`` unless one already exists.

        The lookup and the credit share the merchant lock, so two concurrent
        cancellations of the same order record a single refund.
        """
        with _lock_for(merchant_id):
            existing = self.find_refund(merchant_id, order_id)
            if existing is not None:
                logger.info("Refund already issued", order_id=order_id, transaction_id=existing.transaction_id)
                return existing
            return self.credit(
                merchant_id,
                amount,
                order_id=order_id,
                category=TransactionCategory.SHIPMENT_CANCELLATION_REFUND,
                description=description,
            )

    def settle_pending_credit(self, txn: WalletTransaction, **gateway_refs) -> WalletTransaction:
        """Credit the wallet for a pending top-up and complete that same transaction.

        A top-up settles once. A concurrent callback that lost the race gets
        the already-settled transaction back.
        """
        with _lock_for(txn.merchant_id):
            txn = self._transactions().get(txn.transaction_id)
            if not txn.is_pending:
                return txn
            opening, closing = self._apply(TransactionType.CREDIT, txn.merchant_id, txn.amount)
            txn.complete(opening_balance=opening, closing_balance=closing, **gateway_refs)
            self._transactions().add(txn)
        logger.info(
            "Top-up credited",
            merchant_id=txn.merchant_id,
            transaction_id=txn.transaction_id,
            amount=txn.amount,
            closing_balance=closing,
        )
        return txn

    def _post(
        self,
        txn_type: TransactionType,
        merchant_id: str,
        amount: float,
        order_id: str | None,
        category: TransactionCategory,
        description: str | None,
    ) -> WalletTransaction | None:
        amount = round2(amount)
        if amount == 0:
            logger.debug("Zero-amount wallet operation skipped", merchant_id=merchant_id, order_id=order_id)
            return None

        opening, closing = self._apply(txn_type, merchant_id, amount)

        txn = WalletTransaction.record(
            merchant_id=merchant_id,
            txn_type=txn_type,
            category=category,
            amount=amount,
            opening_balance=opening,
            closing_balance=closing,
            order_id=order_id,
            description=description,
        )
        self._transactions().add(txn)
        logger.info(
            "Wallet transaction recorded",
            merchant_id=merchant_id,
            transaction_id=txn.transaction_id,
            type=txn_type.value,
            category=category.value,
            amount=amount,
            opening_balance=opening,
            closing_balance=closing,
            order_id=order_id,
        )
        return txn

    def _apply(self, txn_type: TransactionType, merchant_id: str, amount: float) -> tuple[float, float]:
        """Conditionally write the new balance. Returns the persisted ``(opening, closing)``."""
        repo = self._wallets()
        with _lock_for(merchant_id):
            for attempt in range(1, MAX_CAS_ATTEMPTS + 1):
                wallet = self.get_wallet(merchant_id)
                expected_revision = wallet.revision or 0
                if txn_type == TransactionType.DEBIT:
                    opening, _ = wallet.withdraw(amount)
                else:
                    opening, _ = wallet.deposit(amount)

                if self._compare_and_set(repo, wallet, expected_revision):
                    persisted = repo.get(merchant_id)
                    return opening, round2(persisted.balance)

                logger.warning(
                    "Wallet revision moved, retrying",
                    merchant_id=merchant_id,
                    attempt=attempt,
                    expected_revision=expected_revision,
                )

        logger.error("Wallet update abandoned after retries", merchant_id=merchant_id)
        raise WalletConcurrencyError(merchant_id)

    @staticmethod
    def _compare_and_set(repo, wallet: Wallet, expected_revision: int) -> bool:
        stored = repo.get(wallet.merchant_id)
        if (stored.revision or 0) != expected_revision:
            return False
        repo.add(wallet)
        return True

    # -------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------
    def transactions(
        self,
        merchant_id: str,
        txn_type: str | None = None,
        category: str | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[WalletTransaction]:
        """Merchant transactions, newest first."""
        criteria = {"merchant_id": merchant_id}
        if txn_type:
            criteria["type"] = txn_type
        if category:
            criteria["category"] = category
        if status:
            criteria["status"] = status

        results = self._transactions()._dao.query.filter(**criteria).all()
        items = sorted(results.items, key=lambda t: t.created_at, reverse=True)
        return items[:limit] if limit else items

    def find_refund(self, merchant_id: str, order_id: str) -> WalletTransaction | None:
        """The cancellation refund already credited for ``order_id``, if any."""
        results = (
            self._transactions()
            ._dao.query.filter(
                merchant_id=merchant_id,
                order_id=order_id,
                category=TransactionCategory.SHIPMENT_CANCELLATION_REFUND.value,
            )
            .all()
        )
        return results.first if results.items else None

    def find_by_gateway_order(self, gateway_order_id: str) -> WalletTransaction | None:
        results = self._transactions()._dao.query.filter(gateway_order_id=gateway_order_id).all()
        return results.first if results.items else None

    def summary(self, merchant_id: str) -> dict:
        """Totals over completed transactions only."""
        completed = self.transactions(merchant_id, status=TransactionStatus.COMPLETED.value)
        credits = [t for t in completed if t.type == TransactionType.CREDIT.value]
        debits = [t for t in completed if t.type == TransactionType.DEBIT.value]
        by_category: dict[str, float] = {}
        for txn in completed:
            by_category[txn.category] = round2(by_category.get(txn.category, 0.0) + txn.amount)
        return {
            "merchant_id": merchant_id,
            "balance": self.balance(merchant_id),
            "total_credits": round2(sum(t.amount for t in credits)),
            "total_debits": round2(sum(t.amount for t in debits)),
            "credit_count": len(credits),
            "debit_count": len(debits),
            "by_category": by_category,
        }
