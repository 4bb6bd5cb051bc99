"""Tests for the Wallet aggregate."""

import pytest
from logistics.errors import InsufficientBalanceError
from logistics.wallet.wallet import DEFAULT_USER_CATEGORY, Wallet
from protean.exceptions import ValidationError


class TestWalletOpen:
    def test_opens_empty(self):
        wallet = Wallet.open("merchant-001")
        assert wallet.balance == 0.0
        assert wallet.revision == 0
        assert wallet.user_category == DEFAULT_USER_CATEGORY

    def test_opens_with_category(self):
        wallet = Wallet.open("merchant-001", user_category="Advanced")
        assert wallet.user_category == "Advanced"


class TestDeposit:
    def test_deposit_returns_opening_and_closing(self):
        wallet = Wallet.open("merchant-001")
        assert wallet.deposit(100) == (0.0, 100.0)
        assert wallet.balance == 100.0

    def test_deposit_bumps_revision(self):
        wallet = Wallet.open("merchant-001")
        wallet.deposit(10)
        wallet.deposit(10)
        assert wallet.revision == 2

    def test_deposit_rounds_half_away_from_zero(self):
        wallet = Wallet.open("merchant-001")
        wallet.deposit(2.675)
        assert wallet.balance == 2.68

    @pytest.mark.parametrize("amount", [0, -5])
    def test_deposit_requires_positive_amount(self, amount):
        wallet = Wallet.open("merchant-001")
        with pytest.raises(ValidationError):
            wallet.deposit(amount)


class TestWithdraw:
    def test_withdraw(self):
        wallet = Wallet.open("merchant-001")
        wallet.deposit(100)
        assert wallet.withdraw(35.5) == (100.0, 64.5)

    def test_withdraw_whole_balance(self):
        wallet = Wallet.open("merchant-001")
        wallet.deposit(35.5)
        wallet.withdraw(35.5)
        assert wallet.balance == 0.0

    def test_overdraw_rejected_with_shortfall(self):
        wallet = Wallet.open("merchant-001")
        wallet.deposit(20)

        with pytest.raises(InsufficientBalanceError) as exc:
            wallet.withdraw(35.5)

        assert exc.value.required == 35.5
        assert exc.value.available == 20.0
        assert exc.value.shortfall == 15.5
        assert wallet.balance == 20.0
        assert wallet.revision == 1

    def test_insufficient_balance_error_payload(self):
        error = InsufficientBalanceError(required=35.5, available=20.0)
        assert error.status_code == 402
        assert error.to_dict() == {
            "error": "InsufficientBalanceError",
            "message": "Insufficient wallet balance: required 35.50, available 20.00",
            "required": 35.5,
            "available": 20.0,
            "shortfall": 15.5,
        }
