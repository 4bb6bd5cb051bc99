"""Error taxonomy for the logistics domain.

Malformed input is reported with Protean's ``ValidationError``. The classes
below cover failures that come from the outside world (courier coverage,
courier answers, wallet funds) and side effects that must never reach the
caller.
"""


class LogisticsError(Exception):
    """Base class for logistics failures surfaced to the caller."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict:
        return {"error": type(self).__name__, "message": self.message}


class ServiceabilityError(LogisticsError):
    """Pickup or delivery pincode is not covered for the requested payment mode."""

    status_code = 422

    def __init__(self, message: str, pickup_pincode: str | None = None, delivery_pincode: str | None = None) -> None:
        super().__init__(message)
        self.pickup_pincode = pickup_pincode
        self.delivery_pincode = delivery_pincode

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "pickup_pincode": self.pickup_pincode,
            "delivery_pincode": self.delivery_pincode,
        }


class CourierProviderError(LogisticsError):
    """The courier failed, timed out or answered without a usable result."""

    status_code = 502

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retryable": self.retryable}


class InsufficientBalanceError(LogisticsError):
    """Wallet balance does not cover the requested debit."""

    status_code = 402

    def __init__(self, required: float, available: float) -> None:
        super().__init__(f"Insufficient wallet balance: required {required:.2f}, available {available:.2f}")
        self.required = required
        self.available = available

    @property
    def shortfall(self) -> float:
        return round(self.required - self.available, 2)

    def to_dict(self) -> dict:
        return {
            **super().to_dict(),
            "required": self.required,
            "available": self.available,
            "shortfall": self.shortfall,
        }


class WalletConcurrencyError(LogisticsError):
    """The wallet kept changing underneath a conditional update."""

    status_code = 409

    def __init__(self, merchant_id: str) -> None:
        super().__init__(f"Wallet for merchant {merchant_id} is being updated concurrently, retry the request")
        self.merchant_id = merchant_id


class NonCriticalSideEffectError(Exception):
    """A best-effort side effect failed. Logged, never raised to the caller."""

    def __init__(self, side_effect: str, cause: Exception) -> None:
        super().__init__(f"{side_effect} failed: {cause}")
        self.side_effect = side_effect
        self.cause = cause


class PaymentGatewayError(LogisticsError):
    """The payment gateway could not be reached or answered with an error."""

    status_code = 503

    def __init__(self, message: str, retryable: bool = True) -> None:
        super().__init__(message)
        self.retryable = retryable

    def to_dict(self) -> dict:
        return {**super().to_dict(), "retryable": self.retryable}
