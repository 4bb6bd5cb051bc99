"""Bulk execution — one single-order workflow per item.

Items are isolated: one failure never aborts its siblings. The exception is
an exhausted wallet, after which every remaining item is marked skipped
instead of attempted, since each would fail the same way.
"""

from collections.abc import Callable

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from logistics.errors import CourierProviderError, InsufficientBalanceError, LogisticsError
from logistics.orchestration.results import BulkItemResult, BulkResult, PackageOutcome

logger = structlog.get_logger(__name__)


def _error_message(exc: Exception) -> str:
    if isinstance(exc, LogisticsError):
        return exc.message
    if isinstance(exc, ValidationError):
        return "; ".join(f"{field}: {', '.join(map(str, errors))}" for field, errors in exc.messages.items())
    return str(exc)


def run_each(action: str, order_ids: list[str], operation: Callable[[str], dict]) -> BulkResult:
    items: list[BulkItemResult] = []
    halted_reason = None

    for order_id in order_ids:
        if halted_reason:
            items.append(
                BulkItemResult(
                    order_id=order_id,
                    outcome=PackageOutcome.SKIPPED.value,
                    message="Skipped: wallet balance exhausted",
                    error_type=InsufficientBalanceError.__name__,
                )
            )
            continue

        try:
            data = operation(order_id)
        except InsufficientBalanceError as exc:
            halted_reason = exc.message
            items.append(_failed(order_id, exc))
            logger.warning("Bulk operation halted on insufficient balance", action=action, order_id=order_id)
        except (LogisticsError, ValidationError, ObjectNotFoundError) as exc:
            items.append(_failed(order_id, exc))
        else:
            items.append(BulkItemResult(order_id=order_id, outcome=PackageOutcome.SUCCESS.value, data=data))

    result = BulkResult(action=action, items=items, halted_reason=halted_reason)
    logger.info(
        "Bulk operation finished",
        action=action,
        total=len(items),
        success=result.success,
        failed=result.failed,
        skipped=result.skipped,
    )
    return result


def pickup_results(order_ids: list[str], schedule: Callable) -> BulkResult:
    """A pickup is one courier request for all orders; fan its outcome back out per order."""
    try:
        scheduled = schedule()
    except (CourierProviderError, ValidationError) as exc:
        return BulkResult(action="request_pickup", items=[_failed(order_id, exc) for order_id in order_ids])

    rejected = {entry["order_id"]: entry["error"] for entry in scheduled.rejected}
    items = []
    for order_id in order_ids:
        if order_id in rejected:
            items.append(
                BulkItemResult(
                    order_id=order_id,
                    outcome=PackageOutcome.FAILED.value,
                    message=rejected[order_id],
                    error_type=ValidationError.__name__,
                )
            )
        else:
            items.append(
                BulkItemResult(
                    order_id=order_id,
                    outcome=PackageOutcome.SUCCESS.value,
                    data={"pickup_id": scheduled.pickup_id},
                )
            )
    return BulkResult(action="request_pickup", items=items)


def _failed(order_id: str, exc: Exception) -> BulkItemResult:
    return BulkItemResult(
        order_id=order_id,
        outcome=PackageOutcome.FAILED.value,
        message=_error_message(exc),
        error_type=type(exc).__name__,
    )
