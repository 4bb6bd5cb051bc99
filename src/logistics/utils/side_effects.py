"""Isolation for best-effort side effects run by event handlers."""

from contextlib import contextmanager

import structlog

from logistics.errors import NonCriticalSideEffectError

logger = structlog.get_logger(__name__)


@contextmanager
def best_effort(side_effect: str, **context):
    """Log and drop any failure raised inside the block.

    Customer statistics, billing aggregation and merchant notifications run
    after the primary write has committed; a failure there must not reach the
    caller or undo the primary write.
    """
    try:
        yield
    except Exception as exc:
        error = NonCriticalSideEffectError(side_effect, exc)
        logger.warning(
            "Non-critical side effect failed",
            side_effect=side_effect,
            error=str(error),
            exc_info=True,
            **context,
        )
