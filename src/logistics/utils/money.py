"""Monetary rounding shared by the wallet ledger and billing."""

from decimal import ROUND_HALF_UP, Decimal

_CENTS = Decimal("0.01")


def round2(value: float | int | Decimal | None) -> float:
    """Round to two decimal places, half away from zero.

    Goes through ``str`` so that binary float artefacts (``2.675`` stored as
    ``2.67499999...``) round the way a person reading the number expects.
    """
    if value is None:
        return 0.0
    return float(Decimal(str(value)).quantize(_CENTS, rounding=ROUND_HALF_UP))
