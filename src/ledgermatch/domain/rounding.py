"""Half-up rounding for scores and percentages."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, localcontext


def round_half_up(value: float, places: int = 2) -> float:
    """Round like a ledger would (``0.125 -> 0.13``), not banker's rounding.

    Works for any finite magnitude; a drained wallet can produce drift
    percentages far beyond the default 28-digit decimal precision.
    """

    exact = Decimal(repr(value))
    if not exact.is_finite():
        return value
    quantum = Decimal(1).scaleb(-places)
    with localcontext() as ctx:
        ctx.prec = max(ctx.prec, exact.adjusted() + places + 2)
        return float(exact.quantize(quantum, rounding=ROUND_HALF_UP))
