"""Port for reading authoritative token balances."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from decimal import Decimal


@runtime_checkable
class BalanceReader(Protocol):
    """Return the authoritative balance of ``token`` held by ``wallet``.

    Values are in whole token units (already divided by ``10**decimals``).
    Implementations raise on transport failure; callers decide how to degrade.
    """

    def read_balance(self, wallet: str, token: str) -> Decimal: ...


__all__ = ["BalanceReader"]
