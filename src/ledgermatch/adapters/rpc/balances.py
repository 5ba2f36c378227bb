"""ERC-20 ``balanceOf`` reads over JSON-RPC."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from logging import getLogger
from typing import TYPE_CHECKING, Final

from ledgermatch.adapters.http_resilience import ResilienceConfig, ResilientClient
from ledgermatch.config import get_rpc_config

from .client import RpcClient, RpcError

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgermatch.config import RpcConfig

log = getLogger(__name__)

BALANCE_OF_SELECTOR: Final[str] = "0x70a08231"


def encode_balance_of(wallet: str) -> str:
    """ABI-encode ``balanceOf(address)`` for ``wallet``."""

    address = wallet.lower().removeprefix("0x")
    if len(address) != 40:
        raise ValueError(f"Not a 20-byte address: {wallet!r}")
    int(address, 16)
    return BALANCE_OF_SELECTOR + address.rjust(64, "0")


def decode_uint256(result: str) -> int:
    digits = result.removeprefix("0x")
    if not digits:
        raise RpcError("empty eth_call result")
    try:
        return int(digits, 16)
    except ValueError as exc:
        raise RpcError(f"non-hex eth_call result {result!r}") from exc


@dataclass(slots=True)
class RpcBalanceReader:
    """Reads authoritative token balances from an Ethereum node.

    Tokens missing from the registry read as zero.
    """

    config: RpcConfig = field(default_factory=get_rpc_config)
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=ResilientClient
    )
    _rpc: RpcClient = field(init=False)

    def __post_init__(self) -> None:
        self._rpc = RpcClient(
            url=self.config.url,
            resilience=self.config.resilience,
            client_factory=self.client_factory,
        )

    def read_balance(self, wallet: str, token: str) -> Decimal:
        info = self.config.tokens.get(token)
        if info is None:
            log.debug(f"No contract registered for {token}, reporting zero balance")
            return Decimal(0)
        return asyncio.run(self._read(wallet, info.address, info.decimals))

    async def _read(self, wallet: str, contract: str, decimals: int) -> Decimal:
        raw = decode_uint256(await self._rpc.eth_call(contract, encode_balance_of(wallet)))
        return Decimal(raw).scaleb(-decimals)
