"""Ethereum JSON-RPC endpoint and token registry configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from .env import optional_env, require_env_vars
from .errors import ConfigurationError
from .http_resilience import RateLimit, ResilienceConfig

if TYPE_CHECKING:
    from collections.abc import Mapping

RPC_TIMEOUT_SECONDS = 15.0
RPC_RATE_LIMIT = RateLimit(max_calls=10, per_seconds=1.0)


@dataclass(frozen=True, slots=True)
class TokenInfo:
    """ERC-20 contract address and decimal places for one token symbol."""

    address: str
    decimals: int


SEPOLIA_TOKENS: Final[Mapping[str, TokenInfo]] = MappingProxyType(
    {
        "DAI": TokenInfo(address="0x1D70D57ccD2798323232B2dD027B3aBcA5C00091", decimals=18),
        "USDC": TokenInfo(address="0xC891481A0AaC630F4D89744ccD2C7D2C4215FD47", decimals=6),
    }
)


@dataclass(frozen=True)
class RpcConfig:
    """Holds the JSON-RPC endpoint and the tokens whose balances can be read."""

    url: str
    tokens: Mapping[str, TokenInfo] = field(default_factory=lambda: SEPOLIA_TOKENS)
    resilience: ResilienceConfig = field(
        default_factory=lambda: ResilienceConfig(
            name="rpc",
            timeout_seconds=RPC_TIMEOUT_SECONDS,
            ratelimit=RPC_RATE_LIMIT,
        )
    )


def _parse_extra_tokens(raw: str) -> dict[str, TokenInfo]:
    """Parse ``SYMBOL:0xaddress:decimals`` entries separated by commas."""

    tokens: dict[str, TokenInfo] = {}
    for chunk in raw.split(","):
        entry = chunk.strip()
        if not entry:
            continue
        parts = entry.split(":")
        if len(parts) != 3:
            raise ConfigurationError(
                f"Invalid token entry {entry!r}; expected SYMBOL:ADDRESS:DECIMALS"
            )
        symbol, address, decimals = parts
        try:
            tokens[symbol.strip()] = TokenInfo(address=address.strip(), decimals=int(decimals))
        except ValueError as exc:
            raise ConfigurationError(f"Invalid decimals in token entry {entry!r}") from exc
    return tokens


def get_rpc_config(*, resilience: ResilienceConfig | None = None) -> RpcConfig:
    values = require_env_vars(("RPC_URL",))
    tokens = dict(SEPOLIA_TOKENS)
    extra = optional_env("LEDGERMATCH_TOKENS")
    if extra:
        tokens.update(_parse_extra_tokens(extra))
    config = RpcConfig(url=values["RPC_URL"], tokens=MappingProxyType(tokens))
    if resilience is not None:
        return RpcConfig(url=config.url, tokens=config.tokens, resilience=resilience)
    return config
