"""Ethereum JSON-RPC adapter."""

from __future__ import annotations

from .balances import BALANCE_OF_SELECTOR, RpcBalanceReader, decode_uint256, encode_balance_of
from .client import RpcClient, RpcError
from .schema import JsonRpcErrorPayload, JsonRpcResponse

__all__ = [
    "BALANCE_OF_SELECTOR",
    "JsonRpcErrorPayload",
    "JsonRpcResponse",
    "RpcBalanceReader",
    "RpcClient",
    "RpcError",
    "decode_uint256",
    "encode_balance_of",
]
