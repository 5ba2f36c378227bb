"""Minimal Ethereum JSON-RPC client."""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

import httpx
from pydantic import ValidationError

from ledgermatch.adapters.http_resilience import ResilienceConfig, ResilientClient

from .schema import JsonRpcResponse

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)


class RpcError(RuntimeError):
    """Raised when the node answers with an error or an unreadable payload."""

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class RpcClient:
    """JSON-RPC over a fresh resilient HTTP client per call.

    Request ids increase for the lifetime of the instance; the HTTP client is
    not reused, so one instance can serve calls from separate event loops.
    """

    url: str
    resilience: ResilienceConfig
    client_factory: Callable[[ResilienceConfig], ResilientClient] = field(
        default=ResilientClient
    )
    _ids: itertools.count[int] = field(init=False, default_factory=lambda: itertools.count(1))

    async def call(self, method: str, params: list[object]) -> str:
        payload = {"jsonrpc": "2.0", "id": next(self._ids), "method": method, "params": params}
        async with self.client_factory(self.resilience) as client:
            try:
                response = await client.post(self.url, json=payload)
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise RpcError(f"{method} request failed: {exc}") from exc

        try:
            parsed = JsonRpcResponse.model_validate_json(response.content)
        except ValidationError as exc:
            raise RpcError(f"{method} returned an invalid payload") from exc
        if parsed.error is not None:
            log.debug(f"{method} failed with code {parsed.error.code}: {parsed.error.message}")
            raise RpcError(parsed.error.message, code=parsed.error.code)
        if parsed.result is None:
            raise RpcError(f"{method} returned no result")
        return parsed.result

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, block])
