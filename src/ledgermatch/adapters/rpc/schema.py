"""Pydantic models describing JSON-RPC 2.0 payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, model_validator


class RpcBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore")


class JsonRpcErrorPayload(RpcBaseModel):
    code: int
    message: str
    data: object | None = None


class JsonRpcResponse(RpcBaseModel):
    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: str | None = None
    error: JsonRpcErrorPayload | None = None

    @model_validator(mode="after")
    def _result_or_error(self) -> JsonRpcResponse:
        if self.result is None and self.error is None:
            raise ValueError("response carries neither result nor error")
        return self
