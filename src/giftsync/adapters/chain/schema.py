"""JSON-RPC response schemas for the handful of Ethereum methods the engine uses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _hex_quantity(value: object) -> object:
    if isinstance(value, str) and value.startswith(("0x", "0X")):
        return int(value, 16)
    return value


class RpcBaseModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RpcError(RpcBaseModel):
    code: int
    message: str
    data: object | None = None


class RpcResponse(RpcBaseModel):
    jsonrpc: str = "2.0"
    id: int | str | None = None
    result: object | None = None
    error: RpcError | None = None


class LogEntry(RpcBaseModel):
    address: str
    topics: list[str]
    data: str = "0x"
    block_number: int = Field(alias="blockNumber")
    transaction_hash: str = Field(alias="transactionHash")
    log_index: int = Field(alias="logIndex")
    removed: bool = False

    @field_validator("block_number", "log_index", mode="before")
    @classmethod
    def _parse_quantity(cls, value: object) -> object:
        return _hex_quantity(value)


class BlockHeader(RpcBaseModel):
    number: int
    timestamp: int
    hash: str | None = None

    @field_validator("number", "timestamp", mode="before")
    @classmethod
    def _parse_quantity(cls, value: object) -> object:
        return _hex_quantity(value)
