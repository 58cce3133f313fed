"""Chain adapter package: JSON-RPC access to the escrow and NFT contracts."""

from __future__ import annotations

from .client import ChainRpcError, JsonRpcSession
from .escrow import JsonRpcEscrowReader
from .fetcher import EscrowLogFetcher
from .translator import translate_escrow_log, translate_transfer

__all__ = [
    "ChainRpcError",
    "EscrowLogFetcher",
    "JsonRpcEscrowReader",
    "JsonRpcSession",
    "translate_escrow_log",
    "translate_transfer",
]
