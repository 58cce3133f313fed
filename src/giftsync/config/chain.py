"""Chain and escrow contract configuration values."""

from __future__ import annotations

from dataclasses import dataclass, field

from eth_utils import is_address, to_checksum_address

from .env import optional_int_env, read_env, require_env_vars
from .errors import ConfigurationError
from .http_resilience import ResilienceConfig, default_rpc_resilience, get_rpc_resilience

BASE_SEPOLIA_CHAIN_ID = 84532


def normalize_contract_address(name: str, value: str) -> str:
    if not is_address(value):
        raise ConfigurationError(f"{name} is not a valid address: {value!r}")
    return to_checksum_address(value)


@dataclass(frozen=True)
class ChainConfig:
    """Holds the RPC endpoint and the contracts the engine watches."""

    rpc_url: str
    escrow_address: str
    chain_id: int = BASE_SEPOLIA_CHAIN_ID
    nft_address: str | None = None
    deployment_block: int = 0
    resilience: ResilienceConfig = field(default_factory=default_rpc_resilience)

    def __post_init__(self) -> None:
        if self.chain_id <= 0:
            raise ConfigurationError(f"Chain id must be positive, got {self.chain_id}")
        if self.deployment_block < 0:
            raise ConfigurationError("Deployment block must be non-negative")


def get_chain_config(*, resilience: ResilienceConfig | None = None) -> ChainConfig:
    values = require_env_vars(("GIFTSYNC_RPC_URL", "GIFTSYNC_ESCROW_ADDRESS"))
    nft_raw = read_env("GIFTSYNC_NFT_ADDRESS")
    nft_address = normalize_contract_address("GIFTSYNC_NFT_ADDRESS", nft_raw) if nft_raw else None
    return ChainConfig(
        rpc_url=values["GIFTSYNC_RPC_URL"],
        escrow_address=normalize_contract_address(
            "GIFTSYNC_ESCROW_ADDRESS", values["GIFTSYNC_ESCROW_ADDRESS"]
        ),
        chain_id=optional_int_env("GIFTSYNC_CHAIN_ID", BASE_SEPOLIA_CHAIN_ID),
        nft_address=nft_address,
        deployment_block=optional_int_env("GIFTSYNC_DEPLOYMENT_BLOCK", 0),
        resilience=resilience or get_rpc_resilience(),
    )
