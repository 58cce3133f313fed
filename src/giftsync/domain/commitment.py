"""Claim password commitments.

The escrow contract stores ``keccak256(abi.encodePacked(password, salt, giftId,
escrowAddress, chainId))``. Any byte of difference in the packed preimage yields an
unrelated hash, so the encoding below must match Solidity's packed rules exactly:

* ``string``: raw UTF-8 bytes, no length prefix
* ``bytes32``: the 32 salt bytes
* ``uint256``: 32-byte big-endian
* ``address``: 20 bytes
"""

from __future__ import annotations

import hmac
from typing import Final

from eth_abi.packed import encode_packed
from eth_utils import decode_hex, is_address, keccak, to_checksum_address

from giftsync.config.errors import ConfigurationError
from giftsync.domain.errors import InvalidPasswordError

PACKED_TYPES: Final[tuple[str, ...]] = ("string", "bytes32", "uint256", "address", "uint256")
SALT_LENGTH: Final[int] = 32


def parse_salt(salt: bytes | str) -> bytes:
    """Accept raw bytes or a ``0x``-prefixed hex string and return 32 bytes."""

    if isinstance(salt, str):
        try:
            salt = decode_hex(salt.strip())
        except ValueError as exc:
            raise ValueError("Salt must be hex encoded") from exc
    if len(salt) != SALT_LENGTH:
        raise ValueError(f"Salt must be {SALT_LENGTH} bytes, got {len(salt)}")
    return salt


def check_commitment_parameters(
    contract_address: str | None, chain_id: int | None
) -> tuple[str, int]:
    """Validate the escrow address and chain id every commitment is bound to."""

    if not contract_address:
        raise ConfigurationError("Escrow contract address is not configured")
    if not is_address(contract_address):
        raise ConfigurationError(f"Escrow contract address is malformed: {contract_address!r}")
    if chain_id is None or chain_id <= 0:
        raise ConfigurationError("Chain id is not configured")
    return to_checksum_address(contract_address), chain_id


def packed_preimage(
    password: str,
    salt: bytes | str,
    gift_id: int,
    contract_address: str | None,
    chain_id: int | None,
) -> bytes:
    address, resolved_chain_id = check_commitment_parameters(contract_address, chain_id)
    if gift_id < 0:
        raise ValueError("Gift id must be non-negative")
    return encode_packed(
        list(PACKED_TYPES),
        [password, parse_salt(salt), gift_id, address, resolved_chain_id],
    )


def commitment_hash(
    password: str,
    salt: bytes | str,
    gift_id: int,
    contract_address: str | None,
    chain_id: int | None,
) -> bytes:
    """Compute the 32-byte commitment for a password attempt."""

    return keccak(packed_preimage(password, salt, gift_id, contract_address, chain_id))


def verify_password(
    expected_hash: bytes,
    *,
    password: str,
    salt: bytes | str,
    gift_id: int,
    contract_address: str | None,
    chain_id: int | None,
) -> bool:
    """Return whether the attempt matches ``expected_hash``.

    The comparison runs in constant time and only a boolean leaves this function.
    """

    candidate = commitment_hash(password, salt, gift_id, contract_address, chain_id)
    return hmac.compare_digest(candidate, expected_hash)


def require_password(
    expected_hash: bytes,
    *,
    password: str,
    salt: bytes | str,
    gift_id: int,
    contract_address: str | None,
    chain_id: int | None,
) -> None:
    """Raise ``InvalidPasswordError`` unless the attempt matches ``expected_hash``."""

    if not verify_password(
        expected_hash,
        password=password,
        salt=salt,
        gift_id=gift_id,
        contract_address=contract_address,
        chain_id=chain_id,
    ):
        raise InvalidPasswordError(f"Password does not match the commitment for gift {gift_id}")
