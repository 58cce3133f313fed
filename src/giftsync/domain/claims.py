"""Claim verification against the escrow's password commitment."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.config.errors import ConfigurationError
from giftsync.domain.commitment import check_commitment_parameters, require_password
from giftsync.domain.errors import (
    ConsistencyError,
    InvalidPasswordError,
    NotFoundError,
    ServiceUnavailableError,
)
from giftsync.domain.model import GiftStatus

if TYPE_CHECKING:
    from giftsync.domain.identifiers import IdentifierResolver
    from giftsync.domain.model import Address, GiftId, TokenId
    from giftsync.domain.ports import EscrowReader

log = getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class ClaimStatus(StrEnum):
    VALID = "valid"
    INVALID_PASSWORD = "invalid_password"
    NOT_FOUND = "not_found"
    INELIGIBLE = "ineligible"
    UNAVAILABLE = "unavailable"
    MISCONFIGURED = "misconfigured"


@dataclass(frozen=True, slots=True)
class ClaimAttempt:
    """One password attempt. Lives for a single request and is never persisted."""

    token_id: TokenId
    password: str = field(repr=False)
    salt: bytes | str = field(repr=False)
    device_id: str | None = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True, slots=True)
class ClaimOutcome:
    status: ClaimStatus
    gift_id: GiftId | None = None
    reason: str | None = None
    creator: Address | None = None

    @property
    def valid(self) -> bool:
        return self.status is ClaimStatus.VALID


@dataclass(slots=True)
class ClaimVerifier:
    """Verify attempts against on-chain state only.

    Claims never fall back to degraded reads: an unreachable dependency yields
    ``UNAVAILABLE``, never a guess.
    """

    resolver: IdentifierResolver
    escrow: EscrowReader
    contract_address: str | None
    chain_id: int | None

    def verify(self, attempt: ClaimAttempt) -> ClaimOutcome:
        try:
            return self._verify(attempt)
        except ConfigurationError as exc:
            log.error(f"Claim verification misconfigured: {exc}")
            return ClaimOutcome(ClaimStatus.MISCONFIGURED, reason=str(exc))
        except NotFoundError as exc:
            log.info(f"Claim for token {attempt.token_id} not found: {exc}")
            return ClaimOutcome(ClaimStatus.NOT_FOUND, reason=str(exc))
        except InvalidPasswordError as exc:
            log.info(f"Claim for token {attempt.token_id} rejected: {exc}")
            return ClaimOutcome(ClaimStatus.INVALID_PASSWORD)
        except ServiceUnavailableError as exc:
            log.warning(f"Claim for token {attempt.token_id} could not be verified: {exc}")
            return ClaimOutcome(ClaimStatus.UNAVAILABLE, reason=str(exc))

    def _verify(self, attempt: ClaimAttempt) -> ClaimOutcome:
        contract_address, chain_id = check_commitment_parameters(
            self.contract_address, self.chain_id
        )
        gift_id = self.resolver.resolve(attempt.token_id)
        gift = self.escrow.get_gift(gift_id)
        if gift is None:
            raise NotFoundError(f"Gift {gift_id} does not exist in the escrow")
        if gift.token_id != attempt.token_id:
            error = ConsistencyError(
                f"Mapping sends token {attempt.token_id} to gift {gift_id}, "
                f"which holds token {gift.token_id}",
                key=f"token:{attempt.token_id}",
            )
            log.error(str(error))
            return ClaimOutcome(ClaimStatus.NOT_FOUND, reason=str(error))

        if gift.status is not GiftStatus.ACTIVE:
            return ClaimOutcome(ClaimStatus.INELIGIBLE, gift_id=gift_id, reason=gift.status.value)
        if attempt.timestamp >= gift.expiration_time:
            return ClaimOutcome(ClaimStatus.INELIGIBLE, gift_id=gift_id, reason="expired")

        require_password(
            gift.password_hash,
            password=attempt.password,
            salt=attempt.salt,
            gift_id=gift_id,
            contract_address=contract_address,
            chain_id=chain_id,
        )
        log.info(f"Claim for token {attempt.token_id} verified against gift {gift_id}")
        return ClaimOutcome(ClaimStatus.VALID, gift_id=gift_id, creator=gift.creator)
