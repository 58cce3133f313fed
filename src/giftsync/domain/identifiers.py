"""Two-way resolution between NFT ``tokenId`` and escrow ``giftId``.

Responsibilities:
- answer ``tokenId -> giftId`` and ``giftId -> tokenId`` from cache or the store
- fall back to a bounded descending scan over recent escrow gifts
- persist discovered mappings and refuse to overwrite an existing one

The scan is synchronous and sits on the claim path, so it is capped both by a
maximum number of gifts inspected and by a deadline the escrow adapter enforces
across the whole scan, including a read that is still in flight.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import TYPE_CHECKING

from giftsync.config.reconcile import ResolverConfig
from giftsync.domain.errors import ConsistencyError, NotFoundError, ServiceUnavailableError
from giftsync.domain.model import same_address

if TYPE_CHECKING:
    from collections.abc import Callable

    from giftsync.domain.model import Address, GiftId, TokenId
    from giftsync.domain.ports import (
        EscrowReader,
        GiftUnitOfWork,
        IdentifierMappingRepository,
        OnChainGift,
    )

log = getLogger(__name__)


@dataclass(slots=True)
class IdentifierResolver:
    escrow: EscrowReader
    unit_of_work_factory: Callable[[], GiftUnitOfWork]
    config: ResolverConfig = field(default_factory=ResolverConfig)
    nft_contract: Address | None = None
    clock: Callable[[], float] = time.monotonic
    _forward: dict[TokenId, GiftId] = field(default_factory=dict, init=False, repr=False)
    _reverse: dict[GiftId, TokenId] = field(default_factory=dict, init=False, repr=False)
    _misses: dict[TokenId, float] = field(default_factory=dict, init=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def resolve(self, token_id: TokenId) -> GiftId:
        """Return the canonical gift id for ``token_id``.

        Raises ``NotFoundError`` when no gift within the scan depth holds the token and
        ``ServiceUnavailableError`` when the scan runs out of time.
        """

        with self._lock:
            cached = self._forward.get(token_id)
            miss_expiry = self._misses.get(token_id)
        if cached is not None:
            return cached
        if miss_expiry is not None and self.clock() < miss_expiry:
            raise NotFoundError(f"Token {token_id} recently failed to resolve")

        stored = self._stored_gift_id(token_id)
        if stored is not None:
            self._remember(token_id, stored)
            return stored

        gift_id = self._scan(token_id)
        if gift_id is None:
            with self._lock:
                self._misses[token_id] = self.clock() + self.config.miss_ttl_seconds
            raise NotFoundError(
                f"Token {token_id} not found within {self.config.max_scan_depth} recent gifts"
            )

        try:
            self.record_mapping(token_id, gift_id)
        except ServiceUnavailableError:
            log.warning(f"Resolved token {token_id} -> gift {gift_id} but could not persist it")
            self._remember(token_id, gift_id)
        return gift_id

    def resolve_reverse(self, gift_id: GiftId) -> TokenId:
        with self._lock:
            cached = self._reverse.get(gift_id)
        if cached is not None:
            return cached

        stored = self._stored_token_id(gift_id)
        if stored is not None:
            self._remember(stored, gift_id)
            return stored

        gift = self.escrow.get_gift(gift_id)
        if gift is None:
            raise NotFoundError(f"Gift {gift_id} does not exist in the escrow")
        try:
            self.record_mapping(gift.token_id, gift_id)
        except ServiceUnavailableError:
            log.warning(f"Read gift {gift_id} -> token {gift.token_id} but could not persist it")
            self._remember(gift.token_id, gift_id)
        return gift.token_id

    def record_mapping(
        self,
        token_id: TokenId,
        gift_id: GiftId,
        *,
        mappings: IdentifierMappingRepository | None = None,
    ) -> bool:
        """Bind ``token_id`` to ``gift_id``; return whether a new mapping was written.

        When ``mappings`` is given the write joins the caller's unit of work and the
        caller commits. A pair that contradicts an existing mapping raises
        ``ConsistencyError`` and nothing is written.
        """

        if mappings is not None:
            created = self._bind(mappings, token_id, gift_id)
        else:
            with self.unit_of_work_factory() as uow:
                created = self._bind(uow.repositories.mappings, token_id, gift_id)
                uow.commit()
        self._remember(token_id, gift_id)
        if created:
            log.info(f"Recorded mapping token {token_id} -> gift {gift_id}")
        return created

    def forget(self) -> None:
        """Drop all in-process caches."""

        with self._lock:
            self._forward.clear()
            self._reverse.clear()
            self._misses.clear()

    def _bind(
        self, mappings: IdentifierMappingRepository, token_id: TokenId, gift_id: GiftId
    ) -> bool:
        existing_gift = mappings.gift_id_for(token_id)
        existing_token = mappings.token_id_for(gift_id)
        if existing_gift is None and existing_token is None and mappings.add(token_id, gift_id):
            return True
        if existing_gift is None and existing_token is None:
            # lost an insert race, compare against the winner
            existing_gift = mappings.gift_id_for(token_id)
            existing_token = mappings.token_id_for(gift_id)
        if existing_gift == gift_id and existing_token == token_id:
            return False
        error = ConsistencyError(
            f"Refusing mapping token {token_id} -> gift {gift_id}: token maps to "
            f"{existing_gift}, gift maps to {existing_token}",
            key=f"token:{token_id}",
        )
        log.error(str(error))
        raise error

    def _remember(self, token_id: TokenId, gift_id: GiftId) -> None:
        with self._lock:
            self._forward[token_id] = gift_id
            self._reverse[gift_id] = token_id
            self._misses.pop(token_id, None)

    def _stored_gift_id(self, token_id: TokenId) -> GiftId | None:
        try:
            with self.unit_of_work_factory() as uow:
                return uow.repositories.mappings.gift_id_for(token_id)
        except ServiceUnavailableError:
            log.warning(f"Mapping store unavailable, scanning the escrow for token {token_id}")
            return None

    def _stored_token_id(self, gift_id: GiftId) -> TokenId | None:
        try:
            with self.unit_of_work_factory() as uow:
                return uow.repositories.mappings.token_id_for(gift_id)
        except ServiceUnavailableError:
            log.warning(f"Mapping store unavailable, reading gift {gift_id} from the escrow")
            return None

    def _scan(self, token_id: TokenId) -> GiftId | None:
        started = self.clock()
        counter = self.escrow.gift_counter()
        lowest = max(counter - self.config.max_scan_depth, 0)
        remaining = self.config.scan_timeout_seconds - (self.clock() - started)
        if remaining <= 0:
            raise ServiceUnavailableError(
                f"Scan for token {token_id} timed out before reading a gift"
            )
        log.info(f"Scanning gifts {counter}..{lowest + 1} for token {token_id}")

        def holds_token(gift: OnChainGift) -> bool:
            if gift.token_id != token_id:
                return False
            return self.nft_contract is None or same_address(gift.nft_contract, self.nft_contract)

        scanned = self.escrow.scan_gifts(
            range(counter, lowest, -1), until=holds_token, timeout=remaining
        )
        found = scanned[-1] if scanned else None
        if found is not None and holds_token(found):
            log.info(f"Scan found token {token_id} in gift {found.gift_id} ({len(scanned)} reads)")
            return found.gift_id

        log.info(f"Scan exhausted {len(scanned)} gifts without finding token {token_id}")
        return None
