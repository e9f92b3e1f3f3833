"""
AuctionEngine - open / bid / close state machine for auctions.

Per auction id the states are Active (record present) and absent:

    absent --open--> Active --bid--> Active --close--> absent
                     Active --open (overwrite)--> Active

The engine keeps no auction state of its own. Every operation is a
fetch-mutate-store cycle against the injected AuctionStore, and mutating
cycles on the same id are serialized by a per-id asyncio.Lock so
concurrent bids are never lost. Different ids never share a lock.
"""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any, AsyncIterator, Awaitable, Callable, Dict, Generic, Optional, TypeVar

from bidnet.core.auction.models import Auction, Bid, CloseOutcome, Number, now_ms
from bidnet.core.errors import StoreFailure
from bidnet.utils.logger import get_logger
from bidnet.utils.validation import (
    validate_amount,
    validate_auction_id,
    validate_bidder,
    validate_description,
)

if TYPE_CHECKING:
    from bidnet.core.storage.auction_store import AuctionStore

logger = get_logger("engine")

T = TypeVar("T")


# =============================================================================
# Results
# =============================================================================


class ErrorKind(Enum):
    """Why an engine operation failed."""
    AUCTION_NOT_FOUND = "auction_not_found"
    INVALID_INPUT = "invalid_input"
    STORE_FAILURE = "store_failure"


@dataclass(frozen=True)
class EngineResult(Generic[T]):
    """
    Tagged outcome of an engine operation.

    Exactly one of ``value`` (when ok) or ``error`` (when not ok) is set.
    """
    ok: bool
    value: Optional[T] = None
    error: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def success(cls, value: T) -> "EngineResult[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, error: ErrorKind, message: str) -> "EngineResult[Any]":
        return cls(ok=False, error=error, message=message)


def _not_found(auction_id: str) -> EngineResult[Any]:
    return EngineResult.failure(ErrorKind.AUCTION_NOT_FOUND, f"Auction not found: {auction_id}")


def _invalid(message: str) -> EngineResult[Any]:
    return EngineResult.failure(ErrorKind.INVALID_INPUT, message)


# =============================================================================
# Per-id locking
# =============================================================================


class KeyedLocks:
    """
    asyncio.Lock per key, created on demand and dropped once no task holds
    or waits for it, so the registry only grows with in-flight ids.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, key: str) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]

    def __len__(self) -> int:
        return len(self._locks)


# =============================================================================
# Engine
# =============================================================================


class AuctionEngine:
    """
    Validates and applies auction transitions.

    Args:
        store: AuctionStore holding the records
        clock: Millisecond clock used for createdAt and bid timestamps
    """

    def __init__(self, store: "AuctionStore", clock: Optional[Callable[[], int]] = None):
        self.store = store
        self.clock = clock or now_ms
        self._locks = KeyedLocks()

    @property
    def active_locks(self) -> int:
        """Number of auction ids with an operation in flight."""
        return len(self._locks)

    # =========================================================================
    # Serialization
    # =========================================================================

    async def _serialized(
        self,
        operation: str,
        auction_id: str,
        body: Callable[[], Awaitable[EngineResult[T]]],
    ) -> EngineResult[T]:
        """
        Run ``body`` while holding the lock for ``auction_id``.

        The locked section runs as its own shielded task: if the caller is
        cancelled (client timeout, disconnect) the fetch-mutate-store cycle
        still runs to completion before the lock is released, so a later
        operation on the same id never reads around a write in flight.
        """

        async def locked() -> EngineResult[T]:
            async with self._locks.hold(auction_id):
                try:
                    return await body()
                except StoreFailure as e:
                    return self._store_failure(operation, auction_id, e)

        return await asyncio.shield(locked())

    def _store_failure(self, operation: str, auction_id: str, error: StoreFailure) -> EngineResult[Any]:
        logger.error(f"{operation} on {auction_id!r} failed in store: {error}")
        return EngineResult.failure(ErrorKind.STORE_FAILURE, str(error))

    # =========================================================================
    # Operations
    # =========================================================================

    async def open_auction(
        self,
        auction_id: str,
        description: str,
        starting_price: Number,
    ) -> EngineResult[Auction]:
        """
        Open an auction, overwriting any existing auction with the same id.

        Returns:
            EngineResult carrying the stored Auction
        """
        for valid, err in (
            validate_auction_id(auction_id),
            validate_description(description),
            validate_amount(starting_price, "startingPrice"),
        ):
            if not valid:
                return _invalid(err)

        auction = Auction(
            id=auction_id,
            description=description,
            starting_price=starting_price,
            bids=[],
            created_at=self.clock(),
        )

        async def write() -> EngineResult[Auction]:
            try:
                existing = await self.store.get(auction_id)
            except StoreFailure as e:
                logger.warning(f"Re-opening auction {auction_id!r} over an unreadable record: {e}")
                existing = None
            if existing is not None:
                logger.warning(
                    f"Re-opening auction {auction_id!r} discards {len(existing.bids)} bid(s)"
                )
            await self.store.put(auction)
            logger.info(f"Auction opened: id={auction_id!r}, startingPrice={starting_price}")
            return EngineResult.success(auction)

        return await self._serialized("openAuction", auction_id, write)

    async def place_bid(self, auction_id: str, bidder: str, amount: Number) -> EngineResult[Bid]:
        """
        Append a bid to an open auction.

        Any finite non-negative amount is accepted; there is no check
        against the starting price or the current highest bid.

        Returns:
            EngineResult carrying the recorded Bid
        """
        for valid, err in (
            validate_auction_id(auction_id),
            validate_bidder(bidder),
            validate_amount(amount),
        ):
            if not valid:
                return _invalid(err)

        async def append() -> EngineResult[Bid]:
            auction = await self.store.get(auction_id)
            if auction is None:
                logger.debug(f"Bid rejected, no auction {auction_id!r}")
                return _not_found(auction_id)

            bid = Bid(bidder=bidder, amount=amount, timestamp=self.clock())
            await self.store.put(auction.with_bid(bid))
            logger.debug(f"Bid placed: id={auction_id!r}, bidder={bidder!r}, amount={amount}")
            return EngineResult.success(bid)

        return await self._serialized("placeBid", auction_id, append)

    async def close_auction(self, auction_id: str) -> EngineResult[CloseOutcome]:
        """
        Close an auction: pick the winner and delete the record.

        The winner is the first bid with the strictly greatest amount;
        an auction without bids closes with no winner.

        Returns:
            EngineResult carrying the CloseOutcome
        """
        valid, err = validate_auction_id(auction_id)
        if not valid:
            return _invalid(err)

        async def close() -> EngineResult[CloseOutcome]:
            auction = await self.store.get(auction_id)
            if auction is None:
                return _not_found(auction_id)

            outcome = CloseOutcome(
                auction_id=auction_id,
                winner=auction.highest_bid(),
                bid_count=len(auction.bids),
            )
            await self.store.delete(auction_id)

            if outcome.winner is None:
                logger.info(f"Auction closed without bids: id={auction_id!r}")
            else:
                logger.info(
                    f"Auction closed: id={auction_id!r}, winner={outcome.winner.bidder!r}, "
                    f"amount={outcome.winner.amount}, bids={outcome.bid_count}"
                )
            return EngineResult.success(outcome)

        return await self._serialized("closeAuction", auction_id, close)

    async def get_auction(self, auction_id: str) -> EngineResult[Auction]:
        """Read an auction without modifying it."""
        valid, err = validate_auction_id(auction_id)
        if not valid:
            return _invalid(err)

        try:
            auction = await self.store.get(auction_id)
        except StoreFailure as e:
            return self._store_failure("getAuction", auction_id, e)

        if auction is None:
            return _not_found(auction_id)
        return EngineResult.success(auction)
