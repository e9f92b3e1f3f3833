"""
AuctionStore - async persistence contract for auction records.

The store offers single-key get/put/delete only. It is safe to call from
concurrent tasks, but it does not serialize read-modify-write sequences
spanning a get and a put; AuctionEngine does that per auction id.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from bidnet.core.auction.models import Auction, auction_key
from bidnet.core.errors import StoreFailure
from bidnet.core.storage.storage_manager import StorageManager
from bidnet.utils.logger import get_logger

logger = get_logger("storage.auctions")


class AuctionStore(ABC):
    """Durable keyed storage of Auction records."""

    @abstractmethod
    async def get(self, auction_id: str) -> Optional[Auction]:
        """Fetch an auction, or None if absent."""

    @abstractmethod
    async def put(self, auction: Auction) -> None:
        """Write an auction, replacing any record with the same id."""

    @abstractmethod
    async def delete(self, auction_id: str) -> bool:
        """Remove an auction. Returns True if a record was removed."""

    @abstractmethod
    async def ids(self) -> List[str]:
        """Ids of all stored auctions."""


def _decode(auction_id: str, raw: bytes) -> Auction:
    try:
        return Auction.from_bytes(raw)
    except (ValueError, KeyError, TypeError) as e:
        raise StoreFailure(f"corrupt record for auction {auction_id!r}: {e}") from e


class SQLiteAuctionStore(AuctionStore):
    """
    AuctionStore backed by the SQLite key-value table.

    Blocking SQLite calls run in worker threads via asyncio.to_thread so
    the event loop keeps serving other auctions during I/O.
    """

    def __init__(self, storage: StorageManager):
        self.storage = storage

    async def get(self, auction_id: str) -> Optional[Auction]:
        raw = await asyncio.to_thread(self.storage.load_auction, auction_key(auction_id))
        if raw is None:
            return None
        return _decode(auction_id, raw)

    async def put(self, auction: Auction) -> None:
        try:
            record = auction.to_bytes()
        except ValueError as e:
            raise StoreFailure(f"auction {auction.id!r} is not serializable: {e}") from e
        await asyncio.to_thread(self.storage.save_auction, auction.key, record)

    async def delete(self, auction_id: str) -> bool:
        return await asyncio.to_thread(self.storage.remove_auction, auction_key(auction_id))

    async def ids(self) -> List[str]:
        return await asyncio.to_thread(self.storage.list_auction_ids)


class MemoryAuctionStore(AuctionStore):
    """
    In-process AuctionStore.

    Records are kept in their serialized form so every get returns an
    independent copy, as a durable store would.
    """

    def __init__(self):
        self._records: Dict[str, bytes] = {}

    async def get(self, auction_id: str) -> Optional[Auction]:
        await asyncio.sleep(0)
        raw = self._records.get(auction_key(auction_id))
        if raw is None:
            return None
        return _decode(auction_id, raw)

    async def put(self, auction: Auction) -> None:
        try:
            record = auction.to_bytes()
        except ValueError as e:
            raise StoreFailure(f"auction {auction.id!r} is not serializable: {e}") from e
        await asyncio.sleep(0)
        self._records[auction.key] = record

    async def delete(self, auction_id: str) -> bool:
        await asyncio.sleep(0)
        return self._records.pop(auction_key(auction_id), None) is not None

    async def ids(self) -> List[str]:
        return sorted(json.loads(raw)["id"] for raw in self._records.values())

    def __len__(self) -> int:
        return len(self._records)
