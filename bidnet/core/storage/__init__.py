"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Auction records (async AuctionStore contract)
- Identity seeds
"""

from bidnet.core.storage.sqlite_adapter import SQLiteAdapter
from bidnet.core.storage.storage_manager import StorageManager
from bidnet.core.storage.auction_store import (
    AuctionStore,
    MemoryAuctionStore,
    SQLiteAuctionStore,
)

__all__ = [
    "SQLiteAdapter",
    "StorageManager",
    "AuctionStore",
    "MemoryAuctionStore",
    "SQLiteAuctionStore",
]
