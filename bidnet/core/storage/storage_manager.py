from pathlib import Path
from typing import List, Optional

from bidnet.core.auction.models import AUCTION_KEY_PREFIX
from bidnet.core.storage.sqlite_adapter import SQLiteAdapter
from bidnet.utils.logger import get_logger

logger = get_logger("storage.manager")

AUCTION_BUCKET = "auctions"
IDENTITY_BUCKET = "identity"


class StorageManager:
    """
    Manages persistent storage for the service.

    Coordinates data persistence using SQLite adapter.
    Handles:
    - Auction records ("auction-<id>" -> JSON)
    - Identity seeds ("dht-seed", "rpc-seed" -> raw bytes)

    All methods are blocking; async callers go through AuctionStore.
    """

    def __init__(self, data_dir: Path, db_name: str = "auction.db"):
        self.data_dir = data_dir
        self.db_path = data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path)

        logger.info(f"StorageManager initialized at {self.db_path}")

    def close(self):
        self.adapter.close()

    # =========================================================================
    # Auction Records
    # =========================================================================

    def save_auction(self, key: str, record: bytes):
        """Write (or overwrite) an auction record."""
        self.adapter.put(key, record, bucket=AUCTION_BUCKET)

    def load_auction(self, key: str) -> Optional[bytes]:
        return self.adapter.get(key)

    def remove_auction(self, key: str) -> bool:
        return self.adapter.delete(key)

    def list_auction_ids(self) -> List[str]:
        """Ids of all stored auctions, in key order."""
        return [k[len(AUCTION_KEY_PREFIX):] for k in self.adapter.keys(AUCTION_BUCKET)]

    # =========================================================================
    # Identity Seeds
    # =========================================================================

    def get_seed(self, name: str) -> Optional[bytes]:
        return self.adapter.get(name)

    def put_seed(self, name: str, seed: bytes):
        self.adapter.put(name, seed, bucket=IDENTITY_BUCKET)
