import sqlite3
import threading
from pathlib import Path
from typing import List, Optional

from bidnet.core.errors import StoreFailure
from bidnet.utils.logger import get_logger

logger = get_logger("storage.sqlite")


class SQLiteAdapter:
    """
    SQLite backend for persistent storage.

    A single ordered key-value table, partitioned into buckets:
    - "auctions": JSON auction records keyed by "auction-<id>"
    - "identity": raw seed bytes ("dht-seed", "rpc-seed")

    Each write runs in its own transaction, so readers never observe a
    half-written value.
    """

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._conn_local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._conn_lock = threading.Lock()

        if not db_path.parent.exists():
            db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False,
            )
            conn.row_factory = sqlite3.Row
            # Enable WAL mode for better concurrency
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            self._conn_local.conn = conn
            with self._conn_lock:
                self._connections.append(conn)
        return self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        conn = self._get_conn()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value BLOB NOT NULL,
                    bucket TEXT NOT NULL DEFAULT 'default'
                )
            """)
            conn.execute("CREATE INDEX IF NOT EXISTS idx_kv_bucket ON kv_store(bucket);")

    # =========================================================================
    # Key-Value Operations
    # =========================================================================

    def put(self, key: str, value: bytes, bucket: str = "default"):
        """Save a key-value pair."""
        try:
            conn = self._get_conn()
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO kv_store (key, value, bucket) VALUES (?, ?, ?)",
                    (key, value, bucket)
                )
        except sqlite3.Error as e:
            raise StoreFailure(f"put {key!r} failed: {e}") from e

    def get(self, key: str) -> Optional[bytes]:
        """Get value by key."""
        try:
            conn = self._get_conn()
            cursor = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
            row = cursor.fetchone()
        except sqlite3.Error as e:
            raise StoreFailure(f"get {key!r} failed: {e}") from e
        return bytes(row["value"]) if row else None

    def delete(self, key: str) -> bool:
        """Delete a key. Returns True if a row was removed."""
        try:
            conn = self._get_conn()
            with conn:
                cursor = conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StoreFailure(f"delete {key!r} failed: {e}") from e
        return cursor.rowcount > 0

    def keys(self, bucket: str) -> List[str]:
        """All keys in a bucket, in key order."""
        try:
            conn = self._get_conn()
            cursor = conn.execute(
                "SELECT key FROM kv_store WHERE bucket = ? ORDER BY key ASC", (bucket,)
            )
            return [row["key"] for row in cursor]
        except sqlite3.Error as e:
            raise StoreFailure(f"listing bucket {bucket!r} failed: {e}") from e

    def close(self):
        """Close every per-thread connection opened by this adapter."""
        with self._conn_lock:
            connections, self._connections = self._connections, []
        for conn in connections:
            conn.close()
        self._conn_local = threading.local()
        logger.debug(f"Closed {len(connections)} connection(s) to {self.db_path}")
