"""
Unit tests for storage.

Tests cover:
1. SQLite key-value adapter
2. Auction record round trips through both AuctionStore implementations
3. Concurrent bids against the SQLite-backed store
"""

import asyncio
import json

import pytest

from bidnet.core.auction import Auction, AuctionEngine, Bid, auction_key
from bidnet.core.errors import StoreFailure
from bidnet.core.storage import (
    MemoryAuctionStore,
    SQLiteAdapter,
    SQLiteAuctionStore,
    StorageManager,
)


def run(coro):
    return asyncio.run(coro)


@pytest.fixture
def storage(tmp_path):
    manager = StorageManager(data_dir=tmp_path / "data")
    yield manager
    manager.close()


@pytest.fixture(params=["memory", "sqlite"])
def store(request, storage):
    if request.param == "memory":
        return MemoryAuctionStore()
    return SQLiteAuctionStore(storage)


def sample_auction() -> Auction:
    return Auction(
        id="A",
        description="Vintage lamp",
        starting_price=75,
        bids=[
            Bid(bidder="Client#2", amount=80, timestamp=1001),
            Bid(bidder="Client#3", amount=75.5, timestamp=1002),
        ],
        created_at=1000,
    )


# =============================================================================
# SQLite Adapter
# =============================================================================


class TestSQLiteAdapter:
    """Tests for the raw key-value table."""

    def test_put_get_delete(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "kv.db")

        adapter.put("k", b"v1")
        assert adapter.get("k") == b"v1"

        adapter.put("k", b"v2")
        assert adapter.get("k") == b"v2"

        assert adapter.delete("k")
        assert adapter.get("k") is None
        assert not adapter.delete("k")
        adapter.close()

    def test_keys_by_bucket(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "kv.db")
        adapter.put("b", b"1", bucket="x")
        adapter.put("a", b"2", bucket="x")
        adapter.put("c", b"3", bucket="y")

        assert adapter.keys("x") == ["a", "b"]
        assert adapter.keys("y") == ["c"]
        adapter.close()

    def test_creates_parent_directory(self, tmp_path):
        db_path = tmp_path / "nested" / "dir" / "kv.db"
        adapter = SQLiteAdapter(db_path)
        assert db_path.parent.exists()
        adapter.close()

    def test_closed_adapter_reopens_connection(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "kv.db")
        adapter.put("k", b"v")
        adapter.close()
        assert adapter.get("k") == b"v"
        adapter.close()

    def test_sqlite_errors_become_store_failures(self, tmp_path):
        adapter = SQLiteAdapter(tmp_path / "kv.db")
        adapter._get_conn().execute("DROP TABLE kv_store")

        with pytest.raises(StoreFailure, match="get 'k' failed"):
            adapter.get("k")
        with pytest.raises(StoreFailure, match="put 'k' failed"):
            adapter.put("k", b"v")
        adapter.close()


# =============================================================================
# Auction Store
# =============================================================================


class TestAuctionStore:
    """Both stores honour the same contract."""

    def test_absent_auction(self, store):
        assert run(store.get("missing")) is None
        assert run(store.delete("missing")) is False

    def test_roundtrip_preserves_fields_and_order(self, store):
        original = sample_auction()
        run(store.put(original))

        loaded = run(store.get("A"))
        assert loaded == original
        assert [b.bidder for b in loaded.bids] == ["Client#2", "Client#3"]
        assert isinstance(loaded.bids[1].amount, float)

    def test_put_overwrites(self, store):
        run(store.put(sample_auction()))
        run(store.put(Auction(id="A", description="new", starting_price=1, created_at=5)))

        loaded = run(store.get("A"))
        assert loaded.description == "new"
        assert loaded.bids == []

    def test_get_returns_independent_copy(self, store):
        run(store.put(sample_auction()))
        loaded = run(store.get("A"))
        loaded.bids.append(Bid(bidder="Z", amount=1, timestamp=1))

        assert len(run(store.get("A")).bids) == 2

    def test_delete(self, store):
        run(store.put(sample_auction()))
        assert run(store.delete("A")) is True
        assert run(store.get("A")) is None

    def test_ids(self, store):
        for auction_id in ("b", "a", "c"):
            run(store.put(Auction(id=auction_id, description="", starting_price=0)))
        assert run(store.ids()) == ["a", "b", "c"]

    def test_non_finite_values_are_refused(self, store):
        bad = Auction(id="A", description="", starting_price=float("nan"))
        with pytest.raises(StoreFailure):
            run(store.put(bad))

    def test_engine_writes_roundtrip(self, store):
        """Records written by open/placeBid read back exactly."""
        engine = AuctionEngine(store)

        async def scenario():
            await engine.open_auction("A", "lamp", 75)
            b1 = (await engine.place_bid("A", "X", 80)).value
            b2 = (await engine.place_bid("A", "Y", 75.5)).value
            return b1, b2, await store.get("A")

        b1, b2, loaded = run(scenario())
        assert loaded.bids == [b1, b2]
        assert loaded.starting_price == 75
        assert loaded.description == "lamp"


class TestSQLiteAuctionStore:
    """SQLite-specific behaviour."""

    def test_record_layout(self, storage):
        store = SQLiteAuctionStore(storage)
        run(store.put(sample_auction()))

        raw = storage.adapter.get(auction_key("A"))
        record = json.loads(raw)
        assert record["startingPrice"] == 75
        assert record["createdAt"] == 1000
        assert record["bids"][0] == {"bidder": "Client#2", "amount": 80, "timestamp": 1001}

    def test_corrupt_record(self, storage):
        storage.save_auction(auction_key("A"), b"{not json")
        with pytest.raises(StoreFailure, match="corrupt record"):
            run(SQLiteAuctionStore(storage).get("A"))

    def test_open_overwrites_corrupt_record(self, storage):
        store = SQLiteAuctionStore(storage)
        storage.save_auction(auction_key("A"), b"not json")

        result = run(AuctionEngine(store).open_auction("A", "item", 75))

        assert result.ok
        assert run(store.get("A")).starting_price == 75

    def test_seeds_are_not_listed_as_auctions(self, storage):
        storage.put_seed("rpc-seed", b"\x00" * 32)
        run(SQLiteAuctionStore(storage).put(sample_auction()))
        assert storage.list_auction_ids() == ["A"]

    def test_concurrent_bids_with_threads(self, storage):
        """Real thread-pool I/O: no bid is lost."""
        engine = AuctionEngine(SQLiteAuctionStore(storage))
        n = 25

        async def scenario():
            await engine.open_auction("A", "lamp", 1)
            await asyncio.gather(*(engine.place_bid("A", f"b{i}", i) for i in range(n)))
            return await engine.get_auction("A")

        auction = run(scenario()).value
        assert len(auction.bids) == n
        assert {b.bidder for b in auction.bids} == {f"b{i}" for i in range(n)}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
