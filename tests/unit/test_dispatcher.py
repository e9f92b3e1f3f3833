"""
Unit tests for the operation dispatcher.

Tests cover:
1. Envelope shapes for each operation
2. Malformed payloads and missing fields
3. Domain errors as failure envelopes
4. Unexpected handler errors never escaping dispatch()
"""

import asyncio
import json
import logging

import pytest

from bidnet.core.auction import AuctionEngine
from bidnet.core.errors import StoreFailure
from bidnet.core.storage import MemoryAuctionStore
from bidnet.network.dispatcher import (
    AUCTION_NOT_FOUND_MESSAGE,
    CloseAuctionRequest,
    OperationDispatcher,
)


def run(coro):
    return asyncio.run(coro)


def body(**fields) -> bytes:
    return json.dumps(fields).encode("utf-8")


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def store():
    return MemoryAuctionStore()


@pytest.fixture
def dispatcher(store):
    return OperationDispatcher(AuctionEngine(store))


def call(dispatcher, method, payload: bytes) -> dict:
    """Dispatch and decode, as a client would see it."""
    return json.loads(run(dispatcher.dispatch(method, payload)).decode("utf-8"))


# =============================================================================
# Operations
# =============================================================================


class TestOperations:
    """Success envelopes."""

    def test_registered_methods(self, dispatcher):
        assert dispatcher.methods == ["closeAuction", "openAuction", "placeBid"]

    def test_full_auction_flow(self, dispatcher):
        async def scenario():
            replies = [
                await dispatcher.dispatch(
                    "openAuction", body(id="A", description="lamp", startingPrice=75)
                ),
                await dispatcher.dispatch("placeBid", body(id="A", bidder="Client#2", amount=80)),
                await dispatcher.dispatch("placeBid", body(id="A", bidder="Client#3", amount=75.5)),
                await dispatcher.dispatch("closeAuction", body(id="A")),
            ]
            return [json.loads(r) for r in replies]

        opened, bid1, bid2, closed = run(scenario())

        assert opened == {"success": True}
        assert bid1 == {"success": True}
        assert bid2 == {"success": True}
        assert closed == {"success": True, "winner": "Client#2", "amount": 80}

    def test_close_without_bids(self, dispatcher):
        async def scenario():
            await dispatcher.handle("openAuction", body(id="A", description="", startingPrice=1))
            return await dispatcher.handle("closeAuction", body(id="A"))

        assert run(scenario()) == {"success": True, "winner": None, "amount": None, "noBids": True}

    def test_extra_fields_are_ignored(self, dispatcher, store):
        reply = call(
            dispatcher,
            "openAuction",
            body(id="A", description="lamp", startingPrice=5, currency="EUR"),
        )
        assert reply == {"success": True}
        assert run(store.get("A")).starting_price == 5


# =============================================================================
# Failures
# =============================================================================


class TestFailures:
    """Failure envelopes."""

    def test_bid_on_unknown_auction(self, dispatcher):
        reply = call(dispatcher, "placeBid", body(id="ghost", bidder="X", amount=1))
        assert reply == {"success": False, "error": AUCTION_NOT_FOUND_MESSAGE}

    def test_double_close(self, dispatcher):
        async def scenario():
            await dispatcher.handle("openAuction", body(id="A", description="", startingPrice=1))
            await dispatcher.handle("closeAuction", body(id="A"))
            return await dispatcher.handle("closeAuction", body(id="A"))

        assert run(scenario()) == {"success": False, "error": "Auction not found"}

    def test_unknown_method(self, dispatcher):
        reply = call(dispatcher, "listAuctions", b"{}")
        assert reply["success"] is False
        assert "Unknown method" in reply["error"]

    @pytest.mark.parametrize("payload", [b"not json", b"\xff\xfe", b"", b"[1, 2]", b'"id"'])
    def test_malformed_payload(self, dispatcher, payload):
        reply = call(dispatcher, "openAuction", payload)
        assert reply["success"] is False
        assert reply["error"].startswith("Invalid JSON payload")

    def test_oversized_integer_literal(self, dispatcher):
        payload = b'{"id": "A", "bidder": "X", "amount": ' + b"9" * 5000 + b"}"
        reply = call(dispatcher, "placeBid", payload)
        assert reply["success"] is False
        assert reply["error"].startswith("Invalid JSON payload")

    def test_deeply_nested_payload(self, dispatcher):
        depth = 100_000
        reply = call(dispatcher, "placeBid", b"[" * depth + b"]" * depth)
        assert reply["success"] is False
        assert reply["error"].startswith("Invalid JSON payload")

    def test_missing_field(self, dispatcher):
        reply = call(dispatcher, "openAuction", body(id="A", description="lamp"))
        assert reply == {"success": False, "error": "Missing required field: startingPrice"}

    def test_wrong_field_type(self, dispatcher):
        reply = call(dispatcher, "placeBid", body(id="A", bidder="X", amount="80"))
        assert reply["success"] is False
        assert reply["error"].startswith("Invalid field amount")

    def test_boolean_amount_rejected(self, dispatcher):
        reply = call(dispatcher, "placeBid", body(id="A", bidder="X", amount=True))
        assert reply["success"] is False

    def test_negative_price(self, dispatcher, store):
        reply = call(dispatcher, "openAuction", body(id="A", description="", startingPrice=-1))
        assert reply["success"] is False
        assert "startingPrice must be >= 0" in reply["error"]
        assert len(store) == 0

    def test_nan_amount(self, dispatcher):
        """json accepts NaN literals; the engine still refuses them."""
        call(dispatcher, "openAuction", body(id="A", description="", startingPrice=1))
        reply = call(dispatcher, "placeBid", b'{"id": "A", "bidder": "X", "amount": NaN}')
        assert reply["success"] is False
        assert "finite" in reply["error"]

    def test_store_failure_becomes_envelope(self, caplog):
        class BrokenStore(MemoryAuctionStore):
            async def put(self, auction):
                raise StoreFailure("database is locked")

        dispatcher = OperationDispatcher(AuctionEngine(BrokenStore()))
        with caplog.at_level(logging.WARNING, logger="bidnet"):
            reply = call(dispatcher, "openAuction", body(id="A", description="", startingPrice=1))

        assert reply == {"success": False, "error": "database is locked"}
        assert "failed in store" in caplog.text

    def test_unexpected_handler_error_becomes_envelope(self, dispatcher, caplog):
        async def exploding(request):
            raise RuntimeError("boom")

        dispatcher.register("closeAuction", CloseAuctionRequest, exploding)
        with caplog.at_level(logging.ERROR, logger="bidnet.dispatcher"):
            reply = call(dispatcher, "closeAuction", body(id="A"))

        assert reply == {"success": False, "error": "boom"}
        assert "Error handling closeAuction" in caplog.text


class TestLogging:
    """Both outcomes are logged."""

    def test_success_and_error_are_logged(self, dispatcher, caplog):
        with caplog.at_level(logging.INFO, logger="bidnet.dispatcher"):
            call(dispatcher, "openAuction", body(id="A", description="", startingPrice=1))
            call(dispatcher, "placeBid", body(id="B", bidder="X", amount=1))

        assert "openAuction ok" in caplog.text
        assert "Error handling placeBid: Auction not found" in caplog.text


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
