"""Auction domain: records and the open/bid/close engine"""
from bidnet.core.auction.models import (
    Auction,
    Bid,
    CloseOutcome,
    auction_key,
    now_ms,
)
from bidnet.core.auction.engine import (
    AuctionEngine,
    EngineResult,
    ErrorKind,
    KeyedLocks,
)

__all__ = [
    "Auction",
    "Bid",
    "CloseOutcome",
    "auction_key",
    "now_ms",
    "AuctionEngine",
    "EngineResult",
    "ErrorKind",
    "KeyedLocks",
]
