"""
Auction records as persisted in the key-value store.

Records are JSON objects with camelCase field names, matching the request
fields clients send over the wire.
"""

import json
import time
from dataclasses import dataclass, field
from typing import List, Optional, Union

Number = Union[int, float]

AUCTION_KEY_PREFIX = "auction-"


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


def auction_key(auction_id: str) -> str:
    """Store key for an auction id."""
    return f"{AUCTION_KEY_PREFIX}{auction_id}"


@dataclass(frozen=True)
class Bid:
    """A single bid. The timestamp is assigned by the engine on receipt."""
    bidder: str
    amount: Number
    timestamp: int

    def to_dict(self) -> dict:
        return {"bidder": self.bidder, "amount": self.amount, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        return cls(bidder=data["bidder"], amount=data["amount"], timestamp=data["timestamp"])


@dataclass
class Auction:
    """
    An item for sale and the bids collected so far.

    Attributes:
        id: Identifier chosen by the opener
        description: Free-text label
        starting_price: Finite, non-negative opening price
        bids: Bids in arrival order (append-only while the auction is open)
        created_at: Open time in ms since epoch
    """
    id: str
    description: str
    starting_price: Number
    bids: List[Bid] = field(default_factory=list)
    created_at: int = 0

    @property
    def key(self) -> str:
        return auction_key(self.id)

    def with_bid(self, bid: Bid) -> "Auction":
        """Copy of this auction with one more bid appended."""
        return Auction(
            id=self.id,
            description=self.description,
            starting_price=self.starting_price,
            bids=[*self.bids, bid],
            created_at=self.created_at,
        )

    def highest_bid(self) -> Optional[Bid]:
        """
        The winning bid: strictly greatest amount, first arrival on ties.

        Returns None when no bids were placed.
        """
        best: Optional[Bid] = None
        for bid in self.bids:
            if best is None or bid.amount > best.amount:
                best = bid
        return best

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "startingPrice": self.starting_price,
            "bids": [b.to_dict() for b in self.bids],
            "createdAt": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Auction":
        return cls(
            id=data["id"],
            description=data["description"],
            starting_price=data["startingPrice"],
            bids=[Bid.from_dict(b) for b in data.get("bids", [])],
            created_at=data.get("createdAt", 0),
        )

    def to_bytes(self) -> bytes:
        """Serialize to the stored JSON encoding."""
        return json.dumps(self.to_dict(), separators=(",", ":"), allow_nan=False).encode("utf-8")

    @classmethod
    def from_bytes(cls, data: bytes) -> "Auction":
        return cls.from_dict(json.loads(data.decode("utf-8")))


@dataclass(frozen=True)
class CloseOutcome:
    """Result of closing an auction."""
    auction_id: str
    winner: Optional[Bid]
    bid_count: int

    @property
    def has_winner(self) -> bool:
        return self.winner is not None
