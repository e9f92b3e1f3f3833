"""
bidnet - peer-to-peer auction service

Sellers open auctions, bidders place bids and a close selects the winner,
all through remote calls to a service addressed by its public key:
- Auction state machine with per-auction serialization of writers
- JSON request/response envelopes over a framed asyncio transport
- SQLite persistence and a stable seed-derived identity
"""

__version__ = "0.1.0"
