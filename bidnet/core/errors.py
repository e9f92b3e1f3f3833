"""
Exception types for bidnet.

Domain outcomes (unknown auction, bad input) are not exceptions; they travel
as ErrorKind values inside EngineResult. The classes here cover storage,
startup and transport faults.
"""


class BidnetError(Exception):
    """Base class for all bidnet errors."""


class StoreFailure(BidnetError):
    """The underlying key-value storage failed to read or write."""


class SeedLengthMismatch(BidnetError):
    """A persisted identity seed has the wrong length. Fatal at startup."""

    def __init__(self, key: str, expected: int, actual: int):
        self.key = key
        self.expected = expected
        self.actual = actual
        super().__init__(f'"{key}" must be {expected} bytes long, got {actual}')


class ProtocolError(BidnetError):
    """A frame could not be parsed or violated the wire protocol."""


class IdentityMismatch(BidnetError):
    """The remote service did not prove ownership of the expected public key."""


class RPCError(BidnetError):
    """A remote call failed at the transport level (timeout, disconnect, ERROR frame)."""
