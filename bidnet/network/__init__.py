"""
bidnet Network Module - RPC transport for the auction service.

Provides framed request/response messaging, the operation dispatcher and
the asyncio server/client pair.
"""

from bidnet.network.protocol import (
    Message,
    MessageType,
    create_request,
    create_response,
    create_error,
    create_hello_challenge,
    create_hello_reply,
    verify_hello_reply,
    read_message,
)
from bidnet.network.dispatcher import (
    OperationDispatcher,
    OpenAuctionRequest,
    PlaceBidRequest,
    CloseAuctionRequest,
)
from bidnet.network.server import RPCServer, ServerConfig
from bidnet.network.client import RPCClient

__all__ = [
    # Protocol
    "Message",
    "MessageType",
    "create_request",
    "create_response",
    "create_error",
    "create_hello_challenge",
    "create_hello_reply",
    "verify_hello_reply",
    "read_message",
    # Dispatcher
    "OperationDispatcher",
    "OpenAuctionRequest",
    "PlaceBidRequest",
    "CloseAuctionRequest",
    # Server / client
    "RPCServer",
    "ServerConfig",
    "RPCClient",
]
