"""
RPCClient - client side of the bidnet RPC protocol.

Connects to a service, verifies that it owns the expected public key, and
multiplexes concurrent calls over one connection by request id.
"""

import asyncio
import itertools
import json
from typing import Any, Dict, Optional

from bidnet.core.errors import IdentityMismatch, ProtocolError, RPCError
from bidnet.crypto import generate_seed, short_hex
from bidnet.network.protocol import (
    MAX_BODY_SIZE,
    NONCE_SIZE,
    MessageType,
    create_hello_challenge,
    create_request,
    read_message,
    verify_hello_reply,
)
from bidnet.utils.logger import get_logger

logger = get_logger("client")


class RPCClient:
    """
    A connection to one auction service.

    Attributes:
        host: Service host
        port: Service port
        expected_public_key: Pinned 64-byte service key; None trusts any key
        timeout: Seconds to wait for connect, handshake and each reply
    """

    def __init__(
        self,
        host: str,
        port: int,
        expected_public_key: Optional[bytes] = None,
        timeout: float = 10.0,
        max_body_size: int = MAX_BODY_SIZE,
    ):
        self.host = host
        self.port = port
        self.expected_public_key = expected_public_key
        self.timeout = timeout
        self.max_body_size = max_body_size
        self.server_public_key: Optional[bytes] = None
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self._pending: Dict[int, asyncio.Future] = {}
        self._request_ids = itertools.count(1)
        self._receive_task: Optional[asyncio.Task] = None
        self._write_lock = asyncio.Lock()
        self._lost = False

    @property
    def is_connected(self) -> bool:
        return self.writer is not None and not self._lost and not self.writer.is_closing()

    async def connect(self) -> bytes:
        """
        Open the connection and complete the HELLO handshake.

        Returns:
            The verified server public key

        Raises:
            RPCError: connection or handshake failed
            IdentityMismatch: server key differs from the pinned key
        """
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise RPCError(f"Connection timeout to {self.host}:{self.port}") from e
        except OSError as e:
            raise RPCError(f"Connection error to {self.host}:{self.port}: {e}") from e

        try:
            nonce = generate_seed(NONCE_SIZE)
            self.writer.write(create_hello_challenge(nonce).to_bytes())
            await self.writer.drain()
            reply = await asyncio.wait_for(read_message(self.reader), timeout=self.timeout)
            public_key = verify_hello_reply(reply, nonce)
        except asyncio.TimeoutError as e:
            await self.close()
            raise RPCError(f"Handshake timeout with {self.host}:{self.port}") from e
        except (asyncio.IncompleteReadError, ProtocolError, OSError) as e:
            await self.close()
            raise RPCError(f"Handshake with {self.host}:{self.port} failed: {e}") from e

        if self.expected_public_key is not None and public_key != self.expected_public_key:
            await self.close()
            raise IdentityMismatch(
                f"{self.host}:{self.port} presented {short_hex(public_key)}, "
                f"expected {short_hex(self.expected_public_key)}"
            )

        self._lost = False
        self.server_public_key = public_key
        self._receive_task = asyncio.create_task(self._receive_loop())
        logger.info(f"Connected to {self.host}:{self.port} ({short_hex(public_key)})")
        return public_key

    async def close(self) -> None:
        """Close the connection and fail any pending calls."""
        if self._receive_task:
            self._receive_task.cancel()
            try:
                await self._receive_task
            except asyncio.CancelledError:
                pass
            self._receive_task = None

        self._fail_pending(RPCError("Connection closed"))

        if self.writer:
            self.writer.close()
            try:
                await self.writer.wait_closed()
            except (ConnectionError, OSError):
                pass

        self.reader = None
        self.writer = None

    async def __aenter__(self) -> "RPCClient":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # =========================================================================
    # Calls
    # =========================================================================

    async def call(self, method: str, payload: bytes) -> bytes:
        """
        Invoke a remote operation with a raw body.

        Returns:
            The raw response body

        Raises:
            RPCError: not connected, timeout, disconnect or ERROR frame
        """
        if not self.is_connected:
            raise RPCError("Not connected")

        request_id = next(self._request_ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            async with self._write_lock:
                self.writer.write(create_request(request_id, method, payload).to_bytes())
                await self.writer.drain()
            return await asyncio.wait_for(future, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise RPCError(f"{method} timed out after {self.timeout}s") from e
        except (ConnectionError, OSError) as e:
            raise RPCError(f"{method} failed: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    async def call_json(self, method: str, **fields: Any) -> dict:
        """Invoke a remote operation with a JSON object body."""
        body = await self.call(method, json.dumps(fields).encode("utf-8"))
        try:
            return json.loads(body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise RPCError(f"{method} returned a non-JSON body") from e

    async def open_auction(self, auction_id: str, description: str, starting_price: float) -> dict:
        return await self.call_json(
            "openAuction", id=auction_id, description=description, startingPrice=starting_price
        )

    async def place_bid(self, auction_id: str, bidder: str, amount: float) -> dict:
        return await self.call_json("placeBid", id=auction_id, bidder=bidder, amount=amount)

    async def close_auction(self, auction_id: str) -> dict:
        return await self.call_json("closeAuction", id=auction_id)

    # =========================================================================
    # Receiving
    # =========================================================================

    async def _receive_loop(self) -> None:
        """Route RESPONSE / ERROR frames to the calls waiting for them."""
        try:
            while True:
                message = await read_message(self.reader, self.max_body_size)
                future = self._pending.get(message.request_id)
                if future is None or future.done():
                    logger.debug(f"Discarding reply to unknown request #{message.request_id}")
                    continue

                if message.msg_type == MessageType.RESPONSE:
                    future.set_result(message.body)
                elif message.msg_type == MessageType.ERROR:
                    future.set_exception(RPCError(message.body.decode("utf-8", "replace")))
                else:
                    future.set_exception(RPCError(f"Unexpected {message.msg_type.name} frame"))
        except asyncio.IncompleteReadError:
            self._lost = True
            logger.info(f"Service disconnected: {self.host}:{self.port}")
            self._fail_pending(RPCError("Connection lost"))
        except (ProtocolError, ConnectionError, OSError) as e:
            self._lost = True
            logger.error(f"Receive error from {self.host}:{self.port}: {e}")
            self._fail_pending(RPCError(f"Connection lost: {e}"))

    def _fail_pending(self, error: RPCError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()
