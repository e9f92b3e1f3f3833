"""
RPCServer - asyncio TCP server exposing the auction operations.

Each connection starts with a HELLO handshake in which the server signs
the client's nonce with its identity key. After that every REQUEST frame
is served in its own task, so several calls may be in flight per
connection, and answered with a RESPONSE frame carrying the dispatcher's
JSON envelope.
"""

import asyncio
from dataclasses import dataclass
from typing import Optional, Set

from bidnet.core.errors import ProtocolError
from bidnet.crypto import KeyPair, short_hex
from bidnet.network.dispatcher import OperationDispatcher
from bidnet.network.protocol import (
    MAX_BODY_SIZE,
    NONCE_SIZE,
    Message,
    MessageType,
    create_error,
    create_hello_reply,
    create_response,
    read_message,
)
from bidnet.utils.logger import get_logger

logger = get_logger("server")


@dataclass
class ServerConfig:
    """Configuration for the RPC server."""
    host: str = "127.0.0.1"
    port: int = 40001  # 0 picks a free port
    max_body_size: int = MAX_BODY_SIZE
    handshake_timeout: float = 10.0  # seconds


class Connection:
    """Server side of one client connection."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        addr = writer.get_extra_info("peername")
        self.addr = f"{addr[0]}:{addr[1]}" if addr else "<unknown>"
        self._write_lock = asyncio.Lock()
        self.closed = False

    async def send(self, message: Message) -> bool:
        """
        Send a frame to the client.

        Returns:
            True if sent successfully
        """
        if self.closed:
            return False
        try:
            async with self._write_lock:
                self.writer.write(message.to_bytes())
                await self.writer.drain()
            return True
        except (ConnectionError, OSError) as e:
            logger.debug(f"Send error to {self.addr}: {e}")
            self.closed = True
            return False

    async def close(self) -> None:
        if self.closed and self.writer.is_closing():
            return
        self.closed = True
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError):
            pass


class RPCServer:
    """
    Serves remote auction operations for one service identity.

    Handles:
    - Listening for incoming connections
    - HELLO handshake proving ownership of the identity key
    - Concurrent request handling via OperationDispatcher
    - Graceful shutdown (in-flight requests finish before stop returns)
    """

    def __init__(
        self,
        dispatcher: OperationDispatcher,
        keypair: KeyPair,
        config: Optional[ServerConfig] = None,
    ):
        self.dispatcher = dispatcher
        self.keypair = keypair
        self.config = config or ServerConfig()
        self.server: Optional[asyncio.Server] = None
        self._connections: Set[Connection] = set()
        self._connection_tasks: Set[asyncio.Task] = set()
        self._request_tasks: Set[asyncio.Task] = set()
        self._running = False

    @property
    def public_key(self) -> bytes:
        return self.keypair.public_key

    @property
    def port(self) -> int:
        """Bound port (differs from config.port when that was 0)."""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.config.port

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def start(self) -> None:
        """Start listening."""
        self._running = True
        self.server = await asyncio.start_server(
            self._handle_connection,
            self.config.host,
            self.config.port,
        )

        logger.info(f"RPC server listening on {self.config.host}:{self.port}")
        logger.info(f"RPC server public key: {self.keypair.public_key_hex}")

    async def serve_forever(self) -> None:
        if not self.server:
            await self.start()
        await self.server.serve_forever()

    async def stop(self) -> None:
        """Stop accepting, let in-flight requests finish, close connections."""
        self._running = False

        if self.server:
            self.server.close()

        if self._request_tasks:
            await asyncio.gather(*self._request_tasks, return_exceptions=True)

        for connection in list(self._connections):
            await connection.close()

        for task in list(self._connection_tasks):
            task.cancel()
        if self._connection_tasks:
            await asyncio.gather(*self._connection_tasks, return_exceptions=True)

        if self.server:
            await self.server.wait_closed()
            self.server = None

        logger.info("RPC server stopped")

    async def _handle_connection(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
    ) -> None:
        """Handle an incoming client connection."""
        connection = Connection(reader, writer)
        task = asyncio.current_task()
        self._connections.add(connection)
        if task:
            self._connection_tasks.add(task)
        logger.debug(f"Incoming connection from {connection.addr}")

        try:
            if await self._handshake(connection):
                await self._receive_loop(connection)
        except asyncio.CancelledError:
            pass
        finally:
            self._connections.discard(connection)
            if task:
                self._connection_tasks.discard(task)
            await connection.close()
            logger.debug(f"Connection closed: {connection.addr}")

    async def _handshake(self, connection: Connection) -> bool:
        """Answer the client's HELLO challenge."""
        try:
            hello = await asyncio.wait_for(
                read_message(connection.reader, NONCE_SIZE),
                timeout=self.config.handshake_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Handshake timeout from {connection.addr}")
            return False
        except asyncio.IncompleteReadError:
            return False
        except ProtocolError as e:
            logger.warning(f"Bad handshake from {connection.addr}: {e}")
            return False

        if hello.msg_type != MessageType.HELLO or len(hello.body) != NONCE_SIZE:
            logger.warning(f"Expected HELLO from {connection.addr}, got {hello.msg_type.name}")
            return False

        return await connection.send(create_hello_reply(self.keypair, hello.body))

    async def _receive_loop(self, connection: Connection) -> None:
        """Read frames until the client disconnects or misbehaves."""
        while self._running and not connection.closed:
            try:
                message = await read_message(connection.reader, self.config.max_body_size)
            except asyncio.IncompleteReadError:
                return
            except ProtocolError as e:
                logger.warning(f"Protocol error from {connection.addr}: {e}")
                return
            except (ConnectionError, OSError) as e:
                logger.debug(f"Receive error from {connection.addr}: {e}")
                return

            if message.msg_type != MessageType.REQUEST:
                await connection.send(
                    create_error(message.request_id, f"Unexpected {message.msg_type.name} frame")
                )
                continue

            task = asyncio.create_task(self._serve_request(connection, message))
            self._request_tasks.add(task)
            task.add_done_callback(self._request_tasks.discard)

    async def _serve_request(self, connection: Connection, message: Message) -> None:
        """Dispatch one request and reply with a RESPONSE, or an ERROR frame if dispatch raised."""
        logger.debug(f"{message.method} #{message.request_id} from {connection.addr}")
        try:
            body = await self.dispatcher.dispatch(message.method, message.body)
        except Exception as e:
            logger.exception(f"Dispatch of {message.method} #{message.request_id} failed")
            reply = create_error(message.request_id, f"Internal error: {type(e).__name__}")
        else:
            reply = create_response(message.request_id, body)

        if not await connection.send(reply):
            logger.debug(
                f"Dropped reply to {message.method} #{message.request_id}: "
                f"{connection.addr} disconnected"
            )

    def __repr__(self) -> str:
        return f"RPCServer({self.config.host}:{self.port}, key={short_hex(self.public_key)})"
