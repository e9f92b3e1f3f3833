"""
Network Protocol - Frame types and serialization for bidnet RPC.

Defines the wire protocol between clients and the auction service.
"""

import asyncio
import struct
from dataclasses import dataclass
from enum import IntEnum

from bidnet.core.errors import ProtocolError
from bidnet.crypto import KeyPair, sha256, sign, verify


class MessageType(IntEnum):
    """Types of frames in the RPC protocol."""
    HELLO = 0
    REQUEST = 1
    RESPONSE = 2
    ERROR = 3


# Protocol constants
PROTOCOL_VERSION = 1
MAGIC_BYTES = b"BID1"  # 4 bytes, identifies bidnet protocol
HEADER_FORMAT = ">4sBBIBI"  # magic | version | type | request_id | method_len | body_len
HEADER_SIZE = struct.calcsize(HEADER_FORMAT)  # 15 bytes
CHECKSUM_SIZE = 4
MAX_METHOD_LENGTH = 255
MAX_BODY_SIZE = 1024 * 1024  # 1 MiB

NONCE_SIZE = 32
PUBLIC_KEY_SIZE = 64
SIGNATURE_SIZE = 64
HELLO_DOMAIN = b"bidnet-hello-v1"


@dataclass
class Message:
    """
    An RPC protocol frame.

    Wire format:
        magic (4) | version (1) | type (1) | request_id (4) | method_len (1) |
        body_len (4) | method (n) | body (m) | checksum (4)

    The checksum is the first 4 bytes of SHA-256 over everything before it.
    """
    msg_type: MessageType
    body: bytes = b""
    request_id: int = 0
    method: str = ""

    def to_bytes(self) -> bytes:
        """Serialize frame to wire format."""
        method_bytes = self.method.encode("utf-8")
        if len(method_bytes) > MAX_METHOD_LENGTH:
            raise ProtocolError(f"Method name too long: {len(method_bytes)} bytes")

        header = struct.pack(
            HEADER_FORMAT,
            MAGIC_BYTES,
            PROTOCOL_VERSION,
            self.msg_type,
            self.request_id,
            len(method_bytes),
            len(self.body),
        )
        frame = header + method_bytes + self.body
        return frame + sha256(frame)[:CHECKSUM_SIZE]

    @classmethod
    def from_bytes(cls, data: bytes) -> "Message":
        """Deserialize frame from wire format."""
        if len(data) < HEADER_SIZE + CHECKSUM_SIZE:
            raise ProtocolError("Message too short")

        magic, version, msg_type, request_id, method_len, body_len = parse_header(data[:HEADER_SIZE])

        end = HEADER_SIZE + method_len + body_len
        if len(data) != end + CHECKSUM_SIZE:
            raise ProtocolError("Length mismatch")

        if data[end:] != sha256(data[:end])[:CHECKSUM_SIZE]:
            raise ProtocolError("Checksum mismatch")

        try:
            method = data[HEADER_SIZE:HEADER_SIZE + method_len].decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError("Method name is not UTF-8") from e

        return cls(
            msg_type=MessageType(msg_type),
            body=data[HEADER_SIZE + method_len:end],
            request_id=request_id,
            method=method,
        )


def parse_header(header: bytes):
    """Unpack and sanity-check a frame header."""
    magic, version, msg_type, request_id, method_len, body_len = struct.unpack(HEADER_FORMAT, header)

    if magic != MAGIC_BYTES:
        raise ProtocolError(f"Invalid magic bytes: {magic}")
    if version != PROTOCOL_VERSION:
        raise ProtocolError(f"Unsupported protocol version: {version}")
    if msg_type not in MessageType._value2member_map_:
        raise ProtocolError(f"Unknown message type: {msg_type}")

    return magic, version, msg_type, request_id, method_len, body_len


async def read_message(reader: asyncio.StreamReader, max_body_size: int = MAX_BODY_SIZE) -> Message:
    """
    Read one frame from a stream.

    Raises:
        asyncio.IncompleteReadError: stream closed mid-frame or before one
        ProtocolError: malformed or oversized frame
    """
    header = await reader.readexactly(HEADER_SIZE)
    _, _, _, _, method_len, body_len = parse_header(header)

    if body_len > max_body_size:
        raise ProtocolError(f"Message too large: {body_len}")

    remainder = await reader.readexactly(method_len + body_len + CHECKSUM_SIZE)
    return Message.from_bytes(header + remainder)


# =============================================================================
# Frame constructors
# =============================================================================


def create_request(request_id: int, method: str, body: bytes) -> Message:
    """Create a REQUEST frame for a named remote operation."""
    return Message(msg_type=MessageType.REQUEST, body=body, request_id=request_id, method=method)


def create_response(request_id: int, body: bytes) -> Message:
    """Create a RESPONSE frame answering ``request_id``."""
    return Message(msg_type=MessageType.RESPONSE, body=body, request_id=request_id)


def create_error(request_id: int, reason: str) -> Message:
    """Create a transport-level ERROR frame."""
    return Message(msg_type=MessageType.ERROR, body=reason.encode("utf-8"), request_id=request_id)


def hello_digest(nonce: bytes) -> bytes:
    return sha256(HELLO_DOMAIN + nonce)


def create_hello_challenge(nonce: bytes) -> Message:
    """Client HELLO: a fresh nonce the server must sign."""
    if len(nonce) != NONCE_SIZE:
        raise ProtocolError(f"Nonce must be {NONCE_SIZE} bytes")
    return Message(msg_type=MessageType.HELLO, body=nonce)


def create_hello_reply(keypair: KeyPair, nonce: bytes) -> Message:
    """Server HELLO: public key followed by a signature over the client nonce."""
    signature = sign(hello_digest(nonce), keypair.private_key)
    return Message(msg_type=MessageType.HELLO, body=keypair.public_key + signature)


def verify_hello_reply(message: Message, nonce: bytes) -> bytes:
    """
    Check a server HELLO against the nonce we sent.

    Returns:
        The server's 64-byte public key

    Raises:
        ProtocolError: wrong frame or bad signature
    """
    if message.msg_type != MessageType.HELLO:
        raise ProtocolError(f"Expected HELLO, got {message.msg_type.name}")
    if len(message.body) != PUBLIC_KEY_SIZE + SIGNATURE_SIZE:
        raise ProtocolError("Malformed HELLO reply")

    public_key = message.body[:PUBLIC_KEY_SIZE]
    signature = message.body[PUBLIC_KEY_SIZE:]
    if not verify(hello_digest(nonce), signature, public_key):
        raise ProtocolError("HELLO signature does not match public key")
    return public_key
