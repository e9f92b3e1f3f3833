"""
Cryptographic primitives for bidnet.

This module provides:
- Hashing functions (SHA-256, Keccak-256)
- Seed generation and deterministic key derivation
- Digital signatures (ECDSA on secp256k1)

Design Notes:
-------------
A service's network identity is a secp256k1 key pair derived from a
32-byte seed that is persisted on first startup. The hex-encoded public
key is the address clients dial and pin; the server proves ownership by
signing a client-chosen nonce during the connection handshake.
"""

import hashlib
import secrets
from dataclasses import dataclass
from typing import Optional

from Crypto.Hash import keccak
from py_ecc.secp256k1 import secp256k1


# =============================================================================
# Constants
# =============================================================================

# secp256k1 curve order (number of points on the curve)
SECP256K1_ORDER = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141

# Length of identity seeds persisted under "dht-seed" / "rpc-seed"
SEED_BYTES = 32


# =============================================================================
# Hashing
# =============================================================================


def sha256(data: bytes) -> bytes:
    """
    Compute SHA-256 hash.

    Used for: frame checksums, handshake challenge digests.
    """
    return hashlib.sha256(data).digest()


def keccak256(data: bytes) -> bytes:
    """
    Compute Keccak-256 hash (Ethereum-style).

    Used for: short address derivation from the service public key.
    """
    k = keccak.new(digest_bits=256)
    k.update(data)
    return k.digest()


# =============================================================================
# Key Generation
# =============================================================================


@dataclass
class KeyPair:
    """
    An ECDSA keypair on secp256k1.

    Attributes:
        private_key: 32-byte secret key (integer in [1, order-1])
        public_key: 64-byte uncompressed public key (x || y coordinates)
    """
    private_key: bytes  # 32 bytes
    public_key: bytes   # 64 bytes (uncompressed, no 0x04 prefix)

    @property
    def address(self) -> str:
        """
        Derive address from public key (Ethereum-style).

        Address = last 20 bytes of keccak256(public_key), hex-encoded with 0x prefix.
        """
        hash_bytes = keccak256(self.public_key)
        return "0x" + hash_bytes[-20:].hex()

    @property
    def public_key_hex(self) -> str:
        """Return public key as hex string."""
        return self.public_key.hex()


def generate_seed(length: int = SEED_BYTES) -> bytes:
    """Generate a fresh random identity seed."""
    return secrets.token_bytes(length)


def keypair_from_seed(seed: bytes) -> KeyPair:
    """
    Derive a keypair deterministically from a seed.

    The seed is reduced into the valid scalar range [1, order-1], so any
    SEED_BYTES-long byte string (including all zeros) yields a usable key.

    Args:
        seed: SEED_BYTES-long seed

    Returns:
        KeyPair for the seed
    """
    if len(seed) != SEED_BYTES:
        raise ValueError(f"Seed must be {SEED_BYTES} bytes")

    scalar = int.from_bytes(seed, byteorder="big") % (SECP256K1_ORDER - 1) + 1
    private_key = scalar.to_bytes(32, byteorder="big")
    return KeyPair(private_key=private_key, public_key=private_key_to_public_key(private_key))


def generate_keypair() -> KeyPair:
    """
    Generate a throwaway key pair from a fresh random seed.

    Public helper for callers that need a key with no persisted seed
    (scratch identities, tests). Service identities always go through
    keypair_from_seed so the key survives restarts.
    """
    return keypair_from_seed(generate_seed())


def private_key_to_public_key(private_key: bytes) -> bytes:
    """
    Derive public key from private key.

    Args:
        private_key: 32-byte private key

    Returns:
        64-byte uncompressed public key
    """
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    public_key_point = secp256k1.privtopub(private_key)
    x_bytes = public_key_point[0].to_bytes(32, byteorder="big")
    y_bytes = public_key_point[1].to_bytes(32, byteorder="big")
    return x_bytes + y_bytes


# =============================================================================
# Digital Signatures (ECDSA)
# =============================================================================


def sign(message_hash: bytes, private_key: bytes) -> bytes:
    """
    Sign a message hash using ECDSA on secp256k1.

    Args:
        message_hash: 32-byte hash of the message to sign
        private_key: 32-byte private key

    Returns:
        64-byte signature (r || s, each 32 bytes)
    """
    if len(message_hash) != 32:
        raise ValueError("Message hash must be 32 bytes")
    if len(private_key) != 32:
        raise ValueError("Private key must be 32 bytes")

    v, r, s = secp256k1.ecdsa_raw_sign(message_hash, private_key)

    # Normalize s to lower half of curve order (BIP 62 / EIP-2)
    if s > SECP256K1_ORDER // 2:
        s = SECP256K1_ORDER - s

    return r.to_bytes(32, byteorder="big") + s.to_bytes(32, byteorder="big")


def verify(message_hash: bytes, signature: bytes, public_key: bytes) -> bool:
    """
    Verify an ECDSA signature.

    Args:
        message_hash: 32-byte hash of the signed message
        signature: 64-byte signature (r || s)
        public_key: 64-byte public key (x || y)

    Returns:
        True if signature is valid, False otherwise
    """
    if len(message_hash) != 32 or len(signature) != 64 or len(public_key) != 64:
        return False

    r = int.from_bytes(signature[:32], byteorder="big")
    s = int.from_bytes(signature[32:], byteorder="big")
    if r < 1 or r >= SECP256K1_ORDER:
        return False
    if s < 1 or s >= SECP256K1_ORDER:
        return False

    public_key_point = (
        int.from_bytes(public_key[:32], byteorder="big"),
        int.from_bytes(public_key[32:], byteorder="big"),
    )

    # Without v, try both recovery ids (Ethereum convention 27/28)
    for v in (27, 28):
        try:
            recovered = secp256k1.ecdsa_raw_recover(message_hash, (v, r, s))
        except (ValueError, ZeroDivisionError):
            continue
        if recovered == public_key_point:
            return True

    return False


# =============================================================================
# Utility Functions
# =============================================================================


def hex_to_bytes(hex_str: str) -> bytes:
    """Convert hex string (with or without 0x prefix) to bytes."""
    if hex_str.startswith("0x") or hex_str.startswith("0X"):
        hex_str = hex_str[2:]
    return bytes.fromhex(hex_str)


def short_hex(data: Optional[bytes], length: int = 16) -> str:
    """Abbreviated hex for log lines."""
    if not data:
        return "<none>"
    return data.hex()[:length] + "..."
