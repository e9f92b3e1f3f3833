"""
Unit tests for cryptographic primitives.

Tests cover:
1. Seed-derived key pairs
2. Signing and verification
3. Hashing functions
4. Address derivation
"""

import pytest

from bidnet.crypto import (
    SEED_BYTES,
    SECP256K1_ORDER,
    generate_keypair,
    generate_seed,
    hex_to_bytes,
    keccak256,
    keypair_from_seed,
    private_key_to_public_key,
    sha256,
    short_hex,
    sign,
    verify,
)


class TestKeyDerivation:
    """Tests for seed-based key derivation."""

    def test_seed_length(self):
        """Generated seeds should have the identity seed length."""
        assert len(generate_seed()) == SEED_BYTES
        assert generate_seed() != generate_seed()

    def test_same_seed_same_keypair(self):
        """Derivation must be deterministic so identities survive restarts."""
        seed = generate_seed()
        kp1 = keypair_from_seed(seed)
        kp2 = keypair_from_seed(seed)
        assert kp1.private_key == kp2.private_key
        assert kp1.public_key == kp2.public_key

    def test_different_seeds_differ(self):
        kp1 = keypair_from_seed(b"\x01" * SEED_BYTES)
        kp2 = keypair_from_seed(b"\x02" * SEED_BYTES)
        assert kp1.public_key != kp2.public_key

    def test_degenerate_seeds_yield_valid_keys(self):
        """All-zero and all-0xff seeds still map into [1, order-1]."""
        for seed in (bytes(SEED_BYTES), b"\xff" * SEED_BYTES):
            kp = keypair_from_seed(seed)
            scalar = int.from_bytes(kp.private_key, "big")
            assert 1 <= scalar < SECP256K1_ORDER
            assert len(kp.public_key) == 64

    def test_wrong_seed_length_rejected(self):
        with pytest.raises(ValueError, match="Seed must be"):
            keypair_from_seed(b"short")

    def test_public_key_matches_private(self):
        kp = generate_keypair()
        assert private_key_to_public_key(kp.private_key) == kp.public_key

    def test_address_format(self):
        """Address should be 0x-prefixed 40 hex chars."""
        kp = generate_keypair()
        assert kp.address.startswith("0x")
        assert len(kp.address) == 42
        assert kp.public_key_hex == kp.public_key.hex()


class TestSigning:
    """Tests for ECDSA signing."""

    def test_sign_and_verify(self):
        kp = generate_keypair()
        msg_hash = sha256(b"challenge")
        sig = sign(msg_hash, kp.private_key)
        assert len(sig) == 64
        assert verify(msg_hash, sig, kp.public_key)

    def test_verify_wrong_message_fails(self):
        kp = generate_keypair()
        sig = sign(sha256(b"challenge"), kp.private_key)
        assert not verify(sha256(b"other"), sig, kp.public_key)

    def test_verify_wrong_key_fails(self):
        kp1 = generate_keypair()
        kp2 = generate_keypair()
        msg_hash = sha256(b"challenge")
        sig = sign(msg_hash, kp1.private_key)
        assert not verify(msg_hash, sig, kp2.public_key)

    def test_verify_rejects_bad_lengths(self):
        kp = generate_keypair()
        msg_hash = sha256(b"challenge")
        sig = sign(msg_hash, kp.private_key)
        assert not verify(msg_hash[:31], sig, kp.public_key)
        assert not verify(msg_hash, sig[:63], kp.public_key)
        assert not verify(msg_hash, sig, kp.public_key[:63])

    def test_verify_rejects_zero_signature(self):
        kp = generate_keypair()
        assert not verify(sha256(b"x"), bytes(64), kp.public_key)

    def test_sign_requires_32_byte_hash(self):
        kp = generate_keypair()
        with pytest.raises(ValueError):
            sign(b"not a hash", kp.private_key)


class TestHashing:
    """Tests for hash helpers."""

    def test_sha256_known_vector(self):
        assert sha256(b"").hex() == (
            "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_keccak256_known_vector(self):
        assert keccak256(b"").hex() == (
            "c5d2460186f7233c927e7db2dcc703c0e500b653ca82273b7bfad8045d85a470"
        )

    def test_hex_helpers(self):
        assert hex_to_bytes("0xabcd") == b"\xab\xcd"
        assert hex_to_bytes("abcd") == b"\xab\xcd"
        assert short_hex(b"\xab" * 32, 4) == "abab..."
        assert short_hex(None) == "<none>"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
