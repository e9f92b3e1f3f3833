"""
Input Validation - sanitization of values arriving over the wire.

Every validator returns ``(is_valid, error_message)`` so callers can turn
a failure into an INVALID_INPUT result without raising.
"""

import math
import re
from typing import Any, Optional, Tuple

# =============================================================================
# Constants
# =============================================================================

MAX_AUCTION_ID_LENGTH = 256
MAX_BIDDER_LENGTH = 256
MAX_DESCRIPTION_LENGTH = 4096
MAX_PUBLIC_KEY_SIZE = 64

# No control characters in auction ids
AUCTION_ID_PATTERN = r"^[^\x00-\x1f]+\Z"


# =============================================================================
# Validation Functions
# =============================================================================


def validate_string(
    value: Any,
    name: str,
    max_length: int,
    pattern: Optional[str] = None,
    allow_empty: bool = True,
) -> Tuple[bool, str]:
    """
    Validate string input.

    Args:
        value: Value to validate
        name: Field name for errors
        max_length: Maximum string length
        pattern: Optional regex pattern
        allow_empty: Whether "" is acceptable

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    if not value and not allow_empty:
        return False, f"{name} must not be empty"

    if len(value) > max_length:
        return False, f"{name} exceeds max length {max_length}"

    if value and pattern and not re.match(pattern, value):
        return False, f"{name} does not match required pattern"

    return True, ""


def validate_amount(value: Any, name: str = "amount") -> Tuple[bool, str]:
    """
    Validate a price or bid amount: a finite, non-negative real number.

    Booleans are rejected even though they are ints in Python.
    """
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False, f"{name} must be a number, got {type(value).__name__}"

    if isinstance(value, float) and not math.isfinite(value):
        return False, f"{name} must be finite, got {value}"

    if value < 0:
        return False, f"{name} must be >= 0, got {value}"

    return True, ""


def validate_auction_id(value: Any) -> Tuple[bool, str]:
    """Validate an opener-assigned auction identifier."""
    return validate_string(
        value,
        "id",
        MAX_AUCTION_ID_LENGTH,
        pattern=AUCTION_ID_PATTERN,
        allow_empty=False,
    )


def validate_bidder(value: Any) -> Tuple[bool, str]:
    """Validate a bidder identifier."""
    return validate_string(value, "bidder", MAX_BIDDER_LENGTH, allow_empty=False)


def validate_description(value: Any) -> Tuple[bool, str]:
    """Validate a free-text auction description."""
    return validate_string(value, "description", MAX_DESCRIPTION_LENGTH)


def validate_hex_string(value: Any, name: str, expected_bytes: Optional[int] = None) -> Tuple[bool, str]:
    """
    Validate a hex string (with or without 0x prefix).

    Args:
        value: Value to validate
        name: Field name
        expected_bytes: Expected byte length when decoded

    Returns:
        (is_valid, error_message)
    """
    if not isinstance(value, str):
        return False, f"{name} must be str, got {type(value).__name__}"

    hex_str = value[2:] if value.startswith("0x") else value

    if len(hex_str) % 2 != 0:
        return False, f"{name} has odd length, invalid hex"

    try:
        bytes.fromhex(hex_str)
    except ValueError:
        return False, f"{name} contains invalid hex characters"

    if expected_bytes is not None:
        actual_bytes = len(hex_str) // 2
        if actual_bytes != expected_bytes:
            return False, f"{name} must be {expected_bytes} bytes, got {actual_bytes}"

    return True, ""


def validate_public_key_hex(value: Any) -> Tuple[bool, str]:
    """Validate a hex-encoded 64-byte service public key."""
    return validate_hex_string(value, "public_key", MAX_PUBLIC_KEY_SIZE)


# =============================================================================
# Module Exports
# =============================================================================

__all__ = [
    "validate_string",
    "validate_amount",
    "validate_auction_id",
    "validate_bidder",
    "validate_description",
    "validate_hex_string",
    "validate_public_key_hex",
    "MAX_AUCTION_ID_LENGTH",
    "MAX_BIDDER_LENGTH",
    "MAX_DESCRIPTION_LENGTH",
    "MAX_PUBLIC_KEY_SIZE",
]
