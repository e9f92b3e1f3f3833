"""
Unit tests for input validation.
"""

import pytest

from bidnet.utils.validation import (
    validate_amount,
    validate_auction_id,
    validate_bidder,
    validate_description,
    validate_public_key_hex,
)


class TestAmount:

    @pytest.mark.parametrize("value", [0, 1, 75, 75.5, 1e12])
    def test_valid(self, value):
        assert validate_amount(value) == (True, "")

    @pytest.mark.parametrize(
        "value,fragment",
        [
            (-1, ">= 0"),
            (-0.01, ">= 0"),
            (float("nan"), "finite"),
            (float("inf"), "finite"),
            (True, "number"),
            ("80", "number"),
            (None, "number"),
        ],
    )
    def test_invalid(self, value, fragment):
        ok, error = validate_amount(value, "startingPrice")
        assert not ok
        assert error.startswith("startingPrice")
        assert fragment in error


class TestIdentifiers:

    @pytest.mark.parametrize("value", ["A", "item1", "lot 42", "ключ"])
    def test_valid_ids(self, value):
        assert validate_auction_id(value)[0]

    @pytest.mark.parametrize("value", ["", "a\nb", "trailing\n", "x" * 257, 5, None])
    def test_invalid_ids(self, value):
        assert not validate_auction_id(value)[0]

    def test_bidder_must_be_non_empty(self):
        assert validate_bidder("Client#2")[0]
        assert not validate_bidder("")[0]

    def test_description_may_be_empty(self):
        assert validate_description("")[0]
        assert not validate_description("x" * 5000)[0]


class TestPublicKeyHex:

    def test_valid(self):
        assert validate_public_key_hex("ab" * 64)[0]
        assert validate_public_key_hex("0x" + "ab" * 64)[0]

    @pytest.mark.parametrize("value", ["ab" * 32, "zz" * 64, "abc", b"ab"])
    def test_invalid(self, value):
        assert not validate_public_key_hex(value)[0]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
