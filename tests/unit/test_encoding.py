"""Tests for field and integer encoding utilities."""

import pytest
from hypothesis import given, settings, strategies as st

from zylith.exceptions import ArithmeticOverflowError
from zylith.utils.encoding import (
    FELT252_BOUND,
    FIELD_MODULUS,
    bytes_to_field,
    bytes_to_hex,
    ensure_felt252,
    ensure_uint,
    field_to_bytes,
    field_to_hex,
    hex_to_bytes,
    join_amount,
    parse_field,
    parse_uint,
    split_amount,
)
from zylith.utils.hash import operation_digest


class TestHexEncoding:
    def test_bytes_to_hex(self):
        assert bytes_to_hex(b"\x01\xab") == "0x01ab"

    def test_hex_to_bytes_with_and_without_prefix(self):
        assert hex_to_bytes("0x01ab") == b"\x01\xab"
        assert hex_to_bytes("01ab") == b"\x01\xab"

    def test_odd_length(self):
        with pytest.raises(ValueError):
            hex_to_bytes("0x123")


class TestFieldEncoding:
    """Tests for canonical field element handling."""

    def test_field_to_hex_is_padded(self):
        assert field_to_hex(255) == "0x" + "0" * 62 + "ff"

    def test_field_bytes(self):
        assert bytes_to_field(field_to_bytes(12345)) == 12345

    def test_non_canonical_bytes(self):
        with pytest.raises(ArithmeticOverflowError):
            bytes_to_field(FIELD_MODULUS.to_bytes(32, "big"))
        with pytest.raises(ValueError):
            bytes_to_field(b"\x00" * 31)

    def test_parse_field_forms(self):
        assert parse_field(" 42 ") == 42
        assert parse_field("0x2A") == 42
        assert parse_field(42) == 42

    def test_parse_field_bounds(self):
        with pytest.raises(ArithmeticOverflowError):
            parse_field(str(FIELD_MODULUS))
        with pytest.raises(ValueError):
            parse_field("-1")
        with pytest.raises(ValueError):
            parse_field("forty-two")

    def test_parse_uint(self):
        assert parse_uint("0x10") == 16
        assert parse_uint(str(2 ** 300)) == 2 ** 300
        with pytest.raises(ValueError):
            parse_uint("-5")


class TestWidthChecks:
    def test_ensure_uint(self):
        assert ensure_uint(2 ** 128 - 1, 128) == 2 ** 128 - 1
        with pytest.raises(ArithmeticOverflowError):
            ensure_uint(2 ** 128, 128)
        with pytest.raises(ArithmeticOverflowError):
            ensure_uint(-1, 128)

    def test_ensure_felt252(self):
        assert ensure_felt252(FELT252_BOUND - 1) == FELT252_BOUND - 1
        with pytest.raises(ArithmeticOverflowError):
            ensure_felt252(FELT252_BOUND)


class TestAmountSplitting:
    """Tests for the (low, high) uint256 representation."""

    def test_split(self):
        assert split_amount(5) == (5, 0)
        assert split_amount(2 ** 128) == (0, 1)
        assert split_amount(2 ** 256 - 1) == (2 ** 128 - 1, 2 ** 128 - 1)

    def test_split_rejects_wide_amounts(self):
        with pytest.raises(ArithmeticOverflowError):
            split_amount(2 ** 256)

    def test_join_rejects_wide_halves(self):
        with pytest.raises(ArithmeticOverflowError):
            join_amount(2 ** 128, 0)

    @given(st.integers(min_value=0, max_value=2 ** 256 - 1))
    @settings(max_examples=50, deadline=None)
    def test_split_join_inverse(self, amount):
        """Property: joining the halves of an amount rebuilds it."""
        assert join_amount(*split_amount(amount)) == amount


class TestOperationDigest:
    def test_stable_and_input_sensitive(self):
        first = operation_digest("withdraw", {"a": 1}, [1, 2])
        assert first == operation_digest("withdraw", {"a": 1}, [1, 2])
        assert first != operation_digest("withdraw", {"a": 1}, [1, 3])
        assert first != operation_digest("burn", {"a": 1}, [1, 2])
        assert len(first) == 64
