"""Encoding and decoding utilities for field elements and wide integers."""

from typing import Tuple, Union

from zylith.exceptions import ArithmeticOverflowError

# BN254 scalar field modulus
FIELD_MODULUS = 21888242871839275222246405745257275088548364400416034343698204186575808495617

# Largest identifier a felt252-addressed ledger can hold, exclusive
FELT252_BOUND = 2**251 + 17 * 2**192

UINT128_BOUND = 2**128
UINT256_BOUND = 2**256


def bytes_to_hex(data: bytes) -> str:
    """
    Convert bytes to hexadecimal string.

    Args:
        data: Bytes to convert

    Returns:
        str: Hexadecimal string with '0x' prefix
    """
    return "0x" + data.hex()


def hex_to_bytes(hex_str: str) -> bytes:
    """
    Convert hexadecimal string to bytes.

    Args:
        hex_str: Hexadecimal string (with or without '0x' prefix)

    Returns:
        bytes: Decoded bytes

    Raises:
        ValueError: If hex string is invalid
    """
    if hex_str.startswith("0x"):
        hex_str = hex_str[2:]

    if len(hex_str) % 2 != 0:
        raise ValueError("Hex string must have even number of characters")

    return bytes.fromhex(hex_str)


def field_to_bytes(value: int) -> bytes:
    """Encode a field element as 32 big-endian bytes."""
    return ensure_field(value).to_bytes(32, "big")


def bytes_to_field(data: bytes) -> int:
    """Decode 32 big-endian bytes, rejecting non-canonical encodings."""
    if len(data) != 32:
        raise ValueError(f"Expected 32 bytes, got {len(data)}")
    return ensure_field(int.from_bytes(data, "big"))


def field_to_hex(value: int) -> str:
    """Render a field element as a 0x-prefixed, 64 digit hex string."""
    return bytes_to_hex(field_to_bytes(value))


def parse_field(value: Union[int, str]) -> int:
    """
    Parse a field element given as int, decimal string or 0x hex string.

    Args:
        value: Field element in any accepted form

    Returns:
        int: Canonical field element

    Raises:
        ValueError: If the string is not a number
        ArithmeticOverflowError: If the value is not below the field modulus
    """
    if isinstance(value, str):
        text = value.strip()
        value = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    return ensure_field(value)


def parse_uint(value: Union[int, str]) -> int:
    """Parse a non-negative integer given as int, decimal string or 0x hex string."""
    if isinstance(value, str):
        text = value.strip()
        value = int(text, 16) if text.lower().startswith("0x") else int(text, 10)
    if value < 0:
        raise ValueError(f"Expected a non-negative integer, got {value}")
    return value


def ensure_field(value: int) -> int:
    """
    Check that ``value`` is a canonical BN254 field element.

    Raises:
        ValueError: If value is negative
        ArithmeticOverflowError: If value >= field modulus
    """
    if value < 0:
        raise ValueError(f"Field elements are non-negative, got {value}")
    if value >= FIELD_MODULUS:
        raise ArithmeticOverflowError(f"Value {value} exceeds the field modulus")
    return value


def ensure_uint(value: int, bits: int, name: str = "value") -> int:
    """Check ``0 <= value < 2**bits``; raise ArithmeticOverflowError otherwise."""
    if value < 0 or value >= 1 << bits:
        raise ArithmeticOverflowError(f"{name}={value} does not fit in uint{bits}")
    return value


def ensure_felt252(value: int, name: str = "value") -> int:
    """Check an identifier fits the felt252 address space."""
    if value < 0 or value >= FELT252_BOUND:
        raise ArithmeticOverflowError(f"{name}={value} does not fit in felt252")
    return value


def split_amount(amount: int) -> Tuple[int, int]:
    """
    Split a uint256 amount into (low, high) 128-bit halves.

    Raises:
        ArithmeticOverflowError: If amount is not a uint256
    """
    ensure_uint(amount, 256, "amount")
    return amount & (UINT128_BOUND - 1), amount >> 128


def join_amount(low: int, high: int) -> int:
    """Rebuild a uint256 amount from its 128-bit halves."""
    ensure_uint(low, 128, "amount_low")
    ensure_uint(high, 128, "amount_high")
    return (high << 128) | low
