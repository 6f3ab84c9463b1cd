"""
rewarddist/blockchain/abi.py

Fixed-shape ABI encoding and decoding for contract calls.

Only what the reward tooling needs: a 4-byte selector followed by
left-padded 32-byte words, and decoding of single words or one dynamic
string from a call result.
"""

from typing import Union

from web3 import Web3

from ..config import FUNCTION_SELECTORS, SELECTOR_SIZE, WORD_SIZE


class AbiDecodeError(ValueError):
    """Raised when a call result is too short or malformed."""
    pass


ArgValue = Union[bytes, int, str]


def left_pad(data: bytes, size: int = WORD_SIZE) -> bytes:
    """Left-pad ``data`` with zero bytes to ``size``."""
    if len(data) > size:
        raise ValueError(f"Argument of {len(data)} bytes does not fit a {size}-byte word")
    return data.rjust(size, b"\x00")


def to_arg_bytes(value: ArgValue) -> bytes:
    """
    Convert a call argument to raw bytes.

    Accepts raw bytes, non-negative ints and 0x-prefixed hex strings
    (addresses).
    """
    if isinstance(value, bool):
        return b"\x01" if value else b""
    if isinstance(value, int):
        if value < 0:
            raise ValueError(f"Negative integer argument: {value}")
        return value.to_bytes((value.bit_length() + 7) // 8, "big")
    if isinstance(value, str):
        return Web3.to_bytes(hexstr=value)
    return bytes(value)


def encode_call(selector: bytes, *args: ArgValue) -> bytes:
    """
    Encode a call as selector + one 32-byte word per argument.

    Args:
        selector: 4-byte function selector
        *args: Arguments, each left-padded to a full word

    Returns:
        Call data of length 4 + 32 * len(args)
    """
    if len(selector) != SELECTOR_SIZE:
        raise ValueError(f"Selector must be {SELECTOR_SIZE} bytes, got {len(selector)}")
    return bytes(selector) + b"".join(left_pad(to_arg_bytes(arg)) for arg in args)


def encode_function(name: str, *args: ArgValue) -> bytes:
    """Encode a call to a function from the selector table."""
    function = FUNCTION_SELECTORS[name]
    if len(args) != len(function.args):
        raise ValueError(
            f"{name} takes {len(function.args)} argument(s), got {len(args)}"
        )
    return encode_call(function.selector, *args)


def decode_fixed_word(data: bytes, index: int) -> bytes:
    """
    Extract the 32-byte word at ``index``.

    Raises:
        AbiDecodeError: If the data does not contain that word
    """
    start = index * WORD_SIZE
    end = start + WORD_SIZE
    if index < 0 or len(data) < end:
        raise AbiDecodeError(
            f"Result of {len(data)} bytes has no word at index {index}"
        )
    return bytes(data[start:end])


def decode_uint(data: bytes, index: int = 0) -> int:
    return int.from_bytes(decode_fixed_word(data, index), "big")


def decode_uint8(data: bytes, index: int = 0) -> int:
    """Decode a word as uint8 (the low byte)."""
    return decode_uint(data, index) & 0xFF


def decode_address(data: bytes, index: int = 0) -> str:
    """Decode a word as a checksummed address (its low 20 bytes)."""
    word = decode_fixed_word(data, index)
    return Web3.to_checksum_address(word[-20:])


def decode_string(data: bytes, index: int = 0) -> str:
    """
    Decode a dynamic string whose offset is stored in word ``index``.

    Layout: offset word -> length word at offset -> UTF-8 bytes.

    Raises:
        AbiDecodeError: If the data is shorter than the declared layout
    """
    offset = decode_uint(data, index)
    if offset + WORD_SIZE > len(data):
        raise AbiDecodeError(f"String offset {offset} out of range for {len(data)} bytes")

    length = int.from_bytes(data[offset:offset + WORD_SIZE], "big")
    start = offset + WORD_SIZE
    if start + length > len(data):
        raise AbiDecodeError(
            f"String length {length} exceeds result of {len(data)} bytes"
        )

    try:
        return bytes(data[start:start + length]).decode("utf-8")
    except UnicodeDecodeError as e:
        raise AbiDecodeError(f"String is not valid UTF-8: {e}") from e
