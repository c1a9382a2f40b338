"""
Binary encoding utilities.

Transaction and block identifiers are hashes of a canonical byte encoding.
This module provides the primitives that encoding is built from:

- Hex/bytes conversions
- Little-endian integer encoding
- Variable-length integer (varint) encoding for list and byte-string lengths

Only the encoding direction is needed: identifiers are computed from objects,
never parsed back.
"""


# ---------------------------------------------------------------------------
# Hex / bytes conversions
# ---------------------------------------------------------------------------

def bytes_to_hex(data: bytes) -> str:
    """
    Convert bytes to a lowercase hex string.

    Example:
        >>> bytes_to_hex(b'\\xab\\xcd')
        'abcd'
    """
    return data.hex()


def hex_to_bytes(hex_string: str) -> bytes:
    """
    Convert a hex string to bytes.

    Args:
        hex_string: Hexadecimal string (with or without '0x' prefix).

    Returns:
        The decoded bytes.

    Raises:
        ValueError: If the string is not valid hex.

    Example:
        >>> hex_to_bytes('abcd')
        b'\\xab\\xcd'
    """
    if hex_string.startswith(('0x', '0X')):
        hex_string = hex_string[2:]
    return bytes.fromhex(hex_string)


# ---------------------------------------------------------------------------
# Integer encoding
# ---------------------------------------------------------------------------

def int_to_little_endian(value: int, length: int) -> bytes:
    """
    Encode a non-negative integer as little-endian bytes.

    Args:
        value: The integer to encode.
        length: Number of bytes in the output.

    Returns:
        Little-endian encoded bytes of exactly *length* bytes.

    Raises:
        OverflowError: If the value does not fit in *length* bytes.

    Example:
        >>> int_to_little_endian(1, 4).hex()
        '01000000'
    """
    return value.to_bytes(length, byteorder='little')


def int_to_signed_little_endian(value: int, length: int) -> bytes:
    """
    Encode a possibly negative integer as two's-complement little-endian.

    Output amounts use this so that a negative amount still has a stable
    encoding (and therefore a txid) and can be rejected by validation rather
    than failing to hash.
    """
    return value.to_bytes(length, byteorder='little', signed=True)


# ---------------------------------------------------------------------------
# Variable-length integer (varint) encoding
# ---------------------------------------------------------------------------

def encode_varint(value: int) -> bytes:
    """
    Encode an integer using the compact variable-length format.

    Encoding rules:
    - 0x00-0xfc:       1 byte  (the value itself)
    - 0xfd-0xffff:     3 bytes (0xfd prefix + 2-byte little-endian)
    - 0x10000-0xffffffff: 5 bytes (0xfe prefix + 4-byte little-endian)
    - Larger:           9 bytes (0xff prefix + 8-byte little-endian)

    Args:
        value: Non-negative integer to encode.

    Returns:
        Variable-length encoded bytes.

    Raises:
        ValueError: If value is negative.

    Example:
        >>> encode_varint(252).hex()
        'fc'
        >>> encode_varint(255).hex()
        'fdff00'
    """
    if value < 0:
        raise ValueError(f"Varint value must be non-negative, got {value}")

    if value < 0xfd:
        return bytes([value])
    elif value <= 0xffff:
        return b'\xfd' + int_to_little_endian(value, 2)
    elif value <= 0xffffffff:
        return b'\xfe' + int_to_little_endian(value, 4)
    else:
        return b'\xff' + int_to_little_endian(value, 8)


def encode_bytes(data: bytes) -> bytes:
    """Length-prefix *data* with a varint."""
    return encode_varint(len(data)) + data
