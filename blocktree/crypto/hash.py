"""
Ledger Hash Functions
=====================

Every identifier in the block tree is a hash: transaction IDs, block IDs and
the merkle root that commits a block header to its transactions.

- **SHA-256**: the base primitive.
- **double SHA-256**: SHA-256 applied twice. Used for transaction
  IDs, block IDs, merkle nodes and as the digest that ECDSA signatures cover.
  Hashing the inner digest again keeps the outer input fixed-size, which
  rules out length-extension on the identifiers.
"""

import hashlib


def sha256(data: bytes) -> bytes:
    """
    Compute the SHA-256 hash of the input data.

    Args:
        data: The raw bytes to hash.

    Returns:
        The 32-byte SHA-256 digest.

    Example:
        >>> sha256(b"hello").hex()
        '2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    return hashlib.sha256(data).digest()


def double_sha256(data: bytes) -> bytes:
    """
    Compute the double SHA-256 hash: SHA-256(SHA-256(data)).

    Used for:
    - Transaction ID (txid) computation
    - Block header hashing (the block's content identifier)
    - Merkle tree node hashing
    - The digest signed for each transaction input

    Args:
        data: The raw bytes to hash.

    Returns:
        The 32-byte double-SHA-256 digest.

    Example:
        >>> double_sha256(b"hello").hex()
        '9595c9df90075148eb06860365df33584b75bff782a510c6cd4883a419833d50'
    """
    return sha256(sha256(data))


def reversed_hash256(data: bytes) -> str:
    """
    Double SHA-256 in display byte order.

    Transaction and block identifiers are shown with the digest bytes
    reversed, so the most significant byte comes first.

    Args:
        data: The raw bytes to hash.

    Returns:
        64-character lowercase hex string.
    """
    return double_sha256(data)[::-1].hex()
