"""
Block data structures.

This module implements the two structures that make up a block:

- **BlockHeader**: the protocol version, a reference to the parent block,
  the merkle root of all transactions and a timestamp.

- **Block**: a header, exactly one coinbase transaction and an ordered list
  of regular transactions. The coinbase is kept apart from the regular
  transactions because it is applied to the UTXO set unconditionally while
  the regular ones go through validation.

The block's content identifier is the double SHA-256 of the serialized
header, displayed in reversed byte order. Because the header commits to the
merkle root, the identifier covers every transaction. It is only meaningful
once the block is *finalized*: ``Block.finalize()`` recomputes the merkle
root from the current transactions and drops the cached hash.

A header whose ``previous_block_hash`` is None declares no parent; only a
genesis block may do that.
"""

from __future__ import annotations

import time
from typing import Optional

from blocktree.crypto.hash import double_sha256, reversed_hash256
from blocktree.utils.encoding import (
    bytes_to_hex,
    encode_varint,
    hex_to_bytes,
    int_to_little_endian,
)
from blocktree.core.transaction import Transaction

NULL_HASH = "0" * 64
"""Serialized stand-in for an absent parent reference."""


# ---------------------------------------------------------------------------
# BlockHeader
# ---------------------------------------------------------------------------

class BlockHeader:
    """
    The block header whose hash identifies the block.

    Fields (72 bytes when serialized):
        - version (4 bytes): Protocol version.
        - previous_block_hash (32 bytes): Hash of the parent block, or zero
          bytes when there is no parent.
        - merkle_root (32 bytes): Root of the merkle tree of transaction IDs.
        - timestamp (4 bytes): Creation time (Unix epoch).

    Attributes:
        version: Protocol version number.
        previous_block_hash: Hex-encoded parent hash, or None for genesis.
        merkle_root: Hex-encoded merkle root (display order).
        timestamp: Unix timestamp.
    """

    def __init__(
        self,
        version: int = 1,
        previous_block_hash: Optional[str] = None,
        merkle_root: str = NULL_HASH,
        timestamp: int = 0,
    ):
        self.version = version
        self.previous_block_hash = previous_block_hash
        self.merkle_root = merkle_root
        self.timestamp = timestamp
        self._hash: Optional[str] = None

    @property
    def hash(self) -> str:
        """
        The block hash -- the content identifier for this block.

        Returns:
            64-character lowercase hex string.
        """
        if self._hash is None:
            self._hash = self.calculate_hash()
        return self._hash

    def calculate_hash(self) -> str:
        """Compute the block hash from the serialized header."""
        return reversed_hash256(self.serialize())

    def has_parent(self) -> bool:
        return self.previous_block_hash is not None

    def serialize(self) -> bytes:
        """
        Serialize this header to exactly 72 bytes.

        Format (all little-endian):
            - version: 4 bytes
            - previous_block_hash: 32 bytes (internal byte order)
            - merkle_root: 32 bytes (internal byte order)
            - timestamp: 4 bytes

        Returns:
            Exactly 72 bytes.
        """
        previous = self.previous_block_hash if self.previous_block_hash is not None else NULL_HASH
        result = int_to_little_endian(self.version, 4)
        # Hash fields are stored in internal byte order (reversed from display)
        result += hex_to_bytes(previous)[::-1]
        result += hex_to_bytes(self.merkle_root)[::-1]
        result += int_to_little_endian(self.timestamp, 4)
        return result

    def to_dict(self) -> dict:
        return {
            'version': self.version,
            'previous_block_hash': self.previous_block_hash,
            'merkle_root': self.merkle_root,
            'timestamp': self.timestamp,
            'hash': self.hash,
        }

    def __repr__(self) -> str:
        return f"BlockHeader(hash='{self.hash[:16]}...')"

    def __eq__(self, other) -> bool:
        if not isinstance(other, BlockHeader):
            return NotImplemented
        return self.hash == other.hash

    def __hash__(self) -> int:
        return hash(self.hash)


# ---------------------------------------------------------------------------
# Block
# ---------------------------------------------------------------------------

class Block:
    """
    A block: header, one coinbase and the regular transactions.

    Attributes:
        header: The block header.
        coinbase: The block's coinbase transaction (no inputs).
        transactions: Ordered list of regular transactions.
    """

    def __init__(
        self,
        header: Optional[BlockHeader] = None,
        coinbase: Optional[Transaction] = None,
        transactions: Optional[list] = None,
    ):
        self.header = header if header is not None else BlockHeader()
        self.coinbase = coinbase
        self.transactions = transactions if transactions is not None else []

    @classmethod
    def create(
        cls,
        previous_block_hash: Optional[str],
        coinbase: Transaction,
        transactions: Optional[list] = None,
        timestamp: Optional[int] = None,
    ) -> Block:
        """
        Build and finalize a block on top of *previous_block_hash*.

        Args:
            previous_block_hash: Parent block hash (None only for genesis).
            coinbase: The coinbase transaction.
            transactions: Regular transactions in block order.
            timestamp: Header timestamp; defaults to the current time.

        Returns:
            A finalized Block.
        """
        header = BlockHeader(
            previous_block_hash=previous_block_hash,
            timestamp=int(time.time()) if timestamp is None else timestamp,
        )
        block = cls(header=header, coinbase=coinbase, transactions=list(transactions or []))
        block.finalize()
        return block

    @property
    def hash(self) -> str:
        return self.header.hash

    @property
    def previous_block_hash(self) -> Optional[str]:
        return self.header.previous_block_hash

    def get_coinbase(self) -> Optional[Transaction]:
        return self.coinbase

    def get_transactions(self) -> list[Transaction]:
        """Return the regular (non-coinbase) transactions in block order."""
        return list(self.transactions)

    def all_transactions(self) -> list[Transaction]:
        """Coinbase first, then the regular transactions."""
        if self.coinbase is None:
            return list(self.transactions)
        return [self.coinbase] + list(self.transactions)

    def calculate_merkle_root(self) -> str:
        """
        Build a merkle tree from the transaction IDs and return the root hash.

        Leaves are the txids (coinbase first) in internal byte order; each
        internal node is the double SHA-256 of its two children, and an odd
        level duplicates its last node.

        Special cases:
        - No transactions: returns the all-zero hash.
        - Single transaction: returns that transaction's txid.

        Returns:
            64-character lowercase hex string of the merkle root.
        """
        txs = self.all_transactions()
        if not txs:
            return NULL_HASH

        if len(txs) == 1:
            return txs[0].txid

        current_level = [hex_to_bytes(tx.txid)[::-1] for tx in txs]

        while len(current_level) > 1:
            if len(current_level) % 2 != 0:
                current_level.append(current_level[-1])

            current_level = [
                double_sha256(current_level[i] + current_level[i + 1])
                for i in range(0, len(current_level), 2)
            ]

        return bytes_to_hex(current_level[0][::-1])

    def finalize(self) -> str:
        """
        Commit the header to the current transactions and return the block hash.

        Call after the transaction list (or any signature inside it) has
        changed; until then the cached hash describes the old content.
        """
        self.header.merkle_root = self.calculate_merkle_root()
        self.header._hash = None
        return self.header.hash

    def add_transaction(self, tx: Transaction) -> None:
        """Append a regular transaction and re-finalize the block."""
        self.transactions.append(tx)
        self.finalize()

    def get_size(self) -> int:
        """
        Total serialized size in bytes: header, varint transaction count and
        every transaction (coinbase included).
        """
        txs = self.all_transactions()
        size = len(self.header.serialize())
        size += len(encode_varint(len(txs)))
        for tx in txs:
            size += len(tx.serialize())
        return size

    def to_dict(self) -> dict:
        return {
            'header': self.header.to_dict(),
            'coinbase': self.coinbase.to_dict() if self.coinbase is not None else None,
            'transactions': [tx.to_dict() for tx in self.transactions],
            'size': self.get_size(),
            'tx_count': len(self.transactions),
        }

    def __repr__(self) -> str:
        return (
            f"Block(hash='{self.header.hash[:16]}...', "
            f"txs={len(self.transactions)})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Block):
            return NotImplemented
        return self.header.hash == other.header.hash

    def __hash__(self) -> int:
        return hash(self.header.hash)
