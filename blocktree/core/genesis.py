"""
Genesis block construction.

Every block tree starts from a single trusted root block. The genesis block
declares no parent and carries only a coinbase; the tree takes it as valid
without checking anything.
"""

from __future__ import annotations

import logging

from blocktree.consensus.rules import GENESIS_HEIGHT
from blocktree.core.block import Block
from blocktree.core.transaction import Transaction

logger = logging.getLogger(__name__)

GENESIS_TIMESTAMP = 1231006505
"""Fixed genesis timestamp so the same owner and amount always give the
same genesis hash."""


def create_genesis_block(
    owner: str,
    amount: int,
    timestamp: int = GENESIS_TIMESTAMP,
) -> Block:
    """
    Build the finalized genesis block.

    Args:
        owner: Hex-encoded public key receiving the genesis coinbase.
        amount: Value created by the genesis coinbase.
        timestamp: Header timestamp.

    Returns:
        A parentless Block whose only transaction is its coinbase.
    """
    coinbase = Transaction.create_coinbase(
        block_height=GENESIS_HEIGHT,
        owner=owner,
        amount=amount,
    )
    block = Block.create(
        previous_block_hash=None,
        coinbase=coinbase,
        transactions=[],
        timestamp=timestamp,
    )
    logger.debug("Built genesis block %s", block.hash[:16])
    return block
