"""
Block Tree Management
=====================

This module implements the central Blockchain class: the in-memory authority
for "what is the chain, and what is currently spendable".

The blockchain is really a block-*tree*. Any accepted block may receive more
than one child, so competing branches (forks) live side by side. The class
handles:

- **Genesis** : the tree is built from one trusted root block. Its
  coinbase outputs form the initial UTXO set; nothing about it is validated.

- **Node index** : every accepted block gets a BlockNode, indexed by the
  block's content hash. A node owns the UTXO set that results from applying
  its block on top of its parent's set, so a block can be validated on any
  branch without replaying or unwinding anything.

- **Admission** : a candidate block must name a known parent, sit within
  ``cut_off_age`` of the tip, and have every regular transaction accepted by
  the validator against a copy of the parent's UTXO set. Acceptance is
  all-or-nothing: a rejected block changes nothing.

- **Tip selection** : the tip is the highest node seen so far. It is only
  replaced by a *strictly* higher node, so among equal-height forks the
  first admitted one stays the tip.

- **Mempool upkeep** : transactions chained by an accepted block leave the
  pending pool.

- **Pruning** (opt-in) : side branches that can no longer be extended under
  the cut-off rule can be dropped to keep memory bounded.

All public methods hold one re-entrant lock, so ``add_block`` is atomic with
respect to every reader: nobody sees a node without its UTXO set, or a new
tip before the mempool has been cleaned.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Optional

from blocktree.consensus.rules import (
    CUT_OFF_AGE,
    GENESIS_HEIGHT,
    can_be_extended,
    child_height,
    is_within_cut_off,
)
from blocktree.consensus.validation import BlockRejected, TxHandler
from blocktree.core.mempool import Mempool
from blocktree.core.utxo import UTXOSet

if TYPE_CHECKING:
    from blocktree.consensus.validation import TransactionValidator
    from blocktree.core.block import Block
    from blocktree.core.transaction import Transaction

logger = logging.getLogger(__name__)


def _short_hash(block: "Block") -> str:
    """Hash prefix for log lines; blocks that cannot be hashed get a placeholder."""
    try:
        return block.hash[:16]
    except (ValueError, OverflowError):
        return "<malformed>"


# ---------------------------------------------------------------------------
# BlockNode
# ---------------------------------------------------------------------------

class BlockNode:
    """
    One accepted block plus the state derived from it.

    A node is never changed after creation except for children being
    appended as descendants are admitted (and removed again by pruning).

    Attributes:
        block: The accepted Block.
        hash: The block's content hash at admission time (its index key).
        parent: The parent BlockNode, or None for genesis.
        children: Child nodes in admission order.
        height: GENESIS_HEIGHT for genesis, otherwise parent height + 1.
    """

    def __init__(self, block: "Block", parent: Optional["BlockNode"], utxo_set: UTXOSet):
        self.block = block
        self.hash = block.hash
        self.parent = parent
        self.children: list[BlockNode] = []
        self._utxo_set = utxo_set
        if parent is not None:
            self.height = child_height(parent.height)
            parent.children.append(self)
        else:
            self.height = GENESIS_HEIGHT

    def get_utxo_set_copy(self) -> UTXOSet:
        """UTXO set for building a block on top of this node (a fresh copy)."""
        return self._utxo_set.copy()

    def is_genesis(self) -> bool:
        return self.parent is None

    def __repr__(self) -> str:
        return (
            f"BlockNode(hash='{self.hash[:16]}...', height={self.height}, "
            f"children={len(self.children)})"
        )


# ---------------------------------------------------------------------------
# Blockchain
# ---------------------------------------------------------------------------

class Blockchain:
    """
    The block tree: accepted blocks, their UTXO sets, the tip and the mempool.

    Attributes:
        nodes: Index of every retained BlockNode, keyed by block hash.
        mempool: Pool of submitted transactions not yet chained.
        validator: Object with ``validate(utxo_set, transactions)`` returning
            ``(accepted, resulting_utxo_set)``.
        cut_off_age: How far behind the tip a new block may still attach.
        auto_prune: Whether to call ``prune()`` after every accepted block.
    """

    def __init__(
        self,
        genesis_block: "Block",
        validator: Optional["TransactionValidator"] = None,
        cut_off_age: int = CUT_OFF_AGE,
        auto_prune: bool = False,
    ) -> None:
        """
        Build a tree holding only *genesis_block*.

        The genesis block is assumed valid. Its coinbase outputs are the only
        entries of the initial UTXO set.

        Args:
            genesis_block: The trusted root block.
            validator: Transaction validator; defaults to ``TxHandler()``.
            cut_off_age: Allowed lag behind the tip for new blocks.
            auto_prune: Prune dead side branches after each accepted block.

        Raises:
            TypeError: If *genesis_block* is None.
            ValueError: If *cut_off_age* is negative.
        """
        if genesis_block is None:
            raise TypeError("genesis_block must not be None")
        if cut_off_age < 0:
            raise ValueError(f"cut_off_age must be non-negative, got {cut_off_age}")

        self._lock = threading.RLock()
        self.nodes: dict[str, BlockNode] = {}
        self.mempool: Mempool = Mempool(lock=self._lock)
        self.validator = validator if validator is not None else TxHandler()
        self.cut_off_age: int = cut_off_age
        self.auto_prune: bool = auto_prune

        self._genesis: BlockNode = self._create_genesis_node(genesis_block)
        self._tip: BlockNode = self._genesis

    # ------------------------------------------------------------------
    # Genesis
    # ------------------------------------------------------------------

    def _create_genesis_node(self, genesis_block: "Block") -> BlockNode:
        utxo_set = UTXOSet()
        coinbase = genesis_block.get_coinbase()
        if coinbase is not None:
            utxo_set.add_outputs(coinbase)

        genesis_block.finalize()
        node = BlockNode(genesis_block, None, utxo_set)
        self.nodes[node.hash] = node

        logger.info("Genesis block %s installed (%d UTXOs)", node.hash[:16], len(utxo_set))
        return node

    # ------------------------------------------------------------------
    # Tip queries
    # ------------------------------------------------------------------

    def get_tip_node(self) -> BlockNode:
        """Return the BlockNode currently treated as the head of the chain."""
        with self._lock:
            return self._tip

    def get_chain_tip(self) -> "Block":
        """Return the block at the tip of the best (highest) chain."""
        with self._lock:
            return self._tip.block

    def get_chain_height(self) -> int:
        """Height of the tip (genesis is height 1)."""
        with self._lock:
            return self._tip.height

    def get_tip_utxo_set(self) -> UTXOSet:
        """
        Return a copy of the tip's UTXO set.

        The copy is the caller's to mutate, e.g. while assembling the next
        block speculatively; the tree never sees those changes.
        """
        with self._lock:
            return self._tip.get_utxo_set_copy()

    def get_transaction_pool(self) -> Mempool:
        """
        Return the pool of pending transactions for block producers.

        The pool shares this tree's lock, so it is safe to read and mutate
        from other threads while blocks are being added.
        """
        return self.mempool

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def add_transaction(self, tx: "Transaction") -> None:
        """
        Put *tx* in the mempool. Nothing is validated until a block
        containing it is submitted.

        Raises:
            TypeError: If *tx* is None.
        """
        with self._lock:
            self.mempool.add_transaction(tx)

    def add_block(self, block: "Block") -> bool:
        """
        Attempt to add *block* to the tree.

        Args:
            block: The candidate block.

        Returns:
            True if the block was accepted. False if it cannot be serialized,
            declares no parent, names an unknown parent, falls outside the
            cut-off window, has any transaction the validator refuses, lacks
            a coinbase (or carries one with inputs), or is already in the
            tree. A rejected block leaves the tree, the tip
            and the mempool untouched.

        Raises:
            TypeError: If *block* is None.
        """
        if block is None:
            raise TypeError("block must not be None")

        with self._lock:
            try:
                node = self._admit(block)
            except BlockRejected as e:
                logger.warning("Block %s rejected (%s): %s", _short_hash(block), e.reason, e)
                return False

            if self.auto_prune:
                self.prune()

            logger.info(
                "Block %s added at height %d (chain tip: %s, height %d)",
                node.hash[:16], node.height, self._tip.hash[:16], self._tip.height,
            )
            return True

    def _admit(self, block: "Block") -> BlockNode:
        """
        Run the admission algorithm for *block*; callers hold the lock.

        Every check comes before the first mutation, so raising
        BlockRejected leaves all state as it was.
        """
        try:
            block_hash = block.finalize()
        except (ValueError, OverflowError) as e:
            raise BlockRejected("malformed", f"Block cannot be serialized: {e}") from e

        if block_hash in self.nodes:
            raise BlockRejected("duplicate", "Block is already in the tree")

        prev_hash = block.previous_block_hash
        if prev_hash is None:
            raise BlockRejected("no-parent", "Only the genesis block may declare no parent")

        parent = self.nodes.get(prev_hash)
        if parent is None:
            raise BlockRejected("unknown-parent", f"Parent {prev_hash[:16]} is not in the tree")

        height = child_height(parent.height)
        if not is_within_cut_off(height, self._tip.height, self.cut_off_age):
            raise BlockRejected(
                "outside-cut-off",
                f"Height {height} is not above tip height {self._tip.height} "
                f"minus cut-off age {self.cut_off_age}",
            )

        coinbase = block.get_coinbase()
        if coinbase is None:
            raise BlockRejected("no-coinbase", "Block has no coinbase transaction")
        if not coinbase.is_coinbase():
            raise BlockRejected("bad-coinbase", "Coinbase transaction has inputs")

        submitted = block.get_transactions()
        accepted, utxo_set = self.validator.validate(parent.get_utxo_set_copy(), submitted)
        if len(accepted) != len(submitted):
            raise BlockRejected(
                "invalid-transactions",
                f"Only {len(accepted)} of {len(submitted)} transactions are valid",
            )

        # Coinbase outputs bypass validation
        utxo_set.add_outputs(coinbase)

        node = BlockNode(block, parent, utxo_set)
        self.nodes[node.hash] = node

        if node.height > self._tip.height:
            logger.info(
                "New tip %s at height %d (was %s)",
                node.hash[:16], node.height, self._tip.hash[:16],
            )
            self._tip = node

        self.mempool.clear_confirmed(accepted)
        return node

    # ------------------------------------------------------------------
    # Lookups and navigation
    # ------------------------------------------------------------------

    def get_node(self, block_hash: str) -> Optional[BlockNode]:
        with self._lock:
            return self.nodes.get(block_hash)

    def get_block(self, block_hash: str) -> "Block | None":
        """
        Retrieve a retained block by its hash.

        Returns:
            The Block object, or None if not found (never seen or pruned).
        """
        node = self.get_node(block_hash)
        return node.block if node is not None else None

    def get_genesis_block(self) -> "Block":
        return self._genesis.block

    def get_chain(self, tip_hash: str | None = None) -> list["Block"]:
        """
        Walk from *tip_hash* back to genesis.

        Args:
            tip_hash: The hash to start from. Defaults to the current tip.

        Returns:
            List of Blocks from genesis (index 0) to the tip (last element),
            or an empty list if *tip_hash* is unknown.
        """
        with self._lock:
            node = self._tip if tip_hash is None else self.nodes.get(tip_hash)
            chain: list[Block] = []
            while node is not None:
                chain.append(node.block)
                node = node.parent
        chain.reverse()
        return chain

    def get_blocks_at_height(self, height: int) -> list["Block"]:
        """All retained blocks at *height*, across every branch, in admission order."""
        with self._lock:
            return [node.block for node in self.nodes.values() if node.height == height]

    def get_chain_tips(self) -> list[BlockNode]:
        """Nodes with no children (the ends of every branch), in admission order."""
        with self._lock:
            return [node for node in self.nodes.values() if not node.children]

    def walk_tree(self) -> list[BlockNode]:
        """
        Every retained node, breadth-first from genesis, taken in one locked pass.

        A parent always precedes its children and siblings keep admission
        order. The list is a snapshot; later admissions or pruning do not
        change it.
        """
        with self._lock:
            order = [self._genesis]
            for node in order:
                order.extend(node.children)
            return order

    def is_on_best_chain(self, block_hash: str) -> bool:
        """Whether *block_hash* is the tip or one of its ancestors."""
        with self._lock:
            return block_hash in self._ancestor_hashes(self._tip)

    @property
    def block_count(self) -> int:
        with self._lock:
            return len(self.nodes)

    @staticmethod
    def _ancestor_hashes(node: BlockNode) -> set[str]:
        hashes: set[str] = set()
        current: Optional[BlockNode] = node
        while current is not None:
            hashes.add(current.hash)
            current = current.parent
        return hashes

    # ------------------------------------------------------------------
    # Pruning
    # ------------------------------------------------------------------

    def prune(self) -> int:
        """
        Drop side branches that can no longer grow.

        A subtree hanging off the tip's ancestry is removed when even its
        highest node is too far below the tip to receive a child. Ancestors
        of the tip are always kept. Blocks that later name a pruned node as
        parent are rejected as having an unknown parent.

        Returns:
            The number of nodes removed.
        """
        with self._lock:
            tip_height = self._tip.height
            best_chain = self._ancestor_hashes(self._tip)
            max_heights = self._subtree_max_heights()

            removed = 0
            stack = [self._genesis]
            while stack:
                node = stack.pop()
                for child in list(node.children):
                    if child.hash in best_chain or can_be_extended(
                        max_heights[child.hash], tip_height, self.cut_off_age
                    ):
                        stack.append(child)
                        continue
                    node.children.remove(child)
                    removed += self._drop_subtree(child)

            if removed:
                logger.info("Pruned %d stale nodes (tip height %d)", removed, tip_height)
            return removed

    def _subtree_max_heights(self) -> dict[str, int]:
        order: list[BlockNode] = []
        stack = [self._genesis]
        while stack:
            node = stack.pop()
            order.append(node)
            stack.extend(node.children)

        max_heights: dict[str, int] = {}
        for node in reversed(order):
            max_heights[node.hash] = max(
                [node.height] + [max_heights[child.hash] for child in node.children]
            )
        return max_heights

    def _drop_subtree(self, root: BlockNode) -> int:
        count = 0
        stack = [root]
        while stack:
            node = stack.pop()
            stack.extend(node.children)
            if self.nodes.pop(node.hash, None) is not None:
                count += 1
                logger.debug("Dropped block %s at height %d", node.hash[:16], node.height)
        return count

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def to_dict(self) -> dict:
        """
        Summarize the tree as a JSON-compatible dictionary.

        Returns:
            Dictionary with the tip, every node's height, parent and
            children, the tip's UTXO set and the mempool.
        """
        with self._lock:
            return {
                "tip": self._tip.hash,
                "chain_height": self._tip.height,
                "block_count": len(self.nodes),
                "cut_off_age": self.cut_off_age,
                "nodes": {
                    block_hash: {
                        "height": node.height,
                        "parent": node.parent.hash if node.parent is not None else None,
                        "children": [child.hash for child in node.children],
                    }
                    for block_hash, node in self.nodes.items()
                },
                "utxo_set": self._tip.get_utxo_set_copy().to_dict(),
                "mempool": self.mempool.to_dict(),
            }

    def __contains__(self, block_hash: str) -> bool:
        with self._lock:
            return block_hash in self.nodes

    def __repr__(self) -> str:
        return (
            f"Blockchain(height={self._tip.height}, "
            f"blocks={len(self.nodes)}, "
            f"tips={len(self.get_chain_tips())})"
        )
