"""
Pending-Transaction Pool (Mempool)
==================================

The mempool is the holding area for transactions that have been submitted
but are not yet part of any accepted block. Block producers read it to pick
transactions for the next block; the block tree removes transactions from it
once a block that contains them is accepted.

Nothing is validated on the way in. Whether a transaction can actually be
spent is decided only when a block carrying it is admitted, against the UTXO
set of that block's parent. Submitting a transaction with a txid already in
the pool replaces the stored copy, and removing a transaction that is not
there is a no-op: a transaction chained by one block may already have been
removed by another.

Every method holds the pool's re-entrant lock. A pool owned by a Blockchain
shares the tree's lock, so a producer working through
``get_transaction_pool()`` never interleaves with a block admission.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Iterable

if TYPE_CHECKING:
    from blocktree.core.transaction import Transaction

logger = logging.getLogger(__name__)


class Mempool:
    """
    Transaction memory pool -- a staging area for unchained transactions.

    Attributes:
        transactions: Mapping from txid (hex string) to Transaction objects,
            in insertion order.
    """

    def __init__(self, lock: "threading.RLock | None" = None) -> None:
        """
        Initialize an empty mempool.

        Args:
            lock: Re-entrant lock guarding the pool. A fresh one is created
                when omitted; a Blockchain passes its own.
        """
        self._lock = lock if lock is not None else threading.RLock()
        self.transactions: dict[str, Transaction] = {}

    def add_transaction(self, tx: "Transaction") -> None:
        """
        Insert *tx*, overwriting any transaction stored under the same txid.

        Raises:
            TypeError: If *tx* is None.
        """
        if tx is None:
            raise TypeError("Cannot add None to the mempool")
        txid = tx.txid
        with self._lock:
            if txid in self.transactions:
                logger.debug("Replacing transaction %s in mempool", txid[:16])
            self.transactions[txid] = tx
            logger.debug("Added transaction %s to mempool (size=%d)", txid[:16], self.size)

    def remove_transaction(self, txid: str) -> "Transaction | None":
        """
        Remove a transaction from the mempool by its txid.

        Returns:
            The removed Transaction object, or None if it was not present.
        """
        with self._lock:
            tx = self.transactions.pop(txid, None)
        if tx is not None:
            logger.debug("Removed transaction %s from mempool", txid[:16])
        return tx

    def get_transactions(self, limit: int | None = None) -> list["Transaction"]:
        """
        Retrieve pending transactions in submission order.

        Args:
            limit: Maximum number of transactions to return. If None, all
                   transactions in the mempool are returned.
        """
        with self._lock:
            txs = list(self.transactions.values())
        if limit is not None:
            txs = txs[:limit]
        return txs

    def get_transaction(self, txid: str) -> "Transaction | None":
        with self._lock:
            return self.transactions.get(txid)

    def clear_confirmed(self, transactions: Iterable["Transaction"]) -> int:
        """
        Remove every transaction in *transactions* from the pool.

        Called once a block containing them has been accepted.

        Returns:
            The number of transactions actually removed.
        """
        removed_count = 0
        with self._lock:
            for tx in transactions:
                if self.remove_transaction(tx.txid) is not None:
                    removed_count += 1
        if removed_count:
            logger.info("Cleared %d confirmed transactions from mempool", removed_count)
        return removed_count

    @property
    def size(self) -> int:
        """Return the number of transactions currently in the mempool."""
        with self._lock:
            return len(self.transactions)

    def to_dict(self) -> dict:
        with self._lock:
            return {
                "transactions": {txid: tx.to_dict() for txid, tx in self.transactions.items()},
            }

    def __contains__(self, txid: str) -> bool:
        with self._lock:
            return txid in self.transactions

    def __len__(self) -> int:
        return self.size

    def __iter__(self):
        return iter(self.get_transactions())

    def __repr__(self) -> str:
        return f"Mempool(size={self.size})"
