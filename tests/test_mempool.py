"""
Tests for the Mempool
=====================

Tests cover:
- Unconditional insertion and overwrite
- Removal, including removal of absent transactions
- Ordering and limits
- Clearing confirmed transactions
- Locking under concurrent writers
"""

import os
import sys
import threading

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from blocktree.core.mempool import Mempool
from blocktree.core.transaction import Transaction, TransactionOutput


OWNER = "02" + "aa" * 32


def make_tx(n):
    """An unsigned transaction distinguished by *n*."""
    tx = Transaction(outputs=[TransactionOutput(n, OWNER)])
    tx.add_input("11" * 32, n)
    return tx


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def mempool():
    """An empty mempool."""
    return Mempool()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestMempool:
    """Tests for the Mempool class."""

    def test_starts_empty(self, mempool):
        """A new mempool holds nothing."""
        assert mempool.size == 0
        assert mempool.get_transactions() == []

    def test_add_does_not_validate(self, mempool):
        """Unsigned transactions spending unknown outputs are still stored."""
        tx = make_tx(1)
        mempool.add_transaction(tx)
        assert tx.txid in mempool
        assert mempool.get_transaction(tx.txid) is tx

    def test_add_overwrites_same_txid(self, mempool):
        """Adding a transaction with a stored txid replaces the stored copy."""
        first = make_tx(1)
        second = make_tx(1)
        mempool.add_transaction(first)
        mempool.add_transaction(second)
        assert len(mempool) == 1
        assert mempool.get_transaction(first.txid) is second

    def test_add_none_raises(self, mempool):
        """None is not a transaction."""
        with pytest.raises(TypeError):
            mempool.add_transaction(None)

    def test_remove(self, mempool):
        """remove_transaction returns the removed transaction."""
        tx = make_tx(1)
        mempool.add_transaction(tx)
        assert mempool.remove_transaction(tx.txid) is tx
        assert tx.txid not in mempool

    def test_remove_absent_is_noop(self, mempool):
        """Removing an unknown txid returns None and changes nothing."""
        mempool.add_transaction(make_tx(1))
        assert mempool.remove_transaction("ff" * 32) is None
        assert mempool.size == 1

    def test_submission_order_and_limit(self, mempool):
        """Transactions come back in submission order, optionally limited."""
        txs = [make_tx(n) for n in range(3)]
        for tx in txs:
            mempool.add_transaction(tx)
        assert mempool.get_transactions() == txs
        assert mempool.get_transactions(limit=2) == txs[:2]
        assert list(mempool) == txs

    def test_clear_confirmed(self, mempool):
        """clear_confirmed removes what is present and counts it."""
        txs = [make_tx(n) for n in range(3)]
        for tx in txs[:2]:
            mempool.add_transaction(tx)
        assert mempool.clear_confirmed(txs) == 2
        assert mempool.size == 0

    def test_to_dict(self, mempool):
        """to_dict lists every pending transaction by txid."""
        tx = make_tx(1)
        mempool.add_transaction(tx)
        assert list(mempool.to_dict()["transactions"]) == [tx.txid]

    def test_uses_given_lock(self):
        """A pool built with a lock holds that lock while it works."""
        lock = threading.RLock()
        pool = Mempool(lock=lock)
        tx = make_tx(1)

        with lock:
            writer = threading.Thread(target=pool.add_transaction, args=(tx,))
            writer.start()
            writer.join(timeout=0.2)
            assert writer.is_alive()
        writer.join()
        assert tx.txid in pool

    def test_concurrent_writers(self, mempool):
        """Adds and removes from several threads leave a consistent pool."""
        txs = [make_tx(n) for n in range(200)]

        def add(chunk):
            for tx in chunk:
                mempool.add_transaction(tx)

        threads = [threading.Thread(target=add, args=(txs[i::4],)) for i in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert mempool.size == 200

        removers = [
            threading.Thread(target=mempool.clear_confirmed, args=(txs[i::2],))
            for i in range(2)
        ]
        for t in removers:
            t.start()
        for t in removers:
            t.join()
        assert mempool.size == 0
