"""
Tests for the UTXO Set
======================

Tests cover:
- Adding and removing UTXOs
- Lookups by reference and by owner
- Balance calculation
- Copy independence (each tree node owns its own set)
- Equality and dictionary rendering
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from blocktree.core.transaction import Transaction, TransactionOutput
from blocktree.core.utxo import UTXOEntry, UTXOSet


ALICE = "02" + "aa" * 32
BOB = "03" + "bb" * 32


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def utxo_set():
    """An empty UTXO set."""
    return UTXOSet()


@pytest.fixture
def populated_set():
    """A set with two outputs for Alice and one for Bob."""
    s = UTXOSet()
    s.add_utxo("11" * 32, 0, TransactionOutput(10, ALICE))
    s.add_utxo("11" * 32, 1, TransactionOutput(5, BOB))
    s.add_utxo("22" * 32, 0, TransactionOutput(7, ALICE), is_coinbase=True)
    return s


# ---------------------------------------------------------------------------
# Add / Remove Tests
# ---------------------------------------------------------------------------

class TestAddRemove:
    """Tests for adding and removing entries."""

    def test_add_and_get(self, utxo_set):
        """An added output can be looked up by its reference."""
        utxo_set.add_utxo("11" * 32, 0, TransactionOutput(10, ALICE))
        assert utxo_set.get_utxo("11" * 32, 0) == UTXOEntry(10, ALICE)
        assert utxo_set.has_utxo("11" * 32, 0)
        assert ("11" * 32, 0) in utxo_set

    def test_missing_lookup_returns_none(self, utxo_set):
        """Looking up an unknown reference gives None."""
        assert utxo_set.get_utxo("11" * 32, 0) is None
        assert not utxo_set.has_utxo("11" * 32, 0)

    def test_negative_index_lookup(self, populated_set):
        """A negative output index never matches anything."""
        assert populated_set.get_utxo("11" * 32, -1) is None

    def test_negative_index_add_rejected(self, utxo_set):
        """Adding under a negative index raises ValueError."""
        with pytest.raises(ValueError):
            utxo_set.add_utxo("11" * 32, -1, TransactionOutput(1, ALICE))

    def test_add_overwrites(self, utxo_set):
        """Adding under an existing reference replaces the entry."""
        utxo_set.add_utxo("11" * 32, 0, TransactionOutput(10, ALICE))
        utxo_set.add_utxo("11" * 32, 0, TransactionOutput(3, BOB))
        assert utxo_set.get_utxo("11" * 32, 0) == UTXOEntry(3, BOB)
        assert len(utxo_set) == 1

    def test_remove_returns_entry(self, populated_set):
        """remove_utxo returns the removed entry and shrinks the set."""
        entry = populated_set.remove_utxo("11" * 32, 1)
        assert entry == UTXOEntry(5, BOB)
        assert len(populated_set) == 2
        assert not populated_set.has_utxo("11" * 32, 1)

    def test_remove_missing_raises(self, utxo_set):
        """Removing an unknown reference raises KeyError."""
        with pytest.raises(KeyError):
            utxo_set.remove_utxo("11" * 32, 0)

    def test_add_outputs_from_coinbase(self, utxo_set):
        """add_outputs adds one entry per output, flagged as coinbase."""
        cb = Transaction.create_coinbase(block_height=1, owner=ALICE, amount=25)
        utxo_set.add_outputs(cb)
        entry = utxo_set.get_utxo(cb.txid, 0)
        assert entry.value == 25
        assert entry.is_coinbase

    def test_add_outputs_from_regular_tx(self, utxo_set):
        """Outputs of a regular transaction are not flagged as coinbase."""
        tx = Transaction(outputs=[TransactionOutput(4, ALICE), TransactionOutput(6, BOB)])
        tx.add_input("33" * 32, 0)
        utxo_set.add_outputs(tx)
        assert utxo_set.get_utxo(tx.txid, 1) == UTXOEntry(6, BOB)
        assert not utxo_set.get_utxo(tx.txid, 0).is_coinbase


# ---------------------------------------------------------------------------
# Query Tests
# ---------------------------------------------------------------------------

class TestQueries:
    """Tests for owner queries, balances and rendering."""

    def test_utxos_for_owner(self, populated_set):
        """Only the owner's outputs are returned."""
        refs = {(txid, index) for txid, index, _ in populated_set.get_utxos_for_owner(ALICE)}
        assert refs == {("11" * 32, 0), ("22" * 32, 0)}

    def test_balance(self, populated_set):
        """Balance is the sum of the owner's outputs."""
        assert populated_set.get_balance(ALICE) == 17
        assert populated_set.get_balance(BOB) == 5
        assert populated_set.get_balance("02" + "cc" * 32) == 0

    def test_get_all_utxos_is_a_copy(self, populated_set):
        """Mutating the returned dict does not touch the set."""
        populated_set.get_all_utxos().clear()
        assert len(populated_set) == 3

    def test_to_dict_keys(self, populated_set):
        """to_dict renders references as 'txid:index'."""
        d = populated_set.to_dict()
        assert f"{'11' * 32}:1" in d["utxos"]
        assert d["utxos"][f"{'22' * 32}:0"]["is_coinbase"] is True


# ---------------------------------------------------------------------------
# Copy Tests
# ---------------------------------------------------------------------------

class TestCopy:
    """Tests for copy independence."""

    def test_copy_is_equal(self, populated_set):
        """A fresh copy compares equal to the original."""
        assert populated_set.copy() == populated_set

    def test_removing_from_copy(self, populated_set):
        """Spending in a copy leaves the original intact."""
        clone = populated_set.copy()
        clone.remove_utxo("11" * 32, 0)
        assert populated_set.has_utxo("11" * 32, 0)
        assert clone != populated_set

    def test_adding_to_original(self, populated_set):
        """Adding to the original does not show up in an earlier copy."""
        clone = populated_set.copy()
        populated_set.add_utxo("33" * 32, 0, TransactionOutput(1, BOB))
        assert not clone.has_utxo("33" * 32, 0)

    def test_entries_are_not_shared(self, populated_set):
        """Entries are deep-copied, not shared between sets."""
        clone = populated_set.copy()
        clone.get_utxo("11" * 32, 0).value = 999
        assert populated_set.get_utxo("11" * 32, 0).value == 10
