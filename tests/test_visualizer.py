"""
Tests for the Block Tree Visualizer
===================================

Tests cover:
- Fork tree shape and tip marking
- UTXO and mempool tables
- Chain summary numbers
- Printing to a rich console
"""

import io
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from rich.console import Console

from blocktree.core.block import Block
from blocktree.core.blockchain import Blockchain
from blocktree.core.genesis import create_genesis_block
from blocktree.core.transaction import Transaction
from blocktree.crypto.keys import KeyPair
from blocktree.utils.visualizer import BlockchainVisualizer


def child_of(parent, height, owner, timestamp=1700000000):
    coinbase = Transaction.create_coinbase(block_height=height, owner=owner, amount=25)
    return Block.create(parent.hash, coinbase, timestamp=timestamp)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def alice():
    return KeyPair.generate()


@pytest.fixture
def bob():
    return KeyPair.generate()


@pytest.fixture
def forked_chain(alice, bob):
    """Genesis with two children; Alice's branch is one block taller."""
    chain = Blockchain(create_genesis_block(alice.owner, 25))
    genesis = chain.get_genesis_block()
    a2 = child_of(genesis, 2, alice.owner)
    b2 = child_of(genesis, 2, bob.owner)
    a3 = child_of(a2, 3, alice.owner)
    for block in (a2, b2, a3):
        assert chain.add_block(block)
    return chain


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def visualizer(forked_chain, output):
    console = Console(file=output, width=160, color_system=None)
    return BlockchainVisualizer(forked_chain, console=console)


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestForkTree:
    """Tests for the fork tree rendering."""

    def test_root_is_genesis(self, visualizer):
        """The tree is rooted at the height-1 genesis block."""
        tree = visualizer.build_fork_tree()
        assert "H1" in str(tree.label)
        assert len(tree.children) == 2

    def test_tip_marked(self, visualizer, forked_chain):
        """Exactly the tip node carries the tip marker."""
        tree = visualizer.build_fork_tree()
        labels = []
        stack = [tree]
        while stack:
            node = stack.pop()
            labels.append(str(node.label))
            stack.extend(node.children)
        assert len(labels) == forked_chain.block_count
        tip_labels = [label for label in labels if "(tip)" in label]
        assert len(tip_labels) == 1
        assert "H3" in tip_labels[0]

    def test_branches_nest_under_parents(self, visualizer):
        """Each branch hangs off its own parent, in admission order."""
        tree = visualizer.build_fork_tree()
        alice_branch, bob_branch = tree.children
        assert "H2" in str(alice_branch.label)
        assert len(alice_branch.children) == 1
        assert "H3" in str(alice_branch.children[0].label)
        assert bob_branch.children == []

    def test_print_fork_tree(self, visualizer, output):
        """Printing writes a titled panel to the console."""
        visualizer.print_fork_tree()
        assert "Block Tree" in output.getvalue()


class TestTables:
    """Tests for the UTXO and mempool tables."""

    def test_utxo_table_all(self, visualizer, forked_chain):
        """One row per UTXO at the tip."""
        table = visualizer.build_utxo_table()
        assert table.row_count == len(forked_chain.get_tip_utxo_set())
        assert [col.header for col in table.columns] == ["TXID", "Index", "Owner", "Value", "Coinbase"]

    def test_utxo_table_for_owner(self, visualizer, bob):
        """Filtering by owner only lists that owner's outputs."""
        # Bob's coinbase is on the side branch, not at the tip
        assert visualizer.build_utxo_table(owner=bob.owner).row_count == 0

    def test_mempool_table(self, visualizer, forked_chain, bob):
        """Pending transactions are listed."""
        tx = Transaction()
        tx.add_input("ab" * 32, 0)
        tx.add_output(1, bob.owner)
        forked_chain.add_transaction(tx)
        assert visualizer.build_mempool_table().row_count == 1

    def test_print_mempool(self, visualizer, output):
        visualizer.print_mempool()
        assert "Mempool" in output.getvalue()


class TestChainInfo:
    """Tests for the summary numbers."""

    def test_chain_info(self, visualizer, forked_chain):
        """chain_info reports height, counts and the cut-off age."""
        info = visualizer.chain_info()
        assert info["height"] == 3
        assert info["tip"] == forked_chain.get_chain_tip().hash
        assert info["blocks"] == 4
        assert info["branches"] == 2
        assert info["utxos"] == 3
        assert info["mempool"] == 0
        assert info["cut_off_age"] == 10

    def test_print_chain_info(self, visualizer, output):
        visualizer.print_chain_info()
        text = output.getvalue()
        assert "Block Tree Info" in text
        assert "Height:" in text
