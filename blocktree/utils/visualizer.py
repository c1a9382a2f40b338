"""
Block Tree Visualizer
=====================

Rich renderings of the block tree for inspection and debugging. The
visualizer only reads from the Blockchain; it never changes any state.

Features:

- **Fork tree**: the whole tree from genesis, marking the tip and the nodes
  on the best chain, so forks and pruned-away branches are easy to see.

- **UTXO table**: the tip's unspent outputs, optionally for one owner.

- **Mempool table**: pending transactions waiting for a block.

- **Chain info**: height, node count, branch count, UTXO count, mempool size.

The ``build_*`` methods return rich renderables so callers (and tests) can
embed or inspect them; the ``print_*`` methods send them to the console.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.tree import Tree

if TYPE_CHECKING:
    from blocktree.core.blockchain import Blockchain, BlockNode


def _truncate_hash(h: str, length: int = 16) -> str:
    """Shorten a hex hash for display."""
    if len(h) <= length:
        return h
    return h[:length] + "..."


class BlockchainVisualizer:
    """
    Read-only rich presentation of a Blockchain.

    Attributes:
        blockchain: The tree being displayed.
        console: A ``rich.console.Console`` used for all output.
    """

    def __init__(self, blockchain: "Blockchain", console: Console | None = None) -> None:
        self.blockchain = blockchain
        self.console = console if console is not None else Console()

    # ------------------------------------------------------------------
    # Fork tree
    # ------------------------------------------------------------------

    def _label(self, node: "BlockNode", best_chain: set[str], tip_hash: str) -> str:
        marker = ""
        if node.hash == tip_hash:
            marker = " [bold green](tip)[/bold green]"
        elif node.hash in best_chain:
            marker = " [green]*[/green]"
        return (
            f"[bold]H{node.height}[/bold] {_truncate_hash(node.hash)} "
            f"[dim]({len(node.block.transactions)} txs)[/dim]{marker}"
        )

    def build_fork_tree(self) -> Tree:
        """
        Build a ``rich.tree.Tree`` of every retained node, rooted at genesis.

        Children are listed in admission order. The nodes come from one
        ``walk_tree()`` snapshot, so blocks admitted while the tree is being
        built do not show up half-attached.
        """
        chain = self.blockchain
        tip = chain.get_tip_node()
        best_chain = {blk.hash for blk in chain.get_chain(tip.hash)}
        genesis, *rest = chain.walk_tree()

        tree = Tree(self._label(genesis, best_chain, tip.hash), guide_style="blue")
        branches = {genesis.hash: tree}
        for node in rest:
            parent_branch = branches[node.parent.hash]
            branches[node.hash] = parent_branch.add(self._label(node, best_chain, tip.hash))
        return tree

    def print_fork_tree(self) -> None:
        self.console.print(Panel(self.build_fork_tree(), title="Block Tree", border_style="blue"))

    # ------------------------------------------------------------------
    # UTXO set
    # ------------------------------------------------------------------

    def build_utxo_table(self, owner: str | None = None) -> Table:
        """
        Tabulate the tip's UTXO set.

        Args:
            owner: If given, only outputs owned by this key are listed.
        """
        utxo_set = self.blockchain.get_tip_utxo_set()
        if owner is not None:
            rows = utxo_set.get_utxos_for_owner(owner)
        else:
            rows = [(txid, index, entry) for (txid, index), entry in utxo_set.get_all_utxos().items()]

        table = Table(
            title="Tip UTXO Set",
            show_header=True,
            header_style="bold green",
            border_style="green",
        )
        table.add_column("TXID", style="green")
        table.add_column("Index", justify="right")
        table.add_column("Owner")
        table.add_column("Value", justify="right", style="cyan")
        table.add_column("Coinbase", justify="center")

        for txid, index, entry in sorted(rows, key=lambda row: (row[0], row[1])):
            table.add_row(
                _truncate_hash(txid),
                str(index),
                _truncate_hash(entry.owner),
                f"{entry.value:,}",
                "yes" if entry.is_coinbase else "no",
            )
        return table

    def print_utxo_summary(self, owner: str | None = None) -> None:
        self.console.print(self.build_utxo_table(owner))

    # ------------------------------------------------------------------
    # Mempool
    # ------------------------------------------------------------------

    def build_mempool_table(self) -> Table:
        table = Table(
            title="Mempool",
            show_header=True,
            header_style="bold magenta",
            border_style="magenta",
        )
        table.add_column("TXID", style="magenta")
        table.add_column("Inputs", justify="right")
        table.add_column("Outputs", justify="right")
        table.add_column("Output value", justify="right", style="cyan")

        for tx in self.blockchain.get_transaction_pool().get_transactions():
            table.add_row(
                _truncate_hash(tx.txid),
                str(len(tx.inputs)),
                str(len(tx.outputs)),
                f"{tx.total_output_value():,}",
            )
        return table

    def print_mempool(self) -> None:
        self.console.print(self.build_mempool_table())

    # ------------------------------------------------------------------
    # Summary
    # ------------------------------------------------------------------

    def chain_info(self) -> dict:
        """Headline numbers for the tree."""
        chain = self.blockchain
        tip = chain.get_tip_node()
        return {
            "height": tip.height,
            "tip": tip.hash,
            "blocks": chain.block_count,
            "branches": len(chain.get_chain_tips()),
            "utxos": len(chain.get_tip_utxo_set()),
            "mempool": chain.get_transaction_pool().size,
            "cut_off_age": chain.cut_off_age,
        }

    def print_chain_info(self) -> None:
        info = self.chain_info()
        body = (
            f"[bold]Height:[/bold]       {info['height']}\n"
            f"[bold]Tip:[/bold]          {_truncate_hash(info['tip'], 24)}\n"
            f"[bold]Blocks:[/bold]       {info['blocks']}\n"
            f"[bold]Branches:[/bold]     {info['branches']}\n"
            f"[bold]UTXOs:[/bold]        {info['utxos']}\n"
            f"[bold]Mempool:[/bold]      {info['mempool']}\n"
            f"[bold]Cut-off age:[/bold]  {info['cut_off_age']}"
        )
        self.console.print(Panel(body, title="Block Tree Info", border_style="cyan"))
