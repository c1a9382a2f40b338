"""
UTXO (Unspent Transaction Output) Set management.

A UTXO set is the record of which outputs are still spendable along one
chain. Every node of the block tree owns its own UTXO set: the set at a node
equals the set at its parent, minus the outputs its transactions consumed,
plus the outputs they created (coinbase included).

This module provides:

- **UTXOEntry**: the descriptor of one unspent output -- its value, its
  owner and whether it came from a coinbase.

- **UTXOSet**: an in-memory collection of entries keyed by the output
  reference ``(txid, output_index)``. It supports lookups, adding/removing
  entries while a block is validated and deep-copying, which is how each
  branch of the tree gets an independent view.
"""

from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from blocktree.core.transaction import Transaction, TransactionOutput


# ---------------------------------------------------------------------------
# UTXOEntry
# ---------------------------------------------------------------------------

class UTXOEntry:
    """
    Descriptor for a single unspent transaction output.

    Attributes:
        value: Amount in base units.
        owner: Hex-encoded public key allowed to spend the output.
        is_coinbase: Whether this UTXO comes from a coinbase transaction.
    """

    def __init__(self, value: int, owner: str, is_coinbase: bool = False):
        self.value = value
        self.owner = owner
        self.is_coinbase = is_coinbase

    def to_dict(self) -> dict:
        return {
            'value': self.value,
            'owner': self.owner,
            'is_coinbase': self.is_coinbase,
        }

    def __repr__(self) -> str:
        return (
            f"UTXOEntry(value={self.value}, "
            f"owner={self.owner[:16]}, "
            f"coinbase={self.is_coinbase})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, UTXOEntry):
            return NotImplemented
        return (
            self.value == other.value
            and self.owner == other.owner
            and self.is_coinbase == other.is_coinbase
        )


# ---------------------------------------------------------------------------
# UTXOSet
# ---------------------------------------------------------------------------

class UTXOSet:
    """
    In-memory set of unspent transaction outputs for one chain.

    UTXOs are keyed by the output reference ``(txid, output_index)`` for
    O(1) lookup. The set has value semantics in practice: ``copy()`` returns
    an independent deep copy, and nodes of the block tree only ever hand out
    copies of the set they own.

    Attributes:
        _utxos: Internal dictionary mapping ``(txid, index)`` to UTXOEntry.
    """

    def __init__(self):
        """Initialize an empty UTXO set."""
        self._utxos: dict[tuple[str, int], UTXOEntry] = {}

    @staticmethod
    def _make_key(txid: str, index: int) -> tuple[str, int]:
        if index < 0:
            raise ValueError(f"Output index must be non-negative, got {index}")
        return (txid, index)

    def add_utxo(
        self,
        txid: str,
        index: int,
        output: "TransactionOutput",
        is_coinbase: bool = False,
    ) -> None:
        """
        Add an unspent output to the set, replacing any entry under the same
        reference.

        Args:
            txid: Transaction ID that created this output.
            index: Output index within the transaction.
            output: The TransactionOutput object.
            is_coinbase: Whether this output is from a coinbase transaction.
        """
        key = self._make_key(txid, index)
        self._utxos[key] = UTXOEntry(
            value=output.value,
            owner=output.owner,
            is_coinbase=is_coinbase,
        )

    def add_outputs(self, tx: "Transaction") -> None:
        """Add every output of *tx* to the set."""
        is_coinbase = tx.is_coinbase()
        txid = tx.txid
        for index, output in enumerate(tx.outputs):
            self.add_utxo(txid, index, output, is_coinbase=is_coinbase)

    def remove_utxo(self, txid: str, index: int) -> UTXOEntry:
        """
        Remove and return a UTXO from the set.

        Called when an input spends an existing output.

        Args:
            txid: Transaction ID of the output to remove.
            index: Output index within the transaction.

        Returns:
            The removed UTXOEntry.

        Raises:
            KeyError: If the specified UTXO does not exist in the set.
        """
        key = self._make_key(txid, index)
        if key not in self._utxos:
            raise KeyError(
                f"UTXO not found: {txid}:{index}"
            )
        return self._utxos.pop(key)

    def get_utxo(self, txid: str, index: int) -> Optional[UTXOEntry]:
        """
        Look up a UTXO without removing it.

        Returns:
            The UTXOEntry if it exists, otherwise None.
        """
        if index < 0:
            return None
        return self._utxos.get((txid, index))

    def has_utxo(self, txid: str, index: int) -> bool:
        return self.get_utxo(txid, index) is not None

    def get_utxos_for_owner(self, owner: str) -> list:
        """
        Find all UTXOs belonging to *owner*.

        Returns:
            A list of (txid, output_index, UTXOEntry) tuples.
        """
        return [
            (txid, index, entry)
            for (txid, index), entry in self._utxos.items()
            if entry.owner == owner
        ]

    def get_balance(self, owner: str) -> int:
        """Sum of the values of every UTXO owned by *owner*."""
        return sum(entry.value for _, _, entry in self.get_utxos_for_owner(owner))

    def get_all_utxos(self) -> dict:
        """
        Return a shallow copy of the whole set, keyed by ``(txid, index)``.
        """
        return dict(self._utxos)

    def size(self) -> int:
        return len(self._utxos)

    def to_dict(self) -> dict:
        """
        Convert the UTXO set to a JSON-serializable dictionary.

        Keys are rendered as ``"txid:index"``.
        """
        return {
            'utxos': {
                f"{txid}:{index}": entry.to_dict()
                for (txid, index), entry in self._utxos.items()
            }
        }

    def copy(self) -> UTXOSet:
        """
        Create a deep copy of this UTXO set.

        Each block node owns one set and every fork validates against a copy
        of its parent's, so mutating a copy must never reach the original.

        Returns:
            A new UTXOSet with independent copies of all entries.
        """
        new_set = UTXOSet()
        new_set._utxos = copy.deepcopy(self._utxos)
        return new_set

    def __contains__(self, outpoint) -> bool:
        txid, index = outpoint
        return self.has_utxo(txid, index)

    def __eq__(self, other) -> bool:
        if not isinstance(other, UTXOSet):
            return NotImplemented
        return self._utxos == other._utxos

    def __repr__(self) -> str:
        return f"UTXOSet(size={self.size()})"

    def __len__(self) -> int:
        return self.size()
