"""
Transaction Validation
======================

This module decides which transactions may be applied to a UTXO set. The
block tree hands each candidate block's regular transactions to a validator
together with a copy of the parent's UTXO set, and accepts the block only if
every transaction is accepted.

A transaction is valid against a UTXO set when:

- It has at least one input (only coinbases create value from nothing, and
  those are never validated here).
- Every input references an output that is present, i.e. unspent, in the set.
- Every input carries a valid ECDSA signature by the owner of the output it
  consumes.
- No output is claimed twice by the same transaction.
- No output value is negative.
- The sum of consumed values is at least the sum of produced values
  (conservation of value).

Batch semantics
---------------
``TxHandler.validate`` returns the largest subset of a batch that is
mutually consistent. Each accepted transaction is applied to a working copy
of the set before the next one is checked, so two transactions spending the
same output cannot both be accepted, and a transaction spending an output
created earlier in the same batch becomes valid once its parent is accepted,
whatever their order in the batch.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Protocol, Sequence

from blocktree.crypto.keys import verify_signature

if TYPE_CHECKING:
    from blocktree.core.transaction import Transaction
    from blocktree.core.utxo import UTXOSet

logger = logging.getLogger(__name__)


class ValidationError(Exception):
    """
    Raised when a block or transaction breaks a ledger rule.

    The message names the rule that was violated.
    """
    pass


class BlockRejected(ValidationError):
    """
    Raised inside the block tree when a candidate block is not admitted.

    ``reason`` is a short machine-friendly tag (``"no-parent"``,
    ``"unknown-parent"``, ``"outside-cut-off"``, ``"invalid-transactions"``,
    ``"no-coinbase"``, ``"bad-coinbase"``, ``"duplicate"``, ``"malformed"``).
    """

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason


class TransactionValidator(Protocol):
    """The contract the block tree needs from a validator."""

    def validate(
        self,
        utxo_set: "UTXOSet",
        transactions: Sequence["Transaction"],
    ) -> tuple[list["Transaction"], "UTXOSet"]:
        ...


# ---------------------------------------------------------------------------
# Individual transaction validation
# ---------------------------------------------------------------------------

def check_transaction(tx: "Transaction", utxo_set: "UTXOSet") -> bool:
    """
    Validate a single non-coinbase transaction against *utxo_set*.

    Args:
        tx: The transaction to validate.
        utxo_set: The UTXO set to validate against. Not modified.

    Returns:
        True if the transaction is valid.

    Raises:
        ValidationError: If the transaction violates any rule.
    """
    if len(tx.inputs) == 0:
        raise ValidationError("Transaction has no inputs")

    total_input_value = 0
    claimed: set[tuple[str, int]] = set()
    for i, inp in enumerate(tx.inputs):
        outpoint = inp.outpoint
        if outpoint in claimed:
            raise ValidationError(
                f"Input {i} claims {inp.previous_txid[:16]}:{inp.previous_output_index} "
                f"twice in the same transaction"
            )
        claimed.add(outpoint)

        utxo = utxo_set.get_utxo(inp.previous_txid, inp.previous_output_index)
        if utxo is None:
            raise ValidationError(
                f"Input {i} references missing or spent UTXO: "
                f"{inp.previous_txid[:16]}:{inp.previous_output_index}"
            )

        if not inp.signature:
            raise ValidationError(f"Input {i} is not signed")
        try:
            signature = bytes.fromhex(inp.signature)
        except ValueError:
            raise ValidationError(f"Input {i} signature is not valid hex")
        if not verify_signature(utxo.owner, tx.signature_hash(i), signature):
            raise ValidationError(f"Invalid signature for input {i}")

        total_input_value += utxo.value

    for i, out in enumerate(tx.outputs):
        if out.value < 0:
            raise ValidationError(f"Output {i} has negative value: {out.value}")

    total_output_value = tx.total_output_value()
    if total_output_value > total_input_value:
        raise ValidationError(
            f"Output value ({total_output_value}) exceeds input value ({total_input_value})"
        )

    return True


def apply_transaction(tx: "Transaction", utxo_set: "UTXOSet") -> None:
    """
    Spend *tx*'s inputs and add its outputs to *utxo_set* in place.

    Assumes *tx* has already passed ``check_transaction`` against this set.
    """
    for inp in tx.inputs:
        utxo_set.remove_utxo(inp.previous_txid, inp.previous_output_index)
    utxo_set.add_outputs(tx)


# ---------------------------------------------------------------------------
# Batch validation
# ---------------------------------------------------------------------------

class TxHandler:
    """
    Default transaction validator used by the block tree.

    Stateless: every call works on its own copy of the UTXO set it is given.
    """

    def is_valid_tx(self, tx: "Transaction", utxo_set: "UTXOSet") -> bool:
        """Return True if *tx* passes ``check_transaction`` against *utxo_set*."""
        try:
            return check_transaction(tx, utxo_set)
        except ValidationError as e:
            logger.debug("Transaction %s invalid: %s", tx.txid[:16], e)
            return False

    def validate(
        self,
        utxo_set: "UTXOSet",
        transactions: Sequence["Transaction"],
    ) -> tuple[list["Transaction"], "UTXOSet"]:
        """
        Accept the maximal mutually consistent subset of *transactions*.

        Passes over the not-yet-accepted transactions in list order,
        accepting and applying every valid one, until a pass accepts
        nothing.

        Args:
            utxo_set: The UTXO set the batch spends from. Not modified.
            transactions: Candidate transactions.

        Returns:
            ``(accepted, resulting_utxo_set)`` where *accepted* is in
            acceptance order and *resulting_utxo_set* is *utxo_set* with
            exactly the accepted transactions applied.
        """
        working_utxo = utxo_set.copy()
        pending = list(transactions)
        accepted: list[Transaction] = []

        progress = True
        while pending and progress:
            progress = False
            remaining = []
            for tx in pending:
                if self.is_valid_tx(tx, working_utxo):
                    apply_transaction(tx, working_utxo)
                    accepted.append(tx)
                    progress = True
                else:
                    remaining.append(tx)
            pending = remaining

        if pending:
            logger.debug(
                "Validator accepted %d of %d transactions",
                len(accepted), len(accepted) + len(pending),
            )
        return accepted, working_utxo
