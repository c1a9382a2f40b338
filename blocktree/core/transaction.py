"""
Ledger transaction data structures.

This module implements the transaction types carried by blocks:

- **TransactionOutput**: an amount paid to an ``owner`` -- the hex-encoded
  compressed public key whose signature is required to spend it.

- **TransactionInput**: a reference to a previous output (its transaction ID
  and output index) together with the owner's signature authorizing the
  spend.

- **Transaction**: a version, a list of inputs, a list of outputs and a
  locktime. The transaction ID (txid) is the double SHA-256 of the serialized
  transaction displayed in reversed byte order.

A coinbase transaction has no inputs: it creates new value and appears once
per block, held apart from the block's regular transactions.

Signing
-------
Each input signs the *signature hash* for its index: the transaction
serialized with every signature blanked, followed by the input index. The
signatures themselves are part of the serialization that produces the txid,
so signing an input changes the transaction ID.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from blocktree.crypto.hash import reversed_hash256
from blocktree.crypto.keys import sign_message
from blocktree.utils.encoding import (
    encode_bytes,
    encode_varint,
    hex_to_bytes,
    int_to_little_endian,
    int_to_signed_little_endian,
)

if TYPE_CHECKING:
    from blocktree.crypto.keys import PrivateKey


# ---------------------------------------------------------------------------
# TransactionOutput
# ---------------------------------------------------------------------------

class TransactionOutput:
    """
    A transaction output assigns an amount to an owner.

    Attributes:
        value: Amount in base units.
        owner: Hex-encoded compressed public key that may spend this output.
    """

    def __init__(self, value: int, owner: str):
        self.value = value
        self.owner = owner

    def serialize(self) -> bytes:
        """
        Serialize this output to binary format.

        Format:
            - value: 8 bytes, little-endian, two's complement
            - owner_length: varint
            - owner: UTF-8 bytes
        """
        result = int_to_signed_little_endian(self.value, 8)
        result += encode_bytes(self.owner.encode('utf-8'))
        return result

    def to_dict(self) -> dict:
        return {
            'value': self.value,
            'owner': self.owner,
        }

    def __repr__(self) -> str:
        return (
            f"TransactionOutput(value={self.value}, "
            f"owner='{self.owner[:16]}...')"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, TransactionOutput):
            return NotImplemented
        return self.value == other.value and self.owner == other.owner


# ---------------------------------------------------------------------------
# TransactionInput
# ---------------------------------------------------------------------------

class TransactionInput:
    """
    A transaction input references a previous output and carries the
    signature authorizing the spend.

    Attributes:
        previous_txid: Hex-encoded transaction ID of the output being spent.
        previous_output_index: Index of the specific output in that transaction.
        signature: Hex-encoded DER signature (empty until signed).
    """

    def __init__(
        self,
        previous_txid: str,
        previous_output_index: int,
        signature: str = "",
    ):
        self.previous_txid = previous_txid
        self.previous_output_index = previous_output_index
        self.signature = signature

    @property
    def outpoint(self) -> tuple[str, int]:
        """The ``(txid, index)`` reference of the output this input spends."""
        return (self.previous_txid, self.previous_output_index)

    def serialize(self, include_signature: bool = True) -> bytes:
        """
        Serialize this input to binary format.

        Format:
            - previous_txid: 32 bytes (reversed display order)
            - previous_output_index: 4 bytes, little-endian
            - signature_length: varint
            - signature: hex text, UTF-8 (empty when *include_signature* is False)

        Args:
            include_signature: Set to False when building a signature hash.

        Returns:
            Serialized bytes.
        """
        result = hex_to_bytes(self.previous_txid)[::-1]
        result += int_to_little_endian(self.previous_output_index, 4)

        # Raw text: a malformed signature must still serialize
        if include_signature:
            sig_bytes = self.signature.encode('utf-8')
        else:
            sig_bytes = b''
        result += encode_bytes(sig_bytes)
        return result

    def to_dict(self) -> dict:
        return {
            'previous_txid': self.previous_txid,
            'previous_output_index': self.previous_output_index,
            'signature': self.signature,
        }

    def __repr__(self) -> str:
        return (
            f"TransactionInput(txid='{self.previous_txid[:16]}...', "
            f"index={self.previous_output_index})"
        )


# ---------------------------------------------------------------------------
# Transaction
# ---------------------------------------------------------------------------

class Transaction:
    """
    A ledger transaction.

    A transaction consumes unspent outputs through its inputs and creates new
    outputs. The difference between total input value and total output value
    is left unclaimed (it is never negative for a valid transaction).

    Attributes:
        version: Transaction version number (default 1).
        inputs: List of TransactionInput objects.
        outputs: List of TransactionOutput objects.
        locktime: Free 32-bit field; coinbases store their block height here.
    """

    def __init__(
        self,
        version: int = 1,
        inputs: Optional[list] = None,
        outputs: Optional[list] = None,
        locktime: int = 0,
    ):
        self.version = version
        self.inputs = inputs if inputs is not None else []
        self.outputs = outputs if outputs is not None else []
        self.locktime = locktime
        self._txid: Optional[str] = None

    @property
    def txid(self) -> str:
        """
        The transaction ID -- a unique identifier for this transaction.

        Computed as the double SHA-256 of the serialized transaction,
        displayed in reversed byte order. Cached after first use; methods
        that change the transaction drop the cache.

        Returns:
            64-character lowercase hex string.
        """
        if self._txid is None:
            self._txid = self.calculate_txid()
        return self._txid

    def calculate_txid(self) -> str:
        """Compute the transaction ID from the full serialization."""
        return reversed_hash256(self.serialize())

    def serialize(self, include_signatures: bool = True) -> bytes:
        """
        Serialize this transaction.

        Format:
            - version: 4 bytes, little-endian
            - input_count: varint
            - inputs: serialized sequentially
            - output_count: varint
            - outputs: serialized sequentially
            - locktime: 4 bytes, little-endian

        Args:
            include_signatures: Set to False to blank every input signature.

        Returns:
            Complete serialized transaction bytes.
        """
        result = int_to_little_endian(self.version, 4)

        result += encode_varint(len(self.inputs))
        for txin in self.inputs:
            result += txin.serialize(include_signature=include_signatures)

        result += encode_varint(len(self.outputs))
        for txout in self.outputs:
            result += txout.serialize()

        result += int_to_little_endian(self.locktime, 4)
        return result

    def signature_hash(self, input_index: int) -> bytes:
        """
        Return the bytes the owner signs for input *input_index*.

        Raises:
            IndexError: If the transaction has no such input.
        """
        if not 0 <= input_index < len(self.inputs):
            raise IndexError(
                f"Input index {input_index} out of range for "
                f"{len(self.inputs)} inputs"
            )
        return (
            self.serialize(include_signatures=False)
            + int_to_little_endian(input_index, 4)
        )

    def sign_input(self, input_index: int, private_key: "PrivateKey") -> None:
        """
        Sign input *input_index* with *private_key* and store the signature.

        Invalidates the cached txid.
        """
        signature = sign_message(self.signature_hash(input_index), private_key)
        self.inputs[input_index].signature = signature.hex()
        self._txid = None

    def add_input(self, previous_txid: str, previous_output_index: int) -> None:
        """Append an unsigned input spending ``previous_txid:previous_output_index``."""
        self.inputs.append(TransactionInput(previous_txid, previous_output_index))
        self._txid = None

    def add_output(self, value: int, owner: str) -> None:
        """Append an output paying *value* to *owner*."""
        self.outputs.append(TransactionOutput(value, owner))
        self._txid = None

    def is_coinbase(self) -> bool:
        """
        Check if this is a coinbase transaction.

        A coinbase creates new value and therefore has no inputs.
        """
        return len(self.inputs) == 0

    def total_output_value(self) -> int:
        return sum(txout.value for txout in self.outputs)

    def to_dict(self) -> dict:
        """
        Convert this transaction to a JSON-serializable dictionary.

        Returns:
            Dictionary with all transaction fields including the txid.
        """
        return {
            'version': self.version,
            'txid': self.txid,
            'inputs': [txin.to_dict() for txin in self.inputs],
            'outputs': [txout.to_dict() for txout in self.outputs],
            'locktime': self.locktime,
        }

    @staticmethod
    def create_coinbase(
        block_height: int,
        owner: str,
        amount: int,
    ) -> Transaction:
        """
        Create a coinbase transaction for a block at *block_height*.

        The coinbase has no inputs and one output paying *amount* to *owner*.
        The block height goes into ``locktime``, which keeps coinbases paying
        the same owner the same amount distinct along one chain.

        Args:
            block_height: Height of the block this coinbase belongs to.
            owner: Hex-encoded public key receiving the new value.
            amount: Amount created.

        Returns:
            A new coinbase Transaction.
        """
        return Transaction(
            version=1,
            inputs=[],
            outputs=[TransactionOutput(value=amount, owner=owner)],
            locktime=block_height,
        )

    def __repr__(self) -> str:
        return (
            f"Transaction(txid='{self.txid[:16]}...', "
            f"inputs={len(self.inputs)}, outputs={len(self.outputs)})"
        )

    def __eq__(self, other) -> bool:
        if not isinstance(other, Transaction):
            return NotImplemented
        return self.txid == other.txid

    def __hash__(self) -> int:
        return hash(self.txid)
