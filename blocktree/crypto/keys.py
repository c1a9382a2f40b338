"""
ECDSA Key Management and Signing
================================

Outputs in the ledger are owned by secp256k1 public keys. Spending an output
means producing an ECDSA signature, with the matching private key, over the
spending transaction's signature hash for that input.

- **Private keys**: 256-bit secrets. Whoever holds one can spend every output
  owned by the corresponding public key.

- **Public keys**: points on secp256k1 derived from the private key. The
  compressed hex encoding of a public key is what an output stores as its
  ``owner``.

- **Signatures**: DER-encoded ECDSA signatures over the double-SHA-256 of the
  message.

The curve is secp256k1, y^2 = x^3 + 7 over a 256-bit prime field.
"""

import hashlib

import ecdsa
from ecdsa import SECP256k1, SigningKey, VerifyingKey
from ecdsa.der import UnexpectedDER
from ecdsa.errors import MalformedPointError
from ecdsa.util import sigencode_der, sigdecode_der

from .hash import double_sha256


# =============================================================================
# PublicKey Class
# =============================================================================

class PublicKey:
    """
    A secp256k1 public key.

    Two encodings are understood:
    - **Uncompressed** (65 bytes): 0x04, then x and y (32 bytes each)
    - **Compressed** (33 bytes): 0x02 for even y or 0x03 for odd y, then x

    Outputs name their owner by the compressed form in hex (see ``to_hex``).
    """

    def __init__(self, key: VerifyingKey):
        self._key = key

    def verify(self, message: bytes, signature: bytes) -> bool:
        """
        Check a DER-encoded signature over *message*.

        Malformed DER counts as a bad signature rather than an error.
        """
        message_hash = double_sha256(message)
        try:
            return self._key.verify_digest(signature, message_hash, sigdecode=sigdecode_der)
        except (ecdsa.BadSignatureError, ecdsa.BadDigestError, UnexpectedDER):
            return False

    def to_bytes(self, compressed: bool = True) -> bytes:
        return self._key.to_string("compressed" if compressed else "uncompressed")

    def to_hex(self, compressed: bool = True) -> str:
        """Hex encoding; the compressed form is an output's ``owner``."""
        return self.to_bytes(compressed).hex()

    @classmethod
    def from_bytes(cls, data: bytes) -> 'PublicKey':
        """
        Parse a compressed or uncompressed encoding.

        ecdsa recovers y for compressed keys from y^2 = x^3 + 7 (mod p).

        Raises:
            ValueError: If *data* is not a valid encoding of a curve point.
        """
        if not (len(data) == 65 and data[0] == 0x04) and not (
            len(data) == 33 and data[0] in (0x02, 0x03)
        ):
            raise ValueError(
                f"Invalid public key encoding: {len(data)} bytes"
                + (f" with prefix 0x{data[0]:02x}" if data else "")
            )
        try:
            key = VerifyingKey.from_string(data, curve=SECP256k1)
        except MalformedPointError as e:
            raise ValueError(f"Public key is not a point on secp256k1: {e}") from e
        return cls(key)

    @classmethod
    def from_hex(cls, hex_string: str) -> 'PublicKey':
        """Parse a public key from its hex encoding (an output's ``owner``)."""
        return cls.from_bytes(bytes.fromhex(hex_string))

    def __repr__(self) -> str:
        return f"PublicKey({self.to_hex()})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PublicKey):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())


# =============================================================================
# PrivateKey Class
# =============================================================================

class PrivateKey:
    """
    A secp256k1 private key: a 256-bit scalar in [1, n-1].

    Signs the signature hashes of transaction inputs that spend outputs owned
    by the corresponding public key.
    """

    def __init__(self, key_bytes: bytes = None):
        """
        Create a PrivateKey from raw bytes or generate a new random one.

        Args:
            key_bytes: Optional 32-byte private key. If None, a new random
                      key is generated.

        Raises:
            ValueError: If key_bytes is provided but not exactly 32 bytes.
        """
        if key_bytes is not None:
            if len(key_bytes) != 32:
                raise ValueError(
                    f"Private key must be exactly 32 bytes, got {len(key_bytes)}"
                )
            self._key = SigningKey.from_string(key_bytes, curve=SECP256k1)
        else:
            self._key = SigningKey.generate(curve=SECP256k1)
        self._public_key = None

    @property
    def public_key(self) -> PublicKey:
        """
        The public key Q = d * G for this private key (cached).

        Returns:
            The PublicKey corresponding to this private key.
        """
        if self._public_key is None:
            self._public_key = PublicKey(self._key.get_verifying_key())
        return self._public_key

    def sign(self, message: bytes) -> bytes:
        """
        Sign a message using ECDSA with this private key.

        The double-SHA-256 of the message is signed and the signature is
        returned DER-encoded. Signing is deterministic (RFC 6979), so the
        same key and message always give the same signature and therefore
        the same transaction ID.

        Args:
            message: The raw message bytes to sign.

        Returns:
            The DER-encoded ECDSA signature bytes.
        """
        message_hash = double_sha256(message)
        return self._key.sign_digest_deterministic(
            message_hash, hashfunc=hashlib.sha256, sigencode=sigencode_der,
        )

    def to_bytes(self) -> bytes:
        """Return the raw 32-byte private key."""
        return self._key.to_string()

    def to_hex(self) -> str:
        """Return the private key as a lowercase hex string."""
        return self.to_bytes().hex()

    @classmethod
    def from_hex(cls, hex_string: str) -> 'PrivateKey':
        """Parse a 64-character hex key; ValueError if malformed or the wrong length."""
        return cls(bytes.fromhex(hex_string))

    @classmethod
    def generate(cls) -> 'PrivateKey':
        """Generate a new random private key."""
        return cls()

    def __repr__(self) -> str:
        # Partial fingerprint only
        hex_str = self.to_hex()
        return f"PrivateKey({hex_str[:8]}...{hex_str[-8:]})"

    def __eq__(self, other) -> bool:
        if not isinstance(other, PrivateKey):
            return NotImplemented
        return self.to_bytes() == other.to_bytes()

    def __hash__(self) -> int:
        return hash(self.to_bytes())


# =============================================================================
# KeyPair Class
# =============================================================================

class KeyPair:
    """
    A matched private key, public key and the owner string derived from it.

    The ``owner`` is what outputs paying this key pair carry; the private key
    signs the inputs that spend them.
    """

    def __init__(self, private_key: PrivateKey, public_key: PublicKey):
        self.private_key = private_key
        self.public_key = public_key
        self.owner = public_key.to_hex(compressed=True)

    @classmethod
    def generate(cls) -> 'KeyPair':
        """Generate a new random key pair."""
        private_key = PrivateKey.generate()
        return cls(private_key, private_key.public_key)

    def __repr__(self) -> str:
        return f"KeyPair(owner={self.owner[:16]}...)"


# =============================================================================
# Signature helpers
# =============================================================================

def sign_message(message: bytes, private_key: PrivateKey) -> bytes:
    """
    Sign a transaction input's signature hash.

    Args:
        message: The signature hash bytes (see ``Transaction.signature_hash``).
        private_key: The PrivateKey to sign with.

    Returns:
        The DER-encoded ECDSA signature bytes.
    """
    return private_key.sign(message)


def verify_signature(owner: str, message: bytes, signature: bytes) -> bool:
    """
    Check that *signature* over *message* was made by *owner*.

    Args:
        owner: Hex-encoded public key, as stored on an output.
        message: The signed bytes.
        signature: The DER-encoded ECDSA signature.

    Returns:
        True if the signature is valid. A malformed owner or signature
        counts as invalid.
    """
    try:
        public_key = PublicKey.from_hex(owner)
    except ValueError:
        return False
    return public_key.verify(message, signature)
