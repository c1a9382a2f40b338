# Cryptographic functions and key management

from .hash import sha256, double_sha256, reversed_hash256
from .keys import PrivateKey, PublicKey, KeyPair, sign_message, verify_signature

__all__ = [
    # Hash functions
    'sha256',
    'double_sha256',
    'reversed_hash256',
    # Key management
    'PrivateKey',
    'PublicKey',
    'KeyPair',
    'sign_message',
    'verify_signature',
]
