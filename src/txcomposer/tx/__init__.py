"""
Transaction signing module.

Handles key material, key resolution and signature collection.
"""

from txcomposer.tx.keys import KeyPair, generate_key, private_to_public, sign
from txcomposer.tx.signer import SigningContext, TransactionSigner, static_key_provider

__all__ = [
    "KeyPair",
    "SigningContext",
    "TransactionSigner",
    "generate_key",
    "private_to_public",
    "sign",
    "static_key_provider",
]
