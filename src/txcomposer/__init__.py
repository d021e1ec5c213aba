"""
txcomposer

Client library for composing, signing and pushing chain transactions.
Messages are accumulated into one atomic transaction, the chain is asked
which keys must sign, and signatures come from pluggable key and sign
providers before the transaction is pushed or returned.
"""

__version__ = "0.1.0"

from txcomposer.core.composer import ComposeOptions, ComposeResult, Composer, localnet, testnet
from txcomposer.core.message import Authorization, Message
from txcomposer.core.transaction import Transaction, TransactionStatus
from txcomposer.errors import (
    BroadcastError,
    ComposerError,
    ConcurrentCompositionError,
    MessageValidationError,
    NoSigningKeysError,
    ResolverError,
    RollbackError,
    SigningError,
    UnknownActionError,
    UnknownContractError,
)

__all__ = [
    "Authorization",
    "BroadcastError",
    "ComposeOptions",
    "ComposeResult",
    "Composer",
    "ComposerError",
    "ConcurrentCompositionError",
    "Message",
    "MessageValidationError",
    "NoSigningKeysError",
    "ResolverError",
    "RollbackError",
    "SigningError",
    "Transaction",
    "TransactionStatus",
    "UnknownActionError",
    "UnknownContractError",
    "localnet",
    "testnet",
]
