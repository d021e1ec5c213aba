"""
Core composer components.

This module contains the message and transaction models, contract schemas,
the composer and the contract proxy.
"""

from txcomposer.core.message import Authorization, Message
from txcomposer.core.transaction import Transaction, TransactionStatus
from txcomposer.core.schema import ActionDefinition, ContractSchema, NATIVE_SCHEMA
from txcomposer.core.composer import (
    ComposeOptions,
    ComposeResult,
    Composer,
    TransactionHandle,
    localnet,
    testnet,
)
from txcomposer.core.contract import ContractProxy

__all__ = [
    "ActionDefinition",
    "Authorization",
    "ComposeOptions",
    "ComposeResult",
    "Composer",
    "ContractProxy",
    "ContractSchema",
    "Message",
    "NATIVE_SCHEMA",
    "Transaction",
    "TransactionHandle",
    "TransactionStatus",
    "localnet",
    "testnet",
]
