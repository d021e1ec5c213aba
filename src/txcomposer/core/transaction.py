"""
Transaction model.

A transaction groups one or more messages that are signed and applied atomically.
"""

import hashlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Optional

from txcomposer.core.message import Message, canonical_json
from txcomposer.errors import MessageValidationError


class TransactionStatus(str, Enum):
    """Lifecycle of a transaction inside the composer."""
    COMPOSING = "composing"       # Builder is appending messages
    ROLLED_BACK = "rolled_back"   # Builder failed, messages discarded
    SIGNING = "signing"           # Resolving keys and collecting signatures
    COMMITTED = "committed"       # Signed (or signing skipped), ready or pushed
    FAILED = "failed"             # Signing or broadcast failed


def normalize_scope(accounts: Iterable[str]) -> List[str]:
    """De-duplicate and sort account names so the scope hashes deterministically."""
    return sorted(set(accounts))


@dataclass
class Transaction:
    """
    A draft or signed transaction.

    Attributes:
        scope: Sorted, unique accounts touched by the messages
        messages: Messages in the order they were appended
        ref_block_num: Low 16 bits of the reference block number
        ref_block_prefix: 32 bits of the reference block id
        expiration: UTC expiration time (ISO 8601, no timezone)
        signatures: One signature per required key, in resolver order
    """

    scope: List[str] = field(default_factory=list)
    messages: List[Message] = field(default_factory=list)

    # Header, filled in by the chain interface before signing
    ref_block_num: int = 0
    ref_block_prefix: int = 0
    expiration: Optional[str] = None

    signatures: List[str] = field(default_factory=list)

    def __post_init__(self):
        """Normalize scope and messages."""
        self.scope = normalize_scope(self.scope)
        self.messages = [Message.from_dict(m) for m in self.messages]

    @classmethod
    def from_dict(cls, value: Any) -> "Transaction":
        """
        Build a draft transaction from a {scope, messages} mapping.

        Raises:
            MessageValidationError: If the structure is invalid
        """
        if not isinstance(value, Mapping):
            raise MessageValidationError(
                f"Transaction must be a mapping, got {type(value).__name__}"
            )

        scope = value.get("scope")
        messages = value.get("messages")

        if scope is None or isinstance(scope, (str, bytes)) or not isinstance(scope, (list, tuple)):
            raise MessageValidationError("Transaction requires a scope list")
        if messages is None or not isinstance(messages, (list, tuple)):
            raise MessageValidationError("Transaction requires a messages list")

        for account in scope:
            if not isinstance(account, str) or not account:
                raise MessageValidationError(f"Invalid scope account: {account!r}")

        return cls(
            scope=list(scope),
            messages=[Message.from_dict(m) for m in messages],
            ref_block_num=int(value.get("ref_block_num", 0)),
            ref_block_prefix=int(value.get("ref_block_prefix", 0)),
            expiration=value.get("expiration"),
            signatures=list(value.get("signatures", [])),
        )

    @property
    def is_empty(self) -> bool:
        """Check if the transaction has no messages."""
        return len(self.messages) == 0

    @property
    def is_signed(self) -> bool:
        return len(self.signatures) > 0

    def signing_buffer(self) -> bytes:
        """Bytes covered by the signatures (the transaction without signatures)."""
        return canonical_json(self.to_dict(include_signatures=False))

    @property
    def transaction_id(self) -> str:
        """SHA-256 of the signing buffer, hex encoded."""
        return hashlib.sha256(self.signing_buffer()).hexdigest()

    def to_dict(self, include_signatures: bool = True) -> dict:
        """Convert to dictionary for serialization."""
        result = {
            "ref_block_num": self.ref_block_num,
            "ref_block_prefix": self.ref_block_prefix,
            "expiration": self.expiration,
            "scope": list(self.scope),
            "messages": [m.to_dict() for m in self.messages],
        }
        if include_signatures:
            result["signatures"] = list(self.signatures)
        return result

    def __repr__(self) -> str:
        return (
            f"Transaction(id={self.transaction_id[:8]}..., "
            f"messages={len(self.messages)}, signatures={len(self.signatures)})"
        )
