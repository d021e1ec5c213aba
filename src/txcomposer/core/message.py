"""
Message model.

A message is a single contract action: the atomic unit appended to a transaction.
Messages are immutable once built; their payload is held in read-only form.
"""

import copy
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, List, Tuple

from txcomposer.errors import MessageValidationError

MESSAGE_FIELDS = ("code", "type", "data", "authorization")


def freeze_payload(value: Any) -> Any:
    """Copy a payload into read-only form (mapping proxies and tuples)."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze_payload(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze_payload(item) for item in value)
    return copy.deepcopy(value)


def thaw_payload(value: Any) -> Any:
    """Copy a frozen payload back into plain dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw_payload(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw_payload(item) for item in value]
    return copy.deepcopy(value)


def canonical_json(value: Any) -> bytes:
    """Encode a value as compact, key-sorted UTF-8 JSON."""
    return json.dumps(
        thaw_payload(value),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    ).encode("utf-8")


def encode_payload(data: Any) -> str:
    """Encode a structured payload as a hex string."""
    return canonical_json(data).hex()


@dataclass(frozen=True)
class Authorization:
    """An account/permission pair authorizing a message."""
    account: str
    permission: str = "active"

    @classmethod
    def from_value(cls, value: Any) -> "Authorization":
        """Build an Authorization from an instance or a mapping."""
        if isinstance(value, Authorization):
            return value

        if not isinstance(value, Mapping):
            raise MessageValidationError(
                f"Authorization must be a mapping, got {type(value).__name__}"
            )

        account = value.get("account")
        permission = value.get("permission")
        if not isinstance(account, str) or not account:
            raise MessageValidationError("Authorization requires an account")
        if not isinstance(permission, str) or not permission:
            raise MessageValidationError("Authorization requires a permission")

        return cls(account=account, permission=permission)

    def to_dict(self) -> dict:
        return {"account": self.account, "permission": self.permission}


@dataclass(frozen=True)
class Message:
    """
    A single typed action.

    Attributes:
        code: Account of the contract handling the action
        type: Action name
        data: Read-only structured payload, or hex string when pre-serialized
        authorization: Accounts and permissions authorizing the action
    """

    code: str
    type: str
    data: Any
    authorization: Tuple[Authorization, ...] = field(default_factory=tuple)

    def __post_init__(self):
        """Freeze the payload and normalize authorizations."""
        if not isinstance(self.code, str) or not self.code:
            raise MessageValidationError("Message requires a contract code")
        if not isinstance(self.type, str) or not self.type:
            raise MessageValidationError("Message requires an action type")

        object.__setattr__(self, "data", freeze_payload(self.data))
        object.__setattr__(
            self,
            "authorization",
            tuple(Authorization.from_value(a) for a in self.authorization),
        )

    @classmethod
    def from_dict(cls, value: Any) -> "Message":
        """
        Build a message from its structured form.

        Each message must carry code, type, data and authorization.

        Raises:
            MessageValidationError: If a field is missing or malformed
        """
        if isinstance(value, Message):
            return value

        if not isinstance(value, Mapping):
            raise MessageValidationError(
                f"Message must be a mapping, got {type(value).__name__}"
            )

        missing = [name for name in MESSAGE_FIELDS if name not in value]
        if missing:
            raise MessageValidationError(f"Message is missing {', '.join(missing)}")

        authorization = value["authorization"]
        if isinstance(authorization, (str, bytes)) or not isinstance(authorization, (list, tuple)):
            raise MessageValidationError("Message authorization must be a list")

        return cls(
            code=value["code"],
            type=value["type"],
            data=value["data"],
            authorization=tuple(authorization),
        )

    @property
    def is_hex(self) -> bool:
        """Check whether the payload is pre-serialized."""
        return isinstance(self.data, str)

    @property
    def authorizing_accounts(self) -> List[str]:
        """Accounts named in the authorization list."""
        return [a.account for a in self.authorization]

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "code": self.code,
            "type": self.type,
            "data": thaw_payload(self.data),
            "authorization": [a.to_dict() for a in self.authorization],
        }
