"""
Action schema - the known action types of a contract.

A ContractSchema maps action names to ActionDefinitions built from a contract
ABI. Definitions bind positional or named arguments to a payload, coerce the
values to their declared types and name the accounts the action touches.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

import structlog

from txcomposer.errors import MessageValidationError, UnknownActionError

logger = structlog.get_logger(__name__)

ACCOUNT_NAME_PATTERN = re.compile(r"^[a-z1-5.]{1,13}$")

ACCOUNT_TYPES = {"account_name", "name"}
UNSIGNED_TYPES = {"uint8", "uint16", "uint32", "uint64", "uint128"}
SIGNED_TYPES = {"int8", "int16", "int32", "int64", "int128"}

NATIVE_CONTRACT = "eos"

# ABI of the chain's native contract, always available without a lookup
NATIVE_ABI = {
    "structs": [
        {
            "name": "transfer",
            "base": "",
            "fields": {
                "from": "account_name",
                "to": "account_name",
                "amount": "uint64",
                "memo": "string",
            },
        },
        {
            "name": "newaccount",
            "base": "",
            "fields": {
                "creator": "account_name",
                "name": "account_name",
                "owner": "authority",
                "active": "authority",
                "recovery": "authority",
                "deposit": "asset",
            },
        },
        {
            "name": "okproducer",
            "base": "",
            "fields": {
                "voter": "account_name",
                "producer": "account_name",
                "approve": "int8",
            },
        },
        {
            "name": "setproducer",
            "base": "",
            "fields": {
                "name": "account_name",
                "key": "public_key",
            },
        },
        {
            "name": "lock",
            "base": "",
            "fields": {
                "from": "account_name",
                "to": "account_name",
                "amount": "uint64",
            },
        },
        {
            "name": "unlock",
            "base": "",
            "fields": {
                "account": "account_name",
                "amount": "uint64",
            },
        },
        {
            "name": "claim",
            "base": "",
            "fields": {
                "account": "account_name",
                "amount": "uint64",
            },
        },
    ],
    "actions": [
        {"action_name": "transfer", "type": "transfer"},
        {"action_name": "newaccount", "type": "newaccount"},
        {"action_name": "okproducer", "type": "okproducer"},
        {"action_name": "setproducer", "type": "setproducer"},
        {"action_name": "lock", "type": "lock"},
        {"action_name": "unlock", "type": "unlock"},
        {"action_name": "claim", "type": "claim"},
    ],
}


def validate_account_name(value: Any) -> str:
    """Check an account name and return it."""
    if not isinstance(value, str) or not ACCOUNT_NAME_PATTERN.match(value):
        raise MessageValidationError(f"Invalid account name: {value!r}")
    return value


def _key_authority(key: str) -> dict:
    return {"threshold": 1, "keys": [{"key": key, "weight": 1}], "accounts": []}


def _account_authority(account: str) -> dict:
    return {
        "threshold": 1,
        "keys": [],
        "accounts": [{"permission": {"account": account, "permission": "active"}, "weight": 1}],
    }


@dataclass(frozen=True)
class FieldDefinition:
    """A named, typed payload field."""
    name: str
    type: str

    def coerce(self, value: Any) -> Any:
        """
        Coerce a value to this field's type.

        Raises:
            MessageValidationError: If the value does not fit the type
        """
        if self.type in ACCOUNT_TYPES:
            return validate_account_name(value)

        if self.type in UNSIGNED_TYPES or self.type in SIGNED_TYPES:
            if isinstance(value, bool):
                raise MessageValidationError(f"{self.name}: expected {self.type}, got bool")
            try:
                number = int(value)
            except (TypeError, ValueError):
                raise MessageValidationError(f"{self.name}: expected {self.type}, got {value!r}")
            if isinstance(value, float) and number != value:
                raise MessageValidationError(f"{self.name}: expected {self.type}, got {value!r}")
            if self.type in UNSIGNED_TYPES and number < 0:
                raise MessageValidationError(f"{self.name}: {self.type} cannot be negative")
            return number

        if self.type == "bool":
            if not isinstance(value, bool):
                raise MessageValidationError(f"{self.name}: expected bool, got {value!r}")
            return value

        if self.type in ("string", "public_key", "asset"):
            if not isinstance(value, str):
                raise MessageValidationError(f"{self.name}: expected {self.type}, got {value!r}")
            return value

        if self.type == "authority":
            # Shorthand: a public key or an account name stands for a 1-of-1 authority
            if isinstance(value, Mapping):
                return dict(value)
            if isinstance(value, str) and ACCOUNT_NAME_PATTERN.match(value):
                return _account_authority(value)
            if isinstance(value, str) and value:
                return _key_authority(value)
            raise MessageValidationError(f"{self.name}: expected authority, got {value!r}")

        return value


@dataclass(frozen=True)
class ActionDefinition:
    """
    An action type of a contract.

    Attributes:
        code: Contract account handling the action
        name: Action name
        fields: Payload fields in declaration order
    """

    code: str
    name: str
    fields: Sequence[FieldDefinition] = field(default_factory=tuple)

    @property
    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]

    @property
    def account_fields(self) -> List[str]:
        return [f.name for f in self.fields if f.type in ACCOUNT_TYPES]

    def bind(self, args: Sequence[Any] = (), kwargs: Optional[Mapping] = None) -> dict:
        """
        Bind call arguments to a payload.

        Arguments are either positional in field order, a single mapping of
        field names, or keywords; the forms may be combined as long as no
        field is given twice.

        Raises:
            MessageValidationError: On missing, unknown or duplicate fields
        """
        kwargs = dict(kwargs or {})
        values: Dict[str, Any] = {}

        if len(args) == 1 and isinstance(args[0], Mapping):
            values.update(args[0])
        else:
            if len(args) > len(self.fields):
                raise MessageValidationError(
                    f"{self.name} takes {len(self.fields)} arguments, got {len(args)}"
                )
            for definition, value in zip(self.fields, args):
                values[definition.name] = value

        for name, value in kwargs.items():
            if name in values:
                raise MessageValidationError(f"{self.name}: {name} given twice")
            values[name] = value

        unknown = [name for name in values if name not in self.field_names]
        if unknown:
            raise MessageValidationError(f"{self.name}: unknown fields {', '.join(unknown)}")

        missing = [name for name in self.field_names if name not in values]
        if missing:
            raise MessageValidationError(f"{self.name}: missing fields {', '.join(missing)}")

        return {f.name: f.coerce(values[f.name]) for f in self.fields}

    def accounts(self, data: Mapping) -> List[str]:
        """Accounts named by the account-typed fields of a payload."""
        return [data[name] for name in self.account_fields if name in data]

    def authorizer(self, data: Mapping) -> str:
        """The account authorizing the action: its first account field."""
        accounts = self.accounts(data)
        if not accounts:
            raise MessageValidationError(f"{self.name} has no account field to authorize it")
        return accounts[0]


class ContractSchema:
    """
    Explicit mapping from action name to definition for one contract.
    """

    def __init__(self, code: str, actions: Optional[Dict[str, ActionDefinition]] = None):
        self.code = code
        self.actions: Dict[str, ActionDefinition] = dict(actions or {})

    @classmethod
    def from_abi(cls, code: str, abi: Mapping) -> "ContractSchema":
        """
        Build a schema from a contract ABI.

        Structs may list fields as a {name: type} mapping or as a list of
        {name, type} entries. Struct bases contribute their fields first.

        Args:
            code: Contract account
            abi: ABI with "structs" and "actions" sections

        Returns:
            Schema with one definition per ABI action
        """
        if not isinstance(abi, Mapping):
            raise MessageValidationError(f"ABI for {code} must be a mapping")

        structs: Dict[str, Mapping] = {}
        for struct in abi.get("structs", []):
            structs[struct["name"]] = struct

        def resolve_fields(struct_name: str, seen: tuple = ()) -> List[FieldDefinition]:
            struct = structs.get(struct_name)
            if struct is None or struct_name in seen:
                return []

            resolved = []
            base = struct.get("base")
            if base:
                resolved.extend(resolve_fields(base, seen + (struct_name,)))

            raw_fields = struct.get("fields", {})
            if isinstance(raw_fields, Mapping):
                items = list(raw_fields.items())
            else:
                items = [(f["name"], f["type"]) for f in raw_fields]

            resolved.extend(FieldDefinition(name, type_) for name, type_ in items)
            return resolved

        actions = {}
        for action in abi.get("actions", []):
            name = action.get("action_name") or action.get("name")
            struct_name = action.get("type") or name
            if not name:
                continue
            actions[name] = ActionDefinition(
                code=code,
                name=name,
                fields=tuple(resolve_fields(struct_name)),
            )

        logger.debug("contract_schema_loaded", code=code, actions=len(actions))
        return cls(code, actions)

    def get(self, name: str) -> ActionDefinition:
        """
        Look up an action.

        Raises:
            UnknownActionError: If the contract has no such action
        """
        definition = self.actions.get(name)
        if definition is None:
            raise UnknownActionError(f"unknown key: {self.code}::{name}")
        return definition

    def __contains__(self, name: object) -> bool:
        return name in self.actions

    @property
    def action_names(self) -> List[str]:
        return list(self.actions)

    def __repr__(self) -> str:
        return f"ContractSchema(code={self.code}, actions={self.action_names})"


NATIVE_SCHEMA = ContractSchema.from_abi(NATIVE_CONTRACT, NATIVE_ABI)
