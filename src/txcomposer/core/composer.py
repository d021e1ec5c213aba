"""
Transaction Composer - accumulates messages into one atomic transaction.

Coordinates message accumulation, key resolution, signing and broadcast.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field, fields
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple, Union

import structlog

from txcomposer.chain.http import HttpChainAdapter
from txcomposer.chain.interface import ChainInterface
from txcomposer.config import ComposerConfig, NetworkType, get_config
from txcomposer.core.contract import ContractProxy
from txcomposer.core.message import Authorization, Message, encode_payload
from txcomposer.core.schema import NATIVE_SCHEMA, ActionDefinition, ContractSchema
from txcomposer.core.transaction import Transaction, TransactionStatus
from txcomposer.errors import (
    ComposerError,
    ConcurrentCompositionError,
    MessageValidationError,
    RollbackError,
)
from txcomposer.tx.signer import (
    KeyProvider,
    SignProvider,
    TransactionSigner,
    resolve_deferred,
)

logger = structlog.get_logger(__name__)

Builder = Callable[["TransactionHandle"], Any]


@dataclass
class ComposeOptions:
    """
    Per-call options. None falls back to the configured default.

    Attributes:
        broadcast: Push the transaction after signing
        sign: Sign the transaction
    """
    broadcast: Optional[bool] = None
    sign: Optional[bool] = None

    def __post_init__(self):
        for name in ("broadcast", "sign"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, bool):
                raise MessageValidationError(f"Option {name} must be a bool, got {value!r}")

    @classmethod
    def coerce(cls, value: Any) -> "ComposeOptions":
        """
        Build options from None, a bool (the broadcast flag), a mapping or an instance.

        Raises:
            MessageValidationError: If the value cannot be read as options
        """
        if value is None:
            return cls()
        if isinstance(value, ComposeOptions):
            return value
        if isinstance(value, bool):
            return cls(broadcast=value)
        if isinstance(value, Mapping):
            known = {f.name for f in fields(cls)}
            unknown = [key for key in value if key not in known]
            if unknown:
                raise MessageValidationError(f"Unknown options: {', '.join(unknown)}")
            return cls(**value)
        raise MessageValidationError(f"Invalid options: {value!r}")

    def merge(self, **overrides: Optional[bool]) -> "ComposeOptions":
        """Return options with the non-None overrides applied."""
        values = {"broadcast": self.broadcast, "sign": self.sign}
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ComposeOptions(**values)

    def resolve(self, config: ComposerConfig) -> Tuple[bool, bool]:
        """Get the effective (broadcast, sign) flags."""
        broadcast = config.broadcast if self.broadcast is None else self.broadcast
        sign = config.sign if self.sign is None else self.sign
        return bool(broadcast), bool(sign)


@dataclass
class ComposeResult:
    """
    Outcome of a successful composition.

    Attributes:
        transaction: The signed (or unsigned) transaction
        status: Final status, always COMMITTED for a returned result
        broadcast: Whether the transaction was pushed
        processed: Receipt from the chain when pushed
    """
    transaction: Transaction
    status: TransactionStatus = TransactionStatus.COMMITTED
    broadcast: bool = False
    processed: Optional[dict] = None

    @property
    def transaction_id(self) -> str:
        if self.processed and self.processed.get("transaction_id"):
            return self.processed["transaction_id"]
        return self.transaction.transaction_id

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "transaction_id": self.transaction_id,
            "status": self.status.value,
            "broadcast": self.broadcast,
            "transaction": self.transaction.to_dict(),
            "processed": self.processed,
        }


@dataclass
class CompositionScope:
    """State of one in-progress composition."""
    messages: List[Message] = field(default_factory=list)
    accounts: List[str] = field(default_factory=list)
    status: TransactionStatus = TransactionStatus.COMPOSING
    closed: bool = False

    def add(self, message: Message, accounts: Sequence[str]) -> None:
        if self.closed:
            raise ComposerError("Transaction is no longer composing")
        self.messages.append(message)
        for account in accounts:
            if account not in self.accounts:
                self.accounts.append(account)

    def discard(self) -> None:
        self.messages.clear()
        self.accounts.clear()
        self.closed = True

    def to_transaction(self) -> Transaction:
        self.closed = True
        return Transaction(scope=list(self.accounts), messages=list(self.messages))


class TransactionHandle:
    """
    Accumulation handle passed to builder callbacks.

    Exposes one method per action of the bound contract (tr.transfer(...)),
    plus append() for arbitrary messages. Appending never suspends.
    """

    def __init__(
        self,
        scope: CompositionScope,
        schema: ContractSchema,
        force_message_data_hex: bool = False,
    ):
        self._scope = scope
        self._schema = schema
        self._force_hex = force_message_data_hex

    @property
    def messages(self) -> Tuple[Message, ...]:
        """Messages appended so far."""
        return tuple(self._scope.messages)

    @property
    def actions(self) -> List[str]:
        return self._schema.action_names

    def action(self, name: str) -> Callable[..., Message]:
        """
        Get the append method for an action.

        Raises:
            UnknownActionError: If the bound contract has no such action
        """
        definition = self._schema.get(name)

        def append_action(*args: Any, **kwargs: Any) -> Message:
            return self._append_action(definition, args, kwargs)

        append_action.__name__ = name
        return append_action

    def __getattr__(self, name: str) -> Callable[..., Message]:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.action(name)

    def _append_action(
        self,
        definition: ActionDefinition,
        args: Sequence[Any],
        kwargs: Dict[str, Any],
    ) -> Message:
        if any(callable(value) for value in list(args) + list(kwargs.values())):
            raise ConcurrentCompositionError()

        data = definition.bind(args, kwargs)
        authorization = (Authorization(definition.authorizer(data)),)
        message = Message(
            code=definition.code,
            type=definition.name,
            data=encode_payload(data) if self._force_hex else data,
            authorization=authorization,
        )

        self._scope.add(message, definition.accounts(data) + message.authorizing_accounts)
        return message

    def append(self, message: Any = None, **message_fields: Any) -> Message:
        """
        Append a message given as a Message, a mapping, or code/type/data/authorization keywords.

        Raises:
            MessageValidationError: If the message is malformed
        """
        if message is None:
            message = message_fields
        elif message_fields:
            raise MessageValidationError("Pass either a message or keyword fields, not both")

        message = Message.from_dict(message)

        accounts = list(message.authorizing_accounts)
        if message.code == self._schema.code and message.type in self._schema and not message.is_hex:
            accounts = self._schema.get(message.type).accounts(message.data) + accounts

        if self._force_hex and not message.is_hex:
            message = Message(
                code=message.code,
                type=message.type,
                data=encode_payload(message.data),
                authorization=message.authorization,
            )

        self._scope.add(message, accounts)
        return message

    def rollback(self, reason: str = "rollback") -> None:
        """Abort the transaction being composed."""
        raise RollbackError(reason)

    def __repr__(self) -> str:
        return f"TransactionHandle(code={self._schema.code}, messages={len(self._scope.messages)})"


class Composer:
    """
    Composes, signs and broadcasts transactions.

    At most one composition is open per instance. Calling the composer while a
    builder is running raises ConcurrentCompositionError.

    Usage:
        ```python
        composer = Composer(key_provider=private_key)
        await composer.transfer("inita", "initb", 1, "")

        async def build(tr):
            tr.transfer("inita", "initb", 1, "")
            tr.transfer("inita", "initc", 1, "")

        result = await composer.transaction(build, broadcast=False)
        ```
    """

    def __init__(
        self,
        chain: Optional[ChainInterface] = None,
        config: Optional[ComposerConfig] = None,
        key_provider: Optional[Union[KeyProvider, str, Sequence[str]]] = None,
        sign_provider: Optional[SignProvider] = None,
        schema: Optional[ContractSchema] = None,
    ):
        """
        Initialize the composer.

        Args:
            chain: Chain interface (an HTTP adapter is created from config if not provided)
            config: Composer configuration
            key_provider: Callable returning private keys, or static key(s);
                falls back to config.private_keys
            sign_provider: Custom sign provider
            schema: Actions exposed as composer methods (native contract by default)
        """
        self.config = config or get_config()
        self.schema = schema or NATIVE_SCHEMA
        self.chain = chain or HttpChainAdapter(self.config)

        if key_provider is None and self.config.private_keys:
            key_provider = list(self.config.private_keys)

        self.signer = TransactionSigner(
            chain=self.chain,
            key_provider=key_provider,
            sign_provider=sign_provider,
            public_key_prefix=self.config.public_key_prefix,
        )

        self._scope: Optional[CompositionScope] = None
        self._schemas: Dict[str, ContractSchema] = {}

    @property
    def in_transaction(self) -> bool:
        """Check if a composition is open."""
        return self._scope is not None

    def _ensure_idle(self) -> None:
        if self._scope is not None:
            raise ConcurrentCompositionError()

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def transaction(
        self,
        arg: Union[Builder, Mapping],
        options: Any = None,
        *,
        broadcast: Optional[bool] = None,
        sign: Optional[bool] = None,
    ) -> Awaitable[ComposeResult]:
        """
        Compose one transaction.

        Args:
            arg: Builder callable receiving a TransactionHandle (may be async),
                or a {scope, messages} mapping
            options: ComposeOptions, a mapping, or a bool broadcast flag
            broadcast: Override the broadcast option
            sign: Override the sign option

        Returns:
            Awaitable resolving to a ComposeResult

        Raises:
            ConcurrentCompositionError: If a composition is already open
        """
        self._ensure_idle()
        options = ComposeOptions.coerce(options).merge(broadcast=broadcast, sign=sign)

        if callable(arg):
            return self._compose(options, builder=arg)
        if isinstance(arg, Mapping):
            return self._compose(options, structured=arg)
        raise MessageValidationError(
            f"transaction() expects a builder or a {{scope, messages}} mapping, got {type(arg).__name__}"
        )

    def action(self, name: str) -> Callable[..., Awaitable[ComposeResult]]:
        """
        Get the shorthand for a single-message transaction.

        Raises:
            UnknownActionError: If the action is unknown
        """
        definition = self.schema.get(name)

        def compose_action(*args: Any, **kwargs: Any) -> Awaitable[ComposeResult]:
            return self.compose_action(definition, args, kwargs)

        compose_action.__name__ = name
        return compose_action

    def __getattr__(self, name: str) -> Callable[..., Awaitable[ComposeResult]]:
        if name.startswith("_") or name == "schema":
            raise AttributeError(name)
        return self.action(name)

    def compose_action(
        self,
        definition: ActionDefinition,
        args: Sequence[Any],
        kwargs: Dict[str, Any],
    ) -> Awaitable[ComposeResult]:
        """
        Compose a transaction holding a single action.

        Arguments follow ActionDefinition.bind; one extra trailing positional
        argument is read as options (a bool is the broadcast flag). The
        broadcast and sign keywords are options unless the action has fields
        of that name.
        """
        self._ensure_idle()

        args = list(args)
        kwargs = dict(kwargs)
        options = ComposeOptions()

        positional = 1 if args and isinstance(args[0], Mapping) else len(definition.fields)
        if len(args) == positional + 1:
            options = ComposeOptions.coerce(args.pop())
        elif len(args) > positional + 1:
            raise MessageValidationError(
                f"{definition.name} takes {positional} arguments plus options, got {len(args)}"
            )

        overrides = {
            name: kwargs.pop(name)
            for name in ("broadcast", "sign")
            if name in kwargs and name not in definition.field_names
        }
        options = options.merge(**overrides)

        def build(tr: TransactionHandle) -> None:
            tr._append_action(definition, args, kwargs)

        return self._compose(options, builder=build)

    def contract(
        self,
        code: str,
        builder: Optional[Builder] = None,
        options: Any = None,
        *,
        broadcast: Optional[bool] = None,
        sign: Optional[bool] = None,
    ) -> Awaitable[Any]:
        """
        Work with the actions of a deployed contract.

        Without a builder, resolves to a ContractProxy exposing one method per
        action. With a builder, composes one transaction whose handle is bound
        to the contract's actions.

        Raises:
            UnknownContractError: If the chain has no contract at this account
        """
        self._ensure_idle()
        options = ComposeOptions.coerce(options).merge(broadcast=broadcast, sign=sign)
        return self._contract(code, builder, options)

    async def _contract(
        self,
        code: str,
        builder: Optional[Builder],
        options: ComposeOptions,
    ) -> Any:
        schema = await self.load_schema(code)
        if builder is None:
            return ContractProxy(self, schema)
        return await self._compose(options, builder=builder, schema=schema)

    async def load_schema(self, code: str) -> ContractSchema:
        """Fetch (once per composer) the schema of a contract."""
        if code not in self._schemas:
            abi = await self.chain.get_abi(code)
            self._schemas[code] = ContractSchema.from_abi(code, abi)
        return self._schemas[code]

    async def get_required_keys(self, transaction: Transaction, public_keys: List[str]) -> List[str]:
        """Ask the chain which of the public keys must sign a transaction."""
        return await self.chain.get_required_keys(transaction, public_keys)

    async def close(self) -> None:
        """Disconnect the chain interface and release its resources."""
        await self.chain.disconnect()
        logger.info("composer_closed")

    async def __aenter__(self) -> "Composer":
        await self.chain.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _compose(
        self,
        options: ComposeOptions,
        builder: Optional[Builder] = None,
        structured: Optional[Mapping] = None,
        schema: Optional[ContractSchema] = None,
    ) -> ComposeResult:
        self._ensure_idle()
        scope = CompositionScope()
        self._scope = scope

        try:
            if structured is not None:
                transaction = Transaction.from_dict(structured)
                transaction.signatures = []
                scope.closed = True
            else:
                transaction = await self._collect(scope, builder, schema or self.schema)

            if transaction.is_empty:
                raise MessageValidationError("Transaction has no messages")

            logger.info(
                "transaction_composed",
                messages=len(transaction.messages),
                scope=transaction.scope,
            )

            return await self._commit(scope, transaction, options)
        finally:
            self._scope = None

    async def _collect(
        self,
        scope: CompositionScope,
        builder: Builder,
        schema: ContractSchema,
    ) -> Transaction:
        handle = TransactionHandle(
            scope,
            schema,
            force_message_data_hex=self.config.force_message_data_hex,
        )

        try:
            await resolve_deferred(builder(handle))
        except Exception as e:
            discarded = len(scope.messages)
            scope.discard()
            scope.status = TransactionStatus.ROLLED_BACK
            logger.info("transaction_rolled_back", discarded=discarded, error=str(e))
            raise

        return scope.to_transaction()

    async def _commit(
        self,
        scope: CompositionScope,
        transaction: Transaction,
        options: ComposeOptions,
    ) -> ComposeResult:
        broadcast, sign = options.resolve(self.config)
        scope.status = TransactionStatus.SIGNING

        try:
            # An unsigned, unbroadcast transaction needs no chain round trip
            if sign or broadcast:
                await self.chain.prepare_header(transaction, self.config.expire_in_seconds)

            if sign:
                transaction.signatures = await self.signer.sign_transaction(transaction)

            scope.status = TransactionStatus.COMMITTED

            if not broadcast:
                logger.info(
                    "transaction_ready",
                    transaction_id=transaction.transaction_id[:16] + "...",
                    signatures=len(transaction.signatures),
                )
                return ComposeResult(transaction=transaction, broadcast=False)

            receipt = await self.chain.push_transaction(transaction)

        except Exception as e:
            scope.status = TransactionStatus.FAILED
            logger.warning("transaction_failed", error=str(e), error_type=type(e).__name__)
            raise

        return ComposeResult(transaction=transaction, broadcast=True, processed=receipt)


def testnet(
    chain: Optional[ChainInterface] = None,
    key_provider: Optional[Union[KeyProvider, str, Sequence[str]]] = None,
    sign_provider: Optional[SignProvider] = None,
    **settings: Any,
) -> Composer:
    """Create a composer for the public test network."""
    config = ComposerConfig(network=NetworkType.TESTNET, **settings)
    return Composer(chain=chain, config=config, key_provider=key_provider, sign_provider=sign_provider)


def localnet(
    chain: Optional[ChainInterface] = None,
    key_provider: Optional[Union[KeyProvider, str, Sequence[str]]] = None,
    sign_provider: Optional[SignProvider] = None,
    **settings: Any,
) -> Composer:
    """Create a composer for a node running on localhost."""
    config = ComposerConfig(network=NetworkType.LOCAL, **settings)
    return Composer(chain=chain, config=config, key_provider=key_provider, sign_provider=sign_provider)
