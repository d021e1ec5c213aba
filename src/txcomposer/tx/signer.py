"""
Transaction Signer - resolves signing keys and collects signatures.

Key providers and sign providers are caller-supplied and may answer
immediately or with an awaitable; the pipeline awaits both the same way.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Union

import structlog

from txcomposer.chain.interface import ChainInterface
from txcomposer.core.transaction import Transaction
from txcomposer.errors import NoSigningKeysError, SigningError
from txcomposer.tx.keys import DEFAULT_PUBLIC_KEY_PREFIX, private_to_public, sign

logger = structlog.get_logger(__name__)

StringOrStrings = Union[str, Sequence[str]]
KeyProvider = Callable[..., Union[StringOrStrings, Awaitable[StringOrStrings]]]


@dataclass
class SigningContext:
    """
    What a sign provider receives.

    Attributes:
        buf: Bytes to sign
        sign: Primitive (buf, private_key) -> signature
        transaction: The draft transaction being signed
        keys: Private keys for the required public keys, in required order
    """
    buf: bytes
    sign: Callable[[bytes, str], str]
    transaction: Transaction
    keys: List[str] = field(default_factory=list)


SignProvider = Callable[[SigningContext], Union[StringOrStrings, Awaitable[StringOrStrings]]]


async def resolve_deferred(value: Any) -> Any:
    """Await a value if it is awaitable, otherwise return it unchanged."""
    if inspect.isawaitable(value):
        return await value
    return value


def normalize_strings(value: Any, what: str, error_cls: type = SigningError) -> List[str]:
    """
    Normalize a string or a sequence of strings to a list.

    Raises:
        error_cls: If the value is neither
    """
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, (list, tuple)):
        for item in value:
            if not isinstance(item, str):
                raise error_cls(f"{what} must contain strings, got {type(item).__name__}")
        return list(value)
    raise error_cls(f"{what} must be a string or a sequence of strings, got {type(value).__name__}")


def static_key_provider(keys: StringOrStrings) -> KeyProvider:
    """Key provider that always answers with the same keys."""
    normalized = normalize_strings(keys, "Keys", NoSigningKeysError)

    def provide(transaction: Transaction) -> List[str]:
        return list(normalized)

    return provide


def default_sign_provider(context: SigningContext) -> List[str]:
    """Sign the buffer once with every required private key."""
    return [context.sign(context.buf, key) for key in context.keys]


class TransactionSigner:
    """
    Produces the signatures for a draft transaction.

    Steps:
    - Ask the key provider for candidate private keys
    - Ask the chain which of their public keys are required
    - Hand the matching private keys to the sign provider

    Without a key provider, a custom sign provider is called directly and
    signs with its own key material.
    """

    def __init__(
        self,
        chain: ChainInterface,
        key_provider: Optional[Union[KeyProvider, StringOrStrings]] = None,
        sign_provider: Optional[SignProvider] = None,
        public_key_prefix: str = DEFAULT_PUBLIC_KEY_PREFIX,
    ):
        """
        Initialize the signer.

        Args:
            chain: Chain interface used to resolve required keys
            key_provider: Callable of the transaction, or a static key / key list
            sign_provider: Callable of a SigningContext (defaults to signing with each required key)
            public_key_prefix: Prefix of public key strings
        """
        self.chain = chain
        if key_provider is not None and not callable(key_provider):
            key_provider = static_key_provider(key_provider)
        self.key_provider = key_provider
        self.sign_provider = sign_provider
        self.public_key_prefix = public_key_prefix

    @property
    def can_sign(self) -> bool:
        """Check if a key provider or sign provider is configured."""
        return self.key_provider is not None or self.sign_provider is not None

    async def candidate_keys(self, transaction: Transaction) -> List[str]:
        """
        Get the candidate private keys for a transaction.

        Raises:
            NoSigningKeysError: If the key provider returns no keys
        """
        result = await resolve_deferred(self.key_provider(transaction))
        keys = normalize_strings(result, "Key provider result", NoSigningKeysError)

        unique = list(dict.fromkeys(keys))
        if not unique:
            raise NoSigningKeysError("missing key, check your key_provider")
        return unique

    async def required_private_keys(
        self,
        transaction: Transaction,
        candidates: List[str],
    ) -> List[str]:
        """
        Select the candidate private keys the chain requires, in required order.

        Raises:
            NoSigningKeysError: If a required key has no matching private key
        """
        key_map = {}
        for private_key in candidates:
            key_map.setdefault(private_to_public(private_key, self.public_key_prefix), private_key)

        required_keys = await self.chain.get_required_keys(transaction, list(key_map))

        if not required_keys:
            raise NoSigningKeysError("missing required keys for transaction")

        missing = [key for key in required_keys if key not in key_map]
        if missing:
            raise NoSigningKeysError(
                f"missing private keys for {', '.join(missing)}",
                missing_keys=missing,
            )

        return [key_map[key] for key in required_keys]

    async def sign_transaction(self, transaction: Transaction) -> List[str]:
        """
        Collect signatures for a draft transaction.

        Args:
            transaction: Draft transaction with its header filled in

        Returns:
            Signatures, one per required key in required order when keys were resolved

        Raises:
            NoSigningKeysError: If no keys are available
            SigningError: If the sign provider returns an unusable result
        """
        if not self.can_sign:
            raise NoSigningKeysError("This transaction requires a key_provider for signing")

        keys: List[str] = []
        if self.key_provider is not None:
            candidates = await self.candidate_keys(transaction)
            keys = await self.required_private_keys(transaction, candidates)

        provider = self.sign_provider or default_sign_provider
        context = SigningContext(
            buf=transaction.signing_buffer(),
            sign=sign,
            transaction=transaction,
            keys=keys,
        )

        result = await resolve_deferred(provider(context))
        signatures = normalize_strings(result, "Sign provider result")

        if not signatures:
            raise SigningError("Sign provider returned no signatures")

        if keys and len(signatures) != len(keys):
            raise SigningError(
                f"Sign provider returned {len(signatures)} signatures for {len(keys)} required keys"
            )

        logger.debug(
            "transaction_signed",
            transaction_id=transaction.transaction_id[:16] + "...",
            signatures=len(signatures),
        )

        return signatures
