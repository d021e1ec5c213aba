"""
Error types raised by the composer and its collaborators.

Errors raised by user code inside a builder, key provider or sign provider
are never wrapped; these types only cover failures detected by the library.
"""

from typing import Optional


class ComposerError(Exception):
    """Base class for all library errors."""
    pass


class ConcurrentCompositionError(ComposerError):
    """Raised when a composition is started while another one is open."""

    def __init__(self, message: str = "Callback during a transaction"):
        super().__init__(message)


class RollbackError(ComposerError):
    """Raised by a builder to abort the transaction it is composing."""
    pass


class MessageValidationError(ComposerError, ValueError):
    """Raised when a message or its arguments are malformed."""
    pass


class NoSigningKeysError(ComposerError):
    """Raised when signing is requested but no usable keys are available."""

    def __init__(self, message: str, missing_keys: Optional[list] = None):
        super().__init__(message)
        self.missing_keys = list(missing_keys or [])


class SigningError(ComposerError):
    """Raised when signing produces an unusable result."""
    pass


class ChainError(ComposerError):
    """Base class for failures reported by the chain API."""

    def __init__(self, message: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.error_code = error_code


class ChainConnectionError(ChainError):
    """Raised when the chain API cannot be reached."""
    pass


class ResolverError(ChainError):
    """Raised when the required-keys lookup fails."""
    pass


class BroadcastError(ChainError):
    """Raised when pushing a signed transaction fails."""
    pass


class UnknownContractError(ChainError, LookupError):
    """Raised when the chain does not know an account, contract or action."""

    def __init__(self, message: str = "unknown key", error_code: Optional[str] = None):
        super().__init__(message, error_code)


class UnknownActionError(UnknownContractError, AttributeError):
    """Raised when a contract has no action of the requested name."""
    pass
