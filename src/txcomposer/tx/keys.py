"""
Key primitives - private/public key handling and the sign function.

Keys are ed25519 key pairs managed through pycardano. Private keys travel as
hex-encoded 32 byte seeds, public keys as a prefix followed by the hex
encoded verification key.
"""

from dataclasses import dataclass

import structlog

from pycardano import PaymentSigningKey, PaymentVerificationKey

from txcomposer.errors import SigningError

logger = structlog.get_logger(__name__)

SIGNATURE_PREFIX = "SIG_ED_"
DEFAULT_PUBLIC_KEY_PREFIX = "EOS"


@dataclass(frozen=True)
class KeyPair:
    """A private key and its public key, both in string form."""
    private_key: str
    public_key: str


def load_signing_key(private_key: str) -> PaymentSigningKey:
    """
    Load a signing key from its hex seed.

    Args:
        private_key: 64 hex characters (32 byte ed25519 seed)

    Returns:
        The pycardano signing key

    Raises:
        SigningError: If the key is not a valid hex seed
    """
    if not isinstance(private_key, str):
        raise SigningError(f"Private key must be a string, got {type(private_key).__name__}")

    try:
        seed = bytes.fromhex(private_key)
    except ValueError:
        raise SigningError("Private key is not valid hex")

    if len(seed) != 32:
        raise SigningError(f"Private key must be 32 bytes, got {len(seed)}")

    return PaymentSigningKey(seed)


def is_private_key(value: str) -> bool:
    """Check whether a string looks like a private key seed."""
    try:
        load_signing_key(value)
    except SigningError:
        return False
    return True


def private_to_public(private_key: str, prefix: str = DEFAULT_PUBLIC_KEY_PREFIX) -> str:
    """Derive the public key string for a private key."""
    signing_key = load_signing_key(private_key)
    verification_key = PaymentVerificationKey.from_signing_key(signing_key)
    return prefix + verification_key.payload.hex()


def sign(buf: bytes, private_key: str) -> str:
    """
    Sign a buffer with a private key.

    This is the primitive handed to sign providers through the signing context.

    Args:
        buf: Bytes to sign
        private_key: Hex encoded private key seed

    Returns:
        Signature string
    """
    if isinstance(buf, str):
        buf = buf.encode("utf-8")

    signing_key = load_signing_key(private_key)
    return SIGNATURE_PREFIX + signing_key.sign(bytes(buf)).hex()


def generate_key(prefix: str = DEFAULT_PUBLIC_KEY_PREFIX) -> KeyPair:
    """
    Generate a new random key pair.

    The key is not persisted anywhere; callers are responsible for storing it.
    """
    signing_key = PaymentSigningKey.generate()
    private_key = signing_key.payload.hex()
    public_key = private_to_public(private_key, prefix)

    logger.debug("key_generated", public_key=public_key[:16] + "...")

    return KeyPair(private_key=private_key, public_key=public_key)
