"""
Configuration management for the transaction composer.

Supports configuration via environment variables and .env files.
"""

from enum import Enum
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class NetworkType(str, Enum):
    """Chain networks with a known API endpoint."""
    MAINNET = "mainnet"
    TESTNET = "testnet"
    LOCAL = "local"


class ComposerConfig(BaseSettings):
    """
    Configuration settings for the transaction composer.

    All settings can be configured via environment variables with the TXCOMPOSER_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="TXCOMPOSER_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Network settings
    network: NetworkType = Field(
        default=NetworkType.TESTNET,
        description="Chain network to connect to"
    )
    http_endpoint: Optional[str] = Field(
        default=None,
        description="Custom chain API URL (overrides the network default)"
    )
    chain_id: Optional[str] = Field(
        default=None,
        description="Chain ID, informational; included in logs"
    )
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="HTTP request timeout in seconds"
    )

    # Signing settings
    private_keys: List[str] = Field(
        default_factory=list,
        description="Private keys (hex ed25519 seeds) for the default key provider"
    )
    public_key_prefix: str = Field(
        default="EOS",
        description="Prefix prepended to hex public keys"
    )

    # Transaction defaults
    broadcast: bool = Field(
        default=True,
        description="Push signed transactions to the chain"
    )
    sign: bool = Field(
        default=True,
        description="Sign composed transactions"
    )
    force_message_data_hex: bool = Field(
        default=False,
        description="Encode message payloads as hex instead of structured data"
    )
    expire_in_seconds: int = Field(
        default=60,
        ge=1,
        description="Transaction expiration relative to the head block time"
    )

    # Logging settings
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR)"
    )
    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format"
    )
    debug: bool = Field(
        default=False,
        description="Log request and response bodies of chain API calls"
    )

    @property
    def chain_url(self) -> str:
        """Get the chain API URL based on network."""
        if self.http_endpoint:
            return self.http_endpoint.rstrip("/")

        network_urls = {
            NetworkType.MAINNET: "https://api.eos.io",
            NetworkType.TESTNET: "https://testnet1.eos.io",
            NetworkType.LOCAL: "http://127.0.0.1:8888",
        }
        return network_urls.get(self.network, "https://testnet1.eos.io")


# Global config instance
_config: Optional[ComposerConfig] = None


def get_config() -> ComposerConfig:
    """Get or create the global configuration instance."""
    global _config
    if _config is None:
        _config = ComposerConfig()
    return _config


def set_config(config: ComposerConfig) -> None:
    """Set the global configuration instance."""
    global _config
    _config = config
