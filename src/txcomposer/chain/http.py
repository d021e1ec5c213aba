"""
HTTP chain API adapter.

Provides chain access via the node's /v1/chain REST endpoints.
"""

import json
from typing import Any, List, Optional, Type

import httpx
import structlog

from txcomposer.chain.interface import ChainInfo, ChainInterface
from txcomposer.config import ComposerConfig, get_config
from txcomposer.core.transaction import Transaction
from txcomposer.errors import (
    BroadcastError,
    ChainConnectionError,
    ChainError,
    ResolverError,
    UnknownContractError,
)

logger = structlog.get_logger(__name__)

UNKNOWN_KEY = "unknown key"


class HttpChainAdapter(ChainInterface):
    """
    Chain API adapter over HTTP.

    Implements the ChainInterface using the node's JSON API.
    """

    def __init__(
        self,
        config: Optional[ComposerConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the HTTP adapter.

        Args:
            config: Composer configuration. Uses global config if not provided.
            transport: Custom httpx transport (used by tests)
        """
        self.config = config or get_config()
        self.base_url = self.config.chain_url
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def headers(self) -> dict:
        return {"Content-Type": "application/json"}

    async def connect(self) -> None:
        """Establish connection (create HTTP client)."""
        if self._client is not None:
            return

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.config.request_timeout,
            transport=self._transport,
        )
        logger.info("chain_connected", base_url=self.base_url)

    async def disconnect(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("chain_disconnected")

    async def _post(
        self,
        path: str,
        body: Any = None,
        error_cls: Type[ChainError] = ChainConnectionError,
    ) -> Any:
        """
        Make an API request.

        Errors mentioning an unknown key are raised as UnknownContractError,
        other failures as error_cls.
        """
        if not self._client:
            await self.connect()

        if self.config.debug:
            logger.debug("chain_request", path=path, body=body)

        try:
            response = await self._client.post(
                path,
                content=json.dumps(body) if body is not None else None,
            )
        except httpx.RequestError as e:
            logger.error("chain_request_error", path=path, error=str(e))
            raise error_cls(f"Chain request failed: {e}")

        if response.status_code != 200:
            error_msg = response.text
            logger.error(
                "chain_request_failed",
                path=path,
                status=response.status_code,
                error=error_msg,
            )
            if UNKNOWN_KEY in error_msg:
                raise UnknownContractError(UNKNOWN_KEY, error_code=str(response.status_code))
            raise error_cls(f"Chain API error: {error_msg}", error_code=str(response.status_code))

        try:
            data = response.json()
        except ValueError as e:
            logger.error("chain_response_invalid", path=path, error=str(e))
            raise error_cls(f"Chain API returned invalid JSON: {e}")

        if self.config.debug:
            logger.debug("chain_response", path=path, body=data)
        return data

    async def get_info(self) -> ChainInfo:
        """Get current chain head information."""
        data = await self._post("/v1/chain/get_info")
        try:
            return ChainInfo.from_dict(data)
        except (KeyError, TypeError, ValueError) as e:
            raise ChainConnectionError(f"Malformed get_info response: {e!r}")

    async def get_block(self, block_num_or_id: Any) -> Optional[dict]:
        """Get a block by number or id."""
        return await self._post(
            "/v1/chain/get_block",
            {"block_num_or_id": block_num_or_id},
        )

    async def get_account(self, account_name: str) -> Optional[dict]:
        """Get account details."""
        return await self._post(
            "/v1/chain/get_account",
            {"account_name": account_name},
        )

    async def get_code(self, account_name: str) -> Optional[dict]:
        """Get the contract deployed at an account."""
        return await self._post(
            "/v1/chain/get_code",
            {"account_name": account_name},
        )

    async def get_required_keys(
        self,
        transaction: Transaction,
        available_keys: List[str],
    ) -> List[str]:
        """Resolve the keys that must sign a transaction."""
        data = await self._post(
            "/v1/chain/get_required_keys",
            {
                "transaction": transaction.to_dict(),
                "available_keys": list(available_keys),
            },
            error_cls=ResolverError,
        )

        required_keys = (data or {}).get("required_keys")
        if not isinstance(required_keys, list):
            raise ResolverError("Chain response is missing required_keys")

        logger.debug("required_keys_resolved", count=len(required_keys))
        return required_keys

    async def push_transaction(self, transaction: Transaction) -> dict:
        """Submit a signed transaction."""
        receipt = await self._post(
            "/v1/chain/push_transaction",
            transaction.to_dict(),
            error_cls=BroadcastError,
        )

        logger.info(
            "tx_pushed",
            transaction_id=(receipt or {}).get("transaction_id", transaction.transaction_id),
        )
        return receipt or {}
