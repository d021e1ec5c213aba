"""
Abstract interface for chain API access.

Defines the contract for the chain operations the composer depends on.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, List, Optional

from txcomposer.core.transaction import Transaction
from txcomposer.errors import UnknownContractError

EXPIRATION_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass
class ChainInfo:
    """Current chain head information."""
    head_block_num: int
    head_block_id: str
    head_block_time: str
    last_irreversible_block_num: int = 0
    head_block_producer: Optional[str] = None
    server_version: Optional[str] = None
    chain_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "ChainInfo":
        """
        Build chain info from a get_info response.

        Raises:
            KeyError: If a head block field is missing
            ValueError: If the head block id is not a hex block id
        """
        head_block_id = data["head_block_id"]
        if not isinstance(head_block_id, str) or len(head_block_id) < 16:
            raise ValueError(f"Invalid head_block_id: {head_block_id!r}")
        bytes.fromhex(head_block_id)

        return cls(
            head_block_num=int(data["head_block_num"]),
            head_block_id=head_block_id,
            head_block_time=data["head_block_time"],
            last_irreversible_block_num=int(data.get("last_irreversible_block_num", 0)),
            head_block_producer=data.get("head_block_producer"),
            server_version=data.get("server_version"),
            chain_id=data.get("chain_id"),
        )

    @property
    def ref_block_num(self) -> int:
        """Low 16 bits of the head block number."""
        return self.head_block_num & 0xFFFF

    @property
    def ref_block_prefix(self) -> int:
        """Bytes 4..8 of the head block id, read little-endian."""
        return int.from_bytes(bytes.fromhex(self.head_block_id[8:16]), "little")

    def expiration(self, expire_in_seconds: int) -> str:
        """Head block time plus an offset, in the chain's timestamp format."""
        head_time = datetime.strptime(self.head_block_time.split(".")[0], EXPIRATION_FORMAT)
        return (head_time + timedelta(seconds=expire_in_seconds)).strftime(EXPIRATION_FORMAT)


class ChainInterface(ABC):
    """
    Abstract interface for chain access.

    This interface defines all chain operations needed by the composer:
    - Head block lookups for transaction headers
    - Required key resolution
    - Transaction submission
    - Contract ABI lookups
    """

    @abstractmethod
    async def connect(self) -> None:
        """
        Establish connection to the chain API.

        Raises:
            ChainConnectionError: If connection cannot be established
        """
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close connection to the chain API."""
        pass

    @abstractmethod
    async def get_info(self) -> ChainInfo:
        """
        Get current chain head information.

        Returns:
            Chain info from the node
        """
        pass

    @abstractmethod
    async def get_block(self, block_num_or_id: Any) -> Optional[dict]:
        """
        Get a block by number or id.

        Returns:
            Block data if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_account(self, account_name: str) -> Optional[dict]:
        """
        Get account details.

        Returns:
            Account data if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_code(self, account_name: str) -> Optional[dict]:
        """
        Get the contract deployed at an account.

        Returns:
            Code data including the "abi" section if found, None otherwise
        """
        pass

    @abstractmethod
    async def get_required_keys(
        self,
        transaction: Transaction,
        available_keys: List[str],
    ) -> List[str]:
        """
        Ask the chain which of the available public keys must sign.

        Args:
            transaction: Draft transaction
            available_keys: Candidate public keys

        Returns:
            Required public keys, in the order the chain returns them

        Raises:
            ResolverError: If the lookup fails
            UnknownContractError: If the chain does not know an account or contract
        """
        pass

    @abstractmethod
    async def push_transaction(self, transaction: Transaction) -> dict:
        """
        Submit a signed transaction to the network.

        Args:
            transaction: Signed transaction to submit

        Returns:
            Receipt returned by the node

        Raises:
            BroadcastError: If submission fails
        """
        pass

    async def get_abi(self, account_name: str) -> dict:
        """
        Get the ABI of the contract deployed at an account.

        Raises:
            UnknownContractError: If the account has no contract
        """
        code = await self.get_code(account_name)
        if not code or not code.get("abi"):
            raise UnknownContractError()
        return code["abi"]

    async def prepare_header(
        self,
        transaction: Transaction,
        expire_in_seconds: int = 60,
    ) -> Transaction:
        """
        Fill in the reference block and expiration of a draft transaction.

        Args:
            transaction: Draft transaction, updated in place
            expire_in_seconds: Expiration relative to the head block time

        Returns:
            The same transaction
        """
        info = await self.get_info()

        transaction.ref_block_num = info.ref_block_num
        transaction.ref_block_prefix = info.ref_block_prefix
        transaction.expiration = info.expiration(expire_in_seconds)

        return transaction

    async def __aenter__(self) -> "ChainInterface":
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.disconnect()
