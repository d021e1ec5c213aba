"""
Pytest configuration and shared fixtures for the test suite.
"""

from typing import Any, Dict, List, Optional

import pytest

from txcomposer.chain.interface import ChainInfo, ChainInterface
from txcomposer.config import ComposerConfig, NetworkType
from txcomposer.core.composer import Composer
from txcomposer.core.transaction import Transaction
from txcomposer.errors import UnknownContractError
from txcomposer.tx.keys import private_to_public


# ============================================================================
# Keys
# ============================================================================

PRIVATE_KEY = "1f" * 32
OTHER_PRIVATE_KEY = "2e" * 32

PUBLIC_KEY = private_to_public(PRIVATE_KEY)
OTHER_PUBLIC_KEY = private_to_public(OTHER_PRIVATE_KEY)

HEAD_BLOCK_ID = "00011170" + "a1b2c3d4" + "0" * 48

EXCHANGE_ABI = {
    "structs": [
        {
            "name": "order",
            "base": "",
            "fields": [
                {"name": "buyer", "type": "account_name"},
                {"name": "quantity", "type": "uint64"},
            ],
        },
        {
            "name": "limit_order",
            "base": "order",
            "fields": {"price": "uint64", "fill_or_kill": "bool"},
        },
    ],
    "actions": [
        {"action_name": "buy", "type": "limit_order"},
        {"name": "cancel", "type": "order"},
    ],
}


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def test_config() -> ComposerConfig:
    """Create a test configuration."""
    return ComposerConfig(
        network=NetworkType.LOCAL,
        http_endpoint="http://chain.test",
        broadcast=True,
        sign=True,
        expire_in_seconds=60,
        log_level="DEBUG",
    )


# ============================================================================
# Mock Chain Interface
# ============================================================================

class MockChainInterface(ChainInterface):
    """Mock chain interface for testing."""

    def __init__(self):
        self.account_keys: Dict[str, str] = {}
        self.abis: Dict[str, dict] = {}
        self.pushed: List[Transaction] = []
        self.calls: List[str] = []
        self.required_keys_requests: List[List[str]] = []
        self.push_error: Optional[Exception] = None
        self._connected = False

    async def connect(self) -> None:
        self._connected = True

    async def disconnect(self) -> None:
        self._connected = False

    async def get_info(self) -> ChainInfo:
        self.calls.append("get_info")
        return ChainInfo(
            head_block_num=70000,
            head_block_id=HEAD_BLOCK_ID,
            head_block_time="2017-09-01T12:00:00",
        )

    async def get_block(self, block_num_or_id: Any) -> Optional[dict]:
        self.calls.append("get_block")
        return {"block_num": block_num_or_id}

    async def get_account(self, account_name: str) -> Optional[dict]:
        self.calls.append("get_account")
        if account_name not in self.account_keys:
            raise UnknownContractError()
        return {"account_name": account_name}

    async def get_code(self, account_name: str) -> Optional[dict]:
        self.calls.append("get_code")
        if account_name not in self.abis:
            return None
        return {"account_name": account_name, "abi": self.abis[account_name]}

    async def get_required_keys(
        self,
        transaction: Transaction,
        available_keys: List[str],
    ) -> List[str]:
        self.calls.append("get_required_keys")
        self.required_keys_requests.append(list(available_keys))

        required = []
        for message in transaction.messages:
            for authorization in message.authorization:
                key = self.account_keys.get(authorization.account)
                if key is None:
                    raise UnknownContractError()
                if key in available_keys and key not in required:
                    required.append(key)
        return required

    async def push_transaction(self, transaction: Transaction) -> dict:
        self.calls.append("push_transaction")
        if self.push_error is not None:
            raise self.push_error
        self.pushed.append(transaction)
        return {
            "transaction_id": transaction.transaction_id,
            "processed": {"status": "executed"},
        }


@pytest.fixture
def mock_chain() -> MockChainInterface:
    """Create a mock chain with inita owning the test key."""
    chain = MockChainInterface()
    chain.account_keys["inita"] = PUBLIC_KEY
    chain.account_keys["initb"] = OTHER_PUBLIC_KEY
    return chain


@pytest.fixture
def composer(mock_chain, test_config) -> Composer:
    """Create a composer signing with the test key."""
    return Composer(chain=mock_chain, config=test_config, key_provider=PRIVATE_KEY)


def transfer_message(sender: str = "inita", recipient: str = "initb", amount: Any = "13") -> dict:
    """Build a structured transfer message."""
    return {
        "code": "eos",
        "type": "transfer",
        "data": {
            "from": sender,
            "to": recipient,
            "amount": amount,
            "memo": "爱",
        },
        "authorization": [{
            "account": sender,
            "permission": "active",
        }],
    }
