"""
Test suite for transaction composition.

Tests message accumulation, rollback, re-entrancy and broadcast gating.
"""

import asyncio

import httpx
import pytest

from txcomposer.chain.http import HttpChainAdapter
from txcomposer.config import ComposerConfig
from txcomposer.core.composer import ComposeOptions, Composer
from txcomposer.core.message import Message, encode_payload
from txcomposer.core.transaction import TransactionStatus
from txcomposer.errors import (
    ComposerError,
    ConcurrentCompositionError,
    MessageValidationError,
    RollbackError,
    UnknownContractError,
)

from conftest import PRIVATE_KEY, transfer_message


# ============================================================================
# Test Message Accumulation
# ============================================================================

class TestComposition:
    """Tests for building multi-message transactions."""

    @pytest.mark.asyncio
    async def test_two_transfers_no_broadcast(self, composer, mock_chain):
        """Two transfers compose into one transaction with the union scope."""
        def build(tr):
            tr.transfer("inita", "initb", 1, "")
            tr.transfer({"from": "inita", "to": "initc", "amount": 1, "memo": ""})

        result = await composer.transaction(build, broadcast=False)

        assert len(result.transaction.messages) == 2
        assert result.transaction.scope == ["inita", "initb", "initc"]
        assert result.broadcast is False
        assert "push_transaction" not in mock_chain.calls

    @pytest.mark.asyncio
    async def test_messages_keep_append_order(self, composer):
        """Messages are signed in the order they were appended."""
        def build(tr):
            tr.transfer("inita", "initc", 3, "third")
            tr.transfer("inita", "initb", 1, "first")
            tr.okproducer("inita", "initb", 1)

        result = await composer.transaction(build, broadcast=False)

        types = [(m.type, m.data.get("memo")) for m in result.transaction.messages]
        assert types == [("transfer", "third"), ("transfer", "first"), ("okproducer", None)]

    @pytest.mark.asyncio
    async def test_async_builder(self, composer):
        """A coroutine builder is awaited before signing."""
        async def build(tr):
            tr.transfer("inita", "initb", 1, "")
            await asyncio.sleep(0)
            tr.transfer("inita", "initb", 2, "")

        result = await composer.transaction(build, broadcast=False)

        assert [m.data["amount"] for m in result.transaction.messages] == [1, 2]

    @pytest.mark.asyncio
    async def test_default_authorization(self, composer):
        """The first account field authorizes the action."""
        result = await composer.transaction(
            lambda tr: tr.transfer("inita", "initb", 1, ""),
            broadcast=False,
        )

        message = result.transaction.messages[0]
        assert message.code == "eos"
        assert [a.to_dict() for a in message.authorization] == [
            {"account": "inita", "permission": "active"}
        ]

    @pytest.mark.asyncio
    async def test_generic_append(self, composer):
        """append() takes arbitrary messages and extends the scope."""
        def build(tr):
            tr.append(transfer_message("inita", "initb"))
            tr.append(
                code="exchange",
                type="buy",
                data={"buyer": "inita", "quantity": 5},
                authorization=[{"account": "initd", "permission": "active"}],
            )

        result = await composer.transaction(build, broadcast=False, sign=False)

        assert [m.type for m in result.transaction.messages] == ["transfer", "buy"]
        assert result.transaction.scope == ["inita", "initb", "initd"]

    @pytest.mark.asyncio
    async def test_handle_exposes_messages(self, composer):
        """The handle shows the messages appended so far."""
        seen = []

        def build(tr):
            tr.transfer("inita", "initb", 1, "")
            seen.append(len(tr.messages))
            tr.transfer("inita", "initb", 2, "")
            seen.append(len(tr.messages))

        await composer.transaction(build, broadcast=False)

        assert seen == [1, 2]

    @pytest.mark.asyncio
    async def test_handle_unusable_after_close(self, composer):
        """A handle kept past its transaction refuses new messages."""
        kept = []

        def build(tr):
            kept.append(tr)
            tr.transfer("inita", "initb", 1, "")

        await composer.transaction(build, broadcast=False)

        with pytest.raises(ComposerError, match="no longer composing"):
            kept[0].transfer("inita", "initb", 1, "")

    @pytest.mark.asyncio
    async def test_unknown_action(self, composer):
        """Unknown actions on the handle raise UnknownContractError."""
        with pytest.raises(UnknownContractError, match="unknown key"):
            await composer.transaction(lambda tr: tr.notanaction("inita"), broadcast=False)

    @pytest.mark.asyncio
    async def test_force_message_data_hex(self, mock_chain, test_config):
        """Payloads are hex encoded when configured."""
        config = test_config.model_copy(update={"force_message_data_hex": True})
        composer = Composer(chain=mock_chain, config=config, key_provider=PRIVATE_KEY)

        result = await composer.transfer("inita", "initb", 1, "", False)

        message = result.transaction.messages[0]
        expected = encode_payload({"from": "inita", "to": "initb", "amount": 1, "memo": ""})
        assert message.data == expected
        assert result.transaction.scope == ["inita", "initb"]


# ============================================================================
# Test Rollback
# ============================================================================

class TestRollback:
    """Tests for rollback when a builder fails."""

    @pytest.mark.asyncio
    async def test_builder_raises(self, composer, mock_chain):
        """A raising builder rejects with its own error and signs nothing."""
        def build(tr):
            tr.transfer("inita", "initb", 1, "")
            tr.transfer("inita", "initb", 2, "")
            raise RollbackError("rollback")

        with pytest.raises(RollbackError, match="rollback"):
            await composer.transaction(build)

        assert mock_chain.calls == []
        assert mock_chain.pushed == []
        assert composer.in_transaction is False

    @pytest.mark.asyncio
    async def test_explicit_rollback(self, composer, mock_chain):
        """tr.rollback() aborts the transaction."""
        def build(tr):
            tr.transfer("inita", "initb", 1, "")
            tr.rollback()

        with pytest.raises(RollbackError, match="rollback"):
            await composer.transaction(build)

        assert mock_chain.pushed == []

    @pytest.mark.asyncio
    async def test_async_builder_rejects(self, composer, mock_chain):
        """An awaited builder failure propagates unchanged."""
        class BusinessError(Exception):
            pass

        error = BusinessError("rollback")

        async def build(tr):
            tr.transfer("inita", "initb", 1, "")
            await asyncio.sleep(0)
            raise error

        with pytest.raises(BusinessError) as exc_info:
            await composer.transaction(build)

        assert exc_info.value is error
        assert mock_chain.calls == []

    @pytest.mark.asyncio
    async def test_composer_usable_after_rollback(self, composer, mock_chain):
        """The scope is released after a rollback."""
        def failing(tr):
            raise RuntimeError("rollback")

        with pytest.raises(RuntimeError):
            await composer.transaction(failing)

        result = await composer.transfer("inita", "initb", 1, "")

        assert result.broadcast is True
        assert len(mock_chain.pushed) == 1

    @pytest.mark.asyncio
    async def test_invalid_arguments_roll_back(self, composer, mock_chain):
        """Argument errors inside a builder discard earlier messages."""
        def build(tr):
            tr.transfer("inita", "initb", 1, "")
            tr.transfer("inita", "initb", -1, "")

        with pytest.raises(MessageValidationError, match="negative"):
            await composer.transaction(build)

        assert mock_chain.pushed == []


# ============================================================================
# Test Re-entrancy
# ============================================================================

class TestReentrancy:
    """Tests for the single open composition per composer."""

    @pytest.mark.asyncio
    async def test_nested_transaction(self, composer, mock_chain):
        """Calling the composer from inside a builder fails."""
        def build(tr):
            tr.transfer("inita", "initb", 1, "")
            composer.transfer("inita", "initb", 1, "")

        with pytest.raises(ConcurrentCompositionError, match="Callback during a transaction"):
            await composer.transaction(build)

        assert mock_chain.pushed == []
        assert composer.in_transaction is False

    @pytest.mark.asyncio
    async def test_nested_transaction_async(self, composer):
        """Awaiting the composer from an async builder fails the same way."""
        async def build(tr):
            await composer.transaction(lambda inner: inner.transfer("inita", "initb", 1, ""))

        with pytest.raises(ConcurrentCompositionError, match="Callback during a transaction"):
            await composer.transaction(build)

    @pytest.mark.asyncio
    async def test_callback_argument(self, composer):
        """Passing a callback to an action inside a transaction fails."""
        def build(tr):
            tr.okproducer("inita", "inita", 1, lambda cb: None)

        with pytest.raises(ConcurrentCompositionError, match="Callback during a transaction"):
            await composer.transaction(build)

    @pytest.mark.asyncio
    async def test_nested_contract(self, composer):
        """Opening a contract from inside a builder fails."""
        def build(tr):
            composer.contract("eos")

        with pytest.raises(ConcurrentCompositionError):
            await composer.transaction(build)

    @pytest.mark.asyncio
    async def test_concurrent_compositions_on_one_composer(self, composer):
        """A second composition started while one is suspended fails."""
        started = asyncio.Event()
        release = asyncio.Event()

        async def slow(tr):
            tr.transfer("inita", "initb", 1, "")
            started.set()
            await release.wait()

        first = asyncio.ensure_future(composer.transaction(slow, broadcast=False))
        await started.wait()

        with pytest.raises(ConcurrentCompositionError):
            await composer.transfer("inita", "initb", 1, "")

        release.set()
        result = await first

        assert len(result.transaction.messages) == 1

    @pytest.mark.asyncio
    async def test_independent_composers_run_concurrently(self, mock_chain, test_config):
        """Separate composer instances do not share scope state."""
        first = Composer(chain=mock_chain, config=test_config, key_provider=PRIVATE_KEY)
        second = Composer(chain=mock_chain, config=test_config, key_provider=PRIVATE_KEY)

        async def build(tr):
            tr.transfer("inita", "initb", 1, "")
            await asyncio.sleep(0)

        results = await asyncio.gather(
            first.transaction(build, broadcast=False),
            second.transaction(build, broadcast=False),
        )

        assert all(len(r.transaction.signatures) == 1 for r in results)


# ============================================================================
# Test Broadcast Gating
# ============================================================================

class TestBroadcastGating:
    """Tests for the broadcast and sign options."""

    @pytest.mark.asyncio
    async def test_broadcast_by_default(self, composer, mock_chain):
        """Transactions are pushed unless disabled."""
        result = await composer.transfer("inita", "initb", 1, "")

        assert result.broadcast is True
        assert result.status == TransactionStatus.COMMITTED
        assert mock_chain.pushed == [result.transaction]
        assert result.processed["processed"] == {"status": "executed"}
        assert result.transaction_id == result.transaction.transaction_id

    @pytest.mark.asyncio
    async def test_no_broadcast(self, composer, mock_chain):
        """broadcast=False returns the signed transaction without pushing."""
        result = await composer.transfer("inita", "initb", 1, "", broadcast=False)

        assert "push_transaction" not in mock_chain.calls
        assert len(result.transaction.signatures) == 1
        assert result.processed is None

    @pytest.mark.asyncio
    async def test_trailing_bool_is_broadcast_flag(self, composer, mock_chain):
        """A trailing False after the action arguments disables broadcast."""
        result = await composer.transfer("inita", "initb", 1, "", False)

        assert result.broadcast is False
        assert mock_chain.pushed == []

    @pytest.mark.asyncio
    async def test_trailing_options_mapping(self, composer, mock_chain):
        """A trailing mapping after the action arguments holds options."""
        result = await composer.transfer("inita", "initb", 1, "", {"broadcast": False, "sign": False})

        assert result.transaction.signatures == []
        assert mock_chain.calls == []

    @pytest.mark.asyncio
    async def test_no_sign_no_broadcast(self, composer, mock_chain):
        """sign=False and broadcast=False make no chain calls."""
        result = await composer.transfer("inita", "initb", 1, "", broadcast=False, sign=False)

        assert result.transaction.signatures == []
        assert mock_chain.calls == []

    @pytest.mark.asyncio
    async def test_no_sign_still_broadcasts(self, composer, mock_chain):
        """sign=False alone does not skip the broadcast."""
        result = await composer.transfer("inita", "initb", 1, "", sign=False)

        assert result.transaction.signatures == []
        assert mock_chain.calls == ["get_info", "push_transaction"]

    @pytest.mark.asyncio
    async def test_config_defaults(self, mock_chain, test_config):
        """Config broadcast/sign defaults apply when options are not given."""
        config = test_config.model_copy(update={"broadcast": False})
        composer = Composer(chain=mock_chain, config=config, key_provider=PRIVATE_KEY)

        result = await composer.transfer("inita", "initb", 1, "")

        assert result.broadcast is False
        assert len(result.transaction.signatures) == 1

    @pytest.mark.asyncio
    async def test_broadcast_failure(self, composer, mock_chain):
        """Broadcast errors propagate to the caller."""
        from txcomposer.errors import BroadcastError

        mock_chain.push_error = BroadcastError("Chain API error: expired", error_code="500")

        with pytest.raises(BroadcastError, match="expired") as exc_info:
            await composer.transfer("inita", "initb", 1, "")

        assert exc_info.value.error_code == "500"
        assert composer.in_transaction is False

    def test_options_coerce(self):
        """Options accept None, bools, mappings and instances."""
        assert ComposeOptions.coerce(None) == ComposeOptions()
        assert ComposeOptions.coerce(False) == ComposeOptions(broadcast=False)
        assert ComposeOptions.coerce({"sign": False}) == ComposeOptions(sign=False)

        with pytest.raises(MessageValidationError, match="Unknown options"):
            ComposeOptions.coerce({"expire": 10})
        with pytest.raises(MessageValidationError):
            ComposeOptions.coerce(lambda: None)

    def test_options_must_be_bools(self, composer, mock_chain):
        """String flags are rejected rather than read as truthy."""
        with pytest.raises(MessageValidationError, match="broadcast must be a bool"):
            ComposeOptions.coerce({"broadcast": "false"})
        with pytest.raises(MessageValidationError, match="sign must be a bool"):
            composer.transaction(lambda tr: None, sign=0)
        with pytest.raises(MessageValidationError):
            composer.transfer("inita", "initb", 1, "", {"broadcast": "false"})

        assert mock_chain.calls == []
        assert composer.in_transaction is False

    def test_options_resolve(self):
        """Unset options fall back to config."""
        config = ComposerConfig(broadcast=True, sign=False)

        assert ComposeOptions().resolve(config) == (True, False)
        assert ComposeOptions(broadcast=False, sign=True).resolve(config) == (False, True)


# ============================================================================
# Test Structured Input
# ============================================================================

class TestStructuredTransaction:
    """Tests for {scope, messages} input."""

    @pytest.mark.asyncio
    async def test_custom_transfer(self, composer, mock_chain):
        """A structured transaction is signed as given."""
        result = await composer.transaction(
            {
                "scope": ["initb", "inita"],
                "messages": [transfer_message("inita", "initb")],
            },
            {"broadcast": False},
        )

        transaction = result.transaction
        assert transaction.scope == ["inita", "initb"]
        assert transaction.messages[0].data["memo"] == "爱"
        assert transaction.messages[0].data["amount"] == "13"
        assert len(transaction.signatures) == 1
        assert mock_chain.pushed == []

    @pytest.mark.asyncio
    async def test_supplied_signatures_dropped(self, composer, mock_chain):
        result = await composer.transaction(
            {
                "scope": ["inita", "initb"],
                "messages": [transfer_message()],
                "signatures": ["SIG_ED_00"],
            },
            broadcast=False,
            sign=False,
        )

        assert result.transaction.signatures == []
        assert mock_chain.calls == []

    @pytest.mark.asyncio
    async def test_missing_message_field(self, composer, mock_chain):
        """Each message must carry code, type, data and authorization."""
        message = transfer_message()
        del message["authorization"]

        with pytest.raises(MessageValidationError, match="authorization"):
            await composer.transaction({"scope": ["inita"], "messages": [message]})

        assert mock_chain.calls == []
        assert composer.in_transaction is False

    @pytest.mark.asyncio
    async def test_missing_scope(self, composer):
        with pytest.raises(MessageValidationError, match="scope"):
            await composer.transaction({"messages": [transfer_message()]})

    def test_invalid_argument(self, composer):
        """transaction() rejects anything but a builder or mapping."""
        with pytest.raises(MessageValidationError):
            composer.transaction(["not", "a", "transaction"])


# ============================================================================
# Test Empty Transactions
# ============================================================================

class TestEmptyTransaction:
    """An empty transaction is a validation error."""

    @pytest.mark.asyncio
    async def test_empty_builder(self, composer, mock_chain):
        with pytest.raises(MessageValidationError, match="^Transaction has no messages$"):
            await composer.transaction(lambda tr: None)

        assert mock_chain.calls == []
        assert composer.in_transaction is False

    @pytest.mark.asyncio
    async def test_empty_structured(self, composer):
        with pytest.raises(MessageValidationError, match="no messages"):
            await composer.transaction({"scope": [], "messages": []})


# ============================================================================
# Test Action Shorthands
# ============================================================================

class TestActionShorthands:
    """Tests for composer.<action>(...) calls."""

    @pytest.mark.asyncio
    async def test_keyword_arguments(self, composer):
        result = await composer.transfer("inita", "initb", amount=5, memo="hi", broadcast=False)

        assert result.transaction.messages[0].data == {
            "from": "inita", "to": "initb", "amount": 5, "memo": "hi",
        }

    @pytest.mark.asyncio
    async def test_newaccount_authorities(self, composer):
        """Key and account shorthands expand to authorities."""
        result = await composer.newaccount(
            {
                "creator": "inita",
                "name": "a12345",
                "owner": "EOS" + "ab" * 32,
                "active": "EOS" + "ab" * 32,
                "recovery": "inita",
                "deposit": "1 EOS",
            },
            broadcast=False,
        )

        data = result.transaction.messages[0].data
        assert data["owner"]["keys"] == ({"key": "EOS" + "ab" * 32, "weight": 1},)
        assert data["recovery"]["accounts"][0]["permission"]["account"] == "inita"
        assert result.transaction.scope == ["a12345", "inita"]

    def test_too_many_arguments(self, composer):
        with pytest.raises(MessageValidationError, match="plus options"):
            composer.transfer("inita", "initb", 1, "", False, "extra")

    def test_unknown_action(self, composer):
        with pytest.raises(UnknownContractError):
            composer.notanaction

    def test_private_attribute(self, composer):
        with pytest.raises(AttributeError):
            composer._missing

    @pytest.mark.asyncio
    async def test_missing_fields(self, composer, mock_chain):
        with pytest.raises(MessageValidationError, match="missing fields memo"):
            await composer.transfer("inita", "initb", 1)

        assert mock_chain.calls == []

    def test_unknown_attribute_protocol(self, composer):
        """Unknown actions follow the attribute protocol as well."""
        assert hasattr(composer, "notanaction") is False
        assert getattr(composer, "notanaction", None) is None
        assert hasattr(composer, "transfer") is True

    @pytest.mark.asyncio
    async def test_unknown_handle_attribute(self, composer):
        seen = []

        def build(tr):
            seen.append(getattr(tr, "notanaction", None))
            tr.transfer("inita", "initb", 1, "")

        await composer.transaction(build, broadcast=False)

        assert seen == [None]


# ============================================================================
# Test Lifecycle
# ============================================================================

class TestComposerLifecycle:
    """Tests for releasing the chain connection."""

    @pytest.mark.asyncio
    async def test_context_manager_closes_chain(self, test_config):
        chain = HttpChainAdapter(
            test_config,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={})),
        )

        async with Composer(chain=chain, config=test_config) as composer:
            assert chain._client is not None
            assert composer.chain is chain

        assert chain._client is None

    @pytest.mark.asyncio
    async def test_close_owned_adapter(self, test_config):
        composer = Composer(config=test_config)
        await composer.chain.connect()

        await composer.close()

        assert isinstance(composer.chain, HttpChainAdapter)
        assert composer.chain._client is None
