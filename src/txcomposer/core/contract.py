"""
Contract proxy - one callable per action of a deployed contract.
"""

from typing import TYPE_CHECKING, Any, Awaitable, Callable, List

from txcomposer.core.schema import ContractSchema

if TYPE_CHECKING:
    from txcomposer.core.composer import ComposeResult, Composer


class ContractProxy:
    """
    Dispatch table over a contract's ABI actions.

    Each action call composes a single-message transaction through the
    composer, with the same argument and option rules as the composer's own
    action shorthands.
    """

    def __init__(self, composer: "Composer", schema: ContractSchema):
        self._composer = composer
        self._schema = schema

    @property
    def code(self) -> str:
        return self._schema.code

    @property
    def actions(self) -> List[str]:
        return self._schema.action_names

    def action(self, name: str) -> Callable[..., Awaitable["ComposeResult"]]:
        """
        Get the callable for an action.

        Raises:
            UnknownActionError: If the contract has no such action
        """
        definition = self._schema.get(name)

        def call(*args: Any, **kwargs: Any) -> Awaitable["ComposeResult"]:
            return self._composer.compose_action(definition, args, kwargs)

        call.__name__ = name
        return call

    def __getattr__(self, name: str) -> Callable[..., Awaitable["ComposeResult"]]:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.action(name)

    def __repr__(self) -> str:
        return f"ContractProxy(code={self.code}, actions={self.actions})"
