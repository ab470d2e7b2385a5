"""Signing agent interface (EIP-1193 shaped)."""

from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

AgentEventHandler = Callable[[Any], None]


class SigningAgent(ABC):
    """Wallet agent holding the user's keys.

    ``request`` raises :class:`~agroyield_sync.exceptions.ProviderRpcError`
    with the EIP-1193 ``code`` when the agent refuses or fails a request.
    Event names follow EIP-1193: ``accountsChanged``, ``chainChanged``,
    ``connect`` and ``disconnect``.
    """

    @abstractmethod
    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        pass

    @abstractmethod
    def on(self, event: str, handler: AgentEventHandler) -> None:
        pass

    @abstractmethod
    def remove_listener(self, event: str, handler: AgentEventHandler) -> None:
        pass
