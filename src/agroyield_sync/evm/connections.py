"""Connection helpers bridging a signing agent into web3."""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Any, cast

from web3 import AsyncWeb3
from web3.providers.async_base import AsyncBaseProvider
from web3.types import RPCEndpoint, RPCResponse

from ..base import SigningAgent
from ..exceptions import ProviderRpcError

logger = logging.getLogger(__name__)


class AgentProvider(AsyncBaseProvider):
    """web3 transport that forwards every JSON-RPC call to a signing agent."""

    def __init__(self, agent: SigningAgent) -> None:
        super().__init__()
        self._agent = agent
        self._ids = itertools.count(1)

    @property
    def agent(self) -> SigningAgent:
        return self._agent

    async def make_request(self, method: RPCEndpoint, params: Any) -> RPCResponse:
        request_id = next(self._ids)
        try:
            result = await self._agent.request(str(method), list(params) if params else [])
        except ProviderRpcError as exc:
            error: dict[str, Any] = {"code": exc.code, "message": exc.message}
            if exc.data is not None:
                error["data"] = exc.data
            response = {"jsonrpc": "2.0", "id": request_id, "error": error}
            return cast(RPCResponse, response)
        return {"jsonrpc": "2.0", "id": request_id, "result": result}

    async def is_connected(self, show_traceback: bool = False) -> bool:
        try:
            await self._agent.request("eth_chainId", [])
        except Exception:
            if show_traceback:
                logger.exception("Signing agent is not reachable")
            return False
        return True


@dataclass(eq=False)
class AccountSigner:
    """Active account bound to a provider.

    Compared by identity: a new instance is created for every connect and
    account switch so downstream bindings notice the change.
    """

    address: str
    provider: AsyncWeb3

    def transaction_params(self) -> dict[str, Any]:
        return {"from": self.address}


def build_provider(agent: SigningAgent) -> AsyncWeb3:
    """Create an ``AsyncWeb3`` instance talking through ``agent``."""
    return AsyncWeb3(AgentProvider(agent))
