from __future__ import annotations

from typing import Any, cast

import pytest
from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3, Web3

from agroyield_sync.constants import UNRECOGNIZED_CHAIN, USER_REJECTED
from agroyield_sync.evm.agent import LocalAccountAgent
from agroyield_sync.exceptions import ProviderRpcError, ValidationError

FIRST = cast(LocalAccount, Account.from_key("0x" + "11" * 32))
SECOND = cast(LocalAccount, Account.from_key("0x" + "22" * 32))
AMOY = 80002


class DummyOnion:
    def __init__(self) -> None:
        self.injected: list[tuple[Any, int]] = []

    def inject(self, middleware: Any, layer: int) -> None:
        self.injected.append((middleware, layer))


class DummyEth:
    def __init__(self) -> None:
        self.chain_lookups = 0

    @property
    def chain_id(self) -> Any:
        return self._chain_id()

    async def _chain_id(self) -> int:
        self.chain_lookups += 1
        return AMOY


class DummyProvider:
    def __init__(self, response: dict[str, Any]) -> None:
        self.response = response
        self.requests: list[tuple[str, list[Any]]] = []

    async def make_request(self, method: str, params: list[Any]) -> dict[str, Any]:
        self.requests.append((method, params))
        return self.response


class DummyWeb3:
    def __init__(self, response: dict[str, Any] | None = None) -> None:
        self.middleware_onion = DummyOnion()
        self.eth = DummyEth()
        self.provider = DummyProvider(response or {"jsonrpc": "2.0", "id": 1, "result": "0x10"})


def _agent(**kwargs: Any) -> tuple[LocalAccountAgent, DummyWeb3]:
    web3 = DummyWeb3(kwargs.pop("response", None))
    agent = LocalAccountAgent([FIRST, SECOND], web3=cast(AsyncWeb3, web3), **kwargs)
    return agent, web3


def test_signing_middleware_installed_first() -> None:
    _, web3 = _agent()
    assert [layer for _, layer in web3.middleware_onion.injected] == [0]


def test_requires_endpoint() -> None:
    with pytest.raises(ValidationError, match="RPC URL"):
        LocalAccountAgent(FIRST)


def test_from_key_rejects_garbage() -> None:
    with pytest.raises(ValidationError, match="private key"):
        LocalAccountAgent.from_key("not-a-key", "http://localhost:8545")


@pytest.mark.asyncio
async def test_accounts_require_authorisation() -> None:
    agent, _ = _agent()

    assert await agent.request("eth_accounts") == []
    assert await agent.request("eth_requestAccounts") == [FIRST.address]
    assert await agent.request("eth_accounts") == [FIRST.address]


@pytest.mark.asyncio
async def test_rejecting_agent() -> None:
    agent, _ = _agent(auto_approve=False)

    with pytest.raises(ProviderRpcError) as exc_info:
        await agent.request("eth_requestAccounts")
    assert exc_info.value.code == USER_REJECTED


@pytest.mark.asyncio
async def test_chain_id_is_cached_hex() -> None:
    agent, web3 = _agent()

    assert await agent.request("eth_chainId") == hex(AMOY)
    assert await agent.request("eth_chainId") == hex(AMOY)
    assert web3.eth.chain_lookups == 1


@pytest.mark.asyncio
async def test_switch_only_to_served_chain() -> None:
    agent, _ = _agent()

    assert await agent.request("wallet_switchEthereumChain", [{"chainId": hex(AMOY)}]) is None
    with pytest.raises(ProviderRpcError) as exc_info:
        await agent.request("wallet_switchEthereumChain", [{"chainId": "0x1"}])
    assert exc_info.value.code == UNRECOGNIZED_CHAIN


@pytest.mark.asyncio
async def test_personal_sign_recovers_to_active_account() -> None:
    agent, _ = _agent()
    await agent.request("eth_requestAccounts")
    message = Web3.to_hex(text="hello farm")

    signature = await agent.request("personal_sign", [message, FIRST.address])

    recovered = Account.recover_message(encode_defunct(hexstr=message), signature=signature)
    assert recovered == FIRST.address


@pytest.mark.asyncio
async def test_personal_sign_requires_authorisation() -> None:
    agent, _ = _agent()

    with pytest.raises(ProviderRpcError) as exc_info:
        await agent.request("personal_sign", ["0x00", FIRST.address])
    assert exc_info.value.code == 4100


@pytest.mark.asyncio
async def test_other_methods_forwarded() -> None:
    agent, web3 = _agent()

    assert await agent.request("eth_blockNumber") == "0x10"
    assert web3.provider.requests == [("eth_blockNumber", [])]


@pytest.mark.asyncio
async def test_forwarded_error_raised() -> None:
    error = {"code": -32000, "message": "header not found"}
    agent, _ = _agent(response={"jsonrpc": "2.0", "id": 1, "error": error})

    with pytest.raises(ProviderRpcError, match="header not found") as exc_info:
        await agent.request("eth_getBalance", [FIRST.address, "latest"])
    assert exc_info.value.code == -32000


@pytest.mark.asyncio
async def test_switch_account_and_disconnect_emit_events() -> None:
    agent, _ = _agent()
    await agent.request("eth_requestAccounts")
    seen: list[tuple[str, Any]] = []
    agent.on("accountsChanged", lambda payload: seen.append(("accounts", payload)))
    agent.on("disconnect", lambda payload: seen.append(("disconnect", payload)))

    agent.switch_account(SECOND.address.lower())
    agent.disconnect()

    assert seen[0] == ("accounts", [SECOND.address])
    assert seen[1] == ("accounts", [])
    assert seen[2][0] == "disconnect"
    assert await agent.request("eth_accounts") == []
