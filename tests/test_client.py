"""Tests for the client's cross-component reset ordering."""

from __future__ import annotations

from typing import Any

import httpx
import pytest
import pytest_asyncio
from fakes import ACCOUNT_A, ACCOUNT_B, FakeAgent, FakeLedger, make_provider, profile_record

from agroyield_sync import AgroYieldClient
from agroyield_sync.evm.config import BindingConfig, ClientConfig, ContractAddresses
from agroyield_sync.types import BindingState, RegistrationForm, RegistrationState, UserRole


def _profile_document(request: httpx.Request) -> httpx.Response:
    return httpx.Response(200, json={"role": "farmer", "bio": "Coffee"})


class Harness:
    def __init__(
        self, agent: FakeAgent, ledger: FakeLedger, addresses: ContractAddresses
    ) -> None:
        self.ledger = ledger
        self.log: list[str] = []
        self.signers: list[Any] = []
        config = ClientConfig(contracts=addresses, bindings=BindingConfig(settle_delay=0))
        self.client = AgroYieldClient(
            agent,
            config,
            http_client=httpx.AsyncClient(transport=httpx.MockTransport(_profile_document)),
            builder=self.build,
            provider_factory=make_provider,
        )

    def build(self, provider: Any, signer: Any, addresses: Any) -> FakeLedger:
        self.log.append(f"build:{signer.address}")
        self.signers.append(signer)
        return self.ledger

    def trace_resets(self) -> None:
        client = self.client
        reset = client.registration.reset
        invalidate = client.queries.invalidate_account

        def traced_reset() -> None:
            self.log.append("reset")
            reset()

        def traced_invalidate(address: str | None) -> None:
            self.log.append(f"evict:{address}")
            invalidate(address)

        client.registration.reset = traced_reset  # type: ignore[method-assign]
        client.queries.invalidate_account = traced_invalidate  # type: ignore[method-assign]


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent(accounts=(ACCOUNT_A, ACCOUNT_B))


@pytest_asyncio.fixture
async def harness(agent: FakeAgent, ledger: FakeLedger, addresses: ContractAddresses):
    ledger.registered[ACCOUNT_A] = True
    ledger.profiles[ACCOUNT_A] = profile_record("Lan")
    ledger.registered[ACCOUNT_B] = True
    ledger.profiles[ACCOUNT_B] = profile_record("Minh")
    harness = Harness(agent, ledger, addresses)
    yield harness
    await harness.client.close()


@pytest.mark.asyncio
async def test_connect_binds_and_checks_registration(harness: Harness) -> None:
    client = harness.client

    await client.connect()
    await client.settle()

    assert client.bindings.state is BindingState.READY
    assert client.registration.state is RegistrationState.REGISTERED
    assert client.profile is not None
    assert client.profile.name == "Lan"
    assert client.profile.bio == "Coffee"
    assert harness.ledger.calls[0] == ("is_registered", (ACCOUNT_A,))


@pytest.mark.asyncio
async def test_account_switch_resets_before_rebinding(harness: Harness, agent) -> None:
    client = harness.client
    await client.connect()
    await client.settle()
    await client.get_investor_data()
    harness.trace_resets()

    agent.emit("accountsChanged", [ACCOUNT_B])
    await client.settle()

    assert harness.log[-3:] == ["reset", f"evict:{ACCOUNT_A}", f"build:{ACCOUNT_B}"]
    checked = [args[0] for name, args in harness.ledger.calls if name == "is_registered"]
    assert checked == [ACCOUNT_A, ACCOUNT_B]
    assert client.profile is not None and client.profile.name == "Minh"
    assert client.registration.last_address == ACCOUNT_B.lower()

    await client.get_investor_data(ACCOUNT_A)
    assert harness.ledger.count("get_investor_data") == 2


@pytest.mark.asyncio
async def test_wrong_chain_unbinds_until_repaired(harness: Harness, agent) -> None:
    client = harness.client
    await client.connect()
    await client.settle()
    await client.get_all_projects()

    agent.emit("chainChanged", "0x1")
    await client.settle()

    assert client.bindings.state is BindingState.UNBOUND
    assert client.profile is None
    assert await client.get_all_projects() == []

    agent.emit("chainChanged", client.session.expected_chain_id)
    await client.settle()

    assert client.bindings.state is BindingState.READY
    assert client.profile is not None


@pytest.mark.asyncio
async def test_disconnect_clears_everything(harness: Harness) -> None:
    client = harness.client
    await client.connect()
    await client.settle()

    client.disconnect()
    await client.settle()

    assert client.account is None
    assert client.profile is None
    assert client.bindings.ledger is None


@pytest.mark.asyncio
async def test_register_without_pinning_uses_name_only(harness: Harness, ledger) -> None:
    ledger.registered.clear()
    client = harness.client
    await client.connect()
    await client.settle()
    assert client.registration.state is RegistrationState.UNREGISTERED

    await client.register(RegistrationForm(name="Lan", role=UserRole.FARMER))

    assert ("register", ("Lan", "")) in ledger.calls
    assert client.registration.is_registered


@pytest.mark.asyncio
async def test_context_manager_restores_session(
    agent: FakeAgent, ledger: FakeLedger, addresses: ContractAddresses
) -> None:
    agent.authorised = True
    harness = Harness(agent, ledger, addresses)

    async with harness.client as client:
        assert client.account == ACCOUNT_A
        await client.settle()
        assert client.bindings.is_ready

    assert not agent.listener_count("accountsChanged")
