"""Pytest fixtures for the AgroYield sync layer tests."""

from __future__ import annotations

import pytest
from fakes import ACCOUNT_A, MANAGER, FakeAgent, FakeLedger, ManualClock, make_provider

from agroyield_sync.evm.bindings import ContractBindingManager
from agroyield_sync.evm.config import BindingConfig, ContractAddresses
from agroyield_sync.evm.connections import AccountSigner

ADDRESSES = ContractAddresses(
    project_factory="0x" + "1" * 40,
    investment_manager=MANAGER,
    stable_token="0x" + "2" * 40,
)


@pytest.fixture
def agent() -> FakeAgent:
    return FakeAgent()


@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def addresses() -> ContractAddresses:
    return ADDRESSES


@pytest.fixture
def bindings(ledger: FakeLedger) -> ContractBindingManager:
    """Binding manager whose builder always yields the shared fake ledger."""
    return ContractBindingManager(
        ADDRESSES,
        BindingConfig(settle_delay=0),
        builder=lambda provider, signer, addresses: ledger,
    )


@pytest.fixture
def ready_bindings(bindings: ContractBindingManager, agent: FakeAgent) -> ContractBindingManager:
    provider = make_provider(agent)
    bindings.update(provider, AccountSigner(address=ACCOUNT_A, provider=provider))
    assert bindings.is_ready
    return bindings
