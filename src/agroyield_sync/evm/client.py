"""AgroYield client wiring the wallet session to bindings, caches and mutations."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Coroutine
from decimal import Decimal
from typing import Any

import httpx
import requests

from ..base import SigningAgent
from ..cache import Clock
from ..content.gateways import ContentGatewayResolver, ImageSource
from ..content.pinning import PinningClient
from ..mutations import MutationPipeline
from ..queries import QueryCache
from ..registration import RegistrationCache
from ..types import (
    InvestorData,
    PlatformStats,
    Project,
    ProjectDraft,
    RegistrationForm,
    SessionEvent,
    SessionEventKind,
    TransactionResult,
    UserProfile,
)
from ..utils import format_address
from .bindings import ContractBindingManager, LedgerBuilder
from .config import ClientConfig
from .connections import build_provider
from .ledger import LedgerClient
from .session import ProviderFactory, WalletSession

logger = logging.getLogger(__name__)


class AgroYieldClient:
    """Single entry point for an AgroYield application.

    Owns the reset ordering between components: on an account change the
    registration state is cleared and the previous account's cache entries
    are evicted before the binding manager sees the new signer, so nothing
    fetched for the new account can race with stale state.
    """

    def __init__(
        self,
        agent: SigningAgent | None,
        config: ClientConfig | None = None,
        *,
        http_client: httpx.AsyncClient | None = None,
        pinning_session: requests.Session | None = None,
        builder: LedgerBuilder | None = None,
        provider_factory: ProviderFactory = build_provider,
        clock: Clock = time.monotonic,
    ) -> None:
        config = config or ClientConfig()
        self._config = config

        self.session = WalletSession(agent, config.network, provider_factory=provider_factory)
        self.bindings = ContractBindingManager(
            config.contracts,
            config.bindings,
            builder=builder,
            transactions=config.transactions,
        )
        self.content = ContentGatewayResolver(config.gateways, http_client)
        self.pinning = (
            PinningClient(config.pinning, pinning_session) if config.pinning.is_configured else None
        )
        self.registration = RegistrationCache(self.bindings, self.content)
        self.queries = QueryCache(self.bindings, config.cache, clock=clock)
        self.mutations = MutationPipeline(
            self.session, self.bindings, self.queries, self.registration, self.pinning
        )

        self._background: set[asyncio.Task[Any]] = set()
        self._listener_removers = [
            self.session.add_listener(self._on_session_event),
            self.bindings.add_ready_listener(self._on_bindings_ready),
        ]

    @classmethod
    def from_env(
        cls, agent: SigningAgent | None, prefix: str = "AGROYIELD_", **kwargs: Any
    ) -> AgroYieldClient:
        return cls(agent, ClientConfig.from_env(prefix), **kwargs)

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def account(self) -> str | None:
        return self.session.account

    @property
    def profile(self) -> UserProfile | None:
        return self.registration.profile

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> str | None:
        """Silently restore a previously authorised session."""
        return await self.session.restore()

    async def connect(self) -> str:
        return await self.session.connect()

    def disconnect(self) -> None:
        self.session.disconnect()

    async def wait_ready(self) -> LedgerClient:
        return await self.bindings.wait_ready()

    async def settle(self) -> None:
        """Wait for queued wallet events and the background work they started."""

        await self.session.settle_events()
        pending = [task for task in self._background if not task.done()]
        while pending:
            await asyncio.gather(*pending, return_exceptions=True)
            pending = [task for task in self._background if not task.done()]

    async def close(self) -> None:
        for remove in self._listener_removers:
            remove()
        self._listener_removers.clear()

        self.registration.close()
        self.bindings.close()
        self.queries.clear()
        for task in list(self._background):
            task.cancel()
        self._background.clear()

        await self.session.close()
        await self.content.aclose()

    async def __aenter__(self) -> AgroYieldClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def check_registration(self) -> UserProfile | None:
        return await self.registration.check(self.session.account)

    async def get_all_projects(self) -> list[Project]:
        return await self.queries.get_all_projects()

    async def get_project(self, project_id: int | str) -> Project | None:
        return await self.queries.get_project(project_id)

    async def get_platform_stats(self) -> PlatformStats | None:
        return await self.queries.get_platform_stats()

    async def get_investor_data(self, address: str | None = None) -> InvestorData | None:
        return await self.queries.get_investor_data(address or self.session.account)

    async def get_token_balance(self, address: str | None = None) -> Decimal:
        return await self.queries.get_token_balance(address or self.session.account)

    def project_image(self, project: Project, on_change: Any = None) -> ImageSource:
        return self.content.watch_image(project.image_ref, project.category, on_change)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def register(self, form: RegistrationForm) -> TransactionResult:
        if self.pinning is not None:
            return await self.mutations.register_with_profile(form)
        return await self.mutations.register(form.name)

    async def create_project(self, draft: ProjectDraft) -> TransactionResult:
        return await self.mutations.create_project(draft)

    async def invest(
        self, project_id: int | str, amount: Decimal | int | float | str
    ) -> TransactionResult:
        return await self.mutations.invest(project_id, amount)

    # ------------------------------------------------------------------
    # Event wiring
    # ------------------------------------------------------------------
    def _on_session_event(self, event: SessionEvent) -> None:
        session = self.session

        if event.kind is SessionEventKind.CONNECTED:
            self.bindings.update(session.provider, session.signer)
        elif event.kind is SessionEventKind.ACCOUNT_CHANGED:
            logger.info(
                "Resetting state for account switch %s -> %s",
                format_address(event.previous_account),
                format_address(event.account),
            )
            self.registration.reset()
            self.queries.invalidate_account(event.previous_account)
            self.bindings.update(session.provider, session.signer)
        elif event.kind is SessionEventKind.CHAIN_CHANGED:
            self.registration.reset()
            self.queries.clear()
            self.bindings.clear()
            if session.is_on_expected_network:
                self.bindings.update(session.provider, session.signer)
        elif event.kind is SessionEventKind.DISCONNECTED:
            self.registration.reset()
            self.queries.invalidate_account(event.previous_account)
            self.bindings.clear()

    def _on_bindings_ready(self, ledger: LedgerClient) -> None:
        account = self.session.account
        if account:
            self._spawn(self.registration.check(account))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
