"""Contract binding lifecycle and readiness gate."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable

from web3 import AsyncWeb3

from ..exceptions import BindingNotReadyError
from ..types import BindingState
from ..utils import describe_failure
from .config import BindingConfig, ContractAddresses, TransactionConfig
from .connections import AccountSigner
from .ledger import LedgerClient, build_ledger_client

logger = logging.getLogger(__name__)

LedgerBuilder = Callable[[AsyncWeb3, AccountSigner, ContractAddresses], LedgerClient]
ReadyListener = Callable[[LedgerClient], None]


class ContractBindingManager:
    """Build contract bindings for the current (provider, signer) pair and gate their use.

    Bindings are rebuilt only when the identity of the pair changes. A
    successful build stays ``SETTLING`` for ``BindingConfig.settle_delay``
    seconds before the gate reports ``READY``. A failed build is not
    retried until the identity changes or :meth:`retry` is called.
    """

    def __init__(
        self,
        addresses: ContractAddresses,
        config: BindingConfig | None = None,
        *,
        builder: LedgerBuilder | None = None,
        transactions: TransactionConfig | None = None,
    ) -> None:
        self._addresses = addresses
        self._config = config or BindingConfig()
        self._builder = builder or functools.partial(
            build_ledger_client, transactions=transactions
        )
        self._state = BindingState.UNBOUND
        self._ledger: LedgerClient | None = None
        self._provider: AsyncWeb3 | None = None
        self._signer: AccountSigner | None = None
        self._settle_task: asyncio.Task[None] | None = None
        self._ready_event: asyncio.Event | None = None
        self._generation = 0
        self._last_error: str | None = None
        self._listeners: list[ReadyListener] = []
        self._alive = True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> BindingState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is BindingState.READY and self._ledger is not None

    @property
    def ledger(self) -> LedgerClient | None:
        return self._ledger if self.is_ready else None

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def require_ledger(self) -> LedgerClient:
        if not self.is_ready:
            raise BindingNotReadyError(
                "Wallet not connected or contracts not ready", state=self._state.value
            )
        assert self._ledger is not None
        return self._ledger

    def add_ready_listener(self, listener: ReadyListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    async def wait_ready(self) -> LedgerClient:
        """Wait until the gate is open and return the ledger client."""

        while not self.is_ready:
            if self._ready_event is None:
                self._ready_event = asyncio.Event()
            await self._ready_event.wait()
        assert self._ledger is not None
        return self._ledger

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def update(self, provider: AsyncWeb3 | None, signer: AccountSigner | None) -> None:
        """Track a new (provider, signer) pair; unchanged identities are ignored."""

        if not self._alive:
            return
        if provider is self._provider and signer is self._signer:
            logger.debug("Skipping contract init - same provider/signer")
            return

        self._provider = provider
        self._signer = signer
        self._rebuild()

    def retry(self) -> None:
        """Rebuild bindings for the current identity after a failure."""

        if self._alive:
            self._rebuild()

    def clear(self) -> None:
        self.update(None, None)

    def close(self) -> None:
        self._alive = False
        self._invalidate()
        self._state = BindingState.UNBOUND
        self._provider = None
        self._signer = None

    # ------------------------------------------------------------------
    # Internal wiring
    # ------------------------------------------------------------------
    def _rebuild(self) -> None:
        self._invalidate()

        provider, signer = self._provider, self._signer
        if provider is None or signer is None or not self._addresses.project_factory:
            if provider is not None and signer is not None:
                logger.warning("Project factory address not configured; contracts unavailable")
            self._state = BindingState.UNBOUND
            return

        self._state = BindingState.SETTLING
        logger.info("Initializing contracts for %s", signer.address)
        try:
            ledger = self._builder(provider, signer, self._addresses)
        except Exception as exc:
            self._state = BindingState.FAILED
            self._last_error = describe_failure(exc, "Contract initialization failed")
            logger.error("Error initializing contracts: %s", self._last_error)
            return

        self._ledger = ledger
        self._last_error = None
        generation = self._generation
        if self._config.settle_delay <= 0:
            self._mark_ready(generation)
        else:
            self._settle_task = asyncio.ensure_future(self._settle(generation))

    def _invalidate(self) -> None:
        self._generation += 1
        self._ledger = None
        if self._ready_event is not None:
            self._ready_event.clear()
        if self._settle_task is not None and not self._settle_task.done():
            self._settle_task.cancel()
        self._settle_task = None

    async def _settle(self, generation: int) -> None:
        await asyncio.sleep(self._config.settle_delay)
        self._mark_ready(generation)

    def _mark_ready(self, generation: int) -> None:
        if not self._alive or generation != self._generation or self._ledger is None:
            return

        self._state = BindingState.READY
        if self._ready_event is not None:
            self._ready_event.set()
        logger.info("Contracts initialized and ready")

        ledger = self._ledger
        for listener in list(self._listeners):
            try:
                listener(ledger)
            except Exception:
                logger.exception("Contract ready listener failed")
