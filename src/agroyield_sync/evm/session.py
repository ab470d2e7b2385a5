"""Wallet session state machine."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable
from decimal import Decimal
from typing import Any

from web3 import AsyncWeb3, Web3

from ..base import SigningAgent
from ..constants import REQUEST_PENDING, UNRECOGNIZED_CHAIN, USER_REJECTED
from ..exceptions import NetworkMismatchError, ProviderRpcError, WalletConnectionError
from ..types import ConnectionState, SessionEvent, SessionEventKind
from ..utils import format_address
from .config import NetworkConfig
from .connections import AccountSigner, build_provider

logger = logging.getLogger(__name__)

SessionListener = Callable[[SessionEvent], None]
ProviderFactory = Callable[[SigningAgent], AsyncWeb3]

AGENT_EVENTS = ("accountsChanged", "chainChanged", "connect", "disconnect")


class AgentSubscription:
    """Owned set of agent event handlers; at most one per session is active."""

    def __init__(self, agent: SigningAgent, sink: Callable[[str, Any], None]) -> None:
        self._agent = agent
        self._sink = sink
        self._handlers: dict[str, Callable[[Any], None]] = {}

    @property
    def active(self) -> bool:
        return bool(self._handlers)

    def subscribe(self) -> None:
        if self._handlers:
            return
        for event in AGENT_EVENTS:
            handler = functools.partial(self._sink, event)
            self._agent.on(event, handler)
            self._handlers[event] = handler

    def unsubscribe(self) -> None:
        for event, handler in self._handlers.items():
            self._agent.remove_listener(event, handler)
        self._handlers.clear()


class WalletSession:
    """Connection to the user's signing agent and the active network.

    Raw agent events are queued by the subscription and applied one at a time
    by a consumer task, so listeners only ever see :class:`SessionEvent`
    values.
    """

    def __init__(
        self,
        agent: SigningAgent | None,
        network: NetworkConfig | None = None,
        *,
        provider_factory: ProviderFactory = build_provider,
    ) -> None:
        self._agent = agent
        self._network = network or NetworkConfig()
        self._provider_factory = provider_factory
        self._state = ConnectionState.DISCONNECTED
        self._account: str | None = None
        self._chain_id: str | None = None
        self._provider: AsyncWeb3 | None = None
        self._signer: AccountSigner | None = None
        self._last_error: str | None = None
        self._listeners: list[SessionListener] = []
        self._subscription: AgentSubscription | None = None
        self._events: asyncio.Queue[tuple[str, Any]] | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._connecting: asyncio.Task[str] | None = None
        self._alive = True

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def account(self) -> str | None:
        return self._account

    @property
    def chain_id(self) -> str | None:
        return self._chain_id

    @property
    def provider(self) -> AsyncWeb3 | None:
        return self._provider

    @property
    def signer(self) -> AccountSigner | None:
        return self._signer

    @property
    def last_error(self) -> str | None:
        return self._last_error

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._account is not None

    @property
    def expected_chain_id(self) -> str:
        return self._network.chain_id

    @property
    def is_on_expected_network(self) -> bool:
        return self._network.matches(self._chain_id)

    @property
    def subscription_active(self) -> bool:
        return self._subscription is not None and self._subscription.active

    def add_listener(self, listener: SessionListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self) -> str:
        """Prompt the agent for an account and bring it onto the expected network."""

        if self.is_connected:
            return self._account  # type: ignore[return-value]

        if self._connecting is None or self._connecting.done():
            self._connecting = asyncio.ensure_future(self._connect())
        else:
            logger.debug("Joining pending wallet connection request")
        return await asyncio.shield(self._connecting)

    async def restore(self) -> str | None:
        """Silently reattach to an account the agent has already authorised."""

        if self._agent is None or self.is_connected:
            return self._account

        try:
            accounts = await self._agent.request("eth_accounts")
            if not accounts:
                return None
            chain_id = await self._agent.request("eth_chainId")
        except ProviderRpcError as exc:
            logger.warning("Auto-connection failed: %s", exc.message)
            return None
        except Exception as exc:
            logger.warning("Auto-connection failed: %s", exc)
            return None

        if not self._alive:
            return None

        self._establish(accounts[0], chain_id)
        logger.info("Auto-connected to %s", format_address(self._account))
        return self._account

    def disconnect(self) -> None:
        if self._state is ConnectionState.DISCONNECTED and self._account is None:
            return

        previous = self._account
        self._teardown_subscription()
        self._reset_identity()
        self._state = ConnectionState.DISCONNECTED
        logger.info("Wallet disconnected")
        self._emit(SessionEvent(SessionEventKind.DISCONNECTED, previous_account=previous))

    async def close(self) -> None:
        """Tear down the session; queued agent events are dropped."""

        self._alive = False
        self._teardown_subscription()
        if self._connecting is not None and not self._connecting.done():
            self._connecting.cancel()
        consumer = self._consumer
        self._consumer = None
        self._events = None
        if consumer is not None:
            consumer.cancel()
            try:
                await consumer
            except asyncio.CancelledError:
                pass

    async def settle_events(self) -> None:
        """Wait until every queued agent event has been applied."""

        if self._events is not None:
            await self._events.join()

    # ------------------------------------------------------------------
    # Wallet helpers
    # ------------------------------------------------------------------
    async def sign_message(self, message: str) -> str:
        agent = self._require_agent()
        if not self.is_connected:
            raise WalletConnectionError("Wallet not connected")

        try:
            return await agent.request("personal_sign", [Web3.to_hex(text=message), self._account])
        except ProviderRpcError as exc:
            if exc.code == USER_REJECTED:
                raise WalletConnectionError(
                    "Message signing rejected by user", code=exc.code
                ) from exc
            raise WalletConnectionError("Failed to sign message", code=exc.code) from exc

    async def get_native_balance(self, address: str | None = None) -> Decimal:
        target = address or self._account
        if self._provider is None or not target:
            return Decimal(0)

        try:
            balance = await self._provider.eth.get_balance(Web3.to_checksum_address(target))
        except Exception as exc:  # pragma: no cover
            logger.error("Error getting native balance for %s: %s", format_address(target), exc)
            return Decimal(0)
        return Decimal(Web3.from_wei(balance, "ether"))

    # ------------------------------------------------------------------
    # Connection internals
    # ------------------------------------------------------------------
    async def _connect(self) -> str:
        self._state = ConnectionState.CONNECTING
        self._last_error = None

        try:
            agent = self._require_agent()
            accounts = await agent.request("eth_requestAccounts")
            if not accounts:
                raise WalletConnectionError(
                    "No accounts found. Please make sure your wallet is unlocked."
                )

            chain_id = await agent.request("eth_chainId")
            if not self._network.matches(chain_id):
                logger.info(
                    "Agent is on chain %s, requesting switch to %s",
                    chain_id,
                    self._network.chain_id,
                )
                await self._ensure_network(agent, chain_id)
                chain_id = self._network.chain_id
        except ProviderRpcError as exc:
            error = _connection_error(exc)
            self._fail(error)
            raise error from exc
        except (WalletConnectionError, NetworkMismatchError) as exc:
            self._fail(exc)
            raise
        except Exception as exc:
            error = WalletConnectionError(
                f"Failed to connect wallet: {exc}", details={"error": repr(exc)}
            )
            self._fail(error)
            raise error from exc

        if not self._alive:
            raise WalletConnectionError("Wallet session was closed while connecting")

        self._establish(accounts[0], chain_id)
        logger.info("Wallet connected: %s", format_address(self._account))
        return accounts[0]

    async def _ensure_network(self, agent: SigningAgent, current_chain: str | None) -> None:
        expected = self._network.chain_id
        chain_name = self._network.params.get("chainName", expected)

        try:
            await self._switch_chain(agent)
            return
        except ProviderRpcError as exc:
            if exc.code != UNRECOGNIZED_CHAIN:
                raise NetworkMismatchError(
                    f"Failed to switch wallet to {chain_name}: {exc.message}",
                    expected_chain_id=expected,
                    actual_chain_id=current_chain,
                    details={"code": exc.code},
                ) from exc

        logger.info("Chain %s unknown to the wallet, requesting it be added", expected)
        try:
            await agent.request("wallet_addEthereumChain", [dict(self._network.params)])
        except ProviderRpcError as exc:
            raise NetworkMismatchError(
                f"Failed to add {chain_name} to the wallet",
                expected_chain_id=expected,
                actual_chain_id=current_chain,
                details={"code": exc.code},
            ) from exc

        try:
            await self._switch_chain(agent)
        except ProviderRpcError as exc:
            raise NetworkMismatchError(
                f"Failed to switch wallet to {chain_name} after adding it",
                expected_chain_id=expected,
                actual_chain_id=current_chain,
                details={"code": exc.code},
            ) from exc

    async def _switch_chain(self, agent: SigningAgent) -> None:
        await agent.request("wallet_switchEthereumChain", [{"chainId": self._network.chain_id}])

    def _establish(self, account: str, chain_id: Any) -> None:
        assert self._agent is not None

        self._teardown_subscription()
        provider = self._provider_factory(self._agent)
        self._provider = provider
        self._signer = AccountSigner(address=account, provider=provider)
        self._account = account
        self._chain_id = _normalise_chain_id(chain_id)
        self._state = ConnectionState.CONNECTED
        self._subscribe()
        self._emit(
            SessionEvent(SessionEventKind.CONNECTED, account=account, chain_id=self._chain_id)
        )

    def _fail(self, exc: Exception) -> None:
        message = getattr(exc, "message", None) or str(exc)
        self._state = ConnectionState.ERROR
        self._last_error = message
        logger.error("Wallet connection failed: %s", message)
        self._reset_identity()
        self._state = ConnectionState.DISCONNECTED

    def _reset_identity(self) -> None:
        self._account = None
        self._chain_id = None
        self._provider = None
        self._signer = None

    def _require_agent(self) -> SigningAgent:
        if self._agent is None:
            raise WalletConnectionError("Please install a wallet agent to use this application")
        return self._agent

    def _emit(self, event: SessionEvent) -> None:
        for listener in list(self._listeners):
            listener(event)

    # ------------------------------------------------------------------
    # Agent event channel
    # ------------------------------------------------------------------
    def _subscribe(self) -> None:
        assert self._agent is not None

        if self._events is None:
            self._events = asyncio.Queue()
        if self._consumer is None or self._consumer.done():
            self._consumer = asyncio.ensure_future(self._consume_events(self._events))

        self._subscription = AgentSubscription(self._agent, self._enqueue_event)
        self._subscription.subscribe()

    def _teardown_subscription(self) -> None:
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None

    def _enqueue_event(self, event: str, payload: Any = None) -> None:
        if not self._alive or self._events is None:
            return
        self._events.put_nowait((event, payload))

    async def _consume_events(self, queue: asyncio.Queue[tuple[str, Any]]) -> None:
        while True:
            event, payload = await queue.get()
            try:
                self._apply_event(event, payload)
            except Exception:
                logger.exception("Failed to apply wallet event %s", event)
            finally:
                queue.task_done()

    def _apply_event(self, event: str, payload: Any) -> None:
        if not self._alive:
            return

        if event == "accountsChanged":
            accounts = list(payload or [])
            if not accounts:
                self.disconnect()
            elif self.is_connected and accounts[0].lower() != (self._account or "").lower():
                self._switch_account(accounts[0])
        elif event == "chainChanged":
            self._apply_chain_change(payload)
        elif event == "disconnect":
            logger.info("Wallet agent reported disconnect: %s", payload)
            self.disconnect()
        elif event == "connect":
            logger.debug("Wallet agent connected: %s", payload)

    def _switch_account(self, account: str) -> None:
        assert self._provider is not None

        previous = self._account
        self._account = account
        self._signer = AccountSigner(address=account, provider=self._provider)
        logger.info(
            "Account changed from %s to %s", format_address(previous), format_address(account)
        )
        self._emit(
            SessionEvent(
                SessionEventKind.ACCOUNT_CHANGED,
                account=account,
                previous_account=previous,
                chain_id=self._chain_id,
            )
        )

    def _apply_chain_change(self, chain_id: Any) -> None:
        if not self.is_connected:
            return
        self._chain_id = _normalise_chain_id(chain_id)
        if not self.is_on_expected_network:
            logger.warning(
                "Network changed to %s; please switch back to %s",
                self._chain_id,
                self._network.chain_id,
            )
        self._emit(
            SessionEvent(
                SessionEventKind.CHAIN_CHANGED, account=self._account, chain_id=self._chain_id
            )
        )


def _normalise_chain_id(chain_id: Any) -> str | None:
    if chain_id is None:
        return None
    if isinstance(chain_id, int):
        return hex(chain_id)
    text = str(chain_id)
    try:
        return hex(int(text, 0))
    except ValueError:
        return text


def _connection_error(exc: ProviderRpcError) -> WalletConnectionError:
    if exc.code == USER_REJECTED:
        message = "Connection rejected by user"
    elif exc.code == REQUEST_PENDING:
        message = "Connection request already pending. Please check your wallet."
    else:
        message = f"Failed to connect wallet: {exc.message}"
    return WalletConnectionError(message, code=exc.code, details={"error": exc.message})
