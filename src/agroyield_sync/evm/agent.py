"""Headless signing agent backed by local private keys."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Mapping, Sequence
from typing import Any, cast

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_account.signers.local import LocalAccount
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.middleware import SignAndSendRawMiddlewareBuilder

from ..base import AgentEventHandler, SigningAgent
from ..constants import UNRECOGNIZED_CHAIN, USER_REJECTED
from ..exceptions import ProviderRpcError, ValidationError

logger = logging.getLogger(__name__)

UNAUTHORIZED = 4100
CHAIN_DISCONNECTED = 4901

_QUANTITY_FIELDS = (
    "gas",
    "gasPrice",
    "maxFeePerGas",
    "maxPriorityFeePerGas",
    "value",
    "nonce",
    "chainId",
)


class LocalAccountAgent(SigningAgent):
    """Signing agent for scripts and services.

    Accounts are held in process; transactions are signed locally and sent
    as raw transactions to the upstream JSON-RPC endpoint. Every other call
    is forwarded to the endpoint unchanged.
    """

    def __init__(
        self,
        accounts: LocalAccount | Sequence[LocalAccount],
        rpc_url: str | None = None,
        *,
        web3: AsyncWeb3 | None = None,
        auto_approve: bool = True,
    ) -> None:
        if isinstance(accounts, LocalAccount):
            accounts = [accounts]
        if not accounts:
            raise ValidationError("At least one account is required", field="accounts")
        if web3 is None and not rpc_url:
            raise ValidationError("An RPC URL or web3 instance is required", field="rpc_url")

        self._accounts = list(accounts)
        self._active = self._accounts[0]
        self._web3 = web3 or AsyncWeb3(AsyncHTTPProvider(rpc_url))
        self._web3.middleware_onion.inject(
            SignAndSendRawMiddlewareBuilder.build(self._accounts), layer=0
        )
        self._auto_approve = auto_approve
        self._authorised = False
        self._chain_id: int | None = None
        self._handlers: dict[str, list[AgentEventHandler]] = defaultdict(list)

    @classmethod
    def from_key(cls, private_key: str, rpc_url: str, **kwargs: Any) -> LocalAccountAgent:
        try:
            account = cast(LocalAccount, Account.from_key(private_key))  # type: ignore[arg-type]
        except Exception as exc:
            raise ValidationError(
                "Failed to derive signer account from provided private key",
                field="private_key",
                details={"error": str(exc)},
            ) from exc
        return cls(account, rpc_url, **kwargs)

    @property
    def address(self) -> str:
        return self._active.address

    @property
    def web3(self) -> AsyncWeb3:
        return self._web3

    # ------------------------------------------------------------------
    # EIP-1193 surface
    # ------------------------------------------------------------------
    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = list(params or [])

        if method == "eth_requestAccounts":
            if not self._auto_approve:
                raise ProviderRpcError("User rejected the request.", USER_REJECTED)
            self._authorised = True
            return [self._active.address]
        if method == "eth_accounts":
            return [self._active.address] if self._authorised else []
        if method == "eth_chainId":
            return hex(await self._upstream_chain_id())
        if method == "wallet_switchEthereumChain":
            await self._require_chain(params, UNRECOGNIZED_CHAIN)
            return None
        if method == "wallet_addEthereumChain":
            await self._require_chain(params, CHAIN_DISCONNECTED)
            return None
        if method == "personal_sign":
            return self._personal_sign(params)
        if method == "eth_sendTransaction":
            return await self._send_transaction(params)

        return await self._forward(method, params)

    def on(self, event: str, handler: AgentEventHandler) -> None:
        self._handlers[event].append(handler)

    def remove_listener(self, event: str, handler: AgentEventHandler) -> None:
        handlers = self._handlers.get(event, [])
        if handler in handlers:
            handlers.remove(handler)

    # ------------------------------------------------------------------
    # Simulated user actions
    # ------------------------------------------------------------------
    def switch_account(self, address: str) -> None:
        for account in self._accounts:
            if account.address.lower() == address.lower():
                self._active = account
                logger.info("Agent switched to account %s", account.address)
                self._emit("accountsChanged", [account.address] if self._authorised else [])
                return
        raise ValidationError("Account not held by this agent", field="address", value=address)

    def disconnect(self) -> None:
        self._authorised = False
        self._emit("accountsChanged", [])
        self._emit("disconnect", {"code": CHAIN_DISCONNECTED, "message": "Disconnected"})

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _emit(self, event: str, payload: Any) -> None:
        for handler in list(self._handlers.get(event, [])):
            handler(payload)

    def _require_authorised(self) -> None:
        if not self._authorised:
            raise ProviderRpcError("The requested account has not been authorized.", UNAUTHORIZED)

    async def _upstream_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = int(await self._web3.eth.chain_id)
        return self._chain_id

    async def _require_chain(self, params: list[Any], code: int) -> None:
        requested = params[0].get("chainId") if params and isinstance(params[0], Mapping) else None
        served = await self._upstream_chain_id()
        try:
            matches = requested is not None and int(str(requested), 0) == served
        except ValueError:
            matches = False
        if not matches:
            raise ProviderRpcError(f"Unrecognized chain ID {requested}", code)

    def _personal_sign(self, params: list[Any]) -> str:
        self._require_authorised()
        message, address = params[0], params[1]
        if str(address).lower() != self._active.address.lower():
            raise ProviderRpcError("Signing account is not active", UNAUTHORIZED)
        signable = encode_defunct(hexstr=message)
        return self._active.sign_message(signable).signature.to_0x_hex()

    async def _send_transaction(self, params: list[Any]) -> str:
        self._require_authorised()
        transaction = _decode_transaction(params[0])
        transaction.setdefault("from", self._active.address)
        logger.debug("Signing transaction from %s", transaction["from"])
        tx_hash = await self._web3.eth.send_transaction(transaction)  # type: ignore[arg-type]
        return tx_hash.to_0x_hex()

    async def _forward(self, method: str, params: list[Any]) -> Any:
        response = await self._web3.provider.make_request(method, params)  # type: ignore[arg-type]
        error = response.get("error")
        if error:
            raise ProviderRpcError(
                str(error.get("message", "RPC error")),
                int(error.get("code", -32603)),
                error.get("data"),
            )
        return response.get("result")


def _decode_transaction(raw: Mapping[str, Any]) -> dict[str, Any]:
    transaction = dict(raw)
    for field in _QUANTITY_FIELDS:
        value = transaction.get(field)
        if isinstance(value, str):
            transaction[field] = int(value, 16)
    return transaction
