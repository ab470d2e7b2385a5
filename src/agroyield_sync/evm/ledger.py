"""Typed async access to the AgroYield ledger contracts."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from eth_typing import ChecksumAddress
from web3 import AsyncWeb3, Web3
from web3.logs import DISCARD

from ..abi import ERC20_ABI, INVESTMENT_MANAGER_ABI, PROJECT_FACTORY_ABI
from ..exceptions import NetworkError
from ..utils import record_field
from .config import ContractAddresses, TransactionConfig
from .connections import AccountSigner
from .transactions import PendingTransaction, TransactionDispatcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractBindings:
    """Contract handles for one (provider, signer) identity."""

    factory: Any
    investment_manager: Any
    stable_token: Any
    investment_manager_address: str


class LedgerClient:
    """Reads and writes against the project factory, investment manager and stable token.

    Reads return raw decoded records; normalisation is left to the caches so
    they can store exactly what they serve. Writes return a
    :class:`PendingTransaction` that must be passed to :meth:`wait`.
    """

    def __init__(
        self,
        bindings: ContractBindings,
        dispatcher: TransactionDispatcher,
        *,
        account: str,
    ) -> None:
        self._bindings = bindings
        self._dispatcher = dispatcher
        self._account = account

    @property
    def bindings(self) -> ContractBindings:
        return self._bindings

    @property
    def account(self) -> str:
        return self._account

    @property
    def investment_manager_address(self) -> str:
        return self._bindings.investment_manager_address

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def is_registered(self, address: str) -> bool:
        fn = self._bindings.factory.functions.isUserRegistered(_checksum(address))
        return bool(await self._call(fn, "isUserRegistered"))

    async def get_profile(self, address: str) -> Any:
        fn = self._bindings.factory.functions.getUserProfile(_checksum(address))
        return await self._call(fn, "getUserProfile")

    async def get_project(self, project_id: int | str) -> Any:
        fn = self._bindings.factory.functions.getProject(int(project_id))
        return await self._call(fn, "getProject")

    async def get_all_projects(self) -> Sequence[Any]:
        fn = self._bindings.factory.functions.getAllProjects()
        return list(await self._call(fn, "getAllProjects"))

    async def get_platform_stats(self) -> Any:
        fn = self._bindings.factory.functions.getPlatformStats()
        return await self._call(fn, "getPlatformStats")

    async def get_investor_data(self, address: str) -> Any:
        fn = self._bindings.investment_manager.functions.getInvestorData(_checksum(address))
        return await self._call(fn, "getInvestorData")

    async def token_balance(self, address: str) -> int:
        fn = self._bindings.stable_token.functions.balanceOf(_checksum(address))
        return int(await self._call(fn, "balanceOf"))

    async def token_allowance(self, owner: str, spender: str) -> int:
        fn = self._bindings.stable_token.functions.allowance(_checksum(owner), _checksum(spender))
        return int(await self._call(fn, "allowance"))

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    async def register(self, name: str, profile_ref: str) -> PendingTransaction:
        fn = self._bindings.factory.functions.registerUser(name, profile_ref)
        return await self._dispatcher.submit(
            fn, action="register", sender=self._account, context={"name": name}
        )

    async def create_project(
        self,
        *,
        title: str,
        description: str,
        image_ref: str,
        documents_ref: str,
        target_units: int,
        duration_days: int,
        location: str,
        category: str,
    ) -> PendingTransaction:
        fn = self._bindings.factory.functions.createProject(
            title,
            description,
            image_ref,
            documents_ref,
            target_units,
            duration_days,
            location,
            category,
        )
        return await self._dispatcher.submit(
            fn,
            action="create_project",
            sender=self._account,
            context={"title": title, "target_units": target_units},
        )

    async def approve(self, spender: str, units: int) -> PendingTransaction:
        fn = self._bindings.stable_token.functions.approve(_checksum(spender), units)
        return await self._dispatcher.submit(
            fn, action="approve", sender=self._account, context={"spender": spender, "units": units}
        )

    async def invest(self, project_id: int | str, units: int) -> PendingTransaction:
        fn = self._bindings.investment_manager.functions.investInProject(int(project_id), units)
        return await self._dispatcher.submit(
            fn,
            action="invest",
            sender=self._account,
            context={"project_id": str(project_id), "units": units},
        )

    async def wait(self, pending: PendingTransaction) -> Mapping[str, Any]:
        return await self._dispatcher.wait(pending)

    def project_id_from_receipt(self, receipt: Mapping[str, Any]) -> str | None:
        """Return the id emitted by ``ProjectCreated`` in ``receipt``, if any."""

        try:
            events = self._bindings.factory.events.ProjectCreated().process_receipt(
                receipt, errors=DISCARD
            )
        except Exception as exc:  # pragma: no cover
            logger.warning("Unable to decode ProjectCreated event: %s", exc)
            return None

        if events:
            return str(record_field(events[0]["args"], "projectId"))

        logger.warning("Confirmed project creation emitted no ProjectCreated event")
        return None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _call(self, contract_function: Any, name: str) -> Any:
        try:
            return await contract_function.call()
        except Exception as exc:
            raise NetworkError(
                f"Ledger read {name} failed",
                endpoint=name,
                details={"error": str(exc)},
            ) from exc


def build_ledger_client(
    provider: AsyncWeb3,
    signer: AccountSigner,
    addresses: ContractAddresses,
    transactions: TransactionConfig | None = None,
) -> LedgerClient:
    """Construct contract handles for ``signer`` on ``provider``."""

    manager_address = _checksum(addresses.require("investment_manager"))
    bindings = ContractBindings(
        factory=provider.eth.contract(
            address=_checksum(addresses.require("project_factory")),
            abi=PROJECT_FACTORY_ABI,
            decode_tuples=True,
        ),
        investment_manager=provider.eth.contract(
            address=manager_address,
            abi=INVESTMENT_MANAGER_ABI,
            decode_tuples=True,
        ),
        stable_token=provider.eth.contract(
            address=_checksum(addresses.require("stable_token")),
            abi=ERC20_ABI,
        ),
        investment_manager_address=manager_address,
    )
    dispatcher = TransactionDispatcher(provider, transactions)
    return LedgerClient(bindings, dispatcher, account=signer.address)


def _checksum(address: str) -> ChecksumAddress:
    return Web3.to_checksum_address(address)
