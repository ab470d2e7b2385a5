"""Hand-written collaborators shared by the test modules."""

from __future__ import annotations

import asyncio
from collections import defaultdict
from types import SimpleNamespace
from typing import Any

from hexbytes import HexBytes

from agroyield_sync.base import AgentEventHandler, SigningAgent
from agroyield_sync.constants import EXPECTED_CHAIN_ID, UNRECOGNIZED_CHAIN
from agroyield_sync.evm.transactions import PendingTransaction
from agroyield_sync.exceptions import NetworkError, ProviderRpcError, TransactionError

ACCOUNT_A = "0x" + "a" * 40
ACCOUNT_B = "0x" + "b" * 40
MANAGER = "0x" + "c" * 40

PROFILE_REF = "Qm" + "p" * 44
OTHER_PROFILE_REF = "Qm" + "q" * 44
IMAGE_REF = "Qm" + "i" * 44


def project_record(
    project_id: int,
    *,
    title: str | None = None,
    target: int = 1_000_000_000,
    current: int = 0,
    investors: int = 0,
    category: str = "Rice Cultivation",
) -> dict[str, Any]:
    return {
        "id": project_id,
        "farmer": ACCOUNT_A,
        "title": title or f"Project {project_id}",
        "description": "Paddy expansion",
        "imageIPFSHash": IMAGE_REF,
        "documentsIPFSHash": "",
        "targetAmountUSDC": target,
        "currentAmountUSDC": current,
        "durationDays": 90,
        "createdAt": 1_700_000_000,
        "deadline": 1_707_776_000,
        "status": 0,
        "location": "Mekong Delta",
        "category": category,
        "investorCount": investors,
        "fundsReleased": False,
    }


def profile_record(name: str = "Lan", profile_ref: str = PROFILE_REF) -> dict[str, Any]:
    return {
        "isRegistered": True,
        "name": name,
        "profileIPFSHash": profile_ref,
        "registeredAt": 1_700_000_000,
        "projectCount": 2,
        "totalInvested": 1_500_000,
        "totalRaised": 250_000_000,
    }


def make_provider(agent: SigningAgent) -> Any:
    """Provider factory returning a fresh object per call, like a real provider."""
    return SimpleNamespace(agent=agent)


class FakeAgent(SigningAgent):
    """EIP-1193 style agent that records every request."""

    def __init__(
        self,
        accounts: tuple[str, ...] = (ACCOUNT_A,),
        chain_id: str = EXPECTED_CHAIN_ID,
        known_chains: tuple[str, ...] = ("0x1", EXPECTED_CHAIN_ID),
    ) -> None:
        self.accounts = list(accounts)
        self.chain_id = chain_id
        self.known_chains = set(known_chains)
        self.authorised = False
        self.errors: dict[str, Exception] = {}
        self.requests: list[tuple[str, list[Any]]] = []
        self.handlers: dict[str, list[AgentEventHandler]] = defaultdict(list)

    def methods(self) -> list[str]:
        return [method for method, _ in self.requests]

    async def request(self, method: str, params: list[Any] | None = None) -> Any:
        params = list(params or [])
        self.requests.append((method, params))
        await asyncio.sleep(0)

        if method in self.errors:
            raise self.errors[method]
        if method == "eth_requestAccounts":
            self.authorised = True
            return list(self.accounts)
        if method == "eth_accounts":
            return list(self.accounts) if self.authorised else []
        if method == "eth_chainId":
            return self.chain_id
        if method == "wallet_switchEthereumChain":
            target = params[0]["chainId"]
            if target not in self.known_chains:
                raise ProviderRpcError("Unrecognized chain ID", UNRECOGNIZED_CHAIN)
            self.chain_id = target
            return None
        if method == "wallet_addEthereumChain":
            self.known_chains.add(params[0]["chainId"])
            return None
        if method == "personal_sign":
            return "0x" + "5" * 130
        raise ProviderRpcError(f"Unsupported method {method}", 4200)

    def on(self, event: str, handler: AgentEventHandler) -> None:
        self.handlers[event].append(handler)

    def remove_listener(self, event: str, handler: AgentEventHandler) -> None:
        if handler in self.handlers[event]:
            self.handlers[event].remove(handler)

    def listener_count(self, event: str) -> int:
        return len(self.handlers[event])

    def emit(self, event: str, payload: Any = None) -> None:
        for handler in list(self.handlers[event]):
            handler(payload)


class FakeLedger:
    """In-memory stand-in for :class:`LedgerClient` that records its calls."""

    def __init__(self, account: str = ACCOUNT_A) -> None:
        self.account = account
        self.investment_manager_address = MANAGER
        self.calls: list[tuple[str, tuple[Any, ...]]] = []
        self.registered: dict[str, bool] = {}
        self.profiles: dict[str, dict[str, Any]] = {}
        self.projects: list[dict[str, Any]] = []
        self.stats = {
            "totalProjects": 3,
            "totalUsers": 10,
            "totalInvestments": 7,
            "totalFunding": 12_500_000,
        }
        self.investor = {
            "totalInvested": 2_000_000,
            "activeInvestments": 1,
            "claimedReturns": 0,
            "pendingAmount": 500_000,
            "projectIds": [1],
        }
        self.balances: dict[str, int] = {}
        self.allowances: dict[str, int] = {}
        self.fail_reads: set[str] = set()
        self.fail_waits: set[str] = set()
        self.gate: asyncio.Event | None = None
        self._tx = 0

    def count(self, name: str) -> int:
        return sum(1 for call, _ in self.calls if call == name)

    def actions(self) -> list[str]:
        return [call for call, _ in self.calls]

    # Reads -------------------------------------------------------------
    async def _read(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))
        if self.gate is not None:
            await self.gate.wait()
        else:
            await asyncio.sleep(0)
        if name in self.fail_reads:
            raise NetworkError(f"Ledger read {name} failed", endpoint=name)

    async def is_registered(self, address: str) -> bool:
        await self._read("is_registered", address)
        return self.registered.get(address.lower(), False)

    async def get_profile(self, address: str) -> dict[str, Any]:
        await self._read("get_profile", address)
        return self.profiles[address.lower()]

    async def get_project(self, project_id: int | str) -> dict[str, Any]:
        await self._read("get_project", project_id)
        for record in self.projects:
            if str(record["id"]) == str(project_id):
                return dict(record)
        return project_record(0)

    async def get_all_projects(self) -> list[dict[str, Any]]:
        await self._read("get_all_projects")
        return [dict(record) for record in self.projects]

    async def get_platform_stats(self) -> dict[str, Any]:
        await self._read("get_platform_stats")
        return dict(self.stats)

    async def get_investor_data(self, address: str) -> dict[str, Any]:
        await self._read("get_investor_data", address)
        return dict(self.investor)

    async def token_balance(self, address: str) -> int:
        await self._read("token_balance", address)
        return self.balances.get(address.lower(), 0)

    async def token_allowance(self, owner: str, spender: str) -> int:
        await self._read("token_allowance", owner, spender)
        return self.allowances.get(owner.lower(), 0)

    # Writes ------------------------------------------------------------
    async def _submit(self, action: str, **context: Any) -> PendingTransaction:
        self.calls.append((action, tuple(context.values())))
        self._tx += 1
        await asyncio.sleep(0)
        return PendingTransaction(
            action=action, tx_hash=HexBytes(self._tx.to_bytes(32, "big")), context=context
        )

    async def register(self, name: str, profile_ref: str) -> PendingTransaction:
        return await self._submit("register", name=name, profile_ref=profile_ref)

    async def create_project(self, **fields: Any) -> PendingTransaction:
        return await self._submit("create_project", **fields)

    async def approve(self, spender: str, units: int) -> PendingTransaction:
        return await self._submit("approve", spender=spender, units=units)

    async def invest(self, project_id: int | str, units: int) -> PendingTransaction:
        return await self._submit("invest", project_id=str(project_id), units=units)

    async def wait(self, pending: PendingTransaction) -> dict[str, Any]:
        self.calls.append(("wait", (pending.action,)))
        await asyncio.sleep(0)
        if pending.action in self.fail_waits:
            raise TransactionError(
                f"{pending.action} reverted",
                action=pending.action,
                tx_hash=pending.hash_hex,
                reason="execution reverted: funding closed",
            )

        receipt: dict[str, Any] = {"status": 1, "blockNumber": 100 + self._tx}
        context = pending.context
        owner = self.account.lower()
        if pending.action == "register":
            self.registered[owner] = True
            self.profiles[owner] = profile_record(context["name"], context["profile_ref"])
        elif pending.action == "approve":
            self.allowances[owner] = context["units"]
        elif pending.action == "invest":
            self.balances[owner] = self.balances.get(owner, 0) - context["units"]
            self.allowances[owner] = self.allowances.get(owner, 0) - context["units"]
            for record in self.projects:
                if str(record["id"]) == context["project_id"]:
                    record["currentAmountUSDC"] += context["units"]
                    record["investorCount"] += 1
        elif pending.action == "create_project":
            new_id = len(self.projects) + 1
            self.projects.append(
                project_record(new_id, title=context["title"], target=context["target_units"])
            )
            receipt["projectId"] = str(new_id)
        return receipt

    def project_id_from_receipt(self, receipt: dict[str, Any]) -> str | None:
        return receipt.get("projectId")


class ManualClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeResolver:
    """Content resolver stub counting JSON resolutions."""

    def __init__(self, documents: dict[str, Any] | None = None) -> None:
        self.documents = documents or {}
        self.calls: list[str] = []
        self.gate: asyncio.Event | None = None

    async def resolve_json(self, ref: str | None) -> Any | None:
        self.calls.append(str(ref))
        if self.gate is not None:
            await self.gate.wait()
        return self.documents.get(str(ref))
