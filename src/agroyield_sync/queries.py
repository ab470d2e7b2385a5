"""Read-through caches over the ledger's project and account views."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable, Hashable
from decimal import Decimal
from typing import Any, TypeVar

from .cache import Clock, SingleFlight, TimedCache
from .evm.bindings import ContractBindingManager
from .evm.config import CacheConfig
from .evm.ledger import LedgerClient
from .types import InvestorData, PlatformStats, Project, ProjectStatus
from .utils import format_address, from_units, record_field

logger = logging.getLogger(__name__)

T = TypeVar("T")

COLLECTION_KEY = "all"


class QueryCache:
    """Serve ledger reads from TTL caches with single-flight refreshes.

    A failed refresh serves the cached value even when stale; with nothing
    cached it degrades to ``[]`` or ``None``. Mutations must call the
    ``invalidate_*`` methods; expiry alone never reflects a known write.
    """

    def __init__(
        self,
        bindings: ContractBindingManager,
        config: CacheConfig | None = None,
        *,
        clock: Clock = time.monotonic,
    ) -> None:
        config = config or CacheConfig()
        self._bindings = bindings
        self._collection: TimedCache[list[Project]] = TimedCache(
            config.collection_ttl, clock=clock, name="projects"
        )
        self._projects: TimedCache[Project] = TimedCache(
            config.project_ttl, clock=clock, name="project"
        )
        self._stats: TimedCache[PlatformStats] = TimedCache(
            config.stats_ttl, clock=clock, name="stats"
        )
        self._investors: TimedCache[InvestorData] = TimedCache(
            config.account_ttl, clock=clock, name="investor"
        )
        self._flights = SingleFlight()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    async def get_all_projects(self) -> list[Project]:
        projects = await self._read(self._collection, COLLECTION_KEY, _load_projects)
        return list(projects) if projects is not None else []

    async def get_project(self, project_id: int | str) -> Project | None:
        key = str(project_id)
        return await self._read(
            self._projects, key, lambda ledger: _load_project(ledger, key)
        )

    async def get_platform_stats(self) -> PlatformStats | None:
        return await self._read(self._stats, COLLECTION_KEY, _load_stats)

    async def get_investor_data(self, address: str | None) -> InvestorData | None:
        if not address:
            return None
        return await self._read(
            self._investors, address.lower(), lambda ledger: _load_investor(ledger, address)
        )

    async def get_token_balance(self, address: str | None) -> Decimal:
        """Stable-token balance of ``address``; not cached, ``0`` when unavailable."""

        ledger = self._bindings.ledger
        if ledger is None or not address:
            return Decimal(0)
        try:
            return from_units(await ledger.token_balance(address))
        except Exception as exc:
            logger.warning("Error getting token balance for %s: %s", format_address(address), exc)
            return Decimal(0)

    # ------------------------------------------------------------------
    # Invalidation
    # ------------------------------------------------------------------
    def invalidate_collection(self) -> None:
        logger.debug("Invalidating project collection cache")
        self._collection.invalidate(COLLECTION_KEY)
        self._stats.invalidate(COLLECTION_KEY)

    def invalidate_project(self, project_id: int | str) -> None:
        logger.debug("Invalidating cache for project %s", project_id)
        self._projects.invalidate(str(project_id))

    def invalidate_account(self, address: str | None) -> None:
        if not address:
            return
        logger.debug("Invalidating cache for account %s", format_address(address))
        self._investors.invalidate(address.lower())

    def clear(self) -> None:
        for cache in (self._collection, self._projects, self._stats, self._investors):
            cache.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    async def _read(
        self,
        cache: TimedCache[T],
        key: Hashable,
        fetch: Callable[[LedgerClient], Awaitable[T | None]],
    ) -> T | None:
        entry = cache.fresh(key)
        if entry is not None:
            logger.debug("Using cached %s for %r", cache.name, key)
            return entry.value

        ledger = self._bindings.ledger
        if ledger is None:
            stale = cache.entry(key)
            if stale is not None:
                logger.debug("Contracts not ready; serving stale %s", cache.name)
                return stale.value
            logger.debug("Contracts not ready; skipping %s fetch", cache.name)
            return None

        token = cache.token(key)

        async def load() -> T | None:
            value = await fetch(ledger)
            if value is not None:
                cache.put_if_current(key, value, token)
            return value

        try:
            return await self._flights.run((cache.name, key, token), load)
        except Exception as exc:
            stale = cache.entry(key)
            if stale is not None:
                logger.warning("Fetching %s failed, serving stale data: %s", cache.name, exc)
                return stale.value
            logger.warning("Fetching %s failed with nothing cached: %s", cache.name, exc)
            return None


async def _load_projects(ledger: LedgerClient) -> list[Project]:
    records = await ledger.get_all_projects()
    projects = [normalise_project(record) for record in records]
    logger.info("Fetched %d projects from the ledger", len(projects))
    return projects


async def _load_project(ledger: LedgerClient, project_id: str) -> Project | None:
    record = await ledger.get_project(project_id)
    project = normalise_project(record)
    if project.id == "0":
        logger.debug("Project %s not found", project_id)
        return None
    return project


async def _load_stats(ledger: LedgerClient) -> PlatformStats:
    record = await ledger.get_platform_stats()
    return PlatformStats(
        total_projects=int(record_field(record, "totalProjects", 0)),
        total_users=int(record_field(record, "totalUsers", 1)),
        total_investments=int(record_field(record, "totalInvestments", 2)),
        total_funding=from_units(record_field(record, "totalFunding", 3)),
    )


async def _load_investor(ledger: LedgerClient, address: str) -> InvestorData:
    record = await ledger.get_investor_data(address)
    return InvestorData(
        address=address,
        total_invested=from_units(record_field(record, "totalInvested", 0)),
        active_investments=int(record_field(record, "activeInvestments", 1)),
        claimed_returns=from_units(record_field(record, "claimedReturns", 2)),
        pending_amount=from_units(record_field(record, "pendingAmount", 3)),
        project_ids=tuple(str(pid) for pid in record_field(record, "projectIds", 4)),
    )


def normalise_project(record: Any) -> Project:
    """Convert a raw ledger project record into a :class:`Project`."""
    return Project(
        id=str(record_field(record, "id", 0)),
        farmer=str(record_field(record, "farmer", 1)),
        title=str(record_field(record, "title", 2)),
        description=str(record_field(record, "description", 3)),
        image_ref=str(record_field(record, "imageIPFSHash", 4)),
        documents_ref=str(record_field(record, "documentsIPFSHash", 5)),
        target_amount=from_units(record_field(record, "targetAmountUSDC", 6)),
        current_amount=from_units(record_field(record, "currentAmountUSDC", 7)),
        duration_days=int(record_field(record, "durationDays", 8)),
        created_at=str(record_field(record, "createdAt", 9)),
        deadline=str(record_field(record, "deadline", 10)),
        status=ProjectStatus(int(record_field(record, "status", 11))),
        location=str(record_field(record, "location", 12)),
        category=str(record_field(record, "category", 13)),
        investor_count=int(record_field(record, "investorCount", 14)),
        funds_released=bool(record_field(record, "fundsReleased", 15)),
    )
