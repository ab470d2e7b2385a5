"""Registration status and profile resolution for the active account."""

from __future__ import annotations

import logging
from typing import Any

from .cache import SingleFlight
from .content.gateways import ContentGatewayResolver
from .evm.bindings import ContractBindingManager
from .types import ProfileAttributes, RegistrationState, UserProfile, UserRole
from .utils import format_address, from_units, record_field

logger = logging.getLogger(__name__)


class RegistrationCache:
    """Resolve whether an account is registered and assemble its profile.

    Checks are single-flight per address and a repeat check for the last
    resolved address is a no-op. Every resolution captures a generation;
    :meth:`reset`, :meth:`refresh` and :meth:`close` bump it so continuations
    of superseded checks apply nothing.
    """

    def __init__(self, bindings: ContractBindingManager, resolver: ContentGatewayResolver) -> None:
        self._bindings = bindings
        self._resolver = resolver
        self._flights = SingleFlight()
        self._state = RegistrationState.UNKNOWN
        self._profile: UserProfile | None = None
        self._last_address: str | None = None
        self._last_ref: str | None = None
        self._last_attributes: ProfileAttributes | None = None
        self._generation = 0
        self._alive = True

    @property
    def state(self) -> RegistrationState:
        return self._state

    @property
    def profile(self) -> UserProfile | None:
        return self._profile

    @property
    def is_registered(self) -> bool:
        return self._state is RegistrationState.REGISTERED

    @property
    def last_address(self) -> str | None:
        return self._last_address

    async def check(self, address: str | None) -> UserProfile | None:
        """Resolve registration for ``address``; returns the profile or ``None``."""

        if not self._alive or not address:
            return self._profile

        key = address.lower()
        flight = (self._generation, key)
        if key == self._last_address and not self._flights.pending(flight):
            logger.debug("Registration for %s already resolved", format_address(address))
            return self._profile

        generation = self._generation
        return await self._flights.run(flight, lambda: self._resolve(address, generation))

    async def refresh(self, address: str | None) -> UserProfile | None:
        """Force a new resolution, e.g. after the account registered."""

        self._generation += 1
        self._last_address = None
        return await self.check(address)

    def reset(self) -> None:
        """Forget the resolved profile; in-flight checks are discarded."""

        self._generation += 1
        self._clear_state()
        self._last_ref = None
        self._last_attributes = None

    def close(self) -> None:
        self._alive = False
        self.reset()

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------
    async def _resolve(self, address: str, generation: int) -> UserProfile | None:
        ledger = self._bindings.ledger
        if ledger is None or not self._current(generation):
            logger.debug("Contracts not ready; skipping registration check")
            return None

        self._state = RegistrationState.CHECKING
        try:
            registered = await ledger.is_registered(address)
            if not self._current(generation):
                return None

            if not registered:
                self._apply(address, None, RegistrationState.UNREGISTERED)
                logger.info("Account %s is not registered", format_address(address))
                return None

            record = await ledger.get_profile(address)
            if not self._current(generation):
                return None

            profile_ref = str(record_field(record, "profileIPFSHash", 2) or "")
            if profile_ref == self._last_ref and self._last_attributes is not None:
                logger.debug("Profile pointer unchanged; reusing resolved attributes")
                attributes = self._last_attributes
            else:
                document = await self._resolver.resolve_json(profile_ref) if profile_ref else None
                if not self._current(generation):
                    return None
                attributes = ProfileAttributes.from_json(document)

            profile = _build_profile(address, record, profile_ref, attributes)
        except Exception as exc:
            if not self._current(generation):
                return None
            logger.error("Error checking registration for %s: %s", format_address(address), exc)
            self.reset()
            return None

        self._last_ref = profile_ref
        self._last_attributes = attributes
        self._apply(address, profile, RegistrationState.REGISTERED)
        logger.info("Registration resolved for %s (%s)", format_address(address), profile.role)
        return profile

    def _current(self, generation: int) -> bool:
        return self._alive and generation == self._generation

    def _apply(self, address: str, profile: UserProfile | None, state: RegistrationState) -> None:
        self._profile = profile
        self._state = state
        self._last_address = address.lower()

    def _clear_state(self) -> None:
        self._profile = None
        self._state = RegistrationState.UNKNOWN
        self._last_address = None


def _build_profile(
    address: str,
    record: Any,
    profile_ref: str,
    attributes: ProfileAttributes | None,
) -> UserProfile:
    attributes = attributes or ProfileAttributes()
    return UserProfile(
        address=address,
        name=str(record_field(record, "name", 1) or attributes.name),
        role=attributes.role or UserRole.INVESTOR.value,
        bio=attributes.bio,
        location=attributes.location,
        experience=attributes.experience,
        registered_at=str(record_field(record, "registeredAt", 3)),
        project_count=int(record_field(record, "projectCount", 4)),
        total_invested=from_units(record_field(record, "totalInvested", 5)),
        total_raised=from_units(record_field(record, "totalRaised", 6)),
        profile_ref=profile_ref,
    )
