"""Configuration containers for the AgroYield ledger client."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from ..constants import EXPECTED_CHAIN_ID, NETWORK_PARAMS
from ..content.config import GatewayConfig, PinningConfig
from ..exceptions import ValidationError

DEFAULT_SETTLE_DELAY = 0.1
DEFAULT_COLLECTION_TTL = 30.0
DEFAULT_PROJECT_TTL = 60.0
DEFAULT_STATS_TTL = 30.0
DEFAULT_ACCOUNT_TTL = 60.0
DEFAULT_RECEIPT_POLL_INTERVAL = 1.0


@dataclass(frozen=True)
class NetworkConfig:
    """Chain the application expects the signing agent to be on."""

    chain_id: str = EXPECTED_CHAIN_ID
    params: Mapping[str, Any] = field(default_factory=lambda: dict(NETWORK_PARAMS))

    @property
    def chain_id_int(self) -> int:
        return int(self.chain_id, 16)

    def matches(self, chain_id: str | int | None) -> bool:
        if chain_id is None:
            return False
        if isinstance(chain_id, int):
            return chain_id == self.chain_id_int
        try:
            return int(chain_id, 0) == self.chain_id_int
        except ValueError:
            return False


@dataclass(frozen=True)
class ContractAddresses:
    """Deployed contract addresses; the project factory gates binding construction."""

    project_factory: str | None = None
    investment_manager: str | None = None
    stable_token: str | None = None

    def require(self, name: str) -> str:
        value = getattr(self, name)
        if not value:
            raise ValidationError(f"Contract address '{name}' is not configured", field=name)
        return value


@dataclass(frozen=True)
class BindingConfig:
    """Binding gate settings.

    ``settle_delay`` is a grace period between constructing the contract
    handles and reporting them ready; it compensates for agents that attach
    the signer asynchronously and is not a guarantee of anything.
    """

    settle_delay: float = DEFAULT_SETTLE_DELAY


@dataclass(frozen=True)
class CacheConfig:
    collection_ttl: float = DEFAULT_COLLECTION_TTL
    project_ttl: float = DEFAULT_PROJECT_TTL
    stats_ttl: float = DEFAULT_STATS_TTL
    account_ttl: float = DEFAULT_ACCOUNT_TTL


@dataclass(frozen=True)
class TransactionConfig:
    """Receipt waiting policy; ``receipt_timeout=None`` waits until the ledger answers."""

    receipt_timeout: float | None = None
    poll_interval: float = DEFAULT_RECEIPT_POLL_INTERVAL


@dataclass(frozen=True)
class ClientConfig:
    """Aggregated configuration used to construct the AgroYield client."""

    contracts: ContractAddresses = ContractAddresses()
    network: NetworkConfig = NetworkConfig()
    bindings: BindingConfig = BindingConfig()
    cache: CacheConfig = CacheConfig()
    transactions: TransactionConfig = TransactionConfig()
    gateways: GatewayConfig = GatewayConfig()
    pinning: PinningConfig = PinningConfig()

    @classmethod
    def from_env(cls, prefix: str = "AGROYIELD_") -> ClientConfig:
        """Build a configuration from ``AGROYIELD_*`` environment variables."""

        contracts = ContractAddresses(
            project_factory=os.getenv(f"{prefix}PROJECT_FACTORY") or None,
            investment_manager=os.getenv(f"{prefix}INVESTMENT_MANAGER") or None,
            stable_token=os.getenv(f"{prefix}USDC_ADDRESS") or None,
        )

        settle_raw = os.getenv(f"{prefix}SETTLE_DELAY")
        try:
            settle_delay = float(settle_raw) if settle_raw else DEFAULT_SETTLE_DELAY
        except ValueError as exc:
            raise ValidationError(
                "Settle delay must be a number of seconds",
                field=f"{prefix}SETTLE_DELAY",
                value=settle_raw,
            ) from exc

        chain_raw = os.getenv(f"{prefix}CHAIN_ID")
        if chain_raw:
            try:
                chain_id = hex(int(chain_raw, 0))
            except ValueError as exc:
                raise ValidationError(
                    "Chain id must be a decimal or 0x-prefixed integer",
                    field=f"{prefix}CHAIN_ID",
                    value=chain_raw,
                ) from exc
            params = {**NETWORK_PARAMS, "chainId": chain_id}
            network = NetworkConfig(chain_id=chain_id, params=params)
        else:
            network = NetworkConfig()

        return cls(
            contracts=contracts,
            network=network,
            bindings=BindingConfig(settle_delay=settle_delay),
            pinning=PinningConfig.from_env(prefix),
        )
