"""Configuration containers for content-addressed storage access."""

from __future__ import annotations

import os
from dataclasses import dataclass

from ..constants import IMAGE_GATEWAYS, JSON_GATEWAYS, PINATA_FILE_URL, PINATA_JSON_URL

DEFAULT_PROBE_TIMEOUT = 5.0
DEFAULT_JSON_TIMEOUT = 5.0
DEFAULT_FILE_UPLOAD_TIMEOUT = 60.0
DEFAULT_JSON_UPLOAD_TIMEOUT = 30.0


@dataclass(frozen=True)
class GatewayConfig:
    """Ordered gateway lists and per-attempt timeouts."""

    image_gateways: tuple[str, ...] = IMAGE_GATEWAYS
    json_gateways: tuple[str, ...] = JSON_GATEWAYS
    probe_timeout: float = DEFAULT_PROBE_TIMEOUT
    json_timeout: float = DEFAULT_JSON_TIMEOUT


@dataclass(frozen=True)
class PinningConfig:
    """Credentials and endpoints for the pinning service."""

    jwt: str | None = None
    api_key: str | None = None
    secret_key: str | None = None
    file_url: str = PINATA_FILE_URL
    json_url: str = PINATA_JSON_URL
    public_gateway: str = JSON_GATEWAYS[0]
    file_timeout: float = DEFAULT_FILE_UPLOAD_TIMEOUT
    json_timeout: float = DEFAULT_JSON_UPLOAD_TIMEOUT
    project_label: str = "AgroYield"

    @property
    def is_configured(self) -> bool:
        return bool(self.jwt) or bool(self.api_key and self.secret_key)

    @classmethod
    def from_env(cls, prefix: str = "AGROYIELD_") -> PinningConfig:
        return cls(
            jwt=os.getenv(f"{prefix}PINATA_JWT") or None,
            api_key=os.getenv(f"{prefix}PINATA_API_KEY") or None,
            secret_key=os.getenv(f"{prefix}PINATA_SECRET_KEY") or None,
        )
