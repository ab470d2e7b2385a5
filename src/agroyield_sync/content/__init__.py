"""Content-addressed storage access: gateway resolution and pinning uploads."""

from .config import GatewayConfig, PinningConfig
from .gateways import ContentGatewayResolver, ImageSource
from .pinning import PinningClient, UploadFile, format_file_size, validate_file

__all__ = [
    "ContentGatewayResolver",
    "GatewayConfig",
    "ImageSource",
    "PinningClient",
    "PinningConfig",
    "UploadFile",
    "format_file_size",
    "validate_file",
]
