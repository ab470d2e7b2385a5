"""AgroYield sync layer.

Client-side state synchronisation between a signing wallet, the AgroYield
ledger contracts and content-addressed storage: wallet session handling,
gated contract bindings, cached reads and confirmed writes.
"""

from .base import SigningAgent
from .cache import CacheEntry, SingleFlight, TimedCache
from .content import (
    ContentGatewayResolver,
    GatewayConfig,
    ImageSource,
    PinningClient,
    PinningConfig,
    UploadFile,
)
from .evm import (
    BindingConfig,
    CacheConfig,
    ClientConfig,
    ContractAddresses,
    ContractBindingManager,
    LedgerClient,
    LocalAccountAgent,
    NetworkConfig,
    TransactionConfig,
    WalletSession,
)
from .evm.client import AgroYieldClient
from .exceptions import (
    AgroYieldError,
    BindingNotReadyError,
    FetchError,
    InsufficientAllowanceError,
    InsufficientBalanceError,
    NetworkError,
    NetworkMismatchError,
    ProviderRpcError,
    TransactionError,
    ValidationError,
    WalletConnectionError,
)
from .mutations import MutationPipeline
from .queries import QueryCache
from .registration import RegistrationCache
from .types import (
    BindingState,
    ConnectionState,
    InvestorData,
    PlatformStats,
    Project,
    ProjectDraft,
    ProjectStatus,
    RegistrationForm,
    RegistrationState,
    SessionEvent,
    SessionEventKind,
    TransactionResult,
    UserProfile,
    UserRole,
)
from .utils import format_address, from_units, is_valid_content_address, to_units

__version__ = "0.1.0"

__all__ = [
    # Client and components
    "AgroYieldClient",
    "WalletSession",
    "ContractBindingManager",
    "LedgerClient",
    "RegistrationCache",
    "ContentGatewayResolver",
    "ImageSource",
    "PinningClient",
    "QueryCache",
    "MutationPipeline",
    "SigningAgent",
    "LocalAccountAgent",
    "TimedCache",
    "CacheEntry",
    "SingleFlight",
    # Configuration
    "ClientConfig",
    "ContractAddresses",
    "NetworkConfig",
    "BindingConfig",
    "CacheConfig",
    "TransactionConfig",
    "GatewayConfig",
    "PinningConfig",
    # Types and enums
    "ConnectionState",
    "BindingState",
    "RegistrationState",
    "SessionEvent",
    "SessionEventKind",
    "UserRole",
    "ProjectStatus",
    "UserProfile",
    "Project",
    "PlatformStats",
    "InvestorData",
    "ProjectDraft",
    "RegistrationForm",
    "TransactionResult",
    "UploadFile",
    # Exceptions
    "AgroYieldError",
    "WalletConnectionError",
    "NetworkMismatchError",
    "BindingNotReadyError",
    "InsufficientBalanceError",
    "InsufficientAllowanceError",
    "TransactionError",
    "FetchError",
    "NetworkError",
    "ValidationError",
    "ProviderRpcError",
    # Utility functions
    "to_units",
    "from_units",
    "format_address",
    "is_valid_content_address",
]
