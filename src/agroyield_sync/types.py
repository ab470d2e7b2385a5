"""Type definitions and data models for the AgroYield sync layer."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any


class ConnectionState(str, Enum):
    """Wallet session connection states."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class BindingState(str, Enum):
    """Lifecycle of the contract bindings gate."""

    UNBOUND = "unbound"
    SETTLING = "settling"
    READY = "ready"
    FAILED = "failed"


class RegistrationState(str, Enum):
    """Resolution state of the current account's registration."""

    UNKNOWN = "unknown"
    CHECKING = "checking"
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


class SessionEventKind(str, Enum):
    """Identity transitions published by the wallet session."""

    CONNECTED = "connected"
    ACCOUNT_CHANGED = "account_changed"
    CHAIN_CHANGED = "chain_changed"
    DISCONNECTED = "disconnected"


class UserRole(str, Enum):
    FARMER = "farmer"
    INVESTOR = "investor"


class ProjectStatus(IntEnum):
    """On-chain project status codes."""

    ACTIVE = 0
    COMPLETED = 1
    CANCELLED = 2


Address = str  # 0x-prefixed account address
ContentRef = str  # content address (CID) on the storage network
Units = int  # fixed-point token amount in the token's smallest unit


@dataclass(frozen=True)
class SessionEvent:
    """Identity change delivered to session listeners."""

    kind: SessionEventKind
    account: Address | None = None
    previous_account: Address | None = None
    chain_id: str | None = None


@dataclass(frozen=True)
class ProfileAttributes:
    """Off-chain profile attributes resolved from the profile JSON."""

    role: str = UserRole.INVESTOR.value
    name: str = ""
    bio: str = ""
    location: str = ""
    experience: str = ""
    registration_date: Any | None = None

    @classmethod
    def from_json(cls, data: Any) -> "ProfileAttributes | None":
        """Build attributes from a parsed profile document, or ``None`` if unusable."""

        if not isinstance(data, dict):
            return None

        return cls(
            role=str(data.get("role") or data.get("userType") or UserRole.INVESTOR.value),
            name=str(data.get("name") or ""),
            bio=str(data.get("bio") or ""),
            location=str(data.get("location") or ""),
            experience=str(data.get("experience") or ""),
            registration_date=data.get("registrationDate"),
        )


@dataclass(frozen=True)
class UserProfile:
    """Registered account profile merged from the ledger and off-chain JSON."""

    address: Address
    name: str
    role: str
    bio: str
    location: str
    experience: str
    registered_at: str
    project_count: int
    total_invested: Decimal
    total_raised: Decimal
    profile_ref: ContentRef


@dataclass(frozen=True)
class Project:
    """Normalised ledger project record."""

    id: str
    farmer: Address
    title: str
    description: str
    image_ref: ContentRef
    documents_ref: ContentRef
    target_amount: Decimal
    current_amount: Decimal
    duration_days: int
    created_at: str
    deadline: str
    status: ProjectStatus
    location: str
    category: str
    investor_count: int
    funds_released: bool

    @property
    def funding_progress(self) -> Decimal:
        if self.target_amount <= 0:
            return Decimal(0)
        return self.current_amount / self.target_amount


@dataclass(frozen=True)
class PlatformStats:
    total_projects: int
    total_users: int
    total_investments: int
    total_funding: Decimal


@dataclass(frozen=True)
class InvestorData:
    address: Address
    total_invested: Decimal
    active_investments: int
    claimed_returns: Decimal
    pending_amount: Decimal
    project_ids: tuple[str, ...]


@dataclass(frozen=True)
class ProjectDraft:
    """Fields submitted when creating a project."""

    title: str
    description: str
    image_ref: ContentRef
    target_amount: Decimal | int | float | str
    duration_days: int
    location: str
    category: str
    documents_ref: ContentRef = ""


@dataclass(frozen=True)
class RegistrationForm:
    """Profile details captured at registration time."""

    name: str
    role: UserRole
    bio: str = ""
    location: str = ""
    experience: str = ""

    def to_profile_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "role": self.role.value,
            "userType": self.role.value,
            "bio": self.bio,
            "location": self.location,
            "experience": self.experience,
        }


@dataclass
class TransactionResult:
    """Outcome of a confirmed ledger write."""

    action: str
    tx_hash: str
    block_number: int | None = None
    receipt: dict[str, Any] | None = None
    project_id: str | None = None
    approval_tx_hash: str | None = None
    context: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PinResult:
    """Content address returned by the pinning service."""

    cid: ContentRef
    file_name: str
    url: str
    raw_response: dict[str, Any] | None = None
