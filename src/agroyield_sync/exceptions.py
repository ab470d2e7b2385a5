"""Exception hierarchy for the AgroYield sync layer."""

from decimal import Decimal
from typing import Any


class AgroYieldError(Exception):
    """Base exception for all AgroYield sync errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class WalletConnectionError(AgroYieldError):
    """Raised when the signing agent is missing, rejects, or is busy."""

    def __init__(
        self,
        message: str,
        code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.code = code


class NetworkMismatchError(AgroYieldError):
    """Raised when the agent is on the wrong chain and cannot be switched."""

    def __init__(
        self,
        message: str,
        expected_chain_id: str | None = None,
        actual_chain_id: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.expected_chain_id = expected_chain_id
        self.actual_chain_id = actual_chain_id


class BindingNotReadyError(AgroYieldError):
    """Raised when a ledger operation is attempted before the binding gate opens."""

    def __init__(self, message: str, state: str | None = None, details: dict | None = None):
        super().__init__(message, details)
        self.state = state


class InsufficientBalanceError(AgroYieldError):
    """Raised when the stable-token balance cannot cover an investment."""

    def __init__(
        self,
        message: str,
        required: Decimal | None = None,
        available: Decimal | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.required = required
        self.available = available


class InsufficientAllowanceError(AgroYieldError):
    """Raised when the approval needed to cover an investment fails."""

    def __init__(
        self,
        message: str,
        required: Decimal | None = None,
        allowance: Decimal | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.required = required
        self.allowance = allowance


class TransactionError(AgroYieldError):
    """Raised when a ledger write reverts or cannot be submitted."""

    def __init__(
        self,
        message: str,
        action: str | None = None,
        tx_hash: str | None = None,
        reason: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.action = action
        self.tx_hash = tx_hash
        self.reason = reason


class FetchError(AgroYieldError):
    """Raised internally when every gateway failed for a content address."""

    def __init__(
        self,
        message: str,
        content_ref: str | None = None,
        gateways: tuple[str, ...] = (),
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.content_ref = content_ref
        self.gateways = gateways


class NetworkError(AgroYieldError):
    """Raised when network/connection issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class ValidationError(AgroYieldError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class ProviderRpcError(AgroYieldError):
    """Error shape reported by a signing agent for a failed request."""

    def __init__(self, message: str, code: int, data: Any | None = None):
        super().__init__(message, {"code": code})
        self.code = code
        self.data = data
