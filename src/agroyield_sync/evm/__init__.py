"""Ledger-facing components: wallet session, contract bindings and transactions."""

from .agent import LocalAccountAgent
from .bindings import ContractBindingManager
from .config import (
    BindingConfig,
    CacheConfig,
    ClientConfig,
    ContractAddresses,
    NetworkConfig,
    TransactionConfig,
)
from .connections import AccountSigner, AgentProvider, build_provider
from .ledger import LedgerClient, build_ledger_client
from .session import WalletSession
from .transactions import PendingTransaction, TransactionDispatcher

__all__ = [
    "AccountSigner",
    "AgentProvider",
    "BindingConfig",
    "CacheConfig",
    "ClientConfig",
    "ContractAddresses",
    "ContractBindingManager",
    "LedgerClient",
    "LocalAccountAgent",
    "NetworkConfig",
    "PendingTransaction",
    "TransactionConfig",
    "TransactionDispatcher",
    "WalletSession",
    "build_ledger_client",
    "build_provider",
]
