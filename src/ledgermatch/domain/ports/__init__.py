"""Domain port definitions for adapters."""

from __future__ import annotations

from .balances import BalanceReader
from .persistence import (
    AuditFilter,
    AuditLogRepository,
    MatchingConfigRepository,
    RejectedPairRepository,
    Repository,
    SuggestionFilter,
    SuggestionRepository,
    TransactionRepository,
    WalletBalanceRepository,
    WalletRiskRepository,
)
from .unit_of_work import (
    ReconciliationRepositories,
    ReconciliationUnitOfWork,
    RepositoryCollection,
    UnitOfWork,
)

__all__ = [
    "AuditFilter",
    "AuditLogRepository",
    "BalanceReader",
    "MatchingConfigRepository",
    "ReconciliationRepositories",
    "ReconciliationUnitOfWork",
    "RejectedPairRepository",
    "Repository",
    "RepositoryCollection",
    "SuggestionFilter",
    "SuggestionRepository",
    "TransactionRepository",
    "UnitOfWork",
    "WalletBalanceRepository",
    "WalletRiskRepository",
]
