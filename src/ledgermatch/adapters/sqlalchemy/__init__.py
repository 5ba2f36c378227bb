"""SQLAlchemy adapter package for ledgermatch."""

from __future__ import annotations

from .mappings import mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyAuditLogRepository,
    SqlAlchemyMatchingConfigRepository,
    SqlAlchemyRejectedPairRepository,
    SqlAlchemySuggestionRepository,
    SqlAlchemyTransactionRepository,
    SqlAlchemyWalletBalanceRepository,
    SqlAlchemyWalletRiskRepository,
)
from .unit_of_work import (
    SqlAlchemyUnitOfWork,
    StartupError,
    create_database_engine,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyAuditLogRepository",
    "SqlAlchemyMatchingConfigRepository",
    "SqlAlchemyRejectedPairRepository",
    "SqlAlchemySuggestionRepository",
    "SqlAlchemyTransactionRepository",
    "SqlAlchemyUnitOfWork",
    "SqlAlchemyWalletBalanceRepository",
    "SqlAlchemyWalletRiskRepository",
    "StartupError",
    "create_database_engine",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
