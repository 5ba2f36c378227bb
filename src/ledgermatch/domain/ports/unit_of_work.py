"""Unit-of-work abstractions for coordinating repositories."""

from __future__ import annotations

from contextlib import AbstractContextManager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from types import TracebackType

    from ledgermatch.domain.ports.persistence import (
        AuditLogRepository,
        MatchingConfigRepository,
        RejectedPairRepository,
        SuggestionRepository,
        TransactionRepository,
        WalletBalanceRepository,
        WalletRiskRepository,
    )


@runtime_checkable
class RepositoryCollection(Protocol):
    """Marker protocol for groups of repositories managed together."""


@runtime_checkable
class UnitOfWork[TRepositories: RepositoryCollection](Protocol):
    """Generic unit-of-work boundary around a repository collection."""

    @property
    def repositories(self) -> TRepositories: ...  # the repo list itself should be immutable

    def __enter__(self) -> UnitOfWork[TRepositories]: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...

    def savepoint(self) -> AbstractContextManager[object]:
        """Nested block whose failure rolls back only its own writes."""
        ...


@dataclass(slots=True)
class ReconciliationRepositories(RepositoryCollection):
    """Every repository a reconciliation operation may touch."""

    transactions: TransactionRepository
    suggestions: SuggestionRepository
    rejected_pairs: RejectedPairRepository
    audit_log: AuditLogRepository
    balances: WalletBalanceRepository
    risk_scores: WalletRiskRepository
    config: MatchingConfigRepository


type ReconciliationUnitOfWork = UnitOfWork[ReconciliationRepositories]
