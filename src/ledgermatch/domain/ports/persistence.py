"""Ports for persisting ledger records, suggestions and wallet summaries."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from ledgermatch.domain.model import (
    AuditLogEntry,
    ConfigEntry,
    MatchSuggestion,
    RejectedPair,
    SuggestionView,
    Transaction,
    WalletBalanceDrift,
    WalletRiskScore,
)

if TYPE_CHECKING:
    from collections.abc import Sequence
    from decimal import Decimal
    from uuid import UUID

    from ledgermatch.domain.model import (
        AuditAction,
        AuditEntityType,
        SuggestionStatus,
        TransactionSource,
        TransactionStatus,
    )


@dataclass(slots=True, kw_only=True)
class AuditFilter:
    """Filters for the audit log; timestamps are epoch milliseconds."""

    action: AuditAction | None = None
    entity_type: AuditEntityType | None = None
    entity_id: UUID | None = None
    actor: str | None = None
    from_ms: int | None = None
    to_ms: int | None = None
    offset: int = 0
    limit: int = 50


@dataclass(slots=True, kw_only=True)
class SuggestionFilter:
    status: SuggestionStatus | None = None
    min_score: float | None = None
    token: str | None = None
    offset: int = 0
    limit: int = 50


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class TransactionRepository(Repository[Transaction], Protocol):
    """Ledger rows plus the candidate index used by the matching engine."""

    def get(self, tx_id: UUID) -> Transaction | None: ...

    def upsert_anchor(self, anchor: Transaction) -> Transaction:
        """Insert ``anchor`` unless an on-chain row with the same key exists."""
        ...

    def unmatched_anchors(self, token: str | None = None) -> Sequence[Transaction]: ...

    def candidate_claims(
        self,
        *,
        anchor_id: UUID,
        token: str,
        amount: Decimal,
        timestamp: int,
        amount_percent: float,
        time_window_ms: int,
        limit: int = 50,
    ) -> Sequence[Transaction]: ...

    def transition(
        self,
        tx_id: UUID,
        target: TransactionStatus,
        **values: Any,
    ) -> bool:
        """Move ``tx_id`` to ``target`` iff its stored status allows it.

        Returns ``False`` when no row was updated, either because the row is
        gone or because another writer already moved it.
        """
        ...

    def link_anchor(
        self,
        anchor_id: UUID,
        *,
        claim_id: UUID,
        match_score: float | None,
        score_breakdown: dict[str, float] | None,
        reconciled_by: str,
    ) -> None: ...

    def wallet_token_pairs(self) -> Sequence[tuple[str, str]]: ...

    def wallets(self) -> Sequence[str]: ...

    def signed_balance(
        self,
        wallet: str,
        token: str,
        statuses: frozenset[TransactionStatus],
    ) -> Decimal: ...

    def history_for_wallet(self, wallet: str) -> Sequence[Transaction]: ...

    def count(
        self,
        *,
        sources: frozenset[TransactionSource] | None = None,
        statuses: frozenset[TransactionStatus] | None = None,
    ) -> int: ...


@runtime_checkable
class SuggestionRepository(Repository[MatchSuggestion], Protocol):
    def upsert(self, suggestion: MatchSuggestion) -> None: ...

    def get_pair(self, anchor_id: UUID, claim_id: UUID) -> MatchSuggestion | None: ...

    def close(
        self,
        anchor_id: UUID,
        claim_id: UUID,
        *,
        status: SuggestionStatus,
        reviewed_by: str,
    ) -> bool: ...

    def list(self, query: SuggestionFilter) -> tuple[Sequence[SuggestionView], int]: ...

    def count(self, status: SuggestionStatus | None = None) -> int: ...


@runtime_checkable
class RejectedPairRepository(Protocol):
    def add_if_absent(self, pair: RejectedPair) -> bool: ...

    def exists(self, anchor_id: UUID, claim_id: UUID) -> bool: ...


@runtime_checkable
class AuditLogRepository(Repository[AuditLogEntry], Protocol):
    """Append-only; there is deliberately no update or delete."""

    def query(self, query: AuditFilter) -> tuple[Sequence[AuditLogEntry], int]: ...


@runtime_checkable
class WalletBalanceRepository(Protocol):
    def upsert(self, drift: WalletBalanceDrift) -> WalletBalanceDrift: ...

    def get_all(self) -> Sequence[WalletBalanceDrift]: ...

    def get_by_wallet(self, wallet: str) -> Sequence[WalletBalanceDrift]: ...


@runtime_checkable
class WalletRiskRepository(Protocol):
    def upsert(self, score: WalletRiskScore) -> WalletRiskScore: ...

    def get(self, wallet: str) -> WalletRiskScore | None: ...

    def get_all(self) -> Sequence[WalletRiskScore]: ...


@runtime_checkable
class MatchingConfigRepository(Protocol):
    def get_all(self) -> Sequence[ConfigEntry]: ...

    def upsert(self, entry: ConfigEntry) -> None: ...
