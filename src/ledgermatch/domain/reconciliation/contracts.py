"""Result objects returned by matching and reconciliation operations."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from ledgermatch.domain.model import (
        MatchSuggestion,
        SuggestionView,
        Transaction,
        TransactionStatus,
    )


@dataclass(slots=True)
class MatchingRunResult:
    """Outcome of one suggestion-generation pass."""

    new_suggestions: int
    elapsed_ms: int
    anchors_scanned: int = 0
    skipped_pairs: int = 0


@dataclass(slots=True)
class ApprovalResult:
    anchor: Transaction
    claim: Transaction
    suggestion: MatchSuggestion | None = None


@dataclass(slots=True)
class RejectionResult:
    anchor_id: UUID
    claim_id: UUID
    newly_suppressed: bool
    claim_status: TransactionStatus


@dataclass(slots=True, frozen=True)
class PairRef:
    anchor_id: UUID
    claim_id: UUID


@dataclass(slots=True, frozen=True)
class BatchFailure:
    anchor_id: UUID
    claim_id: UUID
    error: str


@dataclass(slots=True)
class BatchApprovalResult:
    approved: int = 0
    failed: list[BatchFailure] = field(default_factory=list)


@dataclass(slots=True)
class SuggestionPage:
    suggestions: list[SuggestionView]
    total: int
    page: int
    limit: int
