"""Scored anchor/claim pairings and the permanent suppression list."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ledgermatch.domain.model.entity import Entity, utcnow
from ledgermatch.domain.model.enums import SuggestionStatus

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from ledgermatch.domain.model.transaction import ScoreBreakdown, Transaction


@dataclass(eq=False, kw_only=True)
class MatchSuggestion(Entity):
    """Candidate pairing, unique per (anchor_id, claim_id) and upserted on rescoring."""

    anchor_id: UUID
    claim_id: UUID
    score: float
    score_breakdown: ScoreBreakdown
    status: SuggestionStatus = SuggestionStatus.PENDING
    reviewed_by: str | None = None
    reviewed_at: datetime | None = None
    created_at: datetime = field(default_factory=utcnow)

    @property
    def pair(self) -> tuple[UUID, UUID]:
        return self.anchor_id, self.claim_id


@dataclass(eq=False, kw_only=True)
class RejectedPair(Entity):
    """Suppression record; once present the pair is never suggested again."""

    anchor_id: UUID
    claim_id: UUID
    rejected_by: str
    reason: str | None = None
    created_at: datetime = field(default_factory=utcnow)


@dataclass(slots=True, kw_only=True)
class SuggestionView:
    """A suggestion together with both sides of the pairing."""

    suggestion: MatchSuggestion
    anchor: Transaction
    claim: Transaction
