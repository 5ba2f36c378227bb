"""Matching and reconciliation of off-chain claims against on-chain anchors.

Flow:
1) ``MatchingEngine`` scores pending claims near each unmatched anchor
2) pairs above the threshold become pending suggestions
3) ``ReconciliationService`` approves, rejects or force-reconciles pairs
"""

from __future__ import annotations

from .contracts import (
    ApprovalResult,
    BatchApprovalResult,
    BatchFailure,
    MatchingRunResult,
    PairRef,
    RejectionResult,
    SuggestionPage,
)
from .matching import CANDIDATE_LIMIT, DEFAULT_MIN_SCORE, SYSTEM_ACTOR, MatchingEngine
from .scoring import (
    MatchScore,
    address_score,
    amount_score,
    score_match,
    time_score,
    token_score,
)
from .service import MAX_BATCH_SIZE, ReconciliationService

__all__ = [
    "CANDIDATE_LIMIT",
    "DEFAULT_MIN_SCORE",
    "MAX_BATCH_SIZE",
    "SYSTEM_ACTOR",
    "ApprovalResult",
    "BatchApprovalResult",
    "BatchFailure",
    "MatchScore",
    "MatchingEngine",
    "MatchingRunResult",
    "PairRef",
    "ReconciliationService",
    "RejectionResult",
    "SuggestionPage",
    "address_score",
    "amount_score",
    "score_match",
    "time_score",
    "token_score",
]
