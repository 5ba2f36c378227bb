"""Public domain model surface."""

from __future__ import annotations

from ledgermatch.domain.model.audit import AuditLogEntry, AuditState
from ledgermatch.domain.model.entity import Entity, new_id, utcnow
from ledgermatch.domain.model.enums import (
    CLAIM_SOURCES,
    RECONCILED_STATUSES,
    AlertLevel,
    AuditAction,
    AuditEntityType,
    ConfigKey,
    SuggestionStatus,
    TransactionSource,
    TransactionStatus,
    TransactionType,
)
from ledgermatch.domain.model.settings import (
    DEFAULT_MATCHING_CONFIG,
    ConfigEntry,
    DriftThresholds,
    MatchingConfig,
    Tolerances,
    Weights,
)
from ledgermatch.domain.model.suggestion import MatchSuggestion, RejectedPair, SuggestionView
from ledgermatch.domain.model.transaction import ScoreBreakdown, Transaction
from ledgermatch.domain.model.wallet import (
    RiskBreakdown,
    RiskSummary,
    WalletBalanceDrift,
    WalletRiskScore,
)

__all__ = [  # noqa: RUF022
    # base
    "Entity",
    "new_id",
    "utcnow",
    # ledger
    "Transaction",
    "ScoreBreakdown",
    # matching
    "MatchSuggestion",
    "RejectedPair",
    "SuggestionView",
    # audit
    "AuditLogEntry",
    "AuditState",
    # wallet summaries
    "WalletBalanceDrift",
    "WalletRiskScore",
    "RiskBreakdown",
    "RiskSummary",
    # settings
    "ConfigEntry",
    "DriftThresholds",
    "MatchingConfig",
    "Tolerances",
    "Weights",
    "DEFAULT_MATCHING_CONFIG",
    # enums
    "AlertLevel",
    "AuditAction",
    "AuditEntityType",
    "ConfigKey",
    "SuggestionStatus",
    "TransactionSource",
    "TransactionStatus",
    "TransactionType",
    "CLAIM_SOURCES",
    "RECONCILED_STATUSES",
]
