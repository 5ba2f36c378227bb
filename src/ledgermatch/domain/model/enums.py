"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class TransactionSource(StrEnum):
    ONCHAIN = "onchain"
    LOCAL = "local"
    CSV = "csv"
    MANUAL = "manual"


CLAIM_SOURCES: frozenset[TransactionSource] = frozenset(
    {TransactionSource.LOCAL, TransactionSource.CSV, TransactionSource.MANUAL}
)


class TransactionStatus(StrEnum):
    ANCHOR = "anchor"
    PENDING = "pending"
    SUGGESTED_MATCH = "suggested_match"
    RECONCILED = "reconciled"
    FORCE_RECONCILED = "force_reconciled"
    REJECTED = "rejected"
    UNRECONCILED = "unreconciled"


RECONCILED_STATUSES: frozenset[TransactionStatus] = frozenset(
    {TransactionStatus.RECONCILED, TransactionStatus.FORCE_RECONCILED}
)


class TransactionType(StrEnum):
    TRANSFER = "Transfer"
    APPROVAL = "Approval"
    MINT = "Mint"


class SuggestionStatus(StrEnum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class AlertLevel(StrEnum):
    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditAction(StrEnum):
    CREATE_CLAIM = "create_claim"
    RUN_MATCHING = "run_matching"
    APPROVE_MATCH = "approve_match"
    FORCE_RECONCILE = "force_reconcile"
    REJECT_MATCH = "reject_match"
    MARK_CLAIM = "mark_claim"
    DRIFT_ALERT = "drift_alert"
    UPDATE_CONFIG = "update_config"


class AuditEntityType(StrEnum):
    """Discriminator for the entity an audit entry refers to."""

    TRANSACTION = "transaction"
    SYSTEM = "system"
    WALLET_BALANCE = "wallet_balance"
    CONFIG = "config"


class ConfigKey(StrEnum):
    WEIGHTS = "weights"
    TOLERANCES = "tolerances"
    DRIFT_THRESHOLDS = "drift_thresholds"
