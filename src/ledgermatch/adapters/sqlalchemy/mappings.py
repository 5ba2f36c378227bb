"""SQLAlchemy mapping metadata for the ledgermatch domain model."""

from __future__ import annotations

import logging
import uuid
from datetime import UTC, datetime
from enum import StrEnum
from functools import cache
from typing import TYPE_CHECKING, Final

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Dialect,
    Enum,
    Float,
    ForeignKey,
    Index,
    Numeric,
    String,
    Table,
    Text,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
    text,
)
from sqlalchemy.orm import configure_mappers

from ledgermatch.domain.model import (
    AlertLevel,
    AuditAction,
    AuditEntityType,
    AuditLogEntry,
    ConfigEntry,
    MatchSuggestion,
    RejectedPair,
    SuggestionStatus,
    Transaction,
    TransactionSource,
    TransactionStatus,
    TransactionType,
    WalletBalanceDrift,
    WalletRiskScore,
)

if TYPE_CHECKING:
    from decimal import Decimal

log = logging.getLogger(__name__)

UUIDColumnType = Uuid[uuid.UUID]

ADDRESS_LENGTH: Final[int] = 42
TX_HASH_LENGTH: Final[int] = 66


def _amount() -> Numeric[Decimal]:
    return Numeric(78, 18)


def _enum[E: StrEnum](enum_cls: type[E], length: int = 32) -> Enum:
    """Store the enum's string value (not its member name)."""

    return Enum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [member.value for member in members],
    )


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Partial-index predicate identifying on-chain anchors; shared by the index and
# the ON CONFLICT target of ``upsert_anchor``.
ANCHOR_KEY_WHERE = text("source = 'onchain'")
ANCHOR_KEY_COLUMNS: Final[tuple[str, ...]] = ("tx_hash", "token_symbol", "type")

# Ledger ----------------------------------------------------------------------

transaction_table = Table(
    "ledger_transaction",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("tx_hash", String(TX_HASH_LENGTH), nullable=False),
    Column("source", _enum(TransactionSource, 16), nullable=False),
    Column("status", _enum(TransactionStatus), nullable=False),
    Column("type", _enum(TransactionType, 16), nullable=False),
    Column("token_symbol", String(20), nullable=False),
    Column("token_address", String(ADDRESS_LENGTH), nullable=True),
    Column("amount_gross", _amount(), nullable=False),
    Column("amount_net", _amount(), nullable=True),
    Column("gas_used", _amount(), nullable=True),
    Column("sender_address", String(ADDRESS_LENGTH), nullable=True),
    Column("receiver_address", String(ADDRESS_LENGTH), nullable=True),
    Column("timestamp", BigInteger, nullable=False),
    Column("block_number", BigInteger, nullable=True),
    Column(
        "matched_tx_id",
        UUIDColumnType,
        ForeignKey("ledger_transaction.id", ondelete="SET NULL"),
        nullable=True,
    ),
    Column("match_score", Float, nullable=True),
    Column("score_breakdown", JSON, nullable=True),
    Column("reconciled_by", String(255), nullable=True),
    Column("reconciled_at", UTCDateTime(), nullable=True),
    Column("force_reconciled", Boolean, nullable=False, default=False),
    Column("notes", Text, nullable=True),
    Column("metadata", JSON, key="meta", nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    Column("updated_at", UTCDateTime(), nullable=False),
    Index("ix_ledger_transaction_source_status_token", "source", "status", "token_symbol"),
    Index("ix_ledger_transaction_token_timestamp", "token_symbol", "timestamp"),
    Index("ix_ledger_transaction_matched_tx_id", "matched_tx_id"),
    Index(
        "uq_ledger_transaction_anchor_key",
        *ANCHOR_KEY_COLUMNS,
        unique=True,
        sqlite_where=ANCHOR_KEY_WHERE,
        postgresql_where=ANCHOR_KEY_WHERE,
    ),
)

# Matching --------------------------------------------------------------------

match_suggestion_table = Table(
    "match_suggestion",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "anchor_id",
        UUIDColumnType,
        ForeignKey("ledger_transaction.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "claim_id",
        UUIDColumnType,
        ForeignKey("ledger_transaction.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("score", Float, nullable=False),
    Column("score_breakdown", JSON, nullable=False),
    Column("status", _enum(SuggestionStatus, 16), nullable=False),
    Column("reviewed_by", String(255), nullable=True),
    Column("reviewed_at", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("anchor_id", "claim_id"),
    Index("ix_match_suggestion_status_score", "status", "score"),
)

rejected_pair_table = Table(
    "rejected_pair",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "anchor_id",
        UUIDColumnType,
        ForeignKey("ledger_transaction.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column(
        "claim_id",
        UUIDColumnType,
        ForeignKey("ledger_transaction.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("rejected_by", String(255), nullable=False),
    Column("reason", Text, nullable=True),
    Column("created_at", UTCDateTime(), nullable=False),
    UniqueConstraint("anchor_id", "claim_id"),
)

# Audit -----------------------------------------------------------------------

audit_log_table = Table(
    "audit_log",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("action", _enum(AuditAction), nullable=False),
    Column("entity_type", _enum(AuditEntityType), nullable=False),
    Column("entity_id", UUIDColumnType, nullable=True),
    Column("actor", String(255), nullable=False),
    Column("previous_state", JSON, nullable=True),
    Column("new_state", JSON, nullable=True),
    Column("metadata", JSON, key="meta", nullable=True),
    Column("timestamp", UTCDateTime(), nullable=False),
    Index("ix_audit_log_timestamp", "timestamp"),
    Index("ix_audit_log_entity", "entity_type", "entity_id"),
)

# Wallet summaries ------------------------------------------------------------

wallet_balance_table = Table(
    "wallet_balance",
    mapper_registry.metadata,
    Column("wallet_address", String(ADDRESS_LENGTH), primary_key=True),
    Column("token_symbol", String(20), primary_key=True),
    Column("internal_balance", _amount(), nullable=False),
    Column("onchain_balance", _amount(), nullable=False),
    Column("drift", _amount(), nullable=False),
    Column("drift_percentage", Float, nullable=False),
    Column("alert_level", _enum(AlertLevel, 16), nullable=False),
    Column("last_updated", UTCDateTime(), nullable=False),
)

wallet_risk_score_table = Table(
    "wallet_risk_score",
    mapper_registry.metadata,
    Column("wallet_address", String(ADDRESS_LENGTH), primary_key=True),
    Column("risk_score", Float, nullable=False),
    Column("risk_breakdown", JSON, nullable=False),
    Column("summary", JSON, nullable=False),
    Column("last_calculated", UTCDateTime(), nullable=False),
)

# Settings --------------------------------------------------------------------

matching_config_table = Table(
    "matching_config",
    mapper_registry.metadata,
    Column("key", String(64), primary_key=True),
    Column("value", JSON, nullable=False),
    Column("updated_by", String(255), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=False),
)


@cache
def start_mappers() -> orm.registry:
    """Configure SQLAlchemy mappers for the domain model."""

    log.info("Starting SQLAlchemy mappers")

    mapper_registry.map_imperatively(Transaction, transaction_table)
    mapper_registry.map_imperatively(MatchSuggestion, match_suggestion_table)
    mapper_registry.map_imperatively(RejectedPair, rejected_pair_table)
    mapper_registry.map_imperatively(AuditLogEntry, audit_log_table)
    mapper_registry.map_imperatively(WalletBalanceDrift, wallet_balance_table)
    mapper_registry.map_imperatively(WalletRiskScore, wallet_risk_score_table)
    mapper_registry.map_imperatively(ConfigEntry, matching_config_table)

    configure_mappers()
    return mapper_registry
