"""Initial ledger, matching, audit and wallet summary schema.

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_initial_schema"
down_revision = None
branch_labels = None
depends_on = None

AMOUNT = sa.Numeric(78, 18)


def _timestamp(name: str, *, nullable: bool = False) -> sa.Column[object]:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable)


def upgrade() -> None:
    op.create_table(
        "ledger_transaction",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("tx_hash", sa.String(66), nullable=False),
        sa.Column("source", sa.String(16), nullable=False),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("type", sa.String(16), nullable=False),
        sa.Column("token_symbol", sa.String(20), nullable=False),
        sa.Column("token_address", sa.String(42), nullable=True),
        sa.Column("amount_gross", AMOUNT, nullable=False),
        sa.Column("amount_net", AMOUNT, nullable=True),
        sa.Column("gas_used", AMOUNT, nullable=True),
        sa.Column("sender_address", sa.String(42), nullable=True),
        sa.Column("receiver_address", sa.String(42), nullable=True),
        sa.Column("timestamp", sa.BigInteger(), nullable=False),
        sa.Column("block_number", sa.BigInteger(), nullable=True),
        sa.Column("matched_tx_id", sa.Uuid(), nullable=True),
        sa.Column("match_score", sa.Float(), nullable=True),
        sa.Column("score_breakdown", sa.JSON(), nullable=True),
        sa.Column("reconciled_by", sa.String(255), nullable=True),
        _timestamp("reconciled_at", nullable=True),
        sa.Column("force_reconciled", sa.Boolean(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _timestamp("created_at"),
        _timestamp("updated_at"),
        sa.ForeignKeyConstraint(
            ["matched_tx_id"],
            ["ledger_transaction.id"],
            name="fk_ledger_transaction_matched_tx_id_ledger_transaction",
            ondelete="SET NULL",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_ledger_transaction"),
    )
    op.create_index(
        "ix_ledger_transaction_source_status_token",
        "ledger_transaction",
        ["source", "status", "token_symbol"],
    )
    op.create_index(
        "ix_ledger_transaction_token_timestamp",
        "ledger_transaction",
        ["token_symbol", "timestamp"],
    )
    op.create_index(
        "ix_ledger_transaction_matched_tx_id",
        "ledger_transaction",
        ["matched_tx_id"],
    )
    op.create_index(
        "uq_ledger_transaction_anchor_key",
        "ledger_transaction",
        ["tx_hash", "token_symbol", "type"],
        unique=True,
        sqlite_where=sa.text("source = 'onchain'"),
        postgresql_where=sa.text("source = 'onchain'"),
    )

    op.create_table(
        "match_suggestion",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("anchor_id", sa.Uuid(), nullable=False),
        sa.Column("claim_id", sa.Uuid(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("score_breakdown", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("reviewed_by", sa.String(255), nullable=True),
        _timestamp("reviewed_at", nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["anchor_id"],
            ["ledger_transaction.id"],
            name="fk_match_suggestion_anchor_id_ledger_transaction",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["claim_id"],
            ["ledger_transaction.id"],
            name="fk_match_suggestion_claim_id_ledger_transaction",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_match_suggestion"),
        sa.UniqueConstraint("anchor_id", "claim_id", name="uq_match_suggestion_anchor_id"),
    )
    op.create_index(
        "ix_match_suggestion_status_score",
        "match_suggestion",
        ["status", "score"],
    )

    op.create_table(
        "rejected_pair",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("anchor_id", sa.Uuid(), nullable=False),
        sa.Column("claim_id", sa.Uuid(), nullable=False),
        sa.Column("rejected_by", sa.String(255), nullable=False),
        sa.Column("reason", sa.Text(), nullable=True),
        _timestamp("created_at"),
        sa.ForeignKeyConstraint(
            ["anchor_id"],
            ["ledger_transaction.id"],
            name="fk_rejected_pair_anchor_id_ledger_transaction",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["claim_id"],
            ["ledger_transaction.id"],
            name="fk_rejected_pair_claim_id_ledger_transaction",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_rejected_pair"),
        sa.UniqueConstraint("anchor_id", "claim_id", name="uq_rejected_pair_anchor_id"),
    )

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("entity_type", sa.String(32), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=True),
        sa.Column("actor", sa.String(255), nullable=False),
        sa.Column("previous_state", sa.JSON(), nullable=True),
        sa.Column("new_state", sa.JSON(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        _timestamp("timestamp"),
        sa.PrimaryKeyConstraint("id", name="pk_audit_log"),
    )
    op.create_index("ix_audit_log_timestamp", "audit_log", ["timestamp"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_type", "entity_id"])

    op.create_table(
        "wallet_balance",
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("token_symbol", sa.String(20), nullable=False),
        sa.Column("internal_balance", AMOUNT, nullable=False),
        sa.Column("onchain_balance", AMOUNT, nullable=False),
        sa.Column("drift", AMOUNT, nullable=False),
        sa.Column("drift_percentage", sa.Float(), nullable=False),
        sa.Column("alert_level", sa.String(16), nullable=False),
        _timestamp("last_updated"),
        sa.PrimaryKeyConstraint("wallet_address", "token_symbol", name="pk_wallet_balance"),
    )

    op.create_table(
        "wallet_risk_score",
        sa.Column("wallet_address", sa.String(42), nullable=False),
        sa.Column("risk_score", sa.Float(), nullable=False),
        sa.Column("risk_breakdown", sa.JSON(), nullable=False),
        sa.Column("summary", sa.JSON(), nullable=False),
        _timestamp("last_calculated"),
        sa.PrimaryKeyConstraint("wallet_address", name="pk_wallet_risk_score"),
    )

    op.create_table(
        "matching_config",
        sa.Column("key", sa.String(64), nullable=False),
        sa.Column("value", sa.JSON(), nullable=False),
        sa.Column("updated_by", sa.String(255), nullable=True),
        _timestamp("updated_at"),
        sa.PrimaryKeyConstraint("key", name="pk_matching_config"),
    )


def downgrade() -> None:
    op.drop_table("matching_config")
    op.drop_table("wallet_risk_score")
    op.drop_table("wallet_balance")
    op.drop_index("ix_audit_log_entity", table_name="audit_log")
    op.drop_index("ix_audit_log_timestamp", table_name="audit_log")
    op.drop_table("audit_log")
    op.drop_table("rejected_pair")
    op.drop_index("ix_match_suggestion_status_score", table_name="match_suggestion")
    op.drop_table("match_suggestion")
    op.drop_index("uq_ledger_transaction_anchor_key", table_name="ledger_transaction")
    op.drop_index("ix_ledger_transaction_matched_tx_id", table_name="ledger_transaction")
    op.drop_index("ix_ledger_transaction_token_timestamp", table_name="ledger_transaction")
    op.drop_index("ix_ledger_transaction_source_status_token", table_name="ledger_transaction")
    op.drop_table("ledger_transaction")
