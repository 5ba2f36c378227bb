"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    ColumnElement,
    Delete,
    Update,
    and_,
    case,
    func,
    literal,
    or_,
    select,
    union,
    update,
)
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import aliased

from ledgermatch.adapters.sqlalchemy.mappings import (
    ANCHOR_KEY_COLUMNS,
    ANCHOR_KEY_WHERE,
    audit_log_table,
    match_suggestion_table,
    matching_config_table,
    rejected_pair_table,
    transaction_table,
    wallet_balance_table,
    wallet_risk_score_table,
)
from ledgermatch.domain.model import (
    AuditLogEntry,
    ConfigEntry,
    MatchSuggestion,
    SuggestionStatus,
    SuggestionView,
    Transaction,
    TransactionSource,
    TransactionStatus,
    WalletBalanceDrift,
    WalletRiskScore,
    utcnow,
)
from ledgermatch.domain.model.lifecycle import allowed_sources, allowed_suggestion_sources

if TYPE_CHECKING:
    from collections.abc import Sequence
    from uuid import UUID

    from sqlalchemy import Table
    from sqlalchemy.orm import Session

    from ledgermatch.domain.model import RejectedPair
    from ledgermatch.domain.ports.persistence import AuditFilter, SuggestionFilter

_tx = transaction_table.c
_sg = match_suggestion_table.c
_rp = rejected_pair_table.c
_al = audit_log_table.c


class UnsupportedDialectError(RuntimeError):
    """Raised when an upsert is requested on a backend without ON CONFLICT support."""


def _insert_for(session: Session, table: Table) -> Any:
    """Return a dialect-specific INSERT supporting ``ON CONFLICT`` clauses."""

    dialect = session.get_bind().dialect.name
    if dialect == "sqlite":
        return sqlite.insert(table)
    if dialect == "postgresql":
        return postgresql.insert(table)
    raise UnsupportedDialectError(f"Upserts are not supported on dialect {dialect!r}")


def _rowcount(result: object) -> int:
    return getattr(result, "rowcount", 0) or 0


def _ms_to_datetime(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=UTC)


def _same_address(column: ColumnElement[str], wallet: str) -> ColumnElement[bool]:
    return func.lower(column) == wallet.lower()


class SqlAlchemyTransactionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: Transaction) -> None:
        self.session.add(entity)

    def get(self, tx_id: UUID) -> Transaction | None:
        return self.session.get(Transaction, tx_id)

    def upsert_anchor(self, anchor: Transaction) -> Transaction:
        values = {
            column.key: getattr(anchor, column.key)
            for column in transaction_table.columns
        }
        stmt = (
            _insert_for(self.session, transaction_table)
            .values(**values)
            .on_conflict_do_nothing(
                index_elements=list(ANCHOR_KEY_COLUMNS),
                index_where=ANCHOR_KEY_WHERE,
            )
        )
        self.session.execute(stmt)
        existing = self.session.execute(
            select(Transaction)
            .where(_tx.source == TransactionSource.ONCHAIN)
            .where(_tx.tx_hash == anchor.tx_hash)
            .where(_tx.token_symbol == anchor.token_symbol)
            .where(_tx.type == anchor.type)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return existing

    def unmatched_anchors(self, token: str | None = None) -> Sequence[Transaction]:
        stmt = (
            select(Transaction)
            .where(_tx.source == TransactionSource.ONCHAIN)
            .where(_tx.status == TransactionStatus.ANCHOR)
            .where(_tx.matched_tx_id.is_(None))
            .order_by(_tx.timestamp.desc())
        )
        if token is not None:
            stmt = stmt.where(_tx.token_symbol == token)
        return self.session.execute(stmt).scalars().all()

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
    ) -> Sequence[Transaction]:
        tolerance = Decimal(str(amount_percent))
        low = amount * (1 - tolerance)
        high = amount * (1 + tolerance)
        rejected_claims = select(_rp.claim_id).where(_rp.anchor_id == anchor_id)
        stmt = (
            select(Transaction)
            .where(_tx.source != TransactionSource.ONCHAIN)
            .where(_tx.status == TransactionStatus.PENDING)
            .where(_tx.token_symbol == token)
            .where(_tx.amount_gross.between(low, high))
            .where(_tx.timestamp.between(timestamp - time_window_ms, timestamp + time_window_ms))
            .where(_tx.id.not_in(rejected_claims))
            .order_by(func.abs(_tx.amount_gross - amount), _tx.timestamp)
            .limit(limit)
        )
        return self.session.execute(stmt).scalars().all()

    def transition(self, tx_id: UUID, target: TransactionStatus, **values: Any) -> bool:
        stmt = (
            update(Transaction)
            .where(_tx.id == tx_id)
            .where(_tx.status.in_(allowed_sources(target)))
            .values(status=target, updated_at=utcnow(), **values)
            .execution_options(synchronize_session=False)
        )
        if self._execute_dml(stmt) != 1:
            return False
        self._reload(tx_id)
        return True

    def link_anchor(
        self,
        anchor_id: UUID,
        *,
        claim_id: UUID,
        match_score: float | None,
        score_breakdown: dict[str, float] | None,
        reconciled_by: str,
    ) -> None:
        now = utcnow()
        stmt = (
            update(Transaction)
            .where(_tx.id == anchor_id)
            .where(_tx.source == TransactionSource.ONCHAIN)
            .values(
                matched_tx_id=claim_id,
                match_score=match_score,
                score_breakdown=score_breakdown,
                reconciled_by=reconciled_by,
                reconciled_at=now,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if self._execute_dml(stmt) == 1:
            self._reload(anchor_id)

    def wallet_token_pairs(self) -> Sequence[tuple[str, str]]:
        senders = select(
            func.lower(_tx.sender_address).label("wallet"),
            _tx.token_symbol.label("token"),
        ).where(_tx.sender_address.is_not(None))
        receivers = select(
            func.lower(_tx.receiver_address).label("wallet"),
            _tx.token_symbol.label("token"),
        ).where(_tx.receiver_address.is_not(None))
        pairs = union(senders, receivers).subquery()
        rows = self.session.execute(
            select(pairs.c.wallet, pairs.c.token).order_by(pairs.c.wallet, pairs.c.token)
        ).all()
        return [(str(wallet), str(token)) for wallet, token in rows]

    def wallets(self) -> Sequence[str]:
        senders = select(func.lower(_tx.sender_address).label("wallet")).where(
            _tx.sender_address.is_not(None)
        )
        receivers = select(func.lower(_tx.receiver_address).label("wallet")).where(
            _tx.receiver_address.is_not(None)
        )
        wallets = union(senders, receivers).subquery()
        rows = self.session.execute(select(wallets.c.wallet).order_by(wallets.c.wallet))
        return [str(wallet) for wallet in rows.scalars()]

    def signed_balance(
        self,
        wallet: str,
        token: str,
        statuses: frozenset[TransactionStatus],
    ) -> Decimal:
        received = _same_address(_tx.receiver_address, wallet)
        sent = _same_address(_tx.sender_address, wallet)
        signed = case(
            (received, _tx.amount_gross),
            (sent, -_tx.amount_gross),
            else_=literal(0),
        )
        stmt = (
            select(func.coalesce(func.sum(signed), 0))
            .where(or_(received, sent))
            .where(_tx.token_symbol == token)
            .where(_tx.status.in_(statuses))
        )
        total = self.session.execute(stmt).scalar_one()
        return Decimal(str(total))

    def history_for_wallet(self, wallet: str) -> Sequence[Transaction]:
        stmt = (
            select(Transaction)
            .where(
                or_(
                    _same_address(_tx.sender_address, wallet),
                    _same_address(_tx.receiver_address, wallet),
                )
            )
            .order_by(_tx.timestamp, _tx.created_at)
        )
        return self.session.execute(stmt).scalars().all()

    def count(
        self,
        *,
        sources: frozenset[TransactionSource] | None = None,
        statuses: frozenset[TransactionStatus] | None = None,
    ) -> int:
        stmt = select(func.count()).select_from(transaction_table)
        if sources is not None:
            stmt = stmt.where(_tx.source.in_(sources))
        if statuses is not None:
            stmt = stmt.where(_tx.status.in_(statuses))
        return int(self.session.execute(stmt).scalar_one())

    def _execute_dml(self, stmt: Update | Delete) -> int:
        return _rowcount(self.session.execute(stmt))

    def _reload(self, tx_id: UUID) -> None:
        # bulk UPDATE bypasses the identity map
        self.session.get(Transaction, tx_id, populate_existing=True)


class SqlAlchemySuggestionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: MatchSuggestion) -> None:
        self.session.add(entity)

    def upsert(self, suggestion: MatchSuggestion) -> None:
        insert = _insert_for(self.session, match_suggestion_table)
        stmt = insert.values(
            id=suggestion.id,
            anchor_id=suggestion.anchor_id,
            claim_id=suggestion.claim_id,
            score=suggestion.score,
            score_breakdown=suggestion.score_breakdown,
            status=suggestion.status,
            created_at=suggestion.created_at,
        ).on_conflict_do_update(
            index_elements=[_sg.anchor_id, _sg.claim_id],
            set_={
                "score": insert.excluded.score,
                "score_breakdown": insert.excluded.score_breakdown,
            },
            where=_sg.status == SuggestionStatus.PENDING,
        )
        self.session.execute(stmt)

    def get_pair(self, anchor_id: UUID, claim_id: UUID) -> MatchSuggestion | None:
        stmt = (
            select(MatchSuggestion)
            .where(_sg.anchor_id == anchor_id)
            .where(_sg.claim_id == claim_id)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def close(
        self,
        anchor_id: UUID,
        claim_id: UUID,
        *,
        status: SuggestionStatus,
        reviewed_by: str,
    ) -> bool:
        stmt = (
            update(MatchSuggestion)
            .where(_sg.anchor_id == anchor_id)
            .where(_sg.claim_id == claim_id)
            .where(_sg.status.in_(allowed_suggestion_sources(status)))
            .values(status=status, reviewed_by=reviewed_by, reviewed_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def list(self, query: SuggestionFilter) -> tuple[Sequence[SuggestionView], int]:
        anchor = aliased(Transaction, name="anchor")
        claim = aliased(Transaction, name="claim")

        conditions: list[ColumnElement[bool]] = []
        if query.status is not None:
            conditions.append(_sg.status == query.status)
        if query.min_score is not None:
            conditions.append(_sg.score >= query.min_score)
        if query.token is not None:
            conditions.append(anchor.token_symbol == query.token)
        where = and_(*conditions) if conditions else None

        stmt = (
            select(MatchSuggestion, anchor, claim)
            .join(anchor, anchor.id == _sg.anchor_id)
            .join(claim, claim.id == _sg.claim_id)
            .order_by(_sg.score.desc(), _sg.created_at)
            .offset(query.offset)
            .limit(query.limit)
            .execution_options(populate_existing=True)
        )
        count_stmt = (
            select(func.count())
            .select_from(match_suggestion_table)
            .join(anchor, anchor.id == _sg.anchor_id)
        )
        if where is not None:
            stmt = stmt.where(where)
            count_stmt = count_stmt.where(where)

        views = [
            SuggestionView(suggestion=suggestion, anchor=anchor_tx, claim=claim_tx)
            for suggestion, anchor_tx, claim_tx in self.session.execute(stmt).tuples()
        ]
        total = int(self.session.execute(count_stmt).scalar_one())
        return views, total

    def count(self, status: SuggestionStatus | None = None) -> int:
        stmt = select(func.count()).select_from(match_suggestion_table)
        if status is not None:
            stmt = stmt.where(_sg.status == status)
        return int(self.session.execute(stmt).scalar_one())


class SqlAlchemyRejectedPairRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add_if_absent(self, pair: RejectedPair) -> bool:
        stmt = (
            _insert_for(self.session, rejected_pair_table)
            .values(
                id=pair.id,
                anchor_id=pair.anchor_id,
                claim_id=pair.claim_id,
                rejected_by=pair.rejected_by,
                reason=pair.reason,
                created_at=pair.created_at,
            )
            .on_conflict_do_nothing(index_elements=[_rp.anchor_id, _rp.claim_id])
        )
        return _rowcount(self.session.execute(stmt)) == 1

    def exists(self, anchor_id: UUID, claim_id: UUID) -> bool:
        stmt = (
            select(_rp.id)
            .where(_rp.anchor_id == anchor_id)
            .where(_rp.claim_id == claim_id)
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none() is not None


class SqlAlchemyAuditLogRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: AuditLogEntry) -> None:
        self.session.add(entity)

    def query(self, query: AuditFilter) -> tuple[Sequence[AuditLogEntry], int]:
        conditions: list[ColumnElement[bool]] = []
        if query.action is not None:
            conditions.append(_al.action == query.action)
        if query.entity_type is not None:
            conditions.append(_al.entity_type == query.entity_type)
        if query.entity_id is not None:
            conditions.append(_al.entity_id == query.entity_id)
        if query.actor is not None:
            conditions.append(_al.actor == query.actor)
        if query.from_ms is not None:
            conditions.append(_al.timestamp >= _ms_to_datetime(query.from_ms))
        if query.to_ms is not None:
            conditions.append(_al.timestamp <= _ms_to_datetime(query.to_ms))

        stmt = (
            select(AuditLogEntry)
            .where(*conditions)
            .order_by(_al.timestamp.desc(), _al.id)
            .offset(query.offset)
            .limit(query.limit)
        )
        count_stmt = select(func.count()).select_from(audit_log_table).where(*conditions)
        entries = self.session.execute(stmt).scalars().all()
        total = int(self.session.execute(count_stmt).scalar_one())
        return entries, total


class SqlAlchemyWalletBalanceRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert(self, drift: WalletBalanceDrift) -> WalletBalanceDrift:
        insert = _insert_for(self.session, wallet_balance_table)
        stmt = insert.values(
            wallet_address=drift.wallet_address,
            token_symbol=drift.token_symbol,
            internal_balance=drift.internal_balance,
            onchain_balance=drift.onchain_balance,
            drift=drift.drift,
            drift_percentage=drift.drift_percentage,
            alert_level=drift.alert_level,
            last_updated=drift.last_updated,
        ).on_conflict_do_update(
            index_elements=[
                wallet_balance_table.c.wallet_address,
                wallet_balance_table.c.token_symbol,
            ],
            set_={
                "internal_balance": insert.excluded.internal_balance,
                "onchain_balance": insert.excluded.onchain_balance,
                "drift": insert.excluded.drift,
                "drift_percentage": insert.excluded.drift_percentage,
                "alert_level": insert.excluded.alert_level,
                "last_updated": insert.excluded.last_updated,
            },
        )
        self.session.execute(stmt)
        stored = self.session.execute(
            select(WalletBalanceDrift)
            .where(wallet_balance_table.c.wallet_address == drift.wallet_address)
            .where(wallet_balance_table.c.token_symbol == drift.token_symbol)
            .execution_options(populate_existing=True)
        ).scalar_one()
        return stored

    def get_all(self) -> Sequence[WalletBalanceDrift]:
        stmt = select(WalletBalanceDrift).order_by(
            func.abs(wallet_balance_table.c.drift).desc(),
            wallet_balance_table.c.wallet_address,
            wallet_balance_table.c.token_symbol,
        )
        return self.session.execute(stmt).scalars().all()

    def get_by_wallet(self, wallet: str) -> Sequence[WalletBalanceDrift]:
        stmt = (
            select(WalletBalanceDrift)
            .where(_same_address(wallet_balance_table.c.wallet_address, wallet))
            .order_by(wallet_balance_table.c.token_symbol)
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyWalletRiskRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def upsert(self, score: WalletRiskScore) -> WalletRiskScore:
        insert = _insert_for(self.session, wallet_risk_score_table)
        stmt = insert.values(
            wallet_address=score.wallet_address,
            risk_score=score.risk_score,
            risk_breakdown=score.risk_breakdown,
            summary=score.summary,
            last_calculated=score.last_calculated,
        ).on_conflict_do_update(
            index_elements=[wallet_risk_score_table.c.wallet_address],
            set_={
                "risk_score": insert.excluded.risk_score,
                "risk_breakdown": insert.excluded.risk_breakdown,
                "summary": insert.excluded.summary,
                "last_calculated": insert.excluded.last_calculated,
            },
        )
        self.session.execute(stmt)
        return self.session.execute(
            select(WalletRiskScore)
            .where(wallet_risk_score_table.c.wallet_address == score.wallet_address)
            .execution_options(populate_existing=True)
        ).scalar_one()

    def get(self, wallet: str) -> WalletRiskScore | None:
        stmt = (
            select(WalletRiskScore)
            .where(_same_address(wallet_risk_score_table.c.wallet_address, wallet))
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().first()

    def get_all(self) -> Sequence[WalletRiskScore]:
        stmt = select(WalletRiskScore).order_by(
            wallet_risk_score_table.c.risk_score.desc(),
            wallet_risk_score_table.c.wallet_address,
        )
        return self.session.execute(stmt).scalars().all()


class SqlAlchemyMatchingConfigRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def get_all(self) -> Sequence[ConfigEntry]:
        stmt = (
            select(ConfigEntry)
            .order_by(matching_config_table.c.key)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalars().all()

    def upsert(self, entry: ConfigEntry) -> None:
        insert = _insert_for(self.session, matching_config_table)
        stmt = insert.values(
            key=entry.key,
            value=entry.value,
            updated_by=entry.updated_by,
            updated_at=entry.updated_at,
        ).on_conflict_do_update(
            index_elements=[matching_config_table.c.key],
            set_={
                "value": insert.excluded.value,
                "updated_by": insert.excluded.updated_by,
                "updated_at": insert.excluded.updated_at,
            },
        )
        self.session.execute(stmt)
