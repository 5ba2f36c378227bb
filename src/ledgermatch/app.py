"""Application orchestration entry points."""

from __future__ import annotations

from collections.abc import Callable
from logging import getLogger
from typing import TYPE_CHECKING, Any

from ledgermatch.adapters.rpc import RpcBalanceReader
from ledgermatch.adapters.sqlalchemy.unit_of_work import SqlAlchemyUnitOfWork, is_started, startup
from ledgermatch.domain.audit import AuditPage, AuditQuery, query_audit_log
from ledgermatch.domain.config_store import current_settings, update_matching_config
from ledgermatch.domain.drift import DriftService, stored_drift
from ledgermatch.domain.ledger import ImportResult, LedgerService, LedgerStats
from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork
from ledgermatch.domain.reconciliation import (
    DEFAULT_MIN_SCORE,
    ApprovalResult,
    BatchApprovalResult,
    MatchingEngine,
    MatchingRunResult,
    PairRef,
    ReconciliationService,
    RejectionResult,
    SuggestionPage,
)
from ledgermatch.domain.risk import RiskScoringService

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from uuid import UUID

    from ledgermatch.domain.model import (
        MatchingConfig,
        SuggestionStatus,
        Transaction,
        TransactionStatus,
        WalletBalanceDrift,
        WalletRiskScore,
    )
    from ledgermatch.domain.ports.balances import BalanceReader

UnitOfWorkFactory = Callable[[], ReconciliationUnitOfWork]


log = getLogger(__name__)


def _unit_of_work(unit_of_work_factory: UnitOfWorkFactory | None) -> UnitOfWorkFactory:
    if unit_of_work_factory is not None:
        return unit_of_work_factory
    if not is_started():
        startup()
    return SqlAlchemyUnitOfWork


def run_matching(
    *,
    token: str | None = None,
    min_score: float = DEFAULT_MIN_SCORE,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MatchingRunResult:
    """Generate suggestions for every unmatched anchor."""

    engine = MatchingEngine(unit_of_work_factory=_unit_of_work(unit_of_work_factory))
    log.info(f"Starting matching run: token={token or '*'}, min_score={min_score}")
    return engine.generate_suggestions(token_filter=token, min_score=min_score)


def list_suggestions(
    *,
    status: SuggestionStatus | None = None,
    min_score: float | None = None,
    token: str | None = None,
    page: int = 1,
    limit: int | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> SuggestionPage:
    engine = MatchingEngine(unit_of_work_factory=_unit_of_work(unit_of_work_factory))
    return engine.list_suggestions(
        status=status, min_score=min_score, token=token, page=page, limit=limit
    )


def _reconciliation(unit_of_work_factory: UnitOfWorkFactory | None) -> ReconciliationService:
    return ReconciliationService(unit_of_work_factory=_unit_of_work(unit_of_work_factory))


def approve_match(
    anchor_id: UUID,
    claim_id: UUID,
    actor: str,
    *,
    force: bool = False,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ApprovalResult:
    return _reconciliation(unit_of_work_factory).approve(anchor_id, claim_id, actor, force=force)


def reject_match(
    anchor_id: UUID,
    claim_id: UUID,
    actor: str,
    reason: str | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> RejectionResult:
    return _reconciliation(unit_of_work_factory).reject(anchor_id, claim_id, actor, reason)


def batch_approve(
    pairs: Sequence[PairRef],
    actor: str,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> BatchApprovalResult:
    result = _reconciliation(unit_of_work_factory).batch_approve(pairs, actor)
    log.info(f"Batch approve finished: approved={result.approved}, failed={len(result.failed)}")
    return result


def mark_claim(
    claim_id: UUID,
    status: TransactionStatus,
    actor: str,
    note: str | None = None,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> Transaction:
    return _reconciliation(unit_of_work_factory).mark_claim(claim_id, status, actor, note)


def _drift(
    balance_reader: BalanceReader | None,
    unit_of_work_factory: UnitOfWorkFactory | None,
) -> DriftService:
    return DriftService(
        unit_of_work_factory=_unit_of_work(unit_of_work_factory),
        balance_reader=balance_reader or RpcBalanceReader(),
    )


def sync_drift(
    *,
    wallet: str | None = None,
    token: str | None = None,
    balance_reader: BalanceReader | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[WalletBalanceDrift]:
    """Recompute drift for one (wallet, token) pair, or for every known pair."""

    service = _drift(balance_reader, unit_of_work_factory)
    if wallet is not None and token is not None:
        return [service.compute_drift(wallet, token)]
    if wallet is not None or token is not None:
        raise ValueError("Pass both wallet and token, or neither")
    return service.sync_all()


def drift_report(
    *,
    wallet: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[WalletBalanceDrift]:
    return stored_drift(unit_of_work_factory=_unit_of_work(unit_of_work_factory), wallet=wallet)


def recalculate_risk(
    *,
    wallet: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[WalletRiskScore]:
    service = RiskScoringService(unit_of_work_factory=_unit_of_work(unit_of_work_factory))
    if wallet is not None:
        return [service.calculate(wallet)]
    return service.recalculate_all()


def risk_report(
    *,
    wallet: str | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> list[WalletRiskScore]:
    service = RiskScoringService(unit_of_work_factory=_unit_of_work(unit_of_work_factory))
    if wallet is not None:
        return [service.get_by_wallet(wallet)]
    return service.get_all()


def show_config(*, unit_of_work_factory: UnitOfWorkFactory | None = None) -> MatchingConfig:
    return current_settings(unit_of_work_factory=_unit_of_work(unit_of_work_factory))


def update_config(
    actor: str,
    *,
    weights: Mapping[str, Any] | None = None,
    tolerances: Mapping[str, Any] | None = None,
    drift_thresholds: Mapping[str, Any] | None = None,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> MatchingConfig:
    return update_matching_config(
        unit_of_work_factory=_unit_of_work(unit_of_work_factory),
        actor=actor,
        weights=weights,
        tolerances=tolerances,
        drift_thresholds=drift_thresholds,
    )


def audit_log(
    query: AuditQuery,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> AuditPage:
    return query_audit_log(query, unit_of_work_factory=_unit_of_work(unit_of_work_factory))


def import_claims(
    claims: Sequence[Mapping[str, Any]],
    actor: str,
    *,
    unit_of_work_factory: UnitOfWorkFactory | None = None,
) -> ImportResult:
    service = LedgerService(unit_of_work_factory=_unit_of_work(unit_of_work_factory))
    return service.import_claims(claims, actor)


def ledger_stats(*, unit_of_work_factory: UnitOfWorkFactory | None = None) -> LedgerStats:
    return LedgerService(unit_of_work_factory=_unit_of_work(unit_of_work_factory)).ledger_stats()
