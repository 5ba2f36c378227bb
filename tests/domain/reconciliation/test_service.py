from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import uuid4

import pytest
from sqlalchemy import update

from ledgermatch.adapters.sqlalchemy import SqlAlchemyTransactionRepository
from ledgermatch.adapters.sqlalchemy.mappings import transaction_table
from ledgermatch.domain.audit import AuditPage, AuditQuery, query_audit_log
from ledgermatch.domain.errors import InvalidInputError, InvalidStateError, NotFoundError
from ledgermatch.domain.model import (
    AuditAction,
    SuggestionStatus,
    Transaction,
    TransactionStatus,
)
from ledgermatch.domain.reconciliation import (
    MAX_BATCH_SIZE,
    MatchingEngine,
    PairRef,
    ReconciliationService,
)
from tests.helpers.ledger import load, make_anchor, make_claim, seed

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from ledgermatch.adapters.sqlalchemy import SqlAlchemyUnitOfWork


def _service(factory: Callable[[], SqlAlchemyUnitOfWork]) -> ReconciliationService:
    return ReconciliationService(unit_of_work_factory=factory)


def _audit(factory: Callable[[], SqlAlchemyUnitOfWork], action: AuditAction) -> AuditPage:
    return query_audit_log(AuditQuery(action=action), unit_of_work_factory=factory)


def _suggested_pair(
    factory: Callable[[], SqlAlchemyUnitOfWork],
) -> tuple[Transaction, Transaction]:
    anchor = make_anchor("100")
    claim = make_claim("100")
    seed(factory, anchor, claim)
    MatchingEngine(unit_of_work_factory=factory).generate_suggestions()
    return anchor, claim


def test_approve_reconciles_both_sides(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor, claim = _suggested_pair(sqlite_unit_of_work)

    result = _service(sqlite_unit_of_work).approve(anchor.id, claim.id, "alice")

    assert result.claim.status is TransactionStatus.RECONCILED
    assert result.claim.matched_tx_id == anchor.id
    assert result.claim.match_score == 100
    assert result.claim.reconciled_by == "alice"
    assert result.claim.reconciled_at is not None
    assert result.claim.force_reconciled is False
    assert result.anchor.status is TransactionStatus.ANCHOR
    assert result.anchor.matched_tx_id == claim.id
    assert result.suggestion is not None
    assert result.suggestion.status is SuggestionStatus.APPROVED
    assert result.suggestion.reviewed_by == "alice"

    audit = _audit(sqlite_unit_of_work, AuditAction.APPROVE_MATCH)
    assert audit.total == 1
    entry = audit.entries[0]
    assert entry.entity_id == claim.id
    assert entry.previous_state is not None
    assert entry.previous_state["status"] == "suggested_match"
    assert entry.new_state == {
        "status": "reconciled",
        "matched_tx_id": str(anchor.id),
        "match_score": 100,
    }


def test_approve_without_suggestion_leaves_score_empty(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("250")
    seed(sqlite_unit_of_work, anchor, claim)

    result = _service(sqlite_unit_of_work).approve(anchor.id, claim.id, "alice")

    assert result.claim.status is TransactionStatus.RECONCILED
    assert result.claim.match_score is None
    assert result.suggestion is None


def test_second_approve_is_rejected(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor, claim = _suggested_pair(sqlite_unit_of_work)
    service = _service(sqlite_unit_of_work)
    service.approve(anchor.id, claim.id, "alice")

    with pytest.raises(InvalidStateError) as excinfo:
        service.approve(anchor.id, claim.id, "bob")

    assert excinfo.value.status == TransactionStatus.RECONCILED
    assert _audit(sqlite_unit_of_work, AuditAction.APPROVE_MATCH).total == 1


def test_approve_loses_race_without_side_effects(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    anchor, claim = _suggested_pair(sqlite_unit_of_work)
    original_get = SqlAlchemyTransactionRepository.get

    def get_then_interfere(
        self: SqlAlchemyTransactionRepository,
        tx_id: UUID,
    ) -> Transaction | None:
        found = original_get(self, tx_id)
        if tx_id == claim.id:
            # another reviewer closes the claim between our read and our write
            self.session.execute(
                update(transaction_table)
                .where(transaction_table.c.id == claim.id)
                .values(status=TransactionStatus.UNRECONCILED)
            )
        return found

    monkeypatch.setattr(SqlAlchemyTransactionRepository, "get", get_then_interfere)

    with pytest.raises(InvalidStateError, match="modified concurrently"):
        _service(sqlite_unit_of_work).approve(anchor.id, claim.id, "alice")

    monkeypatch.undo()
    assert load(sqlite_unit_of_work, anchor).matched_tx_id is None
    assert _audit(sqlite_unit_of_work, AuditAction.APPROVE_MATCH).total == 0


def test_force_approve_closes_rejected_claim(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("100")
    seed(sqlite_unit_of_work, anchor, claim)
    service = _service(sqlite_unit_of_work)
    service.mark_claim(claim.id, TransactionStatus.REJECTED, "ops")

    with pytest.raises(InvalidStateError):
        service.approve(anchor.id, claim.id, "alice")

    result = service.approve(anchor.id, claim.id, "alice", force=True)

    assert result.claim.status is TransactionStatus.FORCE_RECONCILED
    assert result.claim.force_reconciled is True
    assert _audit(sqlite_unit_of_work, AuditAction.FORCE_RECONCILE).total == 1
    assert _audit(sqlite_unit_of_work, AuditAction.APPROVE_MATCH).total == 0


def test_approve_checks_roles_and_existence(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("100")
    seed(sqlite_unit_of_work, anchor, claim)
    service = _service(sqlite_unit_of_work)

    with pytest.raises(InvalidStateError, match="not an on-chain anchor"):
        service.approve(claim.id, anchor.id, "alice")
    with pytest.raises(NotFoundError, match="Anchor"):
        service.approve(uuid4(), claim.id, "alice")
    with pytest.raises(NotFoundError, match="Claim"):
        service.approve(anchor.id, uuid4(), "alice")


def test_reject_returns_claim_to_pool_once(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor, claim = _suggested_pair(sqlite_unit_of_work)
    service = _service(sqlite_unit_of_work)

    first = service.reject(anchor.id, claim.id, "alice", "wrong invoice")
    second = service.reject(anchor.id, claim.id, "alice")

    assert first.newly_suppressed is True
    assert first.claim_status is TransactionStatus.PENDING
    assert second.newly_suppressed is False
    assert second.claim_status is TransactionStatus.PENDING

    audit = _audit(sqlite_unit_of_work, AuditAction.REJECT_MATCH)
    assert audit.total == 2
    reasons = {entry.new_state["reason"] for entry in audit.entries if entry.new_state}
    assert reasons == {"wrong invoice", None}


def test_reject_does_not_touch_pending_claim_status(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("100")
    seed(sqlite_unit_of_work, anchor, claim)

    result = _service(sqlite_unit_of_work).reject(anchor.id, claim.id, "alice")

    assert result.newly_suppressed is True
    assert result.claim_status is TransactionStatus.PENDING


def test_batch_approve_collects_failures(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    first_anchor, first_claim = make_anchor("100"), make_claim("100")
    second_anchor, second_claim = make_anchor("200"), make_claim("200")
    seed(sqlite_unit_of_work, first_anchor, first_claim, second_anchor, second_claim)
    missing = uuid4()

    result = _service(sqlite_unit_of_work).batch_approve(
        [
            PairRef(first_anchor.id, first_claim.id),
            PairRef(second_anchor.id, missing),
            PairRef(second_anchor.id, second_claim.id),
        ],
        "alice",
    )

    assert result.approved == 2
    assert len(result.failed) == 1
    failure = result.failed[0]
    assert failure.claim_id == missing
    assert "not found" in failure.error
    assert load(sqlite_unit_of_work, second_claim).status is TransactionStatus.RECONCILED


@pytest.mark.parametrize("size", [0, MAX_BATCH_SIZE + 1])
def test_batch_approve_bounds(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    size: int,
) -> None:
    pairs = [PairRef(uuid4(), uuid4()) for _ in range(size)]

    with pytest.raises(InvalidInputError):
        _service(sqlite_unit_of_work).batch_approve(pairs, "alice")


def test_mark_claim_unreconciled_with_note(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    claim = make_claim("100")
    seed(sqlite_unit_of_work, claim)

    marked = _service(sqlite_unit_of_work).mark_claim(
        claim.id, TransactionStatus.UNRECONCILED, "ops", "no matching transfer"
    )

    assert marked.status is TransactionStatus.UNRECONCILED
    assert marked.notes == "no matching transfer"
    audit = _audit(sqlite_unit_of_work, AuditAction.MARK_CLAIM)
    assert audit.total == 1
    assert audit.entries[0].new_state == {"status": "unreconciled", "note": "no matching transfer"}


def test_mark_claim_rejects_invalid_requests(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("100", status=TransactionStatus.RECONCILED)
    seed(sqlite_unit_of_work, anchor, claim)
    service = _service(sqlite_unit_of_work)

    with pytest.raises(InvalidInputError):
        service.mark_claim(claim.id, TransactionStatus.RECONCILED, "ops")
    with pytest.raises(InvalidStateError, match="anchor"):
        service.mark_claim(anchor.id, TransactionStatus.REJECTED, "ops")
    with pytest.raises(InvalidStateError):
        service.mark_claim(claim.id, TransactionStatus.REJECTED, "ops")
    with pytest.raises(NotFoundError):
        service.mark_claim(uuid4(), TransactionStatus.REJECTED, "ops")
