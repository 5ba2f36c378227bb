"""Approval, rejection and administrative marking of claims."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Final

from ledgermatch.domain.audit import AuditTrail
from ledgermatch.domain.errors import (
    InvalidInputError,
    InvalidStateError,
    NotFoundError,
    ReconciliationError,
)
from ledgermatch.domain.model import (
    AuditAction,
    AuditEntityType,
    RejectedPair,
    SuggestionStatus,
    TransactionStatus,
    utcnow,
)
from ledgermatch.domain.model.lifecycle import ADMINISTRATIVE_STATUSES, ensure_transition

from .contracts import (
    ApprovalResult,
    BatchApprovalResult,
    BatchFailure,
    PairRef,
    RejectionResult,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from uuid import UUID

    from ledgermatch.domain.model import Transaction
    from ledgermatch.domain.ports.unit_of_work import (
        ReconciliationRepositories,
        ReconciliationUnitOfWork,
    )

log = logging.getLogger(__name__)

MAX_BATCH_SIZE: Final[int] = 100


class ReconciliationService:
    """Human-driven transitions of the claim state machine.

    Every precondition is re-checked by the storage layer as part of the
    write (``UPDATE ... WHERE status IN (...)``), so a caller that loses a
    race gets :class:`InvalidStateError` and nothing is written.
    """

    def __init__(self, *, unit_of_work_factory: Callable[[], ReconciliationUnitOfWork]) -> None:
        self._unit_of_work_factory = unit_of_work_factory

    def approve(
        self,
        anchor_id: UUID,
        claim_id: UUID,
        actor: str,
        *,
        force: bool = False,
    ) -> ApprovalResult:
        """Reconcile ``claim_id`` against ``anchor_id``.

        Without ``force`` the claim must be ``pending`` or ``suggested_match``;
        with it, ``rejected`` and ``unreconciled`` claims may be closed too.
        """

        target = TransactionStatus.FORCE_RECONCILED if force else TransactionStatus.RECONCILED
        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            anchor, claim = _load_pair(repositories, anchor_id, claim_id)
            ensure_transition(_status(claim), target, entity_id=claim.id)
            previous_state = claim.snapshot()

            suggestion = repositories.suggestions.get_pair(anchor_id, claim_id)
            match_score = suggestion.score if suggestion is not None else None
            score_breakdown = dict(suggestion.score_breakdown) if suggestion is not None else None

            moved = repositories.transactions.transition(
                claim_id,
                target,
                matched_tx_id=anchor_id,
                match_score=match_score,
                score_breakdown=score_breakdown,
                reconciled_by=actor,
                reconciled_at=utcnow(),
                force_reconciled=force,
            )
            if not moved:
                raise InvalidStateError(
                    f"Claim {claim_id} was modified concurrently and can no longer move to "
                    f"'{target}'",
                    entity_id=claim_id,
                    status=previous_state["status"],
                )
            repositories.transactions.link_anchor(
                anchor_id,
                claim_id=claim_id,
                match_score=match_score,
                score_breakdown=score_breakdown,
                reconciled_by=actor,
            )
            if suggestion is not None:
                repositories.suggestions.close(
                    anchor_id,
                    claim_id,
                    status=SuggestionStatus.APPROVED,
                    reviewed_by=actor,
                )

            AuditTrail(repositories.audit_log).log(
                AuditAction.FORCE_RECONCILE if force else AuditAction.APPROVE_MATCH,
                AuditEntityType.TRANSACTION,
                claim_id,
                actor,
                previous_state=previous_state,
                new_state={
                    "status": target,
                    "matched_tx_id": anchor_id,
                    "match_score": match_score,
                },
            )
            uow.commit()

            result = ApprovalResult(
                anchor=_require(repositories, anchor_id, "Anchor"),
                claim=_require(repositories, claim_id, "Claim"),
                suggestion=repositories.suggestions.get_pair(anchor_id, claim_id),
            )

        log.info(f"{'Force-reconciled' if force else 'Approved'} claim {claim_id} by {actor}")
        return result

    def reject(
        self,
        anchor_id: UUID,
        claim_id: UUID,
        actor: str,
        reason: str | None = None,
    ) -> RejectionResult:
        """Suppress the pair permanently; a repeated reject is a no-op."""

        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            _anchor, claim = _load_pair(repositories, anchor_id, claim_id)
            previous_status = _status(claim)

            newly_suppressed = repositories.rejected_pairs.add_if_absent(
                RejectedPair(
                    anchor_id=anchor_id,
                    claim_id=claim_id,
                    rejected_by=actor,
                    reason=reason,
                )
            )
            repositories.suggestions.close(
                anchor_id,
                claim_id,
                status=SuggestionStatus.REJECTED,
                reviewed_by=actor,
            )
            # only a suggested_match claim goes back to the pool
            repositories.transactions.transition(claim_id, TransactionStatus.PENDING)
            claim_status = _status(_require(repositories, claim_id, "Claim"))

            AuditTrail(repositories.audit_log).log(
                AuditAction.REJECT_MATCH,
                AuditEntityType.TRANSACTION,
                claim_id,
                actor,
                previous_state={"status": previous_status, "anchor_id": anchor_id},
                new_state={"status": claim_status, "reason": reason},
            )
            uow.commit()

        log.info(f"Rejected pair anchor={anchor_id} claim={claim_id} by {actor}")
        return RejectionResult(
            anchor_id=anchor_id,
            claim_id=claim_id,
            newly_suppressed=newly_suppressed,
            claim_status=claim_status,
        )

    def batch_approve(self, pairs: Sequence[PairRef], actor: str) -> BatchApprovalResult:
        """Approve each pair independently; failures are collected, never raised."""

        if not 1 <= len(pairs) <= MAX_BATCH_SIZE:
            raise InvalidInputError(
                f"Batch must contain between 1 and {MAX_BATCH_SIZE} pairs, got {len(pairs)}"
            )

        result = BatchApprovalResult()
        for pair in pairs:
            try:
                self.approve(pair.anchor_id, pair.claim_id, actor)
            except ReconciliationError as exc:
                log.warning(f"Batch approve failed for {pair.anchor_id}/{pair.claim_id}: {exc}")
                result.failed.append(BatchFailure(pair.anchor_id, pair.claim_id, str(exc)))
            except Exception as exc:  # noqa: BLE001 - one bad pair must not abort the batch
                log.exception(f"Unexpected error approving {pair.anchor_id}/{pair.claim_id}")
                result.failed.append(BatchFailure(pair.anchor_id, pair.claim_id, str(exc)))
            else:
                result.approved += 1
        return result

    def mark_claim(
        self,
        claim_id: UUID,
        status: TransactionStatus,
        actor: str,
        note: str | None = None,
    ) -> Transaction:
        """Administratively close a claim as ``rejected`` or ``unreconciled``."""

        if status not in ADMINISTRATIVE_STATUSES:
            allowed = ", ".join(sorted(ADMINISTRATIVE_STATUSES))
            raise InvalidInputError(f"Claims can only be marked as one of: {allowed}")

        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            claim = _require(repositories, claim_id, "Claim")
            if not claim.is_claim:
                raise InvalidStateError(
                    f"Transaction {claim_id} is an anchor, not a claim",
                    entity_id=claim_id,
                    status=_status(claim),
                )
            ensure_transition(_status(claim), status, entity_id=claim_id)
            previous_state = claim.snapshot()

            values = {"notes": note} if note is not None else {}
            if not repositories.transactions.transition(claim_id, status, **values):
                raise InvalidStateError(
                    f"Claim {claim_id} was modified concurrently and can no longer move to "
                    f"'{status}'",
                    entity_id=claim_id,
                    status=previous_state["status"],
                )

            AuditTrail(repositories.audit_log).log(
                AuditAction.MARK_CLAIM,
                AuditEntityType.TRANSACTION,
                claim_id,
                actor,
                previous_state=previous_state,
                new_state={"status": status, "note": note},
            )
            uow.commit()
            return _require(repositories, claim_id, "Claim")


def _status(transaction: Transaction) -> TransactionStatus:
    if transaction.status is None:
        raise InvalidStateError(
            f"Transaction {transaction.id} has no status", entity_id=transaction.id
        )
    return transaction.status


def _require(repositories: ReconciliationRepositories, tx_id: UUID, label: str) -> Transaction:
    transaction = repositories.transactions.get(tx_id)
    if transaction is None:
        raise NotFoundError(label, tx_id)
    return transaction


def _load_pair(
    repositories: ReconciliationRepositories,
    anchor_id: UUID,
    claim_id: UUID,
) -> tuple[Transaction, Transaction]:
    anchor = _require(repositories, anchor_id, "Anchor")
    claim = _require(repositories, claim_id, "Claim")
    if not anchor.is_anchor:
        raise InvalidStateError(
            f"Transaction {anchor_id} is not an on-chain anchor",
            entity_id=anchor_id,
            status=anchor.status,
        )
    if not claim.is_claim:
        raise InvalidStateError(
            f"Transaction {claim_id} is an anchor, not a claim",
            entity_id=claim_id,
            status=claim.status,
        )
    return anchor, claim
