"""Suggestion generation over unmatched anchors."""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING, Final

from ledgermatch.domain.audit import AuditTrail
from ledgermatch.domain.config_store import load_matching_config
from ledgermatch.domain.errors import StorageConflictError
from ledgermatch.domain.model import (
    AuditAction,
    AuditEntityType,
    MatchSuggestion,
    TransactionStatus,
)
from ledgermatch.domain.pagination import resolve_page
from ledgermatch.domain.ports.persistence import SuggestionFilter

from .contracts import MatchingRunResult, SuggestionPage
from .scoring import MatchScore, score_match

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgermatch.domain.model import MatchingConfig, SuggestionStatus, Transaction
    from ledgermatch.domain.ports.unit_of_work import (
        ReconciliationRepositories,
        ReconciliationUnitOfWork,
    )

log = logging.getLogger(__name__)

DEFAULT_MIN_SCORE: Final[float] = 70.0
CANDIDATE_LIMIT: Final[int] = 50
SYSTEM_ACTOR: Final[str] = "system"


class MatchingEngine:
    """Scores unmatched anchors against nearby pending claims."""

    def __init__(
        self,
        *,
        unit_of_work_factory: Callable[[], ReconciliationUnitOfWork],
        candidate_limit: int = CANDIDATE_LIMIT,
    ) -> None:
        self._unit_of_work_factory = unit_of_work_factory
        self._candidate_limit = candidate_limit

    def generate_suggestions(
        self,
        *,
        token_filter: str | None = None,
        min_score: float = DEFAULT_MIN_SCORE,
    ) -> MatchingRunResult:
        """Upsert a suggestion for every pair scoring at least ``min_score``.

        A claim is flipped to ``suggested_match`` only while it is still
        ``pending``. A storage conflict on one pair rolls back that pair alone.
        """

        started = time.perf_counter()
        created = 0
        skipped = 0

        with self._unit_of_work_factory() as uow:
            repositories = uow.repositories
            config = load_matching_config(repositories.config)
            anchors = repositories.transactions.unmatched_anchors(token_filter)

            for anchor in anchors:
                for claim, score in self._scored_candidates(repositories, anchor, config):
                    if score.total < min_score:
                        continue
                    try:
                        with uow.savepoint():
                            _persist_suggestion(repositories, anchor, claim, score)
                    except StorageConflictError as exc:
                        skipped += 1
                        log.warning(
                            "Skipping pair anchor=%s claim=%s after storage conflict: %s",
                            anchor.id,
                            claim.id,
                            exc,
                        )
                        continue
                    created += 1

            AuditTrail(repositories.audit_log).log(
                AuditAction.RUN_MATCHING,
                AuditEntityType.SYSTEM,
                None,
                SYSTEM_ACTOR,
                new_state={
                    "new_suggestions": created,
                    "token_filter": token_filter,
                    "min_score": min_score,
                },
            )
            uow.commit()

        elapsed_ms = int((time.perf_counter() - started) * 1000)
        log.info(
            f"Matching run finished: anchors={len(anchors)}, new_suggestions={created}, "
            f"skipped={skipped}, token={token_filter or '*'}, elapsed_ms={elapsed_ms}"
        )
        return MatchingRunResult(
            new_suggestions=created,
            elapsed_ms=elapsed_ms,
            anchors_scanned=len(anchors),
            skipped_pairs=skipped,
        )

    def list_suggestions(
        self,
        *,
        status: SuggestionStatus | None = None,
        min_score: float | None = None,
        token: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> SuggestionPage:
        """Suggestions with both transactions attached, highest score first."""

        resolved = resolve_page(page, limit)
        query = SuggestionFilter(
            status=status,
            min_score=min_score,
            token=token,
            offset=resolved.offset,
            limit=resolved.limit,
        )
        with self._unit_of_work_factory() as uow:
            views, total = uow.repositories.suggestions.list(query)
            return SuggestionPage(
                suggestions=list(views),
                total=total,
                page=resolved.page,
                limit=resolved.limit,
            )

    def _scored_candidates(
        self,
        repositories: ReconciliationRepositories,
        anchor: Transaction,
        config: MatchingConfig,
    ) -> list[tuple[Transaction, MatchScore]]:
        candidates = repositories.transactions.candidate_claims(
            anchor_id=anchor.id,
            token=anchor.token_symbol,
            amount=anchor.amount_gross,
            timestamp=anchor.timestamp,
            amount_percent=config.tolerances.amount_percent,
            time_window_ms=config.tolerances.time_window_ms,
            limit=self._candidate_limit,
        )
        return [(claim, score_match(anchor, claim, config)) for claim in candidates]


def _persist_suggestion(
    repositories: ReconciliationRepositories,
    anchor: Transaction,
    claim: Transaction,
    score: MatchScore,
) -> None:
    repositories.suggestions.upsert(
        MatchSuggestion(
            anchor_id=anchor.id,
            claim_id=claim.id,
            score=score.total,
            score_breakdown=dict(score.breakdown),
        )
    )
    repositories.transactions.transition(claim.id, TransactionStatus.SUGGESTED_MATCH)
