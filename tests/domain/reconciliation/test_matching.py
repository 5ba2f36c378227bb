from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from sqlalchemy.exc import IntegrityError

from ledgermatch.adapters.sqlalchemy import SqlAlchemySuggestionRepository
from ledgermatch.domain.audit import AuditQuery, query_audit_log
from ledgermatch.domain.model import (
    AuditAction,
    MatchSuggestion,
    SuggestionStatus,
    TransactionStatus,
)
from ledgermatch.domain.reconciliation import MatchingEngine, ReconciliationService
from tests.helpers.ledger import BASE_TS, HOUR_MS, load, make_anchor, make_claim, seed

if TYPE_CHECKING:
    from collections.abc import Callable

    from ledgermatch.adapters.sqlalchemy import SqlAlchemyUnitOfWork


def test_generate_suggestions_flags_matching_claim(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("100")
    seed(sqlite_unit_of_work, anchor, claim)
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    result = engine.generate_suggestions()

    assert result.new_suggestions == 1
    assert result.anchors_scanned == 1
    assert result.skipped_pairs == 0
    assert load(sqlite_unit_of_work, claim).status is TransactionStatus.SUGGESTED_MATCH

    page = engine.list_suggestions()
    assert page.total == 1
    view = page.suggestions[0]
    assert view.suggestion.pair == (anchor.id, claim.id)
    assert view.suggestion.score == 100
    assert view.suggestion.status is SuggestionStatus.PENDING
    assert view.anchor.id == anchor.id
    assert view.claim.id == claim.id


def test_generate_suggestions_skips_low_scores(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    # same amount and token but no shared addresses and 45 minutes apart
    claim = make_claim("100", sender=None, receiver=None, timestamp=BASE_TS + 3 * HOUR_MS // 4)
    seed(sqlite_unit_of_work, make_anchor("100"), claim)
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    result = engine.generate_suggestions()

    assert result.new_suggestions == 0
    assert load(sqlite_unit_of_work, claim).status is TransactionStatus.PENDING
    assert engine.generate_suggestions(min_score=50).new_suggestions == 1


def test_min_score_is_inclusive(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    # 40 amount + 5 time + 10 token = 55
    claim = make_claim("100", sender=None, receiver=None, timestamp=BASE_TS + 3 * HOUR_MS // 4)
    seed(sqlite_unit_of_work, make_anchor("100"), claim)
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    assert engine.generate_suggestions(min_score=55.01).new_suggestions == 0
    assert load(sqlite_unit_of_work, claim).status is TransactionStatus.PENDING

    assert engine.generate_suggestions(min_score=55).new_suggestions == 1
    page = engine.list_suggestions()
    assert page.total == 1
    assert page.suggestions[0].suggestion.score == 55


def test_generate_suggestions_ignores_claims_outside_windows(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        make_anchor("100"),
        make_claim("110"),
        make_claim("100", timestamp=BASE_TS + 2 * HOUR_MS),
        make_claim("100", token="USDC"),
    )
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    assert engine.generate_suggestions(min_score=0).new_suggestions == 0


def test_rerun_does_not_duplicate_suggestions(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, make_anchor("100"), make_claim("100"))
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    engine.generate_suggestions()
    rerun = engine.generate_suggestions()

    assert rerun.new_suggestions == 0
    assert engine.list_suggestions().total == 1


def test_token_filter_limits_scanned_anchors(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        make_anchor("100"),
        make_claim("100"),
        make_anchor("50", token="USDC"),
        make_claim("50", token="USDC"),
    )
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    result = engine.generate_suggestions(token_filter="USDC")

    assert result.anchors_scanned == 1
    assert result.new_suggestions == 1
    assert engine.list_suggestions(token="USDC").total == 1
    assert engine.list_suggestions(token="DAI").total == 0


def test_rejected_pair_is_never_suggested_again(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    anchor = make_anchor("100")
    claim = make_claim("100")
    seed(sqlite_unit_of_work, anchor, claim)
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)
    engine.generate_suggestions()

    ReconciliationService(unit_of_work_factory=sqlite_unit_of_work).reject(
        anchor.id, claim.id, "reviewer", "different invoice"
    )
    rerun = engine.generate_suggestions()

    assert rerun.new_suggestions == 0
    assert load(sqlite_unit_of_work, claim).status is TransactionStatus.PENDING
    page = engine.list_suggestions()
    assert page.total == 1
    assert page.suggestions[0].suggestion.status is SuggestionStatus.REJECTED


def test_storage_conflict_skips_only_that_pair(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    first_claim = make_claim("100")
    second_claim = make_claim("200", timestamp=BASE_TS + 1)
    seed(
        sqlite_unit_of_work,
        make_anchor("100"),
        first_claim,
        make_anchor("200", timestamp=BASE_TS + 1),
        second_claim,
    )
    original_upsert = SqlAlchemySuggestionRepository.upsert
    calls: list[MatchSuggestion] = []

    def flaky_upsert(self: SqlAlchemySuggestionRepository, suggestion: MatchSuggestion) -> None:
        calls.append(suggestion)
        if len(calls) == 1:
            raise IntegrityError("INSERT INTO match_suggestion", {}, Exception("duplicate key"))
        original_upsert(self, suggestion)

    monkeypatch.setattr(SqlAlchemySuggestionRepository, "upsert", flaky_upsert)
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)

    result = engine.generate_suggestions()

    assert result.new_suggestions == 1
    assert result.skipped_pairs == 1
    # anchors are scanned newest first
    assert load(sqlite_unit_of_work, second_claim).status is TransactionStatus.PENDING
    assert load(sqlite_unit_of_work, first_claim).status is TransactionStatus.SUGGESTED_MATCH


def test_matching_run_is_audited(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    seed(sqlite_unit_of_work, make_anchor("100"), make_claim("100"))

    MatchingEngine(unit_of_work_factory=sqlite_unit_of_work).generate_suggestions(
        token_filter="DAI", min_score=75
    )

    page = query_audit_log(
        AuditQuery(action=AuditAction.RUN_MATCHING), unit_of_work_factory=sqlite_unit_of_work
    )
    assert page.total == 1
    entry = page.entries[0]
    assert entry.actor == "system"
    assert entry.new_state == {"new_suggestions": 1, "token_filter": "DAI", "min_score": 75}


def test_list_suggestions_filters_and_paginates(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    seed(
        sqlite_unit_of_work,
        make_anchor("100"),
        make_claim("100"),
        make_claim("100.5", timestamp=BASE_TS + 1),
    )
    engine = MatchingEngine(unit_of_work_factory=sqlite_unit_of_work)
    engine.generate_suggestions(min_score=0)

    everything = engine.list_suggestions()
    assert everything.total == 2
    assert [view.suggestion.score for view in everything.suggestions] == [100, pytest.approx(80)]

    strong = engine.list_suggestions(min_score=90)
    assert strong.total == 1

    second_page = engine.list_suggestions(page=2, limit=1)
    assert second_page.page == 2
    assert second_page.limit == 1
    assert second_page.total == 2
    assert len(second_page.suggestions) == 1
    assert second_page.suggestions[0].suggestion.score == pytest.approx(80)
