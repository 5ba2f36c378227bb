"""Authorized status transitions for transactions and match suggestions.

Every status change in the system is checked against these tables, either in
memory via ``ensure_*_transition`` or in SQL via ``allowed_*_sources`` used as
the guard of a conditional update.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING, Final

from ledgermatch.domain.errors import InvalidStateError
from ledgermatch.domain.model.enums import SuggestionStatus, TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

_S = TransactionStatus

TRANSACTION_TRANSITIONS: Final[Mapping[TransactionStatus, frozenset[TransactionStatus]]] = (
    MappingProxyType(
        {
            # anchors only accrue match metadata
            _S.ANCHOR: frozenset(),
            _S.PENDING: frozenset(
                {
                    _S.SUGGESTED_MATCH,
                    _S.RECONCILED,
                    _S.FORCE_RECONCILED,
                    _S.REJECTED,
                    _S.UNRECONCILED,
                }
            ),
            _S.SUGGESTED_MATCH: frozenset(
                {
                    _S.PENDING,
                    _S.RECONCILED,
                    _S.FORCE_RECONCILED,
                    _S.REJECTED,
                    _S.UNRECONCILED,
                }
            ),
            _S.REJECTED: frozenset({_S.FORCE_RECONCILED}),
            _S.UNRECONCILED: frozenset({_S.FORCE_RECONCILED}),
            _S.RECONCILED: frozenset(),
            _S.FORCE_RECONCILED: frozenset(),
        }
    )
)

SUGGESTION_TRANSITIONS: Final[Mapping[SuggestionStatus, frozenset[SuggestionStatus]]] = (
    MappingProxyType(
        {
            SuggestionStatus.PENDING: frozenset(
                {SuggestionStatus.APPROVED, SuggestionStatus.REJECTED}
            ),
            SuggestionStatus.APPROVED: frozenset(),
            SuggestionStatus.REJECTED: frozenset(),
        }
    )
)

ADMINISTRATIVE_STATUSES: Final[frozenset[TransactionStatus]] = frozenset(
    {_S.REJECTED, _S.UNRECONCILED}
)


def can_transition(current: TransactionStatus, target: TransactionStatus) -> bool:
    return target in TRANSACTION_TRANSITIONS[current]


def allowed_sources(target: TransactionStatus) -> frozenset[TransactionStatus]:
    """Return every status from which ``target`` may be reached."""

    return frozenset(
        status for status, targets in TRANSACTION_TRANSITIONS.items() if target in targets
    )


def ensure_transition(
    current: TransactionStatus,
    target: TransactionStatus,
    *,
    entity_id: UUID | None = None,
) -> None:
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Transaction status is '{current}', cannot move to '{target}'",
            entity_id=entity_id,
            status=current,
        )


def is_terminal(status: TransactionStatus) -> bool:
    return not TRANSACTION_TRANSITIONS[status]


def allowed_suggestion_sources(target: SuggestionStatus) -> frozenset[SuggestionStatus]:
    return frozenset(
        status for status, targets in SUGGESTION_TRANSITIONS.items() if target in targets
    )
