"""Append-only audit trail and its query surface."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, cast
from uuid import UUID

from ledgermatch.domain.model import AuditLogEntry
from ledgermatch.domain.pagination import resolve_page
from ledgermatch.domain.ports.persistence import AuditFilter

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Mapping

    from ledgermatch.domain.model import AuditAction, AuditEntityType, AuditState
    from ledgermatch.domain.ports.persistence import AuditLogRepository
    from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork


def to_jsonable(value: object) -> Any:
    """Convert ids, decimals, enums and datetimes into JSON-safe primitives."""

    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, dict):
        mapping = cast("Mapping[object, object]", value)
        return {str(key): to_jsonable(item) for key, item in mapping.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_jsonable(item) for item in cast("Iterable[object]", value)]
    return value


def _state(value: Mapping[str, object] | None) -> AuditState | None:
    if value is None:
        return None
    return cast("AuditState", to_jsonable(dict(value)))


class AuditTrail:
    """Writes audit entries inside the caller's unit of work."""

    def __init__(self, repository: AuditLogRepository) -> None:
        self._repository = repository

    def log(
        self,
        action: AuditAction,
        entity_type: AuditEntityType,
        entity_id: UUID | None,
        actor: str,
        previous_state: Mapping[str, object] | None = None,
        new_state: Mapping[str, object] | None = None,
        metadata: Mapping[str, object] | None = None,
    ) -> AuditLogEntry:
        entry = AuditLogEntry(
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            actor=actor,
            previous_state=_state(previous_state),
            new_state=_state(new_state),
            meta=_state(metadata),
        )
        self._repository.add(entry)
        return entry


@dataclass(slots=True, kw_only=True)
class AuditQuery:
    action: AuditAction | None = None
    entity_type: AuditEntityType | None = None
    entity_id: UUID | None = None
    actor: str | None = None
    from_ms: int | None = None
    to_ms: int | None = None
    page: int = 1
    limit: int | None = None


@dataclass(slots=True)
class AuditPage:
    entries: list[AuditLogEntry]
    total: int
    page: int
    limit: int


def query_audit_log(
    query: AuditQuery,
    *,
    unit_of_work_factory: Callable[[], ReconciliationUnitOfWork],
) -> AuditPage:
    """Return matching entries newest first, with the unpaginated total."""

    page = resolve_page(query.page, query.limit)
    audit_filter = AuditFilter(
        action=query.action,
        entity_type=query.entity_type,
        entity_id=query.entity_id,
        actor=query.actor,
        from_ms=query.from_ms,
        to_ms=query.to_ms,
        offset=page.offset,
        limit=page.limit,
    )
    with unit_of_work_factory() as uow:
        entries, total = uow.repositories.audit_log.query(audit_filter)
        return AuditPage(entries=list(entries), total=total, page=page.page, limit=page.limit)
