from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import uuid4

from ledgermatch.domain.audit import AuditQuery, AuditTrail, query_audit_log, to_jsonable
from ledgermatch.domain.model import AuditAction, AuditEntityType, TransactionStatus

if TYPE_CHECKING:
    from collections.abc import Callable
    from uuid import UUID

    from ledgermatch.adapters.sqlalchemy import SqlAlchemyUnitOfWork


def test_to_jsonable_converts_nested_values() -> None:
    tx_id = uuid4()
    moment = datetime(2024, 1, 1, 12, tzinfo=UTC)

    payload = to_jsonable(
        {
            "id": tx_id,
            "status": TransactionStatus.RECONCILED,
            "amount": Decimal("1.50"),
            "at": moment,
            "tags": ("a", 1),
        }
    )

    assert payload == {
        "id": str(tx_id),
        "status": "reconciled",
        "amount": "1.50",
        "at": "2024-01-01T12:00:00+00:00",
        "tags": ["a", 1],
    }


def _write_entries(factory: Callable[[], SqlAlchemyUnitOfWork]) -> list[UUID]:
    ids = [uuid4(), uuid4()]
    with factory() as uow:
        trail = AuditTrail(uow.repositories.audit_log)
        trail.log(AuditAction.CREATE_CLAIM, AuditEntityType.TRANSACTION, ids[0], "alice")
        trail.log(AuditAction.MARK_CLAIM, AuditEntityType.TRANSACTION, ids[0], "bob")
        trail.log(AuditAction.CREATE_CLAIM, AuditEntityType.TRANSACTION, ids[1], "alice")
        trail.log(AuditAction.RUN_MATCHING, AuditEntityType.SYSTEM, None, "system")
        uow.commit()
    return ids


def test_query_filters_combine(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    ids = _write_entries(sqlite_unit_of_work)

    def total(**filters: object) -> int:
        query = AuditQuery(**filters)  # type: ignore[arg-type]
        return query_audit_log(query, unit_of_work_factory=sqlite_unit_of_work).total

    assert total() == 4
    assert total(action=AuditAction.CREATE_CLAIM) == 2
    assert total(entity_type=AuditEntityType.SYSTEM) == 1
    assert total(entity_id=ids[0]) == 2
    assert total(actor="alice") == 2
    assert total(actor="alice", entity_id=ids[1]) == 1
    assert total(from_ms=0) == 4
    assert total(to_ms=0) == 0


def test_query_paginates_with_unpaginated_total(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    _write_entries(sqlite_unit_of_work)

    page = query_audit_log(
        AuditQuery(page=2, limit=3), unit_of_work_factory=sqlite_unit_of_work
    )

    assert page.total == 4
    assert page.page == 2
    assert page.limit == 3
    assert len(page.entries) == 1


def test_query_limit_is_clamped(
    sqlite_unit_of_work: Callable[[], SqlAlchemyUnitOfWork],
) -> None:
    page = query_audit_log(
        AuditQuery(page=0, limit=10_000), unit_of_work_factory=sqlite_unit_of_work
    )

    assert page.page == 1
    assert page.limit == 200
