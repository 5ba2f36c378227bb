"""Append-only audit records for every mutating action."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from ledgermatch.domain.model.entity import Entity, utcnow

if TYPE_CHECKING:
    from datetime import datetime
    from uuid import UUID

    from ledgermatch.domain.model.enums import AuditAction, AuditEntityType


type AuditState = dict[str, Any]


@dataclass(eq=False, kw_only=True)
class AuditLogEntry(Entity):
    """Who changed what, and when. Never updated or deleted once written."""

    action: AuditAction
    entity_type: AuditEntityType
    entity_id: UUID | None
    actor: str
    previous_state: AuditState | None = None
    new_state: AuditState | None = None
    meta: AuditState | None = None
    timestamp: datetime = field(default_factory=utcnow)
