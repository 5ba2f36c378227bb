"""Error kinds raised by reconciliation operations."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID


class ReconciliationError(RuntimeError):
    """Base class for errors surfaced to callers of the reconciliation core."""


class NotFoundError(ReconciliationError):
    """Raised when a referenced anchor, claim or wallet record is absent."""

    def __init__(self, entity: str, key: UUID | str) -> None:
        super().__init__(f"{entity} {key} not found")
        self.entity = entity
        self.key = key


class InvalidStateError(ReconciliationError):
    """Raised when a status or source precondition is violated."""

    def __init__(
        self,
        message: str,
        *,
        entity_id: UUID | None = None,
        status: str | None = None,
    ) -> None:
        super().__init__(message)
        self.entity_id = entity_id
        self.status = status


class InvalidInputError(ReconciliationError, ValueError):
    """Raised for malformed input such as weights that do not sum to 100."""


class StorageConflictError(ReconciliationError):
    """Raised by persistence adapters when a write loses to a concurrent writer."""
