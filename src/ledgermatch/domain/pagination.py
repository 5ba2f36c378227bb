"""Page/limit normalisation shared by list operations."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

DEFAULT_PAGE_LIMIT: Final[int] = 50
MAX_PAGE_LIMIT: Final[int] = 200


@dataclass(frozen=True, slots=True)
class Page:
    page: int
    limit: int

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


def resolve_page(page: int | None = None, limit: int | None = None) -> Page:
    """Clamp ``page`` to >= 1 and ``limit`` to ``1..MAX_PAGE_LIMIT``."""

    effective_limit = DEFAULT_PAGE_LIMIT if limit is None else limit
    effective_limit = max(1, min(effective_limit, MAX_PAGE_LIMIT))
    return Page(page=max(1, page or 1), limit=effective_limit)
