"""Environment lookups shared by the config factories.

Blank values count as unset everywhere: an empty ``RPC_URL=`` line in a
``.env`` file must not silently point the drift sync at nothing.
"""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from .errors import MissingConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence


def optional_env(name: str) -> str | None:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip() or None


def require_env_vars(names: Sequence[str]) -> dict[str, str]:
    values = {name: optional_env(name) for name in names}
    missing = [name for name, value in values.items() if value is None]
    if missing:
        raise MissingConfigurationError(missing)
    return {name: value for name, value in values.items() if value is not None}
