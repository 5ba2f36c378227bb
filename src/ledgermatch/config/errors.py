"""Errors raised while reading ledgermatch settings from the environment."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable


class ConfigurationError(RuntimeError):
    """An environment value is present but unusable, e.g. a bad token entry."""


class MissingConfigurationError(ConfigurationError):
    """Required variables are unset or blank; ``variables`` names them."""

    def __init__(self, variables: Iterable[str]) -> None:
        self.variables = tuple(sorted(variables))
        super().__init__(
            f"Missing configuration for: {', '.join(self.variables)} "
            "(set it in the environment or in a .env file)"
        )
