"""Where the reconciliation ledger lives.

Without ``DATABASE_URI`` the ledger is a SQLite file in the per-user data
directory (``LEDGERMATCH_DATA_DIR`` overrides the directory). Only SQLite and
PostgreSQL are accepted, since the repositories rely on their
``INSERT ... ON CONFLICT`` support.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from .env import optional_env
from .errors import ConfigurationError

APP_DIR_NAME: Final[str] = "ledgermatch"
LEDGER_FILENAME: Final[str] = "ledger.db"
SUPPORTED_BACKENDS: Final[frozenset[str]] = frozenset({"sqlite", "postgresql"})


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    ledger_filename: str = LEDGER_FILENAME

    def ledger_path(self, *, create_dir: bool = True) -> Path:
        data_dir = self.data_dir.expanduser().resolve()
        if create_dir:
            data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir / self.ledger_filename

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.ledger_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str

    @property
    def backend(self) -> str:
        """``postgresql`` for ``postgresql+psycopg://...`` and so on."""

        return self.uri.split(":", 1)[0].split("+", 1)[0]


def _platform_data_dir() -> Path:
    if os.name == "nt":
        base = optional_env("LOCALAPPDATA")
        root = Path(base) if base else Path.home() / "AppData" / "Local"
    else:
        base = optional_env("XDG_DATA_HOME")
        root = Path(base) if base else Path.home() / ".local" / "share"
    return root / APP_DIR_NAME


def get_storage_config() -> StorageConfig:
    override = optional_env("LEDGERMATCH_DATA_DIR")
    return StorageConfig(data_dir=Path(override) if override else _platform_data_dir())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    uri = optional_env("DATABASE_URI")
    if uri is None:
        return DatabaseConfig(uri=(storage or get_storage_config()).database_uri())

    config = DatabaseConfig(uri=uri)
    if config.backend not in SUPPORTED_BACKENDS:
        raise ConfigurationError(
            f"DATABASE_URI backend {config.backend!r} is not supported; "
            f"use one of {', '.join(sorted(SUPPORTED_BACKENDS))}"
        )
    return config
