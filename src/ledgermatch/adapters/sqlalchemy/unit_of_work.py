"""SQLAlchemy-backed unit of work for reconciliation operations."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Literal

from sqlalchemy import create_engine, event
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session, sessionmaker

from ledgermatch.adapters.sqlalchemy.mappings import start_mappers
from ledgermatch.adapters.sqlalchemy.migrations import upgrade_head
from ledgermatch.adapters.sqlalchemy.repositories import (
    SqlAlchemyAuditLogRepository,
    SqlAlchemyMatchingConfigRepository,
    SqlAlchemyRejectedPairRepository,
    SqlAlchemySuggestionRepository,
    SqlAlchemyTransactionRepository,
    SqlAlchemyWalletBalanceRepository,
    SqlAlchemyWalletRiskRepository,
)
from ledgermatch.config import get_database_config
from ledgermatch.domain.errors import StorageConflictError
from ledgermatch.domain.ports.unit_of_work import (
    ReconciliationRepositories,
    RepositoryCollection,
)

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Connection, Engine

log = logging.getLogger(__name__)


class StartupError(RuntimeError):
    """Raised when a SQLAlchemy unit of work is used before initialisation."""


def create_database_engine(database_uri: str) -> Engine:
    """Create an engine; SQLite gets explicit BEGIN so SAVEPOINT nests correctly."""

    engine = create_engine(database_uri, future=True)
    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _disable_pysqlite_transactions(  # pyright: ignore[reportUnusedFunction]
            dbapi_connection: Any,
            connection_record: Any,
        ) -> None:
            _ = connection_record
            dbapi_connection.isolation_level = None

        @event.listens_for(engine, "begin")
        def _emit_begin(conn: Connection) -> None:  # pyright: ignore[reportUnusedFunction]
            conn.exec_driver_sql("BEGIN")

    return engine


@dataclass(slots=True)
class _AdapterState:
    _engine: Engine | None = None
    _session_factory: sessionmaker[Session] | None = None

    @property
    def engine(self) -> Engine | None:
        return self._engine

    @engine.setter
    def engine(self, value: Engine | None) -> None:
        self._session_factory = None
        self._engine = value

    @property
    def session_factory(self) -> sessionmaker[Session]:
        if self._engine is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call ledgermatch.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        if self._session_factory is None:
            self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        return self._session_factory


_STATE = _AdapterState()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Initialise the SQLAlchemy engine, schema, and session factory."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )

    resolved_engine = engine or create_database_engine(
        database_uri or get_database_config().uri
    )
    start_mappers()
    upgrade_head(engine=resolved_engine)
    log.debug("Database ready at %s", resolved_engine.url.render_as_string(hide_password=True))

    _STATE.engine = resolved_engine


def configured_engine() -> Engine | None:
    """Return the engine currently managed by the adapter (if any)."""

    return _STATE.engine


def is_started() -> bool:
    """Return whether the adapter has been initialised."""

    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the managed engine and reset state (primarily for tests)."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None


class BaseSqlAlchemyUnitOfWork[TRepositories: RepositoryCollection](ABC):
    """Generic SQLAlchemy unit of work with pluggable repository collections."""

    def __init__(self) -> None:
        self.session_factory: sessionmaker[Session] = _STATE.session_factory
        self._session: Session | None = None

    @abstractmethod
    def _build_repositories(self, session: Session) -> TRepositories: ...

    def __enter__(self) -> BaseSqlAlchemyUnitOfWork[TRepositories]:
        self.session = self.session_factory()
        self._repositories = self._build_repositories(self.session)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is not None:
            self.rollback()
        self.session.close()
        self.session = None
        return False

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()

    def savepoint(self) -> _Savepoint:
        return _Savepoint(self.session)

    @property
    def repositories(self) -> TRepositories:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @session.setter
    def session(self, session: Session | None) -> None:
        if self._session is not None and session is not None:
            raise StartupError("Unit of work session already initialised")
        self._session = session


class _Savepoint:
    """Context manager around ``Session.begin_nested``."""

    def __init__(self, session: Session) -> None:
        self._session = session

    def __enter__(self) -> object:
        self._nested = self._session.begin_nested()
        return self._nested

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        if exc_type is None:
            try:
                self._nested.commit()
            except DBAPIError as exc:
                self._nested.rollback()
                raise StorageConflictError(str(exc.orig)) from exc
            return False
        self._nested.rollback()
        if isinstance(exc_value, DBAPIError):
            raise StorageConflictError(str(exc_value.orig)) from exc_value
        return False


class SqlAlchemyUnitOfWork(BaseSqlAlchemyUnitOfWork[ReconciliationRepositories]):
    """Unit of work managing SQLAlchemy sessions for reconciliation operations."""

    def _build_repositories(self, session: Session) -> ReconciliationRepositories:
        return ReconciliationRepositories(
            transactions=SqlAlchemyTransactionRepository(session),
            suggestions=SqlAlchemySuggestionRepository(session),
            rejected_pairs=SqlAlchemyRejectedPairRepository(session),
            audit_log=SqlAlchemyAuditLogRepository(session),
            balances=SqlAlchemyWalletBalanceRepository(session),
            risk_scores=SqlAlchemyWalletRiskRepository(session),
            config=SqlAlchemyMatchingConfigRepository(session),
        )


if TYPE_CHECKING:
    from ledgermatch.domain.ports.unit_of_work import ReconciliationUnitOfWork

    _uow_check: ReconciliationUnitOfWork = SqlAlchemyUnitOfWork()
