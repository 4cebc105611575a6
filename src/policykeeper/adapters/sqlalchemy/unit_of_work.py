"""SQLAlchemy unit of work for the policy aggregate.

The adapter is configured once per process through ``startup()``; every
``SqlAlchemyPolicyUnitOfWork`` then opens a session from the shared factory.
Driver failures leave the ``with`` block as ``StorageError`` so the domain
never sees SQLAlchemy exceptions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Literal

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from policykeeper.adapters.sqlalchemy.mappings import NATURAL_KEY_CONSTRAINT, start_mappers
from policykeeper.adapters.sqlalchemy.migrations import upgrade_head
from policykeeper.adapters.sqlalchemy.repositories import (
    SqlAlchemyFieldLockRepository,
    SqlAlchemyPolicyRepository,
    SqlAlchemyPolicyRevisionRepository,
)
from policykeeper.config import get_database_config
from policykeeper.domain.errors import KeyConflictError, StorageError
from policykeeper.domain.ports.unit_of_work import PolicyRepositories

if TYPE_CHECKING:
    from types import TracebackType

    from sqlalchemy.engine import Engine

log = logging.getLogger(__name__)

# SQLite names the columns, other backends name the constraint
_NATURAL_KEY_MARKERS = (NATURAL_KEY_CONSTRAINT, "policy.owner_id, policy.insurer")


class StartupError(RuntimeError):
    """Raised when the adapter is used before ``startup()`` or misused afterwards."""


class _Runtime:
    engine: Engine | None = None
    sessions: sessionmaker[Session] | None = None


_STATE = _Runtime()


def startup(
    *,
    engine: Engine | None = None,
    database_uri: str | None = None,
    force: bool = False,
) -> None:
    """Bind the adapter to an engine, map the model and migrate the schema to head."""

    if _STATE.engine is not None and not force:
        raise StartupError(
            "SQLAlchemy adapter already initialised. Pass force=True to reconfigure."
        )
    if engine is None:
        engine = create_engine(database_uri or get_database_config().uri, future=True)

    start_mappers()
    upgrade_head(engine=engine)
    _STATE.engine = engine
    _STATE.sessions = sessionmaker(bind=engine, expire_on_commit=False)
    log.info("SQLAlchemy adapter started on %s", engine.url.render_as_string())


def ensure_started(*, database_uri: str | None = None) -> None:
    if _STATE.engine is None:
        startup(database_uri=database_uri)


def configured_engine() -> Engine | None:
    return _STATE.engine


def is_started() -> bool:
    return _STATE.engine is not None


def shutdown() -> None:
    """Dispose the engine and forget it; mostly used between tests."""

    if _STATE.engine is not None:
        _STATE.engine.dispose()
    _STATE.engine = None
    _STATE.sessions = None


def translate_error(error: SQLAlchemyError) -> StorageError:
    """Map a driver-level failure onto the persistence errors."""

    if isinstance(error, IntegrityError):
        message = str(error.orig)
        if any(marker in message for marker in _NATURAL_KEY_MARKERS):
            return KeyConflictError(f"natural key already taken: {message}")
    if isinstance(error, StaleDataError):
        return StorageError(f"policy changed by a concurrent writer: {error}")
    return StorageError(f"{type(error).__name__}: {error}")


class SqlAlchemyPolicyUnitOfWork:
    """One session, one transaction: commit explicitly, anything else rolls back."""

    def __init__(self) -> None:
        if _STATE.sessions is None:
            raise StartupError(
                "SQLAlchemy adapter not initialised. Call policykeeper.adapters.sqlalchemy."
                "unit_of_work.startup() before requesting a unit of work."
            )
        self._sessions = _STATE.sessions
        self._session: Session | None = None
        self._repositories: PolicyRepositories | None = None

    def __enter__(self) -> SqlAlchemyPolicyUnitOfWork:
        if self._session is not None:
            raise StartupError("Unit of work session already initialised")
        session = self._sessions()
        self._session = session
        self._repositories = self._build_repositories(session)
        return self

    def _build_repositories(self, session: Session) -> PolicyRepositories:
        return PolicyRepositories(
            policies=SqlAlchemyPolicyRepository(session),
            field_locks=SqlAlchemyFieldLockRepository(session),
            revisions=SqlAlchemyPolicyRevisionRepository(session),
        )

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        session, self._session, self._repositories = self.session, None, None
        try:
            if exc_type is not None:
                session.rollback()
        finally:
            session.close()
        if isinstance(exc_value, SQLAlchemyError):
            raise translate_error(exc_value) from exc_value
        return False

    @property
    def session(self) -> Session:
        if self._session is None:
            raise StartupError("Unit of work session not initialised")
        return self._session

    @property
    def repositories(self) -> PolicyRepositories:
        if self._repositories is None:
            raise StartupError("Unit of work session not initialised")
        return self._repositories

    def commit(self) -> None:
        self.session.commit()

    def rollback(self) -> None:
        self.session.rollback()


if TYPE_CHECKING:
    from policykeeper.domain.ports.unit_of_work import PolicyUnitOfWork

    _uow_check: PolicyUnitOfWork = SqlAlchemyPolicyUnitOfWork()
