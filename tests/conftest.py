from __future__ import annotations

import os
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine  # noqa: TC002
from sqlalchemy.orm import Session, sessionmaker

from policykeeper.adapters.artifacts import FilesystemArtifactStore
from policykeeper.adapters.sqlalchemy import start_mappers
from policykeeper.adapters.sqlalchemy.migrations import upgrade_head
from policykeeper.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyPolicyUnitOfWork,
    shutdown,
    startup,
)
from policykeeper.domain.persistence import PolicyPersistenceService
from tests.helpers.policies import REFERENCE_NOW, make_clock

os.environ.setdefault("DATABASE_URI", "sqlite+pysqlite:///:memory:")

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from pathlib import Path

    from policykeeper.domain.clock import Clock


@pytest.fixture
def sqlite_engine() -> Iterator[Engine]:
    engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def file_engine(tmp_path: Path) -> Iterator[Engine]:
    """SQLite file database shared by several connections and threads."""

    engine = create_engine(
        f"sqlite+pysqlite:///{tmp_path / 'policies.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    start_mappers()
    upgrade_head(engine=engine)
    try:
        yield engine
    finally:
        engine.dispose()


@pytest.fixture
def sqlite_session(sqlite_engine: Engine) -> Iterator[Session]:
    session_factory = sessionmaker(bind=sqlite_engine, future=True)
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sqlite_unit_of_work(
    sqlite_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyPolicyUnitOfWork]]:
    startup(engine=sqlite_engine, force=True)

    def factory() -> SqlAlchemyPolicyUnitOfWork:
        return SqlAlchemyPolicyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def file_unit_of_work(
    file_engine: Engine,
) -> Iterator[Callable[[], SqlAlchemyPolicyUnitOfWork]]:
    startup(engine=file_engine, force=True)

    def factory() -> SqlAlchemyPolicyUnitOfWork:
        return SqlAlchemyPolicyUnitOfWork()

    try:
        yield factory
    finally:
        shutdown()


@pytest.fixture
def fixed_clock() -> Clock:
    return make_clock(REFERENCE_NOW)


@pytest.fixture
def artifact_store(tmp_path: Path) -> FilesystemArtifactStore:
    return FilesystemArtifactStore(tmp_path / "artifacts")


@pytest.fixture
def persistence_service(
    sqlite_unit_of_work: Callable[[], SqlAlchemyPolicyUnitOfWork],
    artifact_store: FilesystemArtifactStore,
    fixed_clock: Clock,
) -> PolicyPersistenceService:
    return PolicyPersistenceService(
        unit_of_work_factory=sqlite_unit_of_work,
        artifact_store=artifact_store,
        clock=fixed_clock,
        sleep=lambda _seconds: None,
    )
