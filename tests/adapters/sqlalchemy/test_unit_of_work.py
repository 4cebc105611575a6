from __future__ import annotations

import sqlite3
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from policykeeper.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyPolicyUnitOfWork,
    StartupError,
    configured_engine,
    ensure_started,
    is_started,
    shutdown,
    startup,
    translate_error,
)
from policykeeper.domain.errors import KeyConflictError, StorageError
from policykeeper.domain.model import PolicyRecord
from tests.helpers.policies import OWNER

if TYPE_CHECKING:
    from collections.abc import Iterator

    from sqlalchemy.engine import Engine


@pytest.fixture(autouse=True)
def reset_unit_of_work_state() -> Iterator[None]:
    shutdown()
    yield
    shutdown()


def _record(policy_number: str = "AP-1") -> PolicyRecord:
    return PolicyRecord(owner_id=OWNER, insurer="PORTO SEGURO", policy_number=policy_number)


def test_unit_of_work_requires_startup() -> None:
    with pytest.raises(StartupError):
        SqlAlchemyPolicyUnitOfWork()


def test_startup_requires_force_for_reconfiguration() -> None:
    engine_a = create_engine("sqlite+pysqlite:///:memory:", future=True)
    engine_b = create_engine("sqlite+pysqlite:///:memory:", future=True)

    startup(engine=engine_a, force=True)

    with pytest.raises(StartupError):
        startup(engine=engine_b)

    startup(engine=engine_b, force=True)
    assert configured_engine() is engine_b


def test_ensure_started_is_idempotent() -> None:
    ensure_started(database_uri="sqlite+pysqlite:///:memory:")
    engine = configured_engine()

    ensure_started(database_uri="sqlite+pysqlite:///:memory:")

    assert is_started()
    assert configured_engine() is engine


def test_commit_persists_records(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    record = _record()

    with SqlAlchemyPolicyUnitOfWork() as uow:
        uow.repositories.policies.add(record)
        uow.commit()

    with SqlAlchemyPolicyUnitOfWork() as uow:
        loaded = uow.repositories.policies.get(record.id)
        assert loaded is not None
        assert loaded.policy_number == "AP-1"


def test_exception_rolls_back_pending_writes(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    record = _record()

    with pytest.raises(RuntimeError), SqlAlchemyPolicyUnitOfWork() as uow:
        uow.repositories.policies.add(record)
        uow.session.flush()
        raise RuntimeError("boom")

    with SqlAlchemyPolicyUnitOfWork() as uow:
        assert uow.repositories.policies.get(record.id) is None


def test_duplicate_natural_key_raises_key_conflict(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    with SqlAlchemyPolicyUnitOfWork() as uow:
        uow.repositories.policies.add(_record())
        uow.commit()

    with pytest.raises(KeyConflictError), SqlAlchemyPolicyUnitOfWork() as uow:
        uow.repositories.policies.add(_record())
        uow.commit()


def test_driver_errors_leave_as_storage_errors(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)

    with pytest.raises(StorageError) as exc_info, SqlAlchemyPolicyUnitOfWork() as uow:
        uow.session.execute(text("SELECT * FROM no_such_table"))

    assert not isinstance(exc_info.value, KeyConflictError)
    assert isinstance(exc_info.value.__cause__, OperationalError)


def test_repositories_require_an_open_session(sqlite_engine: Engine) -> None:
    startup(engine=sqlite_engine, force=True)
    uow = SqlAlchemyPolicyUnitOfWork()

    with pytest.raises(StartupError):
        _ = uow.repositories


def test_translate_error_recognizes_natural_key_collisions() -> None:
    natural_key = IntegrityError(
        "INSERT INTO policy",
        {},
        sqlite3.IntegrityError(
            "UNIQUE constraint failed: policy.owner_id, policy.insurer, policy.policy_number"
        ),
    )
    named = IntegrityError(
        "INSERT INTO policy",
        {},
        Exception('duplicate key value violates unique constraint "uq_policy_natural_key"'),
    )
    other = IntegrityError(
        "INSERT INTO installment",
        {},
        sqlite3.IntegrityError("UNIQUE constraint failed: installment.policy_id"),
    )

    assert isinstance(translate_error(natural_key), KeyConflictError)
    assert isinstance(translate_error(named), KeyConflictError)
    assert type(translate_error(other)) is StorageError


def test_translate_error_wraps_operational_errors() -> None:
    error = OperationalError("SELECT 1", {}, sqlite3.OperationalError("database is locked"))

    translated = translate_error(error)

    assert type(translated) is StorageError
    assert "database is locked" in str(translated)


def test_stale_version_leaves_as_storage_error(file_engine: Engine) -> None:
    startup(engine=file_engine, force=True)
    record = _record()
    with SqlAlchemyPolicyUnitOfWork() as uow:
        uow.repositories.policies.add(record)
        uow.commit()

    with pytest.raises(StorageError) as exc_info, SqlAlchemyPolicyUnitOfWork() as stale:
        stale_copy = stale.repositories.policies.get(record.id)
        assert stale_copy is not None
        with SqlAlchemyPolicyUnitOfWork() as fresh:
            current = fresh.repositories.policies.get(record.id)
            assert current is not None
            current.insured_name = "Maria Silva"
            current.version += 1
            fresh.commit()
        stale_copy.insured_name = "Joana Souza"
        stale_copy.version += 1
        stale.commit()

    assert "concurrent writer" in str(exc_info.value)
    assert isinstance(exc_info.value.__cause__, StaleDataError)
    with SqlAlchemyPolicyUnitOfWork() as uow:
        stored = uow.repositories.policies.get(record.id)
        assert stored is not None
        assert stored.insured_name == "Maria Silva"
        assert stored.version == 2
