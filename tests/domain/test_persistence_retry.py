from __future__ import annotations

from policykeeper.adapters.sqlalchemy.unit_of_work import StartupError
from policykeeper.domain.errors import KeyConflictError
from policykeeper.domain.model import PolicyRecord
from policykeeper.domain.persistence import PolicyPersistenceService
from tests.helpers.policies import (
    OWNER,
    REFERENCE_NOW,
    FlakyPolicyRepository,
    InMemoryPolicyRepository,
    InMemoryState,
    InMemoryUnitOfWork,
    make_candidate,
    make_clock,
)


def _service(
    state: InMemoryState,
    policies: InMemoryPolicyRepository,
    sleeps: list[float],
    **overrides: int,
) -> PolicyPersistenceService:
    return PolicyPersistenceService(
        unit_of_work_factory=lambda: InMemoryUnitOfWork(state, policies=policies),
        clock=make_clock(REFERENCE_NOW),
        sleep=sleeps.append,
        **overrides,
    )


def test_transient_storage_error_is_retried_with_backoff() -> None:
    state = InMemoryState()
    sleeps: list[float] = []
    service = _service(state, FlakyPolicyRepository(state, failures=2), sleeps)

    result = service.persist(OWNER, make_candidate())

    assert result.success
    assert sleeps == [0.2, 0.4]
    assert len(state.policies) == 1


def test_storage_error_surfaces_after_last_attempt() -> None:
    state = InMemoryState()
    sleeps: list[float] = []
    service = _service(state, FlakyPolicyRepository(state, failures=5), sleeps)

    result = service.persist(OWNER, make_candidate())

    assert not result.success
    assert result.errors == ["database is locked"]
    assert sleeps == [0.2, 0.4]
    assert state.policies == {}


def test_single_attempt_configuration_does_not_retry() -> None:
    state = InMemoryState()
    sleeps: list[float] = []
    service = _service(state, FlakyPolicyRepository(state, failures=1), sleeps, max_attempts=1)

    result = service.persist(OWNER, make_candidate())

    assert not result.success
    assert sleeps == []


class _ConflictingPolicyRepository(InMemoryPolicyRepository):
    def __init__(self, state: InMemoryState) -> None:
        super().__init__(state)
        self.attempts = 0

    def add(self, entity: PolicyRecord) -> None:
        _ = entity
        self.attempts += 1
        raise KeyConflictError("natural key already taken")


def test_key_conflict_is_retried_once() -> None:
    state = InMemoryState()
    sleeps: list[float] = []
    repository = _ConflictingPolicyRepository(state)
    service = _service(state, repository, sleeps)

    result = service.persist(OWNER, make_candidate())

    assert not result.success
    assert repository.attempts == 2
    assert result.errors == ["natural key already taken"]
    assert sleeps == []


def test_duplicate_live_records_are_reported_not_merged() -> None:
    state = InMemoryState()
    for _ in range(2):
        record = PolicyRecord(owner_id=OWNER, insurer="PORTO SEGURO", policy_number="AP-2024-0001")
        state.policies[record.id] = record
    service = _service(state, InMemoryPolicyRepository(state), [])

    result = service.persist(OWNER, make_candidate())

    assert not result.success
    assert "2 live records" in result.errors[0]
    assert all(record.version == 1 for record in state.policies.values())


def test_unexpected_failure_is_returned_as_result() -> None:
    def unavailable_unit_of_work() -> InMemoryUnitOfWork:
        raise StartupError("adapter not initialised")

    sleeps: list[float] = []
    service = PolicyPersistenceService(
        unit_of_work_factory=unavailable_unit_of_work,
        clock=make_clock(REFERENCE_NOW),
        sleep=sleeps.append,
    )

    result = service.persist(OWNER, make_candidate())

    assert not result.success
    assert result.errors == ["StartupError: adapter not initialised"]
    assert sleeps == []
