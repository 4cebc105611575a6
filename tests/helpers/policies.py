from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Literal

from policykeeper.domain.errors import ArtifactError, StorageError
from policykeeper.domain.ports import PolicyRepositories, ValuationError, sha256_digest

if TYPE_CHECKING:
    from collections.abc import Iterable
    from decimal import Decimal
    from types import TracebackType
    from uuid import UUID

    from policykeeper.domain.clock import Clock
    from policykeeper.domain.model import (
        CoverageItem,
        FieldLock,
        InstallmentItem,
        PolicyRecord,
        PolicyRevision,
    )

OWNER = "owner-1"
REFERENCE_NOW = datetime(2024, 6, 15, 12, 0, tzinfo=UTC)


def make_clock(moment: datetime) -> Clock:
    def clock() -> datetime:
        return moment

    return clock


def make_candidate(**overrides: object) -> dict[str, object]:
    """A Portuguese-keyed extraction payload; ``None`` overrides drop the key."""

    candidate: dict[str, object] = {
        "seguradora": "Porto Seguro",
        "numero_apolice": "AP-2024-0001",
        "segurado": "Maria Silva",
        "documento": "123.456.789-09",
        "inicio_vigencia": "10/01/2024",
        "fim_vigencia": "10/01/2025",
        "valor_premio": "4.200,00",
        "custo_mensal": "350,00",
        "placa": "abc 1d23",
        "coberturas": [
            {"descricao": "Colisao", "lmi": "50.000,00"},
            {"descricao": "Roubo e furto"},
        ],
    }
    for key, value in overrides.items():
        if value is None:
            candidate.pop(key, None)
        else:
            candidate[key] = value
    return candidate


# Artifact stores -------------------------------------------------------------


@dataclass
class RecordingArtifactStore:
    stored: dict[str, bytes] = field(default_factory=dict[str, bytes])
    calls: int = 0

    def store(self, data: bytes, *, digest: str) -> str:
        assert sha256_digest(data) == digest
        self.calls += 1
        self.stored[digest] = data
        return f"memory://{digest}"


@dataclass
class FailingArtifactStore(RecordingArtifactStore):
    """Raises for the first ``failures`` calls; ``None`` fails every call."""

    failures: int | None = None
    attempts: int = 0

    def store(self, data: bytes, *, digest: str) -> str:
        self.attempts += 1
        if self.failures is None or self.attempts <= self.failures:
            raise ArtifactError("disk full")
        return super().store(data, digest=digest)


# Valuation -------------------------------------------------------------------


@dataclass
class StubValuation:
    value: Decimal | None = None
    error: str | None = None
    calls: list[tuple[str, str, int]] = field(default_factory=list[tuple[str, str, int]])

    def lookup(
        self,
        *,
        brand: str,
        model: str,
        year: int,
        fuel: str | None = None,  # noqa: ARG002
    ) -> Decimal | None:
        self.calls.append((brand, model, year))
        if self.error is not None:
            raise ValuationError(self.error)
        return self.value


# In-memory repositories ------------------------------------------------------


@dataclass
class InMemoryState:
    policies: dict[UUID, PolicyRecord] = field(default_factory=dict)
    locks: list[FieldLock] = field(default_factory=list)
    revisions: list[PolicyRevision] = field(default_factory=list)


class InMemoryPolicyRepository:
    def __init__(self, state: InMemoryState) -> None:
        self.state = state

    def add(self, entity: PolicyRecord) -> None:
        self.state.policies[entity.id] = entity

    def get(self, policy_id: UUID) -> PolicyRecord | None:
        return self.state.policies.get(policy_id)

    def find_by_key(
        self,
        *,
        owner_id: str,
        insurer: str,
        policy_number: str,
    ) -> list[PolicyRecord]:
        return [
            record
            for record in self.state.policies.values()
            if (record.owner_id, record.insurer, record.policy_number)
            == (owner_id, insurer, policy_number)
        ]

    def list_by_owner(self, owner_id: str) -> list[PolicyRecord]:
        return [record for record in self.state.policies.values() if record.owner_id == owner_id]

    def replace_coverages(self, policy: PolicyRecord, items: Iterable[CoverageItem]) -> None:
        policy.clear_coverages()
        policy.add_coverages(items)

    def replace_installments(self, policy: PolicyRecord, items: Iterable[InstallmentItem]) -> None:
        policy.clear_installments()
        policy.add_installments(items)


class FlakyPolicyRepository(InMemoryPolicyRepository):
    """Fails the first ``failures`` key lookups with a storage error."""

    def __init__(self, state: InMemoryState, *, failures: int) -> None:
        super().__init__(state)
        self.failures = failures

    def find_by_key(
        self,
        *,
        owner_id: str,
        insurer: str,
        policy_number: str,
    ) -> list[PolicyRecord]:
        if self.failures > 0:
            self.failures -= 1
            raise StorageError("database is locked")
        return super().find_by_key(
            owner_id=owner_id, insurer=insurer, policy_number=policy_number
        )


class InMemoryFieldLockRepository:
    def __init__(self, state: InMemoryState) -> None:
        self.state = state

    def add(self, entity: FieldLock) -> None:
        self.state.locks.append(entity)

    def for_policy(self, policy_id: UUID) -> list[FieldLock]:
        return [lock for lock in self.state.locks if lock.policy_id == policy_id]

    def remove(self, lock: FieldLock) -> None:
        self.state.locks.remove(lock)


class InMemoryRevisionRepository:
    def __init__(self, state: InMemoryState) -> None:
        self.state = state

    def add(self, entity: PolicyRevision) -> None:
        self.state.revisions.append(entity)

    def for_policy(self, policy_id: UUID) -> list[PolicyRevision]:
        return [revision for revision in self.state.revisions if revision.policy_id == policy_id]


class InMemoryUnitOfWork:
    """Unit of work over plain dictionaries; it commits but never rolls back."""

    def __init__(
        self,
        state: InMemoryState,
        *,
        policies: InMemoryPolicyRepository | None = None,
    ) -> None:
        self._repositories = PolicyRepositories(
            policies=policies or InMemoryPolicyRepository(state),
            field_locks=InMemoryFieldLockRepository(state),
            revisions=InMemoryRevisionRepository(state),
        )
        self.commits = 0

    @property
    def repositories(self) -> PolicyRepositories:
        return self._repositories

    def __enter__(self) -> InMemoryUnitOfWork:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> Literal[False]:
        return False

    def commit(self) -> None:
        self.commits += 1

    def rollback(self) -> None:
        return None
