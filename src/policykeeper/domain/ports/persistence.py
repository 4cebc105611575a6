"""Ports for persisting the policy aggregate."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from policykeeper.domain.model import (
    CoverageItem,
    FieldLock,
    InstallmentItem,
    PolicyRecord,
    PolicyRevision,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID


@runtime_checkable
class Repository[TEntity](Protocol):
    """Minimal repository contract for a persistent aggregate store."""

    def add(self, entity: TEntity) -> None: ...


@runtime_checkable
class PolicyRepository(Repository[PolicyRecord], Protocol):
    """Persistence contract for policy records and their sub-entities."""

    def get(self, policy_id: UUID) -> PolicyRecord | None: ...

    def find_by_key(
        self,
        *,
        owner_id: str,
        insurer: str,
        policy_number: str,
    ) -> Sequence[PolicyRecord]: ...

    def list_by_owner(self, owner_id: str) -> list[PolicyRecord]: ...

    def replace_coverages(self, policy: PolicyRecord, items: Iterable[CoverageItem]) -> None: ...

    def replace_installments(
        self, policy: PolicyRecord, items: Iterable[InstallmentItem]
    ) -> None: ...


@runtime_checkable
class FieldLockRepository(Repository[FieldLock], Protocol):
    """Persistence contract for field confirmation locks."""

    def for_policy(self, policy_id: UUID) -> list[FieldLock]: ...

    def remove(self, lock: FieldLock) -> None: ...


@runtime_checkable
class PolicyRevisionRepository(Repository[PolicyRevision], Protocol):
    """Append-only audit trail of policy writes."""

    def for_policy(self, policy_id: UUID) -> list[PolicyRevision]: ...
