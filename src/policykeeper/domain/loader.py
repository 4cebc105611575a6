"""Read side: rehydrate policies from the system of record.

Every read opens a fresh unit of work, so callers always see the latest
committed state and never a cached copy.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from uuid import UUID

    from policykeeper.domain.model import PolicyRecord, PolicyRevision
    from policykeeper.domain.ports import PolicyUnitOfWorkFactory


@dataclass(slots=True)
class PolicyLoader:
    unit_of_work_factory: PolicyUnitOfWorkFactory

    def list_by_owner(self, owner_id: str) -> list[PolicyRecord]:
        """Policies of ``owner_id`` with sub-entities loaded, newest first."""

        with self.unit_of_work_factory() as uow:
            return uow.repositories.policies.list_by_owner(owner_id.strip())

    def get(self, policy_id: UUID) -> PolicyRecord | None:
        with self.unit_of_work_factory() as uow:
            return uow.repositories.policies.get(policy_id)

    def revisions(self, policy_id: UUID) -> list[PolicyRevision]:
        with self.unit_of_work_factory() as uow:
            return uow.repositories.revisions.for_policy(policy_id)


__all__ = ["PolicyLoader"]
