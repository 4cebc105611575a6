"""Repository implementations backed by SQLAlchemy sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy import select

from policykeeper.adapters.sqlalchemy.mappings import (
    field_lock_table,
    policy_revision_table,
    policy_table,
)
from policykeeper.domain.model import FieldLock, PolicyRecord, PolicyRevision

if TYPE_CHECKING:
    from collections.abc import Iterable
    from uuid import UUID

    from sqlalchemy.orm import Session

    from policykeeper.domain.model import CoverageItem, InstallmentItem


class SqlAlchemyPolicyRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: PolicyRecord) -> None:
        self.session.add(entity)

    def get(self, policy_id: UUID) -> PolicyRecord | None:
        return self.session.get(PolicyRecord, policy_id, populate_existing=True)

    def find_by_key(
        self,
        *,
        owner_id: str,
        insurer: str,
        policy_number: str,
    ) -> list[PolicyRecord]:
        stmt = (
            select(PolicyRecord)
            .where(policy_table.c.owner_id == owner_id)
            .where(policy_table.c.insurer == insurer)
            .where(policy_table.c.policy_number == policy_number)
        )
        return list(self.session.execute(stmt).scalars().all())

    def list_by_owner(self, owner_id: str) -> list[PolicyRecord]:
        stmt = (
            select(PolicyRecord)
            .where(policy_table.c.owner_id == owner_id)
            .order_by(policy_table.c.created_at.desc(), policy_table.c.id)
            .execution_options(populate_existing=True)
        )
        return list(self.session.execute(stmt).scalars().all())

    def replace_coverages(self, policy: PolicyRecord, items: Iterable[CoverageItem]) -> None:
        # Flush the orphan deletes before inserting the replacements.
        policy.clear_coverages()
        self.session.flush()
        policy.add_coverages(items)

    def replace_installments(self, policy: PolicyRecord, items: Iterable[InstallmentItem]) -> None:
        # (policy_id, number) is unique, so the old rows must be gone first.
        policy.clear_installments()
        self.session.flush()
        policy.add_installments(items)


class SqlAlchemyFieldLockRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: FieldLock) -> None:
        self.session.add(entity)

    def for_policy(self, policy_id: UUID) -> list[FieldLock]:
        stmt = (
            select(FieldLock)
            .where(field_lock_table.c.policy_id == policy_id)
            .order_by(field_lock_table.c.field_name)
        )
        return list(self.session.execute(stmt).scalars().all())

    def remove(self, lock: FieldLock) -> None:
        self.session.delete(lock)


class SqlAlchemyPolicyRevisionRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, entity: PolicyRevision) -> None:
        self.session.add(entity)

    def for_policy(self, policy_id: UUID) -> list[PolicyRevision]:
        stmt = (
            select(PolicyRevision)
            .where(policy_revision_table.c.policy_id == policy_id)
            .order_by(policy_revision_table.c.version, policy_revision_table.c.recorded_at)
        )
        return list(self.session.execute(stmt).scalars().all())
