"""Explicit human confirmation of policy fields.

Confirming a field locks it against automated ingestion; unconfirming releases
the lock. Both are metadata writes independent of the ingestion path. A
confirmation may carry the value the human vouches for, in which case that
value is written as well.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Final, cast

from policykeeper.domain.clock import utcnow
from policykeeper.domain.errors import (
    FieldIssue,
    IssueCode,
    PolicyNotFoundError,
    ValidationError,
)
from policykeeper.domain.model import (
    FieldLock,
    LockRegistry,
    PolicyRevision,
    WriteSource,
    is_mutable_field,
)
from policykeeper.domain.normalization import check_date_order, coerce_field
from policykeeper.domain.persistence import KeyLocks
from policykeeper.domain.resolve import NaturalKey
from policykeeper.domain.status import derive_status

if TYPE_CHECKING:
    from datetime import date
    from uuid import UUID

    from policykeeper.domain.clock import Clock
    from policykeeper.domain.model import PolicyRecord
    from policykeeper.domain.ports import PolicyRepositories, PolicyUnitOfWorkFactory

log = logging.getLogger(__name__)


class _Unset(Enum):
    UNSET = "unset"


UNSET: Final = _Unset.UNSET


@dataclass(slots=True, kw_only=True)
class FieldConfirmationService:
    unit_of_work_factory: PolicyUnitOfWorkFactory
    clock: Clock = utcnow
    key_locks: KeyLocks = field(default_factory=KeyLocks)

    def confirm_field(
        self,
        policy_id: UUID,
        field_name: str,
        *,
        value: object = UNSET,
        confirmed_by: str | None = None,
    ) -> FieldLock:
        """Lock ``field_name`` of a policy, optionally writing ``value`` first."""

        _require_known_field(field_name)
        now = self.clock()
        with self.key_locks.hold(self._key_of(policy_id)), self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            record = _require_policy(repositories, policy_id)
            if value is not UNSET:
                self._apply_confirmed_value(repositories, record, field_name, value)

            registry = LockRegistry(repositories.field_locks.for_policy(record.id))
            lock = registry.get(field_name)
            if lock is None:
                lock = FieldLock(
                    policy_id=record.id,
                    field_name=field_name,
                    confirmed_at=now,
                    confirmed_by=confirmed_by,
                )
                repositories.field_locks.add(lock)
            else:
                lock.confirmed_at = now
                lock.confirmed_by = confirmed_by
            record.last_touched_by = WriteSource.CONFIRMATION
            uow.commit()
        log.info("Confirmed field %s of policy %s", field_name, policy_id)
        return lock

    def unconfirm_field(self, policy_id: UUID, field_name: str) -> bool:
        """Release the lock on ``field_name``; returns whether one existed."""

        _require_known_field(field_name)
        with self.key_locks.hold(self._key_of(policy_id)), self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            record = _require_policy(repositories, policy_id)
            lock = LockRegistry(repositories.field_locks.for_policy(record.id)).get(field_name)
            if lock is None:
                return False
            repositories.field_locks.remove(lock)
            uow.commit()
        log.info("Unconfirmed field %s of policy %s", field_name, policy_id)
        return True

    def confirmed_fields(self, policy_id: UUID) -> LockRegistry:
        with self.unit_of_work_factory() as uow:
            record = _require_policy(uow.repositories, policy_id)
            return LockRegistry(uow.repositories.field_locks.for_policy(record.id))

    def _key_of(self, policy_id: UUID) -> NaturalKey:
        # natural keys are immutable
        with self.unit_of_work_factory() as uow:
            record = _require_policy(uow.repositories, policy_id)
            return NaturalKey.of(record.owner_id, record.insurer, record.policy_number)

    def _apply_confirmed_value(
        self,
        repositories: PolicyRepositories,
        record: PolicyRecord,
        field_name: str,
        value: object,
    ) -> None:
        now = self.clock()
        coerced = coerce_field(field_name, value, today=now.date())
        if coerced == getattr(record, field_name):
            return

        values = record.field_values()
        values[field_name] = coerced
        issue = check_date_order(
            cast("date | None", values["start_date"]),
            cast("date | None", values["end_date"]),
        )
        if issue is not None:
            raise ValidationError([issue])

        record.apply_fields({field_name: coerced})
        record.status = derive_status(record.start_date, record.end_date, now)
        record.version += 1
        record.updated_at = now
        repositories.revisions.add(
            PolicyRevision(
                policy_id=record.id,
                version=record.version,
                source=WriteSource.CONFIRMATION,
                artifact_hash=record.artifact_hash,
                changed_fields=(field_name,),
                recorded_at=now,
            )
        )


def _require_known_field(field_name: str) -> None:
    if not is_mutable_field(field_name):
        raise ValidationError(
            [FieldIssue(field_name, IssueCode.UNKNOWN_FIELD, "not a confirmable policy field")]
        )


def _require_policy(repositories: PolicyRepositories, policy_id: UUID) -> PolicyRecord:
    record = repositories.policies.get(policy_id)
    if record is None:
        raise PolicyNotFoundError(f"policy {policy_id} does not exist")
    return record


__all__ = ["UNSET", "FieldConfirmationService"]
