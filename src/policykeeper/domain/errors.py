"""Failure taxonomy of the persistence engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from uuid import UUID


class IssueCode(StrEnum):
    MISSING_REQUIRED_FIELD = "missing_required_field"
    INVALID_DATE_ORDER = "invalid_date_order"
    INVALID_OWNER = "invalid_owner"
    UNKNOWN_FIELD = "unknown_field"
    INVALID_RECORD = "invalid_record"


@dataclass(frozen=True, slots=True)
class FieldIssue:
    """One offending field of a rejected record."""

    field: str
    code: IssueCode
    message: str

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class PersistenceError(RuntimeError):
    """Base class for failures surfaced by the persistence engine."""


class ValidationError(PersistenceError):
    """A candidate record was rejected; carries every offending field."""

    def __init__(self, issues: Iterable[FieldIssue]) -> None:
        self.issues: tuple[FieldIssue, ...] = tuple(issues)
        if not self.issues:
            raise ValueError("ValidationError requires at least one issue")
        super().__init__("; ".join(str(issue) for issue in self.issues))

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(issue.field for issue in self.issues)

    def messages(self) -> list[str]:
        return [str(issue) for issue in self.issues]


class IntegrityFault(PersistenceError):
    """More than one live record shares a natural key. Needs an operator."""

    def __init__(
        self,
        *,
        owner_id: str,
        insurer: str,
        policy_number: str,
        policy_ids: Sequence[UUID],
    ) -> None:
        self.owner_id = owner_id
        self.insurer = insurer
        self.policy_number = policy_number
        self.policy_ids = tuple(policy_ids)
        ids = ", ".join(str(policy_id) for policy_id in self.policy_ids)
        super().__init__(
            f"{len(self.policy_ids)} live records for owner={owner_id} insurer={insurer} "
            f"policy_number={policy_number}: {ids}"
        )


class StorageError(PersistenceError):
    """The system of record failed (connection loss, timeout, conflict)."""


class KeyConflictError(StorageError):
    """A concurrent writer inserted the same natural key first."""


class ArtifactError(PersistenceError):
    """The artifact store could not persist a source document."""


class PolicyNotFoundError(PersistenceError):
    """No policy exists with the requested id."""
