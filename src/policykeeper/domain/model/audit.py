"""Audit records for policy writes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from policykeeper.domain.model.entity import Entity

if TYPE_CHECKING:
    from uuid import UUID

    from policykeeper.domain.model.enums import WriteSource


@dataclass(eq=False, kw_only=True)
class PolicyRevision(Entity):
    """One successful write to a policy record, in commit order."""

    policy_id: UUID
    version: int
    source: WriteSource
    artifact_hash: str | None = None
    changed_fields: tuple[str, ...] = ()
    recorded_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
