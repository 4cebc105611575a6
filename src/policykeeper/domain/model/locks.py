"""Field confirmation locks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from policykeeper.domain.model.entity import Entity

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator
    from uuid import UUID


@dataclass(eq=False, kw_only=True)
class FieldLock(Entity):
    """A human marked ``field_name`` of a policy as authoritative."""

    policy_id: UUID
    field_name: str
    confirmed_at: datetime = field(default_factory=lambda: datetime.now(tz=UTC))
    confirmed_by: str | None = None


class LockRegistry:
    """Tagged lock table for one policy: field name -> lock record."""

    def __init__(self, locks: Iterable[FieldLock] = ()) -> None:
        self._locks: dict[str, FieldLock] = {lock.field_name: lock for lock in locks}

    def __contains__(self, field_name: object) -> bool:
        return field_name in self._locks

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._locks))

    def __len__(self) -> int:
        return len(self._locks)

    def get(self, field_name: str) -> FieldLock | None:
        return self._locks.get(field_name)

    def is_locked(self, field_name: str) -> bool:
        return field_name in self._locks

    @property
    def field_names(self) -> frozenset[str]:
        return frozenset(self._locks)
