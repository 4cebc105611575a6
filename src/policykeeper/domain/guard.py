"""Confirmed-field guard: decide which values an automated write may touch.

Per mutable field, in order:

1. locked by a human confirmation -> keep the existing value
2. supplied by the incoming record -> take the incoming value
3. otherwise -> keep the existing value (never erase a known value)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from policykeeper.domain.model import MUTABLE_FIELDS

if TYPE_CHECKING:
    from collections.abc import Mapping

    from policykeeper.domain.model import LockRegistry


@dataclass(slots=True)
class WriteSet:
    values: dict[str, object] = field(default_factory=dict[str, object])
    changed: list[str] = field(default_factory=list[str])
    protected: list[str] = field(default_factory=list[str])
    retained: list[str] = field(default_factory=list[str])

    @property
    def has_changes(self) -> bool:
        return bool(self.changed)


def resolve_write_set(
    existing: Mapping[str, object],
    incoming: Mapping[str, object],
    locks: LockRegistry,
) -> WriteSet:
    """Compute the field values an automated write ends up persisting.

    ``incoming`` holds only the fields the candidate supplied; a key mapped to
    ``None`` is treated as not supplied.
    """

    result = WriteSet()
    for name in MUTABLE_FIELDS:
        current = existing.get(name)
        proposed = incoming.get(name)
        if locks.is_locked(name):
            result.values[name] = current
            if proposed is not None and proposed != current:
                result.protected.append(name)
            continue
        if proposed is None:
            result.values[name] = current
            if current is not None:
                result.retained.append(name)
            continue
        result.values[name] = proposed
        if proposed != current:
            result.changed.append(name)
    return result


__all__ = ["WriteSet", "resolve_write_set"]
