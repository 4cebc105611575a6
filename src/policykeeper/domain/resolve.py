"""Natural-key resolution against the system of record."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from policykeeper.domain.errors import IntegrityFault
from policykeeper.domain.normalization import normalize_insurer

if TYPE_CHECKING:
    from policykeeper.domain.model import PolicyRecord
    from policykeeper.domain.ports import PolicyRepository

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class NaturalKey:
    owner_id: str
    insurer: str
    policy_number: str

    @classmethod
    def of(cls, owner_id: str, insurer: str, policy_number: str) -> NaturalKey:
        return cls(owner_id.strip(), normalize_insurer(insurer), policy_number.strip())

    def __str__(self) -> str:
        return f"{self.owner_id}/{self.insurer}/{self.policy_number}"


def find_by_key(
    repository: PolicyRepository,
    *,
    owner_id: str,
    insurer: str,
    policy_number: str,
) -> PolicyRecord | None:
    """Return the single live record for the key, ``None`` if there is none.

    Several matches mean the uniqueness invariant was broken outside this
    engine; that is reported as ``IntegrityFault`` and never auto-resolved.
    """

    key = NaturalKey.of(owner_id, insurer, policy_number)
    matches: dict[object, PolicyRecord] = {}
    for record in repository.find_by_key(
        owner_id=key.owner_id,
        insurer=key.insurer,
        policy_number=key.policy_number,
    ):
        matches.setdefault(record.id, record)

    if not matches:
        return None
    if len(matches) > 1:
        log.error(
            "Integrity fault: %d live records share natural key %s (%s)",
            len(matches),
            key,
            ", ".join(str(policy_id) for policy_id in matches),
        )
        raise IntegrityFault(
            owner_id=key.owner_id,
            insurer=key.insurer,
            policy_number=key.policy_number,
            policy_ids=[record.id for record in matches.values()],
        )
    return next(iter(matches.values()))


__all__ = ["NaturalKey", "find_by_key"]
