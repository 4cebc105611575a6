"""Identity shared by the persisted policy objects."""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID, uuid4


@dataclass(eq=False, kw_only=True)
class Entity:
    """Ids are assigned at construction, before any row exists.

    Equality stays identity based; two records with the same natural key are
    still two entities.
    """

    id: UUID = field(default_factory=uuid4)
