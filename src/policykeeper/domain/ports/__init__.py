"""Domain port definitions for adapters."""

from __future__ import annotations

from .artifacts import ArtifactStore, sha256_digest
from .persistence import (
    FieldLockRepository,
    PolicyRepository,
    PolicyRevisionRepository,
    Repository,
)
from .unit_of_work import (
    PolicyRepositories,
    PolicyUnitOfWork,
    PolicyUnitOfWorkFactory,
)
from .valuation import ValuationError, VehicleValuationLookup

__all__ = [
    "ArtifactStore",
    "FieldLockRepository",
    "PolicyRepositories",
    "PolicyRepository",
    "PolicyRevisionRepository",
    "PolicyUnitOfWork",
    "PolicyUnitOfWorkFactory",
    "Repository",
    "ValuationError",
    "VehicleValuationLookup",
    "sha256_digest",
]
