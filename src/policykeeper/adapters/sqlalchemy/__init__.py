"""SQLAlchemy adapter package for policykeeper."""

from __future__ import annotations

from .mappings import mapper_registry, start_mappers
from .repositories import (
    SqlAlchemyFieldLockRepository,
    SqlAlchemyPolicyRepository,
    SqlAlchemyPolicyRevisionRepository,
)
from .unit_of_work import (
    SqlAlchemyPolicyUnitOfWork,
    StartupError,
    ensure_started,
    shutdown,
    startup,
)

__all__ = [
    "SqlAlchemyFieldLockRepository",
    "SqlAlchemyPolicyRepository",
    "SqlAlchemyPolicyRevisionRepository",
    "SqlAlchemyPolicyUnitOfWork",
    "StartupError",
    "ensure_started",
    "mapper_registry",
    "shutdown",
    "start_mappers",
    "startup",
]
