"""Public domain model surface."""

from __future__ import annotations

from policykeeper.domain.model.audit import PolicyRevision
from policykeeper.domain.model.entity import Entity
from policykeeper.domain.model.enums import (
    DocumentType,
    InstallmentStatus,
    PolicyStatus,
    WriteSource,
)
from policykeeper.domain.model.locks import FieldLock, LockRegistry
from policykeeper.domain.model.policy import (
    MUTABLE_FIELDS,
    CoverageItem,
    InstallmentItem,
    PolicyRecord,
    is_mutable_field,
)

__all__ = [  # noqa: RUF022
    # base
    "Entity",
    # policy aggregate
    "PolicyRecord",
    "CoverageItem",
    "InstallmentItem",
    "MUTABLE_FIELDS",
    "is_mutable_field",
    # locks
    "FieldLock",
    "LockRegistry",
    # audit
    "PolicyRevision",
    # enums
    "DocumentType",
    "InstallmentStatus",
    "PolicyStatus",
    "WriteSource",
]
