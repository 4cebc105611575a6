"""Transaction boundary the persistence services write through."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType

    from policykeeper.domain.ports.persistence import (
        FieldLockRepository,
        PolicyRepository,
        PolicyRevisionRepository,
    )


@dataclass(slots=True)
class PolicyRepositories:
    """Repositories touched by one policy write, all bound to one transaction."""

    policies: PolicyRepository
    field_locks: FieldLockRepository
    revisions: PolicyRevisionRepository


@runtime_checkable
class PolicyUnitOfWork(Protocol):
    """Nothing is durable until ``commit``; leaving the block early rolls back."""

    @property
    def repositories(self) -> PolicyRepositories: ...

    def __enter__(self) -> PolicyUnitOfWork: ...

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> bool: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


type PolicyUnitOfWorkFactory = Callable[[], PolicyUnitOfWork]
