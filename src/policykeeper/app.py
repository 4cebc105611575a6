"""Application orchestration entry points."""

from __future__ import annotations

from functools import cache
from logging import getLogger
from typing import TYPE_CHECKING

from policykeeper.adapters.artifacts import FilesystemArtifactStore
from policykeeper.adapters.fipe import build_fipe_valuation_client
from policykeeper.adapters.sqlalchemy.unit_of_work import (
    SqlAlchemyPolicyUnitOfWork,
    ensure_started,
)
from policykeeper.config import get_persistence_config, get_storage_config
from policykeeper.domain.clock import utcnow
from policykeeper.domain.confirmation import UNSET, FieldConfirmationService
from policykeeper.domain.errors import PolicyNotFoundError
from policykeeper.domain.loader import PolicyLoader
from policykeeper.domain.model import WriteSource
from policykeeper.domain.persistence import KeyLocks, PersistResult, PolicyPersistenceService

if TYPE_CHECKING:
    from collections.abc import Mapping
    from uuid import UUID

    from policykeeper.config import PersistenceConfig
    from policykeeper.domain.clock import Clock
    from policykeeper.domain.model import FieldLock, PolicyRecord, PolicyRevision
    from policykeeper.domain.ports import (
        ArtifactStore,
        PolicyUnitOfWorkFactory,
        VehicleValuationLookup,
    )

log = getLogger(__name__)

# shared by ingestion and confirmation so both serialize on the natural key
_KEY_LOCKS = KeyLocks()


def build_persistence_service(
    *,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
    artifact_store: ArtifactStore | None = None,
    valuation: VehicleValuationLookup | None = None,
    clock: Clock | None = None,
    config: PersistenceConfig | None = None,
    key_locks: KeyLocks | None = None,
) -> PolicyPersistenceService:
    """Wire the persistence coordinator from configuration and overrides."""

    settings = config or get_persistence_config()
    if artifact_store is None:
        artifact_store = FilesystemArtifactStore(get_storage_config().artifact_dir())
    if valuation is None and settings.vehicle_valuation:
        valuation = build_fipe_valuation_client()

    return PolicyPersistenceService(
        unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory),
        artifact_store=artifact_store,
        valuation=valuation,
        max_attempts=settings.max_attempts,
        retry_backoff_seconds=settings.retry_backoff_seconds,
        default_installment_count=settings.default_installment_count,
        coherence_tolerance=settings.coherence_tolerance,
        clock=clock or utcnow,
        key_locks=key_locks if key_locks is not None else _KEY_LOCKS,
    )


@cache
def _default_service() -> PolicyPersistenceService:
    return build_persistence_service()


def _unit_of_work_factory(
    unit_of_work_factory: PolicyUnitOfWorkFactory | None,
) -> PolicyUnitOfWorkFactory:
    if unit_of_work_factory is not None:
        return unit_of_work_factory
    ensure_started()
    return SqlAlchemyPolicyUnitOfWork


def persist(
    owner_id: str,
    candidate: Mapping[str, object],
    artifact: bytes | None = None,
    *,
    source: WriteSource = WriteSource.EXTRACTION,
    service: PolicyPersistenceService | None = None,
) -> PersistResult:
    """Persist one candidate policy record for ``owner_id``."""

    effective_service = service or _default_service()
    result = effective_service.persist(owner_id, candidate, artifact, source=source)
    if result.success:
        log.info(
            "Persisted policy %s (update=%s, version=%s)",
            result.policy_id,
            result.is_update,
            result.version,
        )
    else:
        log.warning("Persist failed for owner %s: %s", owner_id, "; ".join(result.errors))
    return result


def list_policies(
    owner_id: str,
    *,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
) -> list[PolicyRecord]:
    return PolicyLoader(_unit_of_work_factory(unit_of_work_factory)).list_by_owner(owner_id)


def get_policy(
    policy_id: UUID,
    *,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
) -> PolicyRecord:
    record = PolicyLoader(_unit_of_work_factory(unit_of_work_factory)).get(policy_id)
    if record is None:
        raise PolicyNotFoundError(f"policy {policy_id} does not exist")
    return record


def list_revisions(
    policy_id: UUID,
    *,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
) -> list[PolicyRevision]:
    return PolicyLoader(_unit_of_work_factory(unit_of_work_factory)).revisions(policy_id)


def confirm_field(
    policy_id: UUID,
    field_name: str,
    *,
    value: object = UNSET,
    confirmed_by: str | None = None,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
) -> FieldLock:
    service = FieldConfirmationService(
        unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory),
        key_locks=_KEY_LOCKS,
    )
    return service.confirm_field(policy_id, field_name, value=value, confirmed_by=confirmed_by)


def unconfirm_field(
    policy_id: UUID,
    field_name: str,
    *,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
) -> bool:
    service = FieldConfirmationService(
        unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory),
        key_locks=_KEY_LOCKS,
    )
    return service.unconfirm_field(policy_id, field_name)


def confirmed_fields(
    policy_id: UUID,
    *,
    unit_of_work_factory: PolicyUnitOfWorkFactory | None = None,
) -> frozenset[str]:
    """Names of the fields of ``policy_id`` locked against ingestion."""

    service = FieldConfirmationService(
        unit_of_work_factory=_unit_of_work_factory(unit_of_work_factory)
    )
    return service.confirmed_fields(policy_id).field_names
