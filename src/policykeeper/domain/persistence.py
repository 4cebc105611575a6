"""Persistence coordinator: the transactional write path for candidate policies.

One call to ``PolicyPersistenceService.persist`` runs, in order:

1. owner check and normalization (no storage access yet)
2. optional vehicle valuation lookup and artifact hashing
3. per-key lock, unit of work, natural-key resolution
4. create or guarded update, status derivation, sub-entity replacement
5. artifact storage, revision row, commit

Every failure of the engine comes back as a ``PersistResult``; the unit of work
rolls back whatever the failed attempt wrote.
"""

from __future__ import annotations

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, cast

from policykeeper.domain.clock import utcnow
from policykeeper.domain.errors import (
    ArtifactError,
    FieldIssue,
    IssueCode,
    KeyConflictError,
    PersistenceError,
    StorageError,
    ValidationError,
)
from policykeeper.domain.guard import resolve_write_set
from policykeeper.domain.installments import synthesize_installments
from policykeeper.domain.model import (
    CoverageItem,
    InstallmentItem,
    LockRegistry,
    PolicyRecord,
    PolicyRevision,
    PolicyStatus,
    WriteSource,
)
from policykeeper.domain.normalization import (
    DEFAULT_COHERENCE_TOLERANCE,
    NormalizedPolicy,
    check_date_order,
    normalize_candidate,
)
from policykeeper.domain.ports import ValuationError, sha256_digest
from policykeeper.domain.resolve import NaturalKey, find_by_key
from policykeeper.domain.status import derive_status

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping
    from datetime import date, datetime
    from decimal import Decimal
    from uuid import UUID

    from policykeeper.domain.clock import Clock
    from policykeeper.domain.ports import (
        ArtifactStore,
        PolicyRepositories,
        PolicyUnitOfWorkFactory,
        VehicleValuationLookup,
    )

log = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.2
DEFAULT_INSTALLMENT_COUNT = 12


@dataclass(slots=True)
class PersistResult:
    """Outcome of one ``persist`` call."""

    success: bool
    policy_id: UUID | None = None
    is_update: bool = False
    version: int | None = None
    status: PolicyStatus | None = None
    errors: list[str] = field(default_factory=list[str])
    warnings: list[str] = field(default_factory=list[str])

    @classmethod
    def failure(cls, errors: list[str], warnings: list[str] | None = None) -> PersistResult:
        return cls(success=False, errors=errors, warnings=list(warnings or ()))


@dataclass(slots=True)
class _WriteOutcome:
    policy_id: UUID
    is_update: bool
    version: int
    status: PolicyStatus
    notes: list[str] = field(default_factory=list[str])


class KeyLocks:
    """In-process registry of one ``threading.Lock`` per natural key.

    Entries are reference counted and dropped once no writer holds or waits on
    them.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[NaturalKey, tuple[threading.Lock, int]] = {}

    @contextmanager
    def hold(self, key: NaturalKey) -> Iterator[None]:
        with self._guard:
            lock, holders = self._locks.get(key, (threading.Lock(), 0))
            self._locks[key] = (lock, holders + 1)
        try:
            with lock:
                yield
        finally:
            with self._guard:
                lock, holders = self._locks[key]
                if holders <= 1:
                    del self._locks[key]
                else:
                    self._locks[key] = (lock, holders - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


@dataclass(slots=True, kw_only=True)
class PolicyPersistenceService:
    unit_of_work_factory: PolicyUnitOfWorkFactory
    artifact_store: ArtifactStore | None = None
    clock: Clock = utcnow
    valuation: VehicleValuationLookup | None = None
    key_locks: KeyLocks = field(default_factory=KeyLocks)
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    default_installment_count: int = DEFAULT_INSTALLMENT_COUNT
    coherence_tolerance: Decimal = DEFAULT_COHERENCE_TOLERANCE
    sleep: Callable[[float], None] = time.sleep

    def persist(
        self,
        owner_id: str,
        candidate: Mapping[str, object],
        artifact: bytes | None = None,
        *,
        source: WriteSource = WriteSource.EXTRACTION,
    ) -> PersistResult:
        """Create or update the policy identified by ``candidate``'s natural key."""

        now = self.clock()
        issues: list[FieldIssue] = []
        owner = owner_id.strip() if isinstance(owner_id, str) else ""
        if not owner:
            issues.append(FieldIssue("owner_id", IssueCode.INVALID_OWNER, "owner id is required"))
        normalized: NormalizedPolicy | None = None
        try:
            normalized = normalize_candidate(
                candidate, today=now.date(), tolerance=self.coherence_tolerance
            )
        except ValidationError as exc:
            issues.extend(exc.issues)
        if issues or normalized is None:
            error = ValidationError(issues)
            log.info("Rejected candidate for owner %r: %s", owner_id, error)
            return PersistResult.failure(error.messages())

        warnings = list(normalized.warnings)
        normalized = self._with_valuation(normalized, warnings)
        digest = sha256_digest(artifact) if artifact is not None else None
        key = NaturalKey.of(owner, normalized.insurer, normalized.policy_number)

        try:
            with self.key_locks.hold(key):
                outcome = self._write_with_retry(
                    key, normalized, artifact=artifact, digest=digest, source=source, now=now
                )
        except ValidationError as exc:
            log.info("Rejected write for %s: %s", key, exc)
            return PersistResult.failure(exc.messages(), warnings)
        except PersistenceError as exc:
            log.warning("Failed to persist %s: %s", key, exc)
            return PersistResult.failure([str(exc)], warnings)
        except Exception as exc:
            log.exception("Unexpected failure persisting %s", key)
            return PersistResult.failure([f"{type(exc).__name__}: {exc}"], warnings)

        warnings.extend(outcome.notes)
        return PersistResult(
            success=True,
            policy_id=outcome.policy_id,
            is_update=outcome.is_update,
            version=outcome.version,
            status=outcome.status,
            warnings=warnings,
        )

    # Write path ------------------------------------------------------------

    def _write_with_retry(
        self,
        key: NaturalKey,
        normalized: NormalizedPolicy,
        *,
        artifact: bytes | None,
        digest: str | None,
        source: WriteSource,
        now: datetime,
    ) -> _WriteOutcome:
        attempt = 0
        conflict_retried = False
        while True:
            attempt += 1
            try:
                return self._write_once(
                    key, normalized, artifact=artifact, digest=digest, source=source, now=now
                )
            except KeyConflictError:
                if conflict_retried:
                    raise
                conflict_retried = True
                log.info("Lost insert race for %s, retrying as update", key)
            except ArtifactError as exc:
                if self.artifact_store is None or attempt >= self.max_attempts:
                    raise
                self._back_off(key, attempt, exc)
            except StorageError as exc:
                if attempt >= self.max_attempts:
                    raise
                self._back_off(key, attempt, exc)

    def _back_off(self, key: NaturalKey, attempt: int, exc: PersistenceError) -> None:
        delay = self.retry_backoff_seconds * 2 ** (attempt - 1)
        log.warning(
            "%s for %s (attempt %d/%d): %s; retrying in %.2fs",
            type(exc).__name__,
            key,
            attempt,
            self.max_attempts,
            exc,
            delay,
        )
        self.sleep(delay)

    def _write_once(
        self,
        key: NaturalKey,
        normalized: NormalizedPolicy,
        *,
        artifact: bytes | None,
        digest: str | None,
        source: WriteSource,
        now: datetime,
    ) -> _WriteOutcome:
        with self.unit_of_work_factory() as uow:
            repositories = uow.repositories
            existing = find_by_key(
                repositories.policies,
                owner_id=key.owner_id,
                insurer=key.insurer,
                policy_number=key.policy_number,
            )
            if existing is None:
                outcome = self._create(
                    repositories,
                    key,
                    normalized,
                    artifact=artifact,
                    digest=digest,
                    source=source,
                    now=now,
                )
            else:
                outcome = self._update(
                    repositories,
                    existing,
                    normalized,
                    artifact=artifact,
                    digest=digest,
                    source=source,
                    now=now,
                )
            uow.commit()
        log.info(
            "%s policy %s (%s) at version %d",
            "Updated" if outcome.is_update else "Created",
            outcome.policy_id,
            key,
            outcome.version,
        )
        return outcome

    def _create(
        self,
        repositories: PolicyRepositories,
        key: NaturalKey,
        normalized: NormalizedPolicy,
        *,
        artifact: bytes | None,
        digest: str | None,
        source: WriteSource,
        now: datetime,
    ) -> _WriteOutcome:
        record = PolicyRecord(
            owner_id=key.owner_id,
            insurer=key.insurer,
            policy_number=key.policy_number,
            version=1,
            created_by_extraction=source is WriteSource.EXTRACTION,
            last_touched_by=source,
            extraction_timestamp=now if source is WriteSource.EXTRACTION else None,
            created_at=now,
            updated_at=now,
        )
        record.apply_fields(normalized.values)
        record.status = derive_status(record.start_date, record.end_date, now)
        repositories.policies.add(record)

        notes: list[str] = []
        repositories.policies.replace_coverages(record, _coverage_items(normalized))
        installments = self._installments_for(record, normalized, has_existing=False, notes=notes)
        if installments is not None:
            repositories.policies.replace_installments(record, installments)

        if artifact is not None and digest is not None:
            self._attach_artifact(record, artifact, digest)

        repositories.revisions.add(
            PolicyRevision(
                policy_id=record.id,
                version=record.version,
                source=source,
                artifact_hash=record.artifact_hash,
                changed_fields=tuple(sorted(normalized.values)),
                recorded_at=now,
            )
        )
        return _WriteOutcome(
            policy_id=record.id,
            is_update=False,
            version=record.version,
            status=record.status,
            notes=notes,
        )

    def _update(
        self,
        repositories: PolicyRepositories,
        record: PolicyRecord,
        normalized: NormalizedPolicy,
        *,
        artifact: bytes | None,
        digest: str | None,
        source: WriteSource,
        now: datetime,
    ) -> _WriteOutcome:
        locks = LockRegistry(repositories.field_locks.for_policy(record.id))
        write_set = resolve_write_set(record.field_values(), normalized.values, locks)

        date_issue = check_date_order(
            cast("date | None", write_set.values["start_date"]),
            cast("date | None", write_set.values["end_date"]),
        )
        if date_issue is not None:
            raise ValidationError([date_issue])

        notes = [
            f"{name}: confirmed value kept, incoming value ignored"
            for name in write_set.protected
        ]
        record.apply_fields({name: write_set.values[name] for name in write_set.changed})
        record.status = derive_status(record.start_date, record.end_date, now)
        record.version += 1
        record.last_touched_by = source
        if source is WriteSource.EXTRACTION:
            record.extraction_timestamp = now
        record.updated_at = now

        if normalized.coverages is not None:
            repositories.policies.replace_coverages(record, _coverage_items(normalized))
        installments = self._installments_for(
            record, normalized, has_existing=bool(record.installments), notes=notes
        )
        if installments is not None:
            repositories.policies.replace_installments(record, installments)

        if artifact is not None and digest is not None and digest != record.artifact_hash:
            self._attach_artifact(record, artifact, digest)

        repositories.revisions.add(
            PolicyRevision(
                policy_id=record.id,
                version=record.version,
                source=source,
                artifact_hash=record.artifact_hash,
                changed_fields=tuple(write_set.changed),
                recorded_at=now,
            )
        )
        return _WriteOutcome(
            policy_id=record.id,
            is_update=True,
            version=record.version,
            status=record.status,
            notes=notes,
        )

    # Helpers ---------------------------------------------------------------

    def _installments_for(
        self,
        record: PolicyRecord,
        normalized: NormalizedPolicy,
        *,
        has_existing: bool,
        notes: list[str],
    ) -> list[InstallmentItem] | None:
        """Return the replacement installment list, ``None`` to keep the stored one.

        A supplied list always wins. Without one, a schedule is synthesized from
        the monthly amount, but never over installments that are already stored.
        """

        if normalized.installments is not None:
            return [
                InstallmentItem(
                    number=item.number,
                    amount=item.amount,
                    due_date=item.due_date,
                    status=item.status,
                )
                for item in normalized.installments
            ]
        if has_existing:
            return None
        monthly = record.monthly_amount
        if monthly is None or monthly <= 0:
            return None
        if record.start_date is None:
            notes.append("installments: no start date, schedule not synthesized")
            return None
        count = record.installment_count or self.default_installment_count
        log.debug("Synthesizing %d installments of %s for %s", count, monthly, record.id)
        return synthesize_installments(monthly, record.start_date, count)

    def _attach_artifact(self, record: PolicyRecord, artifact: bytes, digest: str) -> None:
        if self.artifact_store is None:
            raise ArtifactError("no artifact store configured")
        record.artifact_path = self.artifact_store.store(artifact, digest=digest)
        record.artifact_hash = digest
        log.info("Stored artifact %s for policy %s", digest[:12], record.id)

    def _with_valuation(
        self,
        normalized: NormalizedPolicy,
        warnings: list[str],
    ) -> NormalizedPolicy:
        if self.valuation is None or normalized.get("vehicle_value") is not None:
            return normalized
        brand = normalized.get("vehicle_brand")
        model = normalized.get("vehicle_model")
        year = normalized.get("vehicle_year")
        if not isinstance(brand, str) or not isinstance(model, str) or not isinstance(year, int):
            return normalized
        try:
            value = self.valuation.lookup(brand=brand, model=model, year=year)
        except ValuationError as exc:
            log.warning("Vehicle valuation failed for %s %s %s: %s", brand, model, year, exc)
            warnings.append(f"vehicle_value: valuation lookup failed ({exc})")
            return normalized
        if value is None:
            return normalized
        return normalized.with_value("vehicle_value", value)


def _coverage_items(normalized: NormalizedPolicy) -> list[CoverageItem]:
    return [
        CoverageItem(description=item.description, limit_amount=item.limit_amount)
        for item in normalized.coverages or ()
    ]


__all__ = ["KeyLocks", "PersistResult", "PolicyPersistenceService"]
