"""The policy aggregate: a policy record and the sub-entities it owns."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final

from policykeeper.domain.model.entity import Entity
from policykeeper.domain.model.enums import InstallmentStatus, PolicyStatus, WriteSource

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping
    from datetime import date, datetime
    from decimal import Decimal

# Fields automated ingestion may write and humans may confirm. The natural key
# (owner_id, insurer, policy_number) is immutable once a record exists.
MUTABLE_FIELDS: Final[tuple[str, ...]] = (
    "insured_name",
    "document_id",
    "document_type",
    "policy_type",
    "broker",
    "state",
    "payment_method",
    "phone",
    "email",
    "start_date",
    "end_date",
    "premium",
    "monthly_amount",
    "deductible",
    "installment_count",
    "vehicle_brand",
    "vehicle_model",
    "vehicle_plate",
    "vehicle_year",
    "vehicle_value",
)


@dataclass(eq=False, kw_only=True)
class CoverageItem(Entity):
    description: str
    limit_amount: Decimal | None = None
    position: int = 0


@dataclass(eq=False, kw_only=True)
class InstallmentItem(Entity):
    number: int
    amount: Decimal
    due_date: date
    status: InstallmentStatus = InstallmentStatus.UPCOMING


@dataclass(eq=False, kw_only=True)
class PolicyRecord(Entity):
    """A policy as stored in the system of record.

    Coverages and installments are owned by the record and only ever replaced as
    whole collections.
    """

    owner_id: str
    insurer: str
    policy_number: str

    insured_name: str | None = None
    document_id: str | None = None
    document_type: str | None = None
    policy_type: str | None = None
    broker: str | None = None
    state: str | None = None
    payment_method: str | None = None
    phone: str | None = None
    email: str | None = None

    start_date: date | None = None
    end_date: date | None = None

    premium: Decimal | None = None
    monthly_amount: Decimal | None = None
    deductible: Decimal | None = None
    installment_count: int | None = None

    vehicle_brand: str | None = None
    vehicle_model: str | None = None
    vehicle_plate: str | None = None
    vehicle_year: int | None = None
    vehicle_value: Decimal | None = None

    status: PolicyStatus = PolicyStatus.VIGENTE

    artifact_path: str | None = None
    artifact_hash: str | None = None

    version: int = 1
    created_by_extraction: bool = True
    last_touched_by: WriteSource = WriteSource.EXTRACTION
    extraction_timestamp: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    _coverages: list[CoverageItem] = field(default_factory=list["CoverageItem"], repr=False)
    _installments: list[InstallmentItem] = field(
        default_factory=list["InstallmentItem"], repr=False
    )

    @property
    def coverages(self) -> tuple[CoverageItem, ...]:
        return tuple(self._coverages)

    @property
    def installments(self) -> tuple[InstallmentItem, ...]:
        return tuple(self._installments)

    def field_values(self) -> dict[str, object]:
        return {name: getattr(self, name) for name in MUTABLE_FIELDS}

    def apply_fields(self, values: Mapping[str, object]) -> None:
        for name, value in values.items():
            if name not in MUTABLE_FIELDS:
                raise KeyError(f"{name} is not a mutable policy field")
            setattr(self, name, value)

    def clear_coverages(self) -> None:
        self._coverages.clear()

    def clear_installments(self) -> None:
        self._installments.clear()

    def add_coverages(self, items: Iterable[CoverageItem]) -> None:
        for position, item in enumerate(items, start=len(self._coverages)):
            item.position = position
            self._coverages.append(item)

    def add_installments(self, items: Iterable[InstallmentItem]) -> None:
        self._installments.extend(items)


def is_mutable_field(name: str) -> bool:
    return name in MUTABLE_FIELDS
