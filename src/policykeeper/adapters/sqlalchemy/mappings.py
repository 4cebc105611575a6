"""SQLAlchemy mapping metadata for the policy aggregate."""

from __future__ import annotations

import json
import uuid
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import StrEnum
from functools import cache
from typing import Any, Final, cast

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Dialect,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    TypeDecorator,
    UniqueConstraint,
    Uuid,
    orm,
)
from sqlalchemy.orm import configure_mappers, relationship

from policykeeper.domain.model import (
    CoverageItem,
    FieldLock,
    InstallmentItem,
    InstallmentStatus,
    PolicyRecord,
    PolicyRevision,
    PolicyStatus,
    WriteSource,
)

UUIDColumnType = Uuid[uuid.UUID]

NATURAL_KEY_CONSTRAINT: Final[str] = "uq_policy_natural_key"
CENTS: Final[Decimal] = Decimal(100)


class UTCDateTime(TypeDecorator[datetime]):
    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone(UTC)

    def process_result_value(self, value: datetime | None, dialect: Dialect) -> datetime | None:
        _ = dialect
        if value is None:
            return None
        return value if value.tzinfo else value.replace(tzinfo=UTC)


class MoneyType(TypeDecorator[Decimal]):
    """Two-place ``Decimal`` amounts stored as integer cents."""

    impl = Integer
    cache_ok = True

    def process_bind_param(self, value: Decimal | None, dialect: Dialect) -> int | None:
        _ = dialect
        if value is None:
            return None
        cents = (Decimal(value) * CENTS).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        return int(cents)

    def process_result_value(self, value: int | None, dialect: Dialect) -> Decimal | None:
        _ = dialect
        if value is None:
            return None
        return (Decimal(value) / CENTS).quantize(Decimal("0.01"))


class FieldNamesType(TypeDecorator[tuple[str, ...]]):
    impl = String
    cache_ok = True

    def process_bind_param(self, value: tuple[str, ...] | None, dialect: Dialect) -> str | None:
        _ = dialect
        if value is None:
            return None
        return json.dumps(list(value))

    def process_result_value(self, value: str | None, dialect: Dialect) -> tuple[str, ...]:
        _ = dialect
        if value is None:
            return ()
        loaded = json.loads(value)
        if not isinstance(loaded, list):
            return ()
        items = cast(list[Any], loaded)
        return tuple(item for item in items if isinstance(item, str))


def _value_enum(enum_cls: type[StrEnum]) -> Enum:
    return Enum(
        enum_cls,
        native_enum=False,
        values_callable=lambda members: [member.value for member in members],
    )


mapper_registry = orm.registry()
mapper_registry.metadata.naming_convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_label)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_label)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

# Tables ----------------------------------------------------------------------

policy_table = Table(
    "policy",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column("owner_id", String, nullable=False),
    Column("insurer", String, nullable=False),
    Column("policy_number", String, nullable=False),
    Column("insured_name", String, nullable=True),
    Column("document_id", String, nullable=True),
    Column("document_type", String(4), nullable=True),
    Column("policy_type", String, nullable=True),
    Column("broker", String, nullable=True),
    Column("state", String(2), nullable=True),
    Column("payment_method", String, nullable=True),
    Column("phone", String, nullable=True),
    Column("email", String, nullable=True),
    Column("start_date", Date, nullable=True),
    Column("end_date", Date, nullable=True),
    Column("premium", MoneyType(), nullable=True),
    Column("monthly_amount", MoneyType(), nullable=True),
    Column("deductible", MoneyType(), nullable=True),
    Column("installment_count", Integer, nullable=True),
    Column("vehicle_brand", String, nullable=True),
    Column("vehicle_model", String, nullable=True),
    Column("vehicle_plate", String, nullable=True),
    Column("vehicle_year", Integer, nullable=True),
    Column("vehicle_value", MoneyType(), nullable=True),
    Column("status", _value_enum(PolicyStatus), nullable=False),
    Column("artifact_path", String, nullable=True),
    Column("artifact_hash", String(64), nullable=True),
    Column("version", Integer, nullable=False, default=1),
    Column("created_by_extraction", Boolean, nullable=False, default=True),
    Column("last_touched_by", _value_enum(WriteSource), nullable=False),
    Column("extraction_timestamp", UTCDateTime(), nullable=True),
    Column("created_at", UTCDateTime(), nullable=True),
    Column("updated_at", UTCDateTime(), nullable=True),
    UniqueConstraint("owner_id", "insurer", "policy_number", name=NATURAL_KEY_CONSTRAINT),
    Index("ix_policy_owner_created", "owner_id", "created_at"),
)

coverage_table = Table(
    "coverage",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "policy_id",
        UUIDColumnType,
        ForeignKey("policy.id", ondelete="CASCADE"),
        key="_policy_id",
        nullable=False,
    ),
    Column("description", String, nullable=False),
    Column("limit_amount", MoneyType(), nullable=True),
    Column("position", Integer, nullable=False, default=0),
)

installment_table = Table(
    "installment",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "policy_id",
        UUIDColumnType,
        ForeignKey("policy.id", ondelete="CASCADE"),
        key="_policy_id",
        nullable=False,
    ),
    Column("number", Integer, nullable=False),
    Column("amount", MoneyType(), nullable=False),
    Column("due_date", Date, nullable=False),
    Column("status", _value_enum(InstallmentStatus), nullable=False),
    UniqueConstraint("_policy_id", "number", name="uq_installment_policy_number"),
)

field_lock_table = Table(
    "policy_field_lock",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "policy_id",
        UUIDColumnType,
        ForeignKey("policy.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("field_name", String, nullable=False),
    Column("confirmed_at", UTCDateTime(), nullable=False),
    Column("confirmed_by", String, nullable=True),
    UniqueConstraint("policy_id", "field_name", name="uq_policy_field_lock_policy_field"),
)

policy_revision_table = Table(
    "policy_revision",
    mapper_registry.metadata,
    Column("id", UUIDColumnType, primary_key=True, default=uuid.uuid4),
    Column(
        "policy_id",
        UUIDColumnType,
        ForeignKey("policy.id", ondelete="CASCADE"),
        nullable=False,
    ),
    Column("version", Integer, nullable=False),
    Column("source", _value_enum(WriteSource), nullable=False),
    Column("artifact_hash", String(64), nullable=True),
    Column("changed_fields", FieldNamesType(), nullable=False, default=tuple),
    Column("recorded_at", UTCDateTime(), nullable=False),
    Index("ix_policy_revision_policy_version", "policy_id", "version"),
)


@cache
def start_mappers() -> orm.registry:
    """Configure imperative mappings between domain classes and tables."""

    mapper_registry.map_imperatively(
        PolicyRecord,
        policy_table,
        properties={
            "_coverages": relationship(
                CoverageItem,
                cascade="all, delete-orphan",
                order_by=coverage_table.c.position,
                lazy="selectin",
                passive_deletes=True,
            ),
            "_installments": relationship(
                InstallmentItem,
                cascade="all, delete-orphan",
                order_by=installment_table.c.number,
                lazy="selectin",
                passive_deletes=True,
            ),
        },
        # the domain bumps ``version``; a stale row makes the UPDATE match nothing
        version_id_col=policy_table.c.version,
        version_id_generator=False,
    )

    mapper_registry.map_imperatively(CoverageItem, coverage_table)
    mapper_registry.map_imperatively(InstallmentItem, installment_table)
    mapper_registry.map_imperatively(FieldLock, field_lock_table)
    mapper_registry.map_imperatively(PolicyRevision, policy_revision_table)

    configure_mappers()
    return mapper_registry
