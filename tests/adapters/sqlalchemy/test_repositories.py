from __future__ import annotations

from datetime import UTC, date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import text

from policykeeper.adapters.sqlalchemy.repositories import (
    SqlAlchemyFieldLockRepository,
    SqlAlchemyPolicyRepository,
    SqlAlchemyPolicyRevisionRepository,
)
from policykeeper.domain.model import (
    CoverageItem,
    FieldLock,
    InstallmentItem,
    PolicyRecord,
    PolicyRevision,
    WriteSource,
)
from tests.helpers.policies import OWNER

if TYPE_CHECKING:
    from sqlalchemy.orm import Session


def _stored_policy(session: Session) -> PolicyRecord:
    record = PolicyRecord(
        owner_id=OWNER,
        insurer="PORTO SEGURO",
        policy_number="AP-1",
        premium=Decimal("4200.00"),
        start_date=date(2024, 1, 10),
    )
    repository = SqlAlchemyPolicyRepository(session)
    repository.add(record)
    repository.replace_coverages(
        record,
        [CoverageItem(description="Colisao"), CoverageItem(description="Roubo")],
    )
    repository.replace_installments(
        record,
        [
            InstallmentItem(number=1, amount=Decimal("350.00"), due_date=date(2024, 1, 10)),
            InstallmentItem(number=2, amount=Decimal("350.00"), due_date=date(2024, 2, 10)),
        ],
    )
    session.commit()
    return record


def test_money_is_stored_as_integer_cents(sqlite_session: Session) -> None:
    record = _stored_policy(sqlite_session)

    raw = sqlite_session.execute(
        text("SELECT premium FROM policy WHERE policy_number = 'AP-1'")
    ).scalar_one()

    assert raw == 420000
    sqlite_session.expire_all()
    assert SqlAlchemyPolicyRepository(sqlite_session).get(record.id).premium == Decimal("4200.00")


def test_replace_coverages_keeps_positions(sqlite_session: Session) -> None:
    record = _stored_policy(sqlite_session)
    repository = SqlAlchemyPolicyRepository(sqlite_session)

    repository.replace_coverages(
        record,
        [CoverageItem(description="Vidros"), CoverageItem(description="Terceiros")],
    )
    sqlite_session.commit()

    loaded = repository.get(record.id)
    assert loaded is not None
    assert [(item.position, item.description) for item in loaded.coverages] == [
        (0, "Vidros"),
        (1, "Terceiros"),
    ]
    count = sqlite_session.execute(text("SELECT COUNT(*) FROM coverage")).scalar_one()
    assert count == 2


def test_replace_installments_reuses_numbers(sqlite_session: Session) -> None:
    record = _stored_policy(sqlite_session)
    repository = SqlAlchemyPolicyRepository(sqlite_session)

    repository.replace_installments(
        record,
        [InstallmentItem(number=1, amount=Decimal("4200.00"), due_date=date(2024, 1, 10))],
    )
    sqlite_session.commit()

    loaded = repository.get(record.id)
    assert loaded is not None
    assert [(item.number, item.amount) for item in loaded.installments] == [
        (1, Decimal("4200.00"))
    ]


def test_find_by_key_matches_exact_key(sqlite_session: Session) -> None:
    record = _stored_policy(sqlite_session)
    repository = SqlAlchemyPolicyRepository(sqlite_session)

    found = repository.find_by_key(owner_id=OWNER, insurer="PORTO SEGURO", policy_number="AP-1")
    missing = repository.find_by_key(owner_id=OWNER, insurer="PORTO SEGURO", policy_number="AP-2")

    assert [item.id for item in found] == [record.id]
    assert missing == []


def test_field_lock_repository(sqlite_session: Session) -> None:
    record = _stored_policy(sqlite_session)
    repository = SqlAlchemyFieldLockRepository(sqlite_session)
    repository.add(FieldLock(policy_id=record.id, field_name="premium"))
    repository.add(FieldLock(policy_id=record.id, field_name="end_date"))
    sqlite_session.commit()

    locks = repository.for_policy(record.id)
    assert [lock.field_name for lock in locks] == ["end_date", "premium"]

    repository.remove(locks[0])
    sqlite_session.commit()
    assert [lock.field_name for lock in repository.for_policy(record.id)] == ["premium"]


def test_revisions_are_ordered_by_version(sqlite_session: Session) -> None:
    record = _stored_policy(sqlite_session)
    repository = SqlAlchemyPolicyRevisionRepository(sqlite_session)
    recorded_at = datetime(2024, 6, 15, tzinfo=UTC)
    repository.add(
        PolicyRevision(
            policy_id=record.id,
            version=2,
            source=WriteSource.CONFIRMATION,
            changed_fields=("premium",),
            recorded_at=recorded_at,
        )
    )
    repository.add(
        PolicyRevision(
            policy_id=record.id,
            version=1,
            source=WriteSource.EXTRACTION,
            changed_fields=("end_date", "premium"),
            recorded_at=recorded_at,
        )
    )
    sqlite_session.commit()
    sqlite_session.expire_all()

    revisions = repository.for_policy(record.id)

    assert [revision.version for revision in revisions] == [1, 2]
    assert revisions[0].changed_fields == ("end_date", "premium")
    assert revisions[1].source is WriteSource.CONFIRMATION
    assert revisions[1].recorded_at == recorded_at
