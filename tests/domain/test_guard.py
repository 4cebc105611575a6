from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import uuid4

from policykeeper.domain.guard import resolve_write_set
from policykeeper.domain.model import FieldLock, LockRegistry

POLICY_ID = uuid4()


def _locks(*names: str) -> LockRegistry:
    return LockRegistry(FieldLock(policy_id=POLICY_ID, field_name=name) for name in names)


def test_unlocked_supplied_field_is_overwritten() -> None:
    write_set = resolve_write_set(
        {"premium": Decimal("100.00")}, {"premium": Decimal("120.00")}, _locks()
    )

    assert write_set.values["premium"] == Decimal("120.00")
    assert write_set.changed == ["premium"]
    assert write_set.has_changes


def test_locked_field_keeps_existing_value() -> None:
    write_set = resolve_write_set(
        {"premium": Decimal("100.00")}, {"premium": Decimal("999.00")}, _locks("premium")
    )

    assert write_set.values["premium"] == Decimal("100.00")
    assert write_set.protected == ["premium"]
    assert write_set.changed == []


def test_locked_field_with_identical_value_is_not_reported() -> None:
    write_set = resolve_write_set(
        {"premium": Decimal("100.00")}, {"premium": Decimal("100.00")}, _locks("premium")
    )

    assert write_set.protected == []


def test_absent_field_never_erases_known_value() -> None:
    write_set = resolve_write_set({"phone": "11 99999-0000"}, {}, _locks())

    assert write_set.values["phone"] == "11 99999-0000"
    assert write_set.retained == ["phone"]
    assert not write_set.has_changes


def test_none_is_treated_as_absent() -> None:
    write_set = resolve_write_set({"end_date": date(2025, 1, 1)}, {"end_date": None}, _locks())

    assert write_set.values["end_date"] == date(2025, 1, 1)


def test_locked_empty_field_stays_empty() -> None:
    write_set = resolve_write_set({}, {"email": "a@b.c"}, _locks("email"))

    assert write_set.values["email"] is None
    assert write_set.protected == ["email"]


def test_write_set_covers_every_mutable_field() -> None:
    write_set = resolve_write_set({}, {"broker": "ACME"}, _locks())

    assert write_set.values["broker"] == "ACME"
    assert write_set.values["premium"] is None
    assert "owner_id" not in write_set.values
