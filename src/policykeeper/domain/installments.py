"""Installment schedule synthesis."""

from __future__ import annotations

import calendar
from datetime import date
from typing import TYPE_CHECKING

from policykeeper.domain.model import InstallmentItem, InstallmentStatus

if TYPE_CHECKING:
    from decimal import Decimal


def add_months(start: date, months: int) -> date:
    """Shift ``start`` by ``months`` calendar months, clamping to the month end."""

    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(start.day, last_day))


def synthesize_installments(
    monthly_amount: Decimal,
    start_date: date,
    count: int,
) -> list[InstallmentItem]:
    """Build ``count`` upcoming installments of ``monthly_amount``.

    The k-th installment is due ``k - 1`` months after ``start_date``.
    """

    if count < 1:
        raise ValueError("installment count must be positive")
    return [
        InstallmentItem(
            number=number,
            amount=monthly_amount,
            due_date=add_months(start_date, number - 1),
            status=InstallmentStatus.UPCOMING,
        )
        for number in range(1, count + 1)
    ]


__all__ = ["add_months", "synthesize_installments"]
