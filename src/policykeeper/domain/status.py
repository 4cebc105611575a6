"""Lifecycle status derived from the vigency dates.

The rules are evaluated top to bottom and the first match wins. The
prior-calendar-year rule runs before any day-count threshold.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Final

from policykeeper.domain.model import PolicyStatus

EXPIRY_WINDOW_DAYS: Final[int] = 30
GRACE_PERIOD_DAYS: Final[int] = 30


def derive_status(
    start_date: date | None,
    end_date: date | None,
    now: datetime | date,
) -> PolicyStatus:
    """Map ``(start_date, end_date, now)`` to a ``PolicyStatus``.

    A record without an end date cannot expire and is reported as ``vigente``.
    """

    today = now.date() if isinstance(now, datetime) else now
    if end_date is None:
        return PolicyStatus.VIGENTE

    diff_days = (end_date - today).days

    if end_date.year < today.year:
        return PolicyStatus.NAO_RENOVADA
    if start_date is not None and start_date.year < today.year and diff_days < 0:
        return PolicyStatus.NAO_RENOVADA
    if diff_days < -GRACE_PERIOD_DAYS:
        return PolicyStatus.NAO_RENOVADA
    if diff_days < 0:
        return PolicyStatus.VENCIDA
    if diff_days <= EXPIRY_WINDOW_DAYS:
        return PolicyStatus.VENCENDO
    return PolicyStatus.VIGENTE


__all__ = ["EXPIRY_WINDOW_DAYS", "GRACE_PERIOD_DAYS", "derive_status"]
