"""Port for external vehicle valuation lookups."""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from decimal import Decimal


class ValuationError(RuntimeError):
    """The valuation provider failed; callers treat the value as unknown."""


@runtime_checkable
class VehicleValuationLookup(Protocol):
    def lookup(
        self,
        *,
        brand: str,
        model: str,
        year: int,
        fuel: str | None = None,
    ) -> Decimal | None: ...
