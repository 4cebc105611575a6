"""FIPE vehicle valuation client.

Implements ``VehicleValuationLookup`` on top of the public FIPE endpoints:
latest reference table, brand, model, model-year/fuel, value. Every call is a
JSON ``POST`` routed through ``ResilientClient``.
"""

from __future__ import annotations

import asyncio
import re
import unicodedata
from decimal import Decimal, InvalidOperation
from logging import getLogger
from typing import TYPE_CHECKING, Final

import httpx
from pydantic import ValidationError as PydanticValidationError

from policykeeper.adapters.http_resilience import ResilientClient
from policykeeper.domain.ports import ValuationError

from .schema import (
    FipeBrand,
    FipeErrorPayload,
    FipeModel,
    FipeModelsResponse,
    FipeModelYear,
    FipeValuation,
    brands_adapter,
    model_years_adapter,
    reference_tables_adapter,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from policykeeper.config.fipe import FipeConfig
    from policykeeper.config.http_resilience import ResilienceConfig

log = getLogger(__name__)

ALL_FUEL_CODES: Final[tuple[int, ...]] = (1, 2, 3, 4)
_PRICE_NOISE = re.compile(r"[^0-9,]")
_WHITESPACE = re.compile(r"\s+")


class FipeAPIError(ValuationError):
    """Raised when the FIPE API fails or answers with an unexpected payload."""


def fold_label(value: str) -> str:
    """Lowercase, strip accents and collapse whitespace."""

    decomposed = unicodedata.normalize("NFD", value.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _WHITESPACE.sub(" ", stripped).strip()


def fuel_codes(fuel: str | None) -> tuple[int, ...]:
    """FIPE fuel codes to try, in order, for a free-text fuel description."""

    if not fuel:
        return ALL_FUEL_CODES
    folded = fold_label(fuel)
    if "gasol" in folded:
        return (1,)
    if "alcool" in folded or "etanol" in folded:
        return (2,)
    if "diesel" in folded:
        return (3, 4)
    if "flex" in folded:
        return (3, 1, 2)
    return ALL_FUEL_CODES


def parse_price(label: str) -> Decimal | None:
    """Parse ``"R$ 45.678,90"`` into ``Decimal("45678.90")``."""

    digits = _PRICE_NOISE.sub("", label).replace(",", ".")
    if not digits:
        return None
    try:
        return Decimal(digits).quantize(Decimal("0.01"))
    except InvalidOperation:
        return None


def match_brand(brands: list[FipeBrand], brand: str) -> FipeBrand | None:
    wanted = fold_label(brand)
    return next((item for item in brands if wanted in fold_label(item.label)), None)


def match_model(models: list[FipeModel], model: str) -> FipeModel | None:
    """Longest label containing the requested model name."""

    wanted = fold_label(model)
    candidates = [item for item in models if wanted in fold_label(item.label)]
    if not candidates:
        return None
    return max(candidates, key=lambda item: len(item.label))


class FipeValuationClient:
    """Sync facade over the async FIPE endpoints."""

    def __init__(
        self,
        *,
        config: FipeConfig,
        client_factory: Callable[[ResilienceConfig], ResilientClient] | None = None,
    ) -> None:
        self._config = config
        self._resilience = config.resilience
        self._client_factory = client_factory or ResilientClient

    def lookup(
        self,
        *,
        brand: str,
        model: str,
        year: int,
        fuel: str | None = None,
    ) -> Decimal | None:
        """Return the current FIPE value, or ``None`` when FIPE has no match."""

        try:
            return asyncio.run(
                self._lookup_async(brand=brand, model=model, year=year, fuel=fuel)
            )
        except PydanticValidationError as exc:
            raise FipeAPIError(f"Unexpected FIPE payload: {exc}") from exc

    async def _lookup_async(
        self,
        *,
        brand: str,
        model: str,
        year: int,
        fuel: str | None,
    ) -> Decimal | None:
        if self._resilience.base_url is None:
            raise FipeAPIError("Missing FIPE base_url in resilience configuration")

        async with self._client_factory(self._resilience) as client:
            reference = await self._latest_reference(client)
            base = {
                "codigoTabelaReferencia": reference,
                "codigoTipoVeiculo": self._config.vehicle_type,
            }

            brands = brands_adapter.validate_python(
                await self._post(client, "ConsultarMarcas", base)
            )
            brand_match = match_brand(brands, brand)
            if brand_match is None:
                log.info("FIPE: brand %r not found", brand)
                return None
            with_brand = {**base, "codigoMarca": int(brand_match.value)}

            models = FipeModelsResponse.model_validate(
                await self._post(client, "ConsultarModelos", with_brand)
            ).models
            model_match = match_model(models, model)
            if model_match is None:
                log.info("FIPE: model %r of %s not found", model, brand_match.label)
                return None
            with_model = {**with_brand, "codigoModelo": model_match.value}

            years = model_years_adapter.validate_python(
                await self._post(client, "ConsultarAnoModelo", with_model)
            )
            for code in fuel_codes(fuel):
                model_year = _find_model_year(years, year, code)
                if model_year is None:
                    continue
                payload = await self._post(
                    client,
                    "ConsultarValorComTodosParametros",
                    {
                        **with_model,
                        "ano": model_year.value,
                        "codigoTipoCombustivel": code,
                        "anoModelo": year,
                        "tipoConsulta": "tradicional",
                    },
                    allow_not_found=True,
                )
                if payload is None:
                    continue
                valuation = FipeValuation.model_validate(payload)
                price = parse_price(valuation.price)
                if price is not None:
                    log.info("FIPE: %s %s %s (fuel %s) = %s", brand, model, year, code, price)
                    return price

        log.info("FIPE: no year/fuel combination for %s %s %s", brand, model, year)
        return None

    async def _latest_reference(self, client: ResilientClient) -> int:
        tables = reference_tables_adapter.validate_python(
            await self._post(client, "ConsultarTabelaDeReferencia", {})
        )
        if not tables:
            raise FipeAPIError("FIPE returned no reference tables")
        return max(table.code for table in tables)

    async def _post(
        self,
        client: ResilientClient,
        path: str,
        body: Mapping[str, object],
        *,
        allow_not_found: bool = False,
    ) -> object:
        try:
            response = await client.post(path, json=dict(body))
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise FipeAPIError(f"FIPE {path} failed: {exc}") from exc
        except ValueError as exc:
            raise FipeAPIError(f"FIPE {path} returned invalid JSON") from exc

        if isinstance(payload, dict) and "erro" in payload:
            if allow_not_found:
                return None
            error = FipeErrorPayload.model_validate(payload)
            raise FipeAPIError(f"FIPE {path} error: {error.error}")
        return payload


def _find_model_year(
    years: list[FipeModelYear], year: int, fuel_code: int
) -> FipeModelYear | None:
    return next(
        (item for item in years if item.year == year and item.fuel_code == fuel_code),
        None,
    )


__all__ = [
    "FipeAPIError",
    "FipeValuationClient",
    "fold_label",
    "fuel_codes",
    "match_brand",
    "match_model",
    "parse_price",
]
