"""FIPE response schemas (veiculos.fipe.org.br public API)."""

from __future__ import annotations

import logging
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

log = logging.getLogger(__name__)


class FipeBaseModel(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)
    _logged_extra_keys: ClassVar[set[str]] = set()

    def model_post_init(self, _context: object, /) -> None:
        extras = self.__pydantic_extra__
        if not extras:
            return
        new_keys = set(extras).difference(self._logged_extra_keys)
        if not new_keys:
            return
        self._logged_extra_keys.update(new_keys)
        log.debug(
            "FIPE %s: unmodeled keys: %s",
            type(self).__name__,
            ", ".join(sorted(new_keys)),
        )


class FipeReferenceTable(FipeBaseModel):
    code: int = Field(alias="Codigo")
    month: str = Field(alias="Mes")


class FipeBrand(FipeBaseModel):
    label: str = Field(alias="Label")
    value: str = Field(alias="Value")


class FipeModel(FipeBaseModel):
    label: str = Field(alias="Label")
    value: int = Field(alias="Value")


class FipeModelsResponse(FipeBaseModel):
    models: list[FipeModel] = Field(default_factory=list, alias="Modelos")


class FipeModelYear(FipeBaseModel):
    # "2020-1" = model year 2020, fuel code 1
    label: str = Field(alias="Label")
    value: str = Field(alias="Value")

    @property
    def year(self) -> int | None:
        head, _, _ = self.value.partition("-")
        return int(head) if head.isdigit() else None

    @property
    def fuel_code(self) -> int | None:
        _, _, tail = self.value.partition("-")
        return int(tail) if tail.isdigit() else None


class FipeValuation(FipeBaseModel):
    price: str = Field(alias="Valor")
    brand: str | None = Field(default=None, alias="Marca")
    model: str | None = Field(default=None, alias="Modelo")
    model_year: int | None = Field(default=None, alias="AnoModelo")
    fuel: str | None = Field(default=None, alias="Combustivel")
    fipe_code: str | None = Field(default=None, alias="CodigoFipe")
    reference_month: str | None = Field(default=None, alias="MesReferencia")


class FipeErrorPayload(FipeBaseModel):
    code: str | None = Field(default=None, alias="codigo")
    error: str = Field(alias="erro")


reference_tables_adapter = TypeAdapter(list[FipeReferenceTable])
brands_adapter = TypeAdapter(list[FipeBrand])
model_years_adapter = TypeAdapter(list[FipeModelYear])
