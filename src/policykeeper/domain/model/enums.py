"""Domain enums (pure, dependency-light)."""

from __future__ import annotations

from enum import StrEnum


class PolicyStatus(StrEnum):
    """Lifecycle status derived from the vigency dates."""

    VIGENTE = "vigente"
    VENCENDO = "vencendo"
    VENCIDA = "vencida"
    NAO_RENOVADA = "nao_renovada"


class InstallmentStatus(StrEnum):
    UPCOMING = "upcoming"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class DocumentType(StrEnum):
    CPF = "CPF"
    CNPJ = "CNPJ"


class WriteSource(StrEnum):
    """Who last touched a policy record."""

    EXTRACTION = "extraction"
    MANUAL = "manual"
    CONFIRMATION = "confirmation"
