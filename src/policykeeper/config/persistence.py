"""Tuning values for the policy persistence engine."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from .env import bool_env_var, decimal_env_var, float_env_var, int_env_var

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_RETRY_BACKOFF_SECONDS = 0.2
DEFAULT_INSTALLMENT_COUNT = 12
DEFAULT_COHERENCE_TOLERANCE = Decimal("0.15")


@dataclass(frozen=True, slots=True)
class PersistenceConfig:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    retry_backoff_seconds: float = DEFAULT_RETRY_BACKOFF_SECONDS
    default_installment_count: int = DEFAULT_INSTALLMENT_COUNT
    coherence_tolerance: Decimal = DEFAULT_COHERENCE_TOLERANCE
    vehicle_valuation: bool = False


def get_persistence_config() -> PersistenceConfig:
    return PersistenceConfig(
        max_attempts=int_env_var("POLICYKEEPER_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS, minimum=1),
        retry_backoff_seconds=float_env_var(
            "POLICYKEEPER_RETRY_BACKOFF_SECONDS", DEFAULT_RETRY_BACKOFF_SECONDS
        ),
        default_installment_count=int_env_var(
            "POLICYKEEPER_DEFAULT_INSTALLMENTS", DEFAULT_INSTALLMENT_COUNT, minimum=1
        ),
        coherence_tolerance=decimal_env_var(
            "POLICYKEEPER_COHERENCE_TOLERANCE", DEFAULT_COHERENCE_TOLERANCE
        ),
        vehicle_valuation=bool_env_var("POLICYKEEPER_VEHICLE_VALUATION", default=False),
    )
