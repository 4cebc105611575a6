"""FIPE vehicle valuation configuration values."""

from __future__ import annotations

import os
from dataclasses import dataclass

from .http_resilience import RateLimit, ResilienceConfig, RetryPolicy

DEFAULT_FIPE_BASE_URL = "https://veiculos.fipe.org.br/api/veiculos/"
FIPE_TIMEOUT_SECONDS = 10.0
# the public endpoint starts refusing requests below roughly 300ms spacing
FIPE_MIN_INTERVAL_SECONDS = 0.3


@dataclass(frozen=True, slots=True)
class FipeConfig:
    resilience: ResilienceConfig
    vehicle_type: int = 1  # 1 = cars, 2 = motorcycles, 3 = trucks


def get_fipe_config(*, resilience: ResilienceConfig | None = None) -> FipeConfig:
    base_url = os.getenv("FIPE_BASE_URL") or DEFAULT_FIPE_BASE_URL
    return FipeConfig(
        resilience=resilience
        or ResilienceConfig(
            name="fipe",
            base_url=base_url,
            timeout_seconds=FIPE_TIMEOUT_SECONDS,
            retry=RetryPolicy(total=2, backoff_factor=0.3),
            ratelimit=RateLimit(max_calls=1, per_seconds=FIPE_MIN_INTERVAL_SECONDS),
            max_concurrency=1,
            default_headers={
                "Referer": "https://veiculos.fipe.org.br",
                "Content-Type": "application/json",
            },
        ),
    )
