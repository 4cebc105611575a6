"""FIPE vehicle valuation adapter."""

from __future__ import annotations

from policykeeper.config import get_fipe_config

from .client import FipeAPIError, FipeValuationClient


def build_fipe_valuation_client() -> FipeValuationClient:
    return FipeValuationClient(config=get_fipe_config())


__all__ = ["FipeAPIError", "FipeValuationClient", "build_fipe_valuation_client"]
