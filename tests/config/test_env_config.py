from __future__ import annotations

from decimal import Decimal

import pytest

from policykeeper.config import (
    ConfigurationError,
    InvalidConfigurationError,
    MissingConfigurationError,
    get_fipe_config,
    get_persistence_config,
    require_env_vars,
)
from policykeeper.config.env import bool_env_var, int_env_var


def test_require_env_vars_returns_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("EXAMPLE_VAR", "value")

    result = require_env_vars(["EXAMPLE_VAR"])

    assert result["EXAMPLE_VAR"] == "value"


def test_require_env_vars_raises_when_any_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("MISSING_VAR", raising=False)
    monkeypatch.setenv("BLANK_VAR", "   ")

    with pytest.raises(MissingConfigurationError) as exc:
        require_env_vars(["MISSING_VAR", "BLANK_VAR"])

    assert "BLANK_VAR, MISSING_VAR" in str(exc.value)


def test_persistence_config_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "POLICYKEEPER_MAX_ATTEMPTS",
        "POLICYKEEPER_RETRY_BACKOFF_SECONDS",
        "POLICYKEEPER_DEFAULT_INSTALLMENTS",
        "POLICYKEEPER_COHERENCE_TOLERANCE",
        "POLICYKEEPER_VEHICLE_VALUATION",
    ):
        monkeypatch.delenv(name, raising=False)

    config = get_persistence_config()

    assert config.max_attempts == 3
    assert config.retry_backoff_seconds == pytest.approx(0.2)
    assert config.default_installment_count == 12
    assert config.coherence_tolerance == Decimal("0.15")
    assert not config.vehicle_valuation


def test_persistence_config_reads_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POLICYKEEPER_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("POLICYKEEPER_RETRY_BACKOFF_SECONDS", "0.5")
    monkeypatch.setenv("POLICYKEEPER_DEFAULT_INSTALLMENTS", "10")
    monkeypatch.setenv("POLICYKEEPER_COHERENCE_TOLERANCE", "0.05")
    monkeypatch.setenv("POLICYKEEPER_VEHICLE_VALUATION", "yes")

    config = get_persistence_config()

    assert config.max_attempts == 5
    assert config.retry_backoff_seconds == pytest.approx(0.5)
    assert config.default_installment_count == 10
    assert config.coherence_tolerance == Decimal("0.05")
    assert config.vehicle_valuation


@pytest.mark.parametrize("raw", ["zero", "0"])
def test_invalid_attempt_count_is_rejected(monkeypatch: pytest.MonkeyPatch, raw: str) -> None:
    monkeypatch.setenv("POLICYKEEPER_MAX_ATTEMPTS", raw)

    with pytest.raises(ConfigurationError, match="POLICYKEEPER_MAX_ATTEMPTS"):
        get_persistence_config()


def test_int_and_bool_env_vars(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("EXAMPLE_INT", raising=False)
    monkeypatch.setenv("EXAMPLE_FLAG", "maybe")

    assert int_env_var("EXAMPLE_INT", 7) == 7
    assert bool_env_var("EXAMPLE_UNSET_FLAG", default=True)
    with pytest.raises(InvalidConfigurationError) as exc_info:
        bool_env_var("EXAMPLE_FLAG", default=False)

    assert exc_info.value.name == "EXAMPLE_FLAG"
    assert "a boolean flag" in str(exc_info.value)


def test_fipe_config_honours_base_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("FIPE_BASE_URL", "https://fipe.example/api/")

    config = get_fipe_config()

    assert config.resilience.base_url == "https://fipe.example/api/"
    assert config.resilience.max_concurrency == 1
    assert config.resilience.ratelimit is not None
    assert config.vehicle_type == 1
