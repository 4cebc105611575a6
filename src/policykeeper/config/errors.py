"""Errors raised while reading configuration from the environment."""

from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Base class for configuration problems."""


class MissingConfigurationError(ConfigurationError):
    """A required variable is unset or blank."""


class InvalidConfigurationError(ConfigurationError):
    """A variable is set but cannot be parsed into the expected type."""

    def __init__(self, name: str, expected: str, raw: object) -> None:
        super().__init__(f"{name} must be {expected}, got {raw!r}")
        self.name = name
        self.raw = raw
