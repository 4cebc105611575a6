"""Root logger setup for the command line entry point."""

from __future__ import annotations

import logging

# libraries that log every request or migration step at INFO
_CHATTY_LOGGERS = ("httpx", "httpcore", "alembic.runtime.migration", "sqlalchemy.engine")


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Configure the root logger; third-party loggers stay at WARNING unless debugging."""

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=force,
    )
    library_level = logging.DEBUG if level <= logging.DEBUG else logging.WARNING
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)
