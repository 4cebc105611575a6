"""Where policykeeper keeps its database and stored artifacts."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Final

APP_DIR_NAME: Final[str] = "policykeeper"
DEFAULT_DB_FILENAME: Final[str] = "policykeeper.db"
ARTIFACT_DIRNAME: Final[str] = "artifacts"


@dataclass(frozen=True, slots=True)
class StorageConfig:
    data_dir: Path
    database_filename: str = DEFAULT_DB_FILENAME
    artifact_dirname: str = ARTIFACT_DIRNAME

    def root(self, *, ensure: bool = True) -> Path:
        resolved = self.data_dir.expanduser().resolve()
        if ensure:
            resolved.mkdir(parents=True, exist_ok=True)
        return resolved

    def database_path(self, *, ensure: bool = True) -> Path:
        return self.root(ensure=ensure) / self.database_filename

    def artifact_dir(self, *, ensure: bool = True) -> Path:
        # the artifact store creates its own shard directories
        return self.root(ensure=ensure) / self.artifact_dirname

    def database_uri(self) -> str:
        return f"sqlite+pysqlite:///{self.database_path()}"


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    uri: str


def _platform_data_home() -> Path:
    if os.name == "nt":
        local = os.getenv("LOCALAPPDATA")
        return Path(local) if local else Path.home() / "AppData" / "Local"
    xdg = os.getenv("XDG_DATA_HOME")
    return Path(xdg) if xdg else Path.home() / ".local" / "share"


def get_storage_config() -> StorageConfig:
    """Storage rooted at ``POLICYKEEPER_DATA_DIR`` or the platform data home."""

    override = os.getenv("POLICYKEEPER_DATA_DIR")
    if override:
        return StorageConfig(data_dir=Path(override))
    return StorageConfig(data_dir=(_platform_data_home() / APP_DIR_NAME).expanduser().resolve())


def get_database_config(*, storage: StorageConfig | None = None) -> DatabaseConfig:
    """``DATABASE_URI`` wins; otherwise a SQLite file inside the data dir."""

    uri = os.getenv("DATABASE_URI")
    if not uri:
        uri = (storage or get_storage_config()).database_uri()
    return DatabaseConfig(uri=uri)
