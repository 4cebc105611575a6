"""Content-addressed artifact storage on the local filesystem."""

from __future__ import annotations

import os
import tempfile
from logging import getLogger
from pathlib import Path

from policykeeper.domain.errors import ArtifactError
from policykeeper.domain.ports import sha256_digest

log = getLogger(__name__)


class FilesystemArtifactStore:
    """Store artifacts under ``<root>/<digest[:2]>/<digest>``.

    Identical bytes always land on the same path, so a re-upload is a no-op.
    Writes go through a temporary file and an atomic rename.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def path_for(self, digest: str) -> Path:
        return self.root / digest[:2] / digest

    def store(self, data: bytes, *, digest: str) -> str:
        if len(digest) != 64 or sha256_digest(data) != digest:
            raise ArtifactError(f"artifact digest mismatch for {digest[:12]}")
        target = self.path_for(digest)
        if target.exists():
            log.debug("Artifact %s already stored", digest[:12])
            return str(target)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                Path(tmp_name).replace(target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise ArtifactError(f"could not store artifact {digest[:12]}: {exc}") from exc
        log.info("Stored artifact %s at %s", digest[:12], target)
        return str(target)

    def load(self, digest: str) -> bytes:
        try:
            return self.path_for(digest).read_bytes()
        except OSError as exc:
            raise ArtifactError(f"could not read artifact {digest[:12]}: {exc}") from exc
