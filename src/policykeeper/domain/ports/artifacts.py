"""Port for storing source documents (artifacts)."""

from __future__ import annotations

import hashlib
from typing import Protocol, runtime_checkable


@runtime_checkable
class ArtifactStore(Protocol):
    """Persist artifact bytes and return a stable path for them.

    Implementations raise ``ArtifactError`` on failure and must never return a
    placeholder path.
    """

    def store(self, data: bytes, *, digest: str) -> str: ...


def sha256_digest(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()
