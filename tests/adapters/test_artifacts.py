from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from policykeeper.adapters.artifacts import FilesystemArtifactStore
from policykeeper.domain.errors import ArtifactError
from policykeeper.domain.ports import sha256_digest

if TYPE_CHECKING:
    from pathlib import Path


def test_store_writes_content_addressed_file(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path)
    data = b"%PDF-1.7 policy document"
    digest = sha256_digest(data)

    location = store.store(data, digest=digest)

    assert location == str(tmp_path / digest[:2] / digest)
    assert store.load(digest) == data
    assert not list((tmp_path / digest[:2]).glob(".tmp-*"))


def test_store_is_idempotent_for_same_content(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path)
    data = b"same bytes"
    digest = sha256_digest(data)

    first = store.store(data, digest=digest)
    second = store.store(data, digest=digest)

    assert first == second
    assert len(list(tmp_path.rglob("*"))) == 2  # one directory, one file


def test_store_rejects_mismatched_digest(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path)

    with pytest.raises(ArtifactError, match="digest mismatch"):
        store.store(b"bytes", digest=sha256_digest(b"other bytes"))

    assert list(tmp_path.iterdir()) == []


def test_store_wraps_filesystem_errors(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-directory"
    blocker.write_bytes(b"")
    store = FilesystemArtifactStore(blocker)
    data = b"payload"

    with pytest.raises(ArtifactError, match="could not store artifact"):
        store.store(data, digest=sha256_digest(data))


def test_load_missing_artifact(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path)

    with pytest.raises(ArtifactError, match="could not read artifact"):
        store.load(sha256_digest(b"never stored"))
