"""
Storage ports used by the assessment pipeline.

Keep these small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol


class BinaryReadStorage(Protocol):
    """Minimal interface to read binary objects from a bucket/path.

    Intent:
        Let grading and study-material use cases fetch uploaded documents
        without depending on a specific cloud SDK.

    Permissions:
        Implementations run server-side with service credentials; callers
        must only pass keys taken from persisted submissions.
    """

    def download_object(self, *, bucket: str, key: str) -> bytes: ...


class NullStorage:
    """Fallback adapter that signals the storage backend is not configured."""

    def download_object(self, *, bucket: str, key: str) -> bytes:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")


class FilesystemStorage:
    """Dev storage reading `root/bucket/key` from the local disk."""

    def __init__(self, root_dir: Path | str) -> None:
        self._root = Path(root_dir).resolve()

    def _target(self, bucket: str, key: str) -> Path:
        target = (self._root / bucket / key.lstrip("/")).resolve()
        # Enforce containment in root
        if os.path.commonpath([str(self._root), str(target)]) != str(self._root):
            raise RuntimeError("path_escape_blocked")
        return target

    def download_object(self, *, bucket: str, key: str) -> bytes:
        return self._target(bucket, key).read_bytes()

    def put_object(self, *, bucket: str, key: str, body: bytes) -> None:
        target = self._target(bucket, key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(body)


__all__ = ["BinaryReadStorage", "NullStorage", "FilesystemStorage"]
