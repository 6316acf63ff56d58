"""
Supabase-backed storage adapter for uploaded assessment documents.

This adapter implements BinaryReadStorage using a provided Supabase client.
It is duck-typed to avoid a hard dependency during testing. The client is
expected to expose `.storage.from_(bucket)` (supabase-py) or `.from_(bucket)`
(storage3) returning a bucket proxy with `download(path) -> bytes`.

Security:
- The caller must ensure the client is initialized with the Service Role key.
- Buckets stay private; documents never leave the server through this path.
"""
from __future__ import annotations

from typing import Any


class SupabaseStorageAdapter:
    """Storage adapter using a supabase client for Storage operations."""

    def __init__(self, client: Any):
        self._client = client

    def _bucket(self, bucket: str) -> Any:
        """Return a bucket proxy from either supabase client or storage3 client."""
        c = self._client
        storage = getattr(c, "storage", None)
        if storage is not None and hasattr(storage, "from_"):
            return storage.from_(bucket)
        if hasattr(c, "from_"):
            return c.from_(bucket)  # type: ignore[attr-defined]
        raise RuntimeError("invalid_supabase_client")

    @staticmethod
    def _relative_key(bucket: str, key: str) -> str:
        # storage3 prepends the bucket id itself
        norm_key = key.lstrip("/")
        prefix = f"{bucket}/"
        if norm_key.startswith(prefix):
            norm_key = norm_key[len(prefix):]
        return norm_key

    def download_object(self, *, bucket: str, key: str) -> bytes:
        """Download an object and return its bytes.

        Raises:
            Propagates client exceptions; RuntimeError when the client returns
            something other than bytes.
        """
        data = self._bucket(bucket).download(self._relative_key(bucket, key))
        if isinstance(data, (bytes, bytearray)):
            return bytes(data)
        raise RuntimeError("unexpected_download_payload")


__all__ = ["SupabaseStorageAdapter"]
