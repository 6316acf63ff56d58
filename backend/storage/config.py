"""
Centralized storage configuration for buckets.

Intent:
    Provide a single source of truth for the bucket that holds uploaded
    assessment documents and its environment-variable override.

Permissions:
    Pure configuration; no external calls or privileges required.
"""
from __future__ import annotations

import os


ASSESSMENT_BUCKET_DEFAULT = "assessment-submissions"


def get_assessment_bucket() -> str:
    """Return the configured assessment submissions bucket name.

    Env:
        ASSESSMENT_STORAGE_BUCKET – optional override; otherwise defaults to
        ASSESSMENT_BUCKET_DEFAULT.
    """
    return (os.getenv("ASSESSMENT_STORAGE_BUCKET") or ASSESSMENT_BUCKET_DEFAULT).strip()


__all__ = ["ASSESSMENT_BUCKET_DEFAULT", "get_assessment_bucket"]
