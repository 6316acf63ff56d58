"""
Identity domain constants and simple helpers.

Why:
- Centralize allowed roles to avoid drift between tools and web layer.
"""

from __future__ import annotations

from typing import Iterable

# Keep roles minimal and explicit. Immutable to prevent accidental mutation.
ALLOWED_ROLES = frozenset({"student", "instructor", "admin", "operator"})

# Roles allowed to review and grade submissions.
GRADER_ROLES = frozenset({"instructor", "admin"})


def primary_role(roles: Iterable[str]) -> str:
    priority = ["admin", "instructor", "operator", "student"]
    lowered = [r.lower() for r in roles if isinstance(r, str)]
    for r in priority:
        if r in lowered:
            return r
    return "student"


__all__ = ["ALLOWED_ROLES", "GRADER_ROLES", "primary_role"]
