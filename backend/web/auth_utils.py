"""
Shared authentication utilities.

Why:
    Keep the environment-dependent cookie policy in one place so the session
    middleware and the logout route cannot drift apart.
"""

from __future__ import annotations


def cookie_opts(environment: str) -> dict:
    """Return hardened cookie flags (dev = prod).

    Returns a mapping with keys:
      - secure: True
      - samesite: "strict" in production, "lax" elsewhere so local tooling
        that opens the API from another port keeps its session.
    """
    env = (environment or "").lower()
    return {"secure": True, "samesite": "strict" if env in ("prod", "production") else "lax"}
