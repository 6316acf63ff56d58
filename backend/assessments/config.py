"""
AI configuration parsing and validation for assessment features.

Intent:
    Provide a single place to read environment variables that control
    generation adapter selection (DI), model name, timeout, the local Ollama
    URL and the remote chat-completions gateway.
"""
from __future__ import annotations

from dataclasses import dataclass
import os
import re
from typing import Optional
from urllib.parse import urlparse

ADAPTER_PATHS = {
    "stub": "backend.assessments.adapters.stub_generation",
    "local": "backend.assessments.adapters.local_generation",
    "gateway": "backend.assessments.adapters.gateway_generation",
}


@dataclass(frozen=True)
class AIConfig:
    backend: str  # "stub" | "local" | "gateway"
    generation_adapter_path: str
    generation_model: str
    timeout_generation_seconds: int
    ollama_base_url: str
    gateway_url: Optional[str] = None
    gateway_api_key: Optional[str] = None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got: {raw!r}")
    if value <= 0 or value > 300:
        raise ValueError(f"{name} out of range (1..300), got: {value}")
    return value


_HOST_RE = re.compile(r"^[a-z0-9._-]+$")


def _validate_ollama_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"}:
        raise ValueError("OLLAMA_BASE_URL must start with http:// or https://")
    host = (parsed.hostname or "").lower()
    if host in {"localhost"} or host.startswith("127.") or host.startswith("::1"):
        return
    # Docker compose service names carry no dots
    if "." not in host and _HOST_RE.match(host):
        return
    raise ValueError("OLLAMA_BASE_URL must point to localhost or a valid service hostname without dots")


def _validate_gateway_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.hostname:
        raise ValueError("AI_GATEWAY_URL must be an absolute http(s) URL")
    if parsed.scheme == "http" and _is_prod_like() and parsed.hostname not in {"localhost", "127.0.0.1"}:
        raise ValueError("AI_GATEWAY_URL must use https in production/staging environments")


def _is_prod_like() -> bool:
    env = (os.getenv("MODULEARN_ENV") or "dev").lower()
    return env in {"prod", "production", "stage", "staging"}


def load_ai_config() -> AIConfig:
    """
    Parse and validate AI-related configuration from environment variables.

    Behavior:
        - `AI_BACKEND` selects the DI alias: "stub", "local" or "gateway"
          (default: stub). Stub is rejected in prod-like environments.
        - `AI_GENERATION_ADAPTER` (dotted module path) overrides the alias.
        - Validates the timeout (1..300 seconds) and the Ollama base URL shape.
        - The gateway backend requires `AI_GATEWAY_URL` and `AI_GATEWAY_API_KEY`.
    """
    backend = (os.getenv("AI_BACKEND") or "stub").strip().lower()
    if backend not in ADAPTER_PATHS:
        raise ValueError("AI_BACKEND must be 'stub', 'local' or 'gateway'")
    if backend == "stub" and _is_prod_like():
        raise ValueError("AI_BACKEND=stub is not allowed in production/staging environments.")

    adapter_path = (os.getenv("AI_GENERATION_ADAPTER") or "").strip() or ADAPTER_PATHS[backend]
    default_model = "google/gemini-2.5-flash" if backend == "gateway" else "llama3.1"
    model = (os.getenv("AI_GENERATION_MODEL") or "").strip() or default_model
    timeout = _int_env("AI_TIMEOUT_GENERATION", 60)

    ollama_url = os.getenv("OLLAMA_BASE_URL", "http://ollama:11434")
    _validate_ollama_url(ollama_url)

    gateway_url = (os.getenv("AI_GATEWAY_URL") or "").strip() or None
    gateway_key = (os.getenv("AI_GATEWAY_API_KEY") or "").strip() or None
    if backend == "gateway":
        if not gateway_url:
            raise ValueError("AI_GATEWAY_URL is required when AI_BACKEND=gateway")
        if not gateway_key:
            raise ValueError("AI_GATEWAY_API_KEY is required when AI_BACKEND=gateway")
    if gateway_url:
        _validate_gateway_url(gateway_url)

    return AIConfig(
        backend=backend,
        generation_adapter_path=adapter_path,
        generation_model=model,
        timeout_generation_seconds=timeout,
        ollama_base_url=ollama_url,
        gateway_url=gateway_url,
        gateway_api_key=gateway_key,
    )


__all__ = ["AIConfig", "ADAPTER_PATHS", "load_ai_config"]
