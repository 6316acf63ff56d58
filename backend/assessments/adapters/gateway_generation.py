"""
Remote generation adapter for OpenAI-compatible chat-completions gateways.

Intent:
    POST `{"model", "messages"}` to `<AI_GATEWAY_URL>/v1/chat/completions`
    with a Bearer key and return `choices[0].message.content`.

Error mapping:
    - Timeouts, transport errors, 429 and 5xx become AITransientError.
    - Other 4xx statuses become AIPermanentError.
    - A 2xx body without assistant content is an AIPermanentError.
"""

from __future__ import annotations

import logging
from typing import Sequence

import httpx

from backend.assessments.config import load_ai_config
from backend.assessments.ports import AIPermanentError, AITransientError

logger = logging.getLogger(__name__)


class GatewayGenerationAdapter:
    def __init__(self, *, base_url: str, api_key: str, model: str, transport: httpx.BaseTransport | None = None) -> None:
        self._url = base_url.rstrip("/") + "/v1/chat/completions"
        self._api_key = api_key
        self._model = model
        self._transport = transport

    def complete(self, *, messages: Sequence[dict], timeout: int) -> str:
        headers = {"Authorization": f"Bearer {self._api_key}", "Content-Type": "application/json"}
        body = {"model": self._model, "messages": list(messages)}
        try:
            with httpx.Client(timeout=timeout, transport=self._transport) as client:
                resp = client.post(self._url, json=body, headers=headers)
        except httpx.TimeoutException as exc:
            logger.warning("assessments.generation.timeout backend=gateway model=%s", self._model)
            raise AITransientError("timeout") from exc
        except httpx.HTTPError as exc:
            logger.warning("assessments.generation.failed backend=gateway reason=%s", exc.__class__.__name__)
            raise AITransientError(exc.__class__.__name__) from exc

        if resp.status_code == 429 or resp.status_code >= 500:
            logger.warning("assessments.generation.failed backend=gateway status=%s", resp.status_code)
            raise AITransientError(f"gateway status {resp.status_code}")
        if resp.status_code >= 400:
            logger.warning("assessments.generation.rejected backend=gateway status=%s", resp.status_code)
            raise AIPermanentError(f"gateway status {resp.status_code}")

        try:
            data = resp.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise AIPermanentError("gateway response without content") from exc
        text = str(content or "").strip()
        logger.info("assessments.generation.completed backend=gateway model=%s chars=%s", self._model, len(text))
        return text


def build() -> GatewayGenerationAdapter:
    """Factory used by the use cases to construct the adapter instance."""
    cfg = load_ai_config()
    if not cfg.gateway_url or not cfg.gateway_api_key:
        raise RuntimeError("AI gateway not configured")
    return GatewayGenerationAdapter(base_url=cfg.gateway_url, api_key=cfg.gateway_api_key, model=cfg.generation_model)
