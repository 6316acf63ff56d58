"""
Local generation adapter backed by an Ollama server.

Intent:
    Send chat messages to `ollama.Client(base_url).chat` and return the
    assistant text. JSON mode is requested so small models stay on format;
    parsing remains the caller's job.

Error mapping:
    - Timeouts and connection problems become AITransientError.
    - Ollama `ResponseError` with a 4xx status (unknown model, bad request)
      becomes AIPermanentError; other statuses stay transient.

Privacy:
    Never log prompt or document content.
"""

from __future__ import annotations

import logging
from typing import Sequence

from backend.assessments.config import load_ai_config
from backend.assessments.ports import AIPermanentError, AITransientError


logger = logging.getLogger(__name__)


class _LocalGenerationAdapter:
    def __init__(self, *, base_url: str, model: str) -> None:
        self._base_url = base_url
        self._model = model

    def complete(self, *, messages: Sequence[dict], timeout: int) -> str:
        # Import ollama lazily for test monkeypatching support.
        try:
            import ollama  # type: ignore
        except Exception as exc:  # pragma: no cover - defensive only
            raise AITransientError(f"ollama client unavailable: {exc}")

        try:
            client = ollama.Client(self._base_url, timeout=timeout)
            raw = client.chat(model=self._model, messages=list(messages), format="json")
        except TimeoutError as exc:
            logger.warning("assessments.generation.timeout backend=ollama model=%s", self._model)
            raise AITransientError(str(exc)) from exc
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            if isinstance(status, int) and 400 <= status < 500:
                logger.warning("assessments.generation.rejected backend=ollama status=%s", status)
                raise AIPermanentError(str(exc)) from exc
            logger.warning("assessments.generation.failed backend=ollama reason=%s", exc.__class__.__name__)
            raise AITransientError(str(exc)) from exc

        message = raw["message"] if not hasattr(raw, "message") else raw.message
        if isinstance(message, dict):
            content = message.get("content")
        else:
            content = getattr(message, "content", None)
        text = str(content or "").strip()
        logger.info("assessments.generation.completed backend=ollama model=%s chars=%s", self._model, len(text))
        return text


def build() -> _LocalGenerationAdapter:
    """Factory used by the use cases to construct the adapter instance."""
    cfg = load_ai_config()
    return _LocalGenerationAdapter(base_url=cfg.ollama_base_url, model=cfg.generation_model)
